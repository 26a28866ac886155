from __future__ import annotations

import pytest

from btccustody.services.retry import RetryAttempt, parse_retry_after_seconds, retry_with_backoff


class _TransientError(Exception):
    pass


def test_parse_retry_after_seconds() -> None:
    assert parse_retry_after_seconds("2") == 2.0
    assert parse_retry_after_seconds(" 0.5 ") == 0.5
    assert parse_retry_after_seconds("") is None
    assert parse_retry_after_seconds(None) is None
    assert parse_retry_after_seconds("-1") is None
    assert parse_retry_after_seconds("soon") is None


def test_retry_with_backoff_succeeds_after_transient_failures() -> None:
    calls = {"n": 0}
    sleeps: list[float] = []
    attempts: list[RetryAttempt] = []

    def _fn() -> str:
        calls["n"] += 1
        if calls["n"] < 3:
            raise _TransientError("x")
        return "ok"

    result = retry_with_backoff(
        _fn,
        max_attempts=5,
        base_delay_ms=100,
        max_delay_ms=1000,
        jitter_seed=7,
        retry_on_exceptions=(_TransientError,),
        sleep_fn=sleeps.append,
        on_retry=attempts.append,
    )

    assert result == "ok"
    assert calls["n"] == 3
    assert len(sleeps) == 2
    assert [a.attempt for a in attempts] == [1, 2]
    assert all(a.error_type == "_TransientError" for a in attempts)
    assert 0.05 <= sleeps[0] <= 0.15
    assert 0.1 <= sleeps[1] <= 0.3


def test_retry_with_backoff_reraises_after_max_attempts() -> None:
    calls = {"n": 0}

    def _fn() -> None:
        calls["n"] += 1
        raise _TransientError("x")

    with pytest.raises(_TransientError):
        retry_with_backoff(
            _fn,
            max_attempts=3,
            base_delay_ms=10,
            max_delay_ms=10,
            retry_on_exceptions=(_TransientError,),
            sleep_fn=lambda _x: None,
        )
    assert calls["n"] == 3


def test_retry_with_backoff_does_not_retry_when_predicate_declines() -> None:
    calls = {"n": 0}

    def _fn() -> None:
        calls["n"] += 1
        raise _TransientError("x")

    with pytest.raises(_TransientError):
        retry_with_backoff(
            _fn,
            max_attempts=5,
            base_delay_ms=10,
            max_delay_ms=10,
            retry_if=lambda _exc: False,
            sleep_fn=lambda _x: None,
        )
    assert calls["n"] == 1


def test_retry_after_overrides_backoff_delay() -> None:
    sleeps: list[float] = []
    calls = {"n": 0}

    def _fn() -> int:
        calls["n"] += 1
        if calls["n"] == 1:
            raise _TransientError("x")
        return 1

    retry_with_backoff(
        _fn,
        max_attempts=2,
        base_delay_ms=10,
        max_delay_ms=5000,
        sleep_fn=sleeps.append,
        retry_after_getter=lambda _exc: "3",
    )

    assert sleeps == [3.0]


def test_retry_with_backoff_validates_arguments() -> None:
    with pytest.raises(ValueError):
        retry_with_backoff(lambda: None, max_attempts=0, base_delay_ms=1, max_delay_ms=1)
