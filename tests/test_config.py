from __future__ import annotations

import pytest
from pydantic import ValidationError

from btccustody.config import Settings
from btccustody.domain.task import DEFAULT_AMOUNT_GRANULARITY, DEFAULT_MIN_AMOUNT


def test_settings_defaults() -> None:
    settings = Settings()

    assert settings.mainnet is True
    assert settings.admin_actors == []
    assert settings.relayer_actors == []
    assert settings.bridge_api_token is None
    policy = settings.amount_policy()
    assert policy.min_amount == DEFAULT_MIN_AMOUNT
    assert policy.granularity == DEFAULT_AMOUNT_GRANULARITY


def test_actor_lists_parse_csv_and_json(monkeypatch) -> None:
    monkeypatch.setenv("ADMIN_ACTORS", " alice , bob,alice,")
    monkeypatch.setenv("RELAYER_ACTORS", '["relay-1", "relay-2"]')

    settings = Settings()

    assert settings.admin_actors == ["alice", "bob"]
    assert settings.relayer_actors == ["relay-1", "relay-2"]


def test_network_is_normalized(monkeypatch) -> None:
    monkeypatch.setenv("BITCOIN_NETWORK", " TestNet ")

    settings = Settings()

    assert settings.bitcoin_network == "testnet"
    assert settings.mainnet is False


@pytest.mark.parametrize(
    ("key", "value"),
    [
        ("BITCOIN_NETWORK", "regtest"),
        ("AMOUNT_GRANULARITY", "0"),
        ("MIN_DEPOSIT_AMOUNT", "-1"),
        ("HTTP_TIMEOUT_SECONDS", "0"),
        ("HTTP_RETRY_ATTEMPTS", "0"),
        ("ADMIN_ACTORS", '{"alice": true}'),
    ],
)
def test_invalid_settings_are_rejected(monkeypatch, key: str, value: str) -> None:
    monkeypatch.setenv(key, value)

    with pytest.raises(ValidationError):
        Settings()


def test_bridge_token_is_secret(monkeypatch) -> None:
    monkeypatch.setenv("BRIDGE_API_TOKEN", "tok_1234567890")

    settings = Settings()

    assert settings.bridge_api_token is not None
    assert settings.bridge_api_token.get_secret_value() == "tok_1234567890"
    assert "tok_1234567890" not in repr(settings)


@pytest.mark.parametrize("value", ['{"alice": true}', '{"admins": ["alice"]}', '["alice"'])
def test_actor_json_values_must_decode_to_a_list(monkeypatch, value: str) -> None:
    monkeypatch.setenv("ADMIN_ACTORS", value)

    with pytest.raises(ValidationError):
        Settings()
