from __future__ import annotations

import logging
import ssl
from collections.abc import Callable

import httpx

from btccustody.domain.errors import CollaboratorUnavailableError
from btccustody.security.redaction import sanitize_mapping, sanitize_text
from btccustody.services.retry import RetryAttempt, retry_with_backoff

logger = logging.getLogger(__name__)

_RETRY_BASE_DELAY_MS = 400
_RETRY_MAX_DELAY_MS = 4000
_ERROR_SNIPPET_LIMIT = 240


def _is_permanent_transport_error(exc: httpx.TransportError) -> bool:
    if isinstance(exc, httpx.UnsupportedProtocol | httpx.ProtocolError):
        return True
    return isinstance(getattr(exc, "__cause__", None), ssl.SSLCertVerificationError)


def should_retry(exc: BaseException) -> bool:
    if isinstance(exc, httpx.TimeoutException):
        return True
    if isinstance(exc, httpx.HTTPStatusError) and exc.response is not None:
        return exc.response.status_code == 429 or exc.response.status_code >= 500
    if isinstance(exc, httpx.TransportError):
        return not _is_permanent_transport_error(exc)
    return False


def _retry_after_header(exc: Exception) -> str | None:
    if isinstance(exc, httpx.HTTPStatusError) and exc.response is not None:
        return exc.response.headers.get("Retry-After")
    return None


class CollaboratorHttpClient:
    """Thin httpx wrapper shared by the bridge and bitcoin views."""

    def __init__(
        self,
        *,
        base_url: str,
        name: str,
        timeout: float | httpx.Timeout = 10.0,
        headers: dict[str, str] | None = None,
        transport: httpx.BaseTransport | None = None,
        max_attempts: int = 4,
        sleep_fn: Callable[[float], None] | None = None,
    ) -> None:
        resolved_timeout = (
            timeout
            if isinstance(timeout, httpx.Timeout)
            else httpx.Timeout(timeout=timeout, connect=5.0)
        )
        self.name = name
        self.client = httpx.Client(
            base_url=base_url,
            timeout=resolved_timeout,
            headers=headers,
            transport=transport,
        )
        self._max_attempts = max_attempts
        self._sleep_fn = sleep_fn

    def get(self, path: str, *, allow_not_found: bool = False) -> httpx.Response | None:
        def _once() -> httpx.Response:
            response = self.client.get(path)
            if allow_not_found and response.status_code == 404:
                return response
            response.raise_for_status()
            return response

        def _log_retry(attempt: RetryAttempt) -> None:
            logger.warning(
                "collaborator_request_retry",
                extra={
                    "extra": {
                        "collaborator": self.name,
                        "path": path,
                        "attempt": attempt.attempt,
                        "delay_ms": attempt.delay_ms,
                        "error_type": attempt.error_type,
                    }
                },
            )

        try:
            response = retry_with_backoff(
                _once,
                max_attempts=self._max_attempts,
                base_delay_ms=_RETRY_BASE_DELAY_MS,
                max_delay_ms=_RETRY_MAX_DELAY_MS,
                retry_if=should_retry,
                retry_on_exceptions=(httpx.HTTPError,),
                sleep_fn=self._sleep_fn,
                on_retry=_log_retry,
                retry_after_getter=_retry_after_header,
            )
        except httpx.HTTPStatusError as exc:
            snippet = sanitize_text(exc.response.text.strip()[:_ERROR_SNIPPET_LIMIT])
            logger.error(
                "collaborator_request_failed",
                extra={
                    "extra": {
                        "collaborator": self.name,
                        "path": path,
                        "status_code": exc.response.status_code,
                        "body": snippet,
                        "headers": sanitize_mapping(dict(exc.request.headers)),
                    }
                },
            )
            raise CollaboratorUnavailableError(
                f"{self.name} returned HTTP {exc.response.status_code} for {path}"
            ) from exc
        except httpx.HTTPError as exc:
            logger.error(
                "collaborator_request_failed",
                extra={
                    "extra": {
                        "collaborator": self.name,
                        "path": path,
                        "error_type": type(exc).__name__,
                    }
                },
            )
            raise CollaboratorUnavailableError(f"{self.name} request failed for {path}") from exc

        if response.status_code == 404:
            return None
        return response

    def close(self) -> None:
        self.client.close()
