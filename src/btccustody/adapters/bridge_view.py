from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable

import httpx

from btccustody.adapters.http_client import CollaboratorHttpClient
from btccustody.domain.errors import CollaboratorUnavailableError


class BridgeView(ABC):
    """Authoritative oracle for recognized Bitcoin deposit outputs."""

    @abstractmethod
    def is_deposited(self, tx_hash: bytes, tx_out: int) -> bool:
        raise NotImplementedError

    def close(self) -> None:
        return None


class StaticBridgeView(BridgeView):
    def __init__(self, deposits: Iterable[tuple[bytes, int]] = ()) -> None:
        self._deposits: set[tuple[bytes, int]] = {(bytes(h), int(o)) for h, o in deposits}

    def record_deposit(self, tx_hash: bytes, tx_out: int) -> None:
        self._deposits.add((bytes(tx_hash), int(tx_out)))

    def is_deposited(self, tx_hash: bytes, tx_out: int) -> bool:
        return (bytes(tx_hash), int(tx_out)) in self._deposits


class HttpBridgeView(BridgeView):
    """Queries ``GET /deposits/{tx_hash_hex}/{tx_out}`` on the bridge service."""

    def __init__(
        self,
        base_url: str,
        *,
        api_token: str | None = None,
        timeout: float | httpx.Timeout = 10.0,
        transport: httpx.BaseTransport | None = None,
        max_attempts: int = 4,
        sleep_fn: Callable[[float], None] | None = None,
    ) -> None:
        headers = {"Accept": "application/json"}
        if api_token:
            headers["Authorization"] = f"Bearer {api_token}"
        self._http = CollaboratorHttpClient(
            base_url=base_url,
            name="bridge",
            timeout=timeout,
            headers=headers,
            transport=transport,
            max_attempts=max_attempts,
            sleep_fn=sleep_fn,
        )

    def is_deposited(self, tx_hash: bytes, tx_out: int) -> bool:
        if len(tx_hash) != 32:
            raise ValueError("tx_hash must be 32 bytes")
        if tx_out < 0:
            raise ValueError("tx_out must be >= 0")
        response = self._http.get(f"/deposits/{tx_hash.hex()}/{tx_out}", allow_not_found=True)
        if response is None:
            return False
        try:
            payload = response.json()
        except ValueError as exc:
            raise CollaboratorUnavailableError("bridge returned non-JSON payload") from exc
        if not isinstance(payload, dict) or not isinstance(payload.get("deposited"), bool):
            raise CollaboratorUnavailableError("bridge payload is missing boolean 'deposited'")
        return payload["deposited"]

    def close(self) -> None:
        self._http.close()
