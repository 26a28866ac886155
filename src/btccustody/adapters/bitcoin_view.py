from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable, Mapping

import httpx

from btccustody.adapters.http_client import CollaboratorHttpClient
from btccustody.domain.errors import CollaboratorUnavailableError
from btccustody.domain.merkle import ZERO_HASH


class BitcoinView(ABC):
    """Authoritative height -> block hash mapping (internal byte order)."""

    @abstractmethod
    def block_hash(self, height: int) -> bytes:
        raise NotImplementedError

    def close(self) -> None:
        return None


class StaticBitcoinView(BitcoinView):
    def __init__(self, hashes: Mapping[int, bytes] | None = None) -> None:
        self._hashes: dict[int, bytes] = {int(h): bytes(v) for h, v in (hashes or {}).items()}

    def set_block_hash(self, height: int, block_hash: bytes) -> None:
        self._hashes[int(height)] = bytes(block_hash)

    def block_hash(self, height: int) -> bytes:
        # unknown heights read as the zero hash, which no real header matches
        return self._hashes.get(int(height), ZERO_HASH)


class EsploraBitcoinView(BitcoinView):
    """Esplora ``GET /block-height/{height}`` returns the display-order hash hex."""

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float | httpx.Timeout = 10.0,
        transport: httpx.BaseTransport | None = None,
        max_attempts: int = 4,
        sleep_fn: Callable[[float], None] | None = None,
    ) -> None:
        self._http = CollaboratorHttpClient(
            base_url=base_url,
            name="esplora",
            timeout=timeout,
            transport=transport,
            max_attempts=max_attempts,
            sleep_fn=sleep_fn,
        )

    def block_hash(self, height: int) -> bytes:
        if height < 0:
            raise ValueError("height must be >= 0")
        response = self._http.get(f"/block-height/{height}", allow_not_found=True)
        if response is None:
            return ZERO_HASH
        text = response.text.strip()
        try:
            display = bytes.fromhex(text)
        except ValueError as exc:
            raise CollaboratorUnavailableError(f"esplora returned a non-hex block hash: {text[:80]!r}") from exc
        if len(display) != 32:
            raise CollaboratorUnavailableError("esplora block hash is not 32 bytes")
        return display[::-1]

    def close(self) -> None:
        self._http.close()
