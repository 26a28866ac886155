from __future__ import annotations

from dataclasses import dataclass

from btccustody.domain.errors import InvalidHeaderError
from btccustody.domain.merkle import HASH_LENGTH, double_sha256

HEADER_LENGTH = 80
MERKLE_ROOT_OFFSET = 36  # 4-byte version + 32-byte previous block hash


@dataclass(frozen=True)
class BlockHeader:
    block_hash: bytes
    merkle_root: bytes
    raw: bytes


def parse_header(raw_header: bytes) -> BlockHeader:
    if len(raw_header) != HEADER_LENGTH:
        raise InvalidHeaderError(f"block header must be {HEADER_LENGTH} bytes, got {len(raw_header)}")
    raw = bytes(raw_header)
    return BlockHeader(
        block_hash=double_sha256(raw),
        merkle_root=raw[MERKLE_ROOT_OFFSET : MERKLE_ROOT_OFFSET + HASH_LENGTH],
        raw=raw,
    )
