"""Bitcoin double-SHA-256 Merkle tree.

All hashes are 32-byte values in Bitcoin's internal byte order. Explorers
display transaction and block hashes reversed; ``reverse_hash`` converts
between the two.

Pairing convention: at every level a node with an even index is the left
child and its sibling is on the right. An odd-sized level pairs its last node
with itself.
"""

from __future__ import annotations

import hashlib
from collections.abc import Sequence
from dataclasses import dataclass

HASH_LENGTH = 32
ZERO_HASH = b"\x00" * HASH_LENGTH


def double_sha256(data: bytes) -> bytes:
    return hashlib.sha256(hashlib.sha256(data).digest()).digest()


def _require_hash(value: bytes, *, name: str) -> bytes:
    if len(value) != HASH_LENGTH:
        raise ValueError(f"{name} must be {HASH_LENGTH} bytes, got {len(value)}")
    return bytes(value)


def double_sha256_pair(left: bytes, right: bytes) -> bytes:
    return double_sha256(_require_hash(left, name="left") + _require_hash(right, name="right"))


def reverse_hash(value: bytes) -> bytes:
    return _require_hash(value, name="hash")[::-1]


def txid_from_raw(raw_tx: bytes) -> bytes:
    """Display-order transaction id of a serialized transaction."""
    return double_sha256(raw_tx)[::-1]


@dataclass(frozen=True)
class MerkleProof:
    proof: tuple[bytes, ...]
    root: bytes


def _next_level(level: list[bytes]) -> list[bytes]:
    if len(level) % 2:
        level = level + [level[-1]]
    return [double_sha256_pair(level[i], level[i + 1]) for i in range(0, len(level), 2)]


def compute_merkle_root(leaves: Sequence[bytes]) -> bytes:
    if not leaves:
        return ZERO_HASH
    level = [_require_hash(leaf, name="leaf") for leaf in leaves]
    while len(level) > 1:
        level = _next_level(level)
    return level[0]


def generate_merkle_proof(leaves: Sequence[bytes], index: int) -> MerkleProof:
    if not 0 <= index < len(leaves):
        raise IndexError(f"leaf index {index} out of range for {len(leaves)} leaves")

    level = [_require_hash(leaf, name="leaf") for leaf in leaves]
    proof: list[bytes] = []
    position = index
    while len(level) > 1:
        sibling = position ^ 1
        proof.append(level[sibling] if sibling < len(level) else level[position])
        level = _next_level(level)
        position //= 2
    return MerkleProof(proof=tuple(proof), root=level[0])


def verify_merkle_proof(root: bytes, proof: Sequence[bytes], leaf: bytes, index: int) -> bool:
    # index must address a leaf of a tree whose height equals len(proof)
    if index < 0 or index >> len(proof):
        return False
    current = _require_hash(leaf, name="leaf")
    position = index
    for sibling in proof:
        if position % 2 == 0:
            current = double_sha256_pair(current, sibling)
        else:
            current = double_sha256_pair(sibling, current)
        position //= 2
    return current == _require_hash(root, name="root")
