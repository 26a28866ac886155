from __future__ import annotations

import hashlib

import pytest

from btccustody.domain.merkle import (
    ZERO_HASH,
    compute_merkle_root,
    double_sha256,
    double_sha256_pair,
    generate_merkle_proof,
    reverse_hash,
    txid_from_raw,
    verify_merkle_proof,
)


def _leaf(n: int) -> bytes:
    return hashlib.sha256(f"leaf-{n}".encode()).digest()


def test_double_sha256_pair_is_deterministic_and_order_sensitive() -> None:
    a, b = _leaf(1), _leaf(2)

    assert double_sha256_pair(a, b) == double_sha256_pair(a, b)
    assert double_sha256_pair(a, b) != double_sha256_pair(b, a)
    assert double_sha256_pair(a, b) == hashlib.sha256(hashlib.sha256(a + b).digest()).digest()


def test_double_sha256_pair_requires_32_byte_inputs() -> None:
    with pytest.raises(ValueError):
        double_sha256_pair(b"\x00" * 31, _leaf(1))


def test_root_of_small_trees() -> None:
    a, b, c = _leaf(1), _leaf(2), _leaf(3)

    assert compute_merkle_root([]) == ZERO_HASH
    assert compute_merkle_root([a]) == a
    assert compute_merkle_root([a, b]) == double_sha256_pair(a, b)
    assert compute_merkle_root([a, b, c]) == double_sha256_pair(
        double_sha256_pair(a, b), double_sha256_pair(c, c)
    )


def test_root_changes_when_leaf_order_changes() -> None:
    leaves = [_leaf(i) for i in range(4)]

    assert compute_merkle_root(leaves) != compute_merkle_root(list(reversed(leaves)))


@pytest.mark.parametrize("size", range(1, 18))
def test_every_leaf_proof_verifies(size: int) -> None:
    leaves = [_leaf(i) for i in range(size)]
    root = compute_merkle_root(leaves)

    for index in range(size):
        proof = generate_merkle_proof(leaves, index)
        assert proof.root == root
        assert verify_merkle_proof(root, proof.proof, leaves[index], index)


def test_proof_fails_for_wrong_leaf_index_or_root() -> None:
    leaves = [_leaf(i) for i in range(5)]
    root = compute_merkle_root(leaves)
    proof = generate_merkle_proof(leaves, 2)

    assert not verify_merkle_proof(root, proof.proof, leaves[3], 2)
    assert not verify_merkle_proof(root, proof.proof, leaves[2], 3)
    assert not verify_merkle_proof(_leaf(99), proof.proof, leaves[2], 2)


def test_proof_rejects_index_outside_tree_height() -> None:
    leaves = [_leaf(i) for i in range(4)]
    root = compute_merkle_root(leaves)
    proof = generate_merkle_proof(leaves, 1)

    assert not verify_merkle_proof(root, proof.proof, leaves[1], 1 + 4)
    assert not verify_merkle_proof(root, proof.proof, leaves[1], -1)


def test_generate_proof_rejects_out_of_range_index() -> None:
    with pytest.raises(IndexError):
        generate_merkle_proof([_leaf(0)], 1)
    with pytest.raises(IndexError):
        generate_merkle_proof([], 0)


def test_txid_is_reversed_double_sha256() -> None:
    raw = bytes.fromhex("0100000001")

    assert txid_from_raw(raw) == double_sha256(raw)[::-1]
    assert reverse_hash(txid_from_raw(raw)) == double_sha256(raw)
