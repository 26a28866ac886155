from __future__ import annotations

import pytest

from btccustody.domain.address import (
    address_matches_pubkey,
    base58_decode,
    base58_encode,
    base58check_decode,
    base58check_encode,
    bech32_decode,
    decode_segwit_address,
    hash160,
    pubkey_to_p2pkh,
    pubkey_to_p2wpkh,
    to_p2pkh,
    to_p2wpkh,
)
from btccustody.domain.errors import AddressCodecError, InvalidPublicKeyError, TaskValidationError

# secp256k1 generator point, i.e. the public key of private key 1
COMPRESSED_G = bytes.fromhex(
    "0279be667ef9dcbbac55a06295ce870b07029bfcdb2dce28d959f2815b16f81798"
)
UNCOMPRESSED_G = bytes.fromhex(
    "0479be667ef9dcbbac55a06295ce870b07029bfcdb2dce28d959f2815b16f81798"
    "483ada7726a3c4655da4fbfc0e1108a8fd17b448a68554199c47d08ffb10d4b8"
)
COMPRESSED_G_HASH160 = bytes.fromhex("751e76e8199196d454941c45d1b3a323f1433bd6")


def test_hash160_matches_known_vector() -> None:
    assert hash160(COMPRESSED_G) == COMPRESSED_G_HASH160


@pytest.mark.parametrize("length", [0, 20, 32, 64, 66])
def test_hash160_rejects_bad_pubkey_length(length: int) -> None:
    with pytest.raises(InvalidPublicKeyError):
        hash160(b"\x02" * length)


def test_invalid_pubkey_is_a_validation_error() -> None:
    with pytest.raises(TaskValidationError):
        pubkey_to_p2wpkh(b"\x02" * 32)


def test_p2wpkh_matches_bip173_vectors() -> None:
    assert to_p2wpkh(COMPRESSED_G_HASH160) == "bc1qw508d6qejxtdg4y5r3zarvary0c5xw7kv8f3t4"
    assert (
        to_p2wpkh(COMPRESSED_G_HASH160, mainnet=False)
        == "tb1qw508d6qejxtdg4y5r3zarvary0c5xw7kxpjzsx"
    )
    assert pubkey_to_p2wpkh(COMPRESSED_G) == "bc1qw508d6qejxtdg4y5r3zarvary0c5xw7kv8f3t4"


def test_p2pkh_known_addresses_for_generator_point() -> None:
    assert pubkey_to_p2pkh(COMPRESSED_G) == "1BgGZ9tcN4rm9KBzDn7KprQz87SZ26SAMH"
    assert pubkey_to_p2pkh(UNCOMPRESSED_G) == "1EHNa6Q4Jz2uvNExL497mE43ikXhwF6kZm"


def test_testnet_p2pkh_uses_testnet_version_byte() -> None:
    address = to_p2pkh(COMPRESSED_G_HASH160, mainnet=False)

    version, payload = base58check_decode(address)

    assert address[0] in {"m", "n"}
    assert version == 0x6F
    assert payload == COMPRESSED_G_HASH160


def test_base58_known_vectors_and_leading_zeros() -> None:
    assert base58_encode(b"hello world") == "StV1DL6CwTryKyV"
    assert base58_encode(b"\x00\x00\x01") == "112"
    assert base58_encode(b"") == ""
    assert base58_decode("112") == b"\x00\x00\x01"
    assert base58_decode("StV1DL6CwTryKyV") == b"hello world"


def test_base58_decode_rejects_non_alphabet_characters() -> None:
    with pytest.raises(AddressCodecError):
        base58_decode("0OIl")


def test_base58check_roundtrip_and_checksum_detection() -> None:
    encoded = base58check_encode(0x00, COMPRESSED_G_HASH160)
    assert base58check_decode(encoded) == (0x00, COMPRESSED_G_HASH160)

    tampered = encoded[:-1] + ("2" if encoded[-1] != "2" else "3")
    with pytest.raises(AddressCodecError):
        base58check_decode(tampered)


def test_to_p2pkh_requires_20_byte_hash() -> None:
    with pytest.raises(AddressCodecError):
        to_p2pkh(b"\x00" * 19)
    with pytest.raises(AddressCodecError):
        to_p2wpkh(b"\x00" * 21)


def test_decode_segwit_address_returns_program() -> None:
    hrp, version, program = decode_segwit_address("BC1QW508D6QEJXTDG4Y5R3ZARVARY0C5XW7KV8F3T4")

    assert hrp == "bc"
    assert version == 0
    assert program == COMPRESSED_G_HASH160


@pytest.mark.parametrize(
    "address",
    [
        "bc1qw508d6qejxtdg4y5r3zarvary0c5xw7kv8f3t5",  # checksum
        "bc1qw508d6qejxtdg4y5r3zarvary0c5xw7kV8f3t4",  # mixed case
        "bc1qw508d6qejxtdg4y5r3zarvary0c5xw7kb8f3t4",  # 'b' outside charset
        "qw508d6qejxtdg4y5r3zarvary0c5xw7kv8f3t4",  # no separator
    ],
)
def test_bech32_decode_rejects_malformed_addresses(address: str) -> None:
    with pytest.raises(AddressCodecError):
        bech32_decode(address)


def test_address_matches_pubkey_accepts_either_encoding() -> None:
    assert address_matches_pubkey("bc1qw508d6qejxtdg4y5r3zarvary0c5xw7kv8f3t4", COMPRESSED_G)
    assert address_matches_pubkey("1BgGZ9tcN4rm9KBzDn7KprQz87SZ26SAMH", COMPRESSED_G)
    assert not address_matches_pubkey("1BgGZ9tcN4rm9KBzDn7KprQz87SZ26SAMH", UNCOMPRESSED_G)
    assert not address_matches_pubkey(
        "bc1qw508d6qejxtdg4y5r3zarvary0c5xw7kv8f3t4", COMPRESSED_G, mainnet=False
    )
