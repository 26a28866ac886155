"""Bitcoin public-key to address codec.

Base58Check covers legacy P2PKH addresses, Bech32 (BIP-173) covers native
SegWit v0 P2WPKH addresses. Every function here is pure.
"""

from __future__ import annotations

import hashlib

from Crypto.Hash import RIPEMD160

from btccustody.domain.errors import AddressCodecError, InvalidPublicKeyError

BASE58_ALPHABET = "123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"
_BASE58_INDEX = {char: idx for idx, char in enumerate(BASE58_ALPHABET)}

BECH32_CHARSET = "qpzry9x8gf2tvdw0s3jn54khce6mua7l"
BECH32_GENERATORS = (0x3B6A57B2, 0x26508E6D, 0x1EA119FA, 0x3D4233DD, 0x2A1462B3)
BECH32_CONST = 1

P2PKH_VERSION_MAINNET = 0x00
P2PKH_VERSION_TESTNET = 0x6F
HRP_MAINNET = "bc"
HRP_TESTNET = "tb"

PUBKEY_LENGTHS = frozenset({33, 65})
HASH160_LENGTH = 20
CHECKSUM_LENGTH = 4


def _sha256(data: bytes) -> bytes:
    return hashlib.sha256(data).digest()


def _checksum(data: bytes) -> bytes:
    return _sha256(_sha256(data))[:CHECKSUM_LENGTH]


def validate_pubkey(pubkey: bytes) -> bytes:
    if len(pubkey) not in PUBKEY_LENGTHS:
        raise InvalidPublicKeyError(
            f"public key must be 33 or 65 bytes, got {len(pubkey)}"
        )
    return bytes(pubkey)


def hash160(pubkey: bytes) -> bytes:
    """RIPEMD-160 of SHA-256 of a compressed or uncompressed public key."""
    validate_pubkey(pubkey)
    return RIPEMD160.new(_sha256(pubkey)).digest()


def _require_hash160(value: bytes) -> bytes:
    if len(value) != HASH160_LENGTH:
        raise AddressCodecError(f"hash160 must be 20 bytes, got {len(value)}")
    return bytes(value)


# Base58


def base58_encode(payload: bytes) -> str:
    number = int.from_bytes(payload, "big")
    digits: list[str] = []
    while number > 0:
        number, remainder = divmod(number, 58)
        digits.append(BASE58_ALPHABET[remainder])

    leading_zeros = len(payload) - len(payload.lstrip(b"\x00"))
    return "1" * leading_zeros + "".join(reversed(digits))


def base58_decode(text: str) -> bytes:
    number = 0
    for char in text:
        digit = _BASE58_INDEX.get(char)
        if digit is None:
            raise AddressCodecError(f"invalid base58 character: {char!r}")
        number = number * 58 + digit

    leading_ones = len(text) - len(text.lstrip("1"))
    body = number.to_bytes((number.bit_length() + 7) // 8, "big") if number else b""
    return b"\x00" * leading_ones + body


def base58check_encode(version: int, payload: bytes) -> str:
    if not 0 <= version <= 0xFF:
        raise AddressCodecError(f"version byte out of range: {version}")
    data = bytes([version]) + bytes(payload)
    return base58_encode(data + _checksum(data))


def base58check_decode(text: str) -> tuple[int, bytes]:
    raw = base58_decode(text)
    if len(raw) < 1 + CHECKSUM_LENGTH:
        raise AddressCodecError("base58check payload too short")
    data, checksum = raw[:-CHECKSUM_LENGTH], raw[-CHECKSUM_LENGTH:]
    if _checksum(data) != checksum:
        raise AddressCodecError("base58check checksum mismatch")
    return data[0], data[1:]


def to_p2pkh(pubkey_hash: bytes, mainnet: bool = True) -> str:
    version = P2PKH_VERSION_MAINNET if mainnet else P2PKH_VERSION_TESTNET
    return base58check_encode(version, _require_hash160(pubkey_hash))


# Bech32


def bech32_polymod(values: list[int]) -> int:
    chk = 1
    for value in values:
        top = chk >> 25
        chk = ((chk & 0x1FFFFFF) << 5) ^ value
        for i, generator in enumerate(BECH32_GENERATORS):
            if (top >> i) & 1:
                chk ^= generator
    return chk


def bech32_hrp_expand(hrp: str) -> list[int]:
    return [ord(char) >> 5 for char in hrp] + [0] + [ord(char) & 31 for char in hrp]


def bech32_create_checksum(hrp: str, data: list[int]) -> list[int]:
    polymod = bech32_polymod(bech32_hrp_expand(hrp) + data + [0] * 6) ^ BECH32_CONST
    return [(polymod >> 5 * (5 - i)) & 31 for i in range(6)]


def convert_bits(data: bytes | list[int], from_bits: int, to_bits: int, *, pad: bool) -> list[int]:
    acc = 0
    bits = 0
    out: list[int] = []
    max_value = (1 << to_bits) - 1
    for value in data:
        if value < 0 or value >> from_bits:
            raise AddressCodecError(f"value {value} does not fit in {from_bits} bits")
        acc = (acc << from_bits) | value
        bits += from_bits
        while bits >= to_bits:
            bits -= to_bits
            out.append((acc >> bits) & max_value)
    if pad:
        if bits:
            out.append((acc << (to_bits - bits)) & max_value)
    elif bits >= from_bits or (acc << (to_bits - bits)) & max_value:
        raise AddressCodecError("non-zero padding in bech32 data")
    return out


def bech32_encode(hrp: str, data: list[int]) -> str:
    checksum = bech32_create_checksum(hrp, data)
    return hrp + "1" + "".join(BECH32_CHARSET[d] for d in data + checksum)


def bech32_decode(text: str) -> tuple[str, list[int]]:
    if any(ord(char) < 33 or ord(char) > 126 for char in text):
        raise AddressCodecError("bech32 string has out-of-range characters")
    if text.lower() != text and text.upper() != text:
        raise AddressCodecError("bech32 string mixes upper and lower case")
    lowered = text.lower()
    separator = lowered.rfind("1")
    if separator < 1 or separator + 7 > len(lowered) or len(lowered) > 90:
        raise AddressCodecError("bech32 separator position is invalid")
    hrp = lowered[:separator]
    try:
        data = [BECH32_CHARSET.index(char) for char in lowered[separator + 1 :]]
    except ValueError as exc:
        raise AddressCodecError("bech32 data has characters outside the charset") from exc
    if bech32_polymod(bech32_hrp_expand(hrp) + data) != BECH32_CONST:
        raise AddressCodecError("bech32 checksum mismatch")
    return hrp, data[:-6]


def encode_segwit_address(hrp: str, witness_version: int, program: bytes) -> str:
    return bech32_encode(hrp, [witness_version] + convert_bits(program, 8, 5, pad=True))


def decode_segwit_address(address: str) -> tuple[str, int, bytes]:
    hrp, data = bech32_decode(address)
    if not data:
        raise AddressCodecError("segwit address has no witness version")
    witness_version = data[0]
    program = bytes(convert_bits(data[1:], 5, 8, pad=False))
    if witness_version != 0:
        raise AddressCodecError(f"unsupported witness version {witness_version}")
    if len(program) not in (20, 32):
        raise AddressCodecError(f"invalid v0 witness program length {len(program)}")
    return hrp, witness_version, program


def to_p2wpkh(pubkey_hash: bytes, mainnet: bool = True) -> str:
    hrp = HRP_MAINNET if mainnet else HRP_TESTNET
    return encode_segwit_address(hrp, 0, _require_hash160(pubkey_hash))


def pubkey_to_p2pkh(pubkey: bytes, mainnet: bool = True) -> str:
    return to_p2pkh(hash160(pubkey), mainnet)


def pubkey_to_p2wpkh(pubkey: bytes, mainnet: bool = True) -> str:
    return to_p2wpkh(hash160(pubkey), mainnet)


def address_matches_pubkey(address: str, pubkey: bytes, mainnet: bool = True) -> bool:
    """Return whether ``address`` is the P2PKH or P2WPKH encoding of ``pubkey``."""
    if address.lower().startswith((HRP_MAINNET + "1", HRP_TESTNET + "1")):
        return address.lower() == pubkey_to_p2wpkh(pubkey, mainnet)
    return address == pubkey_to_p2pkh(pubkey, mainnet)
