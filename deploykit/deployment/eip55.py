"""Ethereum address parsing and EIP-55 checksum formatting."""

from __future__ import annotations

from Crypto.Hash import keccak

_ADDRESS_LENGTH = 20
_HEX_DIGITS = frozenset("0123456789abcdefABCDEF")


def _strip_prefix(value: str) -> str:
    if value[:2] in ("0x", "0X"):
        return value[2:]
    return value


def is_hex_address(address: str) -> bool:
    """Return whether the string is a 20-byte hex address, with or without 0x."""
    body = _strip_prefix(address)
    return len(body) == 2 * _ADDRESS_LENGTH and all(c in _HEX_DIGITS for c in body)


def _decode_leading_hex(digits: str) -> bytes:
    if len(digits) % 2:
        digits = "0" + digits
    out = bytearray()
    for hi, lo in zip(digits[0::2], digits[1::2]):
        if hi not in _HEX_DIGITS or lo not in _HEX_DIGITS:
            break
        out.append(int(hi + lo, 16))
    return bytes(out)


def _checksum(raw: bytes) -> str:
    lower = raw.hex()
    digest = keccak.new(digest_bits=256, data=lower.encode("ascii")).hexdigest()
    chars = (
        c.upper() if c.isalpha() and int(nibble, 16) >= 8 else c
        for c, nibble in zip(lower, digest)
    )
    return "0x" + "".join(chars)


def hex_to_address(value: str) -> str:
    """Interpret a hex string as an address and return it in EIP-55 form.

    Longer input keeps its last 20 bytes, shorter input is left-padded with
    zeros, and decoding stops at the first invalid hex pair.
    """
    raw = _decode_leading_hex(_strip_prefix(value))
    raw = raw[-_ADDRESS_LENGTH:].rjust(_ADDRESS_LENGTH, b"\x00")
    return _checksum(raw)


def zero_address() -> str:
    return _checksum(bytes(_ADDRESS_LENGTH))