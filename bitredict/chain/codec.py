"""bytes32 encoding of outcome strings.

Outcomes are stored on-chain as UTF-8 bytes right-padded with zeros, and the
pool contract compares them byte for byte.
"""

from __future__ import annotations

from typing import Union

BYTES32_SIZE = 32
ZERO_BYTES32 = b"\x00" * BYTES32_SIZE
ZERO_BYTES32_HEX = "0x" + "00" * BYTES32_SIZE


def encode_bytes32(value: str) -> bytes:
    raw = value.encode("utf-8")
    if len(raw) > BYTES32_SIZE:
        raise ValueError(f"outcome {value!r} is {len(raw)} bytes; bytes32 holds at most {BYTES32_SIZE}")
    return raw.ljust(BYTES32_SIZE, b"\x00")


def decode_bytes32(value: Union[bytes, bytearray, str]) -> str:
    """Decode a bytes32 (raw or 0x-hex) back into its text, dropping trailing zeros."""
    raw = to_bytes(value)
    return raw.rstrip(b"\x00").decode("utf-8", errors="replace")


def to_bytes(value: Union[bytes, bytearray, str]) -> bytes:
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    text = value[2:] if value.startswith(("0x", "0X")) else value
    return bytes.fromhex(text)


def to_hex(value: Union[bytes, bytearray]) -> str:
    return "0x" + bytes(value).hex()


def is_zero(value: Union[bytes, bytearray, str, None]) -> bool:
    if value is None:
        return True
    return not to_bytes(value).strip(b"\x00")


__all__ = [
    "BYTES32_SIZE",
    "ZERO_BYTES32",
    "ZERO_BYTES32_HEX",
    "encode_bytes32",
    "decode_bytes32",
    "to_bytes",
    "to_hex",
    "is_zero",
]
