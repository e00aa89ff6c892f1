"""Key hashing used to place probes into partitions.

A key is hashed with SipHash-1-3 (zero key) over its UTF-8 bytes followed by
a 0xFF terminator. The 64-bit digest is then hashed again with FNV-1a over
its little-endian bytes.
"""

from __future__ import annotations

import struct

_MASK64 = (1 << 64) - 1
_FNV_OFFSET = 0xCBF29CE484222325
_FNV_PRIME = 0x100000001B3
_STR_TERMINATOR = b"\xff"


def _rotl(value: int, bits: int) -> int:
    return ((value << bits) | (value >> (64 - bits))) & _MASK64


def _sip_round(v0: int, v1: int, v2: int, v3: int) -> tuple[int, int, int, int]:
    v0 = (v0 + v1) & _MASK64
    v1 = _rotl(v1, 13) ^ v0
    v0 = _rotl(v0, 32)
    v2 = (v2 + v3) & _MASK64
    v3 = _rotl(v3, 16) ^ v2
    v0 = (v0 + v3) & _MASK64
    v3 = _rotl(v3, 21) ^ v0
    v2 = (v2 + v1) & _MASK64
    v1 = _rotl(v1, 17) ^ v2
    v2 = _rotl(v2, 32)
    return v0, v1, v2, v3


def siphash13(data: bytes) -> int:
    """Return the SipHash-1-3 digest of ``data`` under an all-zero key."""
    data = bytes(data)
    v0 = 0x736F6D6570736575
    v1 = 0x646F72616E646F6D
    v2 = 0x6C7967656E657261
    v3 = 0x7465646279746573

    body_len = len(data) - len(data) % 8
    for (block,) in struct.iter_unpack("<Q", data[:body_len]):
        v3 ^= block
        v0, v1, v2, v3 = _sip_round(v0, v1, v2, v3)
        v0 ^= block

    last = ((len(data) & 0xFF) << 56) | int.from_bytes(data[body_len:], "little")
    v3 ^= last
    v0, v1, v2, v3 = _sip_round(v0, v1, v2, v3)
    v0 ^= last

    v2 ^= 0xFF
    for _ in range(3):
        v0, v1, v2, v3 = _sip_round(v0, v1, v2, v3)
    return v0 ^ v1 ^ v2 ^ v3


def fnv1a64(data: bytes) -> int:
    """Return the 64-bit FNV-1a hash of ``data``."""
    result = _FNV_OFFSET
    for byte in bytes(data):
        result = ((result ^ byte) * _FNV_PRIME) & _MASK64
    return result


def hash_key(key: str) -> int:
    """Hash a probe id into an unsigned 64-bit value."""
    digest = siphash13(key.encode("utf-8") + _STR_TERMINATOR)
    return fnv1a64(digest.to_bytes(8, "little"))