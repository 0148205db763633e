"""Cache key hashing.

``hash_key`` is a 32-bit rolling hash (``h * 31 + byte``) rendered as a
zero-padded base36 string.  It is fast and stable across processes, but it
is not collision resistant: two URLs that collide share a cache slot.
"""

from __future__ import annotations

_ALPHABET = "0123456789abcdefghijklmnopqrstuvwxyz"

#: abs() of any signed 32-bit value fits in 6 base36 digits (36**6 > 2**31).
KEY_WIDTH = 6


def _to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_ALPHABET[rem])
    return "".join(reversed(digits))


def hash_key(subject: str) -> str:
    """Return the fixed-width cache key for *subject*."""
    h = 0
    for byte in subject.encode("utf-8"):
        h = ((h << 5) - h + byte) & 0xFFFFFFFF
    if h >= 0x80000000:
        h -= 0x100000000
    return _to_base36(abs(h)).rjust(KEY_WIDTH, "0")
