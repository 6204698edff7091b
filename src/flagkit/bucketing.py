"""Deterministic percentage bucketing.

The hash is djb2 with XOR mixing over UTF-16 code units, wrapped to a
signed 32-bit integer after every multiply. It must stay bit-for-bit
identical to the JavaScript SDK so that every SDK places a user in the
same bucket.
"""

from __future__ import annotations

_SEED = 5381
_MASK = 0xFFFFFFFF
_SIGN = 0x80000000


def _utf16_code_units(key: str) -> list[int]:
    data = key.encode("utf-16-le", "surrogatepass")
    return [int.from_bytes(data[i : i + 2], "little") for i in range(0, len(data), 2)]


def hash_to_percentage(key: str) -> int:
    """Map a key to a stable bucket in ``[0, 100)``."""
    h = _SEED
    for code in _utf16_code_units(key):
        h = ((h * 33) & _MASK) ^ code
        if h & _SIGN:
            h -= 1 << 32
    return abs(h) % 100


def is_in_rollout(flag_key: str, identity: str | None, percentage: float) -> bool:
    """Return whether ``identity`` falls inside a ``percentage`` rollout of a flag.

    Raising the percentage only ever adds identities to the rollout.
    """
    if not identity or percentage <= 0:
        return False
    if percentage >= 100:
        return True
    return hash_to_percentage(f"{flag_key}:{identity}") < percentage
