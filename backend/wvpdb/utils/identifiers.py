from __future__ import annotations

import os
import time
import uuid

_TIMESTAMP_MASK = (1 << 48) - 1
_RANDOM_MASK = (1 << 80) - 1


def generate_uuid7() -> str:
    """
    Time-ordered UUIDv7 string: 48-bit unix milliseconds, then version and
    variant bits over 74 random bits. Primary key default for every table,
    so keyset pages over ids follow insertion order.
    """
    unix_ms = time.time_ns() // 1_000_000
    value = (unix_ms & _TIMESTAMP_MASK) << 80 | int.from_bytes(os.urandom(10), "big") & _RANDOM_MASK
    value = value & ~(0xF << 76) | (0x7 << 76)
    value = value & ~(0x3 << 62) | (0x2 << 62)
    return str(uuid.UUID(int=value))
