"""Time-ordered identifiers (RFC 9562 UUID v7).

Disputes are keyed ``urn:dispute:<uuid7>`` so that stored disputes sort
by filing time.

Layout: 48-bit unix_ts_ms | ver(7) | 12-bit rand_a | var(10) | 62-bit rand_b
"""

from __future__ import annotations

import os
import time
import uuid
from typing import Optional


def uuid7(timestamp_ms: Optional[int] = None) -> str:
    """Generate a UUID v7 string, optionally at a given millisecond time."""
    if timestamp_ms is None:
        timestamp_ms = time.time_ns() // 1_000_000

    raw = bytearray(timestamp_ms.to_bytes(6, "big") + os.urandom(10))
    raw[6] = (raw[6] & 0x0F) | 0x70
    raw[8] = (raw[8] & 0x3F) | 0x80
    return str(uuid.UUID(bytes=bytes(raw)))


def uuid7_timestamp_ms(value: str) -> int:
    """Millisecond timestamp embedded in a UUID v7 string.

    Raises:
        ValueError: If ``value`` is not a version 7 UUID.
    """
    parsed = uuid.UUID(value)
    if parsed.version != 7:
        raise ValueError(f"Not a UUID v7: {value}")
    return int.from_bytes(parsed.bytes[:6], "big")
