"""Time-ordered identifier generation.

Identifiers follow the UUID version 7 layout: the first 48 bits hold the Unix
time in milliseconds (big-endian), followed by the version nibble, 12 random
bits, the RFC 4122 variant and 62 more random bits. Identifiers created in a later
millisecond compare greater.

Randomness is drawn from :func:`os.urandom` on every call, so the generator
holds no shared state and may be called from any number of threads.
"""

from __future__ import annotations

import datetime as dt
import os
import time
import uuid

__all__ = ["id_timestamp", "new_id"]

_VERSION = 0x7
_VARIANT = 0b10


def new_id() -> uuid.UUID:
    """Return a new time-ordered :class:`uuid.UUID`."""

    timestamp_ms = time.time_ns() // 1_000_000
    rand = int.from_bytes(os.urandom(10), "big")

    rand_a = rand >> 68  # 12 bits
    rand_b = rand & ((1 << 62) - 1)

    value = (timestamp_ms & ((1 << 48) - 1)) << 80
    value |= _VERSION << 76
    value |= rand_a << 64
    value |= _VARIANT << 62
    value |= rand_b
    return uuid.UUID(int=value)


def id_timestamp(value: uuid.UUID) -> dt.datetime:
    """Return the UTC creation time embedded in an identifier from :func:`new_id`."""

    timestamp_ms = value.int >> 80
    return dt.datetime.fromtimestamp(timestamp_ms / 1000, tz=dt.timezone.utc)
