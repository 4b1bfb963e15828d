from __future__ import annotations

import os
import threading
import time
import uuid

_lock = threading.Lock()
_last_ms = 0


def _next_timestamp_ms() -> int:
    # Never step backwards, so ids minted in one process sort by creation.
    global _last_ms
    with _lock:
        now = int(time.time() * 1000)
        _last_ms = max(now, _last_ms)
        return _last_ms


def generate_uuid7() -> str:
    """
    Time-ordered UUIDv7 string used as primary key for every table:
    48-bit millisecond timestamp, version nibble 7, RFC 4122 variant, and
    random bits for the rest.
    """
    raw = bytearray(_next_timestamp_ms().to_bytes(6, "big") + os.urandom(10))
    raw[6] = (raw[6] & 0x0F) | 0x70
    raw[8] = (raw[8] & 0x3F) | 0x80
    return str(uuid.UUID(bytes=bytes(raw)))

