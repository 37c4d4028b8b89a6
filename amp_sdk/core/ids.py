"""Identifier generation.

Trace and span ids follow the W3C trace-context shape: lowercase hex of 16 and 8
random bytes, never all zero. Session ids only need to be unique enough to group
traces, so they are timestamp plus a short random suffix.
"""

from __future__ import annotations

import random
import secrets
import time
from datetime import datetime, timezone


def _random_bytes(length: int) -> bytes:
    try:
        return secrets.token_bytes(length)
    except NotImplementedError:
        # No OS entropy source; ids are still unique in practice but not unpredictable.
        return bytes(random.getrandbits(8) for _ in range(length))


def _non_zero_hex(length: int) -> str:
    while True:
        raw = _random_bytes(length)
        if any(raw):
            return raw.hex()


def generate_id(length: int = 16) -> str:
    """Random lowercase hex string of ``length`` characters."""
    return _random_bytes((length + 1) // 2).hex()[:length]


def generate_trace_id() -> str:
    return _non_zero_hex(16)


def generate_span_id() -> str:
    return _non_zero_hex(8)


def generate_session_id() -> str:
    return f'sess_{int(time.time() * 1000)}_{generate_id(8)}'


def now_iso() -> str:
    """Current UTC time as ISO-8601 with millisecond precision and a ``Z`` suffix."""
    return datetime.now(timezone.utc).isoformat(timespec='milliseconds').replace('+00:00', 'Z')
