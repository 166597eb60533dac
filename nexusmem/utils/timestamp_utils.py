"""
Timestamp utilities for memory ordering.
"""

import time
from datetime import datetime
from typing import Optional


def now_millis() -> int:
    """Current wall-clock time in milliseconds since the epoch."""
    return int(time.time() * 1000)


def next_timestamp(previous: Optional[int] = None) -> int:
    """Return a millisecond timestamp strictly greater than ``previous``.

    Memories created within the same millisecond still get distinct, increasing
    timestamps, so insertion order survives a sort by timestamp.

    Args:
        previous: Last timestamp handed out (optional)

    Returns:
        Millisecond timestamp
    """
    current = now_millis()
    if previous is not None and current <= previous:
        return previous + 1
    return current


def to_datetime(timestamp_ms: Optional[int] = None) -> datetime:
    """Convert a millisecond timestamp to a datetime object.

    Args:
        timestamp_ms: Unix timestamp in milliseconds (optional, uses current time if None)

    Returns:
        datetime object
    """
    if timestamp_ms is None:
        timestamp_ms = now_millis()
    return datetime.fromtimestamp(timestamp_ms / 1000)
