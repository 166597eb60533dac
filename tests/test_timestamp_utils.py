"""Tests for utils/timestamp_utils.py."""

from datetime import datetime
from unittest.mock import patch

from nexusmem.utils.timestamp_utils import next_timestamp, now_millis, to_datetime


def test_next_timestamp_is_strictly_increasing():
    with patch('nexusmem.utils.timestamp_utils.now_millis', return_value=1_000):
        first = next_timestamp()
        second = next_timestamp(first)
        third = next_timestamp(second)

    assert (first, second, third) == (1_000, 1_001, 1_002)


def test_next_timestamp_follows_clock():
    with patch('nexusmem.utils.timestamp_utils.now_millis', return_value=5_000):
        assert next_timestamp(1_000) == 5_000


def test_to_datetime():
    assert to_datetime(1_700_000_000_000) == datetime.fromtimestamp(1_700_000_000)
    assert abs(to_datetime().timestamp() * 1000 - now_millis()) < 5_000
