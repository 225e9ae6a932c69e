"""
Time helpers.

All timestamps are naive UTC datetimes, which is what the DateTime columns
store. Services accept a ``clock`` callable so window boundaries can be
pinned in tests.
"""

from __future__ import annotations

from datetime import datetime, time, timedelta, timezone
from typing import Callable

Clock = Callable[[], datetime]

_EPOCH = datetime(1970, 1, 1)


def utcnow() -> datetime:
    """Current time as a naive UTC datetime."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def bucket_floor(value: datetime, bucket_seconds: int) -> datetime:
    """Floor a timestamp to the start of its bucket."""
    value = to_naive_utc(value)
    elapsed = value - _EPOCH
    seconds = elapsed.days * 86400 + elapsed.seconds
    return _EPOCH + timedelta(seconds=seconds - seconds % bucket_seconds)


def week_start(value: datetime) -> datetime:
    """Monday 00:00 of the week containing value."""
    value = to_naive_utc(value)
    return datetime.combine(value.date() - timedelta(days=value.weekday()), time.min)
