# ecoevents/core/clock.py
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

Clock = Callable[[], datetime]

# BSON dates keep milliseconds only; stay on that grid everywhere
_TICK = timedelta(milliseconds=1)

def utcnow() -> datetime:
    now = datetime.now(timezone.utc)
    return now.replace(microsecond=now.microsecond // 1000 * 1000)

def as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)

def later_than(prev: Optional[datetime], now: datetime) -> datetime:
    """`now`, nudged forward so it is strictly after `prev`."""
    if prev is not None and now <= prev:
        return prev + _TICK
    return now
