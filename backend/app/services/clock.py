from __future__ import annotations
from datetime import datetime, timezone as dt_tz
from typing import Callable

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(dt_tz.utc)


def as_utc(dt: datetime | None) -> datetime | None:
    """Stores without tz support hand back naive datetimes; treat those as UTC."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=dt_tz.utc)
    return dt.astimezone(dt_tz.utc)


def within_window(now: datetime, start: datetime | None, end: datetime | None) -> bool:
    """Inclusive [start, end]; a missing bound is open-ended."""
    start, end = as_utc(start), as_utc(end)
    if start is not None and now < start:
        return False
    if end is not None and now > end:
        return False
    return True
