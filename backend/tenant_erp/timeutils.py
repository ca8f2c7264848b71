"""UTC time helpers.

SQLite hands back naive datetimes even for timezone-aware columns, so every
comparison goes through ``as_utc``.
"""
from __future__ import annotations

import math
from datetime import datetime, timezone


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(dt: datetime | None) -> datetime | None:
    if dt is None:
        return None
    if dt.tzinfo is None or dt.tzinfo.utcoffset(dt) is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def minutes_until(deadline: datetime, now: datetime) -> int:
    """Whole minutes left until ``deadline``, rounded up, never below 1."""
    remaining = (as_utc(deadline) - as_utc(now)).total_seconds()
    return max(1, math.ceil(remaining / 60))
