"""Day-boundary helpers shared by the progress engine."""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import Iterator, Optional
from zoneinfo import ZoneInfo

PERIOD_DAYS = {"daily": 1, "weekly": 7, "monthly": 30}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_aware_utc(value: datetime) -> datetime:
    """Treat naive timestamps as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def local_day(value: datetime, tz_name: str) -> date:
    """Calendar day of ``value`` on a wall clock in ``tz_name``."""
    return as_aware_utc(value).astimezone(ZoneInfo(tz_name)).date()


def today_in(tz_name: str) -> date:
    return local_day(utcnow(), tz_name)


def iter_days(start: date, end: date) -> Iterator[date]:
    """Inclusive range of days; empty when ``end < start``."""
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)


def period_start(as_of: date, period: str) -> Optional[date]:
    """First day of a scoring window ending on ``as_of``; None for all time."""
    if period == "all_time":
        return None
    try:
        span = PERIOD_DAYS[period]
    except KeyError:
        raise ValueError("invalid_period") from None
    return as_of - timedelta(days=span - 1)
