"""
Time helpers. All timestamps are stored in UTC; calendar dates and minutes
of day are computed in the studio timezone.
"""

from datetime import date, datetime, time, timedelta, timezone
from functools import lru_cache
from zoneinfo import ZoneInfo

from booking_engine.core.config import get_settings


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Normalize a datetime to aware UTC. Naive values are assumed UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@lru_cache()
def studio_zone() -> ZoneInfo:
    return ZoneInfo(get_settings().STUDIO_TIMEZONE)


def local_date(value: datetime) -> date:
    return as_utc(value).astimezone(studio_zone()).date()


def local_day_bounds(day: date) -> tuple[datetime, datetime]:
    """UTC [start, end) of a calendar day in the studio timezone."""
    zone = studio_zone()
    start = datetime.combine(day, time.min, tzinfo=zone)
    end = datetime.combine(day + timedelta(days=1), time.min, tzinfo=zone)
    return start.astimezone(timezone.utc), end.astimezone(timezone.utc)


def at_minute(day: date, minute: int) -> datetime:
    """Absolute UTC timestamp for `minute` minutes into `day` (studio zone)."""
    start = datetime.combine(day, time.min, tzinfo=studio_zone())
    return (start + timedelta(minutes=minute)).astimezone(timezone.utc)
