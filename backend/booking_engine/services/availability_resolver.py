"""
Availability resolution: weekly rules + date overrides -> concrete open
intervals per calendar date.

Pure functions only. Callers load the rows (ORM objects or anything with
the same attributes) and pass them in; nothing here touches the database,
so the same code backs the booking path, the slot listing and the tests.

Resolution for one date:
  1. Start from the rules whose day_of_week matches the date.
  2. Add every `available` override covering the date (whole day when it
     has no minutes). These may fall outside the weekly hours.
  3. Merge overlapping / touching intervals.
  4. Subtract every `blocked` override covering the date (whole day when
     it has no minutes). Blocked always wins over available.
  5. Drop anything that became zero-length.
"""

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Iterable, Optional, Protocol, Sequence

from booking_engine.core.clock import at_minute

MINUTES_PER_DAY = 24 * 60

BLOCK_AVAILABLE = "available"
BLOCK_BLOCKED = "blocked"


class RuleLike(Protocol):
    day_of_week: int
    start_minute: int
    end_minute: int


class OverrideLike(Protocol):
    block_type: str
    start_date: date
    end_date: Optional[date]
    start_minute: Optional[int]
    end_minute: Optional[int]


@dataclass(frozen=True)
class ResolvedInterval:
    trainer_id: int
    date: date
    start_minute: int
    end_minute: int

    @property
    def starts_at(self) -> datetime:
        return at_minute(self.date, self.start_minute)

    @property
    def ends_at(self) -> datetime:
        return at_minute(self.date, self.end_minute)

    def covers(self, start: datetime, end: datetime) -> bool:
        """Exact containment of an absolute range, down to the microsecond."""
        return self.starts_at <= start and end <= self.ends_at


def day_of_week(day: date) -> int:
    """0=Sunday ... 6=Saturday."""
    return (day.weekday() + 1) % 7


def iter_dates(start: date, end: date) -> Iterable[date]:
    """Inclusive date range."""
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)


def override_applies(override: OverrideLike, day: date) -> bool:
    last = override.end_date or override.start_date
    return override.start_date <= day <= last


def override_window(override: OverrideLike) -> tuple[int, int]:
    if override.start_minute is None or override.end_minute is None:
        return 0, MINUTES_PER_DAY
    return override.start_minute, override.end_minute


def merge(windows: Iterable[tuple[int, int]]) -> list[tuple[int, int]]:
    """Sort and coalesce overlapping or touching [start, end) windows."""
    merged: list[tuple[int, int]] = []
    for start, end in sorted(w for w in windows if w[0] < w[1]):
        if merged and start <= merged[-1][1]:
            last_start, last_end = merged[-1]
            merged[-1] = (last_start, max(last_end, end))
        else:
            merged.append((start, end))
    return merged


def subtract(windows: Sequence[tuple[int, int]], cut: tuple[int, int]) -> list[tuple[int, int]]:
    """Remove `cut` from every window, splitting or truncating as needed."""
    cut_start, cut_end = cut
    result = []
    for start, end in windows:
        if cut_end <= start or end <= cut_start:
            result.append((start, end))
            continue
        if start < cut_start:
            result.append((start, cut_start))
        if cut_end < end:
            result.append((cut_end, end))
    return [w for w in result if w[0] < w[1]]


def resolve_day(
    trainer_id: int,
    day: date,
    rules: Iterable[RuleLike],
    overrides: Iterable[OverrideLike],
) -> list[ResolvedInterval]:
    dow = day_of_week(day)
    todays_overrides = [o for o in overrides if override_applies(o, day)]

    windows = [(r.start_minute, r.end_minute) for r in rules if r.day_of_week == dow]
    windows.extend(
        override_window(o) for o in todays_overrides if o.block_type == BLOCK_AVAILABLE
    )
    windows = merge(windows)

    for override in todays_overrides:
        if override.block_type == BLOCK_BLOCKED:
            windows = subtract(windows, override_window(override))

    return [ResolvedInterval(trainer_id, day, start, end) for start, end in windows]


def resolve(
    trainer_id: int,
    start_date: date,
    end_date: date,
    rules: Sequence[RuleLike],
    overrides: Sequence[OverrideLike],
) -> list[ResolvedInterval]:
    """Resolve every date in [start_date, end_date] (inclusive)."""
    intervals: list[ResolvedInterval] = []
    for day in iter_dates(start_date, end_date):
        intervals.extend(resolve_day(trainer_id, day, rules, overrides))
    return intervals


def covering_interval(
    intervals: Iterable[ResolvedInterval],
    start: datetime,
    end: datetime,
) -> Optional[ResolvedInterval]:
    for interval in intervals:
        if interval.covers(start, end):
            return interval
    return None


def candidate_starts(
    intervals: Iterable[ResolvedInterval],
    duration_minutes: int,
    step_minutes: int,
) -> list[tuple[date, int]]:
    """Step-aligned start minutes whose whole duration fits in an interval."""
    starts = []
    for interval in intervals:
        first = -(-interval.start_minute // step_minutes) * step_minutes
        for minute in range(first, interval.end_minute - duration_minutes + 1, step_minutes):
            starts.append((interval.date, minute))
    return starts
