"""
Conflict detection for a proposed (trainer, start, duration).

Two checks, in order:
  1. The range must sit entirely inside one resolved open interval for the
     start's calendar date -> otherwise SlotUnavailable.
  2. The range must not overlap any active booking (soft-hold, confirmed,
     checked-in) for the trainer -> otherwise SlotConflict.

Overlap is half-open: [a_start, a_end) and [b_start, b_end) overlap iff
a_start < b_end and b_start < a_end. Back-to-back sessions (one ends at
10:00, the next starts at 10:00) do not conflict.

These checks are only safe when run inside the same transaction as the
insert that follows them; booking_service.create_booking takes care of that
by claiming the trainer's schedule row first.
"""

from datetime import date, datetime, timedelta
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from booking_engine.core.clock import as_utc, local_date, local_day_bounds
from booking_engine.core.errors import SlotConflict, SlotUnavailable
from booking_engine.core.logging import get_logger
from booking_engine.models.booking import Booking, BookingStatus
from booking_engine.services import availability_service
from booking_engine.services.availability_resolver import ResolvedInterval, covering_interval

logger = get_logger(__name__)


def overlaps(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    return a_start < b_end and b_start < a_end


async def active_bookings_on(
    db: AsyncSession,
    trainer_id: int,
    day: date,
    exclude_booking_id: Optional[int] = None,
) -> list[Booking]:
    """Active bookings whose range touches the calendar day."""
    day_start, day_end = local_day_bounds(day)
    query = select(Booking).where(
        Booking.trainer_id == trainer_id,
        Booking.status.in_(BookingStatus.ACTIVE),
        Booking.scheduled_at < day_end,
        Booking.ends_at > day_start,
    )
    if exclude_booking_id is not None:
        query = query.where(Booking.id != exclude_booking_id)
    result = await db.execute(query.order_by(Booking.scheduled_at))
    return list(result.scalars().all())


async def check_available(
    db: AsyncSession,
    trainer_id: int,
    start: datetime,
    duration_minutes: int,
    exclude_booking_id: Optional[int] = None,
) -> ResolvedInterval:
    """
    Return the resolved interval that hosts the range, or raise
    SlotUnavailable / SlotConflict.
    """
    start = as_utc(start)
    end = start + timedelta(minutes=duration_minutes)
    day = local_date(start)
    intervals = await availability_service.resolve(db, trainer_id, day, day)
    interval = covering_interval(intervals, start, end)
    if interval is None:
        logger.info(
            "slot_unavailable",
            trainer_id=trainer_id,
            start=start.isoformat(),
            duration=duration_minutes,
            open_intervals=[(i.start_minute, i.end_minute) for i in intervals],
        )
        raise SlotUnavailable(
            "Requested time is outside the trainer's available hours",
            trainer_id=trainer_id,
            start=start.isoformat(),
            duration_minutes=duration_minutes,
        )

    for existing in await active_bookings_on(db, trainer_id, day, exclude_booking_id):
        if overlaps(start, end, as_utc(existing.scheduled_at), as_utc(existing.ends_at)):
            logger.info(
                "slot_conflict",
                trainer_id=trainer_id,
                start=start.isoformat(),
                duration=duration_minutes,
                conflicting_booking_id=existing.id,
            )
            raise SlotConflict(
                "Requested time overlaps an existing booking",
                trainer_id=trainer_id,
                start=start.isoformat(),
                duration_minutes=duration_minutes,
                conflicting_booking_id=existing.id,
            )

    return interval
