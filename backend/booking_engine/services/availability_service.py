"""
Availability service: rule/override writes, live resolution and the
open-slot listing.

Malformed windows are rejected here, at write time. The resolver itself
trusts what it is given and never fails.
"""

from datetime import date, datetime
from typing import Optional

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from booking_engine.core.clock import as_utc, at_minute
from booking_engine.core.config import get_settings
from booking_engine.core.errors import InvalidAvailability, NotFound
from booking_engine.core.logging import get_logger
from booking_engine.db.upsert import insert_or_ignore
from booking_engine.models.availability import AvailabilityOverride, AvailabilityRule, TrainerSchedule
from booking_engine.services import availability_resolver
from booking_engine.services.availability_resolver import (
    BLOCK_AVAILABLE,
    BLOCK_BLOCKED,
    MINUTES_PER_DAY,
    ResolvedInterval,
)
from booking_engine.services.cache_service import get_cached_slots, set_cached_slots

logger = get_logger(__name__)
settings = get_settings()

# Mon-Fri 06:00-20:00 with a 12:00-13:00 break, Sat 07:00-12:00
DEFAULT_WEEKLY_HOURS = [
    *((dow, 6 * 60, 12 * 60) for dow in range(1, 6)),
    *((dow, 13 * 60, 20 * 60) for dow in range(1, 6)),
    (6, 7 * 60, 12 * 60),
]


def validate_window(start_minute: Optional[int], end_minute: Optional[int], whole_day_allowed: bool = False) -> None:
    if start_minute is None and end_minute is None and whole_day_allowed:
        return
    if start_minute is None or end_minute is None:
        raise InvalidAvailability(
            "start_minute and end_minute must be given together",
            start_minute=start_minute,
            end_minute=end_minute,
        )
    if not (0 <= start_minute < end_minute <= MINUTES_PER_DAY):
        raise InvalidAvailability(
            f"Invalid window {start_minute}-{end_minute}: need 0 <= start < end <= {MINUTES_PER_DAY}",
            start_minute=start_minute,
            end_minute=end_minute,
        )


async def ensure_schedule(db: AsyncSession, trainer_id: int, studio_id: Optional[int] = None) -> None:
    await insert_or_ignore(
        db,
        TrainerSchedule,
        {"trainer_id": trainer_id, "studio_id": studio_id, "version": 1},
        ["trainer_id"],
    )


async def get_schedule(db: AsyncSession, trainer_id: int) -> Optional[TrainerSchedule]:
    result = await db.execute(
        select(TrainerSchedule)
        .where(TrainerSchedule.trainer_id == trainer_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


# ---------------------------------------------------------------------------
# Weekly rules
# ---------------------------------------------------------------------------

async def list_rules(db: AsyncSession, trainer_id: int) -> list[AvailabilityRule]:
    result = await db.execute(
        select(AvailabilityRule)
        .where(AvailabilityRule.trainer_id == trainer_id)
        .order_by(AvailabilityRule.day_of_week, AvailabilityRule.start_minute)
    )
    return list(result.scalars().all())


async def _check_rule_overlap(
    db: AsyncSession,
    trainer_id: int,
    day_of_week: int,
    start_minute: int,
    end_minute: int,
    exclude_id: Optional[int] = None,
) -> None:
    query = select(AvailabilityRule).where(
        AvailabilityRule.trainer_id == trainer_id,
        AvailabilityRule.day_of_week == day_of_week,
        AvailabilityRule.start_minute < end_minute,
        AvailabilityRule.end_minute > start_minute,
    )
    if exclude_id is not None:
        query = query.where(AvailabilityRule.id != exclude_id)
    clash = (await db.execute(query)).scalars().first()
    if clash:
        raise InvalidAvailability(
            "Rule overlaps an existing rule on the same day",
            trainer_id=trainer_id,
            day_of_week=day_of_week,
            existing_rule_id=clash.id,
        )


async def create_rule(
    db: AsyncSession,
    trainer_id: int,
    day_of_week: int,
    start_minute: int,
    end_minute: int,
    studio_id: Optional[int] = None,
) -> AvailabilityRule:
    if not 0 <= day_of_week <= 6:
        raise InvalidAvailability("day_of_week must be 0 (Sun) .. 6 (Sat)", day_of_week=day_of_week)
    validate_window(start_minute, end_minute)
    await ensure_schedule(db, trainer_id, studio_id)
    await _check_rule_overlap(db, trainer_id, day_of_week, start_minute, end_minute)

    rule = AvailabilityRule(
        trainer_id=trainer_id,
        day_of_week=day_of_week,
        start_minute=start_minute,
        end_minute=end_minute,
    )
    db.add(rule)
    await db.flush()
    await db.refresh(rule)

    logger.info(
        "availability_rule_created",
        rule_id=rule.id,
        trainer_id=trainer_id,
        day_of_week=day_of_week,
        start_minute=start_minute,
        end_minute=end_minute,
    )
    return rule


async def get_rule(db: AsyncSession, rule_id: int) -> AvailabilityRule:
    rule = await db.get(AvailabilityRule, rule_id)
    if not rule:
        raise NotFound(f"Availability rule {rule_id} not found", rule_id=rule_id)
    return rule


async def update_rule(
    db: AsyncSession,
    rule_id: int,
    day_of_week: Optional[int] = None,
    start_minute: Optional[int] = None,
    end_minute: Optional[int] = None,
) -> AvailabilityRule:
    rule = await get_rule(db, rule_id)
    new_dow = rule.day_of_week if day_of_week is None else day_of_week
    new_start = rule.start_minute if start_minute is None else start_minute
    new_end = rule.end_minute if end_minute is None else end_minute

    if not 0 <= new_dow <= 6:
        raise InvalidAvailability("day_of_week must be 0 (Sun) .. 6 (Sat)", day_of_week=new_dow)
    validate_window(new_start, new_end)
    await _check_rule_overlap(db, rule.trainer_id, new_dow, new_start, new_end, exclude_id=rule.id)

    rule.day_of_week = new_dow
    rule.start_minute = new_start
    rule.end_minute = new_end
    await db.flush()
    await db.refresh(rule)

    logger.info("availability_rule_updated", rule_id=rule.id, trainer_id=rule.trainer_id)
    return rule


async def delete_rule(db: AsyncSession, rule_id: int) -> AvailabilityRule:
    rule = await get_rule(db, rule_id)
    await db.delete(rule)
    await db.flush()
    logger.info("availability_rule_deleted", rule_id=rule_id, trainer_id=rule.trainer_id)
    return rule


async def seed_default_rules(db: AsyncSession, trainer_id: int, studio_id: Optional[int] = None) -> list[AvailabilityRule]:
    """Give a trainer with no weekly rules the studio's default hours."""
    existing = await list_rules(db, trainer_id)
    if existing:
        return existing

    await ensure_schedule(db, trainer_id, studio_id)
    for dow, start, end in DEFAULT_WEEKLY_HOURS:
        db.add(AvailabilityRule(trainer_id=trainer_id, day_of_week=dow, start_minute=start, end_minute=end))
    await db.flush()

    logger.info("availability_defaults_seeded", trainer_id=trainer_id, rules=len(DEFAULT_WEEKLY_HOURS))
    return await list_rules(db, trainer_id)


# ---------------------------------------------------------------------------
# Date overrides
# ---------------------------------------------------------------------------

async def list_overrides(
    db: AsyncSession,
    trainer_id: int,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
) -> list[AvailabilityOverride]:
    """Overrides whose [start_date, end_date] span intersects the range."""
    query = select(AvailabilityOverride).where(AvailabilityOverride.trainer_id == trainer_id)
    if end_date is not None:
        query = query.where(AvailabilityOverride.start_date <= end_date)
    if start_date is not None:
        query = query.where(
            or_(
                AvailabilityOverride.end_date >= start_date,
                (AvailabilityOverride.end_date.is_(None)) & (AvailabilityOverride.start_date >= start_date),
            )
        )
    query = query.order_by(AvailabilityOverride.start_date, AvailabilityOverride.id)
    result = await db.execute(query)
    return list(result.scalars().all())


async def create_override(
    db: AsyncSession,
    trainer_id: int,
    block_type: str,
    start_date: date,
    end_date: Optional[date] = None,
    start_minute: Optional[int] = None,
    end_minute: Optional[int] = None,
    reason: Optional[str] = None,
    studio_id: Optional[int] = None,
) -> AvailabilityOverride:
    if block_type not in (BLOCK_AVAILABLE, BLOCK_BLOCKED):
        raise InvalidAvailability(f"Unknown block_type '{block_type}'", block_type=block_type)
    if end_date is not None and end_date < start_date:
        raise InvalidAvailability("end_date is before start_date", start_date=start_date, end_date=end_date)
    validate_window(start_minute, end_minute, whole_day_allowed=True)
    await ensure_schedule(db, trainer_id, studio_id)

    override = AvailabilityOverride(
        trainer_id=trainer_id,
        block_type=block_type,
        start_date=start_date,
        end_date=end_date,
        start_minute=start_minute,
        end_minute=end_minute,
        reason=reason,
    )
    db.add(override)
    await db.flush()
    await db.refresh(override)

    logger.info(
        "availability_override_created",
        override_id=override.id,
        trainer_id=trainer_id,
        block_type=block_type,
        start_date=str(start_date),
        end_date=str(end_date) if end_date else None,
    )
    return override


async def delete_override(db: AsyncSession, override_id: int) -> AvailabilityOverride:
    override = await db.get(AvailabilityOverride, override_id)
    if not override:
        raise NotFound(f"Availability override {override_id} not found", override_id=override_id)
    await db.delete(override)
    await db.flush()
    logger.info("availability_override_deleted", override_id=override_id, trainer_id=override.trainer_id)
    return override


# ---------------------------------------------------------------------------
# Resolution
# ---------------------------------------------------------------------------

async def resolve(
    db: AsyncSession,
    trainer_id: int,
    start_date: date,
    end_date: date,
) -> list[ResolvedInterval]:
    """Open intervals for every date in [start_date, end_date], read live."""
    rules = await list_rules(db, trainer_id)
    overrides = await list_overrides(db, trainer_id, start_date, end_date)
    return availability_resolver.resolve(trainer_id, start_date, end_date, rules, overrides)


async def open_slots(
    db: AsyncSession,
    trainer_id: int,
    day: date,
    duration_minutes: int,
    step_minutes: Optional[int] = None,
) -> list[datetime]:
    """
    Start times on `day` that would currently pass the conflict detector.
    Advisory only: served from Redis when cached.
    """
    # Imported here: conflict_detector imports this module
    from booking_engine.services.conflict_detector import active_bookings_on, overlaps

    step = step_minutes or settings.SLOT_STEP_MINUTES

    cached = await get_cached_slots(trainer_id, day, duration_minutes, step)
    if cached is not None:
        return [datetime.fromisoformat(value) for value in cached]

    intervals = await resolve(db, trainer_id, day, day)
    busy = [
        (as_utc(b.scheduled_at), as_utc(b.ends_at))
        for b in await active_bookings_on(db, trainer_id, day)
    ]

    slots = []
    for slot_day, minute in availability_resolver.candidate_starts(intervals, duration_minutes, step):
        start = at_minute(slot_day, minute)
        end = at_minute(slot_day, minute + duration_minutes)
        if not any(overlaps(start, end, b_start, b_end) for b_start, b_end in busy):
            slots.append(start)

    await set_cached_slots(trainer_id, day, duration_minutes, step, [s.isoformat() for s in slots])
    return slots
