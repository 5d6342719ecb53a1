"""
Availability endpoints: weekly rules, date overrides, resolved hours and
the open-slot listing.
"""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from booking_engine.core.config import get_settings
from booking_engine.db.session import get_db
from booking_engine.schemas.availability import (
    OpenSlotsResponse,
    OverrideCreate,
    OverrideResponse,
    ResolvedAvailabilityResponse,
    ResolvedIntervalResponse,
    RuleCreate,
    RuleResponse,
    RuleUpdate,
)
from booking_engine.services import availability_service
from booking_engine.services.cache_service import invalidate_trainer_slots

router = APIRouter(prefix="/availability", tags=["Availability"])
settings = get_settings()

MAX_RESOLVE_DAYS = 62


@router.get("/{trainer_id}/rules", response_model=list[RuleResponse])
async def list_rules(trainer_id: int, db: AsyncSession = Depends(get_db)):
    return await availability_service.list_rules(db, trainer_id)


@router.post("/{trainer_id}/rules", response_model=RuleResponse, status_code=status.HTTP_201_CREATED)
async def create_rule(trainer_id: int, rule_data: RuleCreate, db: AsyncSession = Depends(get_db)):
    rule = await availability_service.create_rule(
        db,
        trainer_id,
        rule_data.day_of_week,
        rule_data.start_minute,
        rule_data.end_minute,
        studio_id=rule_data.studio_id,
    )
    await db.commit()
    await invalidate_trainer_slots(trainer_id)
    return rule


@router.post("/{trainer_id}/rules/defaults", response_model=list[RuleResponse])
async def seed_default_rules(trainer_id: int, db: AsyncSession = Depends(get_db)):
    """Give a trainer with no weekly rules the studio's default hours."""
    rules = await availability_service.seed_default_rules(db, trainer_id)
    await db.commit()
    await invalidate_trainer_slots(trainer_id)
    return rules


@router.patch("/rules/{rule_id}", response_model=RuleResponse)
async def update_rule(rule_id: int, rule_data: RuleUpdate, db: AsyncSession = Depends(get_db)):
    rule = await availability_service.update_rule(
        db,
        rule_id,
        day_of_week=rule_data.day_of_week,
        start_minute=rule_data.start_minute,
        end_minute=rule_data.end_minute,
    )
    await db.commit()
    await invalidate_trainer_slots(rule.trainer_id)
    return rule


@router.delete("/rules/{rule_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_rule(rule_id: int, db: AsyncSession = Depends(get_db)):
    rule = await availability_service.delete_rule(db, rule_id)
    await db.commit()
    await invalidate_trainer_slots(rule.trainer_id)


@router.get("/{trainer_id}/overrides", response_model=list[OverrideResponse])
async def list_overrides(
    trainer_id: int,
    start_date: Optional[date] = Query(default=None),
    end_date: Optional[date] = Query(default=None),
    db: AsyncSession = Depends(get_db),
):
    return await availability_service.list_overrides(db, trainer_id, start_date, end_date)


@router.post("/{trainer_id}/overrides", response_model=OverrideResponse, status_code=status.HTTP_201_CREATED)
async def create_override(trainer_id: int, override_data: OverrideCreate, db: AsyncSession = Depends(get_db)):
    """Open extra hours (`available`) or block time off (`blocked`) on specific dates."""
    override = await availability_service.create_override(
        db,
        trainer_id,
        override_data.block_type,
        override_data.start_date,
        end_date=override_data.end_date,
        start_minute=override_data.start_minute,
        end_minute=override_data.end_minute,
        reason=override_data.reason,
        studio_id=override_data.studio_id,
    )
    await db.commit()
    await invalidate_trainer_slots(trainer_id)
    return override


@router.delete("/overrides/{override_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_override(override_id: int, db: AsyncSession = Depends(get_db)):
    override = await availability_service.delete_override(db, override_id)
    await db.commit()
    await invalidate_trainer_slots(override.trainer_id)


@router.get("/{trainer_id}/resolved", response_model=ResolvedAvailabilityResponse)
async def resolved_availability(
    trainer_id: int,
    start_date: date = Query(...),
    end_date: date = Query(...),
    db: AsyncSession = Depends(get_db),
):
    """Concrete open intervals per date after applying overrides."""
    if end_date < start_date:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="end_date must not be before start_date",
        )
    if (end_date - start_date).days >= MAX_RESOLVE_DAYS:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"Range is limited to {MAX_RESOLVE_DAYS} days",
        )
    intervals = await availability_service.resolve(db, trainer_id, start_date, end_date)
    return ResolvedAvailabilityResponse(
        trainer_id=trainer_id,
        start_date=start_date,
        end_date=end_date,
        intervals=[ResolvedIntervalResponse.model_validate(i) for i in intervals],
    )


@router.get("/{trainer_id}/slots", response_model=OpenSlotsResponse)
async def open_slots(
    trainer_id: int,
    day: date = Query(..., alias="date"),
    duration: int = Query(..., gt=0, le=1440),
    step: Optional[int] = Query(default=None, gt=0, le=240),
    db: AsyncSession = Depends(get_db),
):
    """
    Start times that are currently bookable for `duration` minutes.

    Advisory: a listed slot can still be taken by someone else before the
    booking request lands.
    """
    step_minutes = step or settings.SLOT_STEP_MINUTES
    slots = await availability_service.open_slots(db, trainer_id, day, duration, step_minutes)
    return OpenSlotsResponse(
        trainer_id=trainer_id,
        date=day,
        duration_minutes=duration,
        step_minutes=step_minutes,
        slots=slots,
    )
