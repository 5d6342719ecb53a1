"""
Booking endpoints: creation and lifecycle transitions.

Writes commit before the slot cache is invalidated and before any
notification is queued, so neither ever describes uncommitted state.
"""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from booking_engine.core.errors import AlreadySettled
from booking_engine.core.logging import get_logger
from booking_engine.db.session import get_db
from booking_engine.models.booking import Booking, BookingStatus
from booking_engine.schemas.booking import (
    BookingCreate,
    BookingResponse,
    CancellationPolicyResponse,
    CancelRequest,
    ConfirmRequest,
    NoShowRequest,
)
from booking_engine.services import booking_service
from booking_engine.services.cache_service import invalidate_trainer_slots
from booking_engine.services.interfaces.notifier import BookingNotification
from booking_engine.services.notification_service import dispatch_safely

logger = get_logger(__name__)
router = APIRouter(prefix="/bookings", tags=["Bookings"])


async def _after_write(
    db: AsyncSession,
    booking: Booking,
    background_tasks: BackgroundTasks,
    notify: Optional[str] = None,
) -> Booking:
    await db.commit()
    await invalidate_trainer_slots(booking.trainer_id)
    if notify:
        background_tasks.add_task(dispatch_safely, BookingNotification.from_booking(notify, booking))
    return booking


@router.post("/", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
async def create_booking(
    booking_data: BookingCreate,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
):
    """
    Book a session with a trainer.

    Self-booked sessions start as a soft-hold that expires unless confirmed;
    trainer-confirmed sessions start confirmed. Overlapping requests for one
    trainer are serialized through the trainer's schedule version; the loser
    gets a 409 and should re-query open slots.
    """
    booking = await booking_service.create_booking(
        db,
        trainer_id=booking_data.trainer_id,
        client_id=booking_data.client_id,
        service_id=booking_data.service_id,
        scheduled_at=booking_data.scheduled_at,
        mode=booking_data.mode,
        studio_id=booking_data.studio_id,
        notes=booking_data.notes,
    )
    notify = "confirmed" if booking.status == BookingStatus.CONFIRMED else None
    return await _after_write(db, booking, background_tasks, notify)


@router.get("/", response_model=list[BookingResponse])
async def list_bookings(
    trainer_id: Optional[int] = Query(default=None),
    client_id: Optional[int] = Query(default=None),
    start: Optional[datetime] = Query(default=None),
    end: Optional[datetime] = Query(default=None),
    booking_status: Optional[str] = Query(default=None, alias="status"),
    db: AsyncSession = Depends(get_db),
):
    """A trainer's bookings in a time range, or a client's bookings."""
    if booking_status is not None and booking_status not in BookingStatus.ALL:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"Unknown status '{booking_status}'",
        )
    if trainer_id is not None:
        return await booking_service.list_trainer_bookings(db, trainer_id, start, end, booking_status)
    if client_id is not None:
        return await booking_service.list_client_bookings(db, client_id, booking_status)
    raise HTTPException(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        detail="trainer_id or client_id is required",
    )


@router.get("/{booking_id}", response_model=BookingResponse)
async def get_booking(booking_id: int, db: AsyncSession = Depends(get_db)):
    return await booking_service.get_booking(db, booking_id)


@router.post("/{booking_id}/confirm", response_model=BookingResponse)
async def confirm_booking(
    booking_id: int,
    background_tasks: BackgroundTasks,
    body: Optional[ConfirmRequest] = None,
    db: AsyncSession = Depends(get_db),
):
    """Confirm a soft-hold. Paid services need `payment_cleared: true`."""
    payment_cleared = body.payment_cleared if body else False
    booking = await booking_service.confirm_booking(db, booking_id, payment_cleared=payment_cleared)
    return await _after_write(db, booking, background_tasks, "confirmed")


@router.post("/{booking_id}/check-in", response_model=BookingResponse)
async def check_in_booking(
    booking_id: int,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
):
    booking = await booking_service.check_in_booking(db, booking_id)
    return await _after_write(db, booking, background_tasks)


@router.post("/{booking_id}/complete", response_model=BookingResponse)
async def complete_booking(
    booking_id: int,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
):
    """
    Complete a session and debit the client's credits.

    Retrying an already-completed booking returns it unchanged (no second
    debit). Insufficient credits return 402 and leave the booking as it was.
    """
    try:
        booking = await booking_service.complete_booking(db, booking_id)
    except AlreadySettled:
        await db.rollback()
        logger.info("booking_complete_replayed", booking_id=booking_id)
        return await booking_service.get_booking(db, booking_id)
    return await _after_write(db, booking, background_tasks, "completed")


@router.post("/{booking_id}/cancel", response_model=BookingResponse)
async def cancel_booking(
    booking_id: int,
    background_tasks: BackgroundTasks,
    body: Optional[CancelRequest] = None,
    db: AsyncSession = Depends(get_db),
):
    """
    Cancel a booking and release the slot.

    Refunds are the caller's decision: check
    `GET /bookings/{id}/cancellation-policy` first, then pass `refund: true`
    to return its tiered share of a recorded debit, or `refund_amount` to
    return a specific amount.
    """
    body = body or CancelRequest()
    booking = await booking_service.cancel_booking(
        db, booking_id, reason=body.reason, refund=body.refund, refund_amount=body.refund_amount
    )
    return await _after_write(db, booking, background_tasks, "cancelled")


@router.post("/{booking_id}/no-show", response_model=BookingResponse)
async def mark_no_show(
    booking_id: int,
    background_tasks: BackgroundTasks,
    body: Optional[NoShowRequest] = None,
    db: AsyncSession = Depends(get_db),
):
    billable = body.billable if body else False
    booking = await booking_service.mark_no_show(db, booking_id, billable=billable)
    return await _after_write(db, booking, background_tasks)


@router.get("/{booking_id}/cancellation-policy", response_model=CancellationPolicyResponse)
async def cancellation_policy(booking_id: int, db: AsyncSession = Depends(get_db)):
    booking = await booking_service.get_booking(db, booking_id)
    policy = await booking_service.evaluate_cancellation(db, booking)
    return CancellationPolicyResponse(
        booking_id=booking.id,
        late=policy.late,
        hours_before_start=policy.hours_before_start,
        window_hours=policy.window_hours,
        debited=policy.debited,
        debited_amount=policy.debited_amount,
        already_refunded=policy.already_refunded,
        refund_percent=policy.refund_percent,
        refund_amount=policy.refund_amount,
        refund_eligible=policy.refund_eligible,
    )
