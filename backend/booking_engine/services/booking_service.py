"""
Booking service: creation and lifecycle transitions.

CONCURRENCY STRATEGY: Optimistic Locking, twice
================================================

Problem 1 - double-booking:
  Two clients request overlapping times with the same trainer at once.
  Both run the conflict check, both see a free slot, both insert.

Solution:
  Every trainer has one row in trainer_schedules with a `version` column.

  1. Read the schedule's current version
  2. Run the conflict detector (availability + overlapping bookings)
  3. UPDATE trainer_schedules SET version = version + 1
     WHERE trainer_id = :trainer_id AND version = :current_version
  4. If rows_affected == 0, another booking for this trainer got in
     between -> roll back and retry from step 1 (the retry will usually
     end in SlotConflict because it now sees the other booking)
  5. INSERT the booking in the same transaction

  The conditional update makes the store, not the application, decide the
  winner: the second writer blocks on the row lock and then matches zero
  rows. PostgreSQL also carries an exclusion constraint over active
  bookings as the final safety net; tripping it maps to SlotConflict.

Problem 2 - stale transitions:
  The sweeper expires a hold while the client confirms it, or a trainer
  checks in a booking someone just cancelled.

Solution:
  Every transition is a compare-and-swap on status:

    UPDATE bookings SET status = :target
    WHERE id = :id AND status = :status_we_read

  Zero rows affected means somebody else moved the booking first; that is
  an InvalidTransition, not something to retry blindly. The caller re-reads
  and decides again.

Ledger side effects (debit on complete or at booking time when prepaid,
tiered refund on cancel when asked, optional billable no-show) run in the
same transaction as the status change, so completion and billing never
diverge: if the debit fails, the status change rolls back with it.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from booking_engine.core.clock import as_utc, utcnow
from booking_engine.core.config import get_settings
from booking_engine.core.errors import (
    AlreadySettled,
    InsufficientCredits,
    InvalidRefund,
    InvalidTransition,
    NotFound,
    PaymentRequired,
    SlotConflict,
    SlotUnavailable,
)
from booking_engine.core.logging import get_logger
from booking_engine.core.metrics import booking_latency, record_booking_attempt, record_transition
from booking_engine.models.availability import TrainerSchedule
from booking_engine.models.booking import Booking, BookingStatus
from booking_engine.models.ledger import LedgerReason
from booking_engine.services import availability_service, catalog_service, ledger_service
from booking_engine.services.conflict_detector import check_available
from booking_engine.services.state_machine import BookingEvent, next_status

logger = get_logger(__name__)
settings = get_settings()


class CreateMode:
    SELF_BOOK = "self-book"
    TRAINER_CONFIRMED = "trainer-confirmed"

    ALL = (SELF_BOOK, TRAINER_CONFIRMED)


class ChargePoint:
    """When a booking's credits leave the client's balance."""

    COMPLETE = "complete"
    BOOKING = "booking"  # prepaid; cancellation refunds go through the tiers


@dataclass(frozen=True)
class CancellationPolicy:
    """What the caller needs to decide on a refund before cancelling."""

    late: bool
    hours_before_start: float
    window_hours: int
    debited: bool
    debited_amount: Decimal
    already_refunded: Decimal
    refund_percent: int

    @property
    def refundable(self) -> Decimal:
        return max(self.debited_amount - self.already_refunded, Decimal("0.00"))

    @property
    def refund_amount(self) -> Decimal:
        """The tiered share of the debit, never more than is left to return."""
        tiered = ledger_service.to_credits(self.debited_amount * self.refund_percent / 100)
        return min(tiered, self.refundable)

    @property
    def refund_eligible(self) -> bool:
        return self.refund_amount > 0


def refund_percent(hours_before: float, window_hours: int, tiers=None) -> int:
    """
    Share of the debit returned on cancel. Outside the window everything
    comes back. Inside it, the tightest tier whose hours_before_session still
    covers the hours left applies; past every tier nothing does.
    """
    if hours_before >= window_hours:
        return 100
    for tier_hours, percent in sorted(tiers or ()):
        if hours_before <= tier_hours:
            return percent
    return 0


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

async def get_booking(db: AsyncSession, booking_id: int) -> Booking:
    result = await db.execute(
        select(Booking)
        .where(Booking.id == booking_id)
        .execution_options(populate_existing=True)
    )
    booking = result.scalar_one_or_none()
    if not booking:
        raise NotFound(f"Booking {booking_id} not found", booking_id=booking_id)
    return booking


async def list_trainer_bookings(
    db: AsyncSession,
    trainer_id: int,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    status: Optional[str] = None,
) -> list[Booking]:
    query = select(Booking).where(Booking.trainer_id == trainer_id)
    if start is not None:
        query = query.where(Booking.ends_at > as_utc(start))
    if end is not None:
        query = query.where(Booking.scheduled_at < as_utc(end))
    if status is not None:
        query = query.where(Booking.status == status)
    result = await db.execute(query.order_by(Booking.scheduled_at.asc()))
    return list(result.scalars().all())


async def list_client_bookings(
    db: AsyncSession,
    client_id: int,
    status: Optional[str] = None,
) -> list[Booking]:
    query = select(Booking).where(Booking.client_id == client_id)
    if status is not None:
        query = query.where(Booking.status == status)
    result = await db.execute(query.order_by(Booking.scheduled_at.desc()))
    return list(result.scalars().all())


async def find_expired_holds(db: AsyncSession, now: datetime, limit: int) -> list[int]:
    """Ids of soft-holds past expiry, oldest first, at most `limit`."""
    result = await db.execute(
        select(Booking.id)
        .where(
            Booking.status == BookingStatus.SOFT_HOLD,
            Booking.hold_expires_at < now,
        )
        .order_by(Booking.hold_expires_at.asc())
        .limit(limit)
    )
    return list(result.scalars().all())


# ---------------------------------------------------------------------------
# Creation
# ---------------------------------------------------------------------------

async def _claim_schedule(db: AsyncSession, trainer_id: int, version: int) -> bool:
    result = await db.execute(
        update(TrainerSchedule)
        .where(
            TrainerSchedule.trainer_id == trainer_id,
            TrainerSchedule.version == version,
        )
        .values(version=TrainerSchedule.version + 1)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


async def create_booking(
    db: AsyncSession,
    trainer_id: int,
    client_id: int,
    service_id: int,
    scheduled_at: datetime,
    mode: str = CreateMode.SELF_BOOK,
    studio_id: Optional[int] = None,
    notes: Optional[str] = None,
) -> Booking:
    """
    Create a booking in soft-hold (self-book) or confirmed (trainer flow).
    Must be the first write of its transaction: a lost schedule claim
    rolls the transaction back before retrying.
    """
    if mode not in CreateMode.ALL:
        raise ValueError(f"Unknown booking mode: {mode}")

    service = await catalog_service.get_service(db, service_id)
    duration = service.duration_minutes
    credits_required = service.credits_required
    requires_payment = service.requires_payment

    start = as_utc(scheduled_at)
    now = utcnow()
    if start <= now:
        record_booking_attempt("unavailable")
        raise SlotUnavailable(
            "Cannot book a time in the past",
            trainer_id=trainer_id,
            start=start.isoformat(),
        )

    with booking_latency.time():
        for attempt in range(1, settings.BOOKING_MAX_RETRY_ATTEMPTS + 1):
            # Step 1: Read the trainer's schedule version
            schedule = await availability_service.get_schedule(db, trainer_id)
            if schedule is None:
                record_booking_attempt("unavailable")
                raise SlotUnavailable(
                    f"Trainer {trainer_id} has no availability",
                    trainer_id=trainer_id,
                )
            current_version = schedule.version

            # Step 2: Availability + overlap checks against the current state
            try:
                await check_available(db, trainer_id, start, duration)
            except SlotUnavailable:
                record_booking_attempt("unavailable")
                raise
            except SlotConflict:
                record_booking_attempt("conflict")
                raise

            # Step 3: Claim the schedule - only succeeds if nobody booked in between
            if not await _claim_schedule(db, trainer_id, current_version):
                record_booking_attempt("retry")
                logger.info(
                    "booking_retry",
                    trainer_id=trainer_id,
                    attempt=attempt,
                    reason="version_conflict",
                )
                await db.rollback()
                if attempt == settings.BOOKING_MAX_RETRY_ATTEMPTS:
                    raise SlotConflict(
                        "Booking failed due to concurrent requests for this trainer. Please re-check availability.",
                        trainer_id=trainer_id,
                        start=start.isoformat(),
                        attempts=attempt,
                    )
                continue

            # Step 4: Insert the booking
            if mode == CreateMode.SELF_BOOK and settings.HOLD_WINDOW_MINUTES > 0:
                status = BookingStatus.SOFT_HOLD
                hold_expires_at = now + timedelta(minutes=settings.HOLD_WINDOW_MINUTES)
            else:
                status = BookingStatus.CONFIRMED
                hold_expires_at = None

            booking = Booking(
                studio_id=studio_id,
                trainer_id=trainer_id,
                client_id=client_id,
                service_id=service_id,
                scheduled_at=start,
                ends_at=start + timedelta(minutes=duration),
                duration_minutes=duration,
                credits_required=credits_required,
                requires_payment=requires_payment,
                status=status,
                hold_expires_at=hold_expires_at,
                notes=notes,
            )
            db.add(booking)
            try:
                await db.flush()
            except IntegrityError as exc:
                record_booking_attempt("conflict")
                logger.warning("booking_exclusion_violation", trainer_id=trainer_id, start=start.isoformat())
                raise SlotConflict(
                    "Requested time overlaps an existing booking",
                    trainer_id=trainer_id,
                    start=start.isoformat(),
                ) from exc
            await db.refresh(booking)

            if settings.CREDIT_CHARGE_POINT == ChargePoint.BOOKING:
                try:
                    await ledger_service.debit(
                        db, client_id, booking.id, credits_required, LedgerReason.DEBIT_ON_BOOKING
                    )
                except InsufficientCredits:
                    record_booking_attempt("insufficient_credits")
                    raise

            record_booking_attempt("success")
            logger.info(
                "booking_created",
                booking_id=booking.id,
                trainer_id=trainer_id,
                client_id=client_id,
                service_id=service_id,
                status=status,
                scheduled_at=start.isoformat(),
                duration=duration,
                attempt=attempt,
            )
            return booking

    # Should not reach here, but just in case
    raise SlotConflict("Booking failed unexpectedly", trainer_id=trainer_id)


# ---------------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------------

def _hold_expired(booking: Booking, now: datetime) -> bool:
    return (
        booking.status == BookingStatus.SOFT_HOLD
        and booking.hold_expires_at is not None
        and as_utc(booking.hold_expires_at) < now
    )


async def _transition(
    db: AsyncSession,
    booking: Booking,
    event: str,
    now: Optional[datetime] = None,
    **values,
) -> Booking:
    """Compare-and-swap the status; raise InvalidTransition when stale."""
    now = now or utcnow()
    current = booking.status
    target = next_status(current, event, booking.id)

    stmt = (
        update(Booking)
        .where(Booking.id == booking.id, Booking.status == current)
        # Only soft-hold carries an expiry, and no transition lands there
        .values(status=target, hold_expires_at=None, **values)
        .execution_options(synchronize_session=False)
    )
    if current == BookingStatus.SOFT_HOLD:
        if event == BookingEvent.EXPIRE:
            stmt = stmt.where(Booking.hold_expires_at < now)
        elif event in (BookingEvent.CONFIRM, BookingEvent.CHECK_IN):
            # An expired hold is reclaimed even if the sweeper has not run yet
            stmt = stmt.where(Booking.hold_expires_at >= now)

    result = await db.execute(stmt)
    if result.rowcount == 0:
        record_transition(event, "stale")
        logger.info(
            "booking_transition_stale",
            booking_id=booking.id,
            booking_event=event,
            expected_status=current,
        )
        raise InvalidTransition(
            "Booking changed since it was read; re-fetch and decide again",
            booking_id=booking.id,
            event=event,
            expected_status=current,
            reason="stale",
        )

    record_transition(event, "applied")
    logger.info(
        "booking_transition",
        booking_id=booking.id,
        booking_event=event,
        from_status=current,
        to_status=target,
    )
    return await get_booking(db, booking.id)


def _reject_expired_hold(booking: Booking, event: str, now: datetime) -> None:
    if _hold_expired(booking, now):
        record_transition(event, "rejected")
        raise InvalidTransition(
            "Soft-hold has expired",
            booking_id=booking.id,
            event=event,
            status=booking.status,
            reason="hold_expired",
        )


async def confirm_booking(
    db: AsyncSession,
    booking_id: int,
    payment_cleared: bool = False,
    now: Optional[datetime] = None,
) -> Booking:
    """
    soft-hold -> confirmed. Paid services need the payment collaborator's
    signal (`payment_cleared`); the engine never moves money itself.
    """
    now = now or utcnow()
    booking = await get_booking(db, booking_id)
    if booking.status == BookingStatus.SOFT_HOLD:
        _reject_expired_hold(booking, BookingEvent.CONFIRM, now)
        if booking.requires_payment and not payment_cleared:
            record_transition(BookingEvent.CONFIRM, "rejected")
            raise PaymentRequired(
                "Payment has not cleared for this booking",
                booking_id=booking.id,
                service_id=booking.service_id,
            )
    return await _transition(db, booking, BookingEvent.CONFIRM, now)


async def check_in_booking(db: AsyncSession, booking_id: int, now: Optional[datetime] = None) -> Booking:
    now = now or utcnow()
    booking = await get_booking(db, booking_id)
    _reject_expired_hold(booking, BookingEvent.CHECK_IN, now)
    return await _transition(db, booking, BookingEvent.CHECK_IN, now)


async def complete_booking(db: AsyncSession, booking_id: int) -> Booking:
    """
    confirmed / checked-in -> completed, debiting the client's credits in
    the same transaction. A replay on an already-completed booking raises
    AlreadySettled (callers treat it as success). InsufficientCredits
    propagates and the caller's rollback leaves the booking where it was.
    """
    booking = await get_booking(db, booking_id)
    if booking.status == BookingStatus.COMPLETED:
        record_transition(BookingEvent.COMPLETE, "replay")
        raise AlreadySettled(
            "Booking is already completed",
            booking_id=booking.id,
            status=booking.status,
        )

    try:
        booking = await _transition(db, booking, BookingEvent.COMPLETE)
    except InvalidTransition:
        # Lost a race against another completion of the same booking?
        latest = await get_booking(db, booking_id)
        if latest.status == BookingStatus.COMPLETED:
            raise AlreadySettled(
                "Booking was completed concurrently",
                booking_id=booking_id,
                status=latest.status,
            )
        raise

    if await ledger_service.find_debit(db, booking.id) is not None:
        # Prepaid at booking time
        new_balance = await ledger_service.balance(db, booking.client_id)
    else:
        new_balance = await ledger_service.debit(
            db,
            booking.client_id,
            booking.id,
            booking.credits_required,
            LedgerReason.DEBIT_ON_COMPLETE,
        )
    logger.info(
        "booking_completed",
        booking_id=booking.id,
        client_id=booking.client_id,
        credits=str(booking.credits_required),
        balance=str(new_balance),
    )
    return booking


async def evaluate_cancellation(
    db: AsyncSession,
    booking: Booking,
    now: Optional[datetime] = None,
) -> CancellationPolicy:
    """Facts for the caller's refund decision; applies nothing."""
    now = now or utcnow()
    window = settings.CANCELLATION_WINDOW_HOURS
    hours_before = (as_utc(booking.scheduled_at) - now).total_seconds() / 3600
    debit_entry = await ledger_service.find_debit(db, booking.id)
    return CancellationPolicy(
        late=hours_before < window,
        hours_before_start=round(hours_before, 2),
        window_hours=window,
        debited=debit_entry is not None,
        debited_amount=-ledger_service.to_credits(debit_entry.delta) if debit_entry else Decimal("0.00"),
        already_refunded=await ledger_service.refunded_total(db, booking.id),
        refund_percent=refund_percent(hours_before, window, settings.CANCELLATION_REFUND_TIERS),
    )


async def cancel_booking(
    db: AsyncSession,
    booking_id: int,
    reason: str = "cancelled",
    refund: bool = False,
    refund_amount: Optional[Decimal] = None,
    now: Optional[datetime] = None,
) -> Booking:
    """
    Active -> cancelled. Refunds are never automatic: the caller evaluates
    its policy (see evaluate_cancellation) and either passes `refund=True`
    to return the tiered share of the debit, or an explicit `refund_amount`.
    """
    now = now or utcnow()
    booking = await get_booking(db, booking_id)
    policy = await evaluate_cancellation(db, booking, now)

    if refund_amount is not None:
        amount = ledger_service.to_credits(refund_amount)
        if amount < 0 or amount > policy.refundable:
            raise InvalidRefund(
                f"Refund of {amount} exceeds the {policy.refundable} credits left to return",
                booking_id=booking.id,
                requested=amount,
                refundable=policy.refundable,
            )
    elif refund:
        amount = policy.refund_amount
    else:
        amount = Decimal("0.00")

    booking = await _transition(
        db,
        booking,
        BookingEvent.CANCEL,
        now,
        cancellation_reason=reason,
        cancelled_late=policy.late,
    )

    if amount > 0:
        await ledger_service.refund(db, booking.client_id, booking.id, amount)

    logger.info(
        "booking_cancelled",
        booking_id=booking.id,
        reason=reason,
        late=policy.late,
        refund_percent=policy.refund_percent,
        refunded=str(amount),
    )
    return booking


async def mark_no_show(db: AsyncSession, booking_id: int, billable: bool = False) -> Booking:
    """Active -> no-show. `billable` is the studio's decision, not ours."""
    booking = await get_booking(db, booking_id)
    booking = await _transition(db, booking, BookingEvent.NO_SHOW)
    if billable and await ledger_service.find_debit(db, booking.id) is None:
        await ledger_service.debit(
            db,
            booking.client_id,
            booking.id,
            booking.credits_required,
            LedgerReason.DEBIT_ON_NO_SHOW,
        )
    return booking


async def refund_booking(
    db: AsyncSession,
    booking_id: int,
    amount: Optional[Decimal] = None,
    client_id: Optional[int] = None,
) -> Decimal:
    """
    Staff refund outside the cancel flow (goodwill after a completed
    session, a disputed no-show charge). Defaults to everything left to
    return; one manual refund per booking, replays return the balance.
    """
    booking = await get_booking(db, booking_id)
    if client_id is not None and booking.client_id != client_id:
        raise NotFound(
            f"Booking {booking_id} does not belong to client {client_id}",
            booking_id=booking_id,
            client_id=client_id,
        )

    if await ledger_service.get_entry(db, booking.id, LedgerReason.MANUAL_REFUND):
        return await ledger_service.balance(db, booking.client_id)

    debit_entry = await ledger_service.find_debit(db, booking.id)
    if debit_entry is None:
        raise InvalidRefund("Booking has no debit to refund", booking_id=booking.id)

    refundable = -ledger_service.to_credits(debit_entry.delta) - await ledger_service.refunded_total(db, booking.id)
    amount = refundable if amount is None else ledger_service.to_credits(amount)
    if amount <= 0 or amount > refundable:
        raise InvalidRefund(
            f"Refund of {amount} is outside the {refundable} credits left to return",
            booking_id=booking.id,
            requested=amount,
            refundable=refundable,
        )

    return await ledger_service.refund(
        db, booking.client_id, booking.id, amount, LedgerReason.MANUAL_REFUND
    )


async def expire_hold(db: AsyncSession, booking_id: int, now: Optional[datetime] = None) -> Booking:
    """soft-hold past expiry -> cancelled. Used by the sweeper."""
    now = now or utcnow()
    booking = await get_booking(db, booking_id)
    if booking.status == BookingStatus.SOFT_HOLD and not _hold_expired(booking, now):
        raise InvalidTransition(
            "Soft-hold has not expired yet",
            booking_id=booking.id,
            event=BookingEvent.EXPIRE,
            reason="hold_active",
        )
    booking = await _transition(
        db,
        booking,
        BookingEvent.EXPIRE,
        now,
        cancellation_reason="hold_expired",
    )

    # Prepaid holds get their debit back
    debit_entry = await ledger_service.find_debit(db, booking.id)
    if debit_entry is not None:
        await ledger_service.refund(db, booking.client_id, booking.id, -debit_entry.delta)
    return booking
