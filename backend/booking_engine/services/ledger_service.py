"""
Credit ledger: the only writer of client credit balances.

CONCURRENCY STRATEGY: Conditional update + unique entry
=======================================================

Problem:
  A retried "complete" request (or two staff members pressing the button at
  once) must not charge the client twice, and two debits racing on one
  balance must not take it below zero.

Solution:
  Every operation runs inside the caller's transaction and does two writes:

  1. UPDATE credit_accounts SET balance = balance - :amount
     WHERE client_id = :client_id AND balance >= :amount
     -> rows_affected == 0 means InsufficientCredits
  2. INSERT INTO ledger_entries (client_id, booking_id, delta, reason)
     -> UNIQUE(booking_id, reason) rejects a second settlement

  A replay that arrives after the first one committed sees the existing
  entry up front and returns the current balance unchanged. A replay that
  races the first one blocks on the account row lock, then trips the
  unique constraint and raises AlreadySettled; the whole transaction
  (balance change included) rolls back.

  Amounts are Decimal quantized to 2 places (half-credit services exist).
"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from booking_engine.core.errors import AlreadySettled, InsufficientCredits
from booking_engine.core.logging import get_logger
from booking_engine.core.metrics import record_ledger_operation
from booking_engine.db.upsert import insert_or_ignore
from booking_engine.models.ledger import CreditAccount, LedgerEntry, LedgerReason

logger = get_logger(__name__)

TWO_PLACES = Decimal("0.01")
ZERO = Decimal("0.00")


def to_credits(value) -> Decimal:
    return Decimal(str(value)).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def credit_status(balance: Decimal) -> str:
    """Coarse bucket shown to staff next to the balance."""
    if balance > 5:
        return "good"
    if balance > 2:
        return "medium"
    if balance > 0:
        return "low"
    return "none"


async def balance(db: AsyncSession, client_id: int) -> Decimal:
    result = await db.execute(
        select(CreditAccount.balance)
        .where(CreditAccount.client_id == client_id)
        .execution_options(populate_existing=True)
    )
    value = result.scalar_one_or_none()
    return to_credits(value) if value is not None else ZERO


async def get_entry(db: AsyncSession, booking_id: int, reason: str) -> Optional[LedgerEntry]:
    result = await db.execute(
        select(LedgerEntry).where(
            LedgerEntry.booking_id == booking_id,
            LedgerEntry.reason == reason,
        )
    )
    return result.scalar_one_or_none()


async def find_debit(db: AsyncSession, booking_id: int) -> Optional[LedgerEntry]:
    """Any debit recorded against a booking (prepaid, completion or billable no-show)."""
    result = await db.execute(
        select(LedgerEntry).where(
            LedgerEntry.booking_id == booking_id,
            LedgerEntry.reason.in_(LedgerReason.DEBITS),
        )
    )
    return result.scalars().first()


async def refunded_total(db: AsyncSession, booking_id: int) -> Decimal:
    result = await db.execute(
        select(func.coalesce(func.sum(LedgerEntry.delta), 0)).where(
            LedgerEntry.booking_id == booking_id,
            LedgerEntry.reason.in_(LedgerReason.REFUNDS),
        )
    )
    return to_credits(result.scalar_one())


async def list_entries(db: AsyncSession, client_id: int, limit: int = 100) -> list[LedgerEntry]:
    result = await db.execute(
        select(LedgerEntry)
        .where(LedgerEntry.client_id == client_id)
        .order_by(LedgerEntry.created_at.desc(), LedgerEntry.id.desc())
        .limit(limit)
    )
    return list(result.scalars().all())


async def _ensure_account(db: AsyncSession, client_id: int) -> None:
    """Create a zero-balance account if the client has none."""
    await insert_or_ignore(
        db, CreditAccount, {"client_id": client_id, "balance": ZERO}, ["client_id"]
    )


async def _apply(
    db: AsyncSession,
    client_id: int,
    booking_id: Optional[int],
    delta: Decimal,
    reason: str,
    note: Optional[str] = None,
) -> Decimal:
    """Adjust the balance and append the entry in one transaction."""
    await _ensure_account(db, client_id)

    stmt = (
        update(CreditAccount)
        .where(CreditAccount.client_id == client_id)
        .values(balance=CreditAccount.balance + delta)
        .execution_options(synchronize_session=False)
    )
    if delta < 0:
        stmt = stmt.where(CreditAccount.balance >= -delta)

    result = await db.execute(stmt)
    if result.rowcount == 0:
        available = await balance(db, client_id)
        record_ledger_operation(reason, "insufficient")
        logger.warning(
            "ledger_insufficient_credits",
            client_id=client_id,
            booking_id=booking_id,
            required=str(-delta),
            available=str(available),
        )
        raise InsufficientCredits(
            f"Client {client_id} has {available} credits, {-delta} required",
            booking_id=booking_id,
            client_id=client_id,
            required=-delta,
            available=available,
        )

    db.add(
        LedgerEntry(
            client_id=client_id,
            booking_id=booking_id,
            delta=delta,
            reason=reason,
            note=note,
        )
    )
    try:
        await db.flush()
    except IntegrityError as exc:
        # Lost the race against a concurrent settlement of the same booking
        record_ledger_operation(reason, "replay")
        logger.info("ledger_concurrent_replay", client_id=client_id, booking_id=booking_id, reason=reason)
        raise AlreadySettled(
            f"Booking {booking_id} already has a '{reason}' entry",
            booking_id=booking_id,
            client_id=client_id,
            reason=reason,
        ) from exc

    new_balance = await balance(db, client_id)
    record_ledger_operation(reason, "applied")
    logger.info(
        "ledger_entry_applied",
        client_id=client_id,
        booking_id=booking_id,
        delta=str(delta),
        reason=reason,
        balance=str(new_balance),
    )
    return new_balance


async def _settle(
    db: AsyncSession,
    client_id: int,
    booking_id: int,
    delta: Decimal,
    reason: str,
) -> Decimal:
    existing = await get_entry(db, booking_id, reason)
    if existing:
        record_ledger_operation(reason, "replay")
        logger.info("ledger_replay", client_id=client_id, booking_id=booking_id, reason=reason)
        return await balance(db, client_id)

    if delta == 0:
        # Zero-credit services leave no entry
        return await balance(db, client_id)

    return await _apply(db, client_id, booking_id, delta, reason)


async def debit(
    db: AsyncSession,
    client_id: int,
    booking_id: int,
    amount,
    reason: str = LedgerReason.DEBIT_ON_COMPLETE,
) -> Decimal:
    """
    Charge `amount` credits for a booking. Returns the new balance.
    Replaying a debit for the same booking returns the balance unchanged.
    """
    if reason not in LedgerReason.DEBITS:
        raise ValueError(f"Not a debit reason: {reason}")
    return await _settle(db, client_id, booking_id, -to_credits(amount), reason)


async def refund(
    db: AsyncSession,
    client_id: int,
    booking_id: int,
    amount,
    reason: str = LedgerReason.REFUND_ON_CANCEL,
) -> Decimal:
    """Return `amount` credits for a booking. Idempotent per (booking, reason)."""
    if reason not in LedgerReason.REFUNDS:
        raise ValueError(f"Not a refund reason: {reason}")
    return await _settle(db, client_id, booking_id, to_credits(amount), reason)


async def grant(db: AsyncSession, client_id: int, amount, note: Optional[str] = None) -> Decimal:
    """Manual top-up (package purchase recorded elsewhere, staff reward, ...)."""
    amount = to_credits(amount)
    if amount <= 0:
        raise ValueError("Grant amount must be positive")
    return await _apply(db, client_id, None, amount, LedgerReason.MANUAL_GRANT, note=note)
