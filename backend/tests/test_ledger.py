"""
Tests for the credit ledger: idempotent settlement and balance safety.
"""

from decimal import Decimal

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from booking_engine.core.errors import InsufficientCredits
from booking_engine.models.ledger import LedgerEntry, LedgerReason
from booking_engine.services import ledger_service

CLIENT = 500


async def entry_sum(db: AsyncSession, client_id: int) -> Decimal:
    result = await db.execute(
        select(func.coalesce(func.sum(LedgerEntry.delta), 0)).where(LedgerEntry.client_id == client_id)
    )
    return ledger_service.to_credits(result.scalar_one())


async def entry_count(db: AsyncSession, client_id: int) -> int:
    result = await db.execute(select(func.count(LedgerEntry.id)).where(LedgerEntry.client_id == client_id))
    return result.scalar_one()


@pytest.mark.asyncio
async def test_unknown_client_has_zero_balance(db_session: AsyncSession):
    assert await ledger_service.balance(db_session, 424242) == Decimal("0.00")


@pytest.mark.asyncio
async def test_grant_then_debit(db_session: AsyncSession):
    assert await ledger_service.grant(db_session, CLIENT, 3) == Decimal("3.00")
    assert await ledger_service.debit(db_session, CLIENT, booking_id=1, amount=1) == Decimal("2.00")
    await db_session.commit()

    assert await ledger_service.balance(db_session, CLIENT) == Decimal("2.00")
    entry = await ledger_service.get_entry(db_session, 1, LedgerReason.DEBIT_ON_COMPLETE)
    assert entry is not None
    assert entry.delta == Decimal("-1.00")


@pytest.mark.asyncio
async def test_debit_replay_is_idempotent(db_session: AsyncSession):
    await ledger_service.grant(db_session, CLIENT, 3)
    await ledger_service.debit(db_session, CLIENT, booking_id=9, amount=1)
    await db_session.commit()

    again = await ledger_service.debit(db_session, CLIENT, booking_id=9, amount=1)
    await db_session.commit()

    assert again == Decimal("2.00")
    assert await entry_count(db_session, CLIENT) == 2  # grant + one debit


@pytest.mark.asyncio
async def test_insufficient_credits_leaves_no_trace(db_session: AsyncSession):
    await ledger_service.grant(db_session, CLIENT, Decimal("0.5"))
    await db_session.commit()

    with pytest.raises(InsufficientCredits) as exc_info:
        await ledger_service.debit(db_session, CLIENT, booking_id=3, amount=1)
    await db_session.rollback()

    assert exc_info.value.booking_id == 3
    assert exc_info.value.context["available"] == Decimal("0.50")
    assert await ledger_service.balance(db_session, CLIENT) == Decimal("0.50")
    assert await ledger_service.get_entry(db_session, 3, LedgerReason.DEBIT_ON_COMPLETE) is None


@pytest.mark.asyncio
async def test_debit_without_account_is_insufficient(db_session: AsyncSession):
    with pytest.raises(InsufficientCredits):
        await ledger_service.debit(db_session, 777, booking_id=4, amount=1)
    await db_session.rollback()


@pytest.mark.asyncio
async def test_refund_is_idempotent(db_session: AsyncSession):
    await ledger_service.grant(db_session, CLIENT, 2)
    await ledger_service.debit(db_session, CLIENT, booking_id=11, amount=1)
    first = await ledger_service.refund(db_session, CLIENT, booking_id=11, amount=1)
    second = await ledger_service.refund(db_session, CLIENT, booking_id=11, amount=1)
    await db_session.commit()

    assert first == second == Decimal("2.00")
    assert await entry_count(db_session, CLIENT) == 3


@pytest.mark.asyncio
async def test_half_credit_amounts(db_session: AsyncSession):
    await ledger_service.grant(db_session, CLIENT, 1)
    assert await ledger_service.debit(db_session, CLIENT, booking_id=20, amount=Decimal("0.5")) == Decimal("0.50")
    assert await ledger_service.debit(db_session, CLIENT, booking_id=21, amount=Decimal("0.5")) == Decimal("0.00")
    await db_session.commit()


@pytest.mark.asyncio
async def test_zero_credit_debit_writes_no_entry(db_session: AsyncSession):
    await ledger_service.grant(db_session, CLIENT, 1)
    assert await ledger_service.debit(db_session, CLIENT, booking_id=30, amount=0) == Decimal("1.00")
    await db_session.commit()
    assert await entry_count(db_session, CLIENT) == 1


@pytest.mark.asyncio
async def test_debit_rejects_non_debit_reason(db_session: AsyncSession):
    with pytest.raises(ValueError):
        await ledger_service.debit(db_session, CLIENT, booking_id=1, amount=1, reason=LedgerReason.MANUAL_GRANT)


@pytest.mark.asyncio
async def test_grant_must_be_positive(db_session: AsyncSession):
    with pytest.raises(ValueError):
        await ledger_service.grant(db_session, CLIENT, 0)


@pytest.mark.asyncio
async def test_balance_matches_sum_of_entries(db_session: AsyncSession):
    await ledger_service.grant(db_session, CLIENT, 5, note="10-pack, first half")
    await ledger_service.debit(db_session, CLIENT, booking_id=40, amount=1)
    await ledger_service.debit(db_session, CLIENT, booking_id=41, amount=Decimal("1.5"), reason=LedgerReason.DEBIT_ON_NO_SHOW)
    await ledger_service.refund(db_session, CLIENT, booking_id=40, amount=1)
    await db_session.commit()

    assert await ledger_service.balance(db_session, CLIENT) == await entry_sum(db_session, CLIENT) == Decimal("3.50")


@pytest.mark.asyncio
async def test_entries_newest_first(db_session: AsyncSession):
    await ledger_service.grant(db_session, CLIENT, 2)
    await ledger_service.debit(db_session, CLIENT, booking_id=50, amount=1)
    await db_session.commit()

    entries = await ledger_service.list_entries(db_session, CLIENT)
    assert [e.reason for e in entries] == [LedgerReason.DEBIT_ON_COMPLETE, LedgerReason.MANUAL_GRANT]


@pytest.mark.parametrize(
    "balance,status",
    [
        (Decimal("0"), "none"),
        (Decimal("1"), "low"),
        (Decimal("2"), "low"),
        (Decimal("2.5"), "medium"),
        (Decimal("5"), "medium"),
        (Decimal("6"), "good"),
    ],
)
def test_credit_status(balance, status):
    assert ledger_service.credit_status(balance) == status
