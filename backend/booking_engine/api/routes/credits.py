"""
Client credit balance and ledger history.
"""

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from booking_engine.db.session import get_db
from booking_engine.schemas.ledger import BalanceResponse, GrantRequest, LedgerEntryResponse, RefundRequest
from booking_engine.services import booking_service, ledger_service

router = APIRouter(prefix="/credits", tags=["Credits"])


@router.get("/{client_id}", response_model=BalanceResponse)
async def get_balance(client_id: int, db: AsyncSession = Depends(get_db)):
    balance = await ledger_service.balance(db, client_id)
    return BalanceResponse(client_id=client_id, balance=balance, status=ledger_service.credit_status(balance))


@router.get("/{client_id}/entries", response_model=list[LedgerEntryResponse])
async def list_entries(
    client_id: int,
    limit: int = Query(default=100, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
):
    """Most recent ledger entries first."""
    return await ledger_service.list_entries(db, client_id, limit)


@router.post("/{client_id}/grant", response_model=BalanceResponse, status_code=status.HTTP_201_CREATED)
async def grant_credits(client_id: int, grant_data: GrantRequest, db: AsyncSession = Depends(get_db)):
    balance = await ledger_service.grant(db, client_id, grant_data.amount, note=grant_data.note)
    await db.commit()
    return BalanceResponse(client_id=client_id, balance=balance, status=ledger_service.credit_status(balance))


@router.post("/{client_id}/refund", response_model=BalanceResponse)
async def refund_credits(client_id: int, refund_data: RefundRequest, db: AsyncSession = Depends(get_db)):
    """
    Return credits debited for one of the client's bookings, outside the
    cancel flow. Omitting `amount` returns everything not yet refunded.
    """
    balance = await booking_service.refund_booking(
        db, refund_data.booking_id, amount=refund_data.amount, client_id=client_id
    )
    await db.commit()
    return BalanceResponse(client_id=client_id, balance=balance, status=ledger_service.credit_status(balance))
