"""
Pydantic schemas for credit balances and ledger history.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field


class BalanceResponse(BaseModel):
    client_id: int
    balance: Decimal
    status: str  # none, low, medium, good


class GrantRequest(BaseModel):
    amount: Decimal = Field(gt=0, max_digits=10, decimal_places=2)
    note: Optional[str] = Field(default=None, max_length=500)


class RefundRequest(BaseModel):
    booking_id: int
    # Defaults to everything the booking has left to return
    amount: Optional[Decimal] = Field(default=None, gt=0, max_digits=10, decimal_places=2)


class LedgerEntryResponse(BaseModel):
    id: int
    client_id: int
    booking_id: Optional[int] = None
    delta: Decimal
    reason: str
    note: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}
