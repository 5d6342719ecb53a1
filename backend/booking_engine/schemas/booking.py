"""
Pydantic schemas for booking-related request/response validation.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from booking_engine.services.booking_service import CreateMode


class BookingCreate(BaseModel):
    trainer_id: int
    client_id: int
    service_id: int
    scheduled_at: datetime
    mode: str = CreateMode.SELF_BOOK
    studio_id: Optional[int] = None
    notes: Optional[str] = Field(default=None, max_length=1000)

    @field_validator("mode")
    @classmethod
    def mode_must_be_known(cls, v: str) -> str:
        if v not in CreateMode.ALL:
            raise ValueError(f"mode must be one of {', '.join(CreateMode.ALL)}")
        return v


class BookingResponse(BaseModel):
    id: int
    studio_id: Optional[int] = None
    trainer_id: int
    client_id: int
    service_id: int
    scheduled_at: datetime
    ends_at: datetime
    duration_minutes: int
    credits_required: Decimal
    requires_payment: bool
    status: str
    hold_expires_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    cancelled_late: bool
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class ConfirmRequest(BaseModel):
    payment_cleared: bool = False


class CancelRequest(BaseModel):
    reason: str = Field(default="client_request", max_length=50)
    refund: bool = False
    # Overrides the tiered amount; capped at what is left to return
    refund_amount: Optional[Decimal] = Field(default=None, ge=0, max_digits=10, decimal_places=2)


class NoShowRequest(BaseModel):
    billable: bool = False


class CancellationPolicyResponse(BaseModel):
    booking_id: int
    late: bool
    hours_before_start: float
    window_hours: int
    debited: bool
    debited_amount: Decimal
    already_refunded: Decimal
    refund_percent: int
    refund_amount: Decimal
    refund_eligible: bool
