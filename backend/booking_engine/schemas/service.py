"""
Pydantic schemas for the service catalog.
"""

from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field


class ServiceCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    duration_minutes: int = Field(gt=0, le=1440)
    credits_required: Decimal = Field(default=Decimal("1"), ge=0, max_digits=6, decimal_places=2)
    price_cents: int = Field(default=0, ge=0)
    studio_id: Optional[int] = None


class ServiceResponse(BaseModel):
    id: int
    studio_id: Optional[int] = None
    name: str
    duration_minutes: int
    credits_required: Decimal
    price_cents: int
    requires_payment: bool
    is_active: bool

    model_config = {"from_attributes": True}
