"""
Pydantic schemas for weekly rules, date overrides and resolved availability.

Minute values are minutes from local midnight in the studio timezone
(540 = 09:00). Range checks here give early 422s; the service layer runs
the same checks for non-HTTP callers.
"""

from datetime import date, datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field, model_validator


class RuleCreate(BaseModel):
    day_of_week: int = Field(ge=0, le=6, description="0=Sunday ... 6=Saturday")
    start_minute: int = Field(ge=0, le=1440)
    end_minute: int = Field(ge=0, le=1440)
    studio_id: Optional[int] = None

    @model_validator(mode="after")
    def start_before_end(self):
        if self.start_minute >= self.end_minute:
            raise ValueError("start_minute must be before end_minute")
        return self


class RuleUpdate(BaseModel):
    day_of_week: Optional[int] = Field(default=None, ge=0, le=6)
    start_minute: Optional[int] = Field(default=None, ge=0, le=1440)
    end_minute: Optional[int] = Field(default=None, ge=0, le=1440)


class RuleResponse(BaseModel):
    id: int
    trainer_id: int
    day_of_week: int
    start_minute: int
    end_minute: int

    model_config = {"from_attributes": True}


class OverrideCreate(BaseModel):
    block_type: Literal["available", "blocked"]
    start_date: date
    end_date: Optional[date] = None
    start_minute: Optional[int] = Field(default=None, ge=0, le=1440)
    end_minute: Optional[int] = Field(default=None, ge=0, le=1440)
    reason: Optional[str] = Field(default=None, max_length=255)
    studio_id: Optional[int] = None

    @model_validator(mode="after")
    def check_window(self):
        if (self.start_minute is None) != (self.end_minute is None):
            raise ValueError("start_minute and end_minute must be given together")
        if self.start_minute is not None and self.start_minute >= self.end_minute:
            raise ValueError("start_minute must be before end_minute")
        if self.end_date is not None and self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self


class OverrideResponse(BaseModel):
    id: int
    trainer_id: int
    block_type: str
    start_date: date
    end_date: Optional[date] = None
    start_minute: Optional[int] = None
    end_minute: Optional[int] = None
    reason: Optional[str] = None

    model_config = {"from_attributes": True}


class ResolvedIntervalResponse(BaseModel):
    date: date
    start_minute: int
    end_minute: int
    starts_at: datetime
    ends_at: datetime

    model_config = {"from_attributes": True}


class ResolvedAvailabilityResponse(BaseModel):
    trainer_id: int
    start_date: date
    end_date: date
    intervals: list[ResolvedIntervalResponse]


class OpenSlotsResponse(BaseModel):
    trainer_id: int
    date: date
    duration_minutes: int
    step_minutes: int
    slots: list[datetime]
