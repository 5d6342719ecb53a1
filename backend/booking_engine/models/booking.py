"""
Booking model: one client session with one trainer.

Key design decisions:
- Status field drives the lifecycle; rows are never deleted
- ends_at is stored alongside scheduled_at so overlap queries stay
  index-friendly ([scheduled_at, ends_at) half-open)
- CHECK constraint: hold_expires_at is set iff status = 'soft-hold'
- credits_required / duration_minutes are copied from the service at
  creation and never change afterwards
- PostgreSQL also carries an exclusion constraint over active bookings
  (see the initial migration); it is not declared here because SQLite
  cannot express it
"""

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    CheckConstraint,
    text,
)
from sqlalchemy.orm import relationship

from booking_engine.db.base import Base, TimestampMixin


class BookingStatus:
    SOFT_HOLD = "soft-hold"
    CONFIRMED = "confirmed"
    CHECKED_IN = "checked-in"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no-show"

    ALL = (SOFT_HOLD, CONFIRMED, CHECKED_IN, COMPLETED, CANCELLED, NO_SHOW)
    # Statuses that occupy the trainer's time
    ACTIVE = (SOFT_HOLD, CONFIRMED, CHECKED_IN)
    TERMINAL = (COMPLETED, CANCELLED, NO_SHOW)


class Booking(Base, TimestampMixin):
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, index=True)
    studio_id = Column(Integer, nullable=True, index=True)
    trainer_id = Column(Integer, nullable=False)
    client_id = Column(Integer, nullable=False, index=True)
    service_id = Column(Integer, ForeignKey("services.id"), nullable=False)

    scheduled_at = Column(DateTime(timezone=True), nullable=False)
    ends_at = Column(DateTime(timezone=True), nullable=False)
    duration_minutes = Column(Integer, nullable=False)
    credits_required = Column(Numeric(6, 2), nullable=False)
    requires_payment = Column(Boolean, nullable=False, default=False)

    status = Column(String(20), nullable=False, default=BookingStatus.SOFT_HOLD)
    hold_expires_at = Column(DateTime(timezone=True), nullable=True)
    cancellation_reason = Column(String(50), nullable=True)
    cancelled_late = Column(Boolean, nullable=False, default=False)
    notes = Column(String(1000), nullable=True)

    service = relationship("Service", lazy="raise")

    __table_args__ = (
        CheckConstraint("duration_minutes > 0", name="check_booking_duration_positive"),
        CheckConstraint("credits_required >= 0", name="check_booking_credits_non_negative"),
        CheckConstraint("ends_at > scheduled_at", name="check_booking_ends_after_start"),
        CheckConstraint(
            "status IN ('soft-hold', 'confirmed', 'checked-in', 'completed', 'cancelled', 'no-show')",
            name="check_booking_status",
        ),
        CheckConstraint(
            "(status = 'soft-hold') = (hold_expires_at IS NOT NULL)",
            name="check_booking_hold_expiry",
        ),
        # Conflict detection: active bookings for one trainer in a time window
        Index("ix_bookings_trainer_scheduled", "trainer_id", "scheduled_at"),
        # Sweeper: soft-holds ordered by expiry
        Index(
            "ix_bookings_hold_expiry",
            "hold_expires_at",
            postgresql_where=text("status = 'soft-hold'"),
            sqlite_where=text("status = 'soft-hold'"),
        ),
    )

    @property
    def is_terminal(self) -> bool:
        return self.status in BookingStatus.TERMINAL

    def __repr__(self) -> str:
        return (
            f"<Booking(id={self.id}, trainer={self.trainer_id}, client={self.client_id}, "
            f"at={self.scheduled_at}, status={self.status})>"
        )
