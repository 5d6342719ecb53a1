"""
Service catalog entry: what a session costs and how long it lasts.
"""

from sqlalchemy import Boolean, CheckConstraint, Column, Integer, Numeric, String

from booking_engine.db.base import Base, TimestampMixin


class Service(Base, TimestampMixin):
    __tablename__ = "services"

    id = Column(Integer, primary_key=True, index=True)
    studio_id = Column(Integer, nullable=True, index=True)
    name = Column(String(255), nullable=False)
    duration_minutes = Column(Integer, nullable=False)
    # Half-credit services exist, so NUMERIC rather than INTEGER
    credits_required = Column(Numeric(6, 2), nullable=False, default=1)
    price_cents = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)

    __table_args__ = (
        CheckConstraint("duration_minutes > 0", name="check_service_duration_positive"),
        CheckConstraint("credits_required >= 0", name="check_service_credits_non_negative"),
        CheckConstraint("price_cents >= 0", name="check_service_price_non_negative"),
    )

    @property
    def requires_payment(self) -> bool:
        return bool(self.price_cents)

    def __repr__(self) -> str:
        return f"<Service(id={self.id}, name={self.name}, credits={self.credits_required})>"
