"""
Availability models: weekly rules, date overrides and the per-trainer
schedule row used as the booking concurrency guard.

Key design decisions:
- Times are minutes of day in the studio timezone, not clock strings
- CHECK constraints reject start >= end at write time; the resolver never
  has to validate rows
- TrainerSchedule.version is bumped by every booking insert for that
  trainer (compare-and-swap), which serializes concurrent inserts
"""

from sqlalchemy import (
    Column,
    Integer,
    String,
    Date,
    Index,
    CheckConstraint,
    ForeignKey,
)

from booking_engine.db.base import Base, TimestampMixin


class TrainerSchedule(Base, TimestampMixin):
    __tablename__ = "trainer_schedules"

    trainer_id = Column(Integer, primary_key=True)
    studio_id = Column(Integer, nullable=True, index=True)

    # Optimistic locking version counter
    version = Column(Integer, nullable=False, default=1)

    def __repr__(self) -> str:
        return f"<TrainerSchedule(trainer={self.trainer_id}, version={self.version})>"


class AvailabilityRule(Base, TimestampMixin):
    __tablename__ = "availability_rules"

    id = Column(Integer, primary_key=True, index=True)
    trainer_id = Column(
        Integer, ForeignKey("trainer_schedules.trainer_id"), nullable=False, index=True
    )
    day_of_week = Column(Integer, nullable=False)  # 0=Sun ... 6=Sat
    start_minute = Column(Integer, nullable=False)
    end_minute = Column(Integer, nullable=False)

    __table_args__ = (
        CheckConstraint("day_of_week BETWEEN 0 AND 6", name="check_rule_day_of_week"),
        CheckConstraint("start_minute >= 0", name="check_rule_start_non_negative"),
        CheckConstraint("end_minute <= 1440", name="check_rule_end_within_day"),
        CheckConstraint("start_minute < end_minute", name="check_rule_start_before_end"),
        Index("ix_availability_rules_trainer_day", "trainer_id", "day_of_week"),
    )

    def __repr__(self) -> str:
        return (
            f"<AvailabilityRule(id={self.id}, trainer={self.trainer_id}, "
            f"dow={self.day_of_week}, {self.start_minute}-{self.end_minute})>"
        )


class AvailabilityOverride(Base, TimestampMixin):
    __tablename__ = "availability_overrides"

    id = Column(Integer, primary_key=True, index=True)
    trainer_id = Column(
        Integer, ForeignKey("trainer_schedules.trainer_id"), nullable=False, index=True
    )
    block_type = Column(String(20), nullable=False)  # available, blocked
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=True)  # inclusive; NULL = single day
    # NULL start/end = whole day
    start_minute = Column(Integer, nullable=True)
    end_minute = Column(Integer, nullable=True)
    reason = Column(String(255), nullable=True)

    __table_args__ = (
        CheckConstraint("block_type IN ('available', 'blocked')", name="check_override_block_type"),
        CheckConstraint(
            "(start_minute IS NULL AND end_minute IS NULL) OR "
            "(start_minute >= 0 AND end_minute <= 1440 AND start_minute < end_minute)",
            name="check_override_minutes",
        ),
        CheckConstraint("end_date IS NULL OR end_date >= start_date", name="check_override_date_span"),
        # Overrides are always looked up by (trainer, date range)
        Index("ix_availability_overrides_trainer_dates", "trainer_id", "start_date", "end_date"),
    )

    def __repr__(self) -> str:
        return (
            f"<AvailabilityOverride(id={self.id}, trainer={self.trainer_id}, "
            f"type={self.block_type}, {self.start_date}..{self.end_date})>"
        )
