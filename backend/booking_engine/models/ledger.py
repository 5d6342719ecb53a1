"""
Credit ledger models.

Key design decisions:
- LedgerEntry is append-only; UNIQUE(booking_id, reason) is what makes
  debit/refund idempotent per booking (NULL booking ids, i.e. manual
  grants, are not constrained)
- CreditAccount.balance is a materialized sum of entries, updated in the
  same transaction as the entry insert
- CHECK balance >= 0 is the final safety net behind the conditional update
"""

from sqlalchemy import (
    Column,
    DateTime,
    Integer,
    Numeric,
    String,
    CheckConstraint,
    UniqueConstraint,
    Index,
    func,
)

from booking_engine.db.base import Base, TimestampMixin


class LedgerReason:
    DEBIT_ON_COMPLETE = "debit-on-complete"
    REFUND_ON_CANCEL = "refund-on-cancel"
    DEBIT_ON_NO_SHOW = "debit-on-no-show"
    DEBIT_ON_BOOKING = "debit-on-booking"
    MANUAL_REFUND = "manual-refund"
    MANUAL_GRANT = "manual-grant"

    ALL = (
        DEBIT_ON_COMPLETE, REFUND_ON_CANCEL, DEBIT_ON_NO_SHOW,
        DEBIT_ON_BOOKING, MANUAL_REFUND, MANUAL_GRANT,
    )
    DEBITS = (DEBIT_ON_COMPLETE, DEBIT_ON_NO_SHOW, DEBIT_ON_BOOKING)
    REFUNDS = (REFUND_ON_CANCEL, MANUAL_REFUND)


class CreditAccount(Base, TimestampMixin):
    __tablename__ = "credit_accounts"

    client_id = Column(Integer, primary_key=True)
    balance = Column(Numeric(10, 2), nullable=False, default=0)

    __table_args__ = (
        CheckConstraint("balance >= 0", name="check_credit_balance_non_negative"),
    )

    def __repr__(self) -> str:
        return f"<CreditAccount(client={self.client_id}, balance={self.balance})>"


class LedgerEntry(Base):
    __tablename__ = "ledger_entries"

    id = Column(Integer, primary_key=True, index=True)
    client_id = Column(Integer, nullable=False)
    booking_id = Column(Integer, nullable=True)
    delta = Column(Numeric(10, 2), nullable=False)
    reason = Column(String(30), nullable=False)
    note = Column(String(500), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (
        UniqueConstraint("booking_id", "reason", name="uq_ledger_booking_reason"),
        CheckConstraint(
            "reason IN ('debit-on-complete', 'refund-on-cancel', 'debit-on-no-show', "
            "'debit-on-booking', 'manual-refund', 'manual-grant')",
            name="check_ledger_reason",
        ),
        CheckConstraint("delta <> 0", name="check_ledger_delta_non_zero"),
        Index("ix_ledger_entries_client_created", "client_id", "created_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<LedgerEntry(id={self.id}, client={self.client_id}, booking={self.booking_id}, "
            f"delta={self.delta}, reason={self.reason})>"
        )
