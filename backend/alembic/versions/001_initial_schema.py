"""Initial schema: trainer schedules, availability, services, bookings, credit ledger.

Revision ID: 001
Revises: None
Create Date: 2026-10-18
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    # gist index over (integer =, range &&) needs btree_gist
    op.execute("CREATE EXTENSION IF NOT EXISTS btree_gist")

    # One row per trainer; version is the booking insert guard
    op.create_table(
        "trainer_schedules",
        sa.Column("trainer_id", sa.Integer(), primary_key=True, autoincrement=False),
        sa.Column("studio_id", sa.Integer(), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default=sa.text("1")),
        *_timestamps(),
    )
    op.create_index("ix_trainer_schedules_studio_id", "trainer_schedules", ["studio_id"])

    op.create_table(
        "availability_rules",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("trainer_id", sa.Integer(), sa.ForeignKey("trainer_schedules.trainer_id"), nullable=False),
        sa.Column("day_of_week", sa.Integer(), nullable=False),
        sa.Column("start_minute", sa.Integer(), nullable=False),
        sa.Column("end_minute", sa.Integer(), nullable=False),
        *_timestamps(),
        sa.CheckConstraint("day_of_week BETWEEN 0 AND 6", name="check_rule_day_of_week"),
        sa.CheckConstraint("start_minute >= 0", name="check_rule_start_non_negative"),
        sa.CheckConstraint("end_minute <= 1440", name="check_rule_end_within_day"),
        sa.CheckConstraint("start_minute < end_minute", name="check_rule_start_before_end"),
    )
    op.create_index("ix_availability_rules_id", "availability_rules", ["id"])
    op.create_index("ix_availability_rules_trainer_id", "availability_rules", ["trainer_id"])
    # Resolution always reads one trainer's rules for one weekday
    op.create_index("ix_availability_rules_trainer_day", "availability_rules", ["trainer_id", "day_of_week"])

    op.create_table(
        "availability_overrides",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("trainer_id", sa.Integer(), sa.ForeignKey("trainer_schedules.trainer_id"), nullable=False),
        sa.Column("block_type", sa.String(20), nullable=False),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=True),
        sa.Column("start_minute", sa.Integer(), nullable=True),
        sa.Column("end_minute", sa.Integer(), nullable=True),
        sa.Column("reason", sa.String(255), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("block_type IN ('available', 'blocked')", name="check_override_block_type"),
        sa.CheckConstraint(
            "(start_minute IS NULL AND end_minute IS NULL) OR "
            "(start_minute >= 0 AND end_minute <= 1440 AND start_minute < end_minute)",
            name="check_override_minutes",
        ),
        sa.CheckConstraint("end_date IS NULL OR end_date >= start_date", name="check_override_date_span"),
    )
    op.create_index("ix_availability_overrides_id", "availability_overrides", ["id"])
    op.create_index("ix_availability_overrides_trainer_id", "availability_overrides", ["trainer_id"])
    op.create_index(
        "ix_availability_overrides_trainer_dates",
        "availability_overrides",
        ["trainer_id", "start_date", "end_date"],
    )

    op.create_table(
        "services",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("studio_id", sa.Integer(), nullable=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("duration_minutes", sa.Integer(), nullable=False),
        sa.Column("credits_required", sa.Numeric(6, 2), nullable=False, server_default=sa.text("1")),
        sa.Column("price_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        *_timestamps(),
        sa.CheckConstraint("duration_minutes > 0", name="check_service_duration_positive"),
        sa.CheckConstraint("credits_required >= 0", name="check_service_credits_non_negative"),
        sa.CheckConstraint("price_cents >= 0", name="check_service_price_non_negative"),
    )
    op.create_index("ix_services_id", "services", ["id"])
    op.create_index("ix_services_studio_id", "services", ["studio_id"])

    op.create_table(
        "bookings",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("studio_id", sa.Integer(), nullable=True),
        sa.Column("trainer_id", sa.Integer(), nullable=False),
        sa.Column("client_id", sa.Integer(), nullable=False),
        sa.Column("service_id", sa.Integer(), sa.ForeignKey("services.id"), nullable=False),
        sa.Column("scheduled_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("ends_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("duration_minutes", sa.Integer(), nullable=False),
        sa.Column("credits_required", sa.Numeric(6, 2), nullable=False),
        sa.Column("requires_payment", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'soft-hold'")),
        sa.Column("hold_expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancellation_reason", sa.String(50), nullable=True),
        sa.Column("cancelled_late", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("notes", sa.String(1000), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("duration_minutes > 0", name="check_booking_duration_positive"),
        sa.CheckConstraint("credits_required >= 0", name="check_booking_credits_non_negative"),
        sa.CheckConstraint("ends_at > scheduled_at", name="check_booking_ends_after_start"),
        sa.CheckConstraint(
            "status IN ('soft-hold', 'confirmed', 'checked-in', 'completed', 'cancelled', 'no-show')",
            name="check_booking_status",
        ),
        sa.CheckConstraint(
            "(status = 'soft-hold') = (hold_expires_at IS NOT NULL)",
            name="check_booking_hold_expiry",
        ),
    )
    op.create_index("ix_bookings_id", "bookings", ["id"])
    op.create_index("ix_bookings_studio_id", "bookings", ["studio_id"])
    op.create_index("ix_bookings_client_id", "bookings", ["client_id"])
    # Conflict detection reads one trainer's bookings for one day
    op.create_index("ix_bookings_trainer_scheduled", "bookings", ["trainer_id", "scheduled_at"])
    # The sweeper only ever looks at live holds, ordered by expiry
    op.create_index(
        "ix_bookings_hold_expiry",
        "bookings",
        ["hold_expires_at"],
        postgresql_where=sa.text("status = 'soft-hold'"),
    )
    # Last line of defence against double-booking: no two active bookings
    # for one trainer may overlap, half-open so back-to-back sessions pass
    op.execute(
        """
        ALTER TABLE bookings
        ADD CONSTRAINT excl_bookings_trainer_active_overlap
        EXCLUDE USING gist (
            trainer_id WITH =,
            tstzrange(scheduled_at, ends_at, '[)') WITH &&
        )
        WHERE (status IN ('soft-hold', 'confirmed', 'checked-in'))
        """
    )

    op.create_table(
        "credit_accounts",
        sa.Column("client_id", sa.Integer(), primary_key=True, autoincrement=False),
        sa.Column("balance", sa.Numeric(10, 2), nullable=False, server_default=sa.text("0")),
        *_timestamps(),
        sa.CheckConstraint("balance >= 0", name="check_credit_balance_non_negative"),
    )

    op.create_table(
        "ledger_entries",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("client_id", sa.Integer(), nullable=False),
        sa.Column("booking_id", sa.Integer(), nullable=True),
        sa.Column("delta", sa.Numeric(10, 2), nullable=False),
        sa.Column("reason", sa.String(30), nullable=False),
        sa.Column("note", sa.String(500), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        # Idempotent settlement: one entry per (booking, reason)
        sa.UniqueConstraint("booking_id", "reason", name="uq_ledger_booking_reason"),
        sa.CheckConstraint(
            "reason IN ('debit-on-complete', 'refund-on-cancel', 'debit-on-no-show', "
            "'debit-on-booking', 'manual-refund', 'manual-grant')",
            name="check_ledger_reason",
        ),
        sa.CheckConstraint("delta <> 0", name="check_ledger_delta_non_zero"),
    )
    op.create_index("ix_ledger_entries_id", "ledger_entries", ["id"])
    op.create_index("ix_ledger_entries_client_created", "ledger_entries", ["client_id", "created_at"])


def downgrade() -> None:
    op.drop_table("ledger_entries")
    op.drop_table("credit_accounts")
    op.drop_table("bookings")
    op.drop_table("services")
    op.drop_table("availability_overrides")
    op.drop_table("availability_rules")
    op.drop_table("trainer_schedules")
