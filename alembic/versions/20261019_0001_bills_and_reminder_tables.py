"""Bills, per-bill reminder state, notification settings and reminder log

Revision ID: 20261019_0001
Revises:
Create Date: 2026-10-19 09:00:00
"""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa


revision = "20261019_0001"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "bills",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("due_date", sa.DateTime(), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="unpaid"),
        sa.Column("category", sa.String(length=64), nullable=False),
        sa.Column("is_recurring", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("recurring_interval", sa.String(length=16), nullable=True),
        sa.Column("invoice_url", sa.Text(), nullable=True),
        sa.Column("reminder_sound_interval_minutes", sa.Integer(), nullable=False, server_default="120"),
        *_timestamps(),
        sa.CheckConstraint("status IN ('unpaid','paid')", name="ck_bills_status"),
        sa.CheckConstraint("amount >= 0", name="ck_bills_amount_non_negative"),
        sa.CheckConstraint("reminder_sound_interval_minutes > 0", name="ck_bills_sound_interval_positive"),
    )
    op.create_index("ix_bills_status_due_date", "bills", ["status", "due_date"])

    op.create_table(
        "bill_reminder_state",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("bill_id", sa.Integer(), sa.ForeignKey("bills.id", ondelete="CASCADE"), nullable=False),
        sa.Column("cadence", sa.String(length=16), nullable=False),
        sa.Column("last_sent_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("bill_id", "cadence", name="uq_bill_reminder_state_bill_cadence"),
        sa.CheckConstraint("cadence IN ('email','sound')", name="ck_bill_reminder_state_cadence"),
    )

    op.create_table(
        "notification_settings",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_email", sa.String(length=255), nullable=True),
        sa.Column("is_email_enabled", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        sa.Column("telegram_token", sa.String(length=255), nullable=True),
        sa.Column("telegram_chat_id", sa.String(length=255), nullable=True),
        sa.Column("is_telegram_enabled", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("alert_sound_url", sa.Text(), nullable=True),
        sa.Column("is_sound_enabled", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("is_muted", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        *_timestamps(),
    )

    op.create_table(
        "reminder_log",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("bill_id", sa.Integer(), sa.ForeignKey("bills.id", ondelete="SET NULL"), nullable=True),
        sa.Column("channel", sa.String(length=32), nullable=False),
        sa.Column("urgency", sa.String(length=16), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.CheckConstraint("status IN ('sent','error')", name="ck_reminder_log_status"),
    )


def downgrade() -> None:
    op.drop_table("reminder_log")
    op.drop_table("notification_settings")
    op.drop_table("bill_reminder_state")
    op.drop_index("ix_bills_status_due_date", table_name="bills")
    op.drop_table("bills")
