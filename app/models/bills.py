from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import Base, TimestampMixin


BILL_STATUSES = ("unpaid", "paid")
RECURRING_INTERVALS = ("monthly", "3-months", "6-months", "yearly", "2-years", "custom")
DEFAULT_REMINDER_SOUND_INTERVAL_MINUTES = 120

# Cadence keys for per-bill reminder state. The chat channel shares the email cadence.
REMINDER_CADENCE_EMAIL = "email"
REMINDER_CADENCE_SOUND = "sound"


class Bill(TimestampMixin, Base):
    __tablename__ = "bills"
    __table_args__ = (
        CheckConstraint("status IN ('unpaid','paid')", name="ck_bills_status"),
        CheckConstraint("amount >= 0", name="ck_bills_amount_non_negative"),
        CheckConstraint("reminder_sound_interval_minutes > 0", name="ck_bills_sound_interval_positive"),
        Index("ix_bills_status_due_date", "status", "due_date"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    due_date: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="unpaid")
    category: Mapped[str] = mapped_column(String(64), nullable=False)
    is_recurring: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    recurring_interval: Mapped[str | None] = mapped_column(String(16), nullable=True)
    invoice_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    reminder_sound_interval_minutes: Mapped[int] = mapped_column(
        Integer, nullable=False, default=DEFAULT_REMINDER_SOUND_INTERVAL_MINUTES
    )

    reminder_states: Mapped[list["BillReminderState"]] = relationship(
        back_populates="bill",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def _last_sent(self, cadence: str) -> datetime | None:
        for state in self.reminder_states:
            if state.cadence == cadence:
                return state.last_sent_at
        return None

    @property
    def last_email_reminded_at(self) -> datetime | None:
        return self._last_sent(REMINDER_CADENCE_EMAIL)

    @property
    def last_reminded_at(self) -> datetime | None:
        return self._last_sent(REMINDER_CADENCE_SOUND)


class BillReminderState(Base):
    __tablename__ = "bill_reminder_state"
    __table_args__ = (
        UniqueConstraint("bill_id", "cadence", name="uq_bill_reminder_state_bill_cadence"),
        CheckConstraint("cadence IN ('email','sound')", name="ck_bill_reminder_state_cadence"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    bill_id: Mapped[int] = mapped_column(ForeignKey("bills.id", ondelete="CASCADE"), nullable=False)
    cadence: Mapped[str] = mapped_column(String(16), nullable=False)
    last_sent_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)

    bill: Mapped[Bill] = relationship(back_populates="reminder_states")
