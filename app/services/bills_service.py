from __future__ import annotations

from dataclasses import dataclass, fields
from datetime import datetime, tzinfo
from decimal import Decimal
import logging
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.config import get_settings
from app.models.bills import (
    BILL_STATUSES,
    DEFAULT_REMINDER_SOUND_INTERVAL_MINUTES,
    RECURRING_INTERVALS,
    REMINDER_CADENCE_EMAIL,
    REMINDER_CADENCE_SOUND,
    Bill,
    BillReminderState,
)
from app.services.urgency import days_until_due

logger = logging.getLogger(__name__)


class BillValidationError(ValueError):
    pass


class BillNotFoundError(LookupError):
    pass


@dataclass(frozen=True)
class CreateBillInput:
    title: str
    amount: Decimal
    due_date: datetime
    category: str
    status: str = "unpaid"
    is_recurring: bool = False
    recurring_interval: str | None = None
    invoice_url: str | None = None
    reminder_sound_interval_minutes: int = DEFAULT_REMINDER_SOUND_INTERVAL_MINUTES


@dataclass(frozen=True)
class UpdateBillInput:
    """Partial update; ``None`` fields are left untouched."""

    title: str | None = None
    amount: Decimal | None = None
    due_date: datetime | None = None
    category: str | None = None
    status: str | None = None
    is_recurring: bool | None = None
    recurring_interval: str | None = None
    invoice_url: str | None = None
    reminder_sound_interval_minutes: int | None = None


def _month_range(month: int, year: int) -> tuple[datetime, datetime]:
    if not 1 <= month <= 12:
        raise BillValidationError("Month must be between 1 and 12.")
    start = datetime(year, month, 1)
    end = datetime(year + 1, 1, 1) if month == 12 else datetime(year, month + 1, 1)
    return start, end


def _validate_title(title: str) -> str:
    title = title.strip()
    if not title:
        raise BillValidationError("Title is required.")
    return title


def _validate_amount(amount: Decimal) -> Decimal:
    if not isinstance(amount, Decimal):
        amount = Decimal(str(amount))
    if not amount.is_finite() or amount < 0:
        raise BillValidationError("Amount must be a non-negative number.")
    return amount


def _validate_status(status: str) -> str:
    if status not in BILL_STATUSES:
        raise BillValidationError(f"Unsupported status: {status}")
    return status


def _configured_zone() -> tzinfo | None:
    timezone_name = get_settings().timezone
    try:
        return ZoneInfo(timezone_name)
    except ZoneInfoNotFoundError:
        logger.warning("Unknown timezone %s; using system local time for due dates", timezone_name)
        return None


def _normalize_due_date(due_date: datetime) -> datetime:
    # Stored due dates are naive wall-clock times in the configured timezone.
    if due_date.tzinfo is not None:
        return due_date.astimezone(_configured_zone()).replace(tzinfo=None)
    return due_date


def _validate_sound_interval(minutes: int) -> int:
    if minutes <= 0:
        raise BillValidationError("Reminder sound interval must be a positive number of minutes.")
    return minutes


def _normalize_recurrence(is_recurring: bool, recurring_interval: str | None) -> str | None:
    if not is_recurring:
        return None
    interval = (recurring_interval or "monthly").strip()
    if interval not in RECURRING_INTERVALS:
        raise BillValidationError(f"Unsupported recurring_interval: {interval}")
    return interval


def _clear_reminder_state(bill: Bill) -> None:
    bill.reminder_states.clear()


def get_bill(session: Session, bill_id: int) -> Bill:
    bill = session.get(Bill, bill_id)
    if bill is None:
        raise BillNotFoundError(f"Bill {bill_id} not found")
    return bill


def list_bills(session: Session, *, month: int | None = None, year: int | None = None) -> list[Bill]:
    stmt = select(Bill)
    if month is not None and year is not None:
        start, end = _month_range(month, year)
        stmt = stmt.where(Bill.due_date >= start, Bill.due_date < end)
    stmt = stmt.order_by(Bill.due_date.asc(), Bill.id.asc())
    return list(session.scalars(stmt).all())


@dataclass(frozen=True)
class BillSummary:
    bill_count: int
    total_amount: Decimal
    paid_amount: Decimal
    unpaid_amount: Decimal
    overdue_count: int


def summarize_bills(bills: list[Bill], *, now: datetime) -> BillSummary:
    """Amount totals by status and the number of unpaid bills past their due day."""
    total = Decimal("0")
    paid = Decimal("0")
    overdue = 0
    for bill in bills:
        amount = Decimal(str(bill.amount))
        total += amount
        if bill.status == "paid":
            paid += amount
        elif days_until_due(due_date=bill.due_date, now=now) < 0:
            overdue += 1
    return BillSummary(
        bill_count=len(bills),
        total_amount=total,
        paid_amount=paid,
        unpaid_amount=total - paid,
        overdue_count=overdue,
    )


def list_unpaid_bills(session: Session) -> list[Bill]:
    stmt = select(Bill).where(Bill.status == "unpaid").order_by(Bill.due_date.asc(), Bill.id.asc())
    return list(session.scalars(stmt).all())


def list_unpaid_bill_ids(session: Session) -> list[int]:
    stmt = select(Bill.id).where(Bill.status == "unpaid").order_by(Bill.due_date.asc(), Bill.id.asc())
    return list(session.scalars(stmt).all())


def create_bill(session: Session, data: CreateBillInput) -> Bill:
    bill = Bill(
        title=_validate_title(data.title),
        amount=_validate_amount(data.amount),
        due_date=_normalize_due_date(data.due_date),
        category=data.category.strip(),
        status=_validate_status(data.status),
        is_recurring=bool(data.is_recurring),
        recurring_interval=_normalize_recurrence(data.is_recurring, data.recurring_interval),
        invoice_url=(data.invoice_url or "").strip() or None,
        reminder_sound_interval_minutes=_validate_sound_interval(data.reminder_sound_interval_minutes),
    )
    session.add(bill)
    session.commit()
    session.refresh(bill)
    logger.info("Bill created bill_id=%s due_date=%s", bill.id, bill.due_date.isoformat())
    return bill


def update_bill(session: Session, bill_id: int, data: UpdateBillInput) -> Bill:
    bill = get_bill(session, bill_id)
    changes = {f.name: getattr(data, f.name) for f in fields(data) if getattr(data, f.name) is not None}

    if "title" in changes:
        bill.title = _validate_title(changes["title"])
    if "amount" in changes:
        bill.amount = _validate_amount(changes["amount"])
    if "due_date" in changes:
        bill.due_date = _normalize_due_date(changes["due_date"])
    if "category" in changes:
        bill.category = changes["category"].strip()
    if "invoice_url" in changes:
        bill.invoice_url = changes["invoice_url"].strip() or None
    if "reminder_sound_interval_minutes" in changes:
        bill.reminder_sound_interval_minutes = _validate_sound_interval(changes["reminder_sound_interval_minutes"])
    if "is_recurring" in changes or "recurring_interval" in changes:
        is_recurring = changes.get("is_recurring", bill.is_recurring)
        bill.is_recurring = bool(is_recurring)
        bill.recurring_interval = _normalize_recurrence(
            bill.is_recurring, changes.get("recurring_interval", bill.recurring_interval)
        )
    if "status" in changes:
        bill.status = _validate_status(changes["status"])
        if bill.status == "paid":
            _clear_reminder_state(bill)

    session.commit()
    session.refresh(bill)
    return bill


def delete_bill(session: Session, bill_id: int) -> None:
    bill = get_bill(session, bill_id)
    session.delete(bill)
    session.commit()
    logger.info("Bill deleted bill_id=%s", bill_id)


def _advance_cadence(bill: Bill, cadence: str, sent_at: datetime) -> bool:
    for state in bill.reminder_states:
        if state.cadence == cadence:
            if sent_at <= state.last_sent_at:
                return False
            state.last_sent_at = sent_at
            return True
    bill.reminder_states.append(BillReminderState(cadence=cadence, last_sent_at=sent_at))
    return True


def update_bill_reminder_timestamps(
    session: Session,
    bill_id: int,
    *,
    last_reminded_at: datetime | None = None,
    last_email_reminded_at: datetime | None = None,
) -> Bill:
    """Move a bill's reminder stamps forward.

    Stamps never move backwards and paid bills are left untouched, so a stale
    writer cannot rewind or resurrect reminder state.
    """
    bill = get_bill(session, bill_id)
    if bill.status != "unpaid":
        logger.debug("Reminder stamp ignored for paid bill bill_id=%s", bill_id)
        return bill

    changed = False
    if last_email_reminded_at is not None:
        changed |= _advance_cadence(bill, REMINDER_CADENCE_EMAIL, last_email_reminded_at)
    if last_reminded_at is not None:
        changed |= _advance_cadence(bill, REMINDER_CADENCE_SOUND, last_reminded_at)
    if changed:
        session.commit()
        session.refresh(bill)
    return bill
