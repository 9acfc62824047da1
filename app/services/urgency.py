from __future__ import annotations

from datetime import date, datetime

from app.models.bills import Bill


URGENCY_RED = "red"
URGENCY_YELLOW = "yellow"
URGENCY_GREEN = "green"
URGENCY_PAID = "paid"

RED_MAX_DAYS = 2
YELLOW_MAX_DAYS = 7


def _calendar_date(value: date | datetime) -> date:
    if isinstance(value, datetime):
        return value.date()
    return value


def days_until_due(*, due_date: date | datetime, now: date | datetime) -> int:
    """Whole calendar days from ``now`` to ``due_date``; negative when overdue."""
    return (_calendar_date(due_date) - _calendar_date(now)).days


def classify_urgency(*, due_date: date | datetime, status: str, now: date | datetime) -> str:
    if status == "paid":
        return URGENCY_PAID

    diff_days = days_until_due(due_date=due_date, now=now)
    if diff_days <= RED_MAX_DAYS:
        return URGENCY_RED
    if diff_days <= YELLOW_MAX_DAYS:
        return URGENCY_YELLOW
    return URGENCY_GREEN


def classify_bill(bill: Bill, now: date | datetime) -> str:
    return classify_urgency(due_date=bill.due_date, status=bill.status, now=now)
