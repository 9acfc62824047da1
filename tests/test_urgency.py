from datetime import date, datetime, timedelta

import pytest

from app.services.urgency import (
    URGENCY_GREEN,
    URGENCY_PAID,
    URGENCY_RED,
    URGENCY_YELLOW,
    classify_urgency,
    days_until_due,
)


NOW = datetime(2026, 3, 10, 21, 30)


@pytest.mark.parametrize(
    ("diff_days", "expected"),
    [
        (-30, URGENCY_RED),
        (-1, URGENCY_RED),
        (0, URGENCY_RED),
        (1, URGENCY_RED),
        (2, URGENCY_RED),
        (3, URGENCY_YELLOW),
        (7, URGENCY_YELLOW),
        (8, URGENCY_GREEN),
        (365, URGENCY_GREEN),
    ],
)
def test_unpaid_tiers_at_boundaries(diff_days: int, expected: str) -> None:
    due = datetime(2026, 3, 10, 8, 0) + timedelta(days=diff_days)
    assert classify_urgency(due_date=due, status="unpaid", now=NOW) == expected


def test_paid_short_circuits_regardless_of_due_date() -> None:
    for due in (NOW - timedelta(days=400), NOW, NOW + timedelta(days=1), NOW + timedelta(days=400)):
        assert classify_urgency(due_date=due, status="paid", now=NOW) == URGENCY_PAID


def test_uses_calendar_days_not_elapsed_hours() -> None:
    # 14 hours away but on the next calendar day, versus later the same day.
    late_evening = datetime(2026, 3, 10, 23, 0)
    assert days_until_due(due_date=datetime(2026, 3, 11, 11, 30), now=late_evening) == 1
    assert days_until_due(due_date=datetime(2026, 3, 10, 23, 59), now=datetime(2026, 3, 10, 0, 1)) == 0

    # Two days and a few hours is still two calendar days: red, not yellow.
    assert classify_urgency(due_date=datetime(2026, 3, 12, 23, 59), status="unpaid", now=datetime(2026, 3, 10, 0, 0)) == URGENCY_RED
    assert classify_urgency(due_date=datetime(2026, 3, 13, 0, 0), status="unpaid", now=datetime(2026, 3, 10, 23, 59)) == URGENCY_YELLOW


def test_accepts_plain_dates_and_extreme_values() -> None:
    assert classify_urgency(due_date=date(2026, 3, 18), status="unpaid", now=date(2026, 3, 10)) == URGENCY_GREEN
    assert classify_urgency(due_date=date.min, status="unpaid", now=date.max) == URGENCY_RED
    assert classify_urgency(due_date=date.max, status="unpaid", now=date.min) == URGENCY_GREEN
