from __future__ import annotations

import calendar
from datetime import datetime


# Months between occurrences for each projectable interval. "custom" has no step.
INTERVAL_MONTH_STEPS = {
    "monthly": 1,
    "3-months": 3,
    "6-months": 6,
    "yearly": 12,
    "2-years": 24,
}


def _days_in_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def _add_months(year: int, month: int, offset: int) -> tuple[int, int]:
    zero_based = (year * 12 + (month - 1)) + offset
    return zero_based // 12, (zero_based % 12) + 1


def shift_months(anchor: datetime, month_offset: int) -> datetime:
    year, month = _add_months(anchor.year, anchor.month, month_offset)
    dom = min(anchor.day, _days_in_month(year, month))
    return anchor.replace(year=year, month=month, day=dom)


def generate_due_dates(
    *,
    recurring_interval: str | None,
    initial_due_date: datetime,
    range_start: datetime,
    range_end: datetime,
) -> list[datetime]:
    """Due dates of a bill within ``[range_start, range_end]``.

    Each occurrence is computed from the anchor, so a bill anchored on the 31st
    lands on the last day of shorter months and returns to the 31st afterwards.
    Intervals without a month step ("custom", unknown values, or ``None``) only
    ever yield the anchor itself.
    """
    if range_end < range_start:
        return []

    step = INTERVAL_MONTH_STEPS.get(recurring_interval or "")
    if step is None:
        if range_start <= initial_due_date <= range_end:
            return [initial_due_date]
        return []

    results: list[datetime] = []
    month_offset = 0
    while True:
        occurrence = shift_months(initial_due_date, month_offset)
        if occurrence > range_end:
            break
        if occurrence >= range_start:
            results.append(occurrence)
        month_offset += step
    return results
