from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from sqlalchemy import func, select
from sqlalchemy.orm import Session

import app.models  # noqa: F401
from app.db import build_engine, build_session_factory
from app.models.base import Base
from app.models.bills import BillReminderState
from app.services.bills_service import (
    BillNotFoundError,
    BillValidationError,
    CreateBillInput,
    UpdateBillInput,
    create_bill,
    delete_bill,
    get_bill,
    list_bills,
    list_unpaid_bill_ids,
    list_unpaid_bills,
    summarize_bills,
    update_bill,
    update_bill_reminder_timestamps,
)
from app.services.urgency import classify_bill


NOW = datetime(2026, 3, 10, 9, 0)


def _make_session(tmp_path) -> Session:
    engine = build_engine(f"sqlite:///{tmp_path / 'bills.db'}")
    Base.metadata.create_all(engine)
    return build_session_factory(engine)()


def _bill_input(**overrides) -> CreateBillInput:
    values = {
        "title": "Internet",
        "amount": Decimal("350000.50"),
        "due_date": datetime(2026, 3, 11, 9, 0),
        "category": "Utilities",
    }
    values.update(overrides)
    return CreateBillInput(**values)


def test_create_bill_defaults_and_decimal_amount(tmp_path) -> None:
    session = _make_session(tmp_path)
    try:
        bill = create_bill(session, _bill_input(title="  Internet  "))
        assert bill.id is not None
        assert bill.title == "Internet"
        assert bill.amount == Decimal("350000.50")
        assert bill.status == "unpaid"
        assert bill.is_recurring is False
        assert bill.recurring_interval is None
        assert bill.reminder_sound_interval_minutes == 120
        assert bill.last_email_reminded_at is None
        assert bill.last_reminded_at is None
        assert bill.created_at is not None
    finally:
        session.close()


def test_create_bill_validation(tmp_path) -> None:
    session = _make_session(tmp_path)
    try:
        with pytest.raises(BillValidationError):
            create_bill(session, _bill_input(title="   "))
        with pytest.raises(BillValidationError):
            create_bill(session, _bill_input(amount=Decimal("-1")))
        with pytest.raises(BillValidationError):
            create_bill(session, _bill_input(status="overdue"))
        with pytest.raises(BillValidationError):
            create_bill(session, _bill_input(is_recurring=True, recurring_interval="weekly"))
        with pytest.raises(BillValidationError):
            create_bill(session, _bill_input(reminder_sound_interval_minutes=0))
        assert list_bills(session) == []
    finally:
        session.close()


def test_recurring_interval_normalization(tmp_path) -> None:
    session = _make_session(tmp_path)
    try:
        defaulted = create_bill(session, _bill_input(is_recurring=True))
        assert defaulted.recurring_interval == "monthly"

        ignored = create_bill(session, _bill_input(is_recurring=False, recurring_interval="yearly"))
        assert ignored.recurring_interval is None

        custom = create_bill(session, _bill_input(is_recurring=True, recurring_interval="custom"))
        assert custom.recurring_interval == "custom"

        turned_off = update_bill(session, custom.id, UpdateBillInput(is_recurring=False))
        assert turned_off.is_recurring is False
        assert turned_off.recurring_interval is None
    finally:
        session.close()


def test_aware_due_date_is_converted_to_configured_timezone(tmp_path, monkeypatch) -> None:
    monkeypatch.setenv("TZ", "Asia/Jakarta")
    session = _make_session(tmp_path)
    try:
        # Local midnight on Oct 20 in Jakarta, sent as a UTC instant.
        utc_instant = datetime(2026, 10, 19, 17, 0, tzinfo=timezone.utc)
        bill = create_bill(session, _bill_input(due_date=utc_instant))
        assert bill.due_date == datetime(2026, 10, 20, 0, 0)
        assert classify_bill(bill, datetime(2026, 10, 17, 9, 0)) == "yellow"

        same_zone = datetime(2026, 3, 11, 9, 0, tzinfo=timezone(timedelta(hours=7)))
        moved = update_bill(session, bill.id, UpdateBillInput(due_date=same_zone))
        assert moved.due_date == datetime(2026, 3, 11, 9, 0)

        naive = update_bill(session, bill.id, UpdateBillInput(due_date=datetime(2026, 3, 12, 8, 0)))
        assert naive.due_date == datetime(2026, 3, 12, 8, 0)
    finally:
        session.close()


def test_aware_due_date_follows_tz_setting(tmp_path, monkeypatch) -> None:
    monkeypatch.setenv("TZ", "UTC")
    session = _make_session(tmp_path)
    try:
        aware = datetime(2026, 3, 11, 9, 0, tzinfo=timezone(timedelta(hours=7)))
        bill = create_bill(session, _bill_input(due_date=aware))
        assert bill.due_date == datetime(2026, 3, 11, 2, 0)
    finally:
        session.close()


def test_list_by_month_and_unpaid(tmp_path) -> None:
    session = _make_session(tmp_path)
    try:
        feb = create_bill(session, _bill_input(title="Feb", due_date=datetime(2026, 2, 28, 23, 59)))
        mar = create_bill(session, _bill_input(title="Mar", due_date=datetime(2026, 3, 1, 0, 0)))
        dec = create_bill(session, _bill_input(title="Dec", due_date=datetime(2026, 12, 31, 12, 0)))
        paid = create_bill(session, _bill_input(title="Paid", due_date=datetime(2026, 3, 5), status="paid"))

        assert [b.title for b in list_bills(session, month=3, year=2026)] == ["Mar", "Paid"]
        assert [b.title for b in list_bills(session, month=12, year=2026)] == ["Dec"]
        assert len(list_bills(session)) == 4

        assert [b.id for b in list_unpaid_bills(session)] == [feb.id, mar.id, dec.id]
        assert list_unpaid_bill_ids(session) == [feb.id, mar.id, dec.id]
        assert paid.id not in list_unpaid_bill_ids(session)
    finally:
        session.close()


def test_update_and_delete(tmp_path) -> None:
    session = _make_session(tmp_path)
    try:
        bill = create_bill(session, _bill_input())
        updated = update_bill(
            session,
            bill.id,
            UpdateBillInput(amount=Decimal("400000"), category="Home", invoice_url=" https://example.com/inv.pdf "),
        )
        assert updated.amount == Decimal("400000")
        assert updated.category == "Home"
        assert updated.invoice_url == "https://example.com/inv.pdf"
        assert updated.title == "Internet"

        delete_bill(session, bill.id)
        with pytest.raises(BillNotFoundError):
            get_bill(session, bill.id)
        with pytest.raises(BillNotFoundError):
            update_bill(session, 999, UpdateBillInput(title="x"))
    finally:
        session.close()


def test_reminder_timestamps_only_move_forward(tmp_path) -> None:
    session = _make_session(tmp_path)
    try:
        bill = create_bill(session, _bill_input())

        update_bill_reminder_timestamps(session, bill.id, last_email_reminded_at=NOW, last_reminded_at=NOW)
        bill = get_bill(session, bill.id)
        assert bill.last_email_reminded_at == NOW
        assert bill.last_reminded_at == NOW

        update_bill_reminder_timestamps(session, bill.id, last_email_reminded_at=NOW - timedelta(days=1))
        assert get_bill(session, bill.id).last_email_reminded_at == NOW

        later = NOW + timedelta(minutes=121)
        update_bill_reminder_timestamps(session, bill.id, last_reminded_at=later)
        bill = get_bill(session, bill.id)
        assert bill.last_reminded_at == later
        assert bill.last_email_reminded_at == NOW
    finally:
        session.close()


def test_paid_bills_clear_and_ignore_reminder_state(tmp_path) -> None:
    session = _make_session(tmp_path)
    try:
        bill = create_bill(session, _bill_input())
        update_bill_reminder_timestamps(session, bill.id, last_email_reminded_at=NOW, last_reminded_at=NOW)

        paid = update_bill(session, bill.id, UpdateBillInput(status="paid"))
        assert paid.last_email_reminded_at is None
        assert paid.last_reminded_at is None
        assert session.scalar(select(func.count()).select_from(BillReminderState)) == 0

        update_bill_reminder_timestamps(session, bill.id, last_email_reminded_at=NOW + timedelta(days=1))
        assert get_bill(session, bill.id).last_email_reminded_at is None
    finally:
        session.close()


def test_deleting_bill_removes_reminder_state(tmp_path) -> None:
    session = _make_session(tmp_path)
    try:
        bill = create_bill(session, _bill_input())
        update_bill_reminder_timestamps(session, bill.id, last_reminded_at=NOW)
        delete_bill(session, bill.id)
        assert session.scalar(select(func.count()).select_from(BillReminderState)) == 0
    finally:
        session.close()


def test_summarize_month_totals_and_overdue(tmp_path) -> None:
    session = _make_session(tmp_path)
    try:
        create_bill(session, _bill_input(title="Paid", amount=Decimal("100.50"), due_date=datetime(2026, 3, 2), status="paid"))
        create_bill(session, _bill_input(title="Late", amount=Decimal("200"), due_date=datetime(2026, 3, 9, 23, 0)))
        create_bill(session, _bill_input(title="Today", amount=Decimal("300"), due_date=datetime(2026, 3, 10, 0, 0)))
        create_bill(session, _bill_input(title="April", amount=Decimal("999"), due_date=datetime(2026, 4, 1)))

        summary = summarize_bills(list_bills(session, month=3, year=2026), now=NOW)
        assert summary.bill_count == 3
        assert summary.total_amount == Decimal("600.50")
        assert summary.paid_amount == Decimal("100.50")
        assert summary.unpaid_amount == Decimal("500.00")
        assert summary.overdue_count == 1

        empty = summarize_bills([], now=NOW)
        assert (empty.bill_count, empty.total_amount, empty.overdue_count) == (0, Decimal("0"), 0)
    finally:
        session.close()
