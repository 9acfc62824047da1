from __future__ import annotations

import asyncio
from datetime import datetime, timedelta
from decimal import Decimal
import threading

import app.models  # noqa: F401
from app.db import build_engine, build_session_factory
from app.models.base import Base
from app.services.bills_service import CreateBillInput, create_bill
from app.services.channels import EmailChannel, SoundChannel
from app.services.email_service import SmtpConfig
from app.services.reminder_scheduler import ReminderScheduler, local_now
from app.services.settings_service import UpdateNotificationSettingsInput, update_notification_settings


NOW = datetime(2026, 3, 10, 9, 0)
SMTP = SmtpConfig(host="smtp.test", port=25, username=None, password=None, sender="bw@test")


class RecordingSender:
    def __init__(self):
        self.calls: list[dict] = []

    def __call__(self, **kwargs) -> None:
        self.calls.append(kwargs)


class BlockingSender(RecordingSender):
    def __init__(self):
        super().__init__()
        self.entered = threading.Event()
        self.release = threading.Event()

    def __call__(self, **kwargs) -> None:
        super().__call__(**kwargs)
        self.entered.set()
        self.release.wait(timeout=5)


def _session_factory(tmp_path, *, with_red_bill: bool = True):
    engine = build_engine(f"sqlite:///{tmp_path / 'scheduler.db'}")
    Base.metadata.create_all(engine)
    factory = build_session_factory(engine)
    with factory() as session:
        update_notification_settings(session, UpdateNotificationSettingsInput(user_email="me@example.com"))
        if with_red_bill:
            create_bill(
                session,
                CreateBillInput(title="Rent", amount=Decimal("1500000"), due_date=NOW + timedelta(days=1), category="Home"),
            )
    return factory


def test_run_once_uses_injected_clock(tmp_path) -> None:
    sender = RecordingSender()
    scheduler = ReminderScheduler(
        session_factory=_session_factory(tmp_path),
        channels=[EmailChannel(smtp=SMTP, sender=sender), SoundChannel()],
        clock=lambda: NOW,
    )

    result = scheduler.run_once()

    assert result is not None
    assert result.swept_at == NOW
    assert result.sent == {"email": 1}
    assert scheduler.sweep_in_progress is False
    assert scheduler.run_once().sent == {}
    assert len(sender.calls) == 1


def test_overlapping_tick_is_skipped(tmp_path) -> None:
    sender = BlockingSender()
    scheduler = ReminderScheduler(
        session_factory=_session_factory(tmp_path),
        channels=[EmailChannel(smtp=SMTP, sender=sender)],
        clock=lambda: NOW,
    )
    results = []
    worker = threading.Thread(target=lambda: results.append(scheduler.run_once()))
    worker.start()
    try:
        assert sender.entered.wait(timeout=5)
        assert scheduler.sweep_in_progress is True
        assert scheduler.run_once() is None
    finally:
        sender.release.set()
        worker.join(timeout=5)

    assert len(sender.calls) == 1
    assert results[0].sent == {"email": 1}
    assert scheduler.sweep_in_progress is False


def test_run_once_without_schema_returns_none(tmp_path) -> None:
    engine = build_engine(f"sqlite:///{tmp_path / 'empty.db'}")
    scheduler = ReminderScheduler(
        session_factory=build_session_factory(engine),
        channels=[SoundChannel()],
        clock=lambda: NOW,
    )
    assert scheduler.run_once() is None
    assert scheduler.sweep_in_progress is False


def test_background_loop_sweeps_and_stops(tmp_path) -> None:
    sender = RecordingSender()
    scheduler = ReminderScheduler(
        session_factory=_session_factory(tmp_path),
        channels=[EmailChannel(smtp=SMTP, sender=sender)],
        interval_seconds=3600,
        clock=lambda: NOW,
    )

    async def scenario() -> None:
        scheduler.start()
        assert scheduler.running
        for _ in range(500):
            if sender.calls:
                break
            await asyncio.sleep(0.01)
        await scheduler.stop()

    asyncio.run(scenario())

    assert len(sender.calls) == 1
    assert scheduler.running is False


def test_background_loop_survives_failed_tick(tmp_path) -> None:
    factory = _session_factory(tmp_path)
    attempts = []

    def flaky_factory():
        attempts.append(1)
        if len(attempts) == 1:
            raise ConnectionResetError(104, "Connection reset by peer")
        return factory()

    sender = RecordingSender()
    scheduler = ReminderScheduler(
        session_factory=flaky_factory,
        channels=[EmailChannel(smtp=SMTP, sender=sender)],
        interval_seconds=0.01,
        clock=lambda: NOW,
    )

    async def scenario() -> bool:
        scheduler.start()
        for _ in range(500):
            if sender.calls:
                break
            await asyncio.sleep(0.01)
        still_running = scheduler.running
        await scheduler.stop()
        return still_running

    assert asyncio.run(scenario()) is True
    assert len(attempts) >= 2
    assert len(sender.calls) == 1
    assert scheduler.sweep_in_progress is False


def test_local_now_is_naive_and_tolerates_unknown_zone() -> None:
    assert local_now("Asia/Jakarta").tzinfo is None
    assert local_now("Not/AZone").tzinfo is None
    assert local_now(None).tzinfo is None
