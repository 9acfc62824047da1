from __future__ import annotations

import asyncio
from collections.abc import Callable
from datetime import datetime
import logging
import threading
import uuid
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from app.logging_config import reset_run_id, set_run_id
from app.services.channels import ReminderChannel
from app.services.reminder_jobs_service import ReminderSweepResult, run_reminder_sweep_if_ready

logger = logging.getLogger(__name__)


def local_now(timezone_name: str | None) -> datetime:
    """Naive wall-clock time in the configured timezone, matching stored due dates."""
    if timezone_name:
        try:
            return datetime.now(ZoneInfo(timezone_name)).replace(tzinfo=None)
        except ZoneInfoNotFoundError:
            logger.warning("Unknown timezone %s; falling back to system local time", timezone_name)
    return datetime.now()


class ReminderScheduler:
    """Owns the periodic reminder sweep.

    At most one sweep runs at a time. A tick that arrives while a sweep is in
    flight (from the timer or a manual trigger) is skipped rather than queued,
    so two sweeps never read and stamp the same bill concurrently.
    """

    def __init__(
        self,
        *,
        session_factory: sessionmaker[Session],
        channels: list[ReminderChannel],
        interval_seconds: float = 60.0,
        advance_on_failure: bool = True,
        clock: Callable[[], datetime] | None = None,
        timezone_name: str | None = None,
    ):
        self.session_factory = session_factory
        self.channels = channels
        self.interval_seconds = interval_seconds
        self.advance_on_failure = advance_on_failure
        self._clock = clock or (lambda: local_now(timezone_name))
        self._sweep_lock = threading.Lock()
        self._task: asyncio.Task[None] | None = None
        self._stop_event: asyncio.Event | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def now(self) -> datetime:
        return self._clock()

    @property
    def sweep_in_progress(self) -> bool:
        return self._sweep_lock.locked()

    def run_once(
        self,
        *,
        now: datetime | None = None,
        session: Session | None = None,
    ) -> ReminderSweepResult | None:
        if not self._sweep_lock.acquire(blocking=False):
            logger.info("Reminder sweep skipped; previous sweep still running")
            return None
        token = set_run_id(f"sweep-{uuid.uuid4().hex[:8]}")
        try:
            sweep_now = now or self.now()
            if session is not None:
                return self._sweep(session, sweep_now)
            with self.session_factory() as own_session:
                return self._sweep(own_session, sweep_now)
        finally:
            reset_run_id(token)
            self._sweep_lock.release()

    def _sweep(self, session: Session, now: datetime) -> ReminderSweepResult | None:
        result = run_reminder_sweep_if_ready(
            session,
            now=now,
            channels=self.channels,
            advance_on_failure=self.advance_on_failure,
        )
        if result is None:
            logger.info("Reminder sweep skipped; schema not ready yet")
        return result

    async def _run_loop(self, stop_event: asyncio.Event) -> None:
        logger.info("Reminder scheduler started interval_seconds=%s", self.interval_seconds)
        while not stop_event.is_set():
            try:
                await asyncio.to_thread(self.run_once)
            except SQLAlchemyError:
                logger.exception("Reminder sweep failed on database error; will retry on next tick")
            except Exception:
                logger.exception("Reminder sweep failed; will retry on next tick")
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self.interval_seconds)
            except asyncio.TimeoutError:
                pass
        logger.info("Reminder scheduler stopped")

    def start(self) -> None:
        if self.running:
            return
        self._stop_event = asyncio.Event()
        self._task = asyncio.get_running_loop().create_task(
            self._run_loop(self._stop_event), name="reminder-scheduler"
        )

    async def stop(self) -> None:
        if self._task is None or self._stop_event is None:
            return
        self._stop_event.set()
        await self._task
        self._task = None
        self._stop_event = None
