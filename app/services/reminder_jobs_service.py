from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timedelta
import logging

from sqlalchemy import inspect
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.models import Bill, NotificationSettings, ReminderLog
from app.models.bills import REMINDER_CADENCE_EMAIL, REMINDER_CADENCE_SOUND
from app.services.bills_service import get_bill, list_unpaid_bill_ids, update_bill_reminder_timestamps
from app.services.channels import ReminderChannel
from app.services.delivery_errors import ChannelDeliveryError
from app.services.settings_service import get_or_create_notification_settings
from app.services.urgency import URGENCY_RED, URGENCY_YELLOW, classify_bill

logger = logging.getLogger(__name__)


REMINDER_SWEEP_JOB_NAME = "run_reminder_sweep"
YELLOW_EMAIL_SPACING = timedelta(days=2)
REQUIRED_TABLES = {"bills", "bill_reminder_state", "notification_settings", "reminder_log"}

# Row-level problems that make one bill unusable without affecting the others.
BILL_DATA_ERRORS = (ValueError, TypeError, ArithmeticError, SQLAlchemyError)


@dataclass(frozen=True)
class ReminderSweepResult:
    job_name: str
    swept_at: datetime
    bills_evaluated: int
    bills_skipped: int
    sent: dict[str, int] = field(default_factory=dict)
    send_errors: int = 0

    def sent_count(self, channel: str) -> int:
        return self.sent.get(channel, 0)


def email_cadence_due(*, urgency: str, last_sent_at: datetime | None, now: datetime) -> bool:
    """Red: once per calendar day. Yellow: at least two whole days apart."""
    if urgency == URGENCY_RED:
        return last_sent_at is None or last_sent_at.date() < now.date()
    if urgency == URGENCY_YELLOW:
        return last_sent_at is None or now - last_sent_at >= YELLOW_EMAIL_SPACING
    return False


def sound_cadence_due(
    *,
    urgency: str,
    last_sent_at: datetime | None,
    interval_minutes: int,
    now: datetime,
) -> bool:
    if urgency != URGENCY_RED:
        return False
    return last_sent_at is None or now - last_sent_at >= timedelta(minutes=interval_minutes)


def cadence_due(cadence: str, *, bill: Bill, urgency: str, now: datetime) -> bool:
    if cadence == REMINDER_CADENCE_EMAIL:
        return email_cadence_due(urgency=urgency, last_sent_at=bill.last_email_reminded_at, now=now)
    if cadence == REMINDER_CADENCE_SOUND:
        return sound_cadence_due(
            urgency=urgency,
            last_sent_at=bill.last_reminded_at,
            interval_minutes=bill.reminder_sound_interval_minutes,
            now=now,
        )
    return False


def _log_attempt(
    session: Session,
    *,
    bill_id: int | None,
    channel: str,
    urgency: str,
    error_message: str | None = None,
) -> None:
    session.add(
        ReminderLog(
            bill_id=bill_id,
            channel=channel,
            urgency=urgency,
            status="sent" if error_message is None else "error",
            error_message=error_message,
        )
    )


@dataclass
class _SweepTally:
    sent: Counter = field(default_factory=Counter)
    send_errors: int = 0
    evaluated: int = 0
    skipped: int = 0


def _attempt_channel(
    session: Session,
    *,
    channel: ReminderChannel,
    bill: Bill,
    urgency: str,
    settings: NotificationSettings,
    now: datetime,
    tally: _SweepTally,
) -> bool:
    try:
        channel.send(bill, urgency, settings, now=now)
    except ChannelDeliveryError as exc:
        tally.send_errors += 1
        logger.warning(
            "Reminder delivery failed channel=%s bill_id=%s urgency=%s retryable=%s error=%s",
            channel.name,
            bill.id,
            urgency,
            exc.retryable,
            exc,
        )
        _log_attempt(session, bill_id=bill.id, channel=channel.name, urgency=urgency, error_message=str(exc))
        return False
    except Exception as exc:
        # An unmapped provider error still counts as a failed attempt for this channel only.
        tally.send_errors += 1
        logger.exception(
            "Reminder delivery raised unexpectedly channel=%s bill_id=%s urgency=%s",
            channel.name,
            bill.id,
            urgency,
        )
        _log_attempt(
            session,
            bill_id=bill.id,
            channel=channel.name,
            urgency=urgency,
            error_message=f"{exc.__class__.__name__}: {exc}",
        )
        return False
    tally.sent[channel.name] += 1
    _log_attempt(session, bill_id=bill.id, channel=channel.name, urgency=urgency)
    return True


def _process_bill(
    session: Session,
    *,
    bill: Bill,
    settings: NotificationSettings,
    channels: list[ReminderChannel],
    now: datetime,
    advance_on_failure: bool,
    tally: _SweepTally,
) -> None:
    urgency = classify_bill(bill, now)
    if urgency not in (URGENCY_RED, URGENCY_YELLOW):
        return

    stamps: dict[str, datetime] = {}
    cadences = list(dict.fromkeys(channel.cadence for channel in channels))
    for cadence in cadences:
        members = [ch for ch in channels if ch.cadence == cadence and urgency in ch.urgencies]
        if not members or not cadence_due(cadence, bill=bill, urgency=urgency, now=now):
            continue

        attempted = False
        delivered = False
        for channel in members:
            if not channel.is_configured(settings):
                logger.debug("Reminder channel skipped (not configured) channel=%s bill_id=%s", channel.name, bill.id)
                continue
            attempted = True
            delivered |= _attempt_channel(
                session,
                channel=channel,
                bill=bill,
                urgency=urgency,
                settings=settings,
                now=now,
                tally=tally,
            )
        if delivered or (attempted and advance_on_failure):
            stamps[cadence] = now

    if stamps:
        update_bill_reminder_timestamps(
            session,
            bill.id,
            last_email_reminded_at=stamps.get(REMINDER_CADENCE_EMAIL),
            last_reminded_at=stamps.get(REMINDER_CADENCE_SOUND),
        )
    session.commit()


def run_reminder_sweep(
    session: Session,
    *,
    now: datetime,
    channels: list[ReminderChannel],
    advance_on_failure: bool = True,
) -> ReminderSweepResult:
    """Evaluate every unpaid bill once against ``now`` and fire due reminders.

    Bills are loaded one at a time so a malformed row is skipped instead of
    aborting the sweep. Each bill's cadence stamps are written and committed
    right after that bill's own send attempts.
    """
    settings = get_or_create_notification_settings(session)
    tally = _SweepTally()

    for bill_id in list_unpaid_bill_ids(session):
        try:
            bill = get_bill(session, bill_id)
            tally.evaluated += 1
            _process_bill(
                session,
                bill=bill,
                settings=settings,
                channels=channels,
                now=now,
                advance_on_failure=advance_on_failure,
                tally=tally,
            )
        except BILL_DATA_ERRORS:
            session.rollback()
            tally.skipped += 1
            logger.exception("Reminder sweep skipped bill bill_id=%s", bill_id)

    result = ReminderSweepResult(
        job_name=REMINDER_SWEEP_JOB_NAME,
        swept_at=now,
        bills_evaluated=tally.evaluated,
        bills_skipped=tally.skipped,
        sent=dict(tally.sent),
        send_errors=tally.send_errors,
    )
    logger.info(
        "Reminder sweep completed swept_at=%s evaluated=%s skipped=%s sent=%s send_errors=%s",
        now.isoformat(timespec="seconds"),
        result.bills_evaluated,
        result.bills_skipped,
        result.sent,
        result.send_errors,
    )
    return result


def run_reminder_sweep_if_ready(
    session: Session,
    *,
    now: datetime,
    channels: list[ReminderChannel],
    advance_on_failure: bool = True,
) -> ReminderSweepResult | None:
    tables = set(inspect(session.bind).get_table_names())
    if not REQUIRED_TABLES.issubset(tables):
        logger.debug("Reminder sweep readiness check failed tables=%s", ",".join(sorted(tables)))
        return None
    return run_reminder_sweep(session, now=now, channels=channels, advance_on_failure=advance_on_failure)


def send_channel_test(
    session: Session,
    *,
    channel: ReminderChannel,
) -> None:
    """Deliver a test message on one channel, ignoring cadence.

    Raises ``ChannelNotConfiguredError`` or ``ChannelDeliveryError`` so callers
    can surface the failure synchronously. Delivery attempts are logged.
    """
    settings = get_or_create_notification_settings(session)
    try:
        channel.send_test(settings)
    except ChannelDeliveryError as exc:
        _log_attempt(session, bill_id=None, channel=channel.name, urgency="test", error_message=str(exc))
        session.commit()
        raise
    _log_attempt(session, bill_id=None, channel=channel.name, urgency="test")
    session.commit()
