"""Reminder delivery channels.

Every channel answers the same three questions for the reminder sweep: is it
configured for the current notification settings, how does it deliver a
reminder for one bill, and how does it deliver a manual test message. Channels
never look at cadence; that is the scheduler's job.
"""
from __future__ import annotations

from collections.abc import Callable
from datetime import datetime
from decimal import Decimal
import html
import logging

from app.config import Settings, get_settings
from app.models import Bill, NotificationSettings
from app.models.bills import REMINDER_CADENCE_EMAIL, REMINDER_CADENCE_SOUND
from app.services.delivery_errors import ChannelNotConfiguredError
from app.services.email_service import SmtpConfig, send_email
from app.services.telegram_service import escape_markdown_v2, send_telegram_message
from app.services.urgency import URGENCY_RED, URGENCY_YELLOW, days_until_due

logger = logging.getLogger(__name__)


CHANNEL_EMAIL = "email"
CHANNEL_TELEGRAM = "telegram"
CHANNEL_SOUND = "sound"


def _format_amount(amount: Decimal | int | float) -> str:
    return f"{Decimal(str(amount)):,.2f}"


def describe_due(due_date: datetime, now: datetime) -> str:
    diff_days = days_until_due(due_date=due_date, now=now)
    if diff_days < -1:
        return f"{-diff_days} days overdue"
    if diff_days == -1:
        return "1 day overdue"
    if diff_days == 0:
        return "due today"
    if diff_days == 1:
        return "due tomorrow"
    return f"due in {diff_days} days"


def build_reminder_subject(bill: Bill, urgency: str, now: datetime) -> str:
    when = describe_due(bill.due_date, now)
    if urgency == URGENCY_RED:
        return f"[Action needed] {bill.title} is {when}"
    return f"Reminder: {bill.title} is {when}"


def build_reminder_email_html(bill: Bill, urgency: str, now: datetime) -> str:
    if urgency == URGENCY_RED:
        lead = "This bill needs your attention now. Please pay it as soon as possible."
        accent = "#dc2626"
    else:
        lead = "This bill is coming up soon. Plan the payment ahead of time."
        accent = "#d97706"
    rows = [
        ("Bill", bill.title),
        ("Amount", _format_amount(bill.amount)),
        ("Due date", bill.due_date.strftime("%Y-%m-%d")),
        ("Status", describe_due(bill.due_date, now)),
        ("Category", bill.category),
    ]
    row_html = "".join(
        f"<tr><td><strong>{html.escape(label)}</strong></td><td>{html.escape(value)}</td></tr>"
        for label, value in rows
    )
    invoice = ""
    if bill.invoice_url:
        invoice = f'<p><a href="{html.escape(bill.invoice_url, quote=True)}">View invoice</a></p>'
    return (
        f'<h2 style="color:{accent}">{html.escape(build_reminder_subject(bill, urgency, now))}</h2>'
        f"<p>{lead}</p>"
        f"<table>{row_html}</table>"
        f"{invoice}"
    )


def build_reminder_telegram_text(bill: Bill, urgency: str, now: datetime) -> str:
    header = "*Pay now*" if urgency == URGENCY_RED else "*Upcoming bill*"
    lines = [
        header,
        "",
        f"{escape_markdown_v2(bill.title)} : {escape_markdown_v2(_format_amount(bill.amount))}",
        f"Due *{escape_markdown_v2(bill.due_date.strftime('%Y-%m-%d'))}* \\({escape_markdown_v2(describe_due(bill.due_date, now))}\\)",
        f"Category: {escape_markdown_v2(bill.category)}",
    ]
    return "\n".join(lines)


class ReminderChannel:
    """Base class for a reminder delivery channel.

    ``cadence`` names the reminder-state key a successful or attempted send
    stamps. Channels that share a key share a cadence.
    """

    name: str = ""
    cadence: str = ""
    # Urgency tiers this channel reacts to during a sweep.
    urgencies: tuple[str, ...] = ()

    def is_configured(self, settings: NotificationSettings) -> bool:
        raise NotImplementedError

    def missing_configuration(self, settings: NotificationSettings) -> str:
        return f"{self.name} channel is not configured."

    def send(self, bill: Bill, urgency: str, settings: NotificationSettings, *, now: datetime) -> None:
        raise NotImplementedError

    def deliver_test(self, settings: NotificationSettings) -> None:
        raise NotImplementedError

    def send_test(self, settings: NotificationSettings) -> None:
        if not self.is_configured(settings):
            raise ChannelNotConfiguredError(self.missing_configuration(settings))
        self.deliver_test(settings)


class SoundChannel(ReminderChannel):
    """Marks a bill for the client-side audible alert.

    There is no server-side delivery: the reminder stamp written by the sweep is
    the marker, and the browser player decides whether to loop the alert sound
    from the sound alert state. Muting only affects playback.
    """

    name = CHANNEL_SOUND
    cadence = REMINDER_CADENCE_SOUND
    urgencies = (URGENCY_RED,)

    def is_configured(self, settings: NotificationSettings) -> bool:
        return bool(settings.is_sound_enabled)

    def missing_configuration(self, settings: NotificationSettings) -> str:
        return "Sound alerts are disabled."

    def send(self, bill: Bill, urgency: str, settings: NotificationSettings, *, now: datetime) -> None:
        logger.info("Sound alert marked bill_id=%s interval_minutes=%s", bill.id, bill.reminder_sound_interval_minutes)

    def deliver_test(self, settings: NotificationSettings) -> None:
        if not settings.alert_sound_url:
            raise ChannelNotConfiguredError("An alert sound URL is required to test sound alerts.")


class EmailChannel(ReminderChannel):
    name = CHANNEL_EMAIL
    cadence = REMINDER_CADENCE_EMAIL
    urgencies = (URGENCY_RED, URGENCY_YELLOW)

    def __init__(
        self,
        *,
        smtp: SmtpConfig,
        timeout_seconds: float = 10.0,
        sender: Callable[..., None] = send_email,
    ):
        self.smtp = smtp
        self.timeout_seconds = timeout_seconds
        self._sender = sender

    def is_configured(self, settings: NotificationSettings) -> bool:
        return bool(settings.is_email_enabled and (settings.user_email or "").strip())

    def missing_configuration(self, settings: NotificationSettings) -> str:
        if not settings.is_email_enabled:
            return "Email reminders are disabled."
        return "An email address is required to send email reminders."

    def send(self, bill: Bill, urgency: str, settings: NotificationSettings, *, now: datetime) -> None:
        self._sender(
            to=settings.user_email or "",
            subject=build_reminder_subject(bill, urgency, now),
            html_body=build_reminder_email_html(bill, urgency, now),
            smtp=self.smtp,
            timeout_seconds=self.timeout_seconds,
        )

    def deliver_test(self, settings: NotificationSettings) -> None:
        self._sender(
            to=settings.user_email or "",
            subject="BillWatch test email",
            html_body="<p>BillWatch test message: email reminders are configured.</p>",
            smtp=self.smtp,
            timeout_seconds=self.timeout_seconds,
        )


class TelegramChannel(ReminderChannel):
    name = CHANNEL_TELEGRAM
    cadence = REMINDER_CADENCE_EMAIL
    urgencies = (URGENCY_RED, URGENCY_YELLOW)

    def __init__(
        self,
        *,
        api_base: str,
        timeout_seconds: float = 10.0,
        sender: Callable[..., object] = send_telegram_message,
    ):
        self.api_base = api_base
        self.timeout_seconds = timeout_seconds
        self._sender = sender

    def is_configured(self, settings: NotificationSettings) -> bool:
        return bool(settings.is_telegram_enabled and settings.telegram_token and settings.telegram_chat_id)

    def missing_configuration(self, settings: NotificationSettings) -> str:
        if not settings.is_telegram_enabled:
            return "Telegram is disabled."
        return "Telegram bot token and chat ID are required to send a message."

    def send(self, bill: Bill, urgency: str, settings: NotificationSettings, *, now: datetime) -> None:
        self._sender(
            bot_token=settings.telegram_token or "",
            chat_id=settings.telegram_chat_id or "",
            text=build_reminder_telegram_text(bill, urgency, now),
            parse_mode="MarkdownV2",
            timeout_seconds=self.timeout_seconds,
            api_base=self.api_base,
        )

    def deliver_test(self, settings: NotificationSettings) -> None:
        self._sender(
            bot_token=settings.telegram_token or "",
            chat_id=settings.telegram_chat_id or "",
            text="BillWatch test message: Telegram delivery is configured.",
            timeout_seconds=self.timeout_seconds,
            api_base=self.api_base,
        )


def build_default_channels(config: Settings | None = None) -> list[ReminderChannel]:
    config = config or get_settings()
    smtp = SmtpConfig(
        host=config.smtp_host,
        port=config.smtp_port,
        username=config.smtp_username,
        password=config.smtp_password,
        sender=config.smtp_from,
        use_tls=config.smtp_use_tls,
    )
    return [
        EmailChannel(smtp=smtp, timeout_seconds=config.notification_send_timeout_seconds),
        TelegramChannel(api_base=config.telegram_api_base, timeout_seconds=config.notification_send_timeout_seconds),
        SoundChannel(),
    ]


def get_channel(channels: list[ReminderChannel], name: str) -> ReminderChannel:
    for channel in channels:
        if channel.name == name:
            return channel
    raise KeyError(name)
