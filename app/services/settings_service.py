from __future__ import annotations

from dataclasses import dataclass
import re

from sqlalchemy.orm import Session

from app.models import NotificationSettings


_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class SettingsValidationError(ValueError):
    pass


@dataclass(frozen=True)
class UpdateNotificationSettingsInput:
    """Partial update; ``None`` leaves a field as is, an empty string clears it."""

    user_email: str | None = None
    is_email_enabled: bool | None = None
    telegram_token: str | None = None
    telegram_chat_id: str | None = None
    is_telegram_enabled: bool | None = None
    alert_sound_url: str | None = None
    is_sound_enabled: bool | None = None
    is_muted: bool | None = None


def get_or_create_notification_settings(session: Session) -> NotificationSettings:
    row = session.query(NotificationSettings).order_by(NotificationSettings.id.asc()).first()
    if row is None:
        row = NotificationSettings(
            user_email=None,
            is_email_enabled=True,
            telegram_token=None,
            telegram_chat_id=None,
            is_telegram_enabled=False,
            alert_sound_url=None,
            is_sound_enabled=False,
            is_muted=False,
        )
        session.add(row)
        session.commit()
        session.refresh(row)
    return row


def _clean(value: str) -> str | None:
    return value.strip() or None


def _validate_email(value: str) -> str | None:
    cleaned = _clean(value)
    if cleaned is not None and not _EMAIL_RE.match(cleaned):
        raise SettingsValidationError("Email address is not valid.")
    return cleaned


def update_notification_settings(
    session: Session,
    data: UpdateNotificationSettingsInput,
) -> NotificationSettings:
    row = get_or_create_notification_settings(session)

    if data.user_email is not None:
        row.user_email = _validate_email(data.user_email)
    if data.telegram_token is not None:
        row.telegram_token = _clean(data.telegram_token)
    if data.telegram_chat_id is not None:
        row.telegram_chat_id = _clean(data.telegram_chat_id)
    if data.alert_sound_url is not None:
        row.alert_sound_url = _clean(data.alert_sound_url)
    for flag in ("is_email_enabled", "is_telegram_enabled", "is_sound_enabled", "is_muted"):
        value = getattr(data, flag)
        if value is not None:
            setattr(row, flag, bool(value))

    session.commit()
    session.refresh(row)
    return row
