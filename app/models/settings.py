from __future__ import annotations

from sqlalchemy import Boolean, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base, TimestampMixin


class NotificationSettings(TimestampMixin, Base):
    __tablename__ = "notification_settings"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    is_email_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    telegram_token: Mapped[str | None] = mapped_column(String(255), nullable=True)
    telegram_chat_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    is_telegram_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    alert_sound_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_sound_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_muted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
