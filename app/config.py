from __future__ import annotations

import os
from dataclasses import dataclass


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    database_url: str
    timezone: str
    app_host: str
    app_port: int
    sqlite_busy_timeout_ms: int
    reminder_sweep_interval_seconds: float
    reminder_advance_on_failure: bool
    run_reminder_scheduler: bool
    seed_demo_bills: bool
    notification_send_timeout_seconds: float
    smtp_host: str | None
    smtp_port: int
    smtp_username: str | None
    smtp_password: str | None
    smtp_from: str
    smtp_use_tls: bool
    telegram_api_base: str


def get_settings() -> Settings:
    return Settings(
        database_url=os.getenv("DATABASE_URL", "sqlite:///./billwatch.db"),
        timezone=os.getenv("TZ", "Asia/Jakarta"),
        app_host=os.getenv("APP_HOST", "0.0.0.0"),
        app_port=int(os.getenv("APP_PORT", "8000")),
        sqlite_busy_timeout_ms=int(os.getenv("SQLITE_BUSY_TIMEOUT_MS", "5000")),
        reminder_sweep_interval_seconds=float(os.getenv("REMINDER_SWEEP_INTERVAL_SECONDS", "60")),
        reminder_advance_on_failure=_env_flag("REMINDER_ADVANCE_ON_FAILURE", "1"),
        run_reminder_scheduler=_env_flag("RUN_REMINDER_SCHEDULER", "1"),
        seed_demo_bills=_env_flag("SEED_DEMO_BILLS", "0"),
        notification_send_timeout_seconds=float(os.getenv("NOTIFICATION_SEND_TIMEOUT_SECONDS", "10")),
        smtp_host=os.getenv("SMTP_HOST") or None,
        smtp_port=int(os.getenv("SMTP_PORT", "587")),
        smtp_username=os.getenv("SMTP_USERNAME") or None,
        smtp_password=os.getenv("SMTP_PASSWORD") or None,
        smtp_from=os.getenv("SMTP_FROM", "billwatch@localhost"),
        smtp_use_tls=_env_flag("SMTP_USE_TLS", "1"),
        telegram_api_base=os.getenv("TELEGRAM_API_BASE", "https://api.telegram.org").rstrip("/"),
    )
