from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.orm import Session

from app.services.bills_service import list_unpaid_bills
from app.services.settings_service import get_or_create_notification_settings
from app.services.urgency import URGENCY_RED, classify_bill


@dataclass(frozen=True)
class SoundAlertState:
    is_sound_enabled: bool
    is_muted: bool
    alert_sound_url: str | None
    red_bill_ids: list[int]
    should_play: bool


def get_sound_alert_state(session: Session, *, now: datetime) -> SoundAlertState:
    """What the client audio player needs to decide whether to loop the alert."""
    settings = get_or_create_notification_settings(session)
    red_bill_ids = [bill.id for bill in list_unpaid_bills(session) if classify_bill(bill, now) == URGENCY_RED]
    should_play = bool(
        settings.is_sound_enabled and not settings.is_muted and settings.alert_sound_url and red_bill_ids
    )
    return SoundAlertState(
        is_sound_enabled=settings.is_sound_enabled,
        is_muted=settings.is_muted,
        alert_sound_url=settings.alert_sound_url,
        red_bill_ids=red_bill_ids,
        should_play=should_play,
    )
