from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response
from pydantic import BaseModel, Field
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.db import check_db_health, get_db_session
from app.models import Bill, NotificationSettings
from app.services.alerts_service import get_sound_alert_state
from app.services.bills_service import (
    BillNotFoundError,
    BillValidationError,
    CreateBillInput,
    UpdateBillInput,
    create_bill,
    delete_bill,
    get_bill,
    list_bills,
    summarize_bills,
    update_bill,
)
from app.services.channels import (
    CHANNEL_EMAIL,
    CHANNEL_SOUND,
    CHANNEL_TELEGRAM,
    ReminderChannel,
    get_channel,
)
from app.services.delivery_errors import ChannelDeliveryError, ChannelNotConfiguredError
from app.services.recurrence_engine import generate_due_dates, shift_months
from app.services.reminder_jobs_service import REMINDER_SWEEP_JOB_NAME, send_channel_test
from app.services.reminder_scheduler import ReminderScheduler
from app.services.settings_service import (
    SettingsValidationError,
    UpdateNotificationSettingsInput,
    get_or_create_notification_settings,
    update_notification_settings,
)
from app.services.urgency import classify_bill

api_router = APIRouter(tags=["api"])


def get_reminder_scheduler(request: Request) -> ReminderScheduler:
    return request.app.state.reminder_scheduler


def get_reminder_channels(request: Request) -> list[ReminderChannel]:
    return request.app.state.reminder_scheduler.channels


def get_now(request: Request) -> datetime:
    return request.app.state.reminder_scheduler.now()


class BillCreateRequest(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    amount: Decimal = Field(ge=0)
    due_date: datetime
    category: str = Field(min_length=1, max_length=64)
    status: str = "unpaid"
    is_recurring: bool = False
    recurring_interval: str | None = None
    invoice_url: str | None = None
    reminder_sound_interval_minutes: int = Field(default=120, gt=0)


class BillUpdateRequest(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=255)
    amount: Decimal | None = Field(default=None, ge=0)
    due_date: datetime | None = None
    category: str | None = Field(default=None, min_length=1, max_length=64)
    status: str | None = None
    is_recurring: bool | None = None
    recurring_interval: str | None = None
    invoice_url: str | None = None
    reminder_sound_interval_minutes: int | None = Field(default=None, gt=0)


class BillResponse(BaseModel):
    id: int
    title: str
    amount: Decimal
    due_date: datetime
    status: str
    category: str
    is_recurring: bool
    recurring_interval: str | None
    invoice_url: str | None
    reminder_sound_interval_minutes: int
    last_email_reminded_at: datetime | None
    last_reminded_at: datetime | None
    created_at: datetime
    urgency: str

    @classmethod
    def from_model(cls, bill: Bill, *, now: datetime) -> "BillResponse":
        return cls(
            id=bill.id,
            title=bill.title,
            amount=Decimal(str(bill.amount)),
            due_date=bill.due_date,
            status=bill.status,
            category=bill.category,
            is_recurring=bill.is_recurring,
            recurring_interval=bill.recurring_interval,
            invoice_url=bill.invoice_url,
            reminder_sound_interval_minutes=bill.reminder_sound_interval_minutes,
            last_email_reminded_at=bill.last_email_reminded_at,
            last_reminded_at=bill.last_reminded_at,
            created_at=bill.created_at,
            urgency=classify_bill(bill, now),
        )


class BillSummaryResponse(BaseModel):
    month: int | None
    year: int | None
    bill_count: int
    total_amount: Decimal
    paid_amount: Decimal
    unpaid_amount: Decimal
    overdue_count: int


class SettingsUpdateRequest(BaseModel):
    user_email: str | None = None
    is_email_enabled: bool | None = None
    telegram_token: str | None = None
    telegram_chat_id: str | None = None
    is_telegram_enabled: bool | None = None
    alert_sound_url: str | None = None
    is_sound_enabled: bool | None = None
    is_muted: bool | None = None


def _serialize_settings(row: NotificationSettings) -> dict[str, object]:
    return {
        "user_email": row.user_email,
        "is_email_enabled": row.is_email_enabled,
        "telegram_token": row.telegram_token,
        "telegram_chat_id": row.telegram_chat_id,
        "is_telegram_enabled": row.is_telegram_enabled,
        "alert_sound_url": row.alert_sound_url,
        "is_sound_enabled": row.is_sound_enabled,
        "is_muted": row.is_muted,
    }


def _load_bill(db: Session, bill_id: int) -> Bill:
    try:
        return get_bill(db, bill_id)
    except BillNotFoundError as exc:
        raise HTTPException(status_code=404, detail="Bill not found") from exc


@api_router.get("/health")
def health_check(db: Session = Depends(get_db_session)) -> dict[str, str]:
    try:
        check_db_health(db)
    except SQLAlchemyError as exc:
        raise HTTPException(status_code=503, detail="database unavailable") from exc
    return {"status": "ok"}


@api_router.get("/bills", response_model=list[BillResponse])
def bills_list(
    month: int | None = Query(default=None, ge=1, le=12),
    year: int | None = Query(default=None, ge=1970, le=9999),
    db: Session = Depends(get_db_session),
    now: datetime = Depends(get_now),
) -> list[BillResponse]:
    return [BillResponse.from_model(bill, now=now) for bill in list_bills(db, month=month, year=year)]


@api_router.get("/bills/summary", response_model=BillSummaryResponse)
def bills_summary(
    month: int | None = Query(default=None, ge=1, le=12),
    year: int | None = Query(default=None, ge=1970, le=9999),
    db: Session = Depends(get_db_session),
    now: datetime = Depends(get_now),
) -> BillSummaryResponse:
    summary = summarize_bills(list_bills(db, month=month, year=year), now=now)
    return BillSummaryResponse(
        month=month,
        year=year,
        bill_count=summary.bill_count,
        total_amount=summary.total_amount,
        paid_amount=summary.paid_amount,
        unpaid_amount=summary.unpaid_amount,
        overdue_count=summary.overdue_count,
    )


@api_router.get("/bills/{bill_id}", response_model=BillResponse)
def bills_get(
    bill_id: int,
    db: Session = Depends(get_db_session),
    now: datetime = Depends(get_now),
) -> BillResponse:
    return BillResponse.from_model(_load_bill(db, bill_id), now=now)


@api_router.post("/bills", response_model=BillResponse, status_code=201)
def bills_create(
    payload: BillCreateRequest,
    db: Session = Depends(get_db_session),
    now: datetime = Depends(get_now),
) -> BillResponse:
    try:
        bill = create_bill(db, CreateBillInput(**payload.model_dump()))
    except BillValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return BillResponse.from_model(bill, now=now)


@api_router.put("/bills/{bill_id}", response_model=BillResponse)
def bills_update(
    bill_id: int,
    payload: BillUpdateRequest,
    db: Session = Depends(get_db_session),
    now: datetime = Depends(get_now),
) -> BillResponse:
    _load_bill(db, bill_id)
    try:
        bill = update_bill(db, bill_id, UpdateBillInput(**payload.model_dump()))
    except BillValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return BillResponse.from_model(bill, now=now)


@api_router.delete("/bills/{bill_id}", status_code=204)
def bills_delete(bill_id: int, db: Session = Depends(get_db_session)) -> Response:
    _load_bill(db, bill_id)
    delete_bill(db, bill_id)
    return Response(status_code=204)


@api_router.get("/bills/{bill_id}/occurrences")
def bills_occurrences(
    bill_id: int,
    months: int = Query(default=12, ge=1, le=120),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    bill = _load_bill(db, bill_id)
    range_end = shift_months(bill.due_date, months)
    due_dates = generate_due_dates(
        recurring_interval=bill.recurring_interval if bill.is_recurring else None,
        initial_due_date=bill.due_date,
        range_start=bill.due_date,
        range_end=range_end,
    )
    return {
        "bill_id": bill.id,
        "recurring_interval": bill.recurring_interval,
        "range_end": range_end.isoformat(),
        "due_dates": [due.isoformat() for due in due_dates],
    }


@api_router.get("/settings")
def get_settings_api(db: Session = Depends(get_db_session)) -> dict[str, object]:
    return _serialize_settings(get_or_create_notification_settings(db))


@api_router.put("/settings")
def update_settings_api(payload: SettingsUpdateRequest, db: Session = Depends(get_db_session)) -> dict[str, object]:
    try:
        row = update_notification_settings(db, UpdateNotificationSettingsInput(**payload.model_dump()))
    except SettingsValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return _serialize_settings(row)


def _run_channel_test(db: Session, channels: list[ReminderChannel], name: str) -> dict[str, object]:
    channel = get_channel(channels, name)
    try:
        send_channel_test(db, channel=channel)
    except ChannelNotConfiguredError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except ChannelDeliveryError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    return {"sent": True, "channel": name}


@api_router.post("/settings/test-email")
def send_test_email_api(
    db: Session = Depends(get_db_session),
    channels: list[ReminderChannel] = Depends(get_reminder_channels),
) -> dict[str, object]:
    return _run_channel_test(db, channels, CHANNEL_EMAIL)


@api_router.post("/settings/test-telegram")
def send_test_telegram_api(
    db: Session = Depends(get_db_session),
    channels: list[ReminderChannel] = Depends(get_reminder_channels),
) -> dict[str, object]:
    return _run_channel_test(db, channels, CHANNEL_TELEGRAM)


@api_router.post("/settings/test-sound")
def send_test_sound_api(
    db: Session = Depends(get_db_session),
    channels: list[ReminderChannel] = Depends(get_reminder_channels),
) -> dict[str, object]:
    return _run_channel_test(db, channels, CHANNEL_SOUND)


@api_router.get("/alerts/sound")
def sound_alert_state_api(
    db: Session = Depends(get_db_session),
    now: datetime = Depends(get_now),
) -> dict[str, object]:
    state = get_sound_alert_state(db, now=now)
    return {
        "is_sound_enabled": state.is_sound_enabled,
        "is_muted": state.is_muted,
        "alert_sound_url": state.alert_sound_url,
        "red_bill_ids": state.red_bill_ids,
        "should_play": state.should_play,
    }


@api_router.post("/admin/run-reminder-sweep")
def run_reminder_sweep_api(
    db: Session = Depends(get_db_session),
    scheduler: ReminderScheduler = Depends(get_reminder_scheduler),
    now: datetime = Depends(get_now),
) -> dict[str, object]:
    result = scheduler.run_once(now=now, session=db)
    if result is None:
        return {"ran": False, "job_name": REMINDER_SWEEP_JOB_NAME}
    return {
        "ran": True,
        "job_name": result.job_name,
        "swept_at": result.swept_at.isoformat(),
        "bills_evaluated": result.bills_evaluated,
        "bills_skipped": result.bills_skipped,
        "sent": result.sent,
        "send_errors": result.send_errors,
    }
