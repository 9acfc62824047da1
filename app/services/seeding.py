from __future__ import annotations

import logging
from datetime import datetime, time, timedelta
from decimal import Decimal

from sqlalchemy import inspect, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.config import get_settings
from app.db import SessionLocal
from app.models import Bill
from app.services.reminder_scheduler import local_now
from app.services.settings_service import get_or_create_notification_settings

logger = logging.getLogger(__name__)


def _demo_bills(today: datetime) -> list[Bill]:
    def due(days: int) -> datetime:
        return datetime.combine((today + timedelta(days=days)).date(), time(9, 0))

    return [
        Bill(title="Internet", amount=Decimal("350000"), due_date=due(1), category="Utilities", status="unpaid"),
        Bill(title="Electricity", amount=Decimal("200000"), due_date=due(5), category="Utilities", status="unpaid"),
        Bill(
            title="Motorcycle installment",
            amount=Decimal("850000"),
            due_date=due(15),
            category="Transport",
            status="unpaid",
            is_recurring=True,
            recurring_interval="monthly",
        ),
        Bill(title="Streaming subscription", amount=Decimal("186000"), due_date=due(-1), category="Entertainment", status="paid"),
    ]


def seed_defaults(session: Session, *, today: datetime, with_demo_bills: bool) -> int:
    get_or_create_notification_settings(session)
    if not with_demo_bills or session.scalar(select(Bill.id).limit(1)) is not None:
        return 0
    bills = _demo_bills(today)
    session.add_all(bills)
    session.commit()
    return len(bills)


def seed_defaults_if_ready() -> None:
    settings = get_settings()

    with SessionLocal() as session:
        try:
            tables = set(inspect(session.bind).get_table_names())
            if not {"bills", "notification_settings"}.issubset(tables):
                logger.info("Skipping default seed; schema not ready yet")
                return

            created = seed_defaults(session, today=local_now(settings.timezone), with_demo_bills=settings.seed_demo_bills)
            logger.info("Default seed check completed demo_bills_created=%s", created)
        except SQLAlchemyError:
            session.rollback()
            logger.exception("Default seeding failed")
