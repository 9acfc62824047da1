from __future__ import annotations

import logging
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request

from app.config import get_settings
from app.db import SessionLocal
from app.logging_config import configure_logging, reset_run_id, set_run_id
from app.routes.api import api_router
from app.services.channels import build_default_channels
from app.services.reminder_scheduler import ReminderScheduler
from app.services.seeding import seed_defaults_if_ready

configure_logging()
logger = logging.getLogger(__name__)


def build_reminder_scheduler() -> ReminderScheduler:
    settings = get_settings()
    return ReminderScheduler(
        session_factory=SessionLocal,
        channels=build_default_channels(settings),
        interval_seconds=settings.reminder_sweep_interval_seconds,
        advance_on_failure=settings.reminder_advance_on_failure,
        timezone_name=settings.timezone,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting BillWatch application")
    seed_defaults_if_ready()
    scheduler: ReminderScheduler = app.state.reminder_scheduler
    if get_settings().run_reminder_scheduler:
        scheduler.start()
    else:
        logger.info("Reminder scheduler disabled for this container role")
    yield
    await scheduler.stop()
    logger.info("Shutting down BillWatch application")


def create_app() -> FastAPI:
    app = FastAPI(title="BillWatch", version="0.1.0", lifespan=lifespan)
    app.state.reminder_scheduler = build_reminder_scheduler()

    @app.middleware("http")
    async def assign_request_id(request: Request, call_next):
        token = set_run_id(request.headers.get("X-Request-ID") or f"req-{uuid.uuid4().hex[:8]}")
        try:
            return await call_next(request)
        finally:
            reset_run_id(token)

    app.include_router(api_router, prefix="/api")
    return app


app = create_app()
