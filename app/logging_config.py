from __future__ import annotations

import contextvars
import logging
import os


# Correlation id for the unit of work in flight: an HTTP request or a reminder sweep.
_run_id_ctx: contextvars.ContextVar[str] = contextvars.ContextVar("run_id", default="-")


class _RunIdFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.run_id = _run_id_ctx.get("-")
        return True


def set_run_id(value: str) -> contextvars.Token[str]:
    return _run_id_ctx.set(value)


def reset_run_id(token: contextvars.Token[str]) -> None:
    _run_id_ctx.reset(token)


def configure_logging() -> None:
    level = os.getenv("LOG_LEVEL", "INFO").upper()
    handler = logging.StreamHandler()
    handler.setFormatter(
        logging.Formatter(
            fmt="%(asctime)s %(levelname)s [%(name)s] [run=%(run_id)s] %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )
    handler.addFilter(_RunIdFilter())
    logging.basicConfig(
        level=level,
        handlers=[handler],
        force=True,
    )
