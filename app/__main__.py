from __future__ import annotations

import uvicorn

from app.config import get_settings


def main() -> None:
    settings = get_settings()
    # Logging is configured by app.main; keep uvicorn from replacing it.
    uvicorn.run("app.main:app", host=settings.app_host, port=settings.app_port, log_config=None)


if __name__ == "__main__":
    main()
