from __future__ import annotations

import logging
import os

import structlog
import uvicorn

from status_api.app import create_app
from status_api.settings import StatusSettings


def configure_logging(level: str = "INFO") -> None:
    level_no = logging.getLevelName(str(level or "INFO").upper())
    if not isinstance(level_no, int):
        level_no = logging.INFO
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="ISO"),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level_no),
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def main() -> None:
    host = os.getenv("STATUS_HOST", "0.0.0.0").strip() or "0.0.0.0"
    port = int(os.getenv("STATUS_PORT", "8000"))
    settings = StatusSettings()
    configure_logging(settings.log_level)
    app = create_app(settings)
    uvicorn.run(app, host=host, port=port, log_level=settings.log_level.lower())


if __name__ == "__main__":
    main()
