"""Centralized logging configuration using Loguru.

Configures a single stdout sink and installs an intercept handler so that
records emitted through the standard library ``logging`` module (uvicorn,
SQLAlchemy) end up in the same place. The level comes from
``settings.LOG_LEVEL``.

Usage:
    from steady_vitality.log import logger
"""

import logging
import sys

from loguru import logger

from steady_vitality.config import settings


LOG_FORMAT = (
    "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level} | {name} | {message} | {extra}"
)


class InterceptHandler(logging.Handler):
    """Route stdlib logging records into Loguru, keeping the caller's frame."""

    def emit(self, record: logging.LogRecord) -> None:  # pragma: no cover - routing
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(
            level, record.getMessage()
        )


def configure_logging(level: str = settings.LOG_LEVEL) -> None:
    """(Re)install the stdout sink and the stdlib intercept at ``level``."""
    level = level.upper()

    logger.remove()
    logger.add(
        sys.stdout,
        level=level,
        format=LOG_FORMAT,
        backtrace=True,
        diagnose=False,
    )

    logging.basicConfig(handlers=[InterceptHandler()], level=level, force=True)

    for name in ("uvicorn", "uvicorn.error", "uvicorn.access", "sqlalchemy.engine"):
        logging.getLogger(name).handlers = [InterceptHandler()]
        logging.getLogger(name).propagate = False


configure_logging()
