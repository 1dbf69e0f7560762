from __future__ import annotations

import sys

from loguru import logger

from core.settings import get_settings

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan> | {extra[request_id]} | <level>{message}</level>"
)


def configure_logging() -> None:
    settings = get_settings()
    level = settings.log_level or ("INFO" if settings.is_production else "DEBUG")

    logger.remove()
    logger.configure(extra={"request_id": "-"})
    logger.add(
        sys.stderr,
        level=level.upper(),
        format=LOG_FORMAT,
        backtrace=not settings.is_production,
        diagnose=not settings.is_production,
    )
    logger.info("Logging configured at level {}", level.upper())
