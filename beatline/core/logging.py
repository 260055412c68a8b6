"""Loguru setup."""

import sys
from pathlib import Path

from loguru import logger

from beatline.core.config import Settings, get_settings

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
    "<level>{message}</level>"
)


def configure_logging(settings: Settings | None = None) -> None:
    """Configure loguru based on settings.

    Replaces the default handler with a stderr sink and, when
    ``beatline_log_dir`` is set, a daily rotating file sink.
    """
    settings = settings or get_settings()
    logger.remove()  # Remove default handler

    level = "DEBUG" if settings.beatline_debug else settings.beatline_log_level

    if settings.beatline_log_dir:
        logs_dir = Path(settings.beatline_log_dir)
        logs_dir.mkdir(parents=True, exist_ok=True)
        logger.add(
            str(logs_dir / "beatline_{time:YYYY-MM-DD}.log"),
            rotation="1 day",
            retention="7 days",
            level=level,
            format=LOG_FORMAT,
        )

    logger.add(
        sys.stderr,
        level=level,
        format=LOG_FORMAT,
        colorize=settings.beatline_debug,
    )
