"""Logging configuration for Vote Nearby using loguru."""

import sys
from pathlib import Path

from loguru import logger

from vote_nearby.config import Settings


def setup_logging(settings: Settings) -> None:
    """
    Configure loguru logging based on settings.

    Args:
        settings: Application settings containing log level and file path.
    """
    logger.remove()

    logger.add(
        sys.stderr,
        level=settings.log_level,
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>",
    )

    log_path = Path(settings.log_file)
    log_path.parent.mkdir(parents=True, exist_ok=True)

    # Pipeline workers log from several threads
    logger.add(
        settings.log_file,
        level=settings.log_level,
        format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {thread.name} | {name}:{function}:{line} - {message}",
        rotation="10 MB",
        retention="30 days",
        compression="zip",
        enqueue=True,
    )

    logger.info("Logging configured: level={}, file={}", settings.log_level, settings.log_file)
