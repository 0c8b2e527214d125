"""Logging setup shared by applications embedding leastload."""

import logging
from typing import Optional

from leastload.config import LOG_LEVELS, settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(level: Optional[str] = None) -> logging.Logger:
    """
    Configure root logging and return the package logger.

    Args:
        level: Level name; defaults to settings.log_level

    Returns:
        The "leastload" logger

    Raises:
        ValueError: level is not a standard logging level name
    """
    level_name = (level or settings.log_level).upper()
    if level_name not in LOG_LEVELS:
        raise ValueError(f"Unknown log level: {level}")
    logging.basicConfig(level=getattr(logging, level_name), format=LOG_FORMAT)
    logger = logging.getLogger("leastload")
    logger.setLevel(level_name)
    return logger
