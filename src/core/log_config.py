"""Logging setup. Modules only ever call `logging.getLogger(__name__)`; the application entrypoint calls `configure_logging` once."""

import logging

from src.core.config import Settings

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def configure_logging(settings: Settings) -> logging.Logger:
    """Attach a console handler to the package root logger (idempotent)."""
    logger = logging.getLogger("src")
    logger.setLevel(settings.log_level)

    # Prevent duplicate handlers when the app factory runs more than once (tests)
    if logger.handlers:
        logger.handlers.clear()

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    logger.addHandler(handler)
    logger.propagate = False
    return logger
