"""Logging setup for ClaimFlow.

Modules log through ``logging.getLogger(__name__)``; everything under the
``claimflow`` package propagates to the handlers installed here. Timestamps
are ISO 8601.
"""

import logging
import logging.handlers
import os
from typing import List, Optional

from claimflow.core.config import Settings, get_settings

LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"

# Libraries that are chatty at INFO; they only speak up from WARNING
QUIET_LOGGERS = ("sqlalchemy.engine", "aiosmtplib", "multipart")


def parse_level(level: str) -> int:
    value = logging.getLevelName(str(level).strip().upper())
    if not isinstance(value, int):
        raise ValueError(f"Invalid log level: {level!r}")
    return value


def _handlers(settings: Settings, name: str, console: bool, rotate_bytes: int, keep: int) -> List[logging.Handler]:
    handlers: List[logging.Handler] = []
    if settings.log_to_file:
        os.makedirs(settings.log_dir, exist_ok=True)
        handlers.append(logging.handlers.RotatingFileHandler(
            os.path.join(settings.log_dir, f"{name}.log"),
            maxBytes=rotate_bytes,
            backupCount=keep,
            encoding="utf-8",
        ))
    if console:
        handlers.append(logging.StreamHandler())
    return handlers


def setup_logger(
    settings: Optional[Settings] = None,
    name: str = "claimflow",
    console: bool = True,
    rotate_bytes: int = 5 * 1024 * 1024,
    keep: int = 3,
) -> logging.Logger:
    """Install handlers on the package logger according to the settings.

    Calling it again only updates the level; handlers are added once.

    Args:
        settings: Source of ``log_level``, ``log_dir`` and ``log_to_file``
        name: Logger to configure (the package root by default)
        console: Also log to stderr
        rotate_bytes: Size at which the log file rotates
        keep: Rotated files to keep

    Raises:
        ValueError: ``log_level`` is not a logging level name
    """
    settings = settings or get_settings()
    logger = logging.getLogger(name)
    logger.setLevel(parse_level(settings.log_level))

    if logger.handlers:
        return logger

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)
    for handler in _handlers(settings, name, console, rotate_bytes, keep):
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    for noisy in QUIET_LOGGERS:
        logging.getLogger(noisy).setLevel(logging.WARNING)

    logger.debug("Logging configured at %s", settings.log_level.upper())
    return logger
