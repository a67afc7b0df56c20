"""
Centralized logging configuration.

Usage::

    from classdesk.config.logging_setup import setup_logging

    setup_logging(log_level="DEBUG", log_file="./logs/classdesk.log")

Every module then logs through ``logging.getLogger(__name__)``.
"""
from __future__ import annotations

import logging
import logging.handlers
from pathlib import Path

from classdesk.config.settings import settings


def setup_logging(
    log_level: str | None = None,
    log_file: str | None = None,
    max_bytes: int = 2_000_000,
    backup_count: int = 3,
) -> None:
    """Install a console handler and, if ``log_file`` is given, a rotating file handler."""
    level_name = (log_level or settings.log_level).upper()
    log_file = log_file or settings.log_file

    formatter = logging.Formatter(
        fmt="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level_name, logging.INFO))
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            filename=str(log_path),
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    # requests' connection pool is chatty at DEBUG
    logging.getLogger("urllib3").setLevel(logging.WARNING)
