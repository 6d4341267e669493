"""Logging setup for the photobook composer."""

from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional, TextIO, Union

LOGGER_NAME = "photobook"


def configure_logging(
    log_path: Optional[Union[str, Path]] = None,
    *,
    level: int = logging.INFO,
    stream: Optional[TextIO] = None,
) -> logging.Logger:
    """Configure and return the package logger.

    The handler setup is idempotent to avoid duplicate handlers when the
    function is called more than once (e.g., in tests). A rotating file handler
    limits on-disk log growth while mirroring output to ``stream`` (stdout by
    default).
    """

    logger = logging.getLogger(LOGGER_NAME)
    if logger.handlers:
        return logger

    logger.setLevel(level)

    formatter = logging.Formatter(
        "%(asctime)s - %(levelname)s - %(name)s - %(message)s"
    )

    path = Path(log_path) if log_path else Path.cwd() / "photobook.log"
    path.parent.mkdir(parents=True, exist_ok=True)

    file_handler = RotatingFileHandler(
        path,
        maxBytes=1_048_576,
        backupCount=5,
        encoding="utf-8",
    )
    file_handler.setFormatter(formatter)

    stream_handler = logging.StreamHandler(stream or sys.stdout)
    stream_handler.setFormatter(formatter)

    logger.addHandler(file_handler)
    logger.addHandler(stream_handler)
    logger.propagate = False

    return logger
