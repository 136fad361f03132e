"""Logging setup for applications embedding the engine."""

import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from typing import Optional

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DEBUG_ENV_VAR = "MEMORY_LIFECYCLE_DEBUG"


def configure_logging(level: Optional[int] = None, log_file: Optional[str] = None) -> None:
    """Configure root logging to stderr and, optionally, a rotating log file.

    Args:
        level: Explicit log level. If None, DEBUG when MEMORY_LIFECYCLE_DEBUG is
               set, otherwise INFO.
        log_file: Path of a log file; its directory is created if needed.
    """
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_file:
        log_dir = os.path.dirname(os.path.abspath(log_file))
        os.makedirs(log_dir, exist_ok=True)
        handlers.append(
            RotatingFileHandler(
                log_file,
                mode="a",
                encoding="utf-8",
                maxBytes=10 * 1024 * 1024,
                backupCount=5,
            )
        )

    if level is None:
        level = logging.DEBUG if os.getenv(DEBUG_ENV_VAR) else logging.INFO

    logging.basicConfig(level=level, format=LOG_FORMAT, handlers=handlers, force=True)
    if log_file:
        logging.getLogger(__name__).info(f"Logging to file: {log_file}")
