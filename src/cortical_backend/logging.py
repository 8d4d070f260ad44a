"""Logging configuration for cortical-backend.

Console logging for the server process, an optional log file, and a helper
that records full tracebacks while handing back a clean message for clients.
"""
from __future__ import annotations

import logging
import traceback
from pathlib import Path
from typing import Optional

LOGGER_NAME = "cortical_backend"

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Module-level state
_handlers: list[logging.Handler] = []


def configure_logging(
    level: int | str = logging.INFO,
    log_file: Optional[Path] = None,
) -> logging.Logger:
    """Configure the package logger.

    Replaces handlers installed by a previous call, so it is safe to call
    again when the CLI re-reads its flags.

    Args:
        level: Logging level for the package logger
        log_file: Optional file that receives the same records

    Returns:
        The configured package logger
    """
    logger = logging.getLogger(LOGGER_NAME)

    for handler in _handlers:
        logger.removeHandler(handler)
        handler.close()
    _handlers.clear()

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    console = logging.StreamHandler()
    console.setFormatter(formatter)
    _handlers.append(console)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
        file_handler.setFormatter(formatter)
        _handlers.append(file_handler)

    for handler in _handlers:
        logger.addHandler(handler)
    logger.setLevel(level)
    logger.propagate = False

    return logger


def log_exception(
    error: BaseException,
    context: str = "",
    logger: Optional[logging.Logger] = None,
    include_traceback: bool = True,
) -> str:
    """Log an exception with full details.

    The traceback goes to the log; the return value is the short message
    that is safe to put in an ``error`` event.

    Args:
        error: The exception to log
        context: What was happening when it was raised
        logger: Logger to write to (default: package logger)
        include_traceback: Whether to include the traceback in the log

    Returns:
        User-friendly error message (without traceback)
    """
    logger = logger or logging.getLogger(LOGGER_NAME)

    error_type = type(error).__name__
    error_msg = str(error) or error_type

    if context:
        user_msg = f"{context}: {error_msg}"
    else:
        user_msg = error_msg

    if include_traceback:
        tb_str = "".join(traceback.format_exception(type(error), error, error.__traceback__))
        logger.error(f"{context}\n{error_type}: {error_msg}\n\nTraceback:\n{tb_str}")
    else:
        logger.error(f"{context} - {error_type}: {error_msg}")

    return user_msg
