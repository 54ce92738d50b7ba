"""Logging setup for op-env-sync."""

import getpass
import logging
import logging.handlers
import sys
from pathlib import Path
from typing import Optional

LOGGER_NAME = "op_env_sync"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def _current_user() -> str:
    """Name of the OS user running the sync, for audit lines in the log."""
    try:
        return getpass.getuser()
    except (KeyError, OSError):
        return "unknown"


def _file_handler(
    log_file: str, max_bytes: int, backup_count: int, rotation_enabled: bool
) -> logging.Handler:
    """Create the handler for ``log_file``, creating its directory first."""
    Path(log_file).parent.mkdir(parents=True, exist_ok=True)
    if not rotation_enabled:
        return logging.FileHandler(log_file, encoding="utf-8")
    return logging.handlers.RotatingFileHandler(
        log_file,
        maxBytes=max_bytes,
        backupCount=backup_count,
        encoding="utf-8",
    )


def setup_logging(
    log_file: Optional[str] = None,
    log_level: str = "INFO",
    max_bytes: int = 10 * 1024 * 1024,
    backup_count: int = 5,
    rotation_enabled: bool = True,
) -> logging.Logger:
    """Configure the op-env-sync logger for one process.

    Log records go to stderr, and also to ``log_file`` when one is given.
    Calling this again replaces the handlers installed by the previous call.

    Args:
        log_file: Path to log file, or None to log to stderr only
        log_level: Logging level name (DEBUG, INFO, WARNING, ERROR)
        max_bytes: Size at which the log file is rotated
        backup_count: Number of rotated log files to keep
        rotation_enabled: Rotate the log file instead of growing it forever

    Returns:
        Configured logger instance
    """
    level = getattr(logging, log_level.upper())

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)
    logger.handlers.clear()

    formatter = logging.Formatter(
        f"%(asctime)s - %(name)s - %(levelname)s - [{_current_user()}] - %(message)s",
        datefmt=LOG_DATE_FORMAT,
    )

    # stdout carries the sync summary
    handlers = [logging.StreamHandler(sys.stderr)]
    if log_file:
        handlers.append(_file_handler(log_file, max_bytes, backup_count, rotation_enabled))

    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    return logger


def get_logger() -> logging.Logger:
    """Get the configured op-env-sync logger."""
    return logging.getLogger(LOGGER_NAME)
