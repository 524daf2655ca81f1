"""Centralized logging configuration for topicwatch."""

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Literal

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(
    level: LogLevel = "INFO",
    log_file: Path | None = None,
    console_level: LogLevel = "WARNING",
    console_format: str = "%(levelname)s: %(message)s",
) -> logging.Logger:
    """Configure application logging.

    Args:
        level: Root logging level
        log_file: Optional file path for logging
        console_level: Level for console output (default WARNING to keep CLI clean)
        console_format: Format of console lines. Daemons pass LOG_FORMAT because
            their stderr is the topic log file.

    Returns:
        Configured root logger instance
    """
    logger = logging.getLogger("topicwatch")
    logger.setLevel(getattr(logging, level))

    # Clear existing handlers
    logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(getattr(logging, console_level))
    console_handler.setFormatter(logging.Formatter(console_format))
    logger.addHandler(console_handler)

    # File handler if specified
    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(file_handler)

    return logger


@contextmanager
def log_to_file(log_file: Path, level: LogLevel = "INFO") -> Iterator[logging.Handler]:
    """Temporarily mirror topicwatch logs into a file.

    Used for manual runs so their output lands in the same topic log a
    spawned daemon writes to.
    """
    log_file.parent.mkdir(parents=True, exist_ok=True)
    logger = logging.getLogger("topicwatch")
    handler = logging.FileHandler(log_file)
    handler.setLevel(getattr(logging, level))
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    previous_level = logger.level
    if logger.level == logging.NOTSET or logger.level > handler.level:
        logger.setLevel(handler.level)
    logger.addHandler(handler)
    try:
        yield handler
    finally:
        logger.removeHandler(handler)
        logger.setLevel(previous_level)
        handler.close()


def set_log_level(level: LogLevel) -> None:
    """Set the logging level for all topicwatch loggers.

    Args:
        level: New logging level
    """
    root_logger = logging.getLogger("topicwatch")
    root_logger.setLevel(getattr(logging, level))
