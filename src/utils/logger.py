"""
Logger setup for structured logging.

Every module logs through ``get_logger(__name__)``; ``configure_logging``
attaches handlers once to the ``src`` package logger so those module
loggers propagate to a single colour-coded console stream.
"""

import logging
import sys
from typing import Optional
from pathlib import Path


PACKAGE_LOGGER = "src"
LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


class ColoredFormatter(logging.Formatter):
    """Colored log formatter for terminal output."""

    COLORS = {
        'DEBUG': '\033[36m',     # Cyan
        'INFO': '\033[32m',      # Green
        'WARNING': '\033[33m',   # Yellow
        'ERROR': '\033[31m',     # Red
        'CRITICAL': '\033[35m',  # Magenta
    }
    RESET = '\033[0m'
    BOLD = '\033[1m'

    def format(self, record: logging.LogRecord) -> str:
        """Format log record with a coloured level name."""
        levelname = record.levelname
        if levelname in self.COLORS:
            record.levelname = (
                f"{self.BOLD}{self.COLORS[levelname]}{levelname}{self.RESET}"
            )
        try:
            return super().format(record)
        finally:
            record.levelname = levelname


def setup_logger(
    name: str,
    level: Optional[str] = None,
    log_file: Optional[Path] = None,
    use_color: bool = True,
    stream=None,
) -> logging.Logger:
    """
    Setup and configure a logger with optional file output.

    Args:
        name: Logger name (usually __name__ or the package name)
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional file path for logging to file
        use_color: Whether to use colored output (only for console)
        stream: Console stream, stderr by default so piped output stays clean

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)
    logger.setLevel(getattr(logging, level.upper()) if level else logging.INFO)

    if logger.handlers:
        return logger

    logger.propagate = False

    stream = stream or sys.stderr
    console_handler = logging.StreamHandler(stream)
    console_handler.setLevel(logging.DEBUG)

    if use_color and hasattr(stream, "isatty") and stream.isatty():
        formatter = ColoredFormatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)
    else:
        formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)

    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding='utf-8')
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT))
        logger.addHandler(file_handler)

    return logger


def configure_logging(settings, log_file: Optional[Path] = None) -> logging.Logger:
    """
    Configure the package logger from application settings.

    Args:
        settings: Settings instance providing ``log_level``
        log_file: Optional file path for a copy of the log

    Returns:
        The package logger
    """
    return setup_logger(PACKAGE_LOGGER, level=settings.log_level, log_file=log_file)


def get_logger(name: str) -> logging.Logger:
    """
    Get an existing logger or create a new one.

    Args:
        name: Logger name

    Returns:
        Logger instance
    """
    return logging.getLogger(name)
