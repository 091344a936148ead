"""
Logging setup shared by the CLI, the request queues and the caches.

Modules call `get_logger(__name__)`; the entry point calls `setup_logging()`
once. Queue and cache messages are prefixed with the instance name
(``[fred]``, ``[yield_curve]``), so the console format stays short.

Usage:
    from marketdash.logging_config import get_logger, setup_logging

    setup_logging(level="DEBUG", log_dir="logs")

    logger = get_logger(__name__)
    logger.warning("[%s] rate limited, retrying in %.1fs", queue_name, delay)
"""

import logging
import os
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

FILE_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
CONSOLE_FORMAT = "%(levelname)-8s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

LOG_LEVEL_ENV_VAR = "MARKETDASH_LOG_LEVEL"
DEFAULT_LEVEL = "INFO"

# Chatty HTTP and event-loop libraries, capped at WARNING
QUIET_LOGGERS = ("urllib3", "requests", "yfinance", "peewee", "asyncio")

_logging_configured = False


class ColoredFormatter(logging.Formatter):
    """Colors the level name on terminals."""

    LEVEL_COLORS = {
        logging.DEBUG: "\033[36m",
        logging.INFO: "\033[32m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        # Copy so a file handler formatting the same record gets plain text
        colored = logging.makeLogRecord(record.__dict__)
        color = self.LEVEL_COLORS.get(record.levelno, "")
        colored.levelname = f"{color}{record.levelname}{self.RESET}"
        return super().format(colored)


def _resolve_level(level: Optional[str]) -> int:
    name = level or os.getenv(LOG_LEVEL_ENV_VAR) or DEFAULT_LEVEL
    return getattr(logging, name.upper(), logging.INFO)


def _console_handler(level: int, colored: bool) -> logging.Handler:
    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    formatter_cls = ColoredFormatter if colored and sys.stderr.isatty() else logging.Formatter
    handler.setFormatter(formatter_cls(CONSOLE_FORMAT, DATE_FORMAT))
    return handler


def _file_handler(level: int, log_file: Optional[str], log_dir: Optional[str]) -> logging.Handler:
    directory = Path(log_dir or "logs")
    directory.mkdir(parents=True, exist_ok=True)
    if log_file is None:
        log_file = f"marketdash_{datetime.now():%Y%m%d_%H%M%S}.log"

    handler = logging.FileHandler(directory / log_file, encoding="utf-8")
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(FILE_FORMAT, DATE_FORMAT))
    return handler


def setup_logging(
    level: Optional[str] = None,
    log_file: Optional[str] = None,
    log_dir: Optional[str] = None,
    console_output: bool = True,
    colored: bool = True,
) -> None:
    """
    Configure the root logger.

    Replaces existing root handlers, so calling it again reconfigures
    rather than duplicating output.

    Args:
        level: Level name. Falls back to $MARKETDASH_LOG_LEVEL, then INFO.
        log_file: File name inside log_dir. A timestamped name is used when
            only log_dir is given.
        log_dir: Directory for the log file ("logs" when only log_file is
            given). No file is written unless one of the two is set.
        console_output: Log to stderr
        colored: Color level names when stderr is a terminal

    Example:
        setup_logging()
        setup_logging(level="DEBUG", log_dir="logs")
    """
    global _logging_configured

    numeric_level = _resolve_level(level)
    root = logging.getLogger()
    root.setLevel(numeric_level)
    root.handlers.clear()

    if console_output:
        root.addHandler(_console_handler(numeric_level, colored))
    if log_file is not None or log_dir is not None:
        root.addHandler(_file_handler(numeric_level, log_file, log_dir))

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    _logging_configured = True


def get_logger(name: str) -> logging.Logger:
    """Module logger; falls back to basic console logging until setup_logging runs."""
    if not _logging_configured:
        logging.basicConfig(level=logging.INFO, format=CONSOLE_FORMAT, datefmt=DATE_FORMAT)
    return logging.getLogger(name)


def set_level(level: str, logger_name: Optional[str] = None) -> None:
    """
    Change a logger's level at runtime.

    Args:
        level: Level name, e.g. "DEBUG"
        logger_name: Logger to adjust (root when None), e.g. "marketdash.core.throttle"
    """
    logging.getLogger(logger_name).setLevel(getattr(logging, level.upper(), logging.INFO))
