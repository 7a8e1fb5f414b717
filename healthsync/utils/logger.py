"""Process-wide logging for healthsync: console plus a daily-rotated file."""

from __future__ import annotations

import logging
import sys
from collections.abc import Iterable
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path

# Store calls run on asyncio worker threads, so the thread name is logged too
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s (%(threadName)s): %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

QUIET_LOGGERS = ("sqlalchemy.engine", "sqlalchemy.pool")

_RETAINED_DAYS = 30


def setup_logging(
    log_level: str = "INFO",
    log_file: str = "./logs/healthsync.log",
    quiet: Iterable[str] = QUIET_LOGGERS,
) -> logging.Logger:
    """Route every ``healthsync.*`` logger to stdout and ``log_file``.

    Unknown level names fall back to INFO. Loggers named in ``quiet`` are
    capped at WARNING. Calling this again replaces the handlers installed
    by the previous call.

    Returns:
        The configured root logger.
    """
    level = getattr(logging, log_level.upper(), logging.INFO)
    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    Path(log_file).parent.mkdir(parents=True, exist_ok=True)
    file_handler = TimedRotatingFileHandler(
        filename=log_file,
        when="midnight",
        interval=1,
        backupCount=_RETAINED_DAYS,
        encoding="utf-8",
    )
    for handler in (console_handler, file_handler):
        handler.setLevel(level)
        handler.setFormatter(formatter)
        root_logger.addHandler(handler)

    for name in quiet:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger("healthsync").debug("Logging to %s at %s", log_file, logging.getLevelName(level))
    return root_logger
