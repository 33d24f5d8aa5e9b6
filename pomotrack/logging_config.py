"""Logging setup for pomotrack.

Modules log through `get_logger(__name__)`. Nothing reaches disk until the
entry point calls `configure_logging`, which attaches a single file handler
to the package logger; child loggers propagate to it.
"""

from __future__ import annotations

import logging
from pathlib import Path

from pomotrack import config

PACKAGE_LOGGER = "pomotrack"
LOG_FORMAT = "%(asctime)s | %(name)s | %(levelname)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

logging.getLogger(PACKAGE_LOGGER).addHandler(logging.NullHandler())


class _PomotrackFileHandler(logging.FileHandler):
    """Marks the handler installed by configure_logging so it can be replaced."""


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def configure_logging(log_file: str | Path | None = None, level: int = logging.INFO) -> logging.Handler:
    """Send package logs to `log_file` (defaults to config.LOG_FILE).

    Calling it again swaps the previous file handler instead of stacking a
    second one.
    """
    target = Path(log_file) if log_file is not None else config.LOG_FILE
    target.parent.mkdir(parents=True, exist_ok=True)

    package_logger = logging.getLogger(PACKAGE_LOGGER)
    remove_file_handlers()

    handler = _PomotrackFileHandler(target, encoding="utf-8")
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    handler.setLevel(level)
    package_logger.setLevel(level)
    package_logger.addHandler(handler)
    return handler


def remove_file_handlers() -> None:
    package_logger = logging.getLogger(PACKAGE_LOGGER)
    for handler in list(package_logger.handlers):
        if isinstance(handler, _PomotrackFileHandler):
            package_logger.removeHandler(handler)
            handler.close()
