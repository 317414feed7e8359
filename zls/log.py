"""Logging setup for the four run modes.

| Mode    | Console | Log file      |
|---------|---------|---------------|
| normal  | none    | all           |
| verbose | all     | all           |
| silent  | none    | warnings only |
| dry-run | all     | none          |
"""
from __future__ import annotations

import logging
import os
import sys
from typing import TYPE_CHECKING

from zls.models import RunMode

if TYPE_CHECKING:
    from zls.models import SyncConfig

LOGGER_NAME = "zls"
FILE_FORMAT = "%(asctime)s %(levelname)s %(message)s"

# ANSI color codes (respect NO_COLOR convention: https://no-color.org)
if os.environ.get("NO_COLOR") is not None:
    GREEN = RED = YELLOW = RESET = ""
else:
    GREEN = "\033[32m"
    RED = "\033[31m"
    YELLOW = "\033[33m"
    RESET = "\033[0m"


class ConsoleFormatter(logging.Formatter):
    """Plain messages; warnings and errors get a colored level prefix."""

    COLORS = {
        logging.WARNING: YELLOW,
        logging.ERROR: RED,
        logging.CRITICAL: RED,
    }

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        if record.levelno >= logging.WARNING:
            color = self.COLORS.get(record.levelno, RED)
            return f"{color}{record.levelname}: {message}{RESET}"
        return message


def _remove_handlers(logger: logging.Logger) -> None:
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()


def setup_logging(config: "SyncConfig") -> logging.Logger:
    """Attach console/file handlers to the package logger according to the run mode.

    Safe to call repeatedly: handlers from a previous call are replaced.
    """
    logger = logging.getLogger(LOGGER_NAME)
    _remove_handlers(logger)
    logger.setLevel(logging.INFO)

    if config.dry_run or config.mode is RunMode.VERBOSE:
        console = logging.StreamHandler(sys.stdout)
        console.setLevel(logging.INFO)
        console.setFormatter(ConsoleFormatter("%(message)s"))
        logger.addHandler(console)

    if not config.dry_run:
        os.makedirs(config.log_dir, exist_ok=True)
        file_handler = logging.FileHandler(config.log_file, mode="a")
        if config.mode is RunMode.SILENT:
            file_handler.setLevel(logging.WARNING)
        else:
            file_handler.setLevel(logging.INFO)
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT))
        logger.addHandler(file_handler)

    return logger


def teardown_logging() -> None:
    _remove_handlers(logging.getLogger(LOGGER_NAME))
