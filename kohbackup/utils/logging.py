"""Logging configuration for KOH Backup."""

import logging
import sys
from contextlib import contextmanager
from typing import Iterator, Optional

import click

SUCCESS = 25
logging.addLevelName(SUCCESS, "SUCCESS")

LOG_FORMAT = "[%(asctime)s] %(levelname)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

LEVEL_COLORS = {
    logging.DEBUG: "white",
    logging.INFO: "bright_blue",
    SUCCESS: "green",
    logging.WARNING: "yellow",
    logging.ERROR: "red",
    logging.CRITICAL: "red",
}


class ColorFormatter(logging.Formatter):
    """Formatter that colors whole lines by level for terminal output."""

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        color = LEVEL_COLORS.get(record.levelno)
        if color is None:
            return line
        return click.style(line, fg=color)


def setup_logging(verbose: bool = False, log_file: Optional[str] = None, color: bool = True) -> None:
    """
    Setup logging configuration for the CLI.

    Args:
        verbose: Enable verbose/debug logging
        log_file: Optional log file path
        color: Color console lines by level
    """
    level = logging.DEBUG if verbose else logging.INFO

    root_logger = logging.getLogger()
    # Drop handlers from an earlier setup in the same process
    for handler in list(root_logger.handlers):
        if getattr(handler, "_koh_backup", False):
            root_logger.removeHandler(handler)
            handler.close()

    console_formatter = ColorFormatter(LOG_FORMAT, DATE_FORMAT) if color else logging.Formatter(LOG_FORMAT, DATE_FORMAT)
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(console_formatter)
    console_handler._koh_backup = True

    root_logger.setLevel(level)
    root_logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT, DATE_FORMAT))
        file_handler._koh_backup = True
        root_logger.addHandler(file_handler)


@contextmanager
def run_log(log_file: str, logger: Optional[logging.Logger] = None) -> Iterator[logging.Handler]:
    """
    Append every record of the surrounding block to ``log_file``.

    Args:
        log_file: Transcript file, opened in append mode
        logger: Logger to attach to (root logger by default)
    """
    target = logger or logging.getLogger()
    handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, DATE_FORMAT))
    previous_level = target.level
    # The transcript records INFO and above even when the console is quieter
    if target.getEffectiveLevel() > logging.INFO:
        target.setLevel(logging.INFO)
    target.addHandler(handler)
    try:
        yield handler
    finally:
        target.removeHandler(handler)
        target.setLevel(previous_level)
        handler.close()


def log_success(logger: logging.Logger, message: str, *args) -> None:
    """Log ``message`` at the SUCCESS level."""
    logger.log(SUCCESS, message, *args)
