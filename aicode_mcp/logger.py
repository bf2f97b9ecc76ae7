"""
Log sink configuration for the ``aicode_mcp`` package logger.

The host's terminal belongs to the REPL, so nothing is written anywhere
unless a log file is configured. Level names follow the host's flags
(trace, debug, info, warn, error, fatal, silent); stdlib names work too.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

LOGGER_NAME = "aicode_mcp"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"

LEVELS = {
    "trace": logging.DEBUG,
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "fatal": logging.CRITICAL,
    "critical": logging.CRITICAL,
    "silent": logging.CRITICAL + 10,
}


def resolve_level(level: str | int) -> int:
    if isinstance(level, int):
        return level
    try:
        return LEVELS[level.lower()]
    except KeyError:
        raise ValueError(f"Unknown log level: {level!r}. Valid levels: {', '.join(LEVELS)}") from None


def create_logger(level: str | int = "warn", log_file: str | os.PathLike | None = None) -> logging.Logger:
    """Configure the package logger, replacing any handlers set up earlier."""
    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    logger.setLevel(resolve_level(level))
    logger.propagate = False

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handler: logging.Handler = logging.FileHandler(log_file, encoding="utf-8")
        handler.setFormatter(logging.Formatter(LOG_FORMAT, DATE_FORMAT))
    else:
        handler = logging.NullHandler()
    logger.addHandler(handler)
    return logger


def get_logger() -> logging.Logger:
    logger = logging.getLogger(LOGGER_NAME)
    if not logger.handlers:
        return create_logger()
    return logger


def set_log_level(level: str | int) -> None:
    logging.getLogger(LOGGER_NAME).setLevel(resolve_level(level))


def set_log_file(log_file: str | os.PathLike) -> None:
    """Redirect package logs to log_file, keeping the current level."""
    current = logging.getLogger(LOGGER_NAME).level or logging.WARNING
    create_logger(current, log_file)
