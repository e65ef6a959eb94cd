"""Process-wide logger writing to stderr and optionally to a file."""

from __future__ import annotations

import logging
import sys

_LOGGER_NAME = "a2hmarket"
_FORMAT = "%(asctime)s %(levelname)s %(message)s"

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "error": logging.ERROR,
}

_logger = logging.getLogger(_LOGGER_NAME)


def _stderr_handler() -> logging.Handler:
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(_FORMAT))
    return handler


def _replace_handlers(handlers: list[logging.Handler]) -> None:
    for old in list(_logger.handlers):
        _logger.removeHandler(old)
        old.close()
    for handler in handlers:
        _logger.addHandler(handler)


if not _logger.handlers:
    _logger.addHandler(_stderr_handler())
    _logger.setLevel(logging.DEBUG)
    _logger.propagate = False


def init_logger(log_file_path: str) -> None:
    """Send log output to stderr and append it to ``log_file_path``.

    Raises OSError when the file cannot be opened.
    """
    file_handler = logging.FileHandler(log_file_path, mode="a", encoding="utf-8")
    file_handler.setFormatter(logging.Formatter(_FORMAT))
    _replace_handlers([_stderr_handler(), file_handler])


def set_log_level(level: str) -> None:
    """Set the level by name (debug, info, warn, error); anything else means info."""
    _logger.setLevel(_LEVELS.get(level, logging.INFO))


def get_logger() -> logging.Logger:
    """Return the shared package logger."""
    return _logger