"""Logging setup for the memory core.

The core is a library embedded in capture apps and agents, so it configures
only the ``galactica`` logger tree and leaves the host's root logger alone.
A console handler is attached only when the host has not configured logging
itself; a log file is written only when a directory is given.
"""

from __future__ import annotations

import logging
import os
import sys
from datetime import datetime
from pathlib import Path
from typing import List, Optional

PACKAGE_LOGGER = "galactica"
LOG_DIR_ENV = "GALACTICA_LOG_DIR"

_CONSOLE_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
_FILE_FORMAT = "%(asctime)s | %(levelname)s | %(threadName)s | %(name)s | %(message)s"
_HANDLER_MARK = "_galactica_handler"

_LEVEL_COLOURS = {
    logging.DEBUG: "\033[36m",
    logging.INFO: "\033[32m",
    logging.WARNING: "\033[33m",
    logging.ERROR: "\033[31m",
    logging.CRITICAL: "\033[35m",
}
_RESET = "\033[0m"


def setup_logging(level: str | int = "INFO", *, log_dir: str | Path | None = None) -> logging.Logger:
    """(Re)configure the ``galactica`` logger and return it.

    Safe to call repeatedly: handlers installed by an earlier call are
    replaced, never duplicated.
    """
    package_logger = logging.getLogger(PACKAGE_LOGGER)
    package_logger.setLevel(_coerce_level(level))

    for handler in [h for h in package_logger.handlers if getattr(h, _HANDLER_MARK, False)]:
        package_logger.removeHandler(handler)
        handler.close()

    handlers: List[logging.Handler] = []
    host_configured = bool(logging.getLogger().handlers)
    if not host_configured:
        handlers.append(_console_handler())
    directory = _resolve_log_dir(log_dir)
    if directory is not None:
        handlers.append(_file_handler(directory))

    for handler in handlers:
        setattr(handler, _HANDLER_MARK, True)
        package_logger.addHandler(handler)
    # With our own console handler in place, propagating would print twice.
    package_logger.propagate = host_configured
    return package_logger


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Return a logger under the ``galactica`` namespace."""
    if not name or name == PACKAGE_LOGGER:
        return logging.getLogger(PACKAGE_LOGGER)
    if name.startswith(f"{PACKAGE_LOGGER}."):
        return logging.getLogger(name)
    return logging.getLogger(f"{PACKAGE_LOGGER}.{name}")


def _console_handler() -> logging.Handler:
    handler = logging.StreamHandler()
    handler.setFormatter(_ColourFormatter(_CONSOLE_FORMAT, colour=_is_tty(handler.stream)))
    return handler


def _file_handler(directory: Path) -> logging.Handler:
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / f"galactica_{datetime.now():%Y%m%d_%H%M%S}.log"
    handler = logging.FileHandler(path, encoding="utf-8")
    handler.setFormatter(logging.Formatter(_FILE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    return handler


def _resolve_log_dir(log_dir: str | Path | None) -> Path | None:
    if log_dir is not None:
        return Path(log_dir)
    env_dir = os.getenv(LOG_DIR_ENV)
    return Path(env_dir) if env_dir else None


def _coerce_level(level: str | int) -> int:
    if isinstance(level, int):
        return level
    name = str(level).strip().upper()
    if name.isdigit():
        return int(name)
    resolved = logging.getLevelName(name)
    return resolved if isinstance(resolved, int) else logging.INFO


def _is_tty(stream) -> bool:
    isatty = getattr(stream, "isatty", None)
    if isatty is None or sys.platform == "win32":
        return False
    try:
        return bool(isatty())
    except ValueError:  # closed stream
        return False


class _ColourFormatter(logging.Formatter):
    """Colours the level name on terminals."""

    def __init__(self, fmt: str, *, colour: bool) -> None:
        super().__init__(fmt=fmt, datefmt="%H:%M:%S")
        self._colour = colour

    def formatMessage(self, record: logging.LogRecord) -> str:
        if not self._colour or record.levelno not in _LEVEL_COLOURS:
            return super().formatMessage(record)
        plain = record.levelname
        record.levelname = f"{_LEVEL_COLOURS[record.levelno]}{plain}{_RESET}"
        try:
            return super().formatMessage(record)
        finally:
            record.levelname = plain
