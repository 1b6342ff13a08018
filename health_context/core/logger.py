"""Logging utilities shared across the health context pipeline."""

from __future__ import annotations

import logging
import os
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

_CONSOLE_LOG_FORMAT = "%(asctime)s | %(levelname).1s | %(name)s | %(message)s"
_FILE_LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
_DATEFMT = "%H:%M:%S"
_DEFAULT_LOGGER_NAME = "health_context"

_CONFIGURED = False
_SESSION_LOG_PATH: Path | None = None

_COLOUR_CODES = {
    logging.DEBUG: "\033[36m",  # Cyan
    logging.INFO: "\033[32m",  # Green
    logging.WARNING: "\033[33m",  # Yellow
    logging.ERROR: "\033[31m",  # Red
    logging.CRITICAL: "\033[35m",  # Magenta
}
_COLOUR_RESET = "\033[0m"


def setup_logging(level: str = "INFO", *, log_dir: str | Path | None = None) -> None:
    """Configure the root logger exactly once and update the log level.

    A file handler is only attached when ``log_dir`` or the ``LOG_DIR``
    environment variable names a directory.
    """
    global _CONFIGURED, _SESSION_LOG_PATH

    root_logger = logging.getLogger()
    root_logger.setLevel(_coerce_level(level))

    if _CONFIGURED:
        return

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(
        _ColourFormatter(
            _CONSOLE_LOG_FORMAT,
            datefmt=_DATEFMT,
            use_colour=_supports_colour(console_handler.stream),
        )
    )
    handlers: list[logging.Handler] = [console_handler]

    target_dir = _resolve_log_dir(log_dir)
    if target_dir is not None:
        target_dir.mkdir(parents=True, exist_ok=True)
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        _SESSION_LOG_PATH = target_dir / f"{timestamp}.log"
        file_handler = logging.FileHandler(_SESSION_LOG_PATH, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(_FILE_LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
        handlers.append(file_handler)
    else:
        _SESSION_LOG_PATH = None

    root_logger.handlers.clear()
    for handler in handlers:
        root_logger.addHandler(handler)

    _CONFIGURED = True


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Return a logger that shares the configured root handlers."""
    logger = logging.getLogger(name or _DEFAULT_LOGGER_NAME)
    if logger.propagate is False:
        logger.propagate = True
    return logger


def session_log_path() -> Path | None:
    """Expose the current session log path for diagnostics."""
    return _SESSION_LOG_PATH


def _resolve_log_dir(log_dir: str | Path | None) -> Path | None:
    if log_dir is None:
        env_dir = os.getenv("LOG_DIR")
        return Path(env_dir) if env_dir else None
    return Path(log_dir)


def _coerce_level(level: str) -> int:
    level_name = level.upper()
    mapping = logging.getLevelNamesMapping()
    if level_name in mapping:
        return mapping[level_name]
    if level_name.isdigit():
        return int(level_name)
    return logging.INFO


def _supports_colour(stream) -> bool:
    if stream is None or not hasattr(stream, "isatty"):
        return False
    try:
        return stream.isatty() and sys.platform != "win32"
    except ValueError:  # closed stream
        return False


class _ColourFormatter(logging.Formatter):
    def __init__(self, fmt: str, *, datefmt: str | None, use_colour: bool) -> None:
        super().__init__(fmt=fmt, datefmt=datefmt)
        self._use_colour = use_colour

    def format(self, record: logging.LogRecord) -> str:
        original_levelname = record.levelname
        if self._use_colour:
            colour = _COLOUR_CODES.get(record.levelno)
            if colour:
                record.levelname = f"{colour}{record.levelname}{_COLOUR_RESET}"
        try:
            return super().format(record)
        finally:
            record.levelname = original_levelname
