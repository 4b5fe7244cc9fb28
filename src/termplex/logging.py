"""Application logging helpers.

Spawned terminals fork the server, so every record carries the process id to
tell the server apart from its supervisor processes.
"""

from __future__ import annotations

import logging as py_logging
import sys
from pathlib import Path
from typing import TextIO

LOG_LEVELS = {
    "DEBUG": py_logging.DEBUG,
    "INFO": py_logging.INFO,
    "WARN": py_logging.WARNING,
    "WARNING": py_logging.WARNING,
    "ERROR": py_logging.ERROR,
}
LOGGER_NAME = "termplex"
DEFAULT_LOG_PATH = Path("~/.config/termplex/logs/termplex.log")
_FALLBACK_LOG_PATH = Path(".termplex/logs/termplex.log")
_FORMAT = "%(asctime)s %(levelname)s [pid %(process)d] %(name)s:%(lineno)d %(message)s"


def normalize_level(level: str) -> str:
    normalized = level.strip().upper()
    if normalized == "WARNING":
        return "WARN"
    return normalized


def default_log_path() -> Path:
    try:
        resolved = DEFAULT_LOG_PATH.expanduser()
    except RuntimeError:
        resolved = (Path.cwd() / _FALLBACK_LOG_PATH).resolve()
    else:
        if not resolved.is_absolute():
            resolved = resolved.resolve()
    return resolved


def _absolute(path: str | Path) -> Path:
    try:
        candidate = Path(path).expanduser()
    except RuntimeError:
        candidate = Path(path)
    if not candidate.is_absolute():
        candidate = candidate.resolve()
    return candidate


def _file_handler(log_file: str | Path, formatter: py_logging.Formatter) -> py_logging.Handler | None:
    log_path = _absolute(log_file)
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handler = py_logging.FileHandler(log_path, encoding="utf-8")
    except OSError:
        return None
    handler.setLevel(py_logging.DEBUG)
    handler.setFormatter(formatter)
    return handler


def configure_logging(
    level: str = "INFO",
    stream: TextIO | None = None,
    *,
    log_file: str | Path | None = None,
) -> py_logging.Logger:
    resolved = LOG_LEVELS.get(normalize_level(level), py_logging.INFO)
    formatter = py_logging.Formatter(_FORMAT)

    logger = py_logging.getLogger(LOGGER_NAME)
    logger.setLevel(resolved)
    for existing in list(logger.handlers):
        logger.removeHandler(existing)
        existing.close()

    console = py_logging.StreamHandler(stream or sys.stderr)
    console.setLevel(resolved)
    console.setFormatter(formatter)
    logger.addHandler(console)

    if log_file:
        file_handler = _file_handler(log_file, formatter)
        if file_handler is not None:
            # File output keeps debug records regardless of the console level.
            logger.setLevel(py_logging.DEBUG)
            logger.addHandler(file_handler)

    logger.propagate = False
    return logger


def detach_console_handlers() -> None:
    """Drop non-file handlers, used once stderr has been redirected into a pty."""
    logger = py_logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        if isinstance(handler, py_logging.FileHandler):
            continue
        logger.removeHandler(handler)
    if not logger.handlers:
        logger.addHandler(py_logging.NullHandler())
    logger.propagate = False
