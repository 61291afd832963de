"""Logging helpers with correlation id support and optional JSON output."""

from __future__ import annotations

import json
import logging
import sys
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

ROOT_LOGGER_NAME = "api_test_agent"
DEFAULT_FORMAT = "%(asctime)s %(levelname)s [%(correlation_id)s] %(name)s: %(message)s"

_state = threading.local()
_global_correlation_id: str | None = None


def get_correlation_id() -> str:
    """Return the correlation id for the current thread, or ``"-"`` when unset."""
    value = getattr(_state, "correlation_id", None) or _global_correlation_id
    return value or "-"


def set_correlation_id(value: str | None) -> None:
    """Set the correlation id attached to every record emitted from now on.

    The value is shared with background threads started afterwards (stream
    relays and tool workers) so their records carry the same id.
    """
    global _global_correlation_id
    _state.correlation_id = value
    _global_correlation_id = value


class CorrelationFilter(logging.Filter):
    """Inject the active correlation id into log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = get_correlation_id()
        return True


class StructuredFormatter(logging.Formatter):
    """Render records as one JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "correlation_id": getattr(record, "correlation_id", get_correlation_id()),
        }
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


def get_logger(name: str | None = None) -> logging.Logger:
    """Return a logger under the package namespace."""
    if not name or name == ROOT_LOGGER_NAME:
        return logging.getLogger(ROOT_LOGGER_NAME)
    return logging.getLogger(name)


def configure_logging(
    level: str | int = "INFO",
    *,
    structured: bool = False,
    log_file: Path | None = None,
) -> logging.Logger:
    """Configure the package logger. Safe to call repeatedly."""
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO
    logger.setLevel(level)

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    handler: logging.Handler
    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(log_file, encoding="utf-8")
    else:
        handler = logging.StreamHandler(sys.stderr)

    formatter: logging.Formatter = (
        StructuredFormatter() if structured else logging.Formatter(DEFAULT_FORMAT)
    )
    handler.setFormatter(formatter)
    handler.addFilter(CorrelationFilter())
    logger.addHandler(handler)
    logger.propagate = False
    return logger


__all__ = [
    "StructuredFormatter",
    "configure_logging",
    "get_correlation_id",
    "get_logger",
    "set_correlation_id",
]
