"""Public package interface for the API test agent."""

from __future__ import annotations

from importlib import metadata as _metadata

try:
    __version__ = _metadata.version("api-test-agent")
except _metadata.PackageNotFoundError:  # pragma: no cover - fallback when not installed
    __version__ = "0.1.0"

from .core.errors import (
    AgentError,
    CancellationError,
    ExecutionError,
    PersistenceError,
    StreamError,
    ValidationError,
)
from .core.utils.config import Settings, load_settings
from .core.utils.logger import configure_logging, get_logger

__all__ = [
    "AgentError",
    "CancellationError",
    "ExecutionError",
    "PersistenceError",
    "Settings",
    "StreamError",
    "ValidationError",
    "__version__",
    "configure_logging",
    "get_logger",
    "load_settings",
]
