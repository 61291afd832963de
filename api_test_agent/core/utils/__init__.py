"""Shared utilities."""

from .config import Settings, load_settings
from .logger import configure_logging, get_correlation_id, get_logger, set_correlation_id

__all__ = [
    "Settings",
    "configure_logging",
    "get_correlation_id",
    "get_logger",
    "load_settings",
    "set_correlation_id",
]
