"""Utilities package."""

from .config import ensure_storage_dirs, settings
from .log import LoggerMixin, configure_logging, get_logger

__all__ = [
    "settings",
    "ensure_storage_dirs",
    "get_logger",
    "LoggerMixin",
    "configure_logging",
]
