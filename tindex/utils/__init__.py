"""Utility modules for tindex."""

from __future__ import annotations

from tindex.utils.logging_config import LoggingContext, get_logger, setup_logging
from tindex.utils.shutdown import clear_shutdown, is_shutting_down, set_shutdown
from tindex.utils.tasks import BackgroundTaskGroup

__all__ = [
    "BackgroundTaskGroup",
    "LoggingContext",
    "clear_shutdown",
    "get_logger",
    "is_shutting_down",
    "set_shutdown",
    "setup_logging",
]
