"""Rich logging integration for tindex.

Provides the Rich console handler and the plain-text file formatter.
"""

from __future__ import annotations

import logging
import re
import sys
from typing import Any

from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

_MARKUP_PATTERN = re.compile(r"\[/?[^\]]+\]")


class CorrelationRichHandler(RichHandler):
    """RichHandler that tags records with the current correlation ID.

    Info-hashes (40 hex characters) are highlighted in log messages.
    """

    INFO_HASH_PATTERN = re.compile(r"\b[0-9a-fA-F]{40}\b")

    def __init__(self, *args: Any, console: Console | None = None, **kwargs: Any) -> None:
        """Initialize handler.

        Args:
            *args: Positional arguments for RichHandler
            console: Optional Rich Console instance
            **kwargs: Keyword arguments for RichHandler

        """
        if console is None:
            console = Console(file=sys.stderr, markup=True)
        kwargs.setdefault("markup", True)
        super().__init__(*args, console=console, **kwargs)

    def _highlight_info_hashes(self, message: str) -> str:
        return self.INFO_HASH_PATTERN.sub(
            lambda m: f"[bright_cyan]{m.group(0)}[/bright_cyan]", message
        )

    def emit(self, record: logging.LogRecord) -> None:
        """Emit a log record with correlation ID and info-hash highlighting."""
        try:
            if not hasattr(record, "correlation_id"):
                from tindex.utils.logging_config import correlation_id

                record.correlation_id = correlation_id.get() or "no-correlation-id"

            record.msg = self._highlight_info_hashes(escape(record.getMessage()))
            record.args = ()
            super().emit(record)
        except Exception:
            self.handleError(record)


def strip_rich_markup(text: str) -> str:
    """Strip Rich markup from text for file logging.

    Args:
        text: Text with Rich markup

    Returns:
        Text without Rich markup

    """
    return _MARKUP_PATTERN.sub("", text)


class FileFormatter(logging.Formatter):
    """Formatter for file output that strips Rich markup."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record, stripping Rich markup for file output."""
        return strip_rich_markup(super().format(record))


def create_rich_handler(
    console: Console | None = None,
    level: int | str = logging.INFO,
    show_path: bool = False,
    rich_tracebacks: bool = True,
) -> logging.Handler:
    """Create a RichHandler with correlation ID support.

    Args:
        console: Optional Rich Console instance
        level: Log level
        show_path: Whether to show file paths in log output
        rich_tracebacks: Whether to use rich tracebacks

    Returns:
        Configured RichHandler instance

    """
    return CorrelationRichHandler(
        console=console,
        level=level,
        show_path=show_path,
        rich_tracebacks=rich_tracebacks,
    )
