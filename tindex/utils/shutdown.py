"""Global shutdown state management.

Provides a process-wide flag that long-running jobs poll to stop
scheduling new work once shutdown has been requested.
"""

from __future__ import annotations

import signal
import threading

_shutdown_flag: threading.Event = threading.Event()
_shutdown_lock: threading.Lock = threading.Lock()


def is_shutting_down() -> bool:
    """Check if shutdown is in progress."""
    return _shutdown_flag.is_set()


def set_shutdown() -> None:
    """Mark that shutdown has been initiated."""
    with _shutdown_lock:
        _shutdown_flag.set()


def clear_shutdown() -> None:
    """Clear shutdown flag (for testing)."""
    with _shutdown_lock:
        _shutdown_flag.clear()


def install_signal_handlers() -> None:
    """Route SIGINT/SIGTERM to the shutdown flag.

    A second SIGINT falls through to the default handler so a stuck
    process can still be interrupted.
    """

    def _handler(signum, _frame) -> None:
        if signum == signal.SIGINT and is_shutting_down():
            signal.signal(signal.SIGINT, signal.default_int_handler)
            raise KeyboardInterrupt
        set_shutdown()

    signal.signal(signal.SIGINT, _handler)
    signal.signal(signal.SIGTERM, _handler)
