"""Task helpers for tracking and cancelling worker tasks."""

from __future__ import annotations

import asyncio
import contextlib
from typing import Any, Coroutine


class BackgroundTaskGroup:
    """Tracks tasks for easier cancellation and cleanup.

    The first exception raised by a tracked task is remembered; ``wait``
    then cancels the remaining tasks and re-raises it.
    """

    def __init__(self) -> None:
        """Initialize empty task group."""
        self._tasks: set[asyncio.Task[Any]] = set()
        self._error: BaseException | None = None

    @property
    def error(self) -> BaseException | None:
        """First exception raised by a tracked task, if any."""
        return self._error

    def create(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task[Any]:
        """Create and track an asyncio task from a coroutine."""
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None and self._error is None:
            self._error = exc

    def cancel(self) -> None:
        """Request cancellation of every tracked task except the caller."""
        current = asyncio.current_task()
        for t in list(self._tasks):
            if t is not current and not t.done():
                t.cancel()

    async def wait(self) -> None:
        """Wait until every tracked task has finished.

        Raises:
            BaseException: The first exception raised by a tracked task,
                after the remaining tasks have been cancelled

        """
        while self._tasks and self._error is None:
            await asyncio.wait(list(self._tasks), return_when=asyncio.FIRST_EXCEPTION)
        if self._error is not None:
            await self.cancel_and_wait()
            raise self._error

    async def cancel_and_wait(self, timeout: float | None = None) -> None:
        """Cancel all tracked tasks and wait for completion (with optional timeout)."""
        if not self._tasks:
            return
        tasks = list(self._tasks)
        for t in tasks:
            if not t.done():
                t.cancel()
        if timeout is None:
            await asyncio.gather(*tasks, return_exceptions=True)
        else:
            with contextlib.suppress(asyncio.TimeoutError):
                await asyncio.wait_for(
                    asyncio.gather(*tasks, return_exceptions=True),
                    timeout=timeout,
                )
        self._tasks.clear()
