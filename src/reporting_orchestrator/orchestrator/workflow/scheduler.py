"""Timer-based rescheduling for delay steps.

A delay step never blocks: the executor hands the scheduler a coroutine factory
and returns. The scheduler starts the coroutine once the delay has elapsed.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any, Protocol

logger = logging.getLogger(__name__)

ResumeCallback = Callable[[], Awaitable[Any]]


class DelayScheduler(Protocol):
    def schedule(self, delay_ms: int, callback: ResumeCallback) -> None: ...


class AsyncioDelayScheduler:
    """Schedule resumptions on the running asyncio event loop."""

    def __init__(self) -> None:
        self._handles: set[asyncio.TimerHandle] = set()
        self._tasks: set[asyncio.Task[Any]] = set()

    def schedule(self, delay_ms: int, callback: ResumeCallback) -> None:
        loop = asyncio.get_running_loop()
        handle: asyncio.TimerHandle | None = None

        def _fire() -> None:
            if handle is not None:
                self._handles.discard(handle)
            task = loop.create_task(callback())
            self._tasks.add(task)
            task.add_done_callback(self._task_done)

        handle = loop.call_later(delay_ms / 1000, _fire)
        self._handles.add(handle)
        logger.debug("Scheduled workflow resumption", extra={"delay_ms": delay_ms})

    def _task_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                "Scheduled workflow resumption failed",
                exc_info=(type(exc), exc, exc.__traceback__),
            )

    @property
    def pending(self) -> int:
        return len(self._handles) + len(self._tasks)

    async def wait_idle(self, poll_seconds: float = 0.05) -> None:
        """Wait until no timers or resumption tasks are outstanding."""

        while self.pending:
            if self._tasks:
                await asyncio.gather(*list(self._tasks), return_exceptions=True)
            else:
                await asyncio.sleep(poll_seconds)

    def cancel_all(self) -> None:
        for handle in list(self._handles):
            handle.cancel()
        self._handles.clear()
        for task in list(self._tasks):
            task.cancel()
