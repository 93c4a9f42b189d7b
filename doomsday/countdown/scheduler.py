"""
Owned timer resource for asyncio components.

Components never create module-level intervals; they receive a Scheduler and
every timer or background task they start is cancelled when it stops.
"""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Awaitable, Callable, Coroutine
from typing import Any

from doomsday.observability.logging import get_logger

logger = get_logger(__name__)

Callback = Callable[[], Awaitable[Any] | Any]


async def _maybe_await(result: Any) -> Any:
    if inspect.isawaitable(result):
        return await result
    return result


class Timer:
    """Handle for a one-shot or repeating timer."""

    def __init__(self, delay: float, task: asyncio.Task, repeat: bool = False):
        self.delay = delay
        self.repeat = repeat
        self._task = task

    def cancel(self) -> None:
        self._task.cancel()

    @property
    def active(self) -> bool:
        return not self._task.done()


class Scheduler:
    """
    Runs delayed, periodic and fire-and-forget work on the running loop.

    Usage:
        async with Scheduler() as scheduler:
            scheduler.call_every(1.0, ticker.tick)
            ...
        # every timer is cancelled here
    """

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task] = set()
        self._stopped = False

    def _track(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task:
        if self._stopped:
            coro.close()
            raise RuntimeError("Scheduler has been stopped")
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def call_later(self, delay: float, callback: Callback) -> Timer:
        async def _run() -> None:
            await asyncio.sleep(delay)
            await _maybe_await(callback())

        return Timer(delay, self._track(_run()))

    def call_every(self, interval: float, callback: Callback) -> Timer:
        async def _run() -> None:
            while True:
                await asyncio.sleep(interval)
                try:
                    await _maybe_await(callback())
                except Exception as e:
                    logger.error("Periodic callback failed: %s", e)

        return Timer(interval, self._track(_run()), repeat=True)

    def spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task:
        return self._track(coro)

    async def stop(self) -> None:
        """
        Cancel every outstanding timer and task.

        Side Effects:
            - Cancels tasks and waits for them to unwind
        """
        self._stopped = True
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()

    async def __aenter__(self) -> Scheduler:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.stop()
