"""
Pytest configuration for Doomsday tests

Shared fixtures: telemetry reset, a temporary SQLite store, and a
manually-driven scheduler for state machine tests.
"""

from __future__ import annotations

import asyncio
import inspect
from typing import Any

import pytest

from doomsday.observability import telemetry
from doomsday.storage.sqlite_store import SQLiteStore


@pytest.fixture(autouse=True)
def reset_telemetry():
    """Every test starts with empty counters and latencies"""
    telemetry.reset()
    yield
    telemetry.reset()


@pytest.fixture
def sqlite_store(tmp_path):
    """SQLite store on a throwaway database file"""
    store = SQLiteStore(tmp_path / "doomsday-test.db")
    yield store
    store.pool.close_all()


class FakeTimer:
    def __init__(self, delay: float, callback: Any, repeat: bool):
        self.delay = delay
        self.callback = callback
        self.repeat = repeat
        self.cancelled = False
        self.fired = False

    def cancel(self) -> None:
        self.cancelled = True

    @property
    def active(self) -> bool:
        return not self.cancelled and (self.repeat or not self.fired)

    async def fire(self) -> None:
        self.fired = True
        result = self.callback()
        if inspect.isawaitable(result):
            await result


class FakeScheduler:
    """
    Scheduler stand-in: timers never fire on their own.

    Tests inspect ``timers`` and call ``fire()`` to advance time. Spawned
    coroutines run as real tasks; ``drain()`` waits for them.
    """

    def __init__(self) -> None:
        self.timers: list[FakeTimer] = []
        self.tasks: list[asyncio.Task] = []

    def call_later(self, delay: float, callback: Any) -> FakeTimer:
        timer = FakeTimer(delay, callback, repeat=False)
        self.timers.append(timer)
        return timer

    def call_every(self, interval: float, callback: Any) -> FakeTimer:
        timer = FakeTimer(interval, callback, repeat=True)
        self.timers.append(timer)
        return timer

    def spawn(self, coro: Any) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self.tasks.append(task)
        return task

    def active(self, repeat: bool | None = None) -> list[FakeTimer]:
        return [
            t for t in self.timers if t.active and (repeat is None or t.repeat is repeat)
        ]

    async def drain(self) -> None:
        while self.tasks:
            tasks, self.tasks = self.tasks, []
            await asyncio.gather(*tasks)


@pytest.fixture
def fake_scheduler():
    return FakeScheduler()
