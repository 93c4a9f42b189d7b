"""Periodic countdown driver."""

from __future__ import annotations

from collections.abc import Callable
from datetime import date, datetime

from doomsday.config import TICK_INTERVAL_SECONDS
from doomsday.countdown.scheduler import Scheduler, Timer
from doomsday.countdown.time_engine import CountdownState, compute_countdown, utc_now
from doomsday.observability.logging import get_logger

logger = get_logger(__name__)


class CountdownTicker:
    """
    Recomputes the countdown once per interval on a Scheduler.

    ``on_tick`` receives every state. ``on_day_change`` fires with the new day
    number whenever ``days_passed`` advances (including the first tick). The
    ticker stops itself once the countdown reaches zero.
    """

    def __init__(
        self,
        scheduler: Scheduler,
        on_tick: Callable[[CountdownState], None],
        *,
        start_date: date | datetime,
        total_days: int,
        utc_offset_hours: float,
        on_day_change: Callable[[int], None] | None = None,
        clock: Callable[[], datetime] = utc_now,
        interval: float = TICK_INTERVAL_SECONDS,
    ):
        self.scheduler = scheduler
        self.on_tick = on_tick
        self.on_day_change = on_day_change
        self.start_date = start_date
        self.total_days = total_days
        self.utc_offset_hours = utc_offset_hours
        self.clock = clock
        self.interval = interval
        self.current_day = -1
        self._timer: Timer | None = None

    @property
    def running(self) -> bool:
        return self._timer is not None and self._timer.active

    def start(self) -> CountdownState:
        state = self.tick()
        if not state.finished:
            self._timer = self.scheduler.call_every(self.interval, self.tick)
        return state

    def stop(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def tick(self) -> CountdownState:
        state = compute_countdown(
            self.clock(), self.start_date, self.total_days, self.utc_offset_hours
        )
        self.on_tick(state)

        if state.days_passed > 0 and state.days_passed != self.current_day:
            self.current_day = state.days_passed
            if self.on_day_change is not None:
                self.on_day_change(state.days_passed)

        if state.finished:
            logger.info("Countdown finished, stopping ticker")
            self.stop()
        return state
