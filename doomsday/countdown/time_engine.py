"""
Countdown arithmetic at a fixed UTC offset.

All "local" times here are naive datetimes holding the wall clock of the
configured offset (UTC fields shifted by ``utc_offset_hours``), so results
never depend on the host's timezone database.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from datetime import UTC, date, datetime, timedelta

from doomsday.config import SERVER_UTC_OFFSET_HOURS, START_DATE, TOTAL_DAYS

MILLISECONDS_PER_DAY = 24 * 60 * 60 * 1000
_MS_PER_HOUR = 60 * 60 * 1000
_MS_PER_MINUTE = 60 * 1000


@dataclass(frozen=True)
class CountdownState:
    """Snapshot of the countdown, recomputed on every tick."""

    total_ms: int
    days: int
    hours: int
    minutes: int
    seconds: int
    days_passed: int

    @property
    def finished(self) -> bool:
        return self.total_ms <= 0

    def display(self) -> str:
        return f"{self.days:03d}:{self.hours:02d}:{self.minutes:02d}:{self.seconds:02d}"


def utc_now() -> datetime:
    return datetime.now(UTC)


def local_utc_offset_hours() -> float:
    """Offset of the host clock from UTC, in hours (DST-aware)."""
    local = time.localtime()
    return (local.tm_gmtoff or 0) / 3600


def to_offset_time(moment: datetime, utc_offset_hours: float) -> datetime:
    """Wall clock of ``moment`` at the given offset. Naive input is taken as UTC."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=UTC)
    return moment.astimezone(UTC).replace(tzinfo=None) + timedelta(hours=utc_offset_hours)


def local_midnight(moment: date | datetime, utc_offset_hours: float) -> datetime:
    """Local midnight of the day containing ``moment``.

    A plain ``date`` already names a local calendar day and is not shifted.
    """
    if isinstance(moment, datetime):
        shifted = to_offset_time(moment, utc_offset_hours)
        return shifted.replace(hour=0, minute=0, second=0, microsecond=0)
    return datetime(moment.year, moment.month, moment.day)


def start_instant(start_date: date, utc_offset_hours: float) -> datetime:
    """The UTC instant at which local day ``start_date`` begins."""
    midnight = datetime(start_date.year, start_date.month, start_date.day)
    return (midnight - timedelta(hours=utc_offset_hours)).replace(tzinfo=UTC)


def _whole_days(later: datetime, earlier: datetime) -> int:
    return (later - earlier) // timedelta(days=1)


def compute_countdown(
    now: datetime,
    start_date: date | datetime,
    total_days: int,
    utc_offset_hours: float,
) -> CountdownState:
    """
    Compute time remaining until ``start_date + total_days`` at a fixed offset.

    ``days_passed`` counts local midnights crossed since the start day, with
    the start day itself being day 1; it is 0 before the start and never
    exceeds ``total_days``. Hours/minutes/seconds measure the distance to the
    next local midnight. Once the end is reached every field is 0.
    """
    now_local = to_offset_time(now, utc_offset_hours)
    start_midnight = local_midnight(start_date, utc_offset_hours)
    now_midnight = now_local.replace(hour=0, minute=0, second=0, microsecond=0)
    end_midnight = start_midnight + timedelta(days=total_days)

    days_difference = _whole_days(now_midnight, start_midnight)
    days_passed = 0 if days_difference < 0 else min(days_difference + 1, total_days)
    days_remaining = _whole_days(end_midnight, now_midnight)

    next_midnight = now_midnight + timedelta(days=1)
    until_next_day_ms = (next_midnight - now_local) // timedelta(milliseconds=1)
    total_ms = days_remaining * MILLISECONDS_PER_DAY + until_next_day_ms

    if total_ms <= 0 or now_local >= end_midnight:
        return CountdownState(0, 0, 0, 0, 0, days_passed)

    return CountdownState(
        total_ms=total_ms,
        days=days_remaining,
        hours=until_next_day_ms // _MS_PER_HOUR,
        minutes=(until_next_day_ms % _MS_PER_HOUR) // _MS_PER_MINUTE,
        seconds=(until_next_day_ms % _MS_PER_MINUTE) // 1000,
        days_passed=days_passed,
    )


def current_day_number(
    now: datetime | None = None,
    start_date: date | datetime = START_DATE,
    total_days: int = TOTAL_DAYS,
    utc_offset_hours: float = SERVER_UTC_OFFSET_HOURS,
) -> int:
    """Day number used to key daily content, clamped to ``[1, total_days]``.

    Defaults to the server clock at the earliest timezone (UTC+14).
    """
    now = now if now is not None else utc_now()
    state = compute_countdown(now, start_date, total_days, utc_offset_hours)
    return max(1, min(state.days_passed, total_days))
