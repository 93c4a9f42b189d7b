"""
Day-keyed cache for generated content.

An entry is only valid on the calendar day it was written (string comparison
of ISO dates). Generated content is persisted; fallback content never is, so
the next lookup retries generation.
"""

from __future__ import annotations

import json
from collections.abc import Awaitable, Callable
from dataclasses import asdict, dataclass
from datetime import date

from doomsday.config import CACHE_KEY_PREFIX
from doomsday.content.fallbacks import fallback_content
from doomsday.content.local_store import LocalStore
from doomsday.observability.logging import get_logger
from doomsday.observability.telemetry import counter, log_event

logger = get_logger(__name__)

Payload = str | list[str]
GeneratorFn = Callable[[int], Awaitable[Payload]]


@dataclass
class CacheEntry:
    type: str
    day: int
    payload: Payload
    date: str


class DailyContentCache:
    """Content cache keyed by ``(type, day)`` with same-day validity."""

    def __init__(
        self,
        store: LocalStore,
        today: Callable[[], date] = date.today,
        prefix: str = CACHE_KEY_PREFIX,
    ):
        self.store = store
        self.today = today
        self.prefix = prefix

    def key(self, content_type: str, day: int) -> str:
        return f"{self.prefix}{content_type}-{day}"

    def _today_stamp(self) -> str:
        return self.today().isoformat()

    def lookup(self, content_type: str, day: int) -> CacheEntry | None:
        raw = self.store.get(self.key(content_type, day))
        if raw is None:
            return None
        try:
            data = json.loads(raw)
            entry = CacheEntry(
                type=data["type"], day=int(data["day"]), payload=data["payload"], date=data["date"]
            )
        except (ValueError, KeyError, TypeError):
            counter("cache.daily_content.corrupt")
            return None
        if entry.date != self._today_stamp():
            return None
        return entry

    async def get(
        self,
        content_type: str,
        day: int,
        generator: GeneratorFn,
        fallback_list: tuple[str, ...] | list[str],
        count: int = 1,
    ) -> CacheEntry:
        """
        Return today's content for ``(content_type, day)``.

        Cache hit returns the stored entry. On a miss the generator is called
        and its result stored; if it raises, fallback content is returned
        without being stored.

        Side Effects:
            - Writes generated content to the local store
        """
        cached = self.lookup(content_type, day)
        if cached is not None:
            counter("cache.daily_content.hit")
            return cached

        counter("cache.daily_content.miss")
        try:
            payload = await generator(day)
        except Exception as e:
            logger.warning("Content generation failed for %s day %d: %s", content_type, day, e)
            counter("cache.daily_content.fallback")
            items = fallback_content(day, fallback_list, count)
            return CacheEntry(
                type=content_type,
                day=day,
                payload=items[0] if count == 1 else items,
                date=self._today_stamp(),
            )

        entry = CacheEntry(type=content_type, day=day, payload=payload, date=self._today_stamp())
        self.store.set(self.key(content_type, day), json.dumps(asdict(entry)))
        return entry

    def sweep(self) -> int:
        """
        Remove entries not stamped with today's date, and unparsable ones.

        Side Effects:
            - Deletes keys from the local store
        """
        today = self._today_stamp()
        removed = 0
        for key in self.store.keys():
            if not key.startswith(self.prefix):
                continue
            raw = self.store.get(key)
            if raw is None:
                continue
            try:
                stamped = json.loads(raw).get("date")
            except (ValueError, AttributeError):
                stamped = None
            if stamped != today:
                self.store.remove(key)
                removed += 1

        if removed:
            log_event("cache.daily_content.swept", removed=removed)
        return removed
