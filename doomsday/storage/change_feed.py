"""
In-process row change feed.

Request handlers publish a ChangeEvent after each successful write; the
realtime route fans events out to every subscriber whose table and event
filter match. Each subscriber owns a bounded queue; a subscriber that falls
behind is dropped rather than blocking publishers.
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from doomsday.observability.logging import get_logger
from doomsday.observability.telemetry import counter

logger = get_logger(__name__)

INSERT = "INSERT"
DELETE = "DELETE"


@dataclass(frozen=True)
class ChangeEvent:
    type: str
    table: str
    new: dict[str, Any] = field(default_factory=dict)
    old: dict[str, Any] = field(default_factory=dict)

    def to_payload(self) -> dict[str, Any]:
        return {"eventType": self.type, "table": self.table, "new": self.new, "old": self.old}

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> ChangeEvent:
        return cls(
            type=str(payload.get("eventType", "")).upper(),
            table=str(payload.get("table", "")),
            new=payload.get("new") or {},
            old=payload.get("old") or {},
        )


class Subscription:
    def __init__(self, feed: ChangeFeed, table: str, events: frozenset[str], maxsize: int):
        self.feed = feed
        self.table = table
        self.events = events
        self.queue: asyncio.Queue[ChangeEvent | None] = asyncio.Queue(maxsize=maxsize)
        self.closed = False

    def matches(self, event: ChangeEvent) -> bool:
        return event.table == self.table and event.type in self.events

    def offer(self, event: ChangeEvent) -> bool:
        try:
            self.queue.put_nowait(event)
        except asyncio.QueueFull:
            return False
        return True

    async def get(self, timeout: float | None = None) -> ChangeEvent | None:
        """Next event, or None on timeout or once the subscription is closed."""
        if self.closed:
            return None
        try:
            return await asyncio.wait_for(self.queue.get(), timeout)
        except TimeoutError:
            return None

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self.feed._subscribers.discard(self)
        try:
            self.queue.put_nowait(None)
        except asyncio.QueueFull:
            pass


class ChangeFeed:
    def __init__(self, queue_size: int = 100):
        self.queue_size = queue_size
        self._subscribers: set[Subscription] = set()

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self, table: str, events: Iterable[str] = (INSERT, DELETE)) -> Subscription:
        subscription = Subscription(
            self, table, frozenset(e.upper() for e in events), self.queue_size
        )
        self._subscribers.add(subscription)
        counter("realtime.subscribe")
        return subscription

    def publish(self, event: ChangeEvent) -> int:
        """
        Deliver ``event`` to matching subscribers and return how many got it.

        Side Effects:
            - Closes subscribers whose queue is full
        """
        delivered = 0
        for subscription in list(self._subscribers):
            if not subscription.matches(event):
                continue
            if subscription.offer(event):
                delivered += 1
            else:
                logger.warning("Dropping slow realtime subscriber on %s", subscription.table)
                counter("realtime.subscriber_dropped")
                subscription.closed = True
                self._subscribers.discard(subscription)
        counter(f"realtime.publish.{event.type.lower()}")
        return delivered
