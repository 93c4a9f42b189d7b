"""
Server-Sent Events view of the row change feed.

``GET /realtime/{channel}?table=messages&events=INSERT,DELETE`` opens a
stream. The first frame confirms the subscription; each later frame is one
change event. A comment line is sent whenever the feed is idle for
REALTIME_KEEPALIVE_SECONDS.
"""

from __future__ import annotations

import json
from collections.abc import AsyncIterator

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse

from doomsday.api.dependencies import get_change_feed
from doomsday.config import MESSAGES_TABLE, REALTIME_KEEPALIVE_SECONDS
from doomsday.observability.logging import get_logger
from doomsday.observability.telemetry import counter
from doomsday.storage.change_feed import DELETE, INSERT, ChangeFeed, Subscription

logger = get_logger(__name__)

router = APIRouter(tags=["realtime"])


def _frame(payload: dict) -> str:
    return f"data: {json.dumps(payload)}\n\n"


async def event_stream(
    subscription: Subscription, channel: str, keepalive: float = REALTIME_KEEPALIVE_SECONDS
) -> AsyncIterator[str]:
    try:
        yield _frame({"status": "SUBSCRIBED", "channel": channel})
        while not subscription.closed:
            event = await subscription.get(timeout=keepalive)
            if event is None:
                if subscription.closed:
                    break
                yield ": keepalive\n\n"
                continue
            yield _frame(event.to_payload())
    finally:
        subscription.close()
        logger.debug("Realtime stream on %s closed", channel)


@router.get("/realtime/{channel}")
async def realtime(
    channel: str,
    table: str = MESSAGES_TABLE,
    events: str = f"{INSERT},{DELETE}",
    feed: ChangeFeed = Depends(get_change_feed),
) -> StreamingResponse:
    wanted = [e.strip() for e in events.split(",") if e.strip()]
    subscription = feed.subscribe(table, wanted)
    counter("realtime.stream.opened")
    return StreamingResponse(
        event_stream(subscription, channel),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )
