"""Chat message endpoints.

Every successful write is published on the change feed so realtime
subscribers see it; the HTTP response itself is not echoed into any view.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends

from doomsday.api.dependencies import get_change_feed, get_store
from doomsday.config import MESSAGES_TABLE
from doomsday.observability.telemetry import counter, log_event
from doomsday.storage.change_feed import DELETE, INSERT, ChangeEvent, ChangeFeed
from doomsday.storage.facade import PersistenceFacade
from doomsday.storage.models import NewMessage

router = APIRouter(tags=["messages"])


@router.post("/send-message")
async def send_message(
    payload: NewMessage,
    store: PersistenceFacade = Depends(get_store),
    feed: ChangeFeed = Depends(get_change_feed),
) -> dict[str, Any]:
    """Store a chat message.

    Side Effects:
        - Inserts a row into messages
        - Publishes an INSERT change event
    """
    record = await store.insert_message(payload.nickname, payload.text, payload.color)
    row = record.model_dump(mode="json")

    feed.publish(ChangeEvent(type=INSERT, table=MESSAGES_TABLE, new=row))
    counter("api.messages.sent")
    log_event("api.message.sent", id=record.id, length=len(record.text))
    return {"success": True, "message": row}


@router.get("/get-messages")
async def get_messages(store: PersistenceFacade = Depends(get_store)) -> dict[str, Any]:
    messages = await store.list_messages()
    return {"success": True, "messages": [m.model_dump(mode="json") for m in messages]}


@router.delete("/clear-messages")
async def clear_messages(
    store: PersistenceFacade = Depends(get_store),
    feed: ChangeFeed = Depends(get_change_feed),
) -> dict[str, Any]:
    """Delete every message for every user.

    Side Effects:
        - Deletes all rows from messages
        - Publishes one DELETE change event when anything was removed
    """
    deleted = await store.delete_all_messages()
    if deleted:
        feed.publish(ChangeEvent(type=DELETE, table=MESSAGES_TABLE))

    log_event("api.messages.cleared", deleted=deleted)
    return {
        "success": True,
        "message": f"Cleared {deleted} messages from database",
        "deletedCount": deleted,
    }
