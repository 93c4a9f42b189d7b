"""Render-only chat view: turns manager events into IRC-style text lines."""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime

from doomsday.chat.connection import (
    ChatConnectionManager,
    ChatEvent,
    ConnectionState,
    MessageAdded,
    MessagesCleared,
    MessagesReset,
    StateChanged,
)
from doomsday.storage.models import MessageRecord

WELCOME_LINE = "* Welcome to the chat! Enter your nickname and start chatting..."
CLEARED_LINE = "* Chat history has been cleared."

STATUS_LINES = {
    ConnectionState.CONNECTED: "* Connected",
    ConnectionState.CONNECTING: "* Connecting...",
    ConnectionState.RECONNECTING: "* Reconnecting...",
    ConnectionState.DISCONNECTED: "* Disconnected",
}


def format_message(message: MessageRecord, tz: Callable[[datetime], datetime] | None = None) -> str:
    created = message.created_at.astimezone() if tz is None else tz(message.created_at)
    return f"[{created:%H:%M}] <{message.nickname}> {message.text}"


class ChatView:
    """
    Subscribes to a ChatConnectionManager and writes one line per event.

    ``lines`` keeps everything rendered since the last reset.
    """

    def __init__(
        self,
        manager: ChatConnectionManager,
        write: Callable[[str], None] = print,
        tz: Callable[[datetime], datetime] | None = None,
    ):
        self.write = write
        self.tz = tz
        self.lines: list[str] = []
        self._unsubscribe = manager.add_listener(self.on_event)

    def _render(self, line: str) -> None:
        self.lines.append(line)
        self.write(line)

    def on_event(self, event: ChatEvent) -> None:
        if isinstance(event, StateChanged):
            self._render(STATUS_LINES[event.state])
        elif isinstance(event, MessageAdded):
            self._render(format_message(event.message, self.tz))
        elif isinstance(event, MessagesCleared):
            self.lines = []
            self._render(CLEARED_LINE)
        elif isinstance(event, MessagesReset):
            self.lines = []
            self._render(WELCOME_LINE)
            for message in event.messages:
                self._render(format_message(message, self.tz))

    def detach(self) -> None:
        self._unsubscribe()
