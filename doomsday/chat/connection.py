"""
Chat connection state machine.

    disconnected -> connecting -> connected
    any state    -> disconnected            (error, closed channel, failed heartbeat, offline)
    disconnected -> reconnecting -> connecting   (scheduled retry)

One realtime subscription is alive at a time. Every subscription is tagged
with a generation number; callbacks from an older generation are ignored, so
a late status or change event from a torn-down channel cannot flip the state.
State is re-checked after every await.

Sent messages are not appended locally: they appear once the change feed
echoes the insert back, so every client renders in feed order.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol

from pydantic import ValidationError

from doomsday.chat.colors import nickname_color
from doomsday.chat.transport import (
    ChannelStatus,
    RealtimeSubscription,
    RealtimeTransport,
)
from doomsday.client.api import ConfigUnavailableError
from doomsday.config import (
    CHAT_CHANNEL,
    HEARTBEAT_INTERVAL_SECONDS,
    MESSAGE_MAX_LENGTH,
    MESSAGES_TABLE,
    NICKNAME_MAX_LENGTH,
    POLL_INTERVAL_SECONDS,
    RECONNECT_BASE_DELAY_SECONDS,
    RECONNECT_MAX_DELAY_SECONDS,
)
from doomsday.countdown.scheduler import Scheduler, Timer
from doomsday.observability.logging import get_logger
from doomsday.observability.telemetry import counter, log_event
from doomsday.storage.change_feed import DELETE, INSERT, ChangeEvent
from doomsday.storage.models import MessageRecord

logger = get_logger(__name__)


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"


class ChatError(RuntimeError):
    pass


class SendError(ChatError):
    """A message could not be delivered to the server. Never retried automatically."""


@dataclass(frozen=True)
class StateChanged:
    state: ConnectionState
    previous: ConnectionState


@dataclass(frozen=True)
class MessageAdded:
    message: MessageRecord


@dataclass(frozen=True)
class MessagesCleared:
    pass


@dataclass(frozen=True)
class MessagesReset:
    messages: tuple[MessageRecord, ...]


ChatEvent = StateChanged | MessageAdded | MessagesCleared | MessagesReset
Listener = Callable[[ChatEvent], None]


class ChatAPI(Protocol):
    async def get_config(self) -> Mapping[str, Any]: ...

    async def get_messages(self) -> list[MessageRecord]: ...

    async def send_message(self, nickname: str, text: str, color: str) -> MessageRecord: ...

    async def clear_messages(self) -> int: ...


TransportFactory = Callable[[Mapping[str, Any]], RealtimeTransport]


class ChatConnectionManager:
    def __init__(
        self,
        api: ChatAPI,
        transport_factory: TransportFactory,
        scheduler: Scheduler,
        *,
        channel: str = CHAT_CHANNEL,
        table: str = MESSAGES_TABLE,
        base_delay: float = RECONNECT_BASE_DELAY_SECONDS,
        max_delay: float = RECONNECT_MAX_DELAY_SECONDS,
        heartbeat_interval: float = HEARTBEAT_INTERVAL_SECONDS,
        poll_interval: float = POLL_INTERVAL_SECONDS,
        online: bool = True,
    ):
        self.api = api
        self.transport_factory = transport_factory
        self.scheduler = scheduler
        self.channel = channel
        self.table = table
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.heartbeat_interval = heartbeat_interval
        self.poll_interval = poll_interval
        self.online = online

        self.state = ConnectionState.DISCONNECTED
        self.messages: list[MessageRecord] = []
        self.reconnect_attempts = 0

        self._message_ids: set[int] = set()
        self._listeners: list[Listener] = []
        self._generation = 0
        self._transport: RealtimeTransport | None = None
        self._subscription: RealtimeSubscription | None = None
        self._reconnect_timer: Timer | None = None
        self._heartbeat_timer: Timer | None = None
        self._poll_timer: Timer | None = None
        self._closed = False

    # --- listeners ---

    def add_listener(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener)

    def _emit(self, event: ChatEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as e:
                logger.error("Chat listener failed on %s: %s", type(event).__name__, e)

    def _set_state(self, state: ConnectionState) -> None:
        previous = self.state
        if previous is state:
            return
        self.state = state
        logger.info("Chat connection %s -> %s", previous.value, state.value)
        self._emit(StateChanged(state=state, previous=previous))

    @property
    def polling(self) -> bool:
        return self._poll_timer is not None and self._poll_timer.active

    @property
    def reconnect_pending(self) -> bool:
        return self._reconnect_timer is not None and self._reconnect_timer.active

    # --- lifecycle ---

    async def connect(self) -> None:
        """
        Fetch connection config and open the realtime subscription.

        Any previous subscription is torn down first. Failures route to the
        reconnect policy, except an absent config endpoint which switches to
        polling.
        """
        if self._closed:
            return
        self._cancel_reconnect()
        if not self.online:
            logger.info("Offline, not connecting to chat")
            previous = self._detach()
            if previous is not None:
                self.scheduler.spawn(self._dispose(*previous))
            self._set_state(ConnectionState.DISCONNECTED)
            return

        previous = self._detach()
        if previous is not None:
            await self._dispose(*previous)

        self._generation += 1
        generation = self._generation
        self._set_state(ConnectionState.CONNECTING)

        try:
            config = await self.api.get_config()
        except ConfigUnavailableError as e:
            if generation != self._generation:
                return
            logger.warning("Realtime config unavailable, falling back to polling: %s", e)
            counter("chat.polling_fallback")
            self._set_state(ConnectionState.DISCONNECTED)
            self._start_polling()
            return
        except Exception as e:
            if generation == self._generation:
                self._handle_disconnect(f"config fetch failed: {e}")
            return

        if generation != self._generation or self.state is not ConnectionState.CONNECTING:
            return

        transport: RealtimeTransport | None = None
        try:
            transport = self.transport_factory(config)
            subscription = await transport.subscribe(
                self.channel,
                self.table,
                (INSERT, DELETE),
                lambda event: self._on_change(generation, event),
                lambda status: self._on_status(generation, status),
            )
        except Exception as e:
            if transport is not None:
                self.scheduler.spawn(transport.aclose())
            if generation == self._generation:
                self._handle_disconnect(f"subscription setup failed: {e}")
            return

        if generation != self._generation:
            # Torn down while subscribing (status callback or close())
            await self._dispose(transport, subscription)
            return

        self._transport = transport
        self._subscription = subscription

    def _on_status(self, generation: int, status: ChannelStatus) -> None:
        if generation != self._generation or self._closed:
            return

        if status is ChannelStatus.SUBSCRIBED:
            if self.state is not ConnectionState.CONNECTING:
                return
            self.reconnect_attempts = 0
            self._stop_polling()
            self._set_state(ConnectionState.CONNECTED)
            self._start_heartbeat()
            log_event("chat.connected", channel=self.channel)
        else:
            self._handle_disconnect(f"channel status {status.value}")

    def _on_change(self, generation: int, event: ChangeEvent) -> None:
        if generation != self._generation or self._closed:
            return
        self.handle_change(event)

    def _handle_disconnect(self, reason: str) -> None:
        logger.warning("Chat disconnected: %s", reason)
        counter("chat.disconnect")
        previous = self._detach()
        if previous is not None:
            self.scheduler.spawn(self._dispose(*previous))
        self._set_state(ConnectionState.DISCONNECTED)
        self._schedule_reconnect()

    def _schedule_reconnect(self) -> None:
        if self._closed or not self.online or self.reconnect_pending:
            return
        delay = min(self.base_delay * 2**self.reconnect_attempts, self.max_delay)
        self.reconnect_attempts += 1
        logger.info(
            "Reconnecting to chat in %.1fs (attempt %d)", delay, self.reconnect_attempts
        )
        self._reconnect_timer = self.scheduler.call_later(delay, self._reconnect)

    async def _reconnect(self) -> None:
        self._reconnect_timer = None
        if self._closed or not self.online:
            return
        self._set_state(ConnectionState.RECONNECTING)
        await self.connect()

    def _cancel_reconnect(self) -> None:
        if self._reconnect_timer is not None:
            self._reconnect_timer.cancel()
            self._reconnect_timer = None

    def _detach(self) -> tuple[RealtimeTransport, RealtimeSubscription] | None:
        """Invalidate the current subscription and hand it back for disposal."""
        self._generation += 1
        self._stop_heartbeat()
        transport, subscription = self._transport, self._subscription
        self._transport = None
        self._subscription = None
        if transport is None or subscription is None:
            return None
        return transport, subscription

    async def _dispose(
        self, transport: RealtimeTransport, subscription: RealtimeSubscription
    ) -> None:
        try:
            await subscription.unsubscribe()
        except Exception as e:
            logger.warning("Failed to unsubscribe from realtime channel: %s", e)
        try:
            await transport.aclose()
        except Exception as e:
            logger.warning("Failed to close realtime transport: %s", e)

    # --- heartbeat ---

    def _start_heartbeat(self) -> None:
        self._stop_heartbeat()
        generation = self._generation
        self._heartbeat_timer = self.scheduler.call_every(
            self.heartbeat_interval, lambda: self._heartbeat(generation)
        )

    def _stop_heartbeat(self) -> None:
        if self._heartbeat_timer is not None:
            self._heartbeat_timer.cancel()
            self._heartbeat_timer = None

    async def _heartbeat(self, generation: int) -> None:
        transport = self._transport
        if (
            generation != self._generation
            or self.state is not ConnectionState.CONNECTED
            or transport is None
        ):
            return
        try:
            alive = await transport.probe()
        except Exception as e:
            logger.warning("Heartbeat probe raised: %s", e)
            alive = False

        if generation != self._generation or self.state is not ConnectionState.CONNECTED:
            return
        if not alive:
            counter("chat.heartbeat_failed")
            self._handle_disconnect("heartbeat failed")

    # --- polling fallback ---

    def _start_polling(self) -> None:
        if self.polling:
            return
        self._poll_timer = self.scheduler.call_every(self.poll_interval, self._poll)

    def _stop_polling(self) -> None:
        if self._poll_timer is not None:
            self._poll_timer.cancel()
            self._poll_timer = None

    async def _poll(self) -> None:
        if self._closed or not self.online:
            return
        try:
            messages = await self.api.get_messages()
        except Exception as e:
            logger.debug("Chat poll failed: %s", e)
            return
        if self._closed:
            return

        local_ids = [message.id for message in self.messages]
        server_ids = [message.id for message in messages]
        if server_ids == local_ids:
            return
        if not messages:
            self._clear()
        elif server_ids[: len(local_ids)] == local_ids:
            for message in messages[len(local_ids) :]:
                self._add_message(message)
        else:
            # Cleared or pruned elsewhere since the last poll
            self._replace(messages)

    # --- connectivity ---

    def set_online(self, online: bool) -> None:
        """
        Network connectivity signal.

        Going offline cancels any pending reconnect and drops the
        subscription. Coming back online resets the backoff, reloads history
        and reconnects immediately.
        """
        if online == self.online:
            return
        self.online = online
        if not online:
            logger.info("Network offline, suspending chat")
            self._cancel_reconnect()
            self._stop_polling()
            previous = self._detach()
            if previous is not None:
                self.scheduler.spawn(self._dispose(*previous))
            self._set_state(ConnectionState.DISCONNECTED)
            return

        logger.info("Network online, reconnecting chat")
        self.reconnect_attempts = 0
        self.scheduler.spawn(self._resume())

    async def _resume(self) -> None:
        await self.load_history()
        if self.online and not self._closed:
            await self.connect()

    # --- messages ---

    def handle_change(self, event: ChangeEvent) -> None:
        if event.type == INSERT:
            try:
                message = MessageRecord.model_validate(event.new)
            except ValidationError as e:
                logger.warning("Ignoring malformed message event: %s", e)
                return
            self._add_message(message)
        elif event.type == DELETE:
            # Bulk clear; a second DELETE for the same clear is a no-op
            if self.messages:
                self._clear()

    def _add_message(self, message: MessageRecord) -> bool:
        if message.id in self._message_ids:
            counter("chat.duplicate_message")
            return False
        self._message_ids.add(message.id)
        self.messages.append(message)
        self._emit(MessageAdded(message=message))
        return True

    def _clear(self) -> None:
        self.messages = []
        self._message_ids = set()
        self._emit(MessagesCleared())

    async def load_history(self) -> list[MessageRecord]:
        """Replace the local list with the server's history. Failures keep what we have."""
        try:
            messages = await self.api.get_messages()
        except Exception as e:
            logger.warning("Failed to load chat history: %s", e)
            return self.messages
        self._replace(messages)
        return self.messages

    def _replace(self, messages: list[MessageRecord]) -> None:
        self.messages = list(messages)
        self._message_ids = {message.id for message in self.messages}
        self._emit(MessagesReset(messages=tuple(self.messages)))

    async def send(self, nickname: str, text: str) -> MessageRecord:
        """
        Write a message to the server.

        Raises:
            ValueError: empty or oversized nickname/text
            SendError: offline, or the server rejected the write
        """
        nickname = nickname.strip()
        text = text.strip()
        if not nickname:
            raise ValueError("Please enter a nickname")
        if len(nickname) > NICKNAME_MAX_LENGTH:
            raise ValueError(f"Nickname must be at most {NICKNAME_MAX_LENGTH} characters")
        if not text:
            raise ValueError("Message text is required")
        if len(text) > MESSAGE_MAX_LENGTH:
            raise ValueError(f"Message must be at most {MESSAGE_MAX_LENGTH} characters")
        if not self.online:
            raise SendError("You are offline. Message not sent.")

        try:
            record = await self.api.send_message(nickname, text, nickname_color(nickname))
        except Exception as e:
            counter("chat.send_failed")
            raise SendError(f"Failed to send message: {e}") from e
        counter("chat.sent")
        return record

    async def clear_all(self) -> int:
        """Delete every message for everyone. Raises ChatError on failure."""
        try:
            deleted = await self.api.clear_messages()
        except Exception as e:
            counter("chat.clear_failed")
            raise ChatError(f"Failed to clear messages: {e}") from e
        if self.messages:
            self._clear()
        return deleted

    async def close(self) -> None:
        """Tear down: cancel every timer, drop the subscription, go disconnected."""
        self._closed = True
        self._cancel_reconnect()
        self._stop_polling()
        previous = self._detach()
        if previous is not None:
            await self._dispose(*previous)
        self._set_state(ConnectionState.DISCONNECTED)
