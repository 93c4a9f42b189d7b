"""Unit tests for the chat connection state machine

Tests cover:
- connect -> connected on SUBSCRIBED, exponential reconnect backoff
- Stale callbacks from torn-down subscriptions are ignored
- Message dedup and bulk-clear handling
- Heartbeat failure, polling fallback, offline/online transitions
- send/clear validation and failures
"""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime

import httpx
import pytest

from doomsday.chat.colors import nickname_color
from doomsday.chat.connection import (
    ChatConnectionManager,
    ChatError,
    ConnectionState,
    MessageAdded,
    MessagesCleared,
    MessagesReset,
    SendError,
    StateChanged,
)
from doomsday.chat.transport import ChannelStatus
from doomsday.client.api import ConfigUnavailableError, DoomsdayAPI
from doomsday.observability.telemetry import get_counter
from doomsday.storage.change_feed import DELETE, INSERT, ChangeEvent
from doomsday.storage.models import MessageRecord


def _message(id_: int, text: str = "hello", nickname: str = "Bo") -> MessageRecord:
    return MessageRecord(
        id=id_,
        nickname=nickname,
        text=text,
        color="#81ecec",
        created_at=datetime(2025, 6, 20, 12, id_ % 60, tzinfo=UTC),
    )


def _insert(id_: int) -> ChangeEvent:
    return ChangeEvent(type=INSERT, table="messages", new=_message(id_).model_dump(mode="json"))


class FakeAPI:
    def __init__(self):
        self.config_errors: list[Exception] = []
        self.server_messages: list[MessageRecord] = []
        self.sent: list[tuple[str, str, str]] = []
        self.fail_send = False
        self.fail_clear = False
        self.config_calls = 0

    async def get_config(self):
        self.config_calls += 1
        if self.config_errors:
            raise self.config_errors.pop(0)
        return {"supabaseUrl": "http://db.test", "supabaseAnonKey": "anon"}

    async def get_messages(self):
        return list(self.server_messages)

    async def send_message(self, nickname, text, color):
        if self.fail_send:
            raise RuntimeError("insert rejected")
        self.sent.append((nickname, text, color))
        return _message(len(self.sent), text, nickname)

    async def clear_messages(self):
        if self.fail_clear:
            raise RuntimeError("delete rejected")
        count = len(self.server_messages)
        self.server_messages = []
        return count


class FakeSubscription:
    def __init__(self, on_change, on_status):
        self.on_change = on_change
        self.on_status = on_status
        self.unsubscribed = False

    async def unsubscribe(self):
        self.unsubscribed = True


class FakeTransport:
    def __init__(self):
        self.subscriptions: list[FakeSubscription] = []
        self.subscribe_args = None
        self.probe_result = True
        self.closed = False

    async def subscribe(self, channel, table, events, on_change, on_status):
        self.subscribe_args = (channel, table, tuple(events))
        subscription = FakeSubscription(on_change, on_status)
        self.subscriptions.append(subscription)
        return subscription

    async def probe(self):
        return self.probe_result

    async def aclose(self):
        self.closed = True


class Harness:
    def __init__(self, scheduler):
        self.api = FakeAPI()
        self.scheduler = scheduler
        self.transports: list[FakeTransport] = []
        self.manager = ChatConnectionManager(self.api, self._factory, scheduler)
        self.events = []
        self.manager.add_listener(self.events.append)

    def _factory(self, config):
        transport = FakeTransport()
        self.transports.append(transport)
        return transport

    @property
    def subscription(self) -> FakeSubscription:
        return self.transports[-1].subscriptions[-1]

    def states(self):
        return [e.state for e in self.events if isinstance(e, StateChanged)]

    def reconnect_timers(self):
        return [t for t in self.scheduler.active(repeat=False)]


@pytest.fixture
def harness(fake_scheduler):
    return Harness(fake_scheduler)


def run(coro):
    return asyncio.run(coro)


class TestConnect:
    def test_connect_subscribes_and_waits_for_confirmation(self, harness):
        async def scenario():
            await harness.manager.connect()
            assert harness.manager.state is ConnectionState.CONNECTING
            assert harness.transports[0].subscribe_args == (
                "schema-db-changes",
                "messages",
                (INSERT, DELETE),
            )

            harness.subscription.on_status(ChannelStatus.SUBSCRIBED)

        run(scenario())
        assert harness.manager.state is ConnectionState.CONNECTED
        assert harness.states() == [ConnectionState.CONNECTING, ConnectionState.CONNECTED]

    def test_reconnect_backoff_doubles_then_resets(self, harness):
        harness.api.config_errors = [RuntimeError("boom")] * 3

        async def scenario():
            delays = []
            await harness.manager.connect()
            for _ in range(3):
                (timer,) = harness.reconnect_timers()
                delays.append(timer.delay)
                await timer.fire()
            assert harness.manager.reconnect_attempts == 3

            (timer,) = harness.reconnect_timers()
            await timer.fire()
            harness.subscription.on_status(ChannelStatus.SUBSCRIBED)
            return delays

        assert run(scenario()) == [1, 2, 4]
        assert harness.manager.state is ConnectionState.CONNECTED
        assert harness.manager.reconnect_attempts == 0
        assert ConnectionState.RECONNECTING in harness.states()

    def test_backoff_is_capped(self, harness):
        harness.manager.reconnect_attempts = 10
        harness.api.config_errors = [RuntimeError("boom")]

        run(harness.manager.connect())

        (timer,) = harness.reconnect_timers()
        assert timer.delay == 30

    def test_error_status_schedules_single_reconnect(self, harness):
        async def scenario():
            await harness.manager.connect()
            subscription = harness.subscription
            subscription.on_status(ChannelStatus.CHANNEL_ERROR)
            subscription.on_status(ChannelStatus.CLOSED)
            await harness.scheduler.drain()
            return subscription

        subscription = run(scenario())
        assert harness.manager.state is ConnectionState.DISCONNECTED
        assert len(harness.reconnect_timers()) == 1
        assert subscription.unsubscribed
        assert harness.transports[0].closed

    def test_reconnect_tears_down_previous_subscription(self, harness):
        async def scenario():
            await harness.manager.connect()
            first = harness.subscription
            first.on_status(ChannelStatus.SUBSCRIBED)
            await harness.manager.connect()
            return first

        first = run(scenario())
        assert first.unsubscribed
        assert len(harness.transports) == 2
        assert harness.manager.state is ConnectionState.CONNECTING

    def test_stale_callbacks_are_ignored(self, harness):
        async def scenario():
            await harness.manager.connect()
            stale = harness.subscription
            await harness.manager.connect()

            stale.on_status(ChannelStatus.SUBSCRIBED)
            assert harness.manager.state is ConnectionState.CONNECTING
            stale.on_status(ChannelStatus.CHANNEL_ERROR)
            stale.on_change(_insert(1))

        run(scenario())
        assert harness.manager.state is ConnectionState.CONNECTING
        assert harness.manager.messages == []
        assert harness.reconnect_timers() == []

    def test_subscription_setup_failure_uses_reconnect_policy(self, harness):
        async def failing_subscribe(*args):
            raise RuntimeError("websocket refused")

        def factory(config):
            transport = FakeTransport()
            transport.subscribe = failing_subscribe
            harness.transports.append(transport)
            return transport

        harness.manager.transport_factory = factory

        async def scenario():
            await harness.manager.connect()
            await harness.scheduler.drain()

        run(scenario())
        assert harness.manager.state is ConnectionState.DISCONNECTED
        assert [t.delay for t in harness.reconnect_timers()] == [1]
        assert harness.transports[0].closed


class TestPollingFallback:
    def test_absent_config_switches_to_polling(self, harness):
        harness.api.config_errors = [ConfigUnavailableError("not found", 404)]

        run(harness.manager.connect())

        assert harness.manager.state is ConnectionState.DISCONNECTED
        assert harness.manager.polling
        assert harness.reconnect_timers() == []
        (poll,) = harness.scheduler.active(repeat=True)
        assert poll.delay == 3

    def test_poll_adds_new_and_clears_when_server_empty(self, harness):
        harness.api.config_errors = [ConfigUnavailableError("not found", 404)]
        harness.api.server_messages = [_message(1), _message(2)]

        async def scenario():
            await harness.manager.connect()
            (poll,) = harness.scheduler.active(repeat=True)
            await poll.fire()
            await poll.fire()
            assert [m.id for m in harness.manager.messages] == [1, 2]

            harness.api.server_messages = []
            await poll.fire()

        run(scenario())
        assert harness.manager.messages == []
        assert isinstance(harness.events[-1], MessagesCleared)

    def test_poll_replaces_list_after_remote_clear_and_insert(self, harness):
        harness.api.config_errors = [ConfigUnavailableError("not found", 404)]
        harness.api.server_messages = [_message(1), _message(2)]

        async def scenario():
            await harness.manager.connect()
            (poll,) = harness.scheduler.active(repeat=True)
            await poll.fire()

            harness.api.server_messages = [_message(3)]
            await poll.fire()

        run(scenario())
        assert [m.id for m in harness.manager.messages] == [3]
        assert isinstance(harness.events[-1], MessagesReset)
        assert [m.id for m in harness.events[-1].messages] == [3]
        # replaced ids no longer count as seen
        harness.manager.handle_change(_insert(1))
        assert [m.id for m in harness.manager.messages] == [3, 1]

    def test_poll_appends_only_new_tail(self, harness):
        harness.api.config_errors = [ConfigUnavailableError("not found", 404)]
        harness.api.server_messages = [_message(1)]

        async def scenario():
            await harness.manager.connect()
            (poll,) = harness.scheduler.active(repeat=True)
            await poll.fire()
            harness.api.server_messages = [_message(1), _message(2)]
            await poll.fire()

        run(scenario())
        added = [e.message.id for e in harness.events if isinstance(e, MessageAdded)]
        assert added == [1, 2]
        assert not any(isinstance(e, MessagesReset) for e in harness.events)

    def test_server_configuration_error_switches_to_polling(self, harness):
        def handler(request):
            if request.url.path == "/get-config":
                return httpx.Response(
                    500,
                    json={
                        "success": False,
                        "error": "Missing SUPABASE_URL environment variable",
                        "errorCategory": "configuration",
                    },
                )
            return httpx.Response(200, json={"success": True, "messages": []})

        harness.manager.api = DoomsdayAPI(
            "http://api.test", http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler))
        )

        run(harness.manager.connect())

        assert harness.manager.polling
        assert not harness.manager.reconnect_pending
        assert harness.transports == []

    def test_realtime_success_stops_polling(self, harness):
        harness.api.config_errors = [ConfigUnavailableError("not found", 404)]

        async def scenario():
            await harness.manager.connect()
            await harness.manager.connect()
            harness.subscription.on_status(ChannelStatus.SUBSCRIBED)

        run(scenario())
        assert not harness.manager.polling


class TestHeartbeat:
    def _connected(self, harness):
        async def scenario():
            await harness.manager.connect()
            harness.subscription.on_status(ChannelStatus.SUBSCRIBED)

        return scenario

    def test_heartbeat_runs_every_thirty_seconds(self, harness):
        run(self._connected(harness)())

        (heartbeat,) = harness.scheduler.active(repeat=True)
        assert heartbeat.delay == 30

    def test_failed_probe_disconnects(self, harness):
        async def scenario():
            await self._connected(harness)()
            harness.transports[-1].probe_result = False
            (heartbeat,) = harness.scheduler.active(repeat=True)
            await heartbeat.fire()
            await harness.scheduler.drain()
            return heartbeat

        heartbeat = run(scenario())
        assert harness.manager.state is ConnectionState.DISCONNECTED
        assert heartbeat.cancelled
        assert [t.delay for t in harness.reconnect_timers()] == [1]
        assert get_counter("chat.heartbeat_failed") == 1

    def test_successful_probe_keeps_connection(self, harness):
        async def scenario():
            await self._connected(harness)()
            (heartbeat,) = harness.scheduler.active(repeat=True)
            await heartbeat.fire()

        run(scenario())
        assert harness.manager.state is ConnectionState.CONNECTED


class TestMessages:
    def test_insert_events_are_deduplicated(self, harness):
        harness.manager.handle_change(_insert(1))
        harness.manager.handle_change(_insert(2))
        harness.manager.handle_change(_insert(1))

        assert [m.id for m in harness.manager.messages] == [1, 2]
        assert len([e for e in harness.events if isinstance(e, MessageAdded)]) == 2
        assert get_counter("chat.duplicate_message") == 1

    def test_malformed_insert_is_ignored(self, harness):
        harness.manager.handle_change(ChangeEvent(type=INSERT, table="messages", new={"id": 1}))

        assert harness.manager.messages == []

    def test_delete_clears_once(self, harness):
        harness.manager.handle_change(_insert(1))
        harness.manager.handle_change(ChangeEvent(type=DELETE, table="messages"))
        harness.manager.handle_change(ChangeEvent(type=DELETE, table="messages"))

        assert harness.manager.messages == []
        assert len([e for e in harness.events if isinstance(e, MessagesCleared)]) == 1

    def test_delete_on_empty_list_is_noop(self, harness):
        harness.manager.handle_change(ChangeEvent(type=DELETE, table="messages"))

        assert harness.events == []

    def test_load_history_replaces_messages(self, harness):
        harness.manager.handle_change(_insert(9))
        harness.api.server_messages = [_message(1), _message(2)]

        run(harness.manager.load_history())

        assert [m.id for m in harness.manager.messages] == [1, 2]
        assert isinstance(harness.events[-1], MessagesReset)
        # history ids count for dedup
        harness.manager.handle_change(_insert(2))
        assert len(harness.manager.messages) == 2

    def test_send_does_not_echo_locally(self, harness):
        record = run(harness.manager.send("  Bo ", " hi there "))

        assert harness.api.sent == [("Bo", "hi there", nickname_color("Bo"))]
        assert record.text == "hi there"
        assert harness.manager.messages == []

    @pytest.mark.parametrize(
        ("nickname", "text", "message"),
        [
            ("", "hi", "nickname"),
            ("Bo", "   ", "Message text is required"),
            ("x" * 51, "hi", "at most 50"),
            ("Bo", "x" * 1001, "at most 1000"),
        ],
    )
    def test_send_validates_input(self, harness, nickname, text, message):
        with pytest.raises(ValueError, match=message):
            run(harness.manager.send(nickname, text))

        assert harness.api.sent == []

    def test_send_failure_raises_send_error(self, harness):
        harness.api.fail_send = True

        with pytest.raises(SendError, match="insert rejected"):
            run(harness.manager.send("Bo", "hi"))

    def test_send_while_offline_is_rejected(self, harness):
        harness.manager.set_online(False)

        with pytest.raises(SendError, match="offline"):
            run(harness.manager.send("Bo", "hi"))

    def test_clear_all_clears_locally(self, harness):
        harness.api.server_messages = [_message(1)]
        harness.manager.handle_change(_insert(1))

        deleted = run(harness.manager.clear_all())

        assert deleted == 1
        assert harness.manager.messages == []

    def test_clear_all_failure(self, harness):
        harness.api.fail_clear = True
        harness.manager.handle_change(_insert(1))

        with pytest.raises(ChatError):
            run(harness.manager.clear_all())
        assert len(harness.manager.messages) == 1


class TestConnectivity:
    def test_going_offline_cancels_reconnect(self, harness):
        harness.api.config_errors = [RuntimeError("boom")]

        async def scenario():
            await harness.manager.connect()
            (timer,) = harness.reconnect_timers()
            harness.manager.set_online(False)
            return timer

        timer = run(scenario())
        assert timer.cancelled
        assert harness.manager.state is ConnectionState.DISCONNECTED
        assert not harness.manager.reconnect_pending

    def test_connect_while_offline_stays_disconnected(self, harness):
        harness.manager.set_online(False)

        run(harness.manager.connect())

        assert harness.api.config_calls == 0
        assert harness.manager.state is ConnectionState.DISCONNECTED

    def test_back_online_reloads_and_reconnects(self, harness):
        harness.api.server_messages = [_message(1)]

        async def scenario():
            harness.manager.set_online(False)
            harness.manager.reconnect_attempts = 4
            harness.manager.set_online(True)
            await harness.scheduler.drain()

        run(scenario())
        assert harness.manager.reconnect_attempts == 0
        assert [m.id for m in harness.manager.messages] == [1]
        assert harness.manager.state is ConnectionState.CONNECTING
        assert len(harness.transports) == 1

    def test_close_tears_everything_down(self, harness):
        async def scenario():
            await harness.manager.connect()
            harness.subscription.on_status(ChannelStatus.SUBSCRIBED)
            await harness.manager.close()
            await harness.manager.connect()

        run(scenario())
        assert harness.manager.state is ConnectionState.DISCONNECTED
        assert harness.transports[0].subscriptions[0].unsubscribed
        assert harness.scheduler.active() == []
        assert len(harness.transports) == 1
