"""
Realtime subscription transport for chat clients.

The server exposes the row change feed as Server-Sent Events at
``GET {realtime_url}/{channel}?table=...&events=...``. The first data frame
is ``{"status": "SUBSCRIBED"}``; every later data frame is one change event.
Comment lines (``: keepalive``) arrive every few seconds so a dead link shows
up as a read timeout.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Callable, Iterable
from enum import Enum
from typing import Any, Protocol

import httpx

from doomsday.config import REALTIME_KEEPALIVE_SECONDS
from doomsday.observability.logging import get_logger
from doomsday.observability.telemetry import counter
from doomsday.storage.change_feed import ChangeEvent

logger = get_logger(__name__)


class ChannelStatus(str, Enum):
    SUBSCRIBED = "SUBSCRIBED"
    CHANNEL_ERROR = "CHANNEL_ERROR"
    TIMED_OUT = "TIMED_OUT"
    CLOSED = "CLOSED"


ChangeHandler = Callable[[ChangeEvent], None]
StatusHandler = Callable[[ChannelStatus], None]


class RealtimeSubscription(Protocol):
    async def unsubscribe(self) -> None: ...


class RealtimeTransport(Protocol):
    async def subscribe(
        self,
        channel: str,
        table: str,
        events: Iterable[str],
        on_change: ChangeHandler,
        on_status: StatusHandler,
    ) -> RealtimeSubscription: ...

    async def probe(self) -> bool: ...

    async def aclose(self) -> None: ...


def parse_sse_data(line: str) -> dict[str, Any] | None:
    """Decode one ``data:`` line. Comments, blank lines and junk give None."""
    if not line.startswith("data:"):
        return None
    try:
        payload = json.loads(line[5:].strip())
    except ValueError:
        logger.warning("Ignoring malformed realtime frame: %r", line[:200])
        return None
    return payload if isinstance(payload, dict) else None


class SSESubscription:
    """One open event stream, read by a background task until unsubscribed."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        url: str,
        params: dict[str, str],
        headers: dict[str, str],
        on_change: ChangeHandler,
        on_status: StatusHandler,
    ):
        self._client = client
        self._url = url
        self._params = params
        self._headers = headers
        self._on_change = on_change
        self._on_status = on_status
        self._closed = False
        self._task: asyncio.Task | None = None

    def start(self) -> None:
        self._task = asyncio.get_running_loop().create_task(self._consume())

    def _emit_status(self, status: ChannelStatus) -> None:
        if not self._closed:
            self._on_status(status)

    async def _consume(self) -> None:
        try:
            async with self._client.stream(
                "GET", self._url, params=self._params, headers=self._headers
            ) as response:
                if response.status_code != 200:
                    logger.warning("Realtime subscribe rejected: HTTP %d", response.status_code)
                    self._emit_status(ChannelStatus.CHANNEL_ERROR)
                    return

                async for line in response.aiter_lines():
                    if self._closed:
                        return
                    payload = parse_sse_data(line)
                    if payload is None:
                        continue
                    if "status" in payload:
                        try:
                            status = ChannelStatus(payload["status"])
                        except ValueError:
                            continue
                        self._emit_status(status)
                    else:
                        self._on_change(ChangeEvent.from_payload(payload))
        except httpx.TimeoutException:
            counter("realtime.client.timeout")
            self._emit_status(ChannelStatus.TIMED_OUT)
            return
        except httpx.HTTPError as e:
            counter("realtime.client.error")
            logger.warning("Realtime stream failed: %s", e)
            self._emit_status(ChannelStatus.CHANNEL_ERROR)
            return

        self._emit_status(ChannelStatus.CLOSED)

    async def unsubscribe(self) -> None:
        self._closed = True
        if self._task is None or self._task.done():
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass


class SSERealtimeTransport:
    """
    httpx client for the server's SSE change feed.

    ``read_timeout`` should exceed the server keepalive interval; a stream
    that stays silent longer than that is reported as TIMED_OUT.
    """

    def __init__(
        self,
        realtime_url: str,
        api_key: str | None = None,
        *,
        read_timeout: float = REALTIME_KEEPALIVE_SECONDS * 3,
        probe_timeout: float = 10.0,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.realtime_url = realtime_url.rstrip("/")
        self.headers = {"Accept": "text/event-stream"}
        if api_key:
            self.headers["apikey"] = api_key
        self.probe_timeout = probe_timeout
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(
            timeout=httpx.Timeout(10.0, read=read_timeout)
        )
        self._probe_count = 0

    async def subscribe(
        self,
        channel: str,
        table: str,
        events: Iterable[str],
        on_change: ChangeHandler,
        on_status: StatusHandler,
    ) -> SSESubscription:
        subscription = SSESubscription(
            self._client,
            f"{self.realtime_url}/{channel}",
            {"table": table, "events": ",".join(events)},
            self.headers,
            on_change,
            on_status,
        )
        subscription.start()
        return subscription

    async def probe(self) -> bool:
        """Open a throwaway channel and wait for its SUBSCRIBED frame."""
        self._probe_count += 1
        url = f"{self.realtime_url}/heartbeat-{self._probe_count}"
        try:
            return await asyncio.wait_for(self._probe(url), timeout=self.probe_timeout)
        except (TimeoutError, httpx.HTTPError) as e:
            logger.warning("Realtime heartbeat failed: %s", e)
            return False

    async def _probe(self, url: str) -> bool:
        async with self._client.stream(
            "GET", url, params={"table": "heartbeat", "events": "INSERT"}, headers=self.headers
        ) as response:
            if response.status_code != 200:
                return False
            async for line in response.aiter_lines():
                payload = parse_sse_data(line)
                if payload is not None:
                    return payload.get("status") == ChannelStatus.SUBSCRIBED.value
        return False

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
