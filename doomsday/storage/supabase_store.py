"""
Managed-store implementation of the persistence facade (Supabase PostgREST).

Talks to ``{SUPABASE_URL}/rest/v1`` over httpx. Reads use the anon key;
daily-content writes need the service key, so the store takes whichever key
the caller was configured with.
"""

from __future__ import annotations

from typing import Any

import httpx

from doomsday.config import MESSAGES_TABLE, SUPABASE_TIMEOUT_SECONDS
from doomsday.observability.logging import get_logger
from doomsday.observability.telemetry import counter, time_block
from doomsday.storage.facade import PersistenceFacade, StorageError
from doomsday.storage.models import DailyContentEntry, MessageRecord, NewDailyContent

logger = get_logger(__name__)

DAILY_CONTENT_TABLE = "daily_content"
CONTENT_COLUMNS = ("main_quote", "chat_theme", "daily_news")


def parse_content_range(header: str | None) -> int:
    """Total row count from a ``Content-Range: 0-4/42`` (or ``*/42``) header."""
    if not header or "/" not in header:
        raise StorageError(f"Missing row count in Content-Range header: {header!r}")
    total = header.rsplit("/", 1)[1]
    if not total.isdigit():
        raise StorageError(f"Unknown row count in Content-Range header: {header!r}")
    return int(total)


class SupabaseStore(PersistenceFacade):
    def __init__(
        self,
        url: str,
        api_key: str,
        *,
        timeout: float = SUPABASE_TIMEOUT_SECONDS,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.rest_url = f"{url.rstrip('/')}/rest/v1"
        self.headers = {
            "apikey": api_key,
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        }
        self._client = http_client or httpx.AsyncClient(timeout=timeout)

    async def _request(
        self,
        method: str,
        table: str,
        *,
        params: dict[str, Any] | None = None,
        json: Any = None,
        prefer: str | None = None,
    ) -> httpx.Response:
        headers = dict(self.headers)
        if prefer:
            headers["Prefer"] = prefer

        try:
            with time_block(f"storage.supabase.{method.lower()}"):
                response = await self._client.request(
                    method, f"{self.rest_url}/{table}", params=params, json=json, headers=headers
                )
        except httpx.HTTPError as e:
            counter("storage.supabase.network_error")
            logger.error("Supabase %s %s failed: %s", method, table, e)
            raise StorageError(f"Database request failed: {e}") from e

        if response.status_code >= 400:
            counter(f"storage.supabase.status.{response.status_code}")
            try:
                detail = response.json().get("message") or response.text
            except (ValueError, AttributeError):
                detail = response.text
            logger.error(
                "Supabase %s %s returned %d: %s", method, table, response.status_code, detail
            )
            raise StorageError(f"Database query failed: {detail}")
        return response

    def _rows(self, response: httpx.Response) -> list[dict[str, Any]]:
        try:
            rows = response.json()
        except ValueError as e:
            raise StorageError("Database returned a non-JSON body") from e
        if not isinstance(rows, list):
            raise StorageError("Database returned an unexpected body")
        return rows

    async def insert_message(self, nickname: str, text: str, color: str) -> MessageRecord:
        response = await self._request(
            "POST",
            MESSAGES_TABLE,
            json={"nickname": nickname, "text": text, "color": color},
            prefer="return=representation",
        )
        rows = self._rows(response)
        if not rows:
            raise StorageError("Insert returned no row")
        return MessageRecord.model_validate(rows[0])

    async def list_messages(self) -> list[MessageRecord]:
        response = await self._request(
            "GET", MESSAGES_TABLE, params={"select": "*", "order": "created_at.asc"}
        )
        return [MessageRecord.model_validate(row) for row in self._rows(response)]

    async def delete_all_messages(self) -> int:
        response = await self._request(
            "DELETE",
            MESSAGES_TABLE,
            params={"id": "gte.0", "select": "id"},
            prefer="return=representation",
        )
        return len(self._rows(response))

    async def get_latest_daily_content(self) -> DailyContentEntry | None:
        response = await self._request(
            "GET",
            DAILY_CONTENT_TABLE,
            params={"select": "*", "order": "created_at.desc", "limit": "1"},
        )
        rows = self._rows(response)
        return DailyContentEntry.model_validate(rows[0]) if rows else None

    async def insert_daily_content(self, entry: NewDailyContent) -> DailyContentEntry:
        response = await self._request(
            "POST",
            DAILY_CONTENT_TABLE,
            json=entry.model_dump(mode="json"),
            prefer="return=representation",
        )
        rows = self._rows(response)
        if not rows:
            raise StorageError("Insert returned no row")
        return DailyContentEntry.model_validate(rows[0])

    async def get_daily_content_by_day(
        self, day: int, *, complete_only: bool = False
    ) -> DailyContentEntry | None:
        params = {"select": "*", "day_number": f"eq.{day}", "order": "id.asc", "limit": "1"}
        if complete_only:
            params.update({column: "not.is.null" for column in CONTENT_COLUMNS})
        response = await self._request("GET", DAILY_CONTENT_TABLE, params=params)
        rows = self._rows(response)
        return DailyContentEntry.model_validate(rows[0]) if rows else None

    async def list_recent_daily_content(self, limit: int = 5) -> list[DailyContentEntry]:
        response = await self._request(
            "GET",
            DAILY_CONTENT_TABLE,
            params={"select": "*", "order": "day_number.desc", "limit": str(limit)},
        )
        return [DailyContentEntry.model_validate(row) for row in self._rows(response)]

    async def count_daily_content(self) -> int:
        response = await self._request(
            "HEAD", DAILY_CONTENT_TABLE, params={"select": "id"}, prefer="count=exact"
        )
        return parse_content_range(response.headers.get("Content-Range"))

    async def aclose(self) -> None:
        await self._client.aclose()
