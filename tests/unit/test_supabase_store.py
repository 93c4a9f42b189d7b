"""Unit tests for the Supabase PostgREST store (httpx MockTransport)"""

from __future__ import annotations

import asyncio
import json
from datetime import date

import httpx
import pytest

from doomsday.storage.facade import StorageError
from doomsday.storage.models import NewDailyContent
from doomsday.storage.supabase_store import SupabaseStore, parse_content_range

MESSAGE_ROW = {
    "id": 1,
    "nickname": "Bo",
    "text": "hi",
    "color": "#81ecec",
    "created_at": "2025-06-20T12:00:00.123456+00:00",
}

CONTENT_ROW = {
    "id": 4,
    "day_number": 10,
    "date_generated": "2025-06-20",
    "main_quote": "q",
    "chat_theme": "t",
    "daily_news": "a\nb\nc",
    "created_at": "2025-06-20T10:00:00+00:00",
}


def _store(handler):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return SupabaseStore("https://project.supabase.test/", "service-key", http_client=client)


def test_insert_message_posts_with_representation():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(201, json=[MESSAGE_ROW])

    record = asyncio.run(_store(handler).insert_message("Bo", "hi", "#81ecec"))

    assert record.id == 1
    request = seen[0]
    assert request.method == "POST"
    assert request.url.path == "/rest/v1/messages"
    assert request.headers["apikey"] == "service-key"
    assert request.headers["Authorization"] == "Bearer service-key"
    assert request.headers["Prefer"] == "return=representation"
    assert json.loads(request.content) == {"nickname": "Bo", "text": "hi", "color": "#81ecec"}


def test_list_messages_orders_by_creation():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json=[MESSAGE_ROW, {**MESSAGE_ROW, "id": 2}])

    messages = asyncio.run(_store(handler).list_messages())

    assert [m.id for m in messages] == [1, 2]
    assert seen[0].url.params["order"] == "created_at.asc"


def test_delete_all_counts_returned_rows():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json=[{"id": 1}, {"id": 2}])

    assert asyncio.run(_store(handler).delete_all_messages()) == 2
    assert seen[0].method == "DELETE"
    assert seen[0].url.params["id"] == "gte.0"


def test_daily_content_lookups():
    def handler(request):
        params = request.url.params
        if params.get("day_number") == "eq.99":
            return httpx.Response(200, json=[])
        return httpx.Response(200, json=[CONTENT_ROW])

    async def scenario():
        store = _store(handler)
        return (
            await store.get_latest_daily_content(),
            await store.get_daily_content_by_day(10),
            await store.get_daily_content_by_day(99),
            await store.list_recent_daily_content(5),
        )

    latest, by_day, missing, recent = asyncio.run(scenario())

    assert latest.day_number == 10
    assert by_day.news_headlines == ["a", "b", "c"]
    assert missing is None
    assert len(recent) == 1


def test_complete_only_filters_null_content_columns():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json=[])

    assert asyncio.run(_store(handler).get_daily_content_by_day(10, complete_only=True)) is None

    params = seen[0].url.params
    assert params["day_number"] == "eq.10"
    assert params["main_quote"] == "not.is.null"
    assert params["chat_theme"] == "not.is.null"
    assert params["daily_news"] == "not.is.null"


def test_insert_daily_content_serializes_date():
    seen = []

    def handler(request):
        seen.append(json.loads(request.content))
        return httpx.Response(201, json=[CONTENT_ROW])

    entry = asyncio.run(
        _store(handler).insert_daily_content(
            NewDailyContent(day_number=10, date_generated=date(2025, 6, 20), main_quote="q")
        )
    )

    assert entry.id == 4
    assert seen[0]["date_generated"] == "2025-06-20"
    assert seen[0]["day_number"] == 10


def test_count_uses_content_range():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, headers={"Content-Range": "0-4/42"})

    assert asyncio.run(_store(handler).count_daily_content()) == 42
    assert seen[0].method == "HEAD"
    assert seen[0].headers["Prefer"] == "count=exact"


def test_error_status_raises_storage_error_with_detail():
    def handler(request):
        return httpx.Response(401, json={"message": "Invalid API key"})

    with pytest.raises(StorageError, match="Database query failed: Invalid API key"):
        asyncio.run(_store(handler).list_messages())


def test_network_error_raises_storage_error():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(StorageError, match="Database request failed"):
        asyncio.run(_store(handler).list_messages())


def test_unexpected_body_raises_storage_error():
    def handler(request):
        return httpx.Response(200, json={"rows": []})

    with pytest.raises(StorageError):
        asyncio.run(_store(handler).list_messages())


@pytest.mark.parametrize(
    ("header", "expected"),
    [("0-4/42", 42), ("*/0", 0), ("0-0/1", 1)],
)
def test_parse_content_range(header, expected):
    assert parse_content_range(header) == expected


@pytest.mark.parametrize("header", [None, "", "0-4", "0-4/*"])
def test_parse_content_range_rejects_unknown_totals(header):
    with pytest.raises(StorageError):
        parse_content_range(header)
