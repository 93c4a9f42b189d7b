"""Unit tests for the day-keyed content cache, local stores and fallbacks"""

from __future__ import annotations

import asyncio
import json
from datetime import date

import pytest

from doomsday.content.cache import DailyContentCache
from doomsday.content.fallbacks import FALLBACK_NEWS, FALLBACK_QUOTES, fallback_content
from doomsday.content.local_store import FileLocalStore, MemoryLocalStore
from doomsday.observability.telemetry import get_counter


class Clock:
    def __init__(self, today: date):
        self.value = today

    def __call__(self) -> date:
        return self.value


@pytest.fixture
def clock():
    return Clock(date(2025, 7, 1))


@pytest.fixture
def store():
    return MemoryLocalStore()


@pytest.fixture
def cache(store, clock):
    return DailyContentCache(store, today=clock)


def _generator(result):
    calls = []

    async def generate(day):
        calls.append(day)
        if isinstance(result, Exception):
            raise result
        return result

    return generate, calls


class TestFallbackContent:
    def test_single_item_indexed_from_day_one(self):
        assert fallback_content(1, FALLBACK_QUOTES) == [FALLBACK_QUOTES[0]]
        assert fallback_content(7, FALLBACK_QUOTES) == [FALLBACK_QUOTES[1]]

    def test_blocks_wrap_around(self):
        items = ("a", "b", "c", "d", "e")
        assert fallback_content(1, items, 3) == ["a", "b", "c"]
        assert fallback_content(2, items, 3) == ["d", "e", "a"]

    def test_empty_list_rejected(self):
        with pytest.raises(ValueError):
            fallback_content(1, [])


def test_miss_generates_and_stores(cache, store):
    generate, calls = _generator("A fresh quote")

    entry = asyncio.run(cache.get("quote", 5, generate, FALLBACK_QUOTES))

    assert entry.payload == "A fresh quote"
    assert entry.date == "2025-07-01"
    assert calls == [5]
    stored = json.loads(store.get("doomsday-quote-5"))
    assert stored == {"type": "quote", "day": 5, "payload": "A fresh quote", "date": "2025-07-01"}


def test_hit_skips_generator(cache):
    generate, calls = _generator("first")
    asyncio.run(cache.get("quote", 5, generate, FALLBACK_QUOTES))

    again, again_calls = _generator("second")
    entry = asyncio.run(cache.get("quote", 5, again, FALLBACK_QUOTES))

    assert entry.payload == "first"
    assert again_calls == []
    assert get_counter("cache.daily_content.hit") == 1


def test_entry_expires_on_a_new_calendar_day(cache, clock):
    generate, calls = _generator("first")
    asyncio.run(cache.get("quote", 5, generate, FALLBACK_QUOTES))

    clock.value = date(2025, 7, 2)
    asyncio.run(cache.get("quote", 5, generate, FALLBACK_QUOTES))

    assert calls == [5, 5]


def test_failed_generation_returns_stable_fallback_without_storing(cache, store):
    generate, calls = _generator(RuntimeError("quota"))

    first = asyncio.run(cache.get("news", 2, generate, FALLBACK_NEWS, count=3))
    second = asyncio.run(cache.get("news", 2, generate, FALLBACK_NEWS, count=3))

    assert first.payload == second.payload == list(FALLBACK_NEWS[3:5]) + [FALLBACK_NEWS[0]]
    assert calls == [2, 2]
    assert store.keys() == []
    assert get_counter("cache.daily_content.fallback") == 2


def test_corrupt_entry_is_treated_as_miss(cache, store):
    store.set("doomsday-quote-1", "{not json")
    generate, calls = _generator("regenerated")

    entry = asyncio.run(cache.get("quote", 1, generate, FALLBACK_QUOTES))

    assert entry.payload == "regenerated"
    assert get_counter("cache.daily_content.corrupt") == 1


def test_sweep_removes_stale_and_corrupt_entries(cache, store, clock):
    generate, _ = _generator("today")
    asyncio.run(cache.get("quote", 1, generate, FALLBACK_QUOTES))
    store.set("doomsday-quote-0", json.dumps({"date": "2025-06-30"}))
    store.set("doomsday-news-0", "garbage")
    store.set("unrelated-key", "kept")

    removed = cache.sweep()

    assert removed == 2
    assert sorted(store.keys()) == ["doomsday-quote-1", "unrelated-key"]


class TestFileLocalStore:
    def test_persists_across_instances(self, tmp_path):
        path = tmp_path / "store.json"
        FileLocalStore(path).set("k", "v")

        assert FileLocalStore(path).get("k") == "v"

    def test_unreadable_file_starts_empty(self, tmp_path):
        path = tmp_path / "store.json"
        path.write_text("[broken", encoding="utf-8")

        store = FileLocalStore(path)
        assert store.keys() == []
        store.set("k", "v")
        assert json.loads(path.read_text(encoding="utf-8")) == {"k": "v"}

    def test_remove(self, tmp_path):
        store = FileLocalStore(tmp_path / "store.json")
        store.set("k", "v")
        store.remove("k")
        store.remove("missing")

        assert FileLocalStore(tmp_path / "store.json").get("k") is None
