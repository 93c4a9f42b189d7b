"""Unit tests for themed content generation and the daily content job"""

from __future__ import annotations

import asyncio
from datetime import date

import pytest

from doomsday.content.daily_job import DailyContentJob
from doomsday.content.fallbacks import (
    CHAT_THEMES,
    FALLBACK_CHAT_THEMES,
    FALLBACK_NEWS,
    FALLBACK_QUOTES,
    QUOTE_THEMES,
)
from doomsday.content.generator import (
    NEWS_PROMPTS,
    ContentGenerator,
    ContentKind,
    fallback_for,
)
from doomsday.observability.telemetry import get_counter
from doomsday.storage.models import NewDailyContent


class RecordingGenerator:
    def __init__(self, fail: bool = False):
        self.prompts: list[str] = []
        self.fail = fail

    async def generate(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if self.fail:
            raise RuntimeError("generation failed")
        return f"text-{len(self.prompts)}"


class TestContentGenerator:
    def test_theme_rotation_is_offset_from_fallbacks(self):
        generator = ContentGenerator(RecordingGenerator())

        assert generator.theme_for(ContentKind.QUOTE, 1) == QUOTE_THEMES[1]
        assert generator.theme_for(ContentKind.QUOTE, 7) == QUOTE_THEMES[0]
        assert fallback_for(ContentKind.QUOTE, 1) == FALLBACK_QUOTES[0]

    def test_quote_prompt_names_theme_and_day(self):
        text = RecordingGenerator()
        result = asyncio.run(ContentGenerator(text, total_days=1000).generate(ContentKind.QUOTE, 3))

        assert result == "text-1"
        assert QUOTE_THEMES[3] in text.prompts[0]
        assert "day 3 of 1000" in text.prompts[0]

    def test_chat_theme_uses_chat_rotation(self):
        text = RecordingGenerator()
        asyncio.run(ContentGenerator(text).generate(ContentKind.CHAT_THEME, 2))

        assert CHAT_THEMES[2] in text.prompts[0]

    def test_news_makes_three_requests(self):
        text = RecordingGenerator()
        result = asyncio.run(ContentGenerator(text).generate(ContentKind.NEWS, 1))

        assert len(result) == 3
        assert sorted(text.prompts) == sorted(NEWS_PROMPTS)

    @pytest.mark.parametrize(
        ("kind", "expected"),
        [
            (ContentKind.QUOTE, FALLBACK_QUOTES[1]),
            (ContentKind.CHAT_THEME, FALLBACK_CHAT_THEMES[1]),
            (ContentKind.NEWS, list(FALLBACK_NEWS[3:5]) + [FALLBACK_NEWS[0]]),
        ],
    )
    def test_failure_falls_back_by_day(self, kind, expected):
        generator = ContentGenerator(RecordingGenerator(fail=True))

        assert asyncio.run(generator.generate(kind, 2)) == expected
        assert get_counter(f"content.{kind.value}.fallback") == 1

    def test_strict_generation_propagates_errors(self):
        generator = ContentGenerator(RecordingGenerator(fail=True))

        with pytest.raises(RuntimeError):
            asyncio.run(generator.generate_strict(ContentKind.QUOTE, 1))

    def test_generate_for_theme_news_is_one_headline(self):
        text = RecordingGenerator()
        result = asyncio.run(
            ContentGenerator(text).generate_for_theme(ContentKind.NEWS, "ocean cleanup")
        )

        assert result == "text-1"
        assert len(text.prompts) == 1
        assert "ocean cleanup" in text.prompts[0]


class TestDailyContentJob:
    def _job(self, store, text, sleeps=None):
        async def sleep(seconds):
            if sleeps is not None:
                sleeps.append(seconds)

        return DailyContentJob(
            store,
            ContentGenerator(text),
            pause_seconds=2,
            day_number=lambda: 12,
            today=lambda: date(2025, 6, 22),
            sleep=sleep,
        )

    def test_creates_content_for_the_day(self, sqlite_store):
        sleeps: list[float] = []
        text = RecordingGenerator()

        result = asyncio.run(self._job(sqlite_store, text, sleeps).run())

        assert result.created
        assert result.message == "Generated fresh content for day 12"
        assert result.content.day_number == 12
        assert result.content.date_generated == date(2025, 6, 22)
        assert len(result.content.news_headlines) == 3
        assert len(text.prompts) == 5
        assert sleeps == [2, 2]

        body = result.to_dict()
        assert body["success"] is True
        assert body["dayNumber"] == 12
        assert body["content"]["main_quote"] == "text-1"

    def test_second_run_is_a_no_op(self, sqlite_store):
        asyncio.run(self._job(sqlite_store, RecordingGenerator()).run())
        text = RecordingGenerator()

        result = asyncio.run(self._job(sqlite_store, text).run())

        assert not result.created
        assert result.message == "Content already exists for day 12"
        assert text.prompts == []
        assert asyncio.run(sqlite_store.count_daily_content()) == 1
        assert get_counter("daily_job.skipped") == 1

    def test_partial_row_for_the_day_is_not_treated_as_done(self, sqlite_store):
        asyncio.run(
            sqlite_store.insert_daily_content(
                NewDailyContent(
                    day_number=12,
                    date_generated=date(2025, 6, 22),
                    main_quote=FALLBACK_QUOTES[0],
                    chat_theme="on demand",
                )
            )
        )
        text = RecordingGenerator()

        result = asyncio.run(self._job(sqlite_store, text).run())

        assert result.created
        assert result.content.main_quote == "text-1"
        assert len(result.content.news_headlines) == 3
        assert len(text.prompts) == 5
        assert asyncio.run(self._job(sqlite_store, RecordingGenerator()).run()).created is False

    def test_generation_failures_store_fallbacks(self, sqlite_store):
        result = asyncio.run(self._job(sqlite_store, RecordingGenerator(fail=True)).run(day=1))

        assert result.created
        assert result.content.main_quote == FALLBACK_QUOTES[0]
        assert result.content.chat_theme == FALLBACK_CHAT_THEMES[0]
        assert result.content.news_headlines == list(FALLBACK_NEWS[:3])
