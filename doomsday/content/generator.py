"""
Themed prompts for the daily quote, news ticker and chat discussion theme.

The theme for day N is ``themes[N % len(themes)]`` while fallback content is
indexed from ``N - 1``; the two rotations are deliberately offset by one.
"""

from __future__ import annotations

import asyncio
import random
from enum import Enum
from typing import Protocol

from doomsday.config import NEWS_HEADLINE_COUNT, TOTAL_DAYS
from doomsday.content.fallbacks import (
    CHAT_THEMES,
    FALLBACK_CHAT_THEMES,
    FALLBACK_NEWS,
    FALLBACK_QUOTES,
    NEWS_TOPICS,
    QUOTE_THEMES,
    fallback_content,
)
from doomsday.observability.logging import get_logger
from doomsday.observability.telemetry import counter

logger = get_logger(__name__)


class TextGenerator(Protocol):
    async def generate(self, prompt: str) -> str: ...


class ContentKind(str, Enum):
    QUOTE = "quote"
    NEWS = "news"
    CHAT_THEME = "chatTheme"


NEWS_PROMPTS: tuple[str, ...] = (
    "Generate a realistic AI news headline about breakthroughs or research. "
    "10-20 words maximum, professional news style. Return only the headline.",
    "Generate a realistic AI news headline about industry developments or company announcements. "
    "10-20 words maximum, professional news style. Return only the headline.",
    "Generate a realistic AI news headline about AI applications or technology trends. "
    "10-20 words maximum, professional news style. Return only the headline.",
)

_THEMES = {
    ContentKind.QUOTE: QUOTE_THEMES,
    ContentKind.NEWS: NEWS_TOPICS,
    ContentKind.CHAT_THEME: CHAT_THEMES,
}

_FALLBACKS = {
    ContentKind.QUOTE: (FALLBACK_QUOTES, 1),
    ContentKind.NEWS: (FALLBACK_NEWS, NEWS_HEADLINE_COUNT),
    ContentKind.CHAT_THEME: (FALLBACK_CHAT_THEMES, 1),
}


def quote_prompt(theme: str, day: int, total_days: int = TOTAL_DAYS) -> str:
    return (
        f"Generate a unique philosophical quote about {theme} for day {day} of {total_days}. "
        f"Make it thought-provoking and distinct, 15-25 words. Focus on {theme} specifically. "
        "Return only the quote text."
    )


def chat_theme_prompt(theme: str, day: int | None = None, total_days: int = TOTAL_DAYS) -> str:
    when = f" for day {day} of a {total_days}-day countdown" if day is not None else ""
    return (
        f"Generate a thought-provoking discussion question about {theme}{when}. "
        "Make it conversational and engaging, designed to spark meaningful chat discussion. "
        "15-30 words. Return only the question."
    )


def topical_news_prompt(topic: str) -> str:
    return (
        f"Generate a fictional but realistic news headline about {topic}. "
        "Make it sound like it could be from a science or technology news outlet. 10-20 words. "
        "Be optimistic and forward-looking. Return only the headline."
    )


def fallback_for(kind: ContentKind, day: int) -> str | list[str]:
    items, count = _FALLBACKS[kind]
    content = fallback_content(day, items, count)
    return content if count > 1 else content[0]


def fallback_list(kind: ContentKind) -> tuple[tuple[str, ...], int]:
    """Fallback items and block size for ``kind``, as the cache expects them."""
    return _FALLBACKS[kind]


class ContentGenerator:
    """Builds prompts from the day's theme and delegates to a text generator."""

    def __init__(self, text_generator: TextGenerator, total_days: int = TOTAL_DAYS):
        self.text_generator = text_generator
        self.total_days = total_days

    def theme_for(self, kind: ContentKind, day: int) -> str:
        themes = _THEMES[kind]
        return themes[day % len(themes)]

    async def generate(self, kind: ContentKind, day: int) -> str | list[str]:
        """Generate content for ``day``, falling back to the fixed list on any failure."""
        try:
            return await self.generate_strict(kind, day)
        except Exception as e:
            logger.warning("Failed to generate %s for day %d: %s", kind.value, day, e)
            counter(f"content.{kind.value}.fallback")
            return fallback_for(kind, day)

    async def generate_strict(self, kind: ContentKind, day: int) -> str | list[str]:
        """Generate content for ``day``; errors propagate to the caller."""
        if kind is ContentKind.NEWS:
            headlines = await asyncio.gather(
                *(self.text_generator.generate(prompt) for prompt in NEWS_PROMPTS)
            )
            return list(headlines)

        theme = self.theme_for(kind, day)
        if kind is ContentKind.QUOTE:
            return await self.text_generator.generate(quote_prompt(theme, day, self.total_days))
        return await self.text_generator.generate(chat_theme_prompt(theme, day, self.total_days))

    async def generate_for_theme(self, kind: ContentKind, theme: str | None = None) -> str:
        """
        Generate one piece of content for an explicit (or random) theme.

        Used by on-demand generation, where news is a single topical headline
        rather than the three-headline ticker.
        """
        theme = theme or random.choice(_THEMES[kind])
        if kind is ContentKind.NEWS:
            prompt = topical_news_prompt(theme)
        elif kind is ContentKind.QUOTE:
            prompt = quote_prompt(theme, 1, self.total_days)
        else:
            prompt = chat_theme_prompt(theme)
        return await self.text_generator.generate(prompt)
