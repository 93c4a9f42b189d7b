"""
Row models (Pydantic v2) for the ``messages`` and ``daily_content`` tables.

Timestamps are timezone-aware UTC. Rows coming back from either store are
validated through these models so both backends return identical shapes.
"""

from __future__ import annotations

from datetime import UTC, date, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from doomsday.config import MESSAGE_MAX_LENGTH, NICKNAME_MAX_LENGTH


def _as_utc(value: Any) -> Any:
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace("Z", "+00:00").replace(" ", "T", 1))
    if isinstance(value, datetime) and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


class NewMessage(BaseModel):
    """Message as submitted by a client, before the store assigns an id."""

    model_config = ConfigDict(str_strip_whitespace=True)

    nickname: str = Field(min_length=1, max_length=NICKNAME_MAX_LENGTH)
    text: str = Field(min_length=1, max_length=MESSAGE_MAX_LENGTH)
    color: str = Field(default="#00ff00", max_length=32)


class MessageRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    nickname: str
    text: str
    color: str | None = None
    created_at: datetime

    @field_validator("created_at", mode="before")
    @classmethod
    def _created_at_utc(cls, value: Any) -> Any:
        return _as_utc(value)


class NewDailyContent(BaseModel):
    day_number: int = Field(ge=1)
    date_generated: date
    main_quote: str | None = None
    chat_theme: str | None = None
    daily_news: str | None = None


class DailyContentEntry(NewDailyContent):
    model_config = ConfigDict(frozen=True)

    id: int | None = None
    created_at: datetime

    @field_validator("created_at", mode="before")
    @classmethod
    def _created_at_utc(cls, value: Any) -> Any:
        return _as_utc(value)

    @property
    def news_headlines(self) -> list[str]:
        """``daily_news`` holds newline-separated headlines."""
        if not self.daily_news:
            return []
        return [line for line in self.daily_news.splitlines() if line.strip()]
