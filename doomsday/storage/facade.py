"""
Persistence boundary for chat messages and daily content.

Every operation is async and fallible: implementations wrap backend failures
in StorageError so request handlers can map them to a single 500 response.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from doomsday.storage.models import DailyContentEntry, MessageRecord, NewDailyContent


class StorageError(RuntimeError):
    """Raised when the backing store cannot complete an operation."""


class PersistenceFacade(ABC):
    @abstractmethod
    async def insert_message(self, nickname: str, text: str, color: str) -> MessageRecord: ...

    @abstractmethod
    async def list_messages(self) -> list[MessageRecord]:
        """All messages, ascending by ``created_at``."""

    @abstractmethod
    async def delete_all_messages(self) -> int:
        """Delete every message and return how many rows were removed."""

    @abstractmethod
    async def get_latest_daily_content(self) -> DailyContentEntry | None: ...

    @abstractmethod
    async def insert_daily_content(self, entry: NewDailyContent) -> DailyContentEntry: ...

    @abstractmethod
    async def get_daily_content_by_day(
        self, day: int, *, complete_only: bool = False
    ) -> DailyContentEntry | None:
        """First row stamped with ``day``.

        With ``complete_only`` only rows with every content field set count;
        on-demand rows from ``/generate-theme`` fill a single field.
        """

    @abstractmethod
    async def list_recent_daily_content(self, limit: int = 5) -> list[DailyContentEntry]:
        """Most recent rows, highest day number first."""

    @abstractmethod
    async def count_daily_content(self) -> int: ...

    async def aclose(self) -> None:
        return None
