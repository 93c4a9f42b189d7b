"""Local SQLite implementation of the persistence facade."""

from __future__ import annotations

import asyncio
import sqlite3
from collections.abc import Callable
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, TypeVar

from doomsday.infrastructure.database import (
    DatabaseConnectionPool,
    db_transaction,
    get_db_connection,
    init_database,
    retry_on_db_lock,
)
from doomsday.infrastructure.database_schema import validate_schema
from doomsday.observability.logging import get_logger
from doomsday.observability.telemetry import counter
from doomsday.storage.facade import PersistenceFacade, StorageError
from doomsday.storage.models import DailyContentEntry, MessageRecord, NewDailyContent

logger = get_logger(__name__)

T = TypeVar("T")

_COMPLETE_CLAUSE = (
    " AND main_quote IS NOT NULL AND chat_theme IS NOT NULL AND daily_news IS NOT NULL"
)


def _now_stamp() -> str:
    return datetime.now(UTC).isoformat(timespec="microseconds")


def _row_dict(row: sqlite3.Row) -> dict[str, Any]:
    return {key: row[key] for key in row.keys()}


class SQLiteStore(PersistenceFacade):
    """
    Stores messages and daily content in a single SQLite file.

    Blocking sqlite3 calls run in a worker thread so the event loop is never
    held by disk I/O.
    """

    def __init__(self, db_path: Path | str | None = None, pool_size: int = 2):
        self.db_path = init_database(Path(db_path) if db_path is not None else None)
        self.pool = DatabaseConnectionPool(self.db_path, pool_size=pool_size)
        with get_db_connection(self.pool) as conn:
            validate_schema(conn)

    async def _run(self, operation: str, func: Callable[[], T]) -> T:
        try:
            return await asyncio.to_thread(func)
        except (sqlite3.Error, RuntimeError) as e:
            counter(f"storage.sqlite.{operation}.error")
            logger.error("SQLite %s failed: %s", operation, e)
            raise StorageError(f"Database {operation} failed: {e}") from e

    async def insert_message(self, nickname: str, text: str, color: str) -> MessageRecord:
        @retry_on_db_lock()
        def _insert() -> dict[str, Any]:
            with db_transaction(self.pool) as conn:
                created_at = _now_stamp()
                cursor = conn.execute(
                    "INSERT INTO messages (nickname, text, color, created_at) VALUES (?, ?, ?, ?)",
                    (nickname, text, color, created_at),
                )
                return {
                    "id": cursor.lastrowid,
                    "nickname": nickname,
                    "text": text,
                    "color": color,
                    "created_at": created_at,
                }

        return MessageRecord.model_validate(await self._run("insert_message", _insert))

    async def list_messages(self) -> list[MessageRecord]:
        def _list() -> list[dict[str, Any]]:
            with get_db_connection(self.pool) as conn:
                rows = conn.execute(
                    "SELECT id, nickname, text, color, created_at FROM messages "
                    "ORDER BY created_at ASC, id ASC"
                ).fetchall()
                return [_row_dict(row) for row in rows]

        return [MessageRecord.model_validate(row) for row in await self._run("list_messages", _list)]

    async def delete_all_messages(self) -> int:
        @retry_on_db_lock()
        def _delete() -> int:
            with db_transaction(self.pool) as conn:
                return conn.execute("DELETE FROM messages WHERE id >= 0").rowcount

        return await self._run("delete_all_messages", _delete)

    async def get_latest_daily_content(self) -> DailyContentEntry | None:
        def _latest() -> dict[str, Any] | None:
            with get_db_connection(self.pool) as conn:
                row = conn.execute(
                    "SELECT * FROM daily_content ORDER BY created_at DESC, id DESC LIMIT 1"
                ).fetchone()
                return _row_dict(row) if row else None

        row = await self._run("get_latest_daily_content", _latest)
        return DailyContentEntry.model_validate(row) if row else None

    async def insert_daily_content(self, entry: NewDailyContent) -> DailyContentEntry:
        @retry_on_db_lock()
        def _insert() -> dict[str, Any]:
            values = entry.model_dump(mode="json")
            values["created_at"] = _now_stamp()
            with db_transaction(self.pool) as conn:
                cursor = conn.execute(
                    "INSERT INTO daily_content "
                    "(day_number, date_generated, main_quote, chat_theme, daily_news, created_at) "
                    "VALUES (:day_number, :date_generated, :main_quote, :chat_theme, "
                    ":daily_news, :created_at)",
                    values,
                )
                values["id"] = cursor.lastrowid
            return values

        row = await self._run("insert_daily_content", _insert)
        return DailyContentEntry.model_validate(row)

    async def get_daily_content_by_day(
        self, day: int, *, complete_only: bool = False
    ) -> DailyContentEntry | None:
        query = "SELECT * FROM daily_content WHERE day_number = ?"
        if complete_only:
            query += _COMPLETE_CLAUSE
        query += " ORDER BY id ASC LIMIT 1"

        def _by_day() -> dict[str, Any] | None:
            with get_db_connection(self.pool) as conn:
                row = conn.execute(query, (day,)).fetchone()
                return _row_dict(row) if row else None

        row = await self._run("get_daily_content_by_day", _by_day)
        return DailyContentEntry.model_validate(row) if row else None

    async def list_recent_daily_content(self, limit: int = 5) -> list[DailyContentEntry]:
        def _recent() -> list[dict[str, Any]]:
            with get_db_connection(self.pool) as conn:
                rows = conn.execute(
                    "SELECT * FROM daily_content ORDER BY day_number DESC, id DESC LIMIT ?",
                    (limit,),
                ).fetchall()
                return [_row_dict(row) for row in rows]

        rows = await self._run("list_recent_daily_content", _recent)
        return [DailyContentEntry.model_validate(row) for row in rows]

    async def count_daily_content(self) -> int:
        def _count() -> int:
            with get_db_connection(self.pool) as conn:
                return conn.execute("SELECT COUNT(*) FROM daily_content").fetchone()[0]

        return await self._run("count_daily_content", _count)

    async def aclose(self) -> None:
        self.pool.close_all()
