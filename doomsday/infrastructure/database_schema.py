"""
Database schema initialization for the local SQLite store.

Mirrors the managed store's ``messages`` and ``daily_content`` tables.
"""

from __future__ import annotations

import sqlite3
from pathlib import Path

from doomsday.observability.logging import get_logger

logger = get_logger(__name__)


def init_database(db_path: Path) -> None:
    """
    Initialize database with schema (idempotent)

    Safe to run multiple times - uses CREATE TABLE IF NOT EXISTS.

    Side Effects:
    - Creates the parent directory if needed
    - Creates tables and indexes if they don't exist
    """
    db_path.parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(db_path)
    try:
        conn.executescript("""
            CREATE TABLE IF NOT EXISTS messages (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                nickname TEXT NOT NULL,
                text TEXT NOT NULL,
                color TEXT,
                created_at TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_messages_created_at
                ON messages(created_at);

            CREATE TABLE IF NOT EXISTS daily_content (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                day_number INTEGER NOT NULL,
                date_generated TEXT NOT NULL,
                main_quote TEXT,
                chat_theme TEXT,
                daily_news TEXT,
                created_at TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_daily_content_day
                ON daily_content(day_number);

            CREATE INDEX IF NOT EXISTS idx_daily_content_created_at
                ON daily_content(created_at);
        """)
        conn.commit()
    finally:
        conn.close()

    logger.info("Database initialized: %s", db_path)


def validate_schema(conn: sqlite3.Connection) -> bool:
    """
    Validate database has expected schema

    Raises:
        ValueError: If tables or columns are missing
    """
    required_tables = {
        "messages": ["id", "nickname", "text", "color", "created_at"],
        "daily_content": [
            "id",
            "day_number",
            "date_generated",
            "main_quote",
            "chat_theme",
            "daily_news",
            "created_at",
        ],
    }

    existing_tables = {
        row[0] for row in conn.execute("SELECT name FROM sqlite_master WHERE type='table'")
    }
    missing_tables = set(required_tables) - existing_tables
    if missing_tables:
        raise ValueError(f"Database missing tables: {missing_tables}")

    for table, required_cols in required_tables.items():
        # Identifiers cannot be parameterized; names come from the dict above
        existing_cols = {row[1] for row in conn.execute(f"PRAGMA table_info({table})")}
        missing_cols = set(required_cols) - existing_cols
        if missing_cols:
            raise ValueError(f"Table {table} missing columns: {missing_cols}")

    return True
