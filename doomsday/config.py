"""Centralized configuration for the Doomsday Countdown.

Re-exports everything from doomsday.infrastructure.settings, then adds typed
constants for the countdown window, content generation, the AI gateway, chat
and rate limiting. Environment variable overrides use safe defaults so the
app starts without extra configuration.
"""

from __future__ import annotations

import os
from datetime import date

from doomsday.infrastructure.settings import *  # noqa: F401, F403 - re-export

# --- App ---
APP_VERSION: str = "1.0.0"

# --- Database (local SQLite store) ---
DB_POOL_SIZE: int = int(os.getenv("DOOMSDAY_DB_POOL_SIZE", "5"))
DB_POOL_TIMEOUT: float = float(os.getenv("DOOMSDAY_DB_POOL_TIMEOUT", "5.0"))
DB_CONNECT_TIMEOUT: float = float(os.getenv("DOOMSDAY_DB_CONNECT_TIMEOUT", "30.0"))
DB_TEMP_CONN_MAX: int = int(os.getenv("DOOMSDAY_DB_TEMP_CONN_MAX", "10"))
DB_RETRY_MAX: int = int(os.getenv("DOOMSDAY_DB_RETRY_MAX", "5"))
DB_RETRY_BASE_DELAY: float = float(os.getenv("DOOMSDAY_DB_RETRY_BASE_DELAY", "0.1"))
DB_RETRY_MAX_DELAY: float = float(os.getenv("DOOMSDAY_DB_RETRY_MAX_DELAY", "2.0"))
DB_RETRY_JITTER: float = float(os.getenv("DOOMSDAY_DB_RETRY_JITTER", "0.1"))

# --- Managed store ---
SUPABASE_TIMEOUT_SECONDS: float = float(os.getenv("DOOMSDAY_SUPABASE_TIMEOUT", "10"))

# --- Countdown window ---
START_DATE: date = date.fromisoformat(os.getenv("DOOMSDAY_START_DATE", "2025-06-11"))
TOTAL_DAYS: int = int(os.getenv("DOOMSDAY_TOTAL_DAYS", "1000"))
# Daily content rolls over at the earliest timezone on Earth
SERVER_UTC_OFFSET_HOURS: float = float(os.getenv("DOOMSDAY_UTC_OFFSET", "14"))
TICK_INTERVAL_SECONDS: float = 1.0

# --- Content ---
NEWS_HEADLINE_COUNT: int = 3
DAILY_JOB_PAUSE_SECONDS: float = float(os.getenv("DOOMSDAY_DAILY_JOB_PAUSE", "2"))
CACHE_KEY_PREFIX: str = "doomsday-"

# --- AI gateway ---
ALLOWED_MODELS: tuple[str, ...] = (
    "gemini-2.0-flash",
    "gemini-1.5-flash",
    "gemini-1.5-flash-8b",
    "gemini-1.5-pro",
    "gemini-2.5-pro-experimental",
)
DEFAULT_MODEL: str = "gemini-2.0-flash"
DEFAULT_TEMPERATURE: float = 0.7
DEFAULT_MAX_TOKENS: int = 100
TEMPERATURE_MIN: float = 0.1
TEMPERATURE_MAX: float = 1.0
MAX_TOKENS_MIN: int = 10
MAX_TOKENS_MAX: int = 1000
LLM_TIMEOUT_SECONDS: float = float(os.getenv("DOOMSDAY_LLM_TIMEOUT", "25"))
LLM_RATE_LIMIT_RETRIES: int = 3
LLM_RATE_LIMIT_BACKOFF_SECONDS: float = 5.0

# --- Chat ---
NICKNAME_MAX_LENGTH: int = 50
MESSAGE_MAX_LENGTH: int = 1000
RECONNECT_BASE_DELAY_SECONDS: float = 1.0
RECONNECT_MAX_DELAY_SECONDS: float = 30.0
HEARTBEAT_INTERVAL_SECONDS: float = 30.0
POLL_INTERVAL_SECONDS: float = 3.0
MESSAGES_TABLE: str = "messages"
CHAT_CHANNEL: str = "schema-db-changes"
REALTIME_KEEPALIVE_SECONDS: float = 15.0

# --- Rate Limiting ---
RATE_LIMIT_RPM: int = 60
RATE_LIMIT_RPH: int = 1000
RATE_LIMIT_MAX_IPS: int = 10000

# --- CORS ---
ALLOWED_ORIGINS: list[str] = [
    origin.strip()
    for origin in os.getenv("DOOMSDAY_ALLOWED_ORIGINS", "*").split(",")
    if origin.strip()
]
