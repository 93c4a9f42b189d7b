"""
Application-wide settings and environment configuration
"""

from __future__ import annotations

import os
from pathlib import Path

# Project paths
PROJECT_ROOT = Path(__file__).parent.parent.parent
DOOMSDAY_ROOT = Path(__file__).parent.parent

# Environment
ENV = os.getenv("DOOMSDAY_ENV", "development")
DEBUG = ENV == "development"

# API Configuration
API_HOST = os.getenv("API_HOST", "0.0.0.0")
API_PORT = int(os.getenv("API_PORT", "8000"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# Managed data store (Supabase: PostgREST + anon / privileged keys)
SUPABASE_URL_ENV = "SUPABASE_URL"
SUPABASE_ANON_KEY_ENV = "SUPABASE_ANON_KEY"
SUPABASE_SERVICE_KEY_ENV = "SUPABASE_SERVICE_KEY"

# Generative-text API
GEMINI_API_KEY_ENV = "GEMINI_API_KEY"
GEMINI_API_BASE = os.getenv(
    "GEMINI_API_BASE", "https://generativelanguage.googleapis.com/v1beta"
)

# Local SQLite store (used when no managed store is configured)
DB_PATH = Path(os.getenv("DOOMSDAY_DB_PATH", str(DOOMSDAY_ROOT / "data" / "doomsday.db")))

# Public realtime endpoint handed to chat clients (defaults to this server)
REALTIME_URL = os.getenv("DOOMSDAY_REALTIME_URL")


class MissingEnvironmentError(RuntimeError):
    """Raised when a required environment variable is not set."""

    def __init__(self, name: str):
        super().__init__(f"Missing {name} environment variable")
        self.name = name


def require_env(name: str) -> str:
    """Return a required environment variable or fail with a clear message."""
    value = os.getenv(name)
    if not value:
        raise MissingEnvironmentError(name)
    return value


def get_env(key: str, default: str | None = None) -> str | None:
    """Get environment variable with fallback"""
    return os.getenv(key, default)


def store_backend() -> str:
    """Return "supabase" or "sqlite".

    DOOMSDAY_STORE wins when set; otherwise the managed store is used whenever
    SUPABASE_URL is configured.
    """
    explicit = os.getenv("DOOMSDAY_STORE")
    if explicit:
        return explicit.lower()
    return "supabase" if os.getenv(SUPABASE_URL_ENV) else "sqlite"


def is_production() -> bool:
    """Check if running in production"""
    return ENV == "production"
