"""Public client configuration (anon-scoped credentials only)."""

from __future__ import annotations

import os
from typing import Any

from fastapi import APIRouter, Request

from doomsday.config import (
    REALTIME_URL,
    SUPABASE_ANON_KEY_ENV,
    SUPABASE_URL_ENV,
    require_env,
    store_backend,
)

router = APIRouter(tags=["config"])


@router.get("/get-config")
async def get_config(request: Request) -> dict[str, Any]:
    """
    Connection settings for chat clients.

    The realtime stream is served by this app, so the local SQLite backend
    needs no Supabase credentials and reports whatever is set (or null). With
    the Supabase backend a missing URL or anon key raises
    MissingEnvironmentError (500).
    """
    if store_backend() == "supabase":
        supabase_url: str | None = require_env(SUPABASE_URL_ENV)
        anon_key: str | None = require_env(SUPABASE_ANON_KEY_ENV)
    else:
        supabase_url = os.getenv(SUPABASE_URL_ENV) or None
        anon_key = os.getenv(SUPABASE_ANON_KEY_ENV) or None
    return {
        "success": True,
        "supabaseUrl": supabase_url,
        "supabaseAnonKey": anon_key,
        "realtimeUrl": REALTIME_URL or f"{str(request.base_url).rstrip('/')}/realtime",
    }
