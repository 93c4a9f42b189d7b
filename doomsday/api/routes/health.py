"""Health check endpoint.

Reports service status and which environment variables are present. Values
are never echoed back, only their presence.
"""

from __future__ import annotations

import os
from datetime import UTC, datetime
from typing import Any

from fastapi import APIRouter

from doomsday.config import (
    APP_VERSION,
    GEMINI_API_KEY_ENV,
    SUPABASE_ANON_KEY_ENV,
    SUPABASE_SERVICE_KEY_ENV,
    SUPABASE_URL_ENV,
    store_backend,
)
from doomsday.observability.telemetry import get_latency_stats

router = APIRouter(tags=["health"])


def environment_check() -> dict[str, bool]:
    return {
        "supabase_url": bool(os.getenv(SUPABASE_URL_ENV)),
        "supabase_anon_key": bool(os.getenv(SUPABASE_ANON_KEY_ENV)),
        "supabase_service_key": bool(os.getenv(SUPABASE_SERVICE_KEY_ENV)),
        "gemini_api_key": bool(os.getenv(GEMINI_API_KEY_ENV)),
    }


@router.get("/health")
async def health_check() -> dict[str, Any]:
    """Liveness plus configuration readiness (no external calls)."""
    env = environment_check()
    return {
        "status": "healthy",
        "service": "Doomsday Countdown API",
        "version": APP_VERSION,
        "timestamp": datetime.now(UTC).isoformat(),
        "store": store_backend(),
        "llm": {"ready": env["gemini_api_key"], "latency": get_latency_stats("llm.generate")},
        "environment_check": env,
    }
