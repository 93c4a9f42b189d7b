"""Daily content endpoints: theme lookup, on-demand generation, the daily job."""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any, Literal

from fastapi import APIRouter, Body, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from doomsday.api.dependencies import (
    get_content_generator,
    get_job_factory,
    get_privileged_store,
    get_store,
)
from doomsday.api.routes.health import environment_check
from doomsday.config import SERVER_UTC_OFFSET_HOURS
from doomsday.content.daily_job import DailyContentJob
from doomsday.content.fallbacks import DEFAULT_CHAT_THEME
from doomsday.content.generator import ContentGenerator, ContentKind, fallback_for
from doomsday.countdown.time_engine import current_day_number, to_offset_time, utc_now
from doomsday.observability.logging import get_logger
from doomsday.observability.telemetry import log_event
from doomsday.storage.facade import PersistenceFacade, StorageError
from doomsday.storage.models import NewDailyContent

logger = get_logger(__name__)

router = APIRouter(tags=["content"])


class GenerateThemeRequest(BaseModel):
    type: Literal["theme", "news"] = "theme"


@router.get("/get-theme")
async def get_theme(store: PersistenceFacade = Depends(get_store)) -> Any:
    """Latest stored theme, news and quote; a static theme when nothing is stored yet."""
    try:
        entry = await store.get_latest_daily_content()
    except StorageError as e:
        logger.error("Failed to get theme: %s", e)
        return JSONResponse(
            status_code=500,
            content={
                "success": False,
                "error": str(e),
                "theme": DEFAULT_CHAT_THEME,
                "from_database": False,
            },
        )

    if entry is None:
        return {
            "success": True,
            "theme": DEFAULT_CHAT_THEME,
            "news": [],
            "quote": None,
            "day_number": current_day_number(),
            "from_database": False,
        }

    return {
        "success": True,
        "theme": entry.chat_theme or DEFAULT_CHAT_THEME,
        "news": entry.news_headlines,
        "quote": entry.main_quote,
        "day_number": entry.day_number,
        "from_database": True,
    }


@router.post("/generate-theme")
async def generate_theme(
    payload: GenerateThemeRequest | None = Body(default=None),
    store: PersistenceFacade = Depends(get_privileged_store),
    generator: ContentGenerator = Depends(get_content_generator),
) -> dict[str, Any]:
    """Generate a discussion theme (or one topical headline) and store it for today.

    Side Effects:
        - Calls the generative API (with 429 retry)
        - Inserts a daily_content row stamped with the current day number
    """
    request = payload or GenerateThemeRequest()
    kind = ContentKind.NEWS if request.type == "news" else ContentKind.CHAT_THEME
    field = "daily_news" if kind is ContentKind.NEWS else "chat_theme"

    text = await generator.generate_for_theme(kind)

    day = current_day_number()
    entry = await store.insert_daily_content(
        NewDailyContent(
            day_number=day,
            date_generated=datetime.now(UTC).date(),
            main_quote=str(fallback_for(ContentKind.QUOTE, day)),
            **{field: text},
        )
    )

    log_event("api.theme.generated", type=request.type, day_number=day)
    return {
        "success": True,
        "content": entry.model_dump(mode="json"),
        "theme": text,
        "type": request.type,
        "field": field,
    }


@router.post("/generate-daily-content")
async def generate_daily_content(
    job_factory: Callable[[], DailyContentJob] = Depends(get_job_factory),
) -> dict[str, Any]:
    """Scheduled job entry point. Idempotent per day number."""
    result = await job_factory().run()
    return result.to_dict()


@router.get("/verify-daily-content")
async def verify_daily_content(
    trigger: bool = False,
    store: PersistenceFacade = Depends(get_privileged_store),
    job_factory: Callable[[], DailyContentJob] = Depends(get_job_factory),
) -> dict[str, Any]:
    """Report today's day number, stored content and configuration; optionally run the job."""
    now = utc_now()
    day = current_day_number(now)

    today_content = await store.get_daily_content_by_day(day, complete_only=True)
    recent = await store.list_recent_daily_content(5)
    total = await store.count_daily_content()

    manual_trigger: dict[str, Any] | None = None
    if trigger:
        logger.info("Manual daily content trigger requested")
        try:
            result = await job_factory().run(day)
            manual_trigger = {"success": True, "result": result.to_dict()}
        except Exception as e:
            logger.error("Manual daily content trigger failed: %s", e)
            manual_trigger = {"success": False, "error": str(e)}

    return {
        "success": True,
        "verification": {
            "timestamp": now.isoformat(),
            "utc14_time": to_offset_time(now, SERVER_UTC_OFFSET_HOURS).isoformat(),
            "current_day": day,
            "today_date": now.date().isoformat(),
            "environment_variables": environment_check(),
            "database_connection": True,
        },
        "today_content": {
            "exists": today_content is not None,
            "data": today_content.model_dump(mode="json") if today_content else None,
        },
        "recent_content": {
            "count": len(recent),
            "entries": [entry.model_dump(mode="json") for entry in recent],
        },
        "total_content_count": total,
        "manual_trigger": manual_trigger,
        "next_scheduled_run": "Daily at 10:00 UTC (00:00 UTC+14)",
    }
