"""
FastAPI dependencies: stores, change feed, AI gateways, content job.

Everything is built lazily on first use, so a missing environment variable
fails the request that needs it (with ``Missing <NAME> environment variable``)
instead of preventing the server from starting.
"""

from __future__ import annotations

import os
from collections.abc import Callable
from functools import lru_cache

from fastapi import Depends

from doomsday.config import (
    DB_PATH,
    GEMINI_API_KEY_ENV,
    SUPABASE_ANON_KEY_ENV,
    SUPABASE_SERVICE_KEY_ENV,
    SUPABASE_URL_ENV,
    require_env,
    store_backend,
)
from doomsday.content.daily_job import DailyContentJob
from doomsday.content.generator import ContentGenerator
from doomsday.llm.gateway import AIGatewayClient
from doomsday.observability.logging import get_logger
from doomsday.storage.change_feed import ChangeFeed
from doomsday.storage.facade import PersistenceFacade
from doomsday.storage.sqlite_store import SQLiteStore
from doomsday.storage.supabase_store import SupabaseStore

logger = get_logger(__name__)


def build_store(privileged: bool = False) -> PersistenceFacade:
    """
    Store for the configured backend.

    ``privileged`` stores write daily content and require the service key;
    the others prefer the service key and fall back to the anon key.
    """
    if store_backend() != "supabase":
        return _sqlite_store()

    url = require_env(SUPABASE_URL_ENV)
    if privileged:
        key = require_env(SUPABASE_SERVICE_KEY_ENV)
    else:
        key = os.getenv(SUPABASE_SERVICE_KEY_ENV) or require_env(SUPABASE_ANON_KEY_ENV)
    logger.info("Using Supabase store (privileged=%s)", privileged)
    return SupabaseStore(url, key)


@lru_cache(maxsize=1)
def _sqlite_store() -> SQLiteStore:
    logger.info("Using SQLite store at %s", DB_PATH)
    return SQLiteStore(DB_PATH)


def build_lab_gateway() -> AIGatewayClient:
    return AIGatewayClient(require_env(GEMINI_API_KEY_ENV), retry_on_rate_limit=False)


def build_batch_gateway() -> AIGatewayClient:
    return AIGatewayClient(require_env(GEMINI_API_KEY_ENV), retry_on_rate_limit=True)


@lru_cache(maxsize=1)
def get_store() -> PersistenceFacade:
    return build_store(privileged=False)


@lru_cache(maxsize=1)
def get_privileged_store() -> PersistenceFacade:
    return build_store(privileged=True)


@lru_cache(maxsize=1)
def get_change_feed() -> ChangeFeed:
    return ChangeFeed()


@lru_cache(maxsize=1)
def get_lab_gateway() -> AIGatewayClient:
    return build_lab_gateway()


@lru_cache(maxsize=1)
def get_batch_gateway() -> AIGatewayClient:
    return build_batch_gateway()


def get_content_generator() -> ContentGenerator:
    return ContentGenerator(get_batch_gateway())


def get_job_factory(
    store: PersistenceFacade = Depends(get_privileged_store),
) -> Callable[[], DailyContentJob]:
    """The job is only built when a request actually runs it."""
    return lambda: DailyContentJob(store, get_content_generator())


async def close_resources() -> None:
    """Close whatever clients and stores were built during the process lifetime."""
    for getter in (get_store, get_privileged_store, get_lab_gateway, get_batch_gateway):
        if getter.cache_info().currsize:
            await getter().aclose()
            getter.cache_clear()
    if _sqlite_store.cache_info().currsize:
        _sqlite_store.cache_clear()
