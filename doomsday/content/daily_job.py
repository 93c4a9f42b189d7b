"""
Daily content job: quote, chat theme and news headlines for the current day.

Idempotent per day number. If a complete row for the day already exists it
is returned unchanged and nothing is generated. Partial rows written by
``/generate-theme`` do not count. Requests to the generative API
are made one after another with a short pause in between so the batch stays
under the free-tier rate limit.

Run from cron via the ``doomsday-generate-daily`` console script or over HTTP
(``POST /generate-daily-content``).
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import UTC, date, datetime
from typing import Any

from doomsday.config import DAILY_JOB_PAUSE_SECONDS
from doomsday.content.generator import ContentGenerator, ContentKind
from doomsday.countdown.time_engine import current_day_number
from doomsday.observability.logging import get_logger
from doomsday.observability.telemetry import counter, log_event, time_block
from doomsday.storage.facade import PersistenceFacade
from doomsday.storage.models import DailyContentEntry, NewDailyContent

logger = get_logger(__name__)


@dataclass
class DailyJobResult:
    day_number: int
    created: bool
    content: DailyContentEntry

    @property
    def message(self) -> str:
        if self.created:
            return f"Generated fresh content for day {self.day_number}"
        return f"Content already exists for day {self.day_number}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": True,
            "message": self.message,
            "dayNumber": self.day_number,
            "content": self.content.model_dump(mode="json"),
        }


class DailyContentJob:
    def __init__(
        self,
        store: PersistenceFacade,
        generator: ContentGenerator,
        *,
        pause_seconds: float = DAILY_JOB_PAUSE_SECONDS,
        day_number: Callable[[], int] = current_day_number,
        today: Callable[[], date] = lambda: datetime.now(UTC).date(),
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.store = store
        self.generator = generator
        self.pause_seconds = pause_seconds
        self.day_number = day_number
        self.today = today
        self._sleep = sleep

    async def run(self, day: int | None = None) -> DailyJobResult:
        """
        Generate and store content for ``day`` (default: today's day number).

        Raises:
            StorageError: if the existence check or the insert fails

        Side Effects:
            - Calls the generative API up to five times (quote, theme, three headlines)
            - Inserts one daily_content row
        """
        day = day if day is not None else self.day_number()

        existing = await self.store.get_daily_content_by_day(day, complete_only=True)
        if existing is not None:
            logger.info("Content already exists for day %d", day)
            counter("daily_job.skipped")
            return DailyJobResult(day_number=day, created=False, content=existing)

        logger.info("Generating content for day %d (%s)", day, self.today().isoformat())
        with time_block("daily_job.generate"):
            main_quote = await self.generator.generate(ContentKind.QUOTE, day)
            await self._sleep(self.pause_seconds)
            chat_theme = await self.generator.generate(ContentKind.CHAT_THEME, day)
            await self._sleep(self.pause_seconds)
            news = await self.generator.generate(ContentKind.NEWS, day)

        entry = await self.store.insert_daily_content(
            NewDailyContent(
                day_number=day,
                date_generated=self.today(),
                main_quote=str(main_quote),
                chat_theme=str(chat_theme),
                daily_news="\n".join(news) if isinstance(news, list) else str(news),
            )
        )

        counter("daily_job.created")
        log_event("daily_job.created", day_number=day)
        return DailyJobResult(day_number=day, created=True, content=entry)


def main() -> None:
    """Console entry point: run the job once against the configured store."""
    from dotenv import load_dotenv

    from doomsday.api.dependencies import build_batch_gateway, build_store

    load_dotenv()

    async def _run() -> DailyJobResult:
        store = build_store(privileged=True)
        gateway = build_batch_gateway()
        try:
            return await DailyContentJob(store, ContentGenerator(gateway)).run()
        finally:
            await gateway.aclose()
            await store.aclose()

    result = asyncio.run(_run())
    print(result.message)


if __name__ == "__main__":
    main()
