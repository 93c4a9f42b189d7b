"""
Terminal client.

    doomsday countdown [--once]      live countdown with the day's quote and headlines
    doomsday chat --nickname NAME    realtime chat room (/clear, /quit)
    doomsday say NAME TEXT           send one message
    doomsday clear                   delete all chat history
    doomsday theme                   today's discussion theme
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from collections.abc import Mapping
from typing import Any

from doomsday.chat.connection import ChatConnectionManager, ChatError, SendError
from doomsday.chat.transport import SSERealtimeTransport
from doomsday.chat.view import ChatView
from doomsday.client.api import DEFAULT_API_URL, ApiError, DoomsdayAPI
from doomsday.config import START_DATE, TOTAL_DAYS
from doomsday.content.cache import DailyContentCache
from doomsday.content.generator import ContentGenerator, ContentKind, fallback_list
from doomsday.content.local_store import FileLocalStore
from doomsday.countdown.scheduler import Scheduler
from doomsday.countdown.ticker import CountdownTicker
from doomsday.countdown.time_engine import (
    CountdownState,
    compute_countdown,
    local_utc_offset_hours,
    utc_now,
)
from doomsday.observability.logging import get_logger

logger = get_logger(__name__)


async def daily_content(
    cache: DailyContentCache, generator: ContentGenerator, kind: ContentKind, day: int
) -> str | list[str]:
    """Live generation, then today's cached copy, then the static list."""
    items, count = fallback_list(kind)
    entry = await cache.get(
        kind.value, day, lambda d: generator.generate_strict(kind, d), items, count
    )
    return entry.payload


async def _print_daily_content(
    cache: DailyContentCache, generator: ContentGenerator, day: int
) -> None:
    quote = await daily_content(cache, generator, ContentKind.QUOTE, day)
    news = await daily_content(cache, generator, ContentKind.NEWS, day)
    print(f"\nDay {day} of {TOTAL_DAYS}")
    print(f'  "{quote}"')
    for headline in news if isinstance(news, list) else [news]:
        print(f"  - {headline}")


async def run_countdown(args: argparse.Namespace) -> int:
    api = DoomsdayAPI(args.url)
    cache = DailyContentCache(FileLocalStore())
    cache.sweep()
    generator = ContentGenerator(api)
    offset = args.offset if args.offset is not None else local_utc_offset_hours()

    try:
        if args.once:
            state = compute_countdown(utc_now(), START_DATE, TOTAL_DAYS, offset)
            print(state.display())
            if state.days_passed > 0:
                await _print_daily_content(cache, generator, state.days_passed)
            return 0

        finished = asyncio.Event()
        async with Scheduler() as scheduler:

            def on_tick(state: CountdownState) -> None:
                print(f"\r{state.display()}", end="", flush=True)
                if state.finished:
                    finished.set()

            def on_day_change(day: int) -> None:
                scheduler.spawn(_print_daily_content(cache, generator, day))

            ticker = CountdownTicker(
                scheduler,
                on_tick,
                start_date=START_DATE,
                total_days=TOTAL_DAYS,
                utc_offset_hours=offset,
                on_day_change=on_day_change,
            )
            ticker.start()
            await finished.wait()
        print()
        return 0
    finally:
        await api.aclose()


def _transport_factory(base_url: str):
    def factory(config: Mapping[str, Any]) -> SSERealtimeTransport:
        realtime_url = config.get("realtimeUrl") or f"{base_url}/realtime"
        return SSERealtimeTransport(realtime_url, config.get("supabaseAnonKey"))

    return factory


async def run_chat(args: argparse.Namespace) -> int:
    api = DoomsdayAPI(args.url)
    loop = asyncio.get_running_loop()

    async with Scheduler() as scheduler:
        manager = ChatConnectionManager(api, _transport_factory(args.url), scheduler)
        ChatView(manager)
        try:
            await manager.load_history()
            await manager.connect()
            while True:
                line = await loop.run_in_executor(None, sys.stdin.readline)
                if not line:
                    break
                line = line.strip()
                if line in ("/quit", "/exit"):
                    break
                if not line:
                    continue
                if line == "/clear":
                    try:
                        await manager.clear_all()
                    except ChatError as e:
                        print(f"! {e}")
                    continue
                try:
                    await manager.send(args.nickname, line)
                except (ValueError, SendError) as e:
                    print(f"! {e}")
        finally:
            await manager.close()
            await api.aclose()
    return 0


async def run_say(args: argparse.Namespace) -> int:
    from doomsday.chat.colors import nickname_color

    api = DoomsdayAPI(args.url)
    try:
        record = await api.send_message(args.nickname, args.text, nickname_color(args.nickname))
    finally:
        await api.aclose()
    print(f"Sent message #{record.id}")
    return 0


async def run_clear(args: argparse.Namespace) -> int:
    api = DoomsdayAPI(args.url)
    try:
        deleted = await api.clear_messages()
    finally:
        await api.aclose()
    print(f"Cleared {deleted} messages")
    return 0


async def run_theme(args: argparse.Namespace) -> int:
    api = DoomsdayAPI(args.url)
    try:
        data = await api.get_theme()
    finally:
        await api.aclose()
    print(f"Day {data.get('day_number')}: {data.get('theme')}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="doomsday", description="Doomsday Countdown client")
    parser.add_argument("--url", default=DEFAULT_API_URL, help="API base URL")
    subparsers = parser.add_subparsers(dest="command", required=True)

    countdown = subparsers.add_parser("countdown", help="Show the countdown")
    countdown.add_argument("--once", action="store_true", help="Print once and exit")
    countdown.add_argument(
        "--offset", type=float, help="UTC offset in hours (default: this machine's)"
    )
    countdown.set_defaults(handler=run_countdown)

    chat = subparsers.add_parser("chat", help="Join the chat room")
    chat.add_argument("--nickname", required=True)
    chat.set_defaults(handler=run_chat)

    say = subparsers.add_parser("say", help="Send one chat message")
    say.add_argument("nickname")
    say.add_argument("text")
    say.set_defaults(handler=run_say)

    clear = subparsers.add_parser("clear", help="Delete all chat messages")
    clear.set_defaults(handler=run_clear)

    theme = subparsers.add_parser("theme", help="Show today's discussion theme")
    theme.set_defaults(handler=run_theme)

    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        return asyncio.run(args.handler(args))
    except ApiError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
