from __future__ import annotations

import argparse
import asyncio
import logging
from typing import Awaitable, Callable, List, Optional, TypeVar

from telegram import Bot

from concerts_bot.bot.transport import TelegramTransport
from concerts_bot.core.config import Settings, settings
from concerts_bot.core.logging import configure_logging
from concerts_bot.core.service import ConcertService
from concerts_bot.storage.sqlite import SqliteStore

log = logging.getLogger(__name__)

T = TypeVar("T")


async def _with_service(cfg: Settings, fn: Callable[[ConcertService], Awaitable[T]], needs_bot: bool) -> T:
    store = SqliteStore(cfg.database_path)
    await store.init()
    if not needs_bot:
        return await fn(ConcertService(store))
    if not cfg.telegram_bot_token:
        raise SystemExit("TELEGRAM_BOT_TOKEN is not set")
    async with Bot(cfg.telegram_bot_token) as bot:
        return await fn(ConcertService(store, TelegramTransport(bot, store)))


async def refresh(cfg: Settings) -> None:
    result = await _with_service(cfg, lambda s: s.refresh(), needs_bot=False)
    log.info("Refresh done: %s concerts, %s new, %s migrated ids",
             len(result.concerts), result.added, len(result.migrated))


async def notify_new(cfg: Settings) -> None:
    report = await _with_service(cfg, lambda s: s.run_cycle(), needs_bot=True)
    log.info("New-concert alerts: %s sent, %s failed", report.sent, report.failed)


async def remind(cfg: Settings) -> None:
    report = await _with_service(cfg, lambda s: s.remind_tomorrow(), needs_bot=True)
    log.info("Reminders: %s sent, %s failed", report.sent, report.failed)


async def init_db(cfg: Settings) -> None:
    await SqliteStore(cfg.database_path).init()


COMMANDS = {
    "refresh": refresh,
    "notify-new": notify_new,
    "remind": remind,
    "init-db": init_db,
}


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="concerts-bot", description="Dresden concert notification bot")
    p.add_argument("--log-level", default=settings.log_level)
    sub = p.add_subparsers(dest="command", required=True)
    sub.add_parser("run", help="start the Telegram bot with its daily jobs")
    sub.add_parser("refresh", help="scrape all venues and store the reconciled concerts")
    sub.add_parser("notify-new", help="refresh, then send new-concert alerts")
    sub.add_parser("remind", help="send reminders for tomorrow's favorite concerts")
    sub.add_parser("init-db", help="create the database schema")
    return p


def main(argv: Optional[List[str]] = None) -> None:
    args = build_parser().parse_args(argv)
    configure_logging(getattr(logging, args.log_level.upper(), logging.INFO), json_lines=settings.log_json)
    if args.command == "run":
        # the bot owns its event loop
        from concerts_bot.bot.app import run_bot
        run_bot(settings)
        return
    asyncio.run(COMMANDS[args.command](settings))

if __name__ == "__main__":
    main()
