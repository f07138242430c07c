# concerts_bot/bot/app.py
from __future__ import annotations

import logging
from datetime import time
from zoneinfo import ZoneInfo

from telegram import Update
from telegram.ext import Application, ContextTypes, JobQueue

from concerts_bot.bot.handlers import register_handlers
from concerts_bot.bot.transport import TelegramTransport
from concerts_bot.core.config import Settings
from concerts_bot.core.service import ConcertService
from concerts_bot.storage.sqlite import SqliteStore

log = logging.getLogger(__name__)


def parse_clock(value: str, tz: str) -> time:
    """'19:00' -> time(19, 0, tzinfo=tz)."""
    hh, _, mm = value.strip().partition(":")
    return time(int(hh), int(mm or 0), tzinfo=ZoneInfo(tz))


async def job_refresh(context: ContextTypes.DEFAULT_TYPE) -> None:
    service: ConcertService = context.bot_data["service"]
    try:
        await service.refresh()
    except Exception:
        log.exception("Startup refresh failed")


async def job_new_concerts(context: ContextTypes.DEFAULT_TYPE) -> None:
    service: ConcertService = context.bot_data["service"]
    try:
        await service.run_cycle()
    except Exception:
        log.exception("Scheduled refresh / new-concert alerts failed")


async def job_reminders(context: ContextTypes.DEFAULT_TYPE) -> None:
    service: ConcertService = context.bot_data["service"]
    try:
        await service.remind_tomorrow()
    except Exception:
        log.exception("Scheduled reminders failed")


async def _on_error(update: object, context: ContextTypes.DEFAULT_TYPE) -> None:
    log.error("Unhandled error for update %s", getattr(update, "update_id", None), exc_info=context.error)


def schedule_jobs(job_queue: JobQueue, settings: Settings) -> None:
    # fill the concert list right away; alerts stay on the daily job
    job_queue.run_once(job_refresh, when=0, name="startup_refresh")
    job_queue.run_daily(
        job_new_concerts, time=parse_clock(settings.new_concerts_time, settings.timezone), name="new_concerts"
    )
    job_queue.run_daily(
        job_reminders, time=parse_clock(settings.reminder_time, settings.timezone), name="reminders"
    )
    log.info("Jobs scheduled: refresh now, new concerts at %s, reminders at %s (%s)",
             settings.new_concerts_time, settings.reminder_time, settings.timezone)


def build_application(settings: Settings) -> Application:
    if not settings.telegram_bot_token:
        raise RuntimeError("TELEGRAM_BOT_TOKEN is not set")

    store = SqliteStore(settings.database_path)

    async def post_init(app: Application) -> None:
        await store.init()
        service = ConcertService(store, TelegramTransport(app.bot, store))
        app.bot_data["store"] = store
        app.bot_data["service"] = service
        schedule_jobs(app.job_queue, settings)

    app = Application.builder().token(settings.telegram_bot_token).post_init(post_init).build()
    register_handlers(app)
    app.add_error_handler(_on_error)
    return app


def run_bot(settings: Settings) -> None:
    app = build_application(settings)
    log.info("Bot starting polling")
    app.run_polling(allowed_updates=Update.ALL_TYPES)
