# concerts_bot/core/service.py
from __future__ import annotations

import asyncio
import logging
from datetime import date, datetime, timezone
from typing import Awaitable, Callable, List, Optional

from concerts_bot.adapters import fetch_all
from concerts_bot.core.dispatch import DispatchReport, Dispatcher, Transport
from concerts_bot.core.models import NormalizedEvent
from concerts_bot.core.reconcile import ReconcileResult, reconcile
from concerts_bot.storage.sqlite import SqliteStore

log = logging.getLogger(__name__)

FetchAll = Callable[[], Awaitable[List[NormalizedEvent]]]


class ConcertService:
    """
    The scheduler-facing entry points: refresh the canonical concert set,
    send new-concert alerts, send tomorrow reminders.
    """

    def __init__(self, store: SqliteStore, transport: Optional[Transport] = None, fetch: Optional[FetchAll] = None):
        self.store = store
        self.fetch = fetch or fetch_all
        # refresh works without a transport, the triggers do not
        self.dispatcher = Dispatcher(store, transport) if transport is not None else None
        self._refresh_lock = asyncio.Lock()

    async def refresh(self, now: Optional[datetime] = None) -> ReconcileResult:
        """Scrape every source, reconcile against storage and persist the result atomically."""
        async with self._refresh_lock:
            now = now or datetime.now(timezone.utc)
            fresh = await self.fetch()
            log.info("Refresh: %s events from sources", len(fresh))
            previous = await self.store.load_concerts()
            result = reconcile(previous, fresh, now=now)
            await self.store.replace_concerts(result.concerts, result.migrated)
            return result

    def _require_dispatcher(self) -> Dispatcher:
        if self.dispatcher is None:
            raise RuntimeError("no messaging transport configured")
        return self.dispatcher

    async def notify_new_concerts(self, now: Optional[datetime] = None) -> DispatchReport:
        return await self._require_dispatcher().notify_new_concerts(now)

    async def remind_tomorrow(self, today: Optional[date] = None) -> DispatchReport:
        return await self._require_dispatcher().remind_tomorrow(today)

    async def run_cycle(self, now: Optional[datetime] = None) -> DispatchReport:
        # alerts only ever read a committed concert set
        await self.refresh(now)
        return await self.notify_new_concerts(now)
