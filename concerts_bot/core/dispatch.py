# concerts_bot/core/dispatch.py
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from enum import Enum
from typing import List, Optional, Protocol
from zoneinfo import ZoneInfo

from concerts_bot.core.config import settings
from concerts_bot.core.identity import local_day
from concerts_bot.core.models import Concert, User

log = logging.getLogger(__name__)


class NotificationKind(str, Enum):
    NEW_CONCERT = "new_concert"
    REMINDER = "reminder"


class Transport(Protocol):
    async def notify(self, user_id: str, concert: Concert, kind: NotificationKind) -> bool: ...


class Store(Protocol):
    async def upcoming_concerts(self, now: Optional[datetime] = None, limit: Optional[int] = None) -> List[Concert]: ...
    async def users_subscribed_to_venue(self, venue: str) -> List[User]: ...
    async def users_subscribed_to_concert(self, concert_id: str) -> List[User]: ...
    async def was_notified(self, user_id: str, concert_id: str) -> bool: ...
    async def mark_notified(self, user_id: str, concert_id: str) -> bool: ...


@dataclass
class DispatchReport:
    sent: int = 0
    failed: int = 0
    skipped: int = 0


class Dispatcher:
    """
    Decides who hears about which concert and hands delivery to the transport.

    New-concert alerts are recorded in the store after a successful delivery
    and never repeated; reminders keep no record, so running the reminder
    trigger twice on one day sends them twice.
    """

    def __init__(self, store: Store, transport: Transport, tz: Optional[str] = None):
        self.store = store
        self.transport = transport
        self.tz = tz or settings.timezone
        self._new_lock = asyncio.Lock()
        self._reminder_lock = asyncio.Lock()

    async def _deliver(self, user: User, concert: Concert, kind: NotificationKind) -> bool:
        try:
            ok = await self.transport.notify(user.user_id, concert, kind)
        except Exception:
            log.exception("Delivery of %s for %s to user %s failed", kind.value, concert.id, user.user_id)
            return False
        if not ok:
            log.warning("Delivery of %s for %s to user %s was not accepted", kind.value, concert.id, user.user_id)
        return bool(ok)

    async def notify_new_concerts(self, now: Optional[datetime] = None) -> DispatchReport:
        async with self._new_lock:
            report = DispatchReport()
            concerts = await self.store.upcoming_concerts(now or datetime.now(timezone.utc))
            for concert in concerts:
                for user in await self.store.users_subscribed_to_venue(concert.venue):
                    if await self.store.was_notified(user.user_id, concert.id):
                        report.skipped += 1
                        continue
                    if await self._deliver(user, concert, NotificationKind.NEW_CONCERT):
                        await self.store.mark_notified(user.user_id, concert.id)
                        report.sent += 1
                    else:
                        report.failed += 1
            log.info("New-concert alerts: %s sent, %s failed, %s already notified",
                     report.sent, report.failed, report.skipped)
            return report

    async def remind_tomorrow(self, today: Optional[date] = None) -> DispatchReport:
        async with self._reminder_lock:
            report = DispatchReport()
            today = today or datetime.now(ZoneInfo(self.tz)).date()
            tomorrow = today + timedelta(days=1)
            start_of_today = datetime.combine(today, datetime.min.time(), tzinfo=ZoneInfo(self.tz))
            for concert in await self.store.upcoming_concerts(start_of_today):
                if local_day(concert.date, self.tz) != tomorrow:
                    continue
                for user in await self.store.users_subscribed_to_concert(concert.id):
                    if await self._deliver(user, concert, NotificationKind.REMINDER):
                        report.sent += 1
                    else:
                        report.failed += 1
            log.info("Reminders for %s: %s sent, %s failed", tomorrow, report.sent, report.failed)
            return report
