# concerts_bot/adapters/__init__.py

import asyncio
import logging
from typing import Awaitable, Callable, Dict, List, Optional

from concerts_bot.core.config import settings
from concerts_bot.core.models import NormalizedEvent

from .chemiefabrik import run as run_chemiefabrik                  # async def run() -> List[NormalizedEvent]
from .schlachthof import run_alter_schlachthof, run_junge_garde

log = logging.getLogger(__name__)

Fetcher = Callable[[], Awaitable[List[NormalizedEvent]]]

REGISTRY: Dict[str, Fetcher] = {
    "chemiefabrik": run_chemiefabrik,
    "alter_schlachthof": run_alter_schlachthof,
    "junge_garde": run_junge_garde,
}


async def fetch_source(name: str, fetcher: Fetcher, timeout: Optional[float] = None) -> List[NormalizedEvent]:
    """Run one adapter; any failure or timeout yields [] so other sources still reconcile."""
    timeout = settings.fetch_timeout if timeout is None else timeout
    try:
        events = await asyncio.wait_for(fetcher(), timeout=timeout)
    except asyncio.TimeoutError:
        log.warning("%s: no answer within %ss", name, timeout)
        return []
    except Exception:
        log.exception("%s: fetch failed", name)
        return []
    log.info("%s: %s events", name, len(events))
    return list(events)


async def fetch_all(
    registry: Optional[Dict[str, Fetcher]] = None, timeout: Optional[float] = None
) -> List[NormalizedEvent]:
    registry = REGISTRY if registry is None else registry
    names = list(registry)
    results = await asyncio.gather(*(fetch_source(n, registry[n], timeout) for n in names))
    return [ev for batch in results for ev in batch]
