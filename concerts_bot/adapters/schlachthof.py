# concerts_bot/adapters/schlachthof.py
"""
Alter Schlachthof and Junge Garde publish the same JSON event API
(`/api/getEvents` -> {"events": {"others": [...]}}), so one adapter serves both.
"""
from __future__ import annotations

import logging
import re
from datetime import datetime
from typing import Any, Dict, List, Optional
from zoneinfo import ZoneInfo

import httpx
from bs4 import BeautifulSoup
from tenacity import retry, stop_after_attempt, wait_exponential

from concerts_bot.core.config import settings
from concerts_bot.core.errors import SourceError
from concerts_bot.core.models import Artist, NormalizedEvent
from concerts_bot.core.sources import SOURCES, SourceConfig

log = logging.getLogger(__name__)

HEADERS = {"Accept": "application/json", "User-Agent": "concerts-bot/1.0"}

# ----------------------------- Utils -----------------------------------

def _clean(v: Any) -> Optional[str]:
    if v is None:
        return None
    s = str(v).strip()
    return s or None

def _parse_datetime(datum: Optional[str], beginn: Optional[str]) -> Optional[datetime]:
    """'Fr, 14.11.2025' + '20:00' -> aware datetime in the configured zone."""
    if not datum:
        return None
    m = re.search(r"(\d{1,2})\.(\d{1,2})\.(\d{2,4})", datum)
    if not m:
        return None
    day, month, year = (int(g) for g in m.groups())
    if year < 100:
        year += 2000
    hour = minute = 0
    t = re.search(r"(\d{1,2}):(\d{2})", beginn or "")
    if t:
        hour, minute = int(t.group(1)), int(t.group(2))
    try:
        return datetime(year, month, day, hour, minute, tzinfo=ZoneInfo(settings.timezone))
    except ValueError:
        return None

def _strip_html(text: Optional[str]) -> Optional[str]:
    if not text:
        return None
    return BeautifulSoup(text, "html.parser").get_text(" ", strip=True) or None

# --------------------------- Build layer --------------------------------

def build_event(raw: Dict[str, Any], source: SourceConfig) -> NormalizedEvent:
    title = _clean(raw.get("titel"))
    if not title:
        # the title is the only artist text, so an untitled event has no identity
        raise SourceError(f"{source.key}: event {raw.get('id')!r} has no title")
    img = _clean(raw.get("img"))
    link = _clean(raw.get("tickets_url")) or _clean(raw.get("facebook"))
    return NormalizedEvent(
        source=source.key,
        event_id_provider=_clean(raw.get("id")),
        title=title,
        venue=source.venue,
        date=_parse_datetime(raw.get("datum"), raw.get("beginn")),
        price=_clean(raw.get("preis")),
        poster_url=f"{source.base_url}{img}" if img and img.startswith("/") else img,
        description=_strip_html(raw.get("teaser")),
        ticket_url=_clean(raw.get("tickets_url")),
        start_time=_clean(raw.get("beginn")),
        door_time=_clean(raw.get("einlass")),
        artists=[Artist(name=title, link=link)],
    )

def parse_payload(payload: Any, source: SourceConfig) -> List[NormalizedEvent]:
    if not isinstance(payload, dict):
        raise SourceError(f"{source.key}: unexpected payload type {type(payload).__name__}")
    raw_events = (payload.get("events") or {}).get("others") or []
    if not isinstance(raw_events, list):
        raise SourceError(f"{source.key}: events.others is not a list")
    out: List[NormalizedEvent] = []
    for raw in raw_events:
        try:
            out.append(build_event(raw, source))
        except SourceError as e:
            log.warning("%s, skipped", e)
        except Exception:
            log.exception("%s: skipping unparsable event %r", source.key, raw.get("id") if isinstance(raw, dict) else raw)
    return out

# --------------------------- Fetch layer --------------------------------

@retry(wait=wait_exponential(min=1, max=10), stop=stop_after_attempt(3))
async def fetch(source: SourceConfig) -> List[NormalizedEvent]:
    async with httpx.AsyncClient(headers=HEADERS, timeout=15) as client:
        r = await client.get(source.url)
        r.raise_for_status()
        payload = r.json()
    return parse_payload(payload, source)

async def run_alter_schlachthof() -> List[NormalizedEvent]:
    return await fetch(SOURCES["alter_schlachthof"])

async def run_junge_garde() -> List[NormalizedEvent]:
    return await fetch(SOURCES["junge_garde"])
