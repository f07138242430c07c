# concerts_bot/adapters/chemiefabrik.py
from __future__ import annotations

import logging
import re
from datetime import datetime
from typing import List, Optional
from zoneinfo import ZoneInfo

import dateparser
import httpx
from bs4 import BeautifulSoup
from tenacity import retry, stop_after_attempt, wait_exponential

from concerts_bot.core.config import settings
from concerts_bot.core.models import Artist, NormalizedEvent
from concerts_bot.core.sources import SOURCES

log = logging.getLogger(__name__)

SOURCE = SOURCES["chemiefabrik"]
HEADERS = {
    "User-Agent": "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120 Safari/537.36",
    "Accept-Language": "de-DE,de;q=0.9,en;q=0.8",
}

# elementor widget classes of the gig listing
CARD = ".elementor-element-cdc7517"
DATE = ".elementor-element-93c9594 .jet-listing-dynamic-field__content"
DOORS = ".elementor-element-6c7315b"
START = ".elementor-element-c75cd6a"
PRICE_PRESALE = ".elementor-element-4df86c0 .jet-listing-dynamic-field__content"
PRICE_BOX_OFFICE = ".elementor-element-307babc .jet-listing-dynamic-field__content"
BANDS = ".elementor-element-adc63ed .jet-listing-dynamic-repeater__item"
DESCRIPTION = ".elementor-element-aa0c4be .jet-listing-dynamic-field__content"
POSTER = ".jet-listing-dynamic-image img"
TICKETS = ".elementor-element-ff74167 a"


# ------------------ Text utils ------------------

def _text(card, selector: str) -> str:
    el = card.select_one(selector)
    return re.sub(r"\s+", " ", el.get_text(" ", strip=True)) if el else ""

def _hhmm(text: Optional[str]) -> Optional[str]:
    m = re.search(r"(\d{1,2}):(\d{2})", text or "")
    return f"{int(m.group(1)):02d}:{m.group(2)}" if m else None

def _parse_de_date(text: Optional[str]) -> Optional[datetime]:
    """
    'Fr. 14.11.25', '14.11.2025', '14. 11. 25' -> naive date at midnight.
    Falls back to dateparser for spelled-out dates ('14. November 2025').
    """
    if not text:
        return None
    m = re.search(r"(\d{1,2})\.\s*(\d{1,2})\.\s*(\d{2,4})", text)
    if m:
        day, month, year = (int(g) for g in m.groups())
        if year < 100:
            year += 2000
        try:
            return datetime(year, month, day)
        except ValueError:
            return None
    dt = dateparser.parse(
        text,
        languages=["de"],
        settings={"DATE_ORDER": "DMY", "RETURN_AS_TIMEZONE_AWARE": False, "PREFER_DATES_FROM": "future"},
    )
    return dt.replace(hour=0, minute=0, second=0, microsecond=0) if dt else None


# ------------------ Parsing ------------------

def _parse_card(card) -> Optional[NormalizedEvent]:
    title_lines: List[str] = []
    artists: List[Artist] = []
    for item in card.select(BANDS):
        full = re.sub(r"\s+", " ", item.get_text(" ", strip=True))
        if full:
            title_lines.append(full)
        link = item.select_one(".bandlink")
        if link and link.get_text(strip=True):
            artists.append(Artist(name=link.get_text(strip=True), link=link.get("href")))

    date_text = _text(card, DATE)
    day = _parse_de_date(date_text)
    if not title_lines or day is None:
        log.debug("Chemiefabrik: card without title or date skipped (%r)", date_text)
        return None

    start = _hhmm(_text(card, START))
    when = day
    if start:
        hh, mm = start.split(":")
        when = day.replace(hour=int(hh), minute=int(mm))

    prices = [p for p in (_text(card, PRICE_PRESALE), _text(card, PRICE_BOX_OFFICE)) if p]
    img = card.select_one(POSTER)
    tix = card.select_one(TICKETS)

    return NormalizedEvent(
        source=SOURCE.key,
        title="\n".join(title_lines),
        venue=SOURCE.venue,
        date=when.replace(tzinfo=ZoneInfo(settings.timezone)),
        price=", ".join(prices) or None,
        poster_url=img.get("src") if img else None,
        description=_text(card, DESCRIPTION) or None,
        ticket_url=tix.get("href") if tix else None,
        start_time=start,
        door_time=_hhmm(_text(card, DOORS)),
        artists=artists,
    )

def parse_page(html: str) -> List[NormalizedEvent]:
    soup = BeautifulSoup(html, "html.parser")
    out: List[NormalizedEvent] = []
    for card in soup.select(CARD):
        # one broken card must not cost the whole listing
        try:
            ev = _parse_card(card)
        except Exception:
            log.exception("Chemiefabrik: skipping unparsable card %r", _text(card, BANDS)[:80])
            continue
        if ev is not None:
            out.append(ev)
    return out


# ------------------ Fetch ------------------

@retry(wait=wait_exponential(min=1, max=10), stop=stop_after_attempt(3))
async def run() -> List[NormalizedEvent]:
    async with httpx.AsyncClient(headers=HEADERS, timeout=15, follow_redirects=True) as client:
        r = await client.get(SOURCE.url)
        r.raise_for_status()
    return parse_page(r.text)
