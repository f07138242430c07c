# concerts_bot/core/identity.py
from __future__ import annotations

import re
import unicodedata
from datetime import date, datetime, timezone
from typing import List, Mapping, Optional
from zoneinfo import ZoneInfo

from concerts_bot.core.config import settings
from concerts_bot.core.models import NormalizedEvent
from concerts_bot.core.sources import SOURCES, SourceConfig

SLUG_MAX_LEN = 15


def _strip_accents(s: str) -> str:
    return "".join(c for c in unicodedata.normalize("NFKD", s) if not unicodedata.combining(c))


def slug(text: Optional[str], max_len: int = SLUG_MAX_LEN) -> str:
    """'Die Ärzte & Friends' -> 'diearztefriends' (ascii a-z0-9, truncated)."""
    if not text:
        return ""
    s = _strip_accents(text).lower()
    s = re.sub(r"[^a-z0-9]", "", s)
    return s[:max_len]


def local_day(dt: datetime, tz: Optional[str] = None) -> date:
    return dt.astimezone(ZoneInfo(tz or settings.timezone)).date()


def _identity_text(event: NormalizedEvent) -> str:
    # first artist, else the first line of the title
    for a in event.artists[:1]:
        if a.name and a.name.strip():
            return a.name
    return (event.title or "").strip().split("\n")[0]


def concert_id(event: NormalizedEvent, source: SourceConfig) -> Optional[str]:
    """
    Canonical id: prefix + local date + slug of the first artist.
    None when the event carries no date or nothing to slug.
    """
    if event.date is None:
        return None
    key = slug(_identity_text(event))
    if not key:
        return None
    return f"{source.prefix}-{local_day(event.date):%Y%m%d}-{key}"


def legacy_concert_ids(event: NormalizedEvent, source: SourceConfig) -> List[str]:
    """
    Ids the retired scheme of `source` may have given this event.

    Old records were dated either by local day or by UTC day, so both are
    tried; they differ for concerts around local midnight.
    """
    if not source.legacy_id_template or event.date is None:
        return []
    if "{provider_id}" in source.legacy_id_template and not event.event_id_provider:
        return []
    key = slug(_identity_text(event))
    days = [local_day(event.date), event.date.astimezone(timezone.utc).date()]
    out: List[str] = []
    for day in days:
        try:
            cid = source.legacy_id_template.format(date=day, slug=key, provider_id=event.event_id_provider)
        except (KeyError, IndexError, ValueError):
            continue
        if cid not in out:
            out.append(cid)
    return out


def legacy_source(concert_id_: str, sources: Mapping[str, SourceConfig] = SOURCES) -> Optional[str]:
    """Key of the source whose retired id scheme produced `concert_id_`, if any."""
    for s in sources.values():
        if s.legacy_id_pattern is not None and s.legacy_id_pattern.match(concert_id_):
            return s.key
    return None
