# concerts_bot/core/reconcile.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Mapping, Optional

from concerts_bot.core.identity import concert_id, legacy_concert_ids, legacy_source
from concerts_bot.core.models import Concert, NormalizedEvent
from concerts_bot.core.sources import SOURCES, SourceConfig

log = logging.getLogger(__name__)


@dataclass
class ReconcileResult:
    concerts: List[Concert]
    # legacy id -> new id, for every identity migration performed
    migrated: Dict[str, str] = field(default_factory=dict)
    dropped: int = 0
    added: int = 0
    updated: int = 0


def _to_concert(cid: str, ev: NormalizedEvent) -> Concert:
    return Concert(
        id=cid,
        title=ev.title,
        venue=ev.venue,
        date=ev.date,
        price=ev.price,
        poster_url=ev.poster_url,
        description=ev.description,
        ticket_url=ev.ticket_url,
        start_time=ev.start_time,
        door_time=ev.door_time,
        artists=list(ev.artists),
    )


def _sort_key(c: Concert):
    return c.date, c.id


def reconcile(
    previous: Iterable[Concert],
    fresh: Iterable[NormalizedEvent],
    now: Optional[datetime] = None,
    sources: Mapping[str, SourceConfig] = SOURCES,
) -> ReconcileResult:
    """
    Merge a fresh scrape into the previously known concerts.

    - ids are recomputed from (source, local date, first artist);
    - subscribers survive re-scrapes and identity scheme changes;
    - concerts missing from the scrape are kept until their date has passed;
    - output is future-only and sorted by date.
    """
    now = now or datetime.now(timezone.utc)
    previous = list(previous)
    fresh = list(fresh)
    all_previous: Dict[str, Concert] = {c.id: c for c in previous}

    # retired-scheme records leave the canonical set once their source reports
    # again; a source that came back empty keeps them
    reported = {ev.source for ev in fresh}
    index: Dict[str, Concert] = {
        c.id: c for c in previous if legacy_source(c.id, sources) not in reported
    }

    result = ReconcileResult(concerts=[])
    seen_fresh: Dict[str, Concert] = {}

    for ev in fresh:
        source = sources.get(ev.source)
        if source is None:
            log.warning("Unknown source %r for event %r, dropped", ev.source, ev.title)
            result.dropped += 1
            continue
        cid = concert_id(ev, source)
        if not cid:
            log.warning("No identity for %s event %r (date=%s), dropped", ev.source, ev.title, ev.date)
            result.dropped += 1
            continue

        merged = _to_concert(cid, ev)
        existing = index.get(cid)
        if existing is None:
            legacy_id = next((lid for lid in legacy_concert_ids(ev, source) if lid in all_previous), None)
            legacy = all_previous.get(legacy_id) if legacy_id else None
            if legacy is not None:
                merged.subscribers |= legacy.subscribers
                result.migrated[legacy_id] = cid
                log.info("Migrated %s subscribers from %s to %s", len(legacy.subscribers), legacy_id, cid)
        else:
            merged.subscribers |= existing.subscribers

        # same identity twice in one batch: last fields win, subscribers add up
        dup = seen_fresh.get(cid)
        if dup is not None:
            merged.subscribers |= dup.subscribers
        elif existing is None:
            result.added += 1
        else:
            result.updated += 1
        seen_fresh[cid] = merged
        index[cid] = merged

    result.concerts = sorted((c for c in index.values() if c.date >= now), key=_sort_key)
    expired = len(index) - len(result.concerts)
    log.info(
        "Reconciled: %s concerts (%s added, %s updated, %s expired, %s dropped, %s migrated)",
        len(result.concerts), result.added, result.updated, expired, result.dropped, len(result.migrated),
    )
    return result
