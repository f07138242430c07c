# concerts_bot/core/sources.py
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Dict, Optional, Pattern


@dataclass(frozen=True)
class SourceConfig:
    """
    Static description of one venue source.

    `prefix` starts every concert id minted for this source.
    `legacy_id_pattern` matches ids produced by an identity scheme that is no
    longer minted; `legacy_id_template` rebuilds such an id from a fresh event
    (fields: date, slug, provider_id) so subscribers can be carried over.
    """
    key: str
    venue: str
    prefix: str
    url: str
    base_url: str = ""
    legacy_id_pattern: Optional[Pattern[str]] = None
    legacy_id_template: Optional[str] = None


SOURCES: Dict[str, SourceConfig] = {
    "chemiefabrik": SourceConfig(
        key="chemiefabrik",
        venue="Chemiefabrik",
        prefix="cf",
        url="https://www.chemiefabrik.info/gigs/",
        legacy_id_pattern=re.compile(r"^chemiefabrik-"),
        legacy_id_template="chemiefabrik-{date:%Y-%m-%d}-{slug}",
    ),
    "alter_schlachthof": SourceConfig(
        key="alter_schlachthof",
        venue="Alter Schlachthof",
        prefix="as",
        url="https://www.alter-schlachthof.de/api/getEvents",
        base_url="https://www.alter-schlachthof.de",
        legacy_id_pattern=re.compile(r"^alter-schlachthof-"),
        legacy_id_template="alter-schlachthof-{provider_id}",
    ),
    "junge_garde": SourceConfig(
        key="junge_garde",
        venue="Junge Garde",
        prefix="jg",
        url="https://www.junge-garde.com/api/getEvents",
        base_url="https://www.junge-garde.com",
        legacy_id_pattern=re.compile(r"^junge-garde-"),
        legacy_id_template="junge-garde-{provider_id}",
    ),
}
