# concerts_bot/core/models.py

from __future__ import annotations

from datetime import datetime
from typing import List, Optional, Set
from zoneinfo import ZoneInfo

from pydantic import BaseModel, ConfigDict, Field, field_validator

from concerts_bot.core.config import settings


def _localize(v: datetime) -> datetime:
    """Naive datetimes are read as wall-clock time of the configured zone."""
    if v.tzinfo is None:
        return v.replace(tzinfo=ZoneInfo(settings.timezone))
    return v


class Artist(BaseModel):
    name: str
    link: Optional[str] = None


class NormalizedEvent(BaseModel):
    """
    Common shape produced by every source adapter.
    Reconciliation only ever sees this model, never raw source payloads.
    """
    source: str                          # key of the SourceConfig, ex: "chemiefabrik"
    event_id_provider: Optional[str] = None
    title: str
    venue: str
    date: Optional[datetime]
    price: Optional[str] = None
    poster_url: Optional[str] = None
    description: Optional[str] = None
    ticket_url: Optional[str] = None
    start_time: Optional[str] = None
    door_time: Optional[str] = None
    artists: List[Artist] = Field(default_factory=list)

    model_config = ConfigDict(extra="allow")

    @field_validator("date")
    @classmethod
    def _aware_date(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _localize(v) if v is not None else None


class Concert(BaseModel):
    id: str
    title: str
    venue: str
    date: datetime
    price: Optional[str] = None
    poster_url: Optional[str] = None
    description: Optional[str] = None
    ticket_url: Optional[str] = None
    start_time: Optional[str] = None
    door_time: Optional[str] = None
    artists: List[Artist] = Field(default_factory=list)

    # derived from the users' favorites when loaded from storage
    subscribers: Set[str] = Field(default_factory=set)

    @field_validator("date")
    @classmethod
    def _aware_date(cls, v: datetime) -> datetime:
        return _localize(v)


class UserProfile(BaseModel):
    username: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None


class User(BaseModel):
    user_id: str
    profile: UserProfile = Field(default_factory=UserProfile)
    created_at: Optional[datetime] = None
    subscribed_concerts: Set[str] = Field(default_factory=set)
    subscribed_venues: Set[str] = Field(default_factory=set)
    notified_concerts: Set[str] = Field(default_factory=set)
