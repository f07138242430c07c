# concerts_bot/storage/sqlite.py
"""
SQLite persistence for concerts and users.

Set-valued user fields (favorite concerts, subscribed venues, notified
concerts) are one row per member in their own table, so every mutation is a
single INSERT OR IGNORE / DELETE and never rewrites a whole list.
Concert.subscribers is not stored: it is read back from user_concerts.
"""
from __future__ import annotations

import json
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import AsyncIterator, Dict, Iterable, List, Mapping, Optional, Sequence, Set

import aiosqlite

from concerts_bot.core.errors import UnknownUserError
from concerts_bot.core.models import Artist, Concert, User, UserProfile

log = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS users (
    user_id TEXT PRIMARY KEY,
    username TEXT,
    first_name TEXT,
    last_name TEXT,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS concerts (
    id TEXT PRIMARY KEY,
    title TEXT NOT NULL,
    venue TEXT NOT NULL,
    date TEXT NOT NULL,
    price TEXT,
    poster_url TEXT,
    description TEXT,
    ticket_url TEXT,
    start_time TEXT,
    door_time TEXT,
    artists TEXT NOT NULL DEFAULT '[]'
);
CREATE INDEX IF NOT EXISTS idx_concerts_date ON concerts(date);
CREATE INDEX IF NOT EXISTS idx_concerts_venue ON concerts(venue);

CREATE TABLE IF NOT EXISTS user_concerts (
    user_id TEXT NOT NULL,
    concert_id TEXT NOT NULL,
    PRIMARY KEY (user_id, concert_id)
);
CREATE INDEX IF NOT EXISTS idx_user_concerts_concert ON user_concerts(concert_id);

CREATE TABLE IF NOT EXISTS user_venues (
    user_id TEXT NOT NULL,
    venue TEXT NOT NULL,
    PRIMARY KEY (user_id, venue)
);
CREATE INDEX IF NOT EXISTS idx_user_venues_venue ON user_venues(venue);

CREATE TABLE IF NOT EXISTS notified_concerts (
    user_id TEXT NOT NULL,
    concert_id TEXT NOT NULL,
    notified_at TEXT NOT NULL,
    PRIMARY KEY (user_id, concert_id)
);
"""

_CONCERT_COLUMNS = (
    "id", "title", "venue", "date", "price", "poster_url", "description",
    "ticket_url", "start_time", "door_time", "artists",
)


def _ts(v: datetime) -> str:
    # fixed-width UTC so that text comparison in SQL orders like time
    return v.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _parse_ts(v: str) -> datetime:
    return datetime.strptime(v, "%Y-%m-%dT%H:%M:%SZ").replace(tzinfo=timezone.utc)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _concert_params(c: Concert) -> tuple:
    return (
        c.id, c.title, c.venue, _ts(c.date), c.price, c.poster_url, c.description,
        c.ticket_url, c.start_time, c.door_time,
        json.dumps([a.model_dump() for a in c.artists], ensure_ascii=False),
    )


def _row_to_concert(row: aiosqlite.Row, subscribers: Optional[Set[str]] = None) -> Concert:
    return Concert(
        id=row["id"],
        title=row["title"],
        venue=row["venue"],
        date=_parse_ts(row["date"]),
        price=row["price"],
        poster_url=row["poster_url"],
        description=row["description"],
        ticket_url=row["ticket_url"],
        start_time=row["start_time"],
        door_time=row["door_time"],
        artists=[Artist(**a) for a in json.loads(row["artists"] or "[]")],
        subscribers=subscribers or set(),
    )


class SqliteStore:
    """
    Subscription store and concert repository on one SQLite file.

    Each call opens its own connection, so concurrent coroutines never share a
    transaction; SQLite serializes the writers.
    """

    def __init__(self, path: str, timeout: float = 30.0):
        self.path = path
        self.timeout = timeout

    @asynccontextmanager
    async def _connect(self) -> AsyncIterator[aiosqlite.Connection]:
        async with aiosqlite.connect(self.path, timeout=self.timeout) as conn:
            conn.row_factory = aiosqlite.Row
            yield conn

    async def init(self) -> None:
        if self.path != ":memory:":
            Path(self.path).parent.mkdir(parents=True, exist_ok=True)
        async with self._connect() as conn:
            await conn.executescript(SCHEMA)
            await conn.commit()
        log.info("Database initialized at %s", self.path)

    # ------------------------------ users ------------------------------

    async def add_user(self, user_id: str, profile: Optional[UserProfile] = None) -> bool:
        """Insert the user once; later calls leave the stored profile untouched."""
        profile = profile or UserProfile()
        async with self._connect() as conn:
            cur = await conn.execute(
                """INSERT OR IGNORE INTO users (user_id, username, first_name, last_name, created_at)
                   VALUES (?, ?, ?, ?, ?)""",
                (str(user_id), profile.username, profile.first_name, profile.last_name, _ts(_now())),
            )
            await conn.commit()
            created = cur.rowcount == 1
        if created:
            log.info("New user %s (%s)", user_id, profile.username)
        return created

    async def get_user(self, user_id: str) -> Optional[User]:
        async with self._connect() as conn:
            users = await self._users(conn, "WHERE user_id = ?", (str(user_id),))
        return users[0] if users else None

    async def all_users(self) -> List[User]:
        async with self._connect() as conn:
            return await self._users(conn, "", ())

    async def _users(self, conn: aiosqlite.Connection, where: str, params: Sequence) -> List[User]:
        cur = await conn.execute(f"SELECT * FROM users {where} ORDER BY user_id", params)
        rows = await cur.fetchall()
        if not rows:
            return []
        ids = [r["user_id"] for r in rows]
        marks = ",".join("?" * len(ids))

        async def _sets(sql: str) -> Dict[str, Set[str]]:
            out: Dict[str, Set[str]] = {uid: set() for uid in ids}
            c = await conn.execute(sql.format(marks=marks), ids)
            for uid, value in await c.fetchall():
                out[uid].add(value)
            return out

        concerts = await _sets("SELECT user_id, concert_id FROM user_concerts WHERE user_id IN ({marks})")
        venues = await _sets("SELECT user_id, venue FROM user_venues WHERE user_id IN ({marks})")
        notified = await _sets("SELECT user_id, concert_id FROM notified_concerts WHERE user_id IN ({marks})")
        return [
            User(
                user_id=r["user_id"],
                profile=UserProfile(username=r["username"], first_name=r["first_name"], last_name=r["last_name"]),
                created_at=_parse_ts(r["created_at"]),
                subscribed_concerts=concerts[r["user_id"]],
                subscribed_venues=venues[r["user_id"]],
                notified_concerts=notified[r["user_id"]],
            )
            for r in rows
        ]

    @staticmethod
    async def _require_user(conn: aiosqlite.Connection, user_id: str) -> None:
        cur = await conn.execute("SELECT 1 FROM users WHERE user_id = ?", (user_id,))
        if await cur.fetchone() is None:
            raise UnknownUserError(user_id)

    async def _set_member(self, table: str, column: str, user_id: str, value: str, member: bool) -> bool:
        user_id = str(user_id)
        async with self._connect() as conn:
            await self._require_user(conn, user_id)
            if member:
                cur = await conn.execute(
                    f"INSERT OR IGNORE INTO {table} (user_id, {column}) VALUES (?, ?)", (user_id, value)
                )
            else:
                cur = await conn.execute(
                    f"DELETE FROM {table} WHERE user_id = ? AND {column} = ?", (user_id, value)
                )
            await conn.commit()
            return cur.rowcount > 0

    async def _is_member(self, table: str, column: str, user_id: str, value: str) -> bool:
        async with self._connect() as conn:
            cur = await conn.execute(
                f"SELECT 1 FROM {table} WHERE user_id = ? AND {column} = ?", (str(user_id), value)
            )
            return await cur.fetchone() is not None

    # -------------------------- subscriptions --------------------------

    async def set_concert_subscription(self, user_id: str, concert_id: str, subscribed: bool) -> bool:
        """Favorite / unfavorite; True only when the stored state changed."""
        return await self._set_member("user_concerts", "concert_id", user_id, concert_id, subscribed)

    async def set_venue_subscription(self, user_id: str, venue: str, subscribed: bool) -> bool:
        return await self._set_member("user_venues", "venue", user_id, venue, subscribed)

    async def is_concert_subscribed(self, user_id: str, concert_id: str) -> bool:
        return await self._is_member("user_concerts", "concert_id", user_id, concert_id)

    async def is_venue_subscribed(self, user_id: str, venue: str) -> bool:
        return await self._is_member("user_venues", "venue", user_id, venue)

    async def users_subscribed_to_venue(self, venue: str) -> List[User]:
        async with self._connect() as conn:
            return await self._users(
                conn, "WHERE user_id IN (SELECT user_id FROM user_venues WHERE venue = ?)", (venue,)
            )

    async def users_subscribed_to_concert(self, concert_id: str) -> List[User]:
        async with self._connect() as conn:
            return await self._users(
                conn, "WHERE user_id IN (SELECT user_id FROM user_concerts WHERE concert_id = ?)", (concert_id,)
            )

    async def mark_notified(self, user_id: str, concert_id: str) -> bool:
        user_id = str(user_id)
        async with self._connect() as conn:
            await self._require_user(conn, user_id)
            cur = await conn.execute(
                "INSERT OR IGNORE INTO notified_concerts (user_id, concert_id, notified_at) VALUES (?, ?, ?)",
                (user_id, concert_id, _ts(_now())),
            )
            await conn.commit()
            return cur.rowcount > 0

    async def was_notified(self, user_id: str, concert_id: str) -> bool:
        return await self._is_member("notified_concerts", "concert_id", user_id, concert_id)

    # ----------------------------- concerts -----------------------------

    async def _subscribers(self, conn: aiosqlite.Connection) -> Dict[str, Set[str]]:
        out: Dict[str, Set[str]] = {}
        cur = await conn.execute(
            """SELECT uc.concert_id, uc.user_id FROM user_concerts uc
               JOIN users u ON u.user_id = uc.user_id"""
        )
        for concert_id, user_id in await cur.fetchall():
            out.setdefault(concert_id, set()).add(user_id)
        return out

    async def _concerts(self, where: str = "", params: Sequence = (), limit: Optional[int] = None) -> List[Concert]:
        sql = f"SELECT * FROM concerts {where} ORDER BY date, id"
        if limit is not None:
            sql += " LIMIT ?"
            params = (*params, limit)
        async with self._connect() as conn:
            subs = await self._subscribers(conn)
            cur = await conn.execute(sql, params)
            rows = await cur.fetchall()
        return [_row_to_concert(r, subs.get(r["id"])) for r in rows]

    async def load_concerts(self) -> List[Concert]:
        """Every stored concert, with subscribers, ordered by date."""
        return await self._concerts()

    async def get_concert(self, concert_id: str) -> Optional[Concert]:
        found = await self._concerts("WHERE id = ?", (concert_id,))
        return found[0] if found else None

    async def upcoming_concerts(self, now: Optional[datetime] = None, limit: Optional[int] = None) -> List[Concert]:
        return await self._concerts("WHERE date >= ?", (_ts(now or _now()),), limit)

    async def concerts_by_venue(
        self, venue: str, now: Optional[datetime] = None, until: Optional[datetime] = None
    ) -> List[Concert]:
        if until is None:
            return await self._concerts("WHERE venue = ? AND date >= ?", (venue, _ts(now or _now())))
        return await self._concerts(
            "WHERE venue = ? AND date >= ? AND date <= ?", (venue, _ts(now or _now()), _ts(until))
        )

    async def favorite_concerts(self, user_id: str, now: Optional[datetime] = None) -> List[Concert]:
        return await self._concerts(
            "WHERE date >= ? AND id IN (SELECT concert_id FROM user_concerts WHERE user_id = ?)",
            (_ts(now or _now()), str(user_id)),
        )

    async def venues(self, now: Optional[datetime] = None) -> List[str]:
        async with self._connect() as conn:
            cur = await conn.execute(
                "SELECT DISTINCT venue FROM concerts WHERE date >= ? ORDER BY venue", (_ts(now or _now()),)
            )
            return [r[0] for r in await cur.fetchall()]

    async def replace_concerts(self, concerts: Iterable[Concert], migrated: Optional[Mapping[str, str]] = None) -> None:
        """
        Swap in the canonical concert set of a cycle, in one transaction.

        Migrated ids are rewritten in favorites and notified marks; notified
        marks of concerts that left the set are dropped. Subscribers carried on
        the Concert objects are not written back: favorites stay the only
        record of who subscribed to what.
        """
        concerts = list(concerts)
        migrated = dict(migrated or {})
        async with self._connect() as conn:
            try:
                await conn.execute("BEGIN IMMEDIATE")
                for old_id, new_id in migrated.items():
                    for table in ("user_concerts", "notified_concerts"):
                        await conn.execute(
                            f"UPDATE OR IGNORE {table} SET concert_id = ? WHERE concert_id = ?", (new_id, old_id)
                        )
                        await conn.execute(f"DELETE FROM {table} WHERE concert_id = ?", (old_id,))
                await conn.execute("DELETE FROM concerts")
                await conn.executemany(
                    f"INSERT INTO concerts ({', '.join(_CONCERT_COLUMNS)}) "
                    f"VALUES ({', '.join('?' * len(_CONCERT_COLUMNS))})",
                    [_concert_params(c) for c in concerts],
                )
                await conn.execute(
                    "DELETE FROM notified_concerts WHERE concert_id NOT IN (SELECT id FROM concerts)"
                )
                await conn.commit()
            except BaseException:
                await conn.rollback()
                raise
        log.info("Stored %s concerts (%s migrated ids)", len(concerts), len(migrated))
