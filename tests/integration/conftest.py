import asyncio
from datetime import datetime
from zoneinfo import ZoneInfo

import pytest

from concerts_bot.core.models import Concert
from concerts_bot.storage.sqlite import SqliteStore

BERLIN = ZoneInfo("Europe/Berlin")


@pytest.fixture
def store(tmp_path):
    s = SqliteStore(str(tmp_path / "data" / "concerts.db"))
    asyncio.run(s.init())
    return s


def make_concert(cid, venue="Chemiefabrik", when=None, **kw):
    return Concert(id=cid, title=kw.pop("title", cid), venue=venue,
                   date=when or datetime(2030, 5, 10, 20, 0, tzinfo=BERLIN), **kw)


class FakeTransport:
    """Records deliveries; users in `fail` are refused, users in `explode` raise."""

    def __init__(self, fail=(), explode=()):
        self.sent = []
        self.fail = set(fail)
        self.explode = set(explode)

    async def notify(self, user_id, concert, kind):
        if user_id in self.explode:
            raise ConnectionError("network down")
        if user_id in self.fail:
            return False
        self.sent.append((user_id, concert.id, kind))
        return True
