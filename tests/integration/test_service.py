import asyncio
from datetime import datetime

import pytest

from conftest import BERLIN, FakeTransport, make_concert
from concerts_bot.core.dispatch import NotificationKind
from concerts_bot.core.models import Artist, NormalizedEvent
from concerts_bot.core.service import ConcertService
from concerts_bot.storage.sqlite import SqliteStore

NOW = datetime(2030, 5, 1, 12, 0, tzinfo=BERLIN)


def _event(source, venue, name, day, provider=None, **extra):
    return NormalizedEvent(
        source=source, venue=venue, title=name, event_id_provider=provider,
        date=datetime(2030, 5, day, 20, 0, tzinfo=BERLIN), artists=[Artist(name=name)], **extra,
    )


class FakeFetch:
    def __init__(self, *batches):
        self.batches = list(batches)

    async def __call__(self):
        return self.batches.pop(0) if self.batches else []


def test_refresh_persists_reconciled_concerts(store):
    async def scenario():
        fetch = FakeFetch([
            _event("chemiefabrik", "Chemiefabrik", "Kraftklub", 10),
            _event("junge_garde", "Junge Garde", "Deichkind", 12),
        ])
        result = await ConcertService(store, fetch=fetch).refresh(NOW)
        assert result.added == 2
        assert [c.id for c in await store.load_concerts()] == ["cf-20300510-kraftklub", "jg-20300512-deichkind"]

    asyncio.run(scenario())


def test_favorite_survives_rescrape_and_empty_scrape(store):
    async def scenario():
        await store.add_user("u1")
        fetch = FakeFetch(
            [_event("chemiefabrik", "Chemiefabrik", "Kraftklub", 10, price="20 €")],
            [_event("chemiefabrik", "Chemiefabrik", "Kraftklub", 10, price="25 €")],
            [],
        )
        service = ConcertService(store, fetch=fetch)
        await service.refresh(NOW)
        await store.set_concert_subscription("u1", "cf-20300510-kraftklub", True)

        await service.refresh(NOW)
        concert = await store.get_concert("cf-20300510-kraftklub")
        assert concert.price == "25 €"
        assert concert.subscribers == {"u1"}

        await service.refresh(NOW)
        assert [c.id for c in await store.load_concerts()] == ["cf-20300510-kraftklub"]
        assert (await store.get_user("u1")).subscribed_concerts == {"cf-20300510-kraftklub"}

    asyncio.run(scenario())


def test_unfavorite_is_not_undone_by_refresh(store):
    async def scenario():
        await store.add_user("u1")
        batch = [_event("chemiefabrik", "Chemiefabrik", "Kraftklub", 10)]
        service = ConcertService(store, fetch=FakeFetch(batch, batch))
        await service.refresh(NOW)
        cid = "cf-20300510-kraftklub"
        assert await store.set_concert_subscription("u1", cid, True)
        assert await store.set_concert_subscription("u1", cid, False)
        await service.refresh(NOW)
        assert (await store.get_concert(cid)).subscribers == set()
        assert not await store.is_concert_subscribed("u1", cid)

    asyncio.run(scenario())


def test_refresh_migrates_legacy_favorites(store):
    async def scenario():
        await store.add_user("u1")
        await store.add_user("u2")
        await store.replace_concerts([
            make_concert("junge-garde-7", venue="Junge Garde", when=datetime(2030, 5, 12, 20, 0, tzinfo=BERLIN)),
        ])
        await store.set_concert_subscription("u1", "junge-garde-7", True)
        await store.set_concert_subscription("u2", "junge-garde-7", True)

        fetch = FakeFetch([_event("junge_garde", "Junge Garde", "Deichkind", 12, provider="7")])
        result = await ConcertService(store, fetch=fetch).refresh(NOW)

        new_id = "jg-20300512-deichkind"
        assert result.migrated == {"junge-garde-7": new_id}
        assert [c.id for c in await store.load_concerts()] == [new_id]
        assert (await store.get_concert(new_id)).subscribers == {"u1", "u2"}
        assert (await store.get_user("u1")).subscribed_concerts == {new_id}

    asyncio.run(scenario())


def test_run_cycle_alerts_venue_subscribers(store):
    async def scenario():
        await store.add_user("u1")
        await store.set_venue_subscription("u1", "Junge Garde", True)
        fetch = FakeFetch(
            [_event("junge_garde", "Junge Garde", "Deichkind", 12)],
            [_event("junge_garde", "Junge Garde", "Deichkind", 12)],
        )
        transport = FakeTransport()
        service = ConcertService(store, transport, fetch=fetch)
        await service.run_cycle(NOW)
        await service.run_cycle(NOW)
        assert transport.sent == [("u1", "jg-20300512-deichkind", NotificationKind.NEW_CONCERT)]

    asyncio.run(scenario())


def test_triggers_need_a_transport(store):
    service = ConcertService(store, fetch=FakeFetch())
    with pytest.raises(RuntimeError):
        asyncio.run(service.remind_tomorrow())
    with pytest.raises(RuntimeError):
        asyncio.run(service.notify_new_concerts())


class UnfavoriteDuringRefresh(SqliteStore):
    """Runs a user's unfavorite between the refresh's read and its write."""

    def __init__(self, path, user_id, concert_id):
        super().__init__(path)
        self.user_id = user_id
        self.concert_id = concert_id
        self.changed = None

    async def load_concerts(self):
        previous = await super().load_concerts()
        self.changed = await self.set_concert_subscription(self.user_id, self.concert_id, False)
        return previous


def test_unfavorite_during_refresh_survives(store):
    async def scenario():
        cid = "cf-20300510-kraftklub"
        batch = [_event("chemiefabrik", "Chemiefabrik", "Kraftklub", 10)]
        await ConcertService(store, fetch=FakeFetch(batch)).refresh(NOW)
        await store.add_user("u1")
        await store.set_concert_subscription("u1", cid, True)

        racing = UnfavoriteDuringRefresh(store.path, "u1", cid)
        await ConcertService(racing, fetch=FakeFetch(batch)).refresh(NOW)

        assert racing.changed is True
        assert not await store.is_concert_subscribed("u1", cid)
        assert (await store.get_concert(cid)).subscribers == set()

    asyncio.run(scenario())


def test_refresh_and_favorite_run_concurrently(store):
    async def scenario():
        cid = "cf-20300510-kraftklub"
        batch = [_event("chemiefabrik", "Chemiefabrik", "Kraftklub", 10)]
        service = ConcertService(store, fetch=FakeFetch(batch, batch))
        await service.refresh(NOW)
        await store.add_user("u1")

        await asyncio.gather(service.refresh(NOW), store.set_concert_subscription("u1", cid, True))

        assert await store.is_concert_subscribed("u1", cid)
        assert (await store.get_concert(cid)).subscribers == {"u1"}

    asyncio.run(scenario())
