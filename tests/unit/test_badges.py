"""Badge signal and cache tests."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

from credpoints.badges.cache import (
    InMemoryBadgeCounter,
    RedisBadgeCache,
    fresh_badge_counts,
    rebuild_badge_counts,
)
from credpoints.badges.signals import (
    BadgeSignal,
    SignalBus,
    signals_for_correction,
    signals_for_decision,
    signals_for_resubmit,
    signals_for_submit,
)


class TestEmissionTable:

    def test_submit(self):
        assert signals_for_submit("a") == (BadgeSignal("a", "pending", 1),)

    def test_resubmit(self):
        assert signals_for_resubmit("a", "s") == (
            BadgeSignal("a", "pending", 1),
            BadgeSignal("s", "correction", -1),
        )

    def test_decision(self):
        assert signals_for_decision("a") == (BadgeSignal("a", "pending", -1),)

    def test_correction(self):
        assert signals_for_correction("a", "s") == (
            BadgeSignal("a", "pending", -1),
            BadgeSignal("s", "correction", 1),
        )


class TestSignalBus:

    async def test_delivers_to_every_subscriber(self):
        bus = SignalBus()
        first, second = InMemoryBadgeCounter(), InMemoryBadgeCounter()
        bus.subscribe(first)
        bus.subscribe(second)

        await bus.emit(*signals_for_submit("a"))

        assert (await first.get_counts("a"))["pending"] == 1
        assert (await second.get_counts("a"))["pending"] == 1

    async def test_failing_subscriber_does_not_stop_others(self):
        bus = SignalBus()
        broken = AsyncMock(side_effect=RuntimeError("boom"))
        counter = InMemoryBadgeCounter()
        bus.subscribe(broken)
        bus.subscribe(counter)

        await bus.emit(BadgeSignal("a", "pending", 1))

        broken.assert_awaited_once()
        assert (await counter.get_counts("a"))["pending"] == 1

    async def test_unsubscribe(self):
        bus = SignalBus()
        counter = InMemoryBadgeCounter()
        bus.subscribe(counter)
        bus.unsubscribe(counter)
        await bus.emit(BadgeSignal("a", "pending", 1))
        assert (await counter.get_counts("a"))["pending"] == 0


class TestCaches:

    async def test_in_memory_floors_at_zero(self):
        counter = InMemoryBadgeCounter()
        await counter(BadgeSignal("a", "pending", -1))
        assert await counter.get_counts("a") == {"pending": 0, "correction": 0}

    async def test_redis_cache_increments(self):
        redis = AsyncMock()
        cache = RedisBadgeCache(redis)
        await cache(BadgeSignal("a", "correction", -1))
        redis.incrby.assert_awaited_once_with("badge:a:correction", -1)

    async def test_redis_cache_reads_and_floors(self):
        redis = AsyncMock()
        redis.mget.return_value = ["3", "-2"]
        cache = RedisBadgeCache(redis)
        assert await cache.get_counts("a") == {"pending": 3, "correction": 0}
        redis.mget.assert_awaited_once_with(["badge:a:pending", "badge:a:correction"])

    async def test_redis_cache_overwrites(self):
        pipe = MagicMock()
        pipe.execute = AsyncMock()
        redis = MagicMock()
        redis.pipeline.return_value = pipe

        await RedisBadgeCache(redis).set_counts("a", {"pending": 4, "correction": 1})

        pipe.set.assert_any_call("badge:a:pending", 4)
        pipe.set.assert_any_call("badge:a:correction", 1)
        pipe.execute.assert_awaited_once()


class TestRebuild:

    async def test_rebuild_replaces_drifted_counts(self, db_session, campus, lifecycle):
        await lifecycle.submit(campus.staff, "Lab cleanup", 30)
        request = await lifecycle.submit(campus.staff, "Poster design", 15)
        await lifecycle.request_correction(campus.advisor, request.id, "Add photos")

        drifted = InMemoryBadgeCounter()
        await drifted(BadgeSignal(campus.advisor.id, "pending", 7))

        counts = await rebuild_badge_counts(db_session, drifted, campus.advisor.id)
        assert counts == {"pending": 1, "correction": 0}
        assert await drifted.get_counts(campus.advisor.id) == counts
        assert await fresh_badge_counts(db_session, campus.staff.id) == {"pending": 0, "correction": 1}
