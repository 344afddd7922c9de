"""Badge count projections fed by lifecycle signals.

Keys: ``badge:{user_id}:pending`` and ``badge:{user_id}:correction``.
The cache is never authoritative; ``rebuild_badge_counts`` overwrites it
from fresh request counts.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from credpoints.badges.signals import BadgeSignal
from credpoints.requests.query import count_by_status

logger = logging.getLogger(__name__)

COUNTERS = ("pending", "correction")


def _key(user_id: str, counter: str) -> str:
    return f"badge:{user_id}:{counter}"


class RedisBadgeCache:
    """Signal subscriber that keeps counters in Redis."""

    def __init__(self, redis: Any) -> None:
        self.redis = redis

    async def __call__(self, signal: BadgeSignal) -> None:
        await self.redis.incrby(_key(signal.user_id, signal.counter), signal.delta)

    async def get_counts(self, user_id: str) -> dict[str, int]:
        values = await self.redis.mget([_key(user_id, c) for c in COUNTERS])
        return {c: max(0, int(v or 0)) for c, v in zip(COUNTERS, values)}

    async def set_counts(self, user_id: str, counts: dict[str, int]) -> None:
        pipe = self.redis.pipeline()
        for counter in COUNTERS:
            pipe.set(_key(user_id, counter), counts.get(counter, 0))
        await pipe.execute()


class InMemoryBadgeCounter:
    """Process-local projection, used by tests and single-process tools."""

    def __init__(self) -> None:
        self.counts: dict[tuple[str, str], int] = defaultdict(int)

    async def __call__(self, signal: BadgeSignal) -> None:
        self.counts[(signal.user_id, signal.counter)] += signal.delta

    async def get_counts(self, user_id: str) -> dict[str, int]:
        return {c: max(0, self.counts[(user_id, c)]) for c in COUNTERS}

    async def set_counts(self, user_id: str, counts: dict[str, int]) -> None:
        for counter in COUNTERS:
            self.counts[(user_id, counter)] = counts.get(counter, 0)


async def fresh_badge_counts(db: AsyncSession, user_id: str) -> dict[str, int]:
    """Authoritative counts: the advisor's pending queue and the staff's corrections."""
    return {
        "pending": await count_by_status(db, "pending", advisor_id=user_id),
        "correction": await count_by_status(db, "correction", staff_id=user_id),
    }


async def rebuild_badge_counts(
    db: AsyncSession, cache: RedisBadgeCache | InMemoryBadgeCounter, user_id: str
) -> dict[str, int]:
    """Overwrite a user's cached counters from the request tables."""
    counts = await fresh_badge_counts(db, user_id)
    await cache.set_counts(user_id, counts)
    logger.info("Rebuilt badge counts for %s: %s", user_id, counts)
    return counts
