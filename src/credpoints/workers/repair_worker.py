"""Repair arq worker: completes transitions whose follow-up records are missing.

Runs ``repair_side_effects`` every ``repair_interval_minutes``. Safe to run
alongside the API; every step it re-runs is idempotent.
"""

from __future__ import annotations

import logging

import redis.asyncio as aioredis
from arq import cron

from credpoints.config import get_settings
from credpoints.database import close_db, get_session_factory, init_db
from credpoints.requests.repair import repair_all

logger = logging.getLogger(__name__)


async def repair_side_effects(ctx: dict) -> dict[str, int]:
    """Find requests with missing ledger/activity/notification records and fill them in."""
    settings = get_settings()
    async with get_session_factory()() as db:
        report = await repair_all(db, redis=ctx.get("redis"), limit=settings.repair_batch_size)

    if report.found:
        logger.info(
            "Repair pass: %d anomalies, %d repaired, %d failed",
            report.found, len(report.repaired), len(report.failed),
        )
    return {"found": report.found, "repaired": len(report.repaired), "failed": len(report.failed)}


async def repair_startup(ctx: dict) -> None:
    """Initialize Redis + DB connections on worker startup."""
    settings = get_settings()
    await init_db(settings.database_url)
    ctx["redis"] = aioredis.from_url(
        settings.redis_url,
        encoding="utf-8",
        decode_responses=True,
        max_connections=10,
    )
    logger.info("Repair worker started")


async def repair_shutdown(ctx: dict) -> None:
    """Clean up on worker shutdown."""
    redis_client = ctx.get("redis")
    if redis_client:
        await redis_client.aclose()
    await close_db()
    logger.info("Repair worker shut down")


def _every(minutes: int) -> set[int]:
    return set(range(0, 60, max(1, min(minutes, 60))))


class RepairWorkerSettings:
    """arq worker settings for the repair pass."""

    functions = [repair_side_effects]
    cron_jobs = [
        cron(repair_side_effects, minute=_every(get_settings().repair_interval_minutes), run_at_startup=True),
    ]
    on_startup = repair_startup
    on_shutdown = repair_shutdown
    max_jobs = 1
    job_timeout = 300
