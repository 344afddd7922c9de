"""Repair pass for transitions whose follow-up steps never committed.

A request's status says which records must exist for its current revision
(see ``steps.STEPS_BY_STATUS``). Anything missing is re-run through the same
idempotent step functions the lifecycle uses, so running the pass twice, or
while the lifecycle is still finishing a transition, is harmless.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import String, and_, cast, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from credpoints.db.models import Activity, Notification, PointLedgerEntry, WorkRequest
from credpoints.requests import steps
from credpoints.requests.query import get_request

logger = logging.getLogger(__name__)


@dataclass
class RepairReport:
    """Outcome of one repair run."""

    found: int = 0
    repaired: dict[str, list[str]] = field(default_factory=dict)
    failed: dict[str, list[str]] = field(default_factory=dict)


_KEY_COLUMNS = {
    steps.LEDGER: PointLedgerEntry.idempotency_key,
    steps.ACTIVITY: Activity.step_key,
    steps.NOTIFY: Notification.dedupe_key,
}


def _missing_step_clause():
    """SQL twin of ``steps.missing_steps``: some record for the current revision is absent."""
    prefix = (
        cast(WorkRequest.id, String) + ":"
        + cast(WorkRequest.revision, String) + ":"
        + WorkRequest.status + ":"
    )
    by_status = []
    for status, names in steps.STEPS_BY_STATUS.items():
        absent = [
            ~select(_KEY_COLUMNS[step]).where(_KEY_COLUMNS[step] == prefix + step).exists()
            for step in names
        ]
        by_status.append(and_(WorkRequest.status == status, or_(*absent)))
    return or_(*by_status)


async def find_anomalies(db: AsyncSession, limit: int = 200) -> list[tuple[str, list[str]]]:
    """Requests with missing step records, longest-waiting first.

    Only broken requests are selected, so ``limit`` bounds the work per run
    and never hides an old anomaly behind newer healthy requests.
    Returns ``(request_id, missing_steps)`` pairs.
    """
    result = await db.execute(
        select(WorkRequest)
        .where(_missing_step_clause())
        .order_by(WorkRequest.updated_at.asc())
        .limit(limit)
    )
    anomalies = []
    for request in result.scalars().all():
        missing = await steps.missing_steps(db, request)
        if missing:
            anomalies.append((request.id, missing))
    return anomalies


async def repair_request(db: AsyncSession, request_id: str, redis: Any | None = None) -> list[str]:
    """Run the missing steps for one request, committing each.

    Returns the steps that were repaired. Step errors propagate after the
    session is rolled back; steps that already ran stay committed.
    """
    request = await get_request(db, request_id)
    missing = await steps.missing_steps(db, request)
    repaired = []
    for step in missing:
        await db.refresh(request)
        try:
            await steps.run_step(db, request, step, redis=redis)
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        repaired.append(step)

    if repaired:
        logger.info("Repaired request %s: %s", request_id, ", ".join(repaired))
    return repaired


async def repair_all(db: AsyncSession, redis: Any | None = None, limit: int = 200) -> RepairReport:
    """Find and repair anomalies; one request's failure does not stop the rest."""
    report = RepairReport()
    anomalies = await find_anomalies(db, limit=limit)
    report.found = len(anomalies)

    for request_id, missing in anomalies:
        try:
            report.repaired[request_id] = await repair_request(db, request_id, redis=redis)
        except Exception:
            logger.error("Repair failed for request %s (missing %s)", request_id, missing, exc_info=True)
            report.failed[request_id] = missing

    return report
