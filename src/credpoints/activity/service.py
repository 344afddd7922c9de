"""Append-only activity log: the durable audit trail of request outcomes."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from credpoints.db.models import Activity
from credpoints.exceptions import ValidationError

logger = logging.getLogger(__name__)

VALID_TYPES = {"credit", "debit", "request_rejected", "request_correction"}


async def append(
    db: AsyncSession,
    user_id: str,
    activity_type: str,
    description: str,
    points: int = 0,
    related_request_id: str | None = None,
    step_key: str | None = None,
) -> Activity:
    """Append an activity record. Flushes; the caller commits.

    With a ``step_key`` the append is idempotent: if a record with that key
    exists (the session is rolled back in that case) it is returned instead.
    """
    if activity_type not in VALID_TYPES:
        raise ValidationError(f"Invalid activity type: {activity_type}")
    if isinstance(points, bool) or not isinstance(points, int) or points < 0:
        raise ValidationError("Activity points must be a non-negative integer")

    activity = Activity(
        user_id=user_id,
        activity_type=activity_type,
        description=description,
        points=points,
        related_request_id=related_request_id,
        step_key=step_key,
        created_at=datetime.now(timezone.utc),
    )
    db.add(activity)
    try:
        await db.flush()
    except IntegrityError:
        if step_key is None:
            raise
        await db.rollback()
        existing = await get_by_step(db, step_key)
        if existing is None:
            raise
        logger.info("Activity step %s already recorded", step_key)
        return existing
    return activity


async def get_by_step(db: AsyncSession, step_key: str) -> Activity | None:
    result = await db.execute(select(Activity).where(Activity.step_key == step_key))
    return result.scalar_one_or_none()


async def exists_for_step(db: AsyncSession, step_key: str) -> bool:
    """True if the side-effect step already produced its activity record."""
    result = await db.execute(select(Activity.id).where(Activity.step_key == step_key))
    return result.scalar_one_or_none() is not None


async def list_for_user(db: AsyncSession, user_id: str, limit: int = 50) -> list[Activity]:
    """A user's activity history, newest first."""
    result = await db.execute(
        select(Activity)
        .where(Activity.user_id == user_id)
        .order_by(Activity.created_at.desc(), Activity.id.desc())
        .limit(limit)
    )
    return list(result.scalars().all())


async def list_for_request(db: AsyncSession, request_id: str) -> list[Activity]:
    """All records referencing a request, newest first."""
    result = await db.execute(
        select(Activity)
        .where(Activity.related_request_id == request_id)
        .order_by(Activity.created_at.desc(), Activity.id.desc())
    )
    return list(result.scalars().all())


async def list_recent(db: AsyncSession, limit: int = 100) -> list[Activity]:
    """Most recent activity across all users."""
    result = await db.execute(
        select(Activity).order_by(Activity.created_at.desc(), Activity.id.desc()).limit(limit)
    )
    return list(result.scalars().all())
