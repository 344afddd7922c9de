"""Notification creation and delivery service.

Notifications are:
1. Persisted in the database (the durable record)
2. Published on Redis ``ws:user:{user_id}`` for the real-time transport

Types: request_submitted, request_approved, request_rejected, request_correction
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from credpoints.db.models import Notification
from credpoints.exceptions import ValidationError

logger = logging.getLogger(__name__)

VALID_TYPES = {"request_submitted", "request_approved", "request_rejected", "request_correction"}


async def push_notification(redis: Any | None, notification: Notification) -> None:
    """Publish a flushed notification to the recipient's channel."""
    if redis is None:
        return

    payload = {
        "event": "notification",
        "data": {
            "id": str(notification.id),
            "type": notification.type,
            "title": notification.title,
            "message": notification.message,
            "requestId": notification.related_request_id,
            "timestamp": notification.created_at.isoformat() if notification.created_at else None,
            "read": False,
        },
    }
    try:
        await redis.publish(f"ws:user:{notification.user_id}", json.dumps(payload))
    except Exception:
        logger.warning("Failed to push notification via ws:user:%s", notification.user_id, exc_info=True)


async def create_notification(
    db: AsyncSession,
    user_id: str,
    type_: str,
    title: str,
    message: str,
    related_request_id: str | None = None,
    request_data: dict[str, Any] | None = None,
    dedupe_key: str | None = None,
    redis: Any | None = None,
) -> Notification:
    """Create an unread notification. Flushes; the caller commits.

    A repeated ``dedupe_key`` returns the existing notification (the session
    is rolled back in that case) and nothing is published.
    """
    if type_ not in VALID_TYPES:
        raise ValidationError(f"Invalid notification type: {type_}. Must be one of {sorted(VALID_TYPES)}")

    notification = Notification(
        user_id=user_id,
        type=type_,
        title=title,
        message=message,
        read=False,
        related_request_id=related_request_id,
        request_data=request_data,
        dedupe_key=dedupe_key,
        created_at=datetime.now(timezone.utc),
    )
    db.add(notification)
    try:
        await db.flush()
    except IntegrityError:
        if dedupe_key is None:
            raise
        await db.rollback()
        existing = await get_by_dedupe_key(db, dedupe_key)
        if existing is None:
            raise
        return existing

    await push_notification(redis, notification)
    return notification


async def get_by_dedupe_key(db: AsyncSession, dedupe_key: str) -> Notification | None:
    result = await db.execute(select(Notification).where(Notification.dedupe_key == dedupe_key))
    return result.scalar_one_or_none()


async def get_notifications(
    db: AsyncSession,
    user_id: str,
    page: int = 1,
    per_page: int = 20,
) -> tuple[list[Notification], int]:
    """Get user's notifications (paginated, most recent first)."""
    offset = (page - 1) * per_page

    total_result = await db.execute(
        select(func.count()).select_from(Notification).where(Notification.user_id == user_id)
    )
    total = total_result.scalar_one()

    result = await db.execute(
        select(Notification)
        .where(Notification.user_id == user_id)
        .order_by(Notification.created_at.desc(), Notification.id.desc())
        .offset(offset)
        .limit(per_page)
    )
    return list(result.scalars().all()), total


async def mark_as_read(db: AsyncSession, user_id: str, notification_id: int) -> bool:
    """Mark one of the user's notifications read. Returns False if not found.

    Already-read notifications count as found, so repeating the call is a no-op.
    """
    found = await db.execute(
        select(Notification.id).where(
            Notification.id == notification_id, Notification.user_id == user_id
        )
    )
    if found.scalar_one_or_none() is None:
        return False
    await db.execute(
        update(Notification)
        .where(Notification.id == notification_id, Notification.read.is_(False))
        .values(read=True)
    )
    await db.flush()
    return True


async def mark_read_by_request(db: AsyncSession, user_id: str, request_id: str) -> int:
    """Mark every unread notification about a request read. Returns count updated."""
    result = await db.execute(
        update(Notification)
        .where(
            Notification.user_id == user_id,
            Notification.related_request_id == request_id,
            Notification.read.is_(False),
        )
        .values(read=True)
    )
    await db.flush()
    return result.rowcount


async def mark_all_as_read(db: AsyncSession, user_id: str) -> int:
    """Mark all unread notifications as read. Returns count updated."""
    result = await db.execute(
        update(Notification)
        .where(Notification.user_id == user_id, Notification.read.is_(False))
        .values(read=True)
    )
    await db.flush()
    return result.rowcount


async def get_unread_count(db: AsyncSession, user_id: str) -> int:
    """Get count of unread notifications."""
    result = await db.execute(
        select(func.count())
        .select_from(Notification)
        .where(Notification.user_id == user_id, Notification.read.is_(False))
    )
    return result.scalar_one()
