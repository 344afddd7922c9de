"""Point ledger: per-user balances with an idempotent posting journal.

A posting does two writes in one transaction:
1. Atomically accumulate ``users.cred_points`` (``SET x = x + delta``)
2. Insert the journal row into ``point_ledger``

The balance update runs first so the transaction takes its write lock
before reading anything. A duplicate ``idempotency_key`` rolls the whole
transaction back, so the balance is never bumped twice for one key.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from credpoints.db.models import PointLedgerEntry, User
from credpoints.exceptions import NotFoundError, ValidationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LedgerPosting:
    """Result of a posting. ``applied`` is False when the key was already used."""

    balance: int
    applied: bool


def _require_amount(amount: object) -> int:
    if isinstance(amount, bool) or not isinstance(amount, int) or amount < 0:
        raise ValidationError("Amount must be a non-negative integer")
    return amount


async def post_delta(
    db: AsyncSession,
    user_id: str,
    delta: int,
    *,
    source: str = "request",
    source_id: str | None = None,
    description: str | None = None,
    idempotency_key: str | None = None,
) -> LedgerPosting:
    """Apply a signed point delta. Flushes; the caller commits.

    Raises NotFoundError for unknown users. On a duplicate idempotency key
    the session is rolled back and the current balance is returned.
    """
    result = await db.execute(
        update(User)
        .where(User.id == user_id)
        .values(cred_points=User.cred_points + delta)
        .returning(User.cred_points)
        .execution_options(synchronize_session=False)
    )
    balance = result.scalar_one_or_none()
    if balance is None:
        await db.rollback()
        raise NotFoundError(f"User {user_id} not found")

    if idempotency_key is not None:
        existing = await db.execute(
            select(PointLedgerEntry.id).where(PointLedgerEntry.idempotency_key == idempotency_key)
        )
        if existing.scalar_one_or_none() is not None:
            await db.rollback()
            logger.info("Ledger posting %s already applied", idempotency_key)
            return LedgerPosting(balance=await get_balance(db, user_id), applied=False)

    db.add(PointLedgerEntry(
        user_id=user_id,
        amount=delta,
        source=source,
        source_id=source_id,
        description=description[:256] if description else None,
        idempotency_key=idempotency_key,
        created_at=datetime.now(timezone.utc),
    ))
    try:
        await db.flush()
    except IntegrityError:
        # Lost a race on the same idempotency key
        await db.rollback()
        logger.info("Ledger posting %s applied concurrently", idempotency_key)
        return LedgerPosting(balance=await get_balance(db, user_id), applied=False)

    return LedgerPosting(balance=balance, applied=True)


async def credit(
    db: AsyncSession,
    user_id: str,
    amount: int,
    *,
    source: str = "manual",
    source_id: str | None = None,
    description: str | None = None,
    idempotency_key: str | None = None,
) -> int:
    """Add ``amount`` points and return the new balance."""
    posting = await post_delta(
        db, user_id, _require_amount(amount),
        source=source, source_id=source_id,
        description=description, idempotency_key=idempotency_key,
    )
    return posting.balance


async def debit(
    db: AsyncSession,
    user_id: str,
    amount: int,
    *,
    source: str = "manual",
    source_id: str | None = None,
    description: str | None = None,
    idempotency_key: str | None = None,
) -> int:
    """Remove ``amount`` points and return the new balance."""
    posting = await post_delta(
        db, user_id, -_require_amount(amount),
        source=source, source_id=source_id,
        description=description, idempotency_key=idempotency_key,
    )
    return posting.balance


async def get_balance(db: AsyncSession, user_id: str) -> int:
    """Current balance; 0 for unknown users."""
    result = await db.execute(select(User.cred_points).where(User.id == user_id))
    return result.scalar_one_or_none() or 0


async def get_entry_by_key(db: AsyncSession, idempotency_key: str) -> PointLedgerEntry | None:
    """Look up a posting by its idempotency key."""
    result = await db.execute(
        select(PointLedgerEntry).where(PointLedgerEntry.idempotency_key == idempotency_key)
    )
    return result.scalar_one_or_none()


async def list_entries(db: AsyncSession, user_id: str, limit: int = 50) -> list[PointLedgerEntry]:
    """Ledger history for a user, newest first."""
    result = await db.execute(
        select(PointLedgerEntry)
        .where(PointLedgerEntry.user_id == user_id)
        .order_by(PointLedgerEntry.created_at.desc(), PointLedgerEntry.id.desc())
        .limit(limit)
    )
    return list(result.scalars().all())
