"""Read-side queries and statistics over work requests."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone

from sqlalchemy import Select, case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from credpoints.db.models import WorkRequest
from credpoints.exceptions import NotFoundError


@dataclass(frozen=True)
class RequestFilter:
    staff_id: str | None = None
    advisor_id: str | None = None
    class_id: str | None = None
    status: str | None = None
    date_from: date | None = None
    date_to: date | None = None


@dataclass(frozen=True)
class RequestStats:
    total: int
    pending: int
    approved: int
    rejected: int
    correction: int
    total_points_requested: int
    total_points_approved: int


def _day_start(day: date) -> datetime:
    return datetime.combine(day, time.min, tzinfo=timezone.utc)


def _apply_date_range(stmt: Select, date_from: date | None, date_to: date | None) -> Select:
    """``date_from`` inclusive; ``date_to`` covers its whole calendar day."""
    if date_from is not None:
        stmt = stmt.where(WorkRequest.created_at >= _day_start(date_from))
    if date_to is not None:
        stmt = stmt.where(WorkRequest.created_at < _day_start(date_to + timedelta(days=1)))
    return stmt


async def get_request(db: AsyncSession, request_id: str) -> WorkRequest:
    """Get a request by id. Raises NotFoundError."""
    result = await db.execute(select(WorkRequest).where(WorkRequest.id == request_id))
    request = result.scalar_one_or_none()
    if request is None:
        raise NotFoundError(f"Request {request_id} not found")
    return request


async def filter_requests(db: AsyncSession, criteria: RequestFilter) -> list[WorkRequest]:
    """Requests matching every given criterion, newest first."""
    stmt = select(WorkRequest)
    if criteria.staff_id:
        stmt = stmt.where(WorkRequest.staff_id == criteria.staff_id)
    if criteria.advisor_id:
        stmt = stmt.where(WorkRequest.advisor_id == criteria.advisor_id)
    if criteria.class_id:
        stmt = stmt.where(WorkRequest.class_id == criteria.class_id)
    if criteria.status:
        stmt = stmt.where(WorkRequest.status == criteria.status)
    stmt = _apply_date_range(stmt, criteria.date_from, criteria.date_to)

    result = await db.execute(stmt.order_by(WorkRequest.created_at.desc()))
    return list(result.scalars().all())


async def list_for_staff(db: AsyncSession, staff_id: str) -> list[WorkRequest]:
    return await filter_requests(db, RequestFilter(staff_id=staff_id))


async def list_pending_for_advisor(db: AsyncSession, advisor_id: str) -> list[WorkRequest]:
    return await filter_requests(db, RequestFilter(advisor_id=advisor_id, status="pending"))


async def list_all_for_advisor(db: AsyncSession, advisor_id: str) -> list[WorkRequest]:
    return await filter_requests(db, RequestFilter(advisor_id=advisor_id))


async def count_by_status(
    db: AsyncSession,
    status: str,
    *,
    staff_id: str | None = None,
    advisor_id: str | None = None,
) -> int:
    stmt = select(func.count()).select_from(WorkRequest).where(WorkRequest.status == status)
    if staff_id:
        stmt = stmt.where(WorkRequest.staff_id == staff_id)
    if advisor_id:
        stmt = stmt.where(WorkRequest.advisor_id == advisor_id)
    result = await db.execute(stmt)
    return result.scalar_one()


async def stats_for_staff(
    db: AsyncSession,
    staff_id: str,
    date_from: date | None = None,
    date_to: date | None = None,
) -> RequestStats:
    """Counts per status plus requested vs. approved point totals."""
    approved_points = case(
        (WorkRequest.status == "approved", func.coalesce(WorkRequest.approved_points, 0)),
        else_=0,
    )
    stmt = (
        select(
            WorkRequest.status,
            func.count(),
            func.coalesce(func.sum(WorkRequest.requested_points), 0),
            func.coalesce(func.sum(approved_points), 0),
        )
        .where(WorkRequest.staff_id == staff_id)
        .group_by(WorkRequest.status)
    )
    stmt = _apply_date_range(stmt, date_from, date_to)
    result = await db.execute(stmt)

    counts = {"pending": 0, "approved": 0, "rejected": 0, "correction": 0}
    requested = approved = 0
    for status, count, requested_sum, approved_sum in result.all():
        counts[status] = count
        requested += int(requested_sum)
        approved += int(approved_sum)

    return RequestStats(
        total=sum(counts.values()),
        pending=counts["pending"],
        approved=counts["approved"],
        rejected=counts["rejected"],
        correction=counts["correction"],
        total_points_requested=requested,
        total_points_approved=approved,
    )
