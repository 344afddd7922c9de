"""Class/advisor resolution.

Enrollment itself (join codes, leaving classes) belongs to another service;
the lifecycle only needs to know which advisor reviews a staff member's work.
"""

from __future__ import annotations

from typing import Protocol

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from credpoints.db.models import ClassRoom, User


class AdvisorResolver(Protocol):
    """Resolves the advisor who owns a staff member's class."""

    async def __call__(
        self, db: AsyncSession, staff_id: str, class_id: str | None = None
    ) -> tuple[str, str] | None: ...


async def get_user(db: AsyncSession, user_id: str) -> User | None:
    result = await db.execute(select(User).where(User.id == user_id))
    return result.scalar_one_or_none()


async def get_class(db: AsyncSession, class_id: str) -> ClassRoom | None:
    result = await db.execute(select(ClassRoom).where(ClassRoom.id == class_id))
    return result.scalar_one_or_none()


async def resolve_advisor(
    db: AsyncSession, staff_id: str, class_id: str | None = None
) -> tuple[str, str] | None:
    """Return ``(advisor_id, class_id)`` for the staff member's active class.

    Returns None when the staff member is unknown, has no active class, the
    class does not exist, or ``class_id`` names a class other than the
    active one.
    """
    staff = await get_user(db, staff_id)
    if staff is None or staff.current_class_id is None:
        return None
    if class_id is not None and class_id != staff.current_class_id:
        return None
    class_id = staff.current_class_id

    classroom = await get_class(db, class_id)
    if classroom is None:
        return None
    return classroom.advisor_id, classroom.id
