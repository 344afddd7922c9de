"""ORM models for users, classes, work requests and their side-effect records."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column

from credpoints.db.base import GUID, Base, BigIntPK, JSONDocument


def _new_id() -> str:
    return str(uuid.uuid4())


# ---------------------------------------------------------------------------
# Users & classes (owned by the auth/enrollment collaborators)
# ---------------------------------------------------------------------------


class User(Base):
    """Maps to the 'users' table. ``cred_points`` is the ledger balance."""

    __tablename__ = "users"
    __table_args__ = (
        CheckConstraint("role IN ('staff', 'advisor')", name="ck_users_role"),
    )

    id: Mapped[str] = mapped_column(GUID, primary_key=True, default=_new_id)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    email: Mapped[str | None] = mapped_column(String(320), unique=True, nullable=True)
    role: Mapped[str] = mapped_column(String(16), nullable=False)
    cred_points: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    current_class_id: Mapped[str | None] = mapped_column(GUID, nullable=True)
    created_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class ClassRoom(Base):
    """An advisor-owned class that staff members join."""

    __tablename__ = "classes"

    id: Mapped[str] = mapped_column(GUID, primary_key=True, default=_new_id)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    join_code: Mapped[str] = mapped_column(String(16), unique=True, nullable=False)
    advisor_id: Mapped[str] = mapped_column(GUID, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    created_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


# ---------------------------------------------------------------------------
# Work requests
# ---------------------------------------------------------------------------


class WorkRequest(Base):
    """A staff member's claim for points, reviewed by one advisor."""

    __tablename__ = "work_requests"
    __table_args__ = (
        CheckConstraint("requested_points > 0", name="ck_work_requests_points_positive"),
        CheckConstraint(
            "status IN ('pending', 'approved', 'rejected', 'correction')",
            name="ck_work_requests_status",
        ),
        CheckConstraint(
            "(status = 'approved') = (approved_points IS NOT NULL)",
            name="ck_work_requests_approved_points",
        ),
        CheckConstraint(
            "(status = 'pending') = (responded_at IS NULL)",
            name="ck_work_requests_responded_at",
        ),
        Index("ix_work_requests_advisor_status", "advisor_id", "status"),
        Index("ix_work_requests_staff_created", "staff_id", "created_at"),
    )

    id: Mapped[str] = mapped_column(GUID, primary_key=True, default=_new_id)
    staff_id: Mapped[str] = mapped_column(GUID, ForeignKey("users.id"), nullable=False)
    advisor_id: Mapped[str] = mapped_column(GUID, ForeignKey("users.id"), nullable=False)
    class_id: Mapped[str | None] = mapped_column(GUID, ForeignKey("classes.id", ondelete="SET NULL"), nullable=True)
    work_description: Mapped[str] = mapped_column(Text, nullable=False)
    requested_points: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")
    response_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    approved_points: Mapped[int | None] = mapped_column(Integer, nullable=True)
    revision: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    responded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


# ---------------------------------------------------------------------------
# Ledger
# ---------------------------------------------------------------------------


class PointLedgerEntry(Base):
    """Immutable point posting with idempotency key."""

    __tablename__ = "point_ledger"
    __table_args__ = (Index("ix_point_ledger_user_created", "user_id", "created_at"),)

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(GUID, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    source: Mapped[str] = mapped_column(String(32), nullable=False)
    source_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    description: Mapped[str | None] = mapped_column(String(256), nullable=True)
    idempotency_key: Mapped[str | None] = mapped_column(String(256), unique=True, nullable=True)
    created_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


# ---------------------------------------------------------------------------
# Activity log
# ---------------------------------------------------------------------------


class Activity(Base):
    """Append-only audit trail of point- and status-affecting events."""

    __tablename__ = "activities"
    __table_args__ = (
        CheckConstraint("points >= 0", name="ck_activities_points_magnitude"),
        Index("ix_activities_user_created", "user_id", "created_at"),
        Index("ix_activities_request", "related_request_id"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(GUID, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    activity_type: Mapped[str] = mapped_column(String(32), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    related_request_id: Mapped[str | None] = mapped_column(GUID, nullable=True)
    step_key: Mapped[str | None] = mapped_column(String(128), unique=True, nullable=True)
    created_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------


class Notification(Base):
    """Persisted per-user alert about a request transition."""

    __tablename__ = "notifications"
    __table_args__ = (
        Index("ix_notifications_user_read", "user_id", "read"),
        Index("ix_notifications_request", "related_request_id"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(GUID, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    type: Mapped[str] = mapped_column(String(32), nullable=False)
    title: Mapped[str] = mapped_column(String(256), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")
    related_request_id: Mapped[str | None] = mapped_column(GUID, nullable=True)
    request_data: Mapped[dict[str, Any] | None] = mapped_column(JSONDocument, nullable=True)
    dedupe_key: Mapped[str | None] = mapped_column(String(128), unique=True, nullable=True)
    created_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
