"""Request lifecycle engine: transitions plus their ordered side effects.

Every transition is a compare-and-transition write
(``UPDATE ... WHERE id = ? AND status = ? AND <actor owns it>``) committed on
its own. Once that commit succeeds the transition is in effect; the
downstream steps (ledger, activity, notification) then commit one by one.
If any of them fails the caller gets a DependencyFailure naming the steps
the repair pass still has to run. Badge signals are emitted right after the
status commit, before the steps, so they fire even when a step fails.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from credpoints.auth.jwt import Actor
from credpoints.badges.signals import (
    SignalBus,
    signals_for_correction,
    signals_for_decision,
    signals_for_resubmit,
    signals_for_submit,
)
from credpoints.classes.service import AdvisorResolver, resolve_advisor
from credpoints.db.models import WorkRequest
from credpoints.exceptions import (
    AuthorizationError,
    DependencyFailure,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from credpoints.requests import steps
from credpoints.requests.state_machine import (
    RequestStatus,
    check_request_invariants,
    validate_transition,
)

logger = logging.getLogger(__name__)

# Column naming the only actor allowed to move a request into each state
_OWNER_BY_TARGET = {
    RequestStatus.APPROVED.value: "advisor_id",
    RequestStatus.REJECTED.value: "advisor_id",
    RequestStatus.CORRECTION.value: "advisor_id",
    RequestStatus.PENDING.value: "staff_id",
}


def _require_text(value: Any, field: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field} is required")
    return value.strip()


def _require_points(value: Any, field: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValidationError(f"{field} must be a positive whole number")
    return value


def _optional_text(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None


class RequestLifecycle:
    """Drives work requests through submit, review and resubmission."""

    def __init__(
        self,
        db: AsyncSession,
        redis: Any | None = None,
        signals: SignalBus | None = None,
        resolver: AdvisorResolver = resolve_advisor,
    ) -> None:
        self.db = db
        self.redis = redis
        self.signals = signals or SignalBus()
        self.resolver = resolver

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def submit(
        self,
        actor: Actor,
        work_description: str,
        requested_points: int,
        advisor_id: str | None = None,
        class_id: str | None = None,
    ) -> WorkRequest:
        """Create a pending request and notify the reviewing advisor.

        The request and the advisor's notification are committed together,
        so a returned request always has its notification.
        """
        description = _require_text(work_description, "Work description")
        points = _require_points(requested_points, "Requested points")
        if not actor.is_staff:
            raise AuthorizationError("Only staff members can submit work requests")

        resolved = await self.resolver(self.db, actor.id, class_id)
        if resolved is None:
            raise NotFoundError("No advisor found for your class. Join a class before submitting requests.")
        resolved_advisor, resolved_class = resolved
        if advisor_id is not None and advisor_id != resolved_advisor:
            raise NotFoundError(f"Advisor {advisor_id} does not review class {resolved_class}")

        now = datetime.now(timezone.utc)
        request = WorkRequest(
            staff_id=actor.id,
            advisor_id=resolved_advisor,
            class_id=resolved_class,
            work_description=description,
            requested_points=points,
            status=RequestStatus.PENDING.value,
            revision=0,
            created_at=now,
            updated_at=now,
        )
        check_request_invariants(request)
        self.db.add(request)
        try:
            await self.db.flush()
            await steps.apply_notification_step(self.db, request, redis=self.redis)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info("Request %s submitted by %s for %d points", request.id, actor.id, points)
        await self.signals.emit(*signals_for_submit(request.advisor_id))
        return request

    async def approve(
        self,
        actor: Actor,
        request_id: str,
        approved_points: int,
        message: str | None = None,
    ) -> WorkRequest:
        """Approve a pending request and credit the staff member."""
        points = _require_points(approved_points, "Approved points")
        now = datetime.now(timezone.utc)
        request = await self._transition(
            actor,
            request_id,
            RequestStatus.PENDING.value,
            RequestStatus.APPROVED.value,
            approved_points=points,
            response_message=_optional_text(message),
            responded_at=now,
            updated_at=now,
        )
        if points != request.requested_points:
            logger.info(
                "Request %s approved with adjusted points: %d (requested %d)",
                request.id, points, request.requested_points,
            )
        await self.signals.emit(*signals_for_decision(request.advisor_id))
        await self._fan_out(request)
        return request

    async def reject(self, actor: Actor, request_id: str, reason: str | None = None) -> WorkRequest:
        """Reject a pending request. Terminal; no points move."""
        now = datetime.now(timezone.utc)
        request = await self._transition(
            actor,
            request_id,
            RequestStatus.PENDING.value,
            RequestStatus.REJECTED.value,
            response_message=_optional_text(reason),
            responded_at=now,
            updated_at=now,
        )
        await self.signals.emit(*signals_for_decision(request.advisor_id))
        await self._fan_out(request)
        return request

    async def request_correction(self, actor: Actor, request_id: str, note: str) -> WorkRequest:
        """Send a pending request back to the staff member with a note."""
        note = _require_text(note, "Correction note")
        now = datetime.now(timezone.utc)
        request = await self._transition(
            actor,
            request_id,
            RequestStatus.PENDING.value,
            RequestStatus.CORRECTION.value,
            response_message=note,
            responded_at=now,
            updated_at=now,
        )
        await self.signals.emit(*signals_for_correction(request.advisor_id, request.staff_id))
        await self._fan_out(request)
        return request

    async def resubmit(
        self,
        actor: Actor,
        request_id: str,
        work_description: str,
        requested_points: int,
    ) -> WorkRequest:
        """Return a corrected request to the advisor's queue as a new revision."""
        description = _require_text(work_description, "Work description")
        points = _require_points(requested_points, "Requested points")
        request = await self._transition(
            actor,
            request_id,
            RequestStatus.CORRECTION.value,
            RequestStatus.PENDING.value,
            work_description=description,
            requested_points=points,
            response_message=None,
            responded_at=None,
            revision=WorkRequest.revision + 1,
            updated_at=datetime.now(timezone.utc),
        )
        await self.signals.emit(*signals_for_resubmit(request.advisor_id, request.staff_id))
        await self._fan_out(request)
        return request

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _transition(
        self,
        actor: Actor,
        request_id: str,
        from_status: str,
        to_status: str,
        **values: Any,
    ) -> WorkRequest:
        """Compare-and-transition, then commit. Returns the refreshed request."""
        validate_transition(from_status, to_status)
        owner_field = _OWNER_BY_TARGET[to_status]
        owner_column = getattr(WorkRequest, owner_field)

        result = await self.db.execute(
            update(WorkRequest)
            .where(
                WorkRequest.id == request_id,
                WorkRequest.status == from_status,
                owner_column == actor.id,
            )
            .values(status=to_status, **values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            await self._diagnose_miss(actor, request_id, to_status, owner_field)

        refreshed = await self.db.execute(
            select(WorkRequest)
            .where(WorkRequest.id == request_id)
            .execution_options(populate_existing=True)
        )
        request = refreshed.scalar_one()
        try:
            check_request_invariants(request)
        except ValidationError:
            await self.db.rollback()
            raise
        await self.db.commit()

        logger.info("Request %s moved %s -> %s by %s", request.id, from_status, to_status, actor.id)
        return request

    async def _diagnose_miss(
        self, actor: Actor, request_id: str, to_status: str, owner_field: str
    ) -> None:
        """Explain why a compare-and-transition matched nothing. Always raises."""
        result = await self.db.execute(
            select(WorkRequest)
            .where(WorkRequest.id == request_id)
            .execution_options(populate_existing=True)
        )
        current = result.scalar_one_or_none()
        # The UPDATE matched no rows; committing only ends the transaction
        await self.db.commit()

        if current is None:
            raise NotFoundError(f"Request {request_id} not found")
        if getattr(current, owner_field) != actor.id:
            who = "assigned advisor" if owner_field == "advisor_id" else "submitting staff member"
            raise AuthorizationError(f"Only the {who} can do this")
        validate_transition(current.status, to_status)
        # Status matched at read time, so another writer got there first
        raise InvalidStateError(
            f"Request {request_id} was changed by someone else; refresh and try again",
            current_status=current.status,
        )

    async def _fan_out(self, request: WorkRequest) -> None:
        """Run the status's steps in order, one commit each.

        Activity is skipped when the ledger step failed so the audit trail
        never claims points that were not posted; the notification is
        still attempted.
        """
        request_id = request.id
        failed: list[str] = []
        for step in steps.STEPS_BY_STATUS[request.status]:
            if step == steps.ACTIVITY and steps.LEDGER in failed:
                failed.append(step)
                continue
            try:
                # A rolled-back step expires the instance; reload before use
                await self.db.refresh(request)
                await steps.run_step(self.db, request, step, redis=self.redis)
                await self.db.commit()
            except Exception:
                logger.error("Step %s failed for request %s", step, request_id, exc_info=True)
                await self._rollback_quietly()
                failed.append(step)

        if failed:
            raise DependencyFailure(
                f"Request {request_id} was updated, but some follow-up records are delayed: "
                f"{', '.join(failed)}",
                request_id=request_id,
                pending_steps=failed,
            )

    async def _rollback_quietly(self) -> None:
        try:
            await self.db.rollback()
        except Exception:
            logger.warning("Rollback failed after step error", exc_info=True)
