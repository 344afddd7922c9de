"""Side-effect steps fanned out after a request changes status.

Each step is idempotent and keyed by ``{request_id}:{revision}:{status}:{step}``:
the ledger posting's idempotency key, the activity's step key and the
notification's dedupe key. Re-running a step that already completed is a
no-op, which is what lets the repair pass finish interrupted transitions.

Steps per status, in commit order:

    pending     notify
    approved    ledger -> activity -> notify
    rejected    activity -> notify
    correction  activity -> notify
"""

from __future__ import annotations

from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from credpoints.activity import service as activity_service
from credpoints.classes.service import get_user
from credpoints.config import get_settings
from credpoints.db.models import Activity, Notification, WorkRequest
from credpoints.ledger import service as ledger_service
from credpoints.notifications import service as notification_service
from credpoints.requests.state_machine import RequestStatus

LEDGER = "ledger"
ACTIVITY = "activity"
NOTIFY = "notify"

STEPS_BY_STATUS: dict[str, tuple[str, ...]] = {
    RequestStatus.PENDING.value: (NOTIFY,),
    RequestStatus.APPROVED.value: (LEDGER, ACTIVITY, NOTIFY),
    RequestStatus.REJECTED.value: (ACTIVITY, NOTIFY),
    RequestStatus.CORRECTION.value: (ACTIVITY, NOTIFY),
}


def step_key(request: WorkRequest, step: str) -> str:
    return f"{request.id}:{request.revision}:{request.status}:{step}"


def preview(text: str, length: int) -> str:
    """Truncate ``text`` to ``length`` characters with an ellipsis."""
    return text[:length] + ("..." if len(text) > length else "")


def activity_type_for_delta(delta: int) -> str:
    """Ledger direction is sign-driven: non-negative credits, negative debits."""
    return "credit" if delta >= 0 else "debit"


def approval_activity_description(request: WorkRequest, preview_length: int | None = None) -> str:
    """Describe an approval; discloses the requested amount when it was adjusted."""
    if preview_length is None:
        preview_length = get_settings().approval_preview_length
    delta = request.approved_points or 0
    points = abs(delta)
    action = "Earned" if delta >= 0 else "Deducted"
    summary = preview(request.work_description, preview_length)
    if points != request.requested_points:
        return f"{action} {points} points (requested {request.requested_points}) for: {summary}"
    return f"{action} {points} points for: {summary}"


def approval_message(request: WorkRequest) -> str:
    points = request.approved_points or 0
    if points != request.requested_points:
        message = (
            f"Your request has been approved! You received {points} CRED points "
            f"(requested {request.requested_points})."
        )
    else:
        message = f"Your request has been approved! You received {points} CRED points."
    if request.response_message:
        message += f" Note: {request.response_message}"
    return message


# ---------------------------------------------------------------------------
# Steps
# ---------------------------------------------------------------------------


async def apply_ledger_step(db: AsyncSession, request: WorkRequest) -> ledger_service.LedgerPosting:
    """Post the approved points to the staff member's balance."""
    if request.status != RequestStatus.APPROVED.value or request.approved_points is None:
        raise ValueError(f"Request {request.id} has no approved points to post")
    return await ledger_service.post_delta(
        db,
        request.staff_id,
        request.approved_points,
        source="request",
        source_id=request.id,
        description=approval_activity_description(request),
        idempotency_key=step_key(request, LEDGER),
    )


async def apply_activity_step(db: AsyncSession, request: WorkRequest) -> Activity:
    """Append the audit record for the request's current status."""
    preview_length = get_settings().description_preview_length
    key = step_key(request, ACTIVITY)

    if request.status == RequestStatus.APPROVED.value:
        delta = request.approved_points or 0
        return await activity_service.append(
            db, request.staff_id, activity_type_for_delta(delta),
            approval_activity_description(request), abs(delta),
            related_request_id=request.id, step_key=key,
        )
    if request.status == RequestStatus.REJECTED.value:
        return await activity_service.append(
            db, request.staff_id, "request_rejected",
            f"Request rejected: {preview(request.work_description, preview_length)}", 0,
            related_request_id=request.id, step_key=key,
        )
    if request.status == RequestStatus.CORRECTION.value:
        return await activity_service.append(
            db, request.staff_id, "request_correction",
            f"Correction requested: {preview(request.work_description, preview_length)}", 0,
            related_request_id=request.id, step_key=key,
        )
    raise ValueError(f"No activity is recorded for {request.status} requests")


async def apply_notification_step(
    db: AsyncSession, request: WorkRequest, redis: Any | None = None
) -> Notification:
    """Notify whoever acts next: the advisor while pending, the staff member otherwise."""
    key = step_key(request, NOTIFY)
    status = request.status

    if status == RequestStatus.PENDING.value:
        if request.revision > 0:
            return await notification_service.create_notification(
                db, request.advisor_id, "request_submitted",
                title="Request Resubmitted",
                message=f"A corrected request has been resubmitted for {request.requested_points} CRED points",
                related_request_id=request.id,
                request_data={
                    "staff_id": request.staff_id,
                    "work_description": request.work_description,
                    "requested_points": request.requested_points,
                    "is_resubmission": True,
                },
                dedupe_key=key, redis=redis,
            )
        staff = await get_user(db, request.staff_id)
        staff_name = staff.name if staff else "A staff member"
        summary = preview(request.work_description, get_settings().submit_preview_length)
        return await notification_service.create_notification(
            db, request.advisor_id, "request_submitted",
            title="New Work Request",
            message=f"{staff_name} has submitted a new work request: {summary}",
            related_request_id=request.id,
            request_data={
                "staff_id": request.staff_id,
                "work_description": request.work_description,
                "requested_points": request.requested_points,
                "class_id": request.class_id,
            },
            dedupe_key=key, redis=redis,
        )

    request_data = {
        "work_description": request.work_description,
        "requested_points": request.requested_points,
        "approved_points": request.approved_points,
        "response_message": request.response_message,
    }
    if status == RequestStatus.APPROVED.value:
        type_, title, message = "request_approved", "Request Approved", approval_message(request)
    elif status == RequestStatus.REJECTED.value:
        type_, title = "request_rejected", "Request Rejected"
        message = f"Your request has been rejected. {request.response_message or ''}".strip()
    else:
        type_, title = "request_correction", "Request Needs Correction"
        message = f"Your request needs correction. {request.response_message or ''}".strip()

    return await notification_service.create_notification(
        db, request.staff_id, type_, title=title, message=message,
        related_request_id=request.id, request_data=request_data,
        dedupe_key=key, redis=redis,
    )


async def run_step(db: AsyncSession, request: WorkRequest, step: str, redis: Any | None = None) -> None:
    """Run one step by name. Flushes; the caller commits."""
    if step == LEDGER:
        await apply_ledger_step(db, request)
    elif step == ACTIVITY:
        await apply_activity_step(db, request)
    elif step == NOTIFY:
        await apply_notification_step(db, request, redis=redis)
    else:
        raise ValueError(f"Unknown step: {step}")


async def missing_steps(db: AsyncSession, request: WorkRequest) -> list[str]:
    """Steps the request's current status implies but whose records do not exist."""
    missing = []
    for step in STEPS_BY_STATUS[request.status]:
        key = step_key(request, step)
        if step == LEDGER:
            done = await ledger_service.get_entry_by_key(db, key) is not None
        elif step == ACTIVITY:
            done = await activity_service.exists_for_step(db, key)
        else:
            done = await notification_service.get_by_dedupe_key(db, key) is not None
        if not done:
            missing.append(step)
    return missing
