"""Work request API endpoints: submit, review, resubmit and queries."""

from __future__ import annotations

from dataclasses import asdict
from datetime import date

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from credpoints.activity.service import list_for_request
from credpoints.auth.dependencies import get_current_actor, get_current_advisor
from credpoints.auth.jwt import Actor
from credpoints.database import get_session
from credpoints.db.models import WorkRequest
from credpoints.dependencies import get_lifecycle
from credpoints.exceptions import AuthorizationError, ValidationError
from credpoints.requests.lifecycle import RequestLifecycle
from credpoints.requests.query import (
    RequestFilter,
    filter_requests,
    get_request,
    list_all_for_advisor,
    list_for_staff,
    list_pending_for_advisor,
    stats_for_staff,
)
from credpoints.requests.schemas import (
    ActivityListResponse,
    ActivityResponse,
    ApproveBody,
    CorrectionBody,
    RejectBody,
    RequestStatsResponse,
    ResubmitBody,
    SubmitRequestBody,
    WorkRequestListResponse,
    WorkRequestResponse,
)
from credpoints.requests.state_machine import RequestStatus

router = APIRouter(prefix="/api/v1", tags=["Requests"])


def _list_response(requests: list[WorkRequest]) -> WorkRequestListResponse:
    return WorkRequestListResponse(
        requests=[WorkRequestResponse.model_validate(r) for r in requests],
        total=len(requests),
    )


def _ensure_visible(actor: Actor, request: WorkRequest) -> None:
    if actor.id not in (request.staff_id, request.advisor_id):
        raise AuthorizationError("You can only view your own requests")


# ── Submit & queries ──


@router.post("/requests", response_model=WorkRequestResponse, status_code=201)
async def submit_request(
    body: SubmitRequestBody,
    actor: Actor = Depends(get_current_actor),
    lifecycle: RequestLifecycle = Depends(get_lifecycle),
):
    """Submit a work request to the advisor of the caller's class."""
    request = await lifecycle.submit(
        actor,
        body.work_description,
        body.requested_points,
        advisor_id=body.advisor_id,
        class_id=body.class_id,
    )
    return WorkRequestResponse.model_validate(request)


@router.get("/requests", response_model=WorkRequestListResponse)
async def search_requests(
    status: RequestStatus | None = Query(None),
    class_id: str | None = Query(None),
    date_from: date | None = Query(None),
    date_to: date | None = Query(None),
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_session),
):
    """Filter the caller's requests (as submitter or as reviewer)."""
    if date_from and date_to and date_from > date_to:
        raise ValidationError("date_from must not be after date_to")
    criteria = RequestFilter(
        staff_id=actor.id if actor.is_staff else None,
        advisor_id=actor.id if actor.is_advisor else None,
        class_id=class_id,
        status=status.value if status else None,
        date_from=date_from,
        date_to=date_to,
    )
    return _list_response(await filter_requests(db, criteria))


@router.get("/requests/mine", response_model=WorkRequestListResponse)
async def my_requests(
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_session),
):
    """Requests the caller submitted, newest first."""
    return _list_response(await list_for_staff(db, actor.id))


@router.get("/requests/pending", response_model=WorkRequestListResponse)
async def pending_requests(
    actor: Actor = Depends(get_current_advisor),
    db: AsyncSession = Depends(get_session),
):
    """The advisor's review queue."""
    return _list_response(await list_pending_for_advisor(db, actor.id))


@router.get("/requests/advisor", response_model=WorkRequestListResponse)
async def advisor_requests(
    actor: Actor = Depends(get_current_advisor),
    db: AsyncSession = Depends(get_session),
):
    """Every request assigned to the advisor, in any status."""
    return _list_response(await list_all_for_advisor(db, actor.id))


@router.get("/requests/stats", response_model=RequestStatsResponse)
async def request_stats(
    staff_id: str | None = Query(None),
    date_from: date | None = Query(None),
    date_to: date | None = Query(None),
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_session),
):
    """Per-status counts and point totals for a staff member.

    Staff always get their own stats; advisors pass ``staff_id``.
    """
    if actor.is_staff:
        target = actor.id
    elif staff_id:
        target = staff_id
    else:
        raise ValidationError("staff_id is required")
    stats = await stats_for_staff(db, target, date_from, date_to)
    return RequestStatsResponse(**asdict(stats))


@router.get("/requests/{request_id}", response_model=WorkRequestResponse)
async def get_request_detail(
    request_id: str,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_session),
):
    request = await get_request(db, request_id)
    _ensure_visible(actor, request)
    return WorkRequestResponse.model_validate(request)


@router.get("/requests/{request_id}/activities", response_model=ActivityListResponse)
async def request_activities(
    request_id: str,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_session),
):
    """Audit trail for one request."""
    request = await get_request(db, request_id)
    _ensure_visible(actor, request)
    activities = await list_for_request(db, request_id)
    return ActivityListResponse(activities=[ActivityResponse.model_validate(a) for a in activities])


# ── Transitions ──


@router.post("/requests/{request_id}/approve", response_model=WorkRequestResponse)
async def approve_request(
    request_id: str,
    body: ApproveBody,
    actor: Actor = Depends(get_current_actor),
    lifecycle: RequestLifecycle = Depends(get_lifecycle),
):
    request = await lifecycle.approve(actor, request_id, body.approved_points, body.message)
    return WorkRequestResponse.model_validate(request)


@router.post("/requests/{request_id}/reject", response_model=WorkRequestResponse)
async def reject_request(
    request_id: str,
    body: RejectBody,
    actor: Actor = Depends(get_current_actor),
    lifecycle: RequestLifecycle = Depends(get_lifecycle),
):
    request = await lifecycle.reject(actor, request_id, body.reason)
    return WorkRequestResponse.model_validate(request)


@router.post("/requests/{request_id}/correction", response_model=WorkRequestResponse)
async def request_correction(
    request_id: str,
    body: CorrectionBody,
    actor: Actor = Depends(get_current_actor),
    lifecycle: RequestLifecycle = Depends(get_lifecycle),
):
    request = await lifecycle.request_correction(actor, request_id, body.note)
    return WorkRequestResponse.model_validate(request)


@router.post("/requests/{request_id}/resubmit", response_model=WorkRequestResponse)
async def resubmit_request(
    request_id: str,
    body: ResubmitBody,
    actor: Actor = Depends(get_current_actor),
    lifecycle: RequestLifecycle = Depends(get_lifecycle),
):
    request = await lifecycle.resubmit(actor, request_id, body.work_description, body.requested_points)
    return WorkRequestResponse.model_validate(request)
