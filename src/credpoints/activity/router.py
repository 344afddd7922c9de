"""Activity feed endpoint."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from credpoints.activity.service import list_for_user
from credpoints.auth.dependencies import get_current_actor
from credpoints.auth.jwt import Actor
from credpoints.config import get_settings
from credpoints.database import get_session
from credpoints.requests.schemas import ActivityListResponse, ActivityResponse

router = APIRouter(prefix="/api/v1", tags=["Activity"])


@router.get("/activities", response_model=ActivityListResponse)
async def my_activities(
    limit: int | None = Query(None, ge=1, le=200),
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_session),
):
    """The caller's activity history, newest first."""
    limit = limit or get_settings().activity_feed_default_limit
    activities = await list_for_user(db, actor.id, limit=limit)
    return ActivityListResponse(activities=[ActivityResponse.model_validate(a) for a in activities])
