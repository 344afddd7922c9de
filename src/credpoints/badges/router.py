"""Badge count endpoint."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from credpoints.auth.dependencies import get_current_actor
from credpoints.auth.jwt import Actor
from credpoints.badges.cache import rebuild_badge_counts
from credpoints.database import get_session

router = APIRouter(prefix="/api/v1", tags=["Badges"])


class BadgeCountsResponse(BaseModel):
    pending: int
    correction: int


@router.get("/badges", response_model=BadgeCountsResponse)
async def badge_counts(
    request: Request,
    refresh: bool = Query(False),
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_session),
):
    """Cached tab badge counts; ``refresh=true`` rebuilds them from the request tables."""
    cache = request.app.state.badge_cache
    if refresh:
        counts = await rebuild_badge_counts(db, cache, actor.id)
    else:
        counts = await cache.get_counts(actor.id)
    return BadgeCountsResponse(**counts)
