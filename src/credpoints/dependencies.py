"""Shared FastAPI dependencies."""

from collections.abc import AsyncGenerator

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from credpoints.badges.signals import SignalBus
from credpoints.database import get_session as _get_session
from credpoints.redis_client import get_optional_redis
from credpoints.requests.lifecycle import RequestLifecycle

get_db = _get_session


async def get_redis_dep() -> AsyncGenerator[object, None]:
    """Yield the Redis client, or None when Redis is not configured."""
    yield get_optional_redis()


def get_signal_bus(request: Request) -> SignalBus:
    """The application's badge signal bus."""
    return request.app.state.signals


def get_lifecycle(
    db: AsyncSession = Depends(get_db),
    redis: object = Depends(get_redis_dep),
    signals: SignalBus = Depends(get_signal_bus),
) -> RequestLifecycle:
    """A lifecycle engine bound to this request's session."""
    return RequestLifecycle(db, redis=redis, signals=signals)
