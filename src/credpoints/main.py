"""FastAPI application factory."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from credpoints.activity.router import router as activity_router
from credpoints.badges.cache import InMemoryBadgeCounter, RedisBadgeCache
from credpoints.badges.router import router as badges_router
from credpoints.badges.signals import SignalBus
from credpoints.config import get_settings
from credpoints.database import close_db, init_db
from credpoints.health.router import router as health_router
from credpoints.ledger.router import router as ledger_router
from credpoints.middleware import setup_middleware
from credpoints.notifications.router import router as notifications_router
from credpoints.redis_client import close_redis, get_redis, init_redis
from credpoints.requests.router import router as requests_router

logger = logging.getLogger(__name__)


def _use_badge_cache(app: FastAPI, cache: RedisBadgeCache | InMemoryBadgeCounter) -> None:
    """Swap the subscriber that projects badge signals."""
    previous = getattr(app.state, "badge_cache", None)
    if previous is not None:
        app.state.signals.unsubscribe(previous)
    app.state.signals.subscribe(cache)
    app.state.badge_cache = cache


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup and shutdown lifecycle."""
    settings = get_settings()
    await init_db(settings.database_url)
    await init_redis(settings.redis_url)
    _use_badge_cache(app, RedisBadgeCache(get_redis()))
    logger.info("CredPoints API started (%s)", settings.environment)

    yield

    _use_badge_cache(app, InMemoryBadgeCounter())
    await close_db()
    await close_redis()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="CredPoints API",
        description="Work requests, advisor review and CRED point balances",
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )
    app.state.signals = SignalBus()
    _use_badge_cache(app, InMemoryBadgeCounter())

    setup_middleware(app, settings)
    app.include_router(health_router, tags=["Health"])
    app.include_router(requests_router)
    app.include_router(activity_router)
    app.include_router(ledger_router)
    app.include_router(notifications_router)
    app.include_router(badges_router)

    return app


app = create_app()
