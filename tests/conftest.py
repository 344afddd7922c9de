"""Shared test fixtures.

Every test gets its own SQLite database file (via aiosqlite) with the ORM
schema created from the models, so tests never share state.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from dataclasses import dataclass
from datetime import datetime, timezone

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from credpoints.auth.jwt import Actor, create_access_token
from credpoints.badges.cache import InMemoryBadgeCounter
from credpoints.badges.signals import SignalBus
from credpoints.database import close_db, get_engine, get_session_factory, init_db
from credpoints.db.base import Base
from credpoints.db.models import ClassRoom, User
from credpoints.main import create_app
from credpoints.requests.lifecycle import RequestLifecycle


@dataclass
class Campus:
    """Seeded users: one advisor per class, two staff in class A, one drifter."""

    advisor: Actor
    staff: Actor
    other_staff: Actor
    other_advisor: Actor
    drifter: Actor
    class_id: str
    other_class_id: str


@pytest_asyncio.fixture
async def engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """Fresh SQLite database with all tables."""
    await init_db(f"sqlite+aiosqlite:///{tmp_path / 'credpoints_test.db'}")
    eng = get_engine()
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await close_db()


@pytest_asyncio.fixture
async def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return get_session_factory()


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """A direct database session for service calls and assertions."""
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def campus(session_factory) -> Campus:
    now = datetime.now(timezone.utc)
    async with session_factory() as db:
        advisor = User(name="Dr. Rao", email="rao@campus.edu", role="advisor", created_at=now)
        other_advisor = User(name="Dr. Iyer", email="iyer@campus.edu", role="advisor", created_at=now)
        db.add_all([advisor, other_advisor])
        await db.flush()

        classroom = ClassRoom(name="CSE-A", join_code="CSEA01", advisor_id=advisor.id, created_at=now)
        other_classroom = ClassRoom(name="ECE-B", join_code="ECEB02", advisor_id=other_advisor.id, created_at=now)
        db.add_all([classroom, other_classroom])
        await db.flush()

        staff = User(name="Priya", email="priya@campus.edu", role="staff",
                     current_class_id=classroom.id, created_at=now)
        other_staff = User(name="Arjun", email="arjun@campus.edu", role="staff",
                           current_class_id=classroom.id, created_at=now)
        drifter = User(name="Kiran", email="kiran@campus.edu", role="staff", created_at=now)
        db.add_all([staff, other_staff, drifter])
        await db.commit()

        return Campus(
            advisor=Actor(advisor.id, "advisor"),
            staff=Actor(staff.id, "staff"),
            other_staff=Actor(other_staff.id, "staff"),
            other_advisor=Actor(other_advisor.id, "advisor"),
            drifter=Actor(drifter.id, "staff"),
            class_id=classroom.id,
            other_class_id=other_classroom.id,
        )


@pytest.fixture
def badge_counter() -> InMemoryBadgeCounter:
    return InMemoryBadgeCounter()


@pytest.fixture
def signals(badge_counter: InMemoryBadgeCounter) -> SignalBus:
    bus = SignalBus()
    bus.subscribe(badge_counter)
    return bus


@pytest.fixture
def lifecycle(db_session: AsyncSession, signals: SignalBus) -> RequestLifecycle:
    return RequestLifecycle(db_session, signals=signals)


@pytest.fixture
def app(engine: AsyncEngine) -> FastAPI:
    return create_app()


@pytest_asyncio.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client against the app, backed by the per-test database."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def auth_headers():
    """Build a bearer header for an actor."""

    def _headers(actor: Actor) -> dict[str, str]:
        return {"Authorization": f"Bearer {create_access_token(actor.id, actor.role)}"}

    return _headers
