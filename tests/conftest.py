"""
Pytest fixtures for backend tests.
"""

import os
from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator, Generator, Optional

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

# Set test environment before importing app
os.environ.setdefault("AUTH_DISABLED", "true")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("CRON_API_KEY", "test-cron-key")
os.environ.setdefault("REDIS_URL", "")
os.environ.setdefault("SUPABASE_URL", "")

from app.config import get_settings
from app.main import app
from app.models import Base
from app.models.team_invitations import TeamInvitation
from app.services.invitations.identity import IIdentityProvider
from app.services.invitations.store import InvitationStore


ORG_ID = "org_acme"
OTHER_ORG_ID = "org_globex"


class FakeRedis:
    """Just enough of redis.asyncio.Redis for the ticket stash."""

    def __init__(self):
        self.values = {}
        self.expirations = {}

    async def set(self, key, value, ex=None):
        self.values[key] = value
        self.expirations[key] = ex
        return True

    async def get(self, key):
        return self.values.get(key)

    async def getdel(self, key):
        self.expirations.pop(key, None)
        return self.values.pop(key, None)

    async def delete(self, *keys):
        removed = 0
        for key in keys:
            self.expirations.pop(key, None)
            removed += self.values.pop(key, None) is not None
        return removed


class FakeIdentity(IIdentityProvider):
    def __init__(self, outstanding=(), accept_result=True):
        self.outstanding = list(outstanding)
        self.accept_result = accept_result
        self.accepted = []

    async def list_outstanding_invitations(self, user):
        return list(self.outstanding)

    async def accept(self, invitation, user):
        self.accepted.append(invitation.id)
        return self.accept_result


# --- Fixtures ---

@pytest.fixture(scope="session")
def settings():
    """Get application settings."""
    return get_settings()


@pytest.fixture
def now() -> datetime:
    return datetime(2026, 10, 19, 12, 0, 0, tzinfo=timezone.utc)


@pytest_asyncio.fixture(scope="function")
async def session_factory() -> AsyncGenerator[async_sessionmaker, None]:
    """
    In-memory SQLite DB for each test.
    StaticPool keeps the same in-memory DB across connections within a test.
    """
    engine = create_async_engine("sqlite+aiosqlite://", poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def store(db_session) -> InvitationStore:
    return InvitationStore(db_session)


@pytest.fixture
def make_invitation(db_session, now):
    """
    Insert a team invitation. ``expires_in`` is relative to the ``now``
    fixture; ``created_at`` is placed a week before expiry.
    """

    async def _make(
        email: str = "bob@example.com",
        organization_id: str = ORG_ID,
        role: str = "editor",
        status: str = "pending",
        expires_in: timedelta = timedelta(days=3),
        invited_by: str = "auth0|inviter",
        created_at: Optional[datetime] = None,
    ) -> TeamInvitation:
        expires_at = now + expires_in
        invitation = TeamInvitation(
            organization_id=organization_id,
            email=email,
            role=role,
            status=status,
            invited_by=invited_by,
            created_at=created_at or expires_at - timedelta(days=7),
            updated_at=created_at or expires_at - timedelta(days=7),
            expires_at=expires_at,
        )
        db_session.add(invitation)
        await db_session.commit()
        return invitation

    return _make


@pytest.fixture
def fetch_invitation(db_session):
    """Re-read a row from the database, bypassing the identity map."""

    async def _fetch(invitation_id) -> TeamInvitation:
        result = await db_session.execute(
            select(TeamInvitation)
            .where(TeamInvitation.id == invitation_id)
            .execution_options(populate_existing=True)
        )
        return result.scalars().one()

    return _fetch


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture(scope="function")
def client() -> Generator[TestClient, None, None]:
    """
    Synchronous test client for FastAPI.
    Auth is bypassed via AUTH_DISABLED=true; tests install their own
    dependency overrides for services.
    """
    with TestClient(app, raise_server_exceptions=False) as c:
        yield c
    app.dependency_overrides.clear()
