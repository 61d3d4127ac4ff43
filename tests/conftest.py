"""Shared test fixtures."""

from __future__ import annotations

import os

# Settings are cached on first use, so the test environment goes in first
os.environ["COWORK_DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["COWORK_LOG_FORMAT"] = "console"
os.environ["COWORK_VAPID_PUBLIC_KEY"] = ""
os.environ["COWORK_VAPID_PRIVATE_KEY"] = ""
os.environ["COWORK_INTERNAL_API_TOKEN"] = "test-internal-token"

from collections.abc import AsyncGenerator  # noqa: E402
from unittest.mock import AsyncMock  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession  # noqa: E402

from cowork.auth.jwt import create_access_token  # noqa: E402
from cowork.config import get_settings  # noqa: E402
from cowork.database import close_db, get_engine, get_session_factory, init_db  # noqa: E402
from cowork.db.base import Base  # noqa: E402
from cowork.db.models import Profile, utcnow  # noqa: E402
from cowork.gamification.seed import seed_achievements  # noqa: E402
from cowork.main import create_app  # noqa: E402

get_settings.cache_clear()


@pytest_asyncio.fixture
async def database() -> AsyncGenerator[None, None]:
    """Fresh in-memory schema per test (the StaticPool connection dies with the engine)."""
    await init_db(get_settings().database_url)
    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    await close_db()


@pytest_asyncio.fixture
async def db_session(database: None) -> AsyncGenerator[AsyncSession, None]:
    """Direct session for arranging data and asserting on it.

    The HTTP app shares the same SQLite connection, so commit before calling
    an endpoint.
    """
    async with get_session_factory()() as session:
        yield session


@pytest_asyncio.fixture
async def seeded_db(db_session: AsyncSession) -> AsyncSession:
    """Session with the achievement catalog loaded."""
    await seed_achievements(db_session)
    return db_session


@pytest_asyncio.fixture
async def app(database: None):
    return create_app()


@pytest_asyncio.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client bound to the app (no lifespan: DB is set up by the fixtures)."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


async def _make_profile(db: AsyncSession, username: str, display_name: str | None = None) -> Profile:
    profile = Profile(
        username=username,
        display_name=display_name or username.title(),
        updated_at=utcnow(),
    )
    db.add(profile)
    await db.commit()
    return profile


def _auth_headers(profile: Profile) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(profile.id)}"}


@pytest.fixture
def auth_headers():
    """Bearer headers for a profile: ``auth_headers(alice)``."""
    return _auth_headers


@pytest_asyncio.fixture
async def make_profile(db_session: AsyncSession):
    """Create and commit a profile: ``await make_profile("dave")``."""

    async def factory(username: str, display_name: str | None = None) -> Profile:
        return await _make_profile(db_session, username, display_name)

    return factory


@pytest_asyncio.fixture
async def alice(db_session: AsyncSession) -> Profile:
    return await _make_profile(db_session, "alice")


@pytest_asyncio.fixture
async def bob(db_session: AsyncSession) -> Profile:
    return await _make_profile(db_session, "bob")


@pytest_asyncio.fixture
async def carol(db_session: AsyncSession) -> Profile:
    return await _make_profile(db_session, "carol")


@pytest.fixture
def mock_redis() -> AsyncMock:
    """Redis double: records publishes."""
    redis = AsyncMock()
    redis.publish = AsyncMock(return_value=1)
    return redis
