"""Pytest configuration and fixtures for auth service tests.

Database Handling:
- Uses TEST_DATABASE_URL when set (e.g. a PostgreSQL asyncpg URL)
- Otherwise runs against an in-memory SQLite database through aiosqlite
"""

import os
from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool, StaticPool

TEST_DATABASE_URL = os.environ.get("TEST_DATABASE_URL", "sqlite+aiosqlite:///:memory:")

# Set test environment variables before importing app modules
os.environ["JWT_SECRET_KEY"] = "test-signing-secret-" + "0" * 44
os.environ["DATABASE_URL"] = TEST_DATABASE_URL
os.environ["LOG_LEVEL"] = "WARNING"

# Test user credentials
TEST_USERNAME = "moviebuff"
TEST_EMAIL = "moviebuff@example.com"
TEST_PASSWORD = "popcorn123"


def _engine_kwargs(url: str) -> dict:
    if url.startswith("sqlite"):
        # One shared connection so every session sees the same in-memory database
        return {"poolclass": StaticPool, "connect_args": {"check_same_thread": False}}
    return {"poolclass": NullPool}


# --- Rate Limiter Reset Fixture ---


@pytest.fixture(autouse=True)
def reset_login_rate_limiter():
    """Clear failed login attempts so tests don't leak 429s into each other."""
    from cinepass_auth.api.auth import _login_attempts

    _login_attempts.clear()
    yield
    _login_attempts.clear()


# --- Database Fixtures ---


@pytest_asyncio.fixture(scope="function")
async def db_engine():
    """Create a database engine with all tables for one test."""
    from cinepass_auth.core.database import Base
    import cinepass_auth.models  # noqa: F401

    engine = create_async_engine(TEST_DATABASE_URL, echo=False, **_engine_kwargs(TEST_DATABASE_URL))

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def session_maker(db_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture(scope="function")
async def db_session(session_maker) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session for testing."""
    async with session_maker() as session:
        yield session
        await session.rollback()


@pytest.fixture
def auth_app(session_maker):
    """The auth app with get_db bound to the test database.

    Each request gets its own session, as in production, so tests can
    exercise requests that run concurrently.
    """
    from cinepass_auth.core.database import get_db
    from cinepass_auth.main import app

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_maker() as session:
            try:
                yield session
                await session.commit()
            except BaseException:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    yield app
    app.dependency_overrides.clear()


@pytest_asyncio.fixture(scope="function")
async def async_client(auth_app) -> AsyncGenerator[AsyncClient, None]:
    """Create an async test client against the auth app."""
    transport = ASGITransport(app=auth_app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


# --- Test Factories ---


@pytest.fixture
def user_factory(db_session):
    """Factory for creating test users directly in the database."""
    from cinepass_auth.models import User
    from cinepass_auth.services.auth import hash_password

    async def _create_user(
        username: str = TEST_USERNAME,
        email: str = TEST_EMAIL,
        password: str = TEST_PASSWORD,
    ) -> User:
        user = User(username=username, email=email, password_hash=hash_password(password))
        db_session.add(user)
        await db_session.commit()
        await db_session.refresh(user)
        return user

    return _create_user


@pytest_asyncio.fixture
async def test_user(user_factory):
    """Create the default test user."""
    return await user_factory()


@pytest_asyncio.fixture
async def login_tokens(async_client, test_user) -> dict:
    """Log the test user in through the API and return the response body."""
    response = await async_client.post(
        "/api/auth/login",
        json={"email": TEST_EMAIL, "password": TEST_PASSWORD},
    )
    assert response.status_code == 200
    return response.json()


@pytest.fixture
def auth_headers(login_tokens) -> dict[str, str]:
    """Headers with the test user's access token."""
    return {"Authorization": f"Bearer {login_tokens['accessToken']}"}
