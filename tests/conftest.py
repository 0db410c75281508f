"""
Steady Vitality - Test Configuration

Pytest fixtures for authentication and assignment testing.
Provides test database, HTTP client, and user fixtures.
"""

from typing import AsyncIterator, Optional

import pytest
from httpx import ASGITransport, AsyncClient
from sqlmodel import SQLModel

from steady_vitality.config import settings

# Cheap hashes keep the suite fast; set before any hashing happens
settings.BCRYPT_ROUNDS = 4

from steady_vitality.app import app  # noqa: E402
from steady_vitality.auth.database import get_engine, get_session_factory, init_db  # noqa: E402
from steady_vitality.auth.models import Role, User  # noqa: E402
from steady_vitality.auth.password import hash_password  # noqa: E402


# Test database URL (in-memory SQLite)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

ADMIN_PASSWORD = "AdminPass123!"
COACH_PASSWORD = "CoachPass123!"
CLIENT_PASSWORD = "ClientPass123!"


@pytest.fixture
async def test_engine():
    """Fresh in-memory database for each test."""
    engine = get_engine(TEST_DATABASE_URL)
    await init_db(engine)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return get_session_factory(test_engine)


@pytest.fixture
async def db_session(session_factory):
    """Create a database session for testing."""
    async with session_factory() as session:
        yield session


@pytest.fixture
async def client(test_engine, session_factory) -> AsyncIterator[AsyncClient]:
    """HTTP client bound to the app with the test database."""
    app.state.db_engine = test_engine
    app.state.db_session_factory = session_factory

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as c:
        yield c


async def make_user(
    db,
    email: str,
    username: str,
    password: str,
    role: Role = Role.CLIENT,
    is_active: bool = True,
    is_email_verified: bool = True,
) -> User:
    user = User(
        email=email,
        username=username,
        first_name=username.capitalize(),
        last_name="Tester",
        password_hash=hash_password(password),
        role=role,
        is_active=is_active,
        is_email_verified=is_email_verified,
    )
    db.add(user)
    await db.commit()
    return user


@pytest.fixture
async def test_admin(db_session) -> User:
    return await make_user(db_session, "admin@test.com", "admin", ADMIN_PASSWORD, Role.ADMIN)


@pytest.fixture
async def test_coach(db_session) -> User:
    return await make_user(db_session, "coach@test.com", "coach", COACH_PASSWORD, Role.COACH)


@pytest.fixture
async def test_client_user(db_session) -> User:
    return await make_user(db_session, "client@test.com", "client", CLIENT_PASSWORD, Role.CLIENT)


@pytest.fixture
async def unverified_user(db_session) -> User:
    return await make_user(
        db_session,
        "unverified@test.com",
        "unverified",
        CLIENT_PASSWORD,
        is_email_verified=False,
    )


@pytest.fixture
async def inactive_user(db_session) -> User:
    """Create an inactive test user."""
    return await make_user(
        db_session,
        "inactive@test.com",
        "inactive",
        CLIENT_PASSWORD,
        is_active=False,
    )


async def login_user(client: AsyncClient, email: str, password: str) -> Optional[dict]:
    """Helper function to login and return the response body."""
    response = await client.post(
        "/api/v1/auth/login",
        json={"email": email, "password": password},
    )
    return response.json() if response.status_code == 200 else None


def auth_headers(access_token: str) -> dict:
    """Create authorization headers for authenticated requests."""
    return {"Authorization": f"Bearer {access_token}"}


async def login_headers(client: AsyncClient, email: str, password: str) -> dict:
    body = await login_user(client, email, password)
    assert body is not None, f"login failed for {email}"
    return auth_headers(body["tokens"]["accessToken"])
