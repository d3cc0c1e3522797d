"""
Pytest configuration and fixtures for the backend tests.
"""
import os
import tempfile

# Settings are read at import time, so the environment must be ready first
_TMP_DIR = tempfile.mkdtemp(prefix="roadmap-tracker-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_TMP_DIR, 'app.db')}"
os.environ["JWT_ACCESS_SECRET"] = "test-access-secret"
os.environ["JWT_REFRESH_SECRET"] = "test-refresh-secret"
os.environ["JWT_ACCESS_TTL"] = "15m"
os.environ["JWT_REFRESH_TTL"] = "7d"
os.environ["FRONTEND_ORIGIN"] = "http://localhost:5173"
os.environ["ENVIRONMENT"] = "test"
os.environ["LOG_DIR"] = os.path.join(_TMP_DIR, "logs")
os.environ["LOG_LEVEL"] = "WARNING"

from typing import AsyncGenerator, Optional

import pytest
from faker import Faker
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from main import app
from core.config import settings
from core.rate_limit import RollingWindowRateLimiter
from core.security import pwd_context
from db.base import Base
from db.models.user import Role
from db.session import get_db_session
from services.user_service import create_user

# Cheap bcrypt rounds keep the suite fast; verification still goes through bcrypt
pwd_context.update(bcrypt__rounds=4)

# Initialize Faker for test data generation
fake = Faker()

DEFAULT_PASSWORD = "Password123"


@pytest.fixture
async def session_factory(tmp_path) -> AsyncGenerator[async_sessionmaker, None]:
    """A fresh SQLite database per test."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", future=True)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def login_limiter() -> RollingWindowRateLimiter:
    limiter = RollingWindowRateLimiter(settings.LOGIN_RATE_LIMIT, settings.LOGIN_RATE_WINDOW_SECONDS)
    app.state.login_limiter = limiter
    return limiter


@pytest.fixture
async def async_client(session_factory, login_limiter) -> AsyncGenerator[AsyncClient, None]:
    """Async client whose requests each get their own session on the test database."""
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db_session] = override_get_db

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


def make_user_data() -> dict:
    username = f"{fake.user_name()}{fake.pyint(min_value=100, max_value=999999)}"
    return {
        "username": username,
        "email": f"{username}@learnpath.io",
        "password": DEFAULT_PASSWORD,
    }


@pytest.fixture
def sample_user_data() -> dict:
    return make_user_data()


@pytest.fixture
async def existing_user(session_factory):
    """A plain user created straight through the service layer."""
    data = make_user_data()
    async with session_factory() as session:
        user = await create_user(data["username"], data["email"], data["password"], session)
    return user, data


@pytest.fixture
async def admin_user(session_factory):
    data = make_user_data()
    async with session_factory() as session:
        user = await create_user(data["username"], data["email"], data["password"], session, role=Role.admin)
    return user, data


async def login(client: AsyncClient, username: str, password: str = DEFAULT_PASSWORD):
    response = await client.post("/auth/login", json={"username": username, "password": password})
    client.cookies.clear()
    return response


async def post_with_refresh_cookie(client: AsyncClient, path: str, refresh_token: Optional[str]):
    """POST with exactly the given refresh cookie (or none), leaving the client jar empty."""
    client.cookies.clear()
    headers = {}
    if refresh_token is not None:
        headers["Cookie"] = f"{settings.REFRESH_COOKIE_NAME}={refresh_token}"
    response = await client.post(path, headers=headers)
    client.cookies.clear()
    return response


def refresh_cookie_from(response) -> Optional[str]:
    return response.cookies.get(settings.REFRESH_COOKIE_NAME)


def refresh_cookie_cleared(response) -> bool:
    header = ",".join(response.headers.get_list("set-cookie"))
    return f"{settings.REFRESH_COOKIE_NAME}=" in header and "Max-Age=0" in header


def bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}
