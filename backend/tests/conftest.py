"""Shared test fixtures for the Freeboard backend.

Provides:
- In-memory SQLite database (aiosqlite) rebuilt for every test
- FastAPI test client with overridden DB dependency
- Factory helpers for creating users and dashboards
"""

from __future__ import annotations

import os
import uuid
from datetime import datetime, timedelta, timezone

# Set test environment BEFORE any app imports so Settings() picks them up.
os.environ.setdefault("SECRET_KEY", "test-secret-key-for-pytest-only")
os.environ.setdefault("ENVIRONMENT", "development")

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.pool import StaticPool

from app.core.security import create_access_token, hash_password
from app.models import Base
from app.services.event_bus import event_bus

# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@pytest.fixture
async def db():
    """Session on a fresh in-memory database.

    StaticPool keeps the single SQLite connection alive so every session sees
    the same schema and rows for the duration of the test.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session = AsyncSession(bind=engine, expire_on_commit=False)
    yield session

    await session.close()
    await engine.dispose()


# ---------------------------------------------------------------------------
# FastAPI test app + HTTP client
# ---------------------------------------------------------------------------


@pytest.fixture
async def app(db):
    """Minimal FastAPI test app with ``get_db`` overridden to use the test session."""
    from fastapi import FastAPI
    from slowapi import _rate_limit_exceeded_handler
    from slowapi.errors import RateLimitExceeded

    from app.api.v1.router import api_router
    from app.config import settings
    from app.core.errors import register_exception_handlers
    from app.core.rate_limit import limiter
    from app.database import get_db

    test_app = FastAPI()
    test_app.state.limiter = limiter
    test_app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    register_exception_handlers(test_app)
    test_app.include_router(api_router, prefix=settings.API_V1_PREFIX)

    async def _override_get_db():
        yield db

    test_app.dependency_overrides[get_db] = _override_get_db
    yield test_app
    test_app.dependency_overrides.clear()


@pytest.fixture
async def client(app):
    """HTTP test client for the test app."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as c:
        yield c


@pytest.fixture(autouse=True)
def _disable_rate_limiter():
    """Disable slowapi rate limiting during tests to avoid 429 responses."""
    from app.core.rate_limit import limiter

    limiter.enabled = False
    yield
    limiter.enabled = True


@pytest.fixture(autouse=True)
def _reset_event_bus():
    event_bus._subscribers.clear()
    yield
    event_bus._subscribers.clear()


# ---------------------------------------------------------------------------
# Factory helpers
# ---------------------------------------------------------------------------

_BASE_TIME = datetime(2024, 1, 1, tzinfo=timezone.utc)


async def create_user(
    db,
    *,
    email=None,
    role="editor",
    password="TestPassword1",
    display_name="Test User",
    is_active=True,
    registered_days_ago=None,
):
    """Insert a user into the test database.

    ``registered_days_ago`` pins ``created_at`` so "oldest admin" ordering is
    deterministic.
    """
    from app.models.user import User

    user = User(
        email=email or f"test-{uuid.uuid4().hex[:8]}@example.com",
        display_name=display_name,
        password_hash=hash_password(password),
        role=role,
        is_active=is_active,
        session_version=0,
    )
    if registered_days_ago is not None:
        user.created_at = _BASE_TIME - timedelta(days=registered_days_ago)
    db.add(user)
    await db.flush()
    return user


async def create_dashboard(
    db,
    *,
    owner,
    title="Test Dashboard",
    visibility="private",
    share_token=None,
    acl=None,
    settings=None,
    panes=None,
):
    """Insert a dashboard into the test database."""
    from app.models.dashboard import Dashboard

    dashboard = Dashboard(
        owner_id=owner.id,
        title=title,
        visibility=visibility,
        share_token=share_token,
        acl=acl or [],
        settings=settings or {},
        panes=panes or [],
        datasources=[],
        auth_providers=[],
    )
    db.add(dashboard)
    await db.flush()
    return dashboard


def acl_row(user, access_level="viewer"):
    return {
        "user_id": user.id,
        "access_level": access_level,
        "granted_by": None,
        "granted_at": "2024-01-01T00:00:00+00:00",
    }


def auth_headers(user) -> dict:
    """Return Authorization header dict for the given user."""
    token = create_access_token(user.id, user.role, user.session_version or 0)
    return {"Authorization": f"Bearer {token}"}
