"""Shared test fixtures — async DB, client, auth helpers, factories.

Uses SQLite + aiosqlite for fast isolated tests without PostgreSQL.
"""

from __future__ import annotations

import os

# Set test JWT_SECRET before any other import touches pydantic-settings
os.environ.setdefault("JWT_SECRET", "test-secret-for-ci-do-not-use-in-production")

import uuid
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal
from typing import AsyncGenerator, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest
from httpx import ASGITransport, AsyncClient
from jose import jwt
from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from timeloo.common.constants import (
    DurationType,
    HalfDayPeriod,
    LeavePolicy,
    LeaveStatus,
    UserRole,
)
from timeloo.config import settings
from timeloo.database import Base, get_db
from timeloo.main import create_app
from timeloo.notifications.gateway import NotificationGateway, get_notification_gateway

# Import ALL model modules so SQLAlchemy can resolve cross-module relationships
import timeloo.common.audit  # noqa: F401
import timeloo.profiles.models  # noqa: F401
import timeloo.leave.models  # noqa: F401
import timeloo.notifications.models  # noqa: F401

from timeloo.leave.models import LeaveApplication, LeaveType
from timeloo.profiles.models import Profile, UserSlackIntegration

# ── SQLite compat: compile PG-specific types to TEXT/CHAR ───────────

from sqlalchemy.dialects.postgresql import JSONB, UUID as PG_UUID
from sqlalchemy.ext.compiler import compiles


@compiles(JSONB, "sqlite")
def _jsonb_sqlite(element, compiler, **kw):
    return "TEXT"


@compiles(PG_UUID, "sqlite")
def _uuid_sqlite(element, compiler, **kw):
    return "CHAR(36)"


# ── Test database (SQLite in-memory) ────────────────────────────────

TEST_DATABASE_URL = "sqlite+aiosqlite://"

engine = create_async_engine(
    TEST_DATABASE_URL,
    echo=False,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)


@event.listens_for(engine.sync_engine, "connect")
def _register_sqlite_functions(dbapi_conn, connection_record):
    """Register NOW() as a SQLite custom function."""
    dbapi_conn.create_function(
        "NOW", 0, lambda: datetime.now(timezone.utc).isoformat(),
    )


TestSessionFactory = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False,
)


@pytest.fixture(autouse=True)
async def _setup_db():
    """Create all tables before each test, drop after."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture(autouse=True)
def _reset_rate_limiter():
    """Reset rate limiter storage between tests."""
    from timeloo.common.rate_limit import limiter

    limiter.reset()
    yield


async def _override_get_db() -> AsyncGenerator[AsyncSession, None]:
    async with TestSessionFactory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


# ── Notification gateway ────────────────────────────────────────────

@pytest.fixture
def slack_client() -> MagicMock:
    """Stand-in for slack_sdk's AsyncWebClient."""
    client = MagicMock()
    client.chat_postMessage = AsyncMock(return_value={"ok": True})
    return client


@pytest.fixture
def gateway(slack_client) -> NotificationGateway:
    """Gateway bound to the test engine and a mocked Slack client."""
    return NotificationGateway(
        TestSessionFactory,
        slack_client_factory=lambda token: slack_client,
    )


@pytest.fixture
def mock_gateway() -> MagicMock:
    """Gateway double used by API tests to assert scheduling only."""
    double = MagicMock(spec=NotificationGateway)
    double.notify_submission = AsyncMock(return_value={})
    double.notify_status_change = AsyncMock(return_value={})
    return double


# ── FastAPI test client ─────────────────────────────────────────────

@pytest.fixture
async def app(mock_gateway):
    """Create a fresh app instance with DB and gateway dependencies overridden."""
    application = create_app()
    application.dependency_overrides[get_db] = _override_get_db
    application.dependency_overrides[get_notification_gateway] = lambda: mock_gateway
    yield application
    application.dependency_overrides.clear()


@pytest.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client wired to the test app."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


# ── Database session (for direct DB operations in tests) ────────────

@pytest.fixture
async def db() -> AsyncGenerator[AsyncSession, None]:
    async with TestSessionFactory() as session:
        yield session
        await session.commit()


# ── Model factories ─────────────────────────────────────────────────

async def _seed_profile(
    db: AsyncSession,
    *,
    user_id: Optional[str] = None,
    email: Optional[str] = None,
    name: str = "Test User",
    role: UserRole = UserRole.user,
    is_active: bool = True,
) -> Profile:
    user_id = user_id or f"user_{uuid.uuid4().hex[:12]}"
    profile = Profile(
        id=user_id,
        name=name,
        email=email or f"{user_id}@timeloo.test",
        role=role,
        is_active=is_active,
    )
    db.add(profile)
    await db.flush()
    return profile


async def _seed_leave_type(
    db: AsyncSession,
    *,
    label: str = "Work From Home",
    duration_type: DurationType = DurationType.days,
    policy: LeavePolicy = LeavePolicy.fixed,
    allowance: Decimal = Decimal("2"),
    carry_forward_limit: Decimal = Decimal("0"),
    primary_leave_type_id: Optional[uuid.UUID] = None,
    requires_approval: bool = True,
    is_active: bool = True,
) -> LeaveType:
    lt = LeaveType(
        id=uuid.uuid4(),
        label=label,
        duration_type=duration_type,
        policy=policy,
        allowance=allowance,
        carry_forward_limit=carry_forward_limit,
        primary_leave_type_id=primary_leave_type_id,
        requires_approval=requires_approval,
        is_active=is_active,
    )
    db.add(lt)
    await db.flush()
    return lt


async def _seed_application(
    db: AsyncSession,
    user_id: str,
    leave_type_id: uuid.UUID,
    start: date,
    end: Optional[date] = None,
    *,
    status: LeaveStatus = LeaveStatus.approved,
    half_day_period: Optional[HalfDayPeriod] = None,
    leave_time_start: Optional[time] = None,
    is_half_day: Optional[bool] = None,
    hours_requested: Optional[Decimal] = None,
    actual_days_used: Optional[Decimal] = None,
    reason: str = "Personal",
) -> LeaveApplication:
    application = LeaveApplication(
        id=uuid.uuid4(),
        user_id=user_id,
        leave_type_id=leave_type_id,
        start_date=start,
        end_date=end or start,
        status=status,
        is_half_day=(
            is_half_day if is_half_day is not None
            else half_day_period is not None or leave_time_start is not None
        ),
        half_day_period=half_day_period,
        leave_time_start=leave_time_start,
        hours_requested=hours_requested,
        actual_days_used=actual_days_used,
        reason=reason,
    )
    db.add(application)
    await db.flush()
    return application


async def _seed_slack_integration(
    db: AsyncSession,
    user_id: str,
    slack_user_id: str = "U0123ABC",
) -> UserSlackIntegration:
    integration = UserSlackIntegration(
        user_id=user_id,
        slack_user_id=slack_user_id,
        slack_team_id="T0123ABC",
    )
    db.add(integration)
    await db.flush()
    return integration


@pytest.fixture
async def test_user(db) -> Profile:
    profile = await _seed_profile(db, user_id="user_alice", email="alice@timeloo.test", name="Alice")
    await db.commit()
    return profile


@pytest.fixture
async def test_admin(db) -> Profile:
    profile = await _seed_profile(
        db, user_id="user_admin", email="admin@timeloo.test", name="Admin", role=UserRole.admin,
    )
    await db.commit()
    return profile


# ── Auth helpers ────────────────────────────────────────────────────

def create_access_token(
    user_id: str,
    expired: bool = False,
    *,
    expires_in: timedelta = timedelta(hours=12),
    extra: Optional[dict] = None,
) -> str:
    """Sign an HS256 access token the way the identity provider does."""
    now = datetime.now(timezone.utc)
    payload = {
        "sub": user_id,
        "type": "access",
        "iat": now,
        "exp": now - timedelta(hours=1) if expired else now + expires_in,
        **(extra or {}),
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def bearer(user_id: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user_id)}"}


@pytest.fixture
def auth_headers(test_user) -> dict[str, str]:
    return bearer(test_user.id)


@pytest.fixture
def admin_headers(test_admin) -> dict[str, str]:
    return bearer(test_admin.id)
