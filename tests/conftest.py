"""Shared test fixtures — async DB, client, auth helpers, factories.

Reusable across all test modules (attendance, leave, timesheets, etc.).
Uses SQLite + aiosqlite for fast isolated tests without PostgreSQL.
"""

from __future__ import annotations

import os

# Set test JWT_SECRET before any other import touches pydantic-settings
os.environ.setdefault("JWT_SECRET", "test-secret-for-ci-do-not-use-in-production")
os.environ.setdefault("SWEEPER_ENABLED", "false")

import uuid
from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator, Optional

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

from backend.common.clock import BusinessClock
from backend.config import settings
from backend.database import Base, get_db
from backend.main import create_app
from backend.notifications import service as notification_service

# Import ALL model modules so every table is in Base.metadata
import backend.core_hr.models  # noqa: F401
import backend.leave.models  # noqa: F401
import backend.attendance.models  # noqa: F401
import backend.timesheets.models  # noqa: F401
import backend.notifications.models  # noqa: F401
import backend.helpdesk.models  # noqa: F401
import backend.common.audit  # noqa: F401

# ── SQLite compat: compile PG-specific types to TEXT/BLOB ───────────

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


# Register PG-compatible functions for SQLite
@event.listens_for(engine.sync_engine, "connect")
def _register_sqlite_functions(dbapi_conn, connection_record):
    """Register NOW() and uuid_generate_v4() as SQLite custom functions."""
    dbapi_conn.create_function(
        "NOW", 0, lambda: datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S.%f"),
    )
    dbapi_conn.create_function(
        "uuid_generate_v4", 0, lambda: str(uuid.uuid4()),
    )
    dbapi_conn.create_function(
        "gen_random_uuid", 0, lambda: str(uuid.uuid4()),
    )

TestSessionFactory = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False,
)


@pytest.fixture(autouse=True)
async def _setup_db(monkeypatch):
    """Create all tables before each test, drop after.

    Background notification delivery is pointed at the test engine and
    drained before the tables go away.
    """
    monkeypatch.setattr(notification_service, "session_factory", TestSessionFactory)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    await notification_service.drain()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture(autouse=True)
def _reset_rate_limiter():
    """Reset rate limiter storage between tests to prevent cross-test interference."""
    from backend.common.rate_limit import limiter
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


# ── FastAPI test client ─────────────────────────────────────────────

@pytest.fixture
async def app():
    """Create a fresh app instance with DB dependency overridden."""
    application = create_app()
    application.dependency_overrides[get_db] = _override_get_db
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
def session_factory() -> async_sessionmaker[AsyncSession]:
    """The factory bound to the test engine, for code that opens its own sessions."""
    return TestSessionFactory


@pytest.fixture
async def db() -> AsyncGenerator[AsyncSession, None]:
    async with TestSessionFactory() as session:
        yield session
        await session.commit()


# ── Business clock ──────────────────────────────────────────────────

# Tuesday 2026-10-20, 09:00 America/New_York (EDT, UTC-4)
TUESDAY_9AM = datetime(2026, 10, 20, 13, 0, tzinfo=timezone.utc)


@pytest.fixture
def frozen_now(monkeypatch):
    """Pin ``BusinessClock.now`` for code paths that read the wall clock.

    Returns a setter so a test can move time forward.
    """
    current = {"now": TUESDAY_9AM}
    monkeypatch.setattr(BusinessClock, "now", staticmethod(lambda: current["now"]))

    def _set(value: datetime) -> datetime:
        current["now"] = value
        return value

    _set.initial = TUESDAY_9AM
    return _set


# ── Model factories ─────────────────────────────────────────────────

def _make_employee(
    *,
    role: str = "employee",
    reports_to_id: Optional[uuid.UUID] = None,
    first_name: str = "Test",
    last_name: str = "User",
    email: Optional[str] = None,
    is_technician: bool = False,
    available_leaves: float = 0,
) -> dict:
    emp_id = uuid.uuid4()
    return dict(
        id=emp_id,
        employee_code=f"EP-{uuid.uuid4().hex[:6].upper()}",
        first_name=first_name,
        last_name=last_name,
        email=email or f"user.{emp_id.hex[:8]}@example.com",
        role=role,
        is_technician=is_technician,
        reports_to_id=reports_to_id,
        booked_leaves=0,
        available_leaves=available_leaves,
        is_active=True,
        created_at=datetime.now(timezone.utc),
        updated_at=datetime.now(timezone.utc),
    )


@pytest.fixture
def make_employee(db):
    """Factory fixture: insert an employee and return its data dict."""
    from backend.core_hr.models import Employee

    async def _create(**kwargs) -> dict:
        data = _make_employee(**kwargs)
        db.add(Employee(**data))
        await db.commit()
        return data

    return _create


@pytest.fixture
def grant_leave(db):
    """Factory fixture: give an employee *days* of a leave type."""
    from backend.core_hr.models import Employee
    from backend.leave.models import LeaveBalance

    async def _grant(employee_id: uuid.UUID, leave_type, days: float) -> None:
        db.add(LeaveBalance(
            employee_id=employee_id, leave_type=leave_type, allotted=days, balance=days,
        ))
        employee = await db.get(Employee, employee_id)
        employee.available_leaves = (employee.available_leaves or 0) + days
        await db.commit()

    return _grant


@pytest.fixture
async def test_employee(make_employee) -> dict:
    """Insert an active plain employee."""
    return await make_employee()


# ── Auth helpers ────────────────────────────────────────────────────

def create_access_token(
    employee_id: uuid.UUID,
    expired: bool = False,
) -> str:
    """Generate a JWT access token for testing."""
    if expired:
        exp = datetime.now(timezone.utc) - timedelta(hours=1)
    else:
        exp = datetime.now(timezone.utc) + timedelta(hours=settings.JWT_EXPIRY_HOURS)
    payload = {
        "sub": str(employee_id),
        "type": "access",
        "exp": exp,
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def bearer(employee_id: uuid.UUID) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(employee_id)}"}


@pytest.fixture
async def auth_headers(test_employee) -> dict[str, str]:
    """Return Bearer auth headers for ``test_employee``."""
    return bearer(test_employee["id"])
