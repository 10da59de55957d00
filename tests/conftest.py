"""Shared test fixtures — async DB, record store, client, auth helpers,
factories.

Uses SQLite + aiosqlite for fast isolated tests without PostgreSQL.
"""

from __future__ import annotations

import os

# Set test settings before any other import touches pydantic-settings
os.environ.setdefault("JWT_SECRET", "test-secret-for-ci-do-not-use-in-production")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")

import uuid
from datetime import date, datetime, time, timedelta, timezone
from typing import AsyncGenerator, Optional

import pytest
from httpx import ASGITransport, AsyncClient
from jose import jwt
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from staffops.common.constants import UserRole
from staffops.config import settings
from staffops.database import Base
from staffops.dependencies import get_record_store
from staffops.main import create_app
from staffops.reports.store import SqlRecordStore

# Import ALL model modules so every table is registered on Base.metadata
import staffops.attendance.models  # noqa: F401
import staffops.disciplinary.models  # noqa: F401
import staffops.leave.models  # noqa: F401
import staffops.staff.models  # noqa: F401

# ── SQLite compat: compile PG-specific types ────────────────────────

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

TestSessionFactory = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False,
)

# Fixed "today" for deterministic windows (a Friday)
TODAY = date(2026, 2, 20)


@pytest.fixture(autouse=True)
async def _setup_db():
    """Create all tables before each test, drop after."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


# ── Database session (for seeding) ──────────────────────────────────

@pytest.fixture
async def db() -> AsyncGenerator[AsyncSession, None]:
    """Session for seeding. Commit before composing: the store opens its
    own sessions on the same connection."""
    async with TestSessionFactory() as session:
        yield session
        await session.commit()


@pytest.fixture
def store() -> SqlRecordStore:
    return SqlRecordStore(TestSessionFactory)


# ── FastAPI test client ─────────────────────────────────────────────

@pytest.fixture
async def app():
    """Create a fresh app instance with the record store overridden."""
    application = create_app()
    application.dependency_overrides[get_record_store] = lambda: SqlRecordStore(TestSessionFactory)
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


# ── Model factories ─────────────────────────────────────────────────

def _make_staff(
    *,
    first_name: str = "Test",
    last_name: str = "Staff",
    department: Optional[str] = "Health",
    role: UserRole = UserRole.staff,
    is_active: bool = True,
    supervisor_id: Optional[uuid.UUID] = None,
    leave_balance: Optional[dict] = None,
    position: str = "Officer",
) -> dict:
    code = uuid.uuid4().hex[:6].upper()
    return dict(
        id=uuid.uuid4(),
        employee_code=f"MW-{code}",
        first_name=first_name,
        last_name=last_name,
        email=f"{first_name.lower()}.{code.lower()}@makongeni.go.ke",
        department=department,
        position=position,
        role=role.value,
        is_active=is_active,
        supervisor_id=supervisor_id,
        date_of_joining=date(2023, 1, 9),
        leave_balance=leave_balance,
        created_at=datetime(2023, 1, 9, tzinfo=timezone.utc),
    )


def _make_attendance(
    staff_id: uuid.UUID,
    day: date,
    status: Optional[str] = "present",
    *,
    check_in: Optional[datetime] = None,
    check_out: Optional[datetime] = None,
    remarks: Optional[str] = None,
) -> dict:
    return dict(
        id=uuid.uuid4(),
        staff_id=staff_id,
        date=day,
        status=status,
        check_in_time=check_in,
        check_out_time=check_out,
        remarks=remarks,
        created_at=datetime.combine(day, time(17, 0), tzinfo=timezone.utc),
    )


def _make_leave(
    staff_id: uuid.UUID,
    *,
    leave_type: str = "annual",
    status: str = "pending",
    start: date = date(2026, 2, 9),
    days: int = 5,
    created_at: Optional[datetime] = None,
) -> dict:
    end = start + timedelta(days=days - 1)
    return dict(
        id=uuid.uuid4(),
        staff_id=staff_id,
        leave_type=leave_type,
        start_date=start,
        end_date=end,
        number_of_days=days,
        status=status,
        created_at=created_at or datetime.combine(start - timedelta(days=7), time(9, 0), tzinfo=timezone.utc),
    )


def _make_case(
    staff_id: uuid.UUID,
    *,
    infraction_type: str = "minor",
    status: str = "open",
    sanction: Optional[str] = None,
    created_at: datetime = datetime(2026, 2, 2, 10, 0, tzinfo=timezone.utc),
) -> dict:
    return dict(
        id=uuid.uuid4(),
        staff_id=staff_id,
        infraction_type=infraction_type,
        status=status,
        date_of_infraction=created_at.date(),
        description="Late reporting",
        sanction=sanction,
        created_at=created_at,
    )


async def _seed(db: AsyncSession, model, *rows: dict) -> list:
    """Insert rows and commit so the record store can see them."""
    objs = [model(**row) for row in rows]
    db.add_all(objs)
    await db.commit()
    return objs


# ── Auth helpers ────────────────────────────────────────────────────

def create_access_token(
    staff_id: uuid.UUID,
    role: UserRole = UserRole.staff,
    expired: bool = False,
) -> str:
    """Generate a JWT access token for testing."""
    if expired:
        exp = datetime.now(timezone.utc) - timedelta(hours=1)
    else:
        exp = datetime.now(timezone.utc) + timedelta(hours=1)
    payload = {
        "sub": str(staff_id),
        "role": role.value,
        "exp": exp,
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def _auth_headers(staff_id: uuid.UUID, role: UserRole = UserRole.admin) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(staff_id, role=role)}"}
