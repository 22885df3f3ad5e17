"""Shared test fixtures — async DB, client, auth helpers, factories.

Reusable across all test modules (ledger, leave, attendance, policy, reports).
Uses SQLite + aiosqlite for fast isolated tests without PostgreSQL.
"""

from __future__ import annotations

import os

# Set test JWT_SECRET before any other import touches pydantic-settings
os.environ.setdefault("JWT_SECRET", "test-secret-for-ci-do-not-use-in-production")

import uuid
from datetime import date, datetime, timedelta, timezone
from typing import AsyncGenerator

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

from staffly.common.constants import EmploymentStatus, LeaveType, UserRole
from staffly.config import settings
from staffly.database import Base, get_db
from staffly.main import create_app

# Import ALL model modules so SQLAlchemy can resolve cross-module relationships
# (e.g. Employee → LeaveBalance, LeaveApplication)
import staffly.common.audit  # noqa: F401
import staffly.core_hr.models  # noqa: F401
import staffly.leave.models  # noqa: F401
import staffly.attendance.models  # noqa: F401
import staffly.policy.models  # noqa: F401

from staffly.auth.schemas import Actor
from staffly.core_hr.models import Department, Employee
from staffly.leave.models import LeaveBalance

# ── SQLite compat: compile PG-specific types to TEXT ────────────────

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
    """Reset rate limiter storage between tests to prevent cross-test interference."""
    from staffly.common.rate_limit import limiter

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
async def db() -> AsyncGenerator[AsyncSession, None]:
    async with TestSessionFactory() as session:
        yield session
        await session.commit()


# ── Multi-connection database (for concurrency tests) ───────────────

@pytest.fixture
async def concurrent_session_factory(tmp_path) -> AsyncGenerator[async_sessionmaker, None]:
    """File-backed SQLite where every session gets its own connection.

    Write transactions start with BEGIN IMMEDIATE so concurrent writers
    queue on the database lock instead of deadlocking on lock upgrade.
    """
    file_engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'concurrency.db'}",
        connect_args={"timeout": 30},
    )

    @event.listens_for(file_engine.sync_engine, "connect")
    def _disable_pysqlite_begin(dbapi_conn, connection_record):
        dbapi_conn.isolation_level = None

    @event.listens_for(file_engine.sync_engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    async with file_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(file_engine, class_=AsyncSession, expire_on_commit=False)
    await file_engine.dispose()


# ── Model factories ─────────────────────────────────────────────────

def _make_department(
    *,
    name: str = "Engineering",
    code: str = "ENG",
) -> dict:
    return dict(
        id=uuid.uuid4(),
        name=name,
        code=code,
        is_active=True,
        created_at=datetime.now(timezone.utc),
    )


def _make_employee(
    *,
    email: str | None = None,
    first_name: str = "Test",
    last_name: str = "User",
    department_id: uuid.UUID | None = None,
    role: UserRole = UserRole.employee,
    status: EmploymentStatus = EmploymentStatus.active,
    joining_date: date = date(2024, 1, 15),
    employee_code: str | None = None,
) -> dict:
    suffix = uuid.uuid4().hex[:6].upper()
    return dict(
        id=uuid.uuid4(),
        employee_code=employee_code or f"ST-{suffix}",
        first_name=first_name,
        last_name=last_name,
        email=email or f"user.{suffix.lower()}@staffly.test",
        department_id=department_id,
        role=role,
        status=status,
        joining_date=joining_date,
        created_at=datetime.now(timezone.utc),
        updated_at=datetime.now(timezone.utc),
    )


async def add_employee(db: AsyncSession, **kwargs) -> dict:
    data = _make_employee(**kwargs)
    db.add(Employee(**data))
    await db.flush()
    return data


async def add_balance(
    db: AsyncSession,
    employee_id: uuid.UUID,
    leave_type: LeaveType = LeaveType.casual,
    *,
    total: int = 12,
    used: int = 0,
    carried_forward: int = 0,
) -> LeaveBalance:
    balance = LeaveBalance(
        employee_id=employee_id,
        leave_type=leave_type,
        total=total,
        used=used,
        carried_forward=carried_forward,
    )
    db.add(balance)
    await db.flush()
    return balance


@pytest.fixture
async def test_department(db) -> dict:
    data = _make_department()
    db.add(Department(**data))
    await db.flush()
    return data


@pytest.fixture
async def test_employee(db, test_department) -> dict:
    """Insert an active employee in test_department."""
    return await add_employee(
        db,
        email="test.user@staffly.test",
        department_id=test_department["id"],
    )


@pytest.fixture
async def hr_employee(db, test_department) -> dict:
    return await add_employee(
        db,
        email="hr.user@staffly.test",
        first_name="Hana",
        last_name="Reyes",
        department_id=test_department["id"],
        role=UserRole.hr,
    )


@pytest.fixture
def employee_actor(test_employee) -> Actor:
    return Actor(id=test_employee["id"], role=UserRole.employee)


@pytest.fixture
def hr_actor(hr_employee) -> Actor:
    return Actor(id=hr_employee["id"], role=UserRole.hr)


# ── Auth helpers ────────────────────────────────────────────────────

def create_access_token(
    employee_id: uuid.UUID,
    role: UserRole = UserRole.employee,
    expired: bool = False,
) -> str:
    """Generate a JWT access token for testing."""
    if expired:
        exp = datetime.now(timezone.utc) - timedelta(hours=1)
    else:
        exp = datetime.now(timezone.utc) + timedelta(hours=settings.JWT_EXPIRY_HOURS)
    payload = {
        "sub": str(employee_id),
        "role": role.value,
        "type": "access",
        "exp": exp,
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def bearer(employee_id: uuid.UUID, role: UserRole = UserRole.employee) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(employee_id, role)}"}


@pytest.fixture
def auth_headers(test_employee) -> dict[str, str]:
    """Bearer headers for test_employee."""
    return bearer(test_employee["id"])


@pytest.fixture
def hr_headers(hr_employee) -> dict[str, str]:
    return bearer(hr_employee["id"], UserRole.hr)
