from __future__ import annotations

import uuid
from datetime import date
from typing import TYPE_CHECKING, Any

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from leave_ledger.db import get_session
from leave_ledger.main import app
from leave_ledger.models import SQLModel
from leave_ledger.models.calendar import HolidayCalendar
from leave_ledger.models.entitlement import EntitlementRule
from leave_ledger.models.leave_type import LeaveType
from leave_ledger.schemas.auth import AuthContext
from leave_ledger.services.directory import EmployeeRecord, InMemoryDirectoryService, set_directory_service
from leave_ledger.services.integration_client import reset_integration_clients
from leave_ledger.services.notification import InMemoryNotificationService, set_notification_service

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Iterator
    from decimal import Decimal
    from pathlib import Path

    from sqlalchemy.ext.asyncio import AsyncEngine

HR_ID = uuid.UUID("00000000-0000-4000-8000-0000000000a1")
MANAGER_ID = uuid.UUID("00000000-0000-4000-8000-0000000000b1")
EMPLOYEE_ID = uuid.UUID("00000000-0000-4000-8000-0000000000c1")

HR_HEADERS = {"X-User-Id": str(HR_ID), "X-Role": "hr"}
MANAGER_HEADERS = {"X-User-Id": str(MANAGER_ID), "X-Role": "manager"}
EMPLOYEE_HEADERS = {"X-User-Id": str(EMPLOYEE_ID), "X-Role": "employee"}

HR_AUTH = AuthContext(user_id=HR_ID, role="hr")
MANAGER_AUTH = AuthContext(user_id=MANAGER_ID, role="manager")
EMPLOYEE_AUTH = AuthContext(user_id=EMPLOYEE_ID, role="employee")


async def _sqlite_engine(url: str, begin: str = "BEGIN", **kwargs: Any) -> AsyncEngine:
    """SQLite engine with the schema created.

    pysqlite's own transaction handling breaks SAVEPOINT, so ``begin`` is
    emitted explicitly and the driver is kept in autocommit mode.
    """
    _engine = create_async_engine(url, **kwargs)

    @event.listens_for(_engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, _record) -> None:  # type: ignore[no-untyped-def]
        dbapi_connection.isolation_level = None

    @event.listens_for(_engine.sync_engine, "begin")
    def _on_begin(conn) -> None:  # type: ignore[no-untyped-def]
        conn.exec_driver_sql(begin)

    async with _engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    return _engine


@pytest.fixture
async def engine() -> AsyncIterator[AsyncEngine]:
    """Fresh in-memory SQLite database per test."""
    _engine = await _sqlite_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    yield _engine
    await _engine.dispose()


@pytest.fixture
async def session_factory(tmp_path: Path) -> AsyncIterator[async_sessionmaker[AsyncSession]]:
    """Sessions on a file-backed database, one connection each, for concurrent work.

    ``BEGIN IMMEDIATE`` makes a second writer wait for the first to commit,
    as row locks do on PostgreSQL.
    """
    _engine = await _sqlite_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}",
        begin="BEGIN IMMEDIATE",
        connect_args={"timeout": 30},
    )
    yield async_sessionmaker(_engine, expire_on_commit=False)
    await _engine.dispose()


@pytest.fixture
async def db_session(engine: AsyncEngine) -> AsyncIterator[AsyncSession]:
    factory = async_sessionmaker(engine, expire_on_commit=False)
    async with factory() as session:
        yield session


@pytest.fixture
async def async_client(db_session: AsyncSession) -> AsyncIterator[AsyncClient]:
    """Async HTTP client with the database session dependency overridden."""

    async def _override_get_session() -> AsyncIterator[AsyncSession]:
        yield db_session

    app.dependency_overrides[get_session] = _override_get_session
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Collaborator stubs
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def directory() -> Iterator[InMemoryDirectoryService]:
    """Directory seeded with one employee reporting to MANAGER_ID."""
    svc = InMemoryDirectoryService()
    svc.seed(EmployeeRecord(id=EMPLOYEE_ID, hire_date=date(2020, 1, 15), manager_id=MANAGER_ID, grade="B"))
    set_directory_service(svc)
    yield svc
    set_directory_service(InMemoryDirectoryService())


@pytest.fixture(autouse=True)
def notifications() -> Iterator[InMemoryNotificationService]:
    svc = InMemoryNotificationService()
    set_notification_service(svc)
    yield svc
    set_notification_service(InMemoryNotificationService())


@pytest.fixture(autouse=True)
def _integration_clients() -> Iterator[None]:
    reset_integration_clients()
    yield
    reset_integration_clients()


# ---------------------------------------------------------------------------
# Seed helpers
# ---------------------------------------------------------------------------


async def make_leave_type(session: AsyncSession, code: str = "ANNUAL", **overrides: object) -> LeaveType:
    leave_type = LeaveType(code=code, name=code.title(), **overrides)
    session.add(leave_type)
    await session.commit()
    return leave_type


async def make_entitlement_rule(
    session: AsyncSession,
    leave_type_id: uuid.UUID,
    days: Decimal | int = 21,
    **overrides: object,
) -> EntitlementRule:
    rule = EntitlementRule(leave_type_id=leave_type_id, name="base", yearly_entitlement_days=days, **overrides)
    session.add(rule)
    await session.commit()
    return rule


async def make_calendars(session: AsyncSession, *years: int) -> None:
    """Empty holiday calendars, so net days are weekdays only."""
    for year in years:
        session.add(HolidayCalendar(year=year, name=f"Calendar {year}"))
    await session.commit()
