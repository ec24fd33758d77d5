from __future__ import annotations

import uuid
from typing import TYPE_CHECKING
from unittest.mock import AsyncMock

from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from leave_ledger.db import get_session
from leave_ledger.main import app
from leave_ledger.models.enums import ExternalSystem, IntegrationAction, IntegrationEntityType, IntegrationStatus
from leave_ledger.models.integration import IntegrationLog

if TYPE_CHECKING:
    from collections.abc import AsyncIterator


async def test_health_ok_without_exhausted_logs(async_client: AsyncClient) -> None:
    response = await async_client.get("/health")

    assert response.status_code == 200
    assert response.json() == {
        "status": "ok",
        "version": "0.1.0",
        "environment": "development",
        "exhausted_integration_logs": 0,
    }


async def test_health_ignores_failed_logs_with_retries_left(
    async_client: AsyncClient, db_session: AsyncSession
) -> None:
    db_session.add(
        IntegrationLog(
            entity_type=IntegrationEntityType.LEAVE_REQUEST,
            entity_id=uuid.uuid4(),
            external_system=ExternalSystem.PAYROLL,
            action=IntegrationAction.UPDATE_BALANCE,
            status=IntegrationStatus.FAILED,
            attempts=1,
            max_attempts=5,
        )
    )
    await db_session.commit()

    data = (await async_client.get("/health")).json()

    assert data["status"] == "ok"
    assert data["exhausted_integration_logs"] == 0


async def test_health_degraded_on_db_failure() -> None:
    """GET /health returns degraded status when the database is unreachable."""
    mock_session = AsyncMock(spec=AsyncSession)
    mock_session.execute.side_effect = ConnectionError("DB unreachable")

    async def _broken_session() -> AsyncIterator[AsyncSession]:
        yield mock_session

    app.dependency_overrides[get_session] = _broken_session
    try:
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            response = await client.get("/health")
        data = response.json()
        assert response.status_code == 200
        assert data["status"] == "degraded"
        assert data["exhausted_integration_logs"] is None
    finally:
        app.dependency_overrides.clear()
