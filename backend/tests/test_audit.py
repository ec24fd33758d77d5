from __future__ import annotations

import logging
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy.exc import OperationalError

from leave_ledger.services import audit, ledger
from tests.conftest import EMPLOYEE_HEADERS, EMPLOYEE_ID, HR_HEADERS, HR_ID, make_leave_type

if TYPE_CHECKING:
    import pytest
    from httpx import AsyncClient
    from sqlalchemy.ext.asyncio import AsyncSession

    from leave_ledger.models.audit import LeaveAudit


async def _adjust(client: AsyncClient, leave_type_id: str, amount: str = "3") -> dict:
    resp = await client.post(
        "/adjustments",
        json={
            "employee_id": str(EMPLOYEE_ID),
            "leave_type_id": leave_type_id,
            "amount_days": amount,
            "reason": "opening balance",
        },
        headers=HR_HEADERS,
    )
    assert resp.status_code == 201, resp.text
    return resp.json()


async def test_committed_change_is_audited(async_client: AsyncClient, db_session: AsyncSession) -> None:
    leave_type = await make_leave_type(db_session)
    transaction = await _adjust(async_client, str(leave_type.id))
    assert transaction["warnings"] == []

    resp = await async_client.get(
        "/audit", params={"target_type": "transaction", "target_id": transaction["id"]}, headers=HR_HEADERS
    )
    [entry] = resp.json()["items"]
    assert entry["changed_by"] == str(HR_ID)
    assert entry["before"] == {"balance_days": "0.0000"}
    assert entry["after"]["balance_days"] == "3.0000"
    assert entry["reason"] == "opening balance"


async def test_audit_failure_keeps_business_change(
    async_client: AsyncClient,
    db_session: AsyncSession,
    monkeypatch: pytest.MonkeyPatch,
    caplog: pytest.LogCaptureFixture,
) -> None:
    leave_type = await make_leave_type(db_session)
    leave_type_id = leave_type.id

    async def _failing_write(session: AsyncSession, entry: LeaveAudit) -> None:
        raise OperationalError("INSERT INTO leave_audit", {}, Exception("database is locked"))

    monkeypatch.setattr(audit, "_write_entry", _failing_write)

    with caplog.at_level(logging.ERROR, logger="leave_ledger.services.audit"):
        transaction = await _adjust(async_client, str(leave_type_id))

    assert transaction["warnings"] == ["audit_write_failed"]
    assert await ledger.get_balance(db_session, EMPLOYEE_ID, leave_type_id) == Decimal(3)
    assert any("business change is committed" in r.getMessage() for r in caplog.records)


def test_audit_warnings() -> None:
    assert audit.audit_warnings(True, True) == []
    assert audit.audit_warnings(True, False) == ["audit_write_failed"]


async def test_audit_and_job_runs_are_hr_only(async_client: AsyncClient) -> None:
    assert (await async_client.get("/audit", headers=EMPLOYEE_HEADERS)).status_code == 403
    assert (await async_client.get("/job-runs", headers=EMPLOYEE_HEADERS)).status_code == 403


async def test_job_runs_filter_by_type(async_client: AsyncClient, db_session: AsyncSession) -> None:
    await async_client.post("/accruals/run", json={"target_date": "2025-01-01"}, headers=HR_HEADERS)
    await async_client.post("/accruals/expiry", json={"target_date": "2025-01-01"}, headers=HR_HEADERS)

    resp = await async_client.get("/job-runs", params={"run_type": "accrual_run"}, headers=HR_HEADERS)
    [run] = resp.json()["items"]
    assert run["status"] == "success"
    assert run["executed_by"] == str(HR_ID)
    assert run["period"] == "2025-01-01"
