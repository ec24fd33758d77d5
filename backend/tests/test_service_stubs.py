"""Tests for the directory, notification and integration client collaborators."""

from __future__ import annotations

import logging
import uuid
from datetime import date
from typing import TYPE_CHECKING

from leave_ledger.config import get_settings
from leave_ledger.models.enums import ExternalSystem
from leave_ledger.services.directory import EmployeeRecord, InMemoryDirectoryService, tenure_months
from leave_ledger.services.integration_client import (
    HttpIntegrationClient,
    InMemoryIntegrationClient,
    get_integration_client,
    reset_integration_clients,
)
from leave_ledger.services.notification import (
    InMemoryNotificationService,
    NotificationEvent,
    send_notification,
    set_notification_service,
)

if TYPE_CHECKING:
    import pytest

# ---------------------------------------------------------------------------
# Directory
# ---------------------------------------------------------------------------


async def test_directory_get_not_found() -> None:
    svc = InMemoryDirectoryService()
    assert await svc.get_employee(uuid.uuid4()) is None


async def test_directory_seed_and_list() -> None:
    svc = InMemoryDirectoryService()
    employee = EmployeeRecord(id=uuid.uuid4(), hire_date=date(2022, 5, 1), grade="C")
    svc.seed(employee)

    assert await svc.get_employee(employee.id) == employee
    assert await svc.list_employees() == [employee]


def test_tenure_months_counts_whole_months() -> None:
    assert tenure_months(date(2020, 1, 15), date(2020, 2, 14)) == 0
    assert tenure_months(date(2020, 1, 15), date(2020, 2, 15)) == 1
    assert tenure_months(date(2020, 1, 15), date(2025, 1, 15)) == 60
    assert tenure_months(date(2025, 1, 15), date(2024, 1, 1)) == 0


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------


async def test_notification_drops_missing_recipients(notifications: InMemoryNotificationService) -> None:
    request_id = uuid.uuid4()
    recipient = uuid.uuid4()

    await send_notification("request.submitted", [recipient, None], request_id=request_id, status="PENDING_MANAGER")
    await send_notification("request.escalated", [None])

    [event] = notifications.events
    assert event.recipient_ids == [recipient]
    assert event.data == {"status": "PENDING_MANAGER"}


async def test_notification_failure_is_logged_not_raised(caplog: pytest.LogCaptureFixture) -> None:
    class _Broken:
        async def notify(self, event: NotificationEvent) -> None:
            raise RuntimeError("smtp down")

    set_notification_service(_Broken())
    with caplog.at_level(logging.ERROR, logger="leave_ledger.services.notification"):
        await send_notification("request.finalized", [uuid.uuid4()])

    assert "could not be handed off" in caplog.text


# ---------------------------------------------------------------------------
# Integration clients
# ---------------------------------------------------------------------------


def test_unconfigured_system_uses_in_memory_client() -> None:
    assert isinstance(get_integration_client(ExternalSystem.TIME_MANAGEMENT), InMemoryIntegrationClient)


def test_configured_system_uses_http_client(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(get_settings(), "payroll_sync_url", "https://payroll.test/leave")
    reset_integration_clients()

    client = get_integration_client(ExternalSystem.PAYROLL)

    assert isinstance(client, HttpIntegrationClient)
    assert client.url == "https://payroll.test/leave"
    assert get_integration_client(ExternalSystem.PAYROLL) is client
