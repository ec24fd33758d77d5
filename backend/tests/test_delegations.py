from __future__ import annotations

import uuid
from typing import TYPE_CHECKING

from tests.conftest import HR_HEADERS, MANAGER_HEADERS, MANAGER_ID

if TYPE_CHECKING:
    from httpx import AsyncClient

    from leave_ledger.services.notification import InMemoryNotificationService

DELEGATE_ID = uuid.UUID("00000000-0000-4000-8000-0000000000d1")
DELEGATE_HEADERS = {"X-User-Id": str(DELEGATE_ID), "X-Role": "manager"}


async def _create(client: AsyncClient, **overrides: object) -> dict:
    body = {"delegate_id": str(DELEGATE_ID), "start_date": "2025-06-01", "end_date": "2025-06-30"}
    body.update(overrides)
    resp = await client.post("/delegations", json=body, headers=MANAGER_HEADERS)
    assert resp.status_code == 201, resp.text
    return resp.json()


async def _resolve(client: AsyncClient, as_of: str) -> dict:
    resp = await client.get(
        "/delegations/resolve", params={"manager_id": str(MANAGER_ID), "as_of": as_of}, headers=MANAGER_HEADERS
    )
    assert resp.status_code == 200
    return resp.json()


async def test_pending_delegation_does_not_route(
    async_client: AsyncClient, notifications: InMemoryNotificationService
) -> None:
    delegation = await _create(async_client)

    assert delegation["status"] == "PENDING"
    assert (await _resolve(async_client, "2025-06-15"))["approver_id"] == str(MANAGER_ID)
    [event] = notifications.of_type("delegation.requested")
    assert event.recipient_ids == [DELEGATE_ID]


async def test_accepted_delegation_routes_inside_window_only(async_client: AsyncClient) -> None:
    delegation = await _create(async_client)

    resp = await async_client.post(f"/delegations/{delegation['id']}/accept", headers=DELEGATE_HEADERS)
    assert resp.status_code == 200
    assert resp.json()["status"] == "ACCEPTED"
    assert resp.json()["responded_at"] is not None

    inside = await _resolve(async_client, "2025-06-30")
    assert inside["approver_id"] == str(DELEGATE_ID)
    assert inside["delegation_id"] == delegation["id"]
    assert (await _resolve(async_client, "2025-07-01"))["approver_id"] == str(MANAGER_ID)


async def test_only_delegate_can_respond(async_client: AsyncClient) -> None:
    delegation = await _create(async_client)

    resp = await async_client.post(f"/delegations/{delegation['id']}/accept", headers=MANAGER_HEADERS)
    assert resp.status_code == 403

    resp = await async_client.post(f"/delegations/{delegation['id']}/reject", headers=DELEGATE_HEADERS)
    assert resp.json()["status"] == "REJECTED"

    resp = await async_client.post(f"/delegations/{delegation['id']}/accept", headers=DELEGATE_HEADERS)
    assert resp.status_code == 409


async def test_revoke_stops_routing(async_client: AsyncClient) -> None:
    delegation = await _create(async_client, end_date=None)
    await async_client.post(f"/delegations/{delegation['id']}/accept", headers=DELEGATE_HEADERS)

    resp = await async_client.post(f"/delegations/{delegation['id']}/revoke", headers=DELEGATE_HEADERS)
    assert resp.status_code == 403

    resp = await async_client.post(f"/delegations/{delegation['id']}/revoke", headers=MANAGER_HEADERS)
    assert resp.status_code == 200
    assert resp.json()["status"] == "REVOKED"
    assert (await _resolve(async_client, "2025-06-15"))["approver_id"] == str(MANAGER_ID)

    resp = await async_client.post(f"/delegations/{delegation['id']}/revoke", headers=HR_HEADERS)
    assert resp.status_code == 409


async def test_overlapping_open_windows_conflict(async_client: AsyncClient) -> None:
    await _create(async_client)

    resp = await async_client.post(
        "/delegations",
        json={"delegate_id": str(uuid.uuid4()), "start_date": "2025-06-20", "end_date": "2025-07-10"},
        headers=MANAGER_HEADERS,
    )
    assert resp.status_code == 409

    await _create(async_client, start_date="2025-07-01", end_date="2025-07-10")


async def test_self_delegation_rejected(async_client: AsyncClient) -> None:
    resp = await async_client.post(
        "/delegations", json={"delegate_id": str(MANAGER_ID), "start_date": "2025-06-01"}, headers=MANAGER_HEADERS
    )
    assert resp.status_code == 422


async def test_list_filters_by_delegate_and_status(async_client: AsyncClient) -> None:
    delegation = await _create(async_client)
    await async_client.post(f"/delegations/{delegation['id']}/accept", headers=DELEGATE_HEADERS)

    resp = await async_client.get(
        "/delegations", params={"delegate_id": str(DELEGATE_ID), "status": "ACCEPTED"}, headers=HR_HEADERS
    )
    assert resp.json()["total"] == 1
    resp = await async_client.get("/delegations", params={"status": "PENDING"}, headers=HR_HEADERS)
    assert resp.json()["total"] == 0
