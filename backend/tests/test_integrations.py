"""Integration outbox delivery, retry backoff, exhaustion and operator actions."""

from __future__ import annotations

import uuid
from datetime import timedelta
from typing import TYPE_CHECKING

import httpx
import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker

from leave_ledger.exceptions import ConflictError, IntegrationDeliveryError
from leave_ledger.models.base import now_utc
from leave_ledger.models.enums import (
    AckOutcome,
    ExternalSystem,
    IntegrationAction,
    IntegrationEntityType,
    IntegrationStatus,
)
from leave_ledger.models.integration import IntegrationLog
from leave_ledger.schemas.integration import IntegrationPayload
from leave_ledger.services import integration
from leave_ledger.services.integration_client import (
    HttpIntegrationClient,
    InMemoryIntegrationClient,
    set_integration_client,
)
from tests.conftest import HR_AUTH, HR_HEADERS

if TYPE_CHECKING:
    from httpx import AsyncClient
    from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession


@pytest.fixture
def payroll() -> InMemoryIntegrationClient:
    client = InMemoryIntegrationClient()
    set_integration_client(ExternalSystem.PAYROLL, client)
    return client


async def _enqueue(session: AsyncSession, max_attempts: int | None = None) -> IntegrationLog:
    log = integration.enqueue(
        session,
        entity_type=IntegrationEntityType.LEAVE_TRANSACTION,
        entity_id=uuid.uuid4(),
        external_system=ExternalSystem.PAYROLL,
        action=IntegrationAction.UPDATE_BALANCE,
        payload_summary={"amount_days": "-2.0000"},
    )
    if max_attempts is not None:
        log.max_attempts = max_attempts
    await session.commit()
    return log


def _payload() -> IntegrationPayload:
    return IntegrationPayload(
        log_id=uuid.uuid4(),
        entity_type=IntegrationEntityType.LEAVE_REQUEST,
        entity_id=uuid.uuid4(),
        action=IntegrationAction.BLOCK_ATTENDANCE,
    )


def test_backoff_doubles_up_to_the_cap() -> None:
    assert integration.backoff_delay(1) == timedelta(seconds=60)
    assert integration.backoff_delay(2) == timedelta(seconds=120)
    assert integration.backoff_delay(4) == timedelta(seconds=480)
    assert integration.backoff_delay(10) == timedelta(seconds=3600)


# ---------------------------------------------------------------------------
# Delivery
# ---------------------------------------------------------------------------


async def test_pending_log_is_delivered(db_session: AsyncSession, payroll: InMemoryIntegrationClient) -> None:
    log = await _enqueue(db_session)

    result = await integration.deliver_due_logs(db_session)

    assert (result.attempted, result.succeeded, result.failed) == (1, 1, 0)
    assert log.status == IntegrationStatus.SUCCESS
    assert log.attempts == 1
    assert log.external_id == "mem-1"
    [payload] = payroll.dispatched
    assert payload.log_id == log.id
    assert payload.summary == {"amount_days": "-2.0000"}

    again = await integration.deliver_due_logs(db_session)
    assert again.attempted == 0


async def test_failure_schedules_retry_with_backoff(
    db_session: AsyncSession, payroll: InMemoryIntegrationClient
) -> None:
    payroll.script(IntegrationDeliveryError("connection reset"))
    log = await _enqueue(db_session)
    now = now_utc()

    await integration.deliver_due_logs(db_session, now)

    assert log.status == IntegrationStatus.FAILED
    assert log.last_error == "connection reset"
    assert log.next_attempt_at == now + timedelta(seconds=60)
    assert not integration.is_due(log, now + timedelta(seconds=30))
    assert integration.is_due(log, now + timedelta(seconds=60))

    early = await integration.deliver_due_logs(db_session, now + timedelta(seconds=30))
    assert early.attempted == 0

    retried = await integration.deliver_due_logs(db_session, now + timedelta(seconds=60))
    assert retried.succeeded == 1
    assert log.status == IntegrationStatus.SUCCESS
    assert log.last_error is None
    assert log.attempts == 2


async def test_three_failures_then_success(db_session: AsyncSession, payroll: InMemoryIntegrationClient) -> None:
    payroll.script(
        IntegrationDeliveryError("timeout"),
        IntegrationDeliveryError("timeout"),
        IntegrationDeliveryError("bad gateway"),
    )
    log = await _enqueue(db_session)
    now = now_utc()

    for _ in range(3):
        failed = await integration.deliver_due_logs(db_session, now)
        assert failed.failed == 1
        assert log.status == IntegrationStatus.FAILED
        now = log.next_attempt_at

    assert log.attempts == 3
    assert log.last_error == "bad gateway"

    done = await integration.deliver_due_logs(db_session, now)

    assert done.succeeded == 1
    assert log.status == IntegrationStatus.SUCCESS
    assert log.attempts == 4
    assert log.last_error is None
    assert len(payroll.dispatched) == 4


async def test_log_read_by_two_passes_is_dispatched_once(
    db_session: AsyncSession, engine: AsyncEngine, payroll: InMemoryIntegrationClient
) -> None:
    log = await _enqueue(db_session)
    other_session = async_sessionmaker(engine, expire_on_commit=False)()
    other_copy = await other_session.get(IntegrationLog, log.id)
    await other_session.commit()

    first = await integration.attempt_delivery(db_session, log)
    second = await integration.attempt_delivery(other_session, other_copy)
    await other_session.close()

    assert first == IntegrationStatus.SUCCESS
    assert second is None
    assert len(payroll.dispatched) == 1
    assert log.attempts == 1


async def test_rejected_ack_counts_as_failure(db_session: AsyncSession, payroll: InMemoryIntegrationClient) -> None:
    payroll.script(AckOutcome.REJECTED)
    log = await _enqueue(db_session)

    result = await integration.deliver_due_logs(db_session)

    assert result.failed == 1
    assert log.status == IntegrationStatus.FAILED
    assert log.last_error == "rejected by external system"


async def test_already_applied_is_success(db_session: AsyncSession, payroll: InMemoryIntegrationClient) -> None:
    payroll.script(AckOutcome.ALREADY_APPLIED)
    log = await _enqueue(db_session)

    await integration.deliver_due_logs(db_session)

    assert log.status == IntegrationStatus.SUCCESS


async def test_exhausted_log_waits_for_operator(
    db_session: AsyncSession, payroll: InMemoryIntegrationClient, async_client: AsyncClient
) -> None:
    payroll.script(IntegrationDeliveryError("down"), IntegrationDeliveryError("still down"))
    log = await _enqueue(db_session, max_attempts=2)
    now = now_utc()

    await integration.deliver_due_logs(db_session, now)
    exhausted = await integration.deliver_due_logs(db_session, now + timedelta(seconds=60))

    assert exhausted.exhausted == 1
    assert log.next_attempt_at is None
    assert not integration.is_due(log, now + timedelta(days=1))
    assert (await integration.deliver_due_logs(db_session, now + timedelta(days=1))).attempted == 0

    resp = await async_client.get("/health")
    assert resp.json()["status"] == "degraded"
    assert resp.json()["exhausted_integration_logs"] == 1

    resp = await async_client.post(f"/integration-logs/{log.id}/requeue", headers=HR_HEADERS)
    assert resp.status_code == 200
    assert resp.json()["max_attempts"] == 7

    recovered = await integration.deliver_due_logs(db_session, now_utc() + timedelta(seconds=1))
    assert recovered.succeeded == 1


async def test_superseded_log_is_never_retried(db_session: AsyncSession, payroll: InMemoryIntegrationClient) -> None:
    payroll.script(IntegrationDeliveryError("down"))
    log = await _enqueue(db_session)
    now = now_utc()
    await integration.deliver_due_logs(db_session, now)

    response = await integration.supersede_log(db_session, HR_AUTH, log.id)

    assert response.status == IntegrationStatus.SUPERSEDED
    assert (await integration.deliver_due_logs(db_session, now + timedelta(hours=1))).attempted == 0


async def test_operator_actions_respect_status(db_session: AsyncSession, payroll: InMemoryIntegrationClient) -> None:
    log = await _enqueue(db_session)

    with pytest.raises(ConflictError):
        await integration.requeue_log(db_session, HR_AUTH, log.id)

    await integration.deliver_due_logs(db_session)
    with pytest.raises(ConflictError):
        await integration.supersede_log(db_session, HR_AUTH, log.id)
    assert payroll.dispatched


async def test_api_sync_and_listing(
    async_client: AsyncClient, db_session: AsyncSession, payroll: InMemoryIntegrationClient
) -> None:
    log = await _enqueue(db_session)

    resp = await async_client.post("/integration-logs/sync", headers=HR_HEADERS)
    assert resp.status_code == 200
    body = resp.json()
    assert (body["attempted"], body["succeeded"]) == (1, 1)
    assert body["job_run_id"] is not None

    resp = await async_client.get("/integration-logs", params={"status": "success"}, headers=HR_HEADERS)
    assert [item["id"] for item in resp.json()["items"]] == [str(log.id)]

    resp = await async_client.get(f"/integration-logs/{uuid.uuid4()}", headers=HR_HEADERS)
    assert resp.status_code == 404


# ---------------------------------------------------------------------------
# HTTP client
# ---------------------------------------------------------------------------


async def test_http_client_accepts_2xx_and_sends_idempotency_key() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(201, json={"id": "pay-42"})

    client = HttpIntegrationClient("https://payroll.test/leave", transport=httpx.MockTransport(handler))
    payload = _payload()

    ack = await client.dispatch(payload)

    assert ack.outcome == AckOutcome.ACCEPTED
    assert ack.external_id == "pay-42"
    assert seen[0].headers["Idempotency-Key"] == str(payload.log_id)


async def test_http_client_maps_conflict_to_already_applied() -> None:
    transport = httpx.MockTransport(lambda request: httpx.Response(409))
    client = HttpIntegrationClient("https://payroll.test/leave", transport=transport)

    ack = await client.dispatch(_payload())

    assert ack.outcome == AckOutcome.ALREADY_APPLIED
    assert ack.external_id is None


async def test_http_client_raises_on_server_error() -> None:
    transport = httpx.MockTransport(lambda request: httpx.Response(503, text="maintenance"))
    client = HttpIntegrationClient("https://payroll.test/leave", transport=transport)

    with pytest.raises(IntegrationDeliveryError, match="HTTP 503"):
        await client.dispatch(_payload())


async def test_http_client_wraps_transport_errors() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    client = HttpIntegrationClient("https://payroll.test/leave", transport=httpx.MockTransport(handler))

    with pytest.raises(IntegrationDeliveryError, match="ConnectError"):
        await client.dispatch(_payload())
