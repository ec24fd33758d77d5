# ruff: noqa: B008, TC001, TC003
"""Integration outbox inspection and manual resync."""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Query

from leave_ledger.api.deps import HRDep
from leave_ledger.db import SessionDep
from leave_ledger.models.enums import ExternalSystem, IntegrationStatus
from leave_ledger.schemas.integration import IntegrationLogListResponse, IntegrationLogResponse, SyncRunResponse
from leave_ledger.services import integration as integration_service

integrations_router = APIRouter(prefix="/integration-logs", tags=["integrations"])


@integrations_router.get("", response_model=IntegrationLogListResponse)
async def list_integration_logs(
    session: SessionDep,
    _auth: HRDep,
    entity_id: uuid.UUID | None = Query(default=None),
    external_system: ExternalSystem | None = Query(default=None),
    status_filter: IntegrationStatus | None = Query(default=None, alias="status"),
    offset: int = Query(default=0, ge=0),
    limit: int = Query(default=50, ge=1, le=100),
) -> IntegrationLogListResponse:
    return await integration_service.list_logs(
        session,
        entity_id=entity_id,
        external_system=external_system,
        status=status_filter,
        offset=offset,
        limit=limit,
    )


@integrations_router.post("/sync", response_model=SyncRunResponse)
async def run_sync(
    session: SessionDep,
    auth: HRDep,
) -> SyncRunResponse:
    """Deliver every due log now instead of waiting for the worker."""
    result = await integration_service.run_sync(session, executed_by=auth.user_id)
    return SyncRunResponse(
        job_run_id=result.job_run_id,
        attempted=result.attempted,
        succeeded=result.succeeded,
        failed=result.failed,
        exhausted=result.exhausted,
    )


@integrations_router.get("/{log_id}", response_model=IntegrationLogResponse)
async def get_integration_log(
    log_id: uuid.UUID,
    session: SessionDep,
    _auth: HRDep,
) -> IntegrationLogResponse:
    return await integration_service.get_log(session, log_id)


@integrations_router.post("/{log_id}/requeue", response_model=IntegrationLogResponse)
async def requeue_integration_log(
    log_id: uuid.UUID,
    session: SessionDep,
    auth: HRDep,
) -> IntegrationLogResponse:
    """Reset a failed log so the next sync pass retries it."""
    return await integration_service.requeue_log(session, auth, log_id)


@integrations_router.post("/{log_id}/supersede", response_model=IntegrationLogResponse)
async def supersede_integration_log(
    log_id: uuid.UUID,
    session: SessionDep,
    auth: HRDep,
) -> IntegrationLogResponse:
    return await integration_service.supersede_log(session, auth, log_id)
