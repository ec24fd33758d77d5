# ruff: noqa: B008, TC001, TC003
from __future__ import annotations

import uuid
from datetime import date

from fastapi import APIRouter, Query, status

from leave_ledger.api.deps import AuthDep
from leave_ledger.db import SessionDep
from leave_ledger.models.base import now_utc
from leave_ledger.models.enums import DelegationStatus
from leave_ledger.schemas.delegation import (
    CreateDelegationRequest,
    DelegationListResponse,
    DelegationResponse,
    ResolvedApprover,
)
from leave_ledger.services import delegation as delegation_service

delegations_router = APIRouter(prefix="/delegations", tags=["delegations"])


@delegations_router.post("", response_model=DelegationResponse, status_code=status.HTTP_201_CREATED)
async def create_delegation(
    payload: CreateDelegationRequest,
    session: SessionDep,
    auth: AuthDep,
) -> DelegationResponse:
    """Delegate the caller's approval authority for a window."""
    return await delegation_service.create_delegation(session, auth, payload)


@delegations_router.get("", response_model=DelegationListResponse)
async def list_delegations(
    session: SessionDep,
    _auth: AuthDep,
    manager_id: uuid.UUID | None = Query(default=None),
    delegate_id: uuid.UUID | None = Query(default=None),
    status_filter: DelegationStatus | None = Query(default=None, alias="status"),
    offset: int = Query(default=0, ge=0),
    limit: int = Query(default=50, ge=1, le=100),
) -> DelegationListResponse:
    return await delegation_service.list_delegations(session, manager_id, delegate_id, status_filter, offset, limit)


@delegations_router.get("/resolve", response_model=ResolvedApprover)
async def resolve_approver(
    session: SessionDep,
    _auth: AuthDep,
    manager_id: uuid.UUID = Query(),
    as_of: date | None = Query(default=None),
) -> ResolvedApprover:
    """Who approves on behalf of ``manager_id`` on ``as_of`` (defaults to today)."""
    return await delegation_service.resolve_approver(session, manager_id, as_of or now_utc().date())


@delegations_router.get("/{delegation_id}", response_model=DelegationResponse)
async def get_delegation(
    delegation_id: uuid.UUID,
    session: SessionDep,
    _auth: AuthDep,
) -> DelegationResponse:
    return await delegation_service.get_delegation(session, delegation_id)


@delegations_router.post("/{delegation_id}/accept", response_model=DelegationResponse)
async def accept_delegation(
    delegation_id: uuid.UUID,
    session: SessionDep,
    auth: AuthDep,
) -> DelegationResponse:
    return await delegation_service.respond_to_delegation(session, auth, delegation_id, accept=True)


@delegations_router.post("/{delegation_id}/reject", response_model=DelegationResponse)
async def reject_delegation(
    delegation_id: uuid.UUID,
    session: SessionDep,
    auth: AuthDep,
) -> DelegationResponse:
    return await delegation_service.respond_to_delegation(session, auth, delegation_id, accept=False)


@delegations_router.post("/{delegation_id}/revoke", response_model=DelegationResponse)
async def revoke_delegation(
    delegation_id: uuid.UUID,
    session: SessionDep,
    auth: AuthDep,
) -> DelegationResponse:
    return await delegation_service.revoke_delegation(session, auth, delegation_id)
