# ruff: noqa: B008, TC001, TC003
from __future__ import annotations

import uuid

from fastapi import APIRouter, Query, status

from leave_ledger.api.deps import AuthDep, HRDep
from leave_ledger.db import SessionDep
from leave_ledger.models.enums import RequestStatus
from leave_ledger.schemas.request import (
    DecisionPayload,
    EscalationSweepResponse,
    HRDecisionPayload,
    RequestListResponse,
    RequestResponse,
    SubmitRequestPayload,
)
from leave_ledger.services import request as request_service

requests_router = APIRouter(prefix="/requests", tags=["requests"])


@requests_router.post("", response_model=RequestResponse, status_code=status.HTTP_201_CREATED)
async def submit_request(
    payload: SubmitRequestPayload,
    session: SessionDep,
    auth: AuthDep,
) -> RequestResponse:
    """Submit a leave request and route it to the approver."""
    return await request_service.submit_request(session, auth, payload)


@requests_router.get("", response_model=RequestListResponse)
async def list_requests(
    session: SessionDep,
    auth: AuthDep,
    status_filter: RequestStatus | None = Query(default=None, alias="status"),
    employee_id: uuid.UUID | None = Query(default=None),
    approver_id: uuid.UUID | None = Query(default=None),
    offset: int = Query(default=0, ge=0),
    limit: int = Query(default=50, ge=1, le=100),
) -> RequestListResponse:
    """List leave requests with optional filters.

    Employees only see their own requests.
    """
    if auth.role == "employee":
        employee_id = auth.user_id
    return await request_service.list_requests(session, status_filter, employee_id, approver_id, offset, limit)


@requests_router.post("/escalations/run", response_model=EscalationSweepResponse)
async def run_escalation_sweep(
    session: SessionDep,
    auth: HRDep,
) -> EscalationSweepResponse:
    """Escalate every pending request whose manager has not acted in time (HR only)."""
    result = await request_service.run_escalation_sweep(session, executed_by=auth.user_id)
    return EscalationSweepResponse(
        job_run_id=result.job_run_id,
        escalated=result.escalated,
        skipped=result.skipped,
        errors=result.errors,
    )


@requests_router.get("/{request_id}", response_model=RequestResponse)
async def get_request(
    request_id: uuid.UUID,
    session: SessionDep,
    _auth: AuthDep,
) -> RequestResponse:
    return await request_service.get_request(session, request_id)


@requests_router.post("/{request_id}/manager/approve", response_model=RequestResponse)
async def approve_by_manager(
    request_id: uuid.UUID,
    session: SessionDep,
    auth: AuthDep,
    payload: DecisionPayload | None = None,
) -> RequestResponse:
    return await request_service.approve_by_manager(session, auth, request_id, payload)


@requests_router.post("/{request_id}/manager/reject", response_model=RequestResponse)
async def reject_by_manager(
    request_id: uuid.UUID,
    session: SessionDep,
    auth: AuthDep,
    payload: DecisionPayload | None = None,
) -> RequestResponse:
    return await request_service.reject_by_manager(session, auth, request_id, payload)


@requests_router.post("/{request_id}/hr/approve", response_model=RequestResponse)
async def approve_by_hr(
    request_id: uuid.UUID,
    session: SessionDep,
    auth: HRDep,
    payload: HRDecisionPayload | None = None,
) -> RequestResponse:
    """HR approval. Overturning a manager rejection needs ``override_reason``."""
    return await request_service.approve_by_hr(session, auth, request_id, payload)


@requests_router.post("/{request_id}/hr/reject", response_model=RequestResponse)
async def reject_by_hr(
    request_id: uuid.UUID,
    session: SessionDep,
    auth: HRDep,
    payload: HRDecisionPayload | None = None,
) -> RequestResponse:
    return await request_service.reject_by_hr(session, auth, request_id, payload)


@requests_router.post("/{request_id}/cancel", response_model=RequestResponse)
async def cancel_request(
    request_id: uuid.UUID,
    session: SessionDep,
    auth: AuthDep,
    payload: DecisionPayload | None = None,
) -> RequestResponse:
    return await request_service.cancel_request(session, auth, request_id, payload)
