# ruff: noqa: B008, TC001, TC003
from __future__ import annotations

import uuid
from datetime import datetime

from fastapi import APIRouter, Query

from leave_ledger.api.deps import HRDep
from leave_ledger.db import SessionDep
from leave_ledger.models.enums import AuditTargetType, JobRunType
from leave_ledger.schemas.audit import AuditListResponse
from leave_ledger.schemas.job import JobRunListResponse
from leave_ledger.services.audit import list_audit_entries
from leave_ledger.services.job import list_job_runs

audit_router = APIRouter(prefix="/audit", tags=["audit"])
job_runs_router = APIRouter(prefix="/job-runs", tags=["audit"])


@audit_router.get("", response_model=AuditListResponse)
async def list_audit(
    session: SessionDep,
    _auth: HRDep,
    target_type: AuditTargetType | None = Query(default=None),
    target_id: uuid.UUID | None = Query(default=None),
    changed_by: uuid.UUID | None = Query(default=None),
    start: datetime | None = Query(default=None),
    end: datetime | None = Query(default=None),
    offset: int = Query(default=0, ge=0),
    limit: int = Query(default=50, ge=1, le=100),
) -> AuditListResponse:
    """Query the audit trail (HR only)."""
    return await list_audit_entries(
        session,
        target_type=target_type,
        target_id=target_id,
        changed_by=changed_by,
        start=start,
        end=end,
        offset=offset,
        limit=limit,
    )


@job_runs_router.get("", response_model=JobRunListResponse)
async def list_runs(
    session: SessionDep,
    _auth: HRDep,
    run_type: JobRunType | None = Query(default=None),
    offset: int = Query(default=0, ge=0),
    limit: int = Query(default=50, ge=1, le=100),
) -> JobRunListResponse:
    return await list_job_runs(session, run_type, offset, limit)
