# ruff: noqa: B008, TC001, TC003
from __future__ import annotations

import uuid

from fastapi import APIRouter, Query, status

from leave_ledger.api.deps import AuthDep, HRDep
from leave_ledger.db import SessionDep
from leave_ledger.schemas.leave_type import (
    CreateLeaveTypeRequest,
    LeaveTypeListResponse,
    LeaveTypeResponse,
    UpdateLeaveTypeRequest,
)
from leave_ledger.services import leave_type as leave_type_service

router = APIRouter(prefix="/leave-types", tags=["leave-types"])


@router.post("", response_model=LeaveTypeResponse, status_code=status.HTTP_201_CREATED)
async def create_leave_type(
    payload: CreateLeaveTypeRequest,
    session: SessionDep,
    auth: HRDep,
) -> LeaveTypeResponse:
    """Register a leave type (HR only)."""
    return await leave_type_service.create_leave_type(session, auth, payload)


@router.get("", response_model=LeaveTypeListResponse)
async def list_leave_types(
    session: SessionDep,
    _auth: AuthDep,
    include_inactive: bool = Query(default=False),
    offset: int = Query(default=0, ge=0),
    limit: int = Query(default=50, ge=1, le=100),
) -> LeaveTypeListResponse:
    return await leave_type_service.list_leave_types(session, include_inactive, offset, limit)


@router.get("/{leave_type_id}", response_model=LeaveTypeResponse)
async def get_leave_type(
    leave_type_id: uuid.UUID,
    session: SessionDep,
    _auth: AuthDep,
) -> LeaveTypeResponse:
    return await leave_type_service.get_leave_type(session, leave_type_id)


@router.patch("/{leave_type_id}", response_model=LeaveTypeResponse)
async def update_leave_type(
    leave_type_id: uuid.UUID,
    payload: UpdateLeaveTypeRequest,
    session: SessionDep,
    auth: HRDep,
) -> LeaveTypeResponse:
    """Update adjudication settings of a leave type (HR only)."""
    return await leave_type_service.update_leave_type(session, auth, leave_type_id, payload)


@router.delete("/{leave_type_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_leave_type(
    leave_type_id: uuid.UUID,
    session: SessionDep,
    auth: HRDep,
) -> None:
    """Soft-delete a leave type. Its ledger history is kept."""
    await leave_type_service.delete_leave_type(session, auth, leave_type_id)
