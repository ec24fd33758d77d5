# ruff: noqa: B008, TC001, TC003
from __future__ import annotations

import uuid
from datetime import datetime

from fastapi import APIRouter, Query, status

from leave_ledger.api.deps import AuthDep, HRDep
from leave_ledger.db import SessionDep
from leave_ledger.exceptions import PermissionDeniedError
from leave_ledger.schemas.auth import AuthContext
from leave_ledger.schemas.balance import (
    BalanceListResponse,
    BalanceResponse,
    CreateAdjustmentRequest,
    EncashmentRequest,
    ReconcileResponse,
    RetroDeductionRequest,
    TransactionListResponse,
    TransactionResponse,
)
from leave_ledger.services import balance as balance_service

balance_router = APIRouter(prefix="/balances", tags=["balances"])
adjustment_router = APIRouter(prefix="/adjustments", tags=["balances"])
retro_router = APIRouter(prefix="/retro-deductions", tags=["balances"])
encashment_router = APIRouter(prefix="/encashments", tags=["balances"])


def _ensure_can_read(auth: AuthContext, employee_id: uuid.UUID) -> None:
    if auth.user_id != employee_id and auth.role == "employee":
        raise PermissionDeniedError("Employees can only view their own balances")


@balance_router.get("/{employee_id}", response_model=BalanceListResponse)
async def get_employee_balances(
    employee_id: uuid.UUID,
    session: SessionDep,
    auth: AuthDep,
    as_of: datetime | None = Query(default=None),
) -> BalanceListResponse:
    """Balances of every active leave type for an employee."""
    _ensure_can_read(auth, employee_id)
    return await balance_service.get_employee_balances(session, employee_id, as_of)


@balance_router.get("/{employee_id}/{leave_type_id}", response_model=BalanceResponse)
async def get_balance(
    employee_id: uuid.UUID,
    leave_type_id: uuid.UUID,
    session: SessionDep,
    auth: AuthDep,
    as_of: datetime | None = Query(default=None),
) -> BalanceResponse:
    _ensure_can_read(auth, employee_id)
    return await balance_service.get_balance(session, employee_id, leave_type_id, as_of)


@balance_router.get("/{employee_id}/{leave_type_id}/transactions", response_model=TransactionListResponse)
async def list_transactions(
    employee_id: uuid.UUID,
    leave_type_id: uuid.UUID,
    session: SessionDep,
    auth: AuthDep,
    start: datetime | None = Query(default=None),
    end: datetime | None = Query(default=None),
    offset: int = Query(default=0, ge=0),
    limit: int = Query(default=50, ge=1, le=100),
) -> TransactionListResponse:
    """Ledger transactions for one balance, oldest first."""
    _ensure_can_read(auth, employee_id)
    return await balance_service.list_ledger(session, employee_id, leave_type_id, start, end, offset, limit)


@balance_router.post("/{employee_id}/{leave_type_id}/reconcile", response_model=ReconcileResponse)
async def reconcile_balance(
    employee_id: uuid.UUID,
    leave_type_id: uuid.UUID,
    session: SessionDep,
    _auth: HRDep,
) -> ReconcileResponse:
    """Rebuild the cached balance from the ledger (HR only)."""
    return await balance_service.reconcile(session, employee_id, leave_type_id)


@adjustment_router.post("", response_model=TransactionResponse, status_code=status.HTTP_201_CREATED)
async def create_adjustment(
    payload: CreateAdjustmentRequest,
    session: SessionDep,
    auth: HRDep,
) -> TransactionResponse:
    """Post a manual balance correction (HR only)."""
    return await balance_service.create_adjustment(session, auth, payload)


@retro_router.post("", response_model=TransactionResponse, status_code=status.HTTP_201_CREATED)
async def create_retro_deduction(
    payload: RetroDeductionRequest,
    session: SessionDep,
    auth: HRDep,
) -> TransactionResponse:
    """Deduct past leave taken outside the request workflow (HR only)."""
    return await balance_service.create_retro_deduction(session, auth, payload)


@encashment_router.post("", response_model=TransactionResponse, status_code=status.HTTP_201_CREATED)
async def create_encashment(
    payload: EncashmentRequest,
    session: SessionDep,
    auth: HRDep,
) -> TransactionResponse:
    """Cash out unused balance (HR only)."""
    return await balance_service.create_encashment(session, auth, payload)
