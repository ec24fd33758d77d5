# ruff: noqa: B008, TC001, TC003
"""API endpoints for accrual rules and the scheduled-job triggers."""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Query, status

from leave_ledger.api.deps import AuthDep, HRDep
from leave_ledger.db import SessionDep
from leave_ledger.schemas.accrual import (
    AccrualRuleInput,
    AccrualRuleListResponse,
    AccrualRuleResponse,
    AccrualRunResponse,
    AccrualTriggerRequest,
    BackfillRequest,
    CarryoverRunResponse,
    CarryoverTriggerRequest,
)
from leave_ledger.services import accrual as accrual_service
from leave_ledger.services import carryover as carryover_service
from leave_ledger.services.accrual import AccrualRunResult
from leave_ledger.services.carryover import CarryoverRunResult

# ---------------------------------------------------------------------------
# Rule configuration: /accrual-rules
# ---------------------------------------------------------------------------

accrual_rules_router = APIRouter(prefix="/accrual-rules", tags=["accruals"])


@accrual_rules_router.post("", response_model=AccrualRuleResponse, status_code=status.HTTP_201_CREATED)
async def create_accrual_rule(
    payload: AccrualRuleInput,
    session: SessionDep,
    auth: HRDep,
) -> AccrualRuleResponse:
    return await accrual_service.create_rule(session, auth, payload)


@accrual_rules_router.get("", response_model=AccrualRuleListResponse)
async def list_accrual_rules(
    session: SessionDep,
    _auth: AuthDep,
    leave_type_id: uuid.UUID | None = Query(default=None),
    include_history: bool = Query(default=False),
    offset: int = Query(default=0, ge=0),
    limit: int = Query(default=50, ge=1, le=100),
) -> AccrualRuleListResponse:
    """List accrual rules. ``include_history`` adds superseded versions."""
    return await accrual_service.list_rules(session, leave_type_id, include_history, offset, limit)


@accrual_rules_router.get("/{rule_id}", response_model=AccrualRuleResponse)
async def get_accrual_rule(
    rule_id: uuid.UUID,
    session: SessionDep,
    _auth: AuthDep,
) -> AccrualRuleResponse:
    return await accrual_service.get_rule(session, rule_id)


@accrual_rules_router.put("/{rule_id}", response_model=AccrualRuleResponse)
async def update_accrual_rule(
    rule_id: uuid.UUID,
    payload: AccrualRuleInput,
    session: SessionDep,
    auth: HRDep,
) -> AccrualRuleResponse:
    """Replace a rule with a new version. Earlier accruals keep the old version."""
    return await accrual_service.update_rule(session, auth, rule_id, payload)


@accrual_rules_router.delete("/{rule_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_accrual_rule(
    rule_id: uuid.UUID,
    session: SessionDep,
    auth: HRDep,
) -> None:
    await accrual_service.delete_rule(session, auth, rule_id)


# ---------------------------------------------------------------------------
# Triggers: /accruals/*
# ---------------------------------------------------------------------------

accrual_trigger_router = APIRouter(prefix="/accruals", tags=["accruals"])


def _accrual_response(result: AccrualRunResult) -> AccrualRunResponse:
    return AccrualRunResponse(
        job_run_id=result.job_run_id,
        target_date=result.target_date,
        processed=result.processed,
        accrued=result.accrued,
        suspended=result.suspended,
        skipped=result.skipped,
        errors=result.errors,
    )


def _carryover_response(result: CarryoverRunResult) -> CarryoverRunResponse:
    return CarryoverRunResponse(
        job_run_id=result.job_run_id,
        target_date=result.target_date,
        carried=result.carried,
        forfeited=result.forfeited,
        expired=result.expired,
        skipped=result.skipped,
        errors=result.errors,
    )


@accrual_trigger_router.post("/run", response_model=AccrualRunResponse)
async def trigger_accruals(
    payload: AccrualTriggerRequest,
    session: SessionDep,
    auth: HRDep,
) -> AccrualRunResponse:
    """Run accruals for the period containing ``target_date`` (HR only).

    Periods already accrued are skipped, so replaying a date is harmless.
    """
    result = await accrual_service.run_accruals(
        session, payload.target_date, rule_id=payload.rule_id, executed_by=auth.user_id
    )
    return _accrual_response(result)


@accrual_trigger_router.post("/backfill", response_model=AccrualRunResponse)
async def backfill_accruals(
    payload: BackfillRequest,
    session: SessionDep,
    auth: HRDep,
) -> AccrualRunResponse:
    result = await accrual_service.backfill_accruals(
        session, payload.rule_id, payload.start_date, payload.end_date, executed_by=auth.user_id
    )
    return _accrual_response(result)


@accrual_trigger_router.post("/carryover", response_model=CarryoverRunResponse)
async def trigger_carryover(
    payload: CarryoverTriggerRequest,
    session: SessionDep,
    auth: HRDep,
) -> CarryoverRunResponse:
    """Run the plan-year rollover. A no-op unless ``target_date`` starts a plan year."""
    result = await carryover_service.run_carryover(session, payload.target_date, executed_by=auth.user_id)
    return _carryover_response(result)


@accrual_trigger_router.post("/expiry", response_model=CarryoverRunResponse)
async def trigger_expiry(
    payload: CarryoverTriggerRequest,
    session: SessionDep,
    auth: HRDep,
) -> CarryoverRunResponse:
    result = await carryover_service.run_expiry_sweep(session, payload.target_date, executed_by=auth.user_id)
    return _carryover_response(result)
