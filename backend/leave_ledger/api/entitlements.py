# ruff: noqa: B008, TC001, TC003
from __future__ import annotations

import uuid
from datetime import date

from fastapi import APIRouter, Query, status

from leave_ledger.api.deps import AuthDep, HRDep
from leave_ledger.db import SessionDep
from leave_ledger.exceptions import PermissionDeniedError
from leave_ledger.schemas.entitlement import (
    EntitlementRuleInput,
    EntitlementRuleListResponse,
    EntitlementRuleResponse,
    PersonalizedEntitlementInput,
    PersonalizedEntitlementListResponse,
    PersonalizedEntitlementResponse,
    ResolvedEntitlement,
)
from leave_ledger.services import entitlement as entitlement_service

rules_router = APIRouter(prefix="/entitlement-rules", tags=["entitlements"])
overrides_router = APIRouter(prefix="/personalized-entitlements", tags=["entitlements"])
resolve_router = APIRouter(prefix="/entitlements", tags=["entitlements"])


@rules_router.post("", response_model=EntitlementRuleResponse, status_code=status.HTTP_201_CREATED)
async def create_entitlement_rule(
    payload: EntitlementRuleInput,
    session: SessionDep,
    auth: HRDep,
) -> EntitlementRuleResponse:
    return await entitlement_service.create_rule(session, auth, payload)


@rules_router.get("", response_model=EntitlementRuleListResponse)
async def list_entitlement_rules(
    session: SessionDep,
    _auth: AuthDep,
    leave_type_id: uuid.UUID | None = Query(default=None),
    offset: int = Query(default=0, ge=0),
    limit: int = Query(default=50, ge=1, le=100),
) -> EntitlementRuleListResponse:
    return await entitlement_service.list_rules(session, leave_type_id, offset, limit)


@rules_router.delete("/{rule_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_entitlement_rule(
    rule_id: uuid.UUID,
    session: SessionDep,
    auth: HRDep,
) -> None:
    await entitlement_service.delete_rule(session, auth, rule_id)


@overrides_router.post("", response_model=PersonalizedEntitlementResponse, status_code=status.HTTP_201_CREATED)
async def create_personalized_entitlement(
    payload: PersonalizedEntitlementInput,
    session: SessionDep,
    auth: HRDep,
) -> PersonalizedEntitlementResponse:
    """Grant an individual or group override of the base entitlement (HR only)."""
    return await entitlement_service.create_override(session, auth, payload)


@overrides_router.get("", response_model=PersonalizedEntitlementListResponse)
async def list_personalized_entitlements(
    session: SessionDep,
    _auth: HRDep,
    leave_type_id: uuid.UUID | None = Query(default=None),
    employee_id: uuid.UUID | None = Query(default=None),
    offset: int = Query(default=0, ge=0),
    limit: int = Query(default=50, ge=1, le=100),
) -> PersonalizedEntitlementListResponse:
    return await entitlement_service.list_overrides(session, leave_type_id, employee_id, offset, limit)


@overrides_router.delete("/{override_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_personalized_entitlement(
    override_id: uuid.UUID,
    session: SessionDep,
    auth: HRDep,
) -> None:
    await entitlement_service.delete_override(session, auth, override_id)


@resolve_router.get("/{employee_id}/{leave_type_id}", response_model=ResolvedEntitlement)
async def resolve_entitlement(
    employee_id: uuid.UUID,
    leave_type_id: uuid.UUID,
    session: SessionDep,
    auth: AuthDep,
    as_of: date | None = Query(default=None),
) -> ResolvedEntitlement:
    """Yearly entitlement that applies to the employee on ``as_of``."""
    if auth.user_id != employee_id and auth.role == "employee":
        raise PermissionDeniedError("Employees can only view their own entitlements")
    return await entitlement_service.resolve_for_employee_id(session, employee_id, leave_type_id, as_of)
