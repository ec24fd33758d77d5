"""Entitlement resolution.

Precedence, most specific first:

1. an individual ``PersonalizedEntitlement`` for the employee,
2. group overrides whose criteria match the employee (tie-break is the
   ``group_override_tiebreak`` setting, most recent by default),
3. the base ``EntitlementRule`` for the leave type whose grade and contract
   filters match, taking the highest tenure tier the employee has reached.

Overrides are explicit grants and are not gated by tenure.
"""

from __future__ import annotations

import uuid
from datetime import date
from typing import TYPE_CHECKING, Any

from sqlalchemy import func, or_, select
from sqlmodel import col

from leave_ledger.config import get_settings
from leave_ledger.exceptions import EligibilityError, EntitlementRuleNotFoundError, NotFoundError
from leave_ledger.models.base import ensure_utc, now_utc, to_days
from leave_ledger.models.entitlement import EntitlementRule, PersonalizedEntitlement
from leave_ledger.models.enums import AuditTargetType, EntitlementSource
from leave_ledger.schemas.entitlement import (
    EntitlementRuleListResponse,
    EntitlementRuleResponse,
    GroupCriteria,
    PersonalizedEntitlementListResponse,
    PersonalizedEntitlementResponse,
    ResolvedEntitlement,
)
from leave_ledger.services.audit import model_to_audit_dict, record_audit
from leave_ledger.services.directory import EmployeeRecord, get_directory_service, tenure_months
from leave_ledger.services.leave_type import get_leave_type_or_404

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from leave_ledger.schemas.auth import AuthContext
    from leave_ledger.schemas.entitlement import EntitlementRuleInput, PersonalizedEntitlementInput


# ---------------------------------------------------------------------------
# Matching helpers (no DB)
# ---------------------------------------------------------------------------


def _contains(values: list[Any], value: object) -> bool:
    return value is not None and str(value) in {str(v) for v in values}


def group_matches(criteria: GroupCriteria, employee: EmployeeRecord) -> bool:
    """Every non-empty criterion must contain the employee's attribute."""
    if criteria.is_empty():
        return False
    checks = [
        (criteria.department_ids, employee.department_id),
        (criteria.position_ids, employee.position_id),
        (criteria.locations, employee.location),
        (criteria.contract_types, employee.contract_type),
        (criteria.employee_ids, employee.id),
    ]
    return all(_contains(values, value) for values, value in checks if values)


def _rule_applies(rule: EntitlementRule, employee: EmployeeRecord) -> bool:
    if rule.grades and not _contains(rule.grades, employee.grade):
        return False
    return not (rule.contract_types and not _contains(rule.contract_types, employee.contract_type))


def _pick_group_override(overrides: list[PersonalizedEntitlement]) -> PersonalizedEntitlement:
    tiebreak = get_settings().group_override_tiebreak
    if tiebreak == "highest":
        return max(overrides, key=lambda o: (o.yearly_entitlement_days, ensure_utc(o.created_at)))
    if tiebreak == "lowest":
        return min(overrides, key=lambda o: (o.yearly_entitlement_days, _neg_ts(o)))
    return max(overrides, key=lambda o: ensure_utc(o.created_at))


def _neg_ts(override: PersonalizedEntitlement) -> float:
    return -ensure_utc(override.created_at).timestamp()


# ---------------------------------------------------------------------------
# Resolution
# ---------------------------------------------------------------------------


async def resolve_entitlement(
    session: AsyncSession,
    employee: EmployeeRecord,
    leave_type_id: uuid.UUID,
    as_of: date | None = None,
) -> ResolvedEntitlement:
    """Resolve the yearly entitlement that applies to ``employee`` on ``as_of``.

    Raises EntitlementRuleNotFoundError when the leave type has no base rule
    and no override applies, and EligibilityError when base rules exist but
    none applies to the employee's grade, contract type or tenure.
    """
    as_of = as_of or now_utc().date()

    overrides_result = await session.execute(
        select(PersonalizedEntitlement).where(
            col(PersonalizedEntitlement.leave_type_id) == leave_type_id,
            col(PersonalizedEntitlement.deleted_at).is_(None),
            or_(
                col(PersonalizedEntitlement.employee_id) == employee.id,
                col(PersonalizedEntitlement.employee_id).is_(None),
            ),
        )
    )
    overrides = list(overrides_result.scalars().all())

    individual = [o for o in overrides if o.employee_id == employee.id]
    if individual:
        chosen = max(individual, key=lambda o: ensure_utc(o.created_at))
        return ResolvedEntitlement(
            employee_id=employee.id,
            leave_type_id=leave_type_id,
            as_of=as_of,
            yearly_entitlement_days=to_days(chosen.yearly_entitlement_days),
            applied_rule_id=chosen.id,
            source=EntitlementSource.INDIVIDUAL,
        )

    groups = [
        o
        for o in overrides
        if o.employee_id is None
        and o.group_criteria is not None
        and group_matches(GroupCriteria.model_validate(o.group_criteria), employee)
    ]
    if groups:
        chosen = _pick_group_override(groups)
        return ResolvedEntitlement(
            employee_id=employee.id,
            leave_type_id=leave_type_id,
            as_of=as_of,
            yearly_entitlement_days=to_days(chosen.yearly_entitlement_days),
            applied_rule_id=chosen.id,
            source=EntitlementSource.GROUP,
        )

    rules_result = await session.execute(
        select(EntitlementRule).where(
            col(EntitlementRule.leave_type_id) == leave_type_id,
            col(EntitlementRule.is_active).is_(True),
            col(EntitlementRule.deleted_at).is_(None),
        )
    )
    rules = list(rules_result.scalars().all())
    if not rules:
        raise EntitlementRuleNotFoundError("No entitlement rule is configured for this leave type")

    applicable = [r for r in rules if _rule_applies(r, employee)]
    if not applicable:
        raise EligibilityError("No entitlement rule applies to the employee's grade or contract type")

    months = tenure_months(employee.hire_date, as_of)
    reached = [r for r in applicable if r.min_tenure_months <= months]
    if not reached:
        required = min(r.min_tenure_months for r in applicable)
        raise EligibilityError(f"Tenure of {months} months is below the required {required} months")

    chosen_rule = max(reached, key=lambda r: (r.min_tenure_months, ensure_utc(r.created_at)))
    return ResolvedEntitlement(
        employee_id=employee.id,
        leave_type_id=leave_type_id,
        as_of=as_of,
        yearly_entitlement_days=to_days(chosen_rule.yearly_entitlement_days),
        applied_rule_id=chosen_rule.id,
        source=EntitlementSource.BASE,
    )


async def resolve_for_employee_id(
    session: AsyncSession,
    employee_id: uuid.UUID,
    leave_type_id: uuid.UUID,
    as_of: date | None = None,
) -> ResolvedEntitlement:
    employee = await get_directory_service().get_employee(employee_id)
    if employee is None:
        raise NotFoundError("Employee not found")
    await get_leave_type_or_404(session, leave_type_id)
    return await resolve_entitlement(session, employee, leave_type_id, as_of)


# ---------------------------------------------------------------------------
# Base rule management
# ---------------------------------------------------------------------------


def _build_rule_response(rule: EntitlementRule) -> EntitlementRuleResponse:
    return EntitlementRuleResponse(
        id=rule.id,
        leave_type_id=rule.leave_type_id,
        name=rule.name,
        yearly_entitlement_days=rule.yearly_entitlement_days,
        min_tenure_months=rule.min_tenure_months,
        grades=rule.grades,
        contract_types=rule.contract_types,
        is_active=rule.is_active,
        created_at=rule.created_at,
    )


async def create_rule(
    session: AsyncSession,
    auth: AuthContext,
    payload: EntitlementRuleInput,
) -> EntitlementRuleResponse:
    await get_leave_type_or_404(session, payload.leave_type_id)
    rule = EntitlementRule(
        leave_type_id=payload.leave_type_id,
        name=payload.name,
        yearly_entitlement_days=to_days(payload.yearly_entitlement_days),
        min_tenure_months=payload.min_tenure_months,
        grades=payload.grades,
        contract_types=payload.contract_types,
    )
    session.add(rule)
    await session.commit()

    response = _build_rule_response(rule)
    await record_audit(
        session,
        target_type=AuditTargetType.CONFIGURATION,
        target_id=rule.id,
        changed_by=auth.user_id,
        after=model_to_audit_dict(rule),
        reason="entitlement rule created",
    )
    return response


async def delete_rule(session: AsyncSession, auth: AuthContext, rule_id: uuid.UUID) -> None:
    """Soft-delete a base rule; requests keep their ``rule_id`` reference."""
    rule = await session.get(EntitlementRule, rule_id)
    if rule is None or rule.deleted_at is not None:
        raise NotFoundError("Entitlement rule not found")
    before = model_to_audit_dict(rule)
    rule.is_active = False
    rule.deleted_at = now_utc()
    after = model_to_audit_dict(rule)
    await session.commit()
    await record_audit(
        session,
        target_type=AuditTargetType.CONFIGURATION,
        target_id=rule_id,
        changed_by=auth.user_id,
        before=before,
        after=after,
        reason="entitlement rule deleted",
    )


async def list_rules(
    session: AsyncSession,
    leave_type_id: uuid.UUID | None = None,
    offset: int = 0,
    limit: int = 50,
) -> EntitlementRuleListResponse:
    filters = [col(EntitlementRule.deleted_at).is_(None)]
    if leave_type_id is not None:
        filters.append(col(EntitlementRule.leave_type_id) == leave_type_id)
    count_result = await session.execute(select(func.count()).select_from(EntitlementRule).where(*filters))
    total = count_result.scalar_one()
    result = await session.execute(
        select(EntitlementRule)
        .where(*filters)
        .order_by(col(EntitlementRule.min_tenure_months), col(EntitlementRule.created_at))
        .offset(offset)
        .limit(limit)
    )
    return EntitlementRuleListResponse(items=[_build_rule_response(r) for r in result.scalars().all()], total=total)


# ---------------------------------------------------------------------------
# Personalized overrides
# ---------------------------------------------------------------------------


def _build_override_response(override: PersonalizedEntitlement) -> PersonalizedEntitlementResponse:
    return PersonalizedEntitlementResponse(
        id=override.id,
        leave_type_id=override.leave_type_id,
        employee_id=override.employee_id,
        group_criteria=GroupCriteria.model_validate(override.group_criteria) if override.group_criteria else None,
        yearly_entitlement_days=override.yearly_entitlement_days,
        reason=override.reason,
        created_at=override.created_at,
    )


async def create_override(
    session: AsyncSession,
    auth: AuthContext,
    payload: PersonalizedEntitlementInput,
) -> PersonalizedEntitlementResponse:
    await get_leave_type_or_404(session, payload.leave_type_id)
    override = PersonalizedEntitlement(
        leave_type_id=payload.leave_type_id,
        employee_id=payload.employee_id,
        group_criteria=payload.group_criteria.model_dump(mode="json") if payload.employee_id is None else None,
        yearly_entitlement_days=to_days(payload.yearly_entitlement_days),
        reason=payload.reason,
        created_by=auth.user_id,
    )
    session.add(override)
    await session.commit()

    response = _build_override_response(override)
    await record_audit(
        session,
        target_type=AuditTargetType.CONFIGURATION,
        target_id=override.id,
        changed_by=auth.user_id,
        after=model_to_audit_dict(override),
        reason=payload.reason,
    )
    return response


async def delete_override(session: AsyncSession, auth: AuthContext, override_id: uuid.UUID) -> None:
    override = await session.get(PersonalizedEntitlement, override_id)
    if override is None or override.deleted_at is not None:
        raise NotFoundError("Personalized entitlement not found")
    before = model_to_audit_dict(override)
    override.deleted_at = now_utc()
    after = model_to_audit_dict(override)
    await session.commit()
    await record_audit(
        session,
        target_type=AuditTargetType.CONFIGURATION,
        target_id=override_id,
        changed_by=auth.user_id,
        before=before,
        after=after,
        reason="personalized entitlement deleted",
    )


async def list_overrides(
    session: AsyncSession,
    leave_type_id: uuid.UUID | None = None,
    employee_id: uuid.UUID | None = None,
    offset: int = 0,
    limit: int = 50,
) -> PersonalizedEntitlementListResponse:
    filters = [col(PersonalizedEntitlement.deleted_at).is_(None)]
    if leave_type_id is not None:
        filters.append(col(PersonalizedEntitlement.leave_type_id) == leave_type_id)
    if employee_id is not None:
        filters.append(col(PersonalizedEntitlement.employee_id) == employee_id)
    count_result = await session.execute(select(func.count()).select_from(PersonalizedEntitlement).where(*filters))
    total = count_result.scalar_one()
    result = await session.execute(
        select(PersonalizedEntitlement)
        .where(*filters)
        .order_by(col(PersonalizedEntitlement.created_at).desc())
        .offset(offset)
        .limit(limit)
    )
    return PersonalizedEntitlementListResponse(
        items=[_build_override_response(o) for o in result.scalars().all()], total=total
    )
