"""Accrual engine: periodic crediting of leave balances from accrual rules."""

from __future__ import annotations

import logging
import uuid
from calendar import monthrange
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import ROUND_CEILING, ROUND_FLOOR, ROUND_HALF_UP, Decimal
from typing import TYPE_CHECKING

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlmodel import col

from leave_ledger.exceptions import ConflictError, EligibilityError, EntitlementRuleNotFoundError, NotFoundError
from leave_ledger.models.accrual import AccrualPeriodMarker, AccrualRule
from leave_ledger.models.base import SYSTEM_ACTOR, now_utc, to_days
from leave_ledger.models.enums import (
    AccrualFrequency,
    AuditTargetType,
    EmploymentStatus,
    JobRunType,
    RoundingMethod,
    TransactionType,
)
from leave_ledger.schemas.accrual import AccrualRuleListResponse, AccrualRuleResponse
from leave_ledger.services import ledger
from leave_ledger.services.audit import model_to_audit_dict, record_audit
from leave_ledger.services.directory import EmployeeRecord, get_directory_service
from leave_ledger.services.entitlement import resolve_entitlement
from leave_ledger.services.job import finish_job_run, start_job_run
from leave_ledger.services.leave_type import get_leave_type_or_404

if TYPE_CHECKING:
    from collections.abc import Iterator

    from sqlalchemy.ext.asyncio import AsyncSession

    from leave_ledger.schemas.accrual import AccrualRuleInput
    from leave_ledger.schemas.auth import AuthContext

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Result dataclasses
# ---------------------------------------------------------------------------


@dataclass
class AccrualRunResult:
    """Summary of an accrual run."""

    target_date: date
    job_run_id: uuid.UUID | None = None
    processed: int = 0
    accrued: int = 0
    suspended: int = 0
    skipped: int = 0
    errors: int = 0


@dataclass(frozen=True)
class _RuleInfo:
    """Detached copy of the rule fields a run needs; survives session rollbacks."""

    id: uuid.UUID
    lineage_id: uuid.UUID
    version: int
    leave_type_id: uuid.UUID
    frequency: AccrualFrequency
    rate_per_period: Decimal
    rounding_method: RoundingMethod
    suspend_during_unpaid_leave: bool
    max_carryover_days: Decimal | None
    carryover_expiry_years: int | None

    @classmethod
    def from_rule(cls, rule: AccrualRule) -> _RuleInfo:
        return cls(
            id=rule.id,
            lineage_id=rule.lineage_id,
            version=rule.version,
            leave_type_id=rule.leave_type_id,
            frequency=AccrualFrequency(rule.frequency),
            rate_per_period=Decimal(rule.rate_per_period),
            rounding_method=RoundingMethod(rule.rounding_method),
            suspend_during_unpaid_leave=rule.suspend_during_unpaid_leave,
            max_carryover_days=Decimal(rule.max_carryover_days) if rule.max_carryover_days is not None else None,
            carryover_expiry_years=rule.carryover_expiry_years,
        )


# ---------------------------------------------------------------------------
# Pure computation helpers (no DB)
# ---------------------------------------------------------------------------


def period_bounds(frequency: AccrualFrequency, target_date: date) -> tuple[date, date]:
    """Return the inclusive (first_day, last_day) of the period containing ``target_date``."""
    if frequency == AccrualFrequency.MONTHLY:
        _, days_in_month = monthrange(target_date.year, target_date.month)
        return target_date.replace(day=1), target_date.replace(day=days_in_month)

    if frequency == AccrualFrequency.QUARTERLY:
        first_month = 3 * ((target_date.month - 1) // 3) + 1
        last_month = first_month + 2
        _, days_in_last = monthrange(target_date.year, last_month)
        return date(target_date.year, first_month, 1), date(target_date.year, last_month, days_in_last)

    # YEARLY
    return date(target_date.year, 1, 1), date(target_date.year, 12, 31)


def period_key(frequency: AccrualFrequency, target_date: date) -> str:
    """Stable identifier of a period: ``2025-03``, ``2025-Q1`` or ``2025``."""
    if frequency == AccrualFrequency.MONTHLY:
        return f"{target_date.year}-{target_date.month:02d}"
    if frequency == AccrualFrequency.QUARTERLY:
        return f"{target_date.year}-Q{(target_date.month - 1) // 3 + 1}"
    return str(target_date.year)


def iter_periods(frequency: AccrualFrequency, start_date: date, end_date: date) -> Iterator[date]:
    """Yield the first day of every period overlapping [start_date, end_date]."""
    current, _ = period_bounds(frequency, start_date)
    while current <= end_date:
        yield current
        _, last_day = period_bounds(frequency, current)
        current = last_day + timedelta(days=1)


def round_accrual(amount: Decimal, method: RoundingMethod) -> Decimal:
    """Apply a rule's rounding method to a raw accrual amount."""
    if method == RoundingMethod.ARITHMETIC:
        return to_days(amount.quantize(Decimal(1), rounding=ROUND_HALF_UP))
    if method == RoundingMethod.CEIL:
        return to_days(amount.quantize(Decimal(1), rounding=ROUND_CEILING))
    if method == RoundingMethod.FLOOR:
        return to_days(amount.quantize(Decimal(1), rounding=ROUND_FLOOR))
    return to_days(amount)


def _build_accrual_key(rule: _RuleInfo, employee_id: uuid.UUID, period: str) -> str:
    """Ledger idempotency key for one accrual."""
    return f"accrual:{rule.lineage_id}:{employee_id}:{period}"


# ---------------------------------------------------------------------------
# Rule management
# ---------------------------------------------------------------------------


def _build_rule_response(rule: AccrualRule) -> AccrualRuleResponse:
    return AccrualRuleResponse(
        id=rule.id,
        lineage_id=rule.lineage_id,
        version=rule.version,
        previous_version_id=rule.previous_version_id,
        leave_type_id=rule.leave_type_id,
        name=rule.name,
        frequency=AccrualFrequency(rule.frequency),
        rate_per_period=rule.rate_per_period,
        rounding_method=RoundingMethod(rule.rounding_method),
        max_carryover_days=rule.max_carryover_days,
        carryover_expiry_years=rule.carryover_expiry_years,
        suspend_during_unpaid_leave=rule.suspend_during_unpaid_leave,
        is_active=rule.is_active,
        created_at=rule.created_at,
        deleted_at=rule.deleted_at,
    )


async def get_rule_or_404(session: AsyncSession, rule_id: uuid.UUID) -> AccrualRule:
    """Fetch the current (non-deleted) version of a rule."""
    rule = await session.get(AccrualRule, rule_id)
    if rule is None or rule.deleted_at is not None:
        raise NotFoundError("Accrual rule not found")
    return rule


async def _ensure_single_active_rule(
    session: AsyncSession,
    leave_type_id: uuid.UUID,
    *,
    exclude_lineage_id: uuid.UUID | None = None,
) -> None:
    """A leave type may have at most one active rule."""
    filters = [
        col(AccrualRule.leave_type_id) == leave_type_id,
        col(AccrualRule.is_active).is_(True),
        col(AccrualRule.deleted_at).is_(None),
    ]
    if exclude_lineage_id is not None:
        filters.append(col(AccrualRule.lineage_id) != exclude_lineage_id)
    result = await session.execute(select(func.count()).select_from(AccrualRule).where(*filters))
    if result.scalar_one() > 0:
        raise ConflictError("The leave type already has an active accrual rule")


def _rule_from_input(payload: AccrualRuleInput, created_by: uuid.UUID) -> AccrualRule:
    return AccrualRule(
        lineage_id=uuid.uuid4(),
        leave_type_id=payload.leave_type_id,
        name=payload.name,
        frequency=payload.frequency.value,
        rate_per_period=to_days(payload.rate_per_period),
        rounding_method=payload.rounding_method.value,
        max_carryover_days=(
            to_days(payload.max_carryover_days) if payload.max_carryover_days is not None else None
        ),
        carryover_expiry_years=payload.carryover_expiry_years,
        suspend_during_unpaid_leave=payload.suspend_during_unpaid_leave,
        is_active=payload.is_active,
        created_by=created_by,
    )


async def create_rule(session: AsyncSession, auth: AuthContext, payload: AccrualRuleInput) -> AccrualRuleResponse:
    await get_leave_type_or_404(session, payload.leave_type_id)
    if payload.is_active:
        await _ensure_single_active_rule(session, payload.leave_type_id)

    rule = _rule_from_input(payload, auth.user_id)
    session.add(rule)
    await session.commit()

    response = _build_rule_response(rule)
    await record_audit(
        session,
        target_type=AuditTargetType.CONFIGURATION,
        target_id=rule.id,
        changed_by=auth.user_id,
        after=model_to_audit_dict(rule),
        reason="accrual rule created",
    )
    return response


async def update_rule(
    session: AsyncSession,
    auth: AuthContext,
    rule_id: uuid.UUID,
    payload: AccrualRuleInput,
) -> AccrualRuleResponse:
    """Replace a rule with a new version.

    Flow:
    1. Soft-delete the current version.
    2. Insert the new version with the same ``lineage_id`` and ``version + 1``.
    3. Audit the before/after pair.

    Period markers key on the lineage, so the new version does not re-accrue
    a period the old one already credited.
    """
    current = await get_rule_or_404(session, rule_id)
    await get_leave_type_or_404(session, payload.leave_type_id)
    if payload.is_active:
        await _ensure_single_active_rule(session, payload.leave_type_id, exclude_lineage_id=current.lineage_id)

    before = model_to_audit_dict(current)
    current.is_active = False
    current.deleted_at = now_utc()

    replacement = _rule_from_input(payload, auth.user_id)
    replacement.lineage_id = current.lineage_id
    replacement.version = current.version + 1
    replacement.previous_version_id = current.id
    session.add(replacement)
    await session.commit()

    response = _build_rule_response(replacement)
    await record_audit(
        session,
        target_type=AuditTargetType.CONFIGURATION,
        target_id=replacement.id,
        changed_by=auth.user_id,
        before=before,
        after=model_to_audit_dict(replacement),
        reason=f"accrual rule updated to version {replacement.version}",
    )
    return response


async def delete_rule(session: AsyncSession, auth: AuthContext, rule_id: uuid.UUID) -> None:
    rule = await get_rule_or_404(session, rule_id)
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
        reason="accrual rule deleted",
    )


async def get_rule(session: AsyncSession, rule_id: uuid.UUID) -> AccrualRuleResponse:
    rule = await session.get(AccrualRule, rule_id)
    if rule is None:
        raise NotFoundError("Accrual rule not found")
    return _build_rule_response(rule)


async def list_rules(
    session: AsyncSession,
    leave_type_id: uuid.UUID | None = None,
    include_history: bool = False,
    offset: int = 0,
    limit: int = 50,
) -> AccrualRuleListResponse:
    filters = []
    if not include_history:
        filters.append(col(AccrualRule.deleted_at).is_(None))
    if leave_type_id is not None:
        filters.append(col(AccrualRule.leave_type_id) == leave_type_id)

    count_result = await session.execute(select(func.count()).select_from(AccrualRule).where(*filters))
    total = count_result.scalar_one()
    result = await session.execute(
        select(AccrualRule)
        .where(*filters)
        .order_by(col(AccrualRule.lineage_id), col(AccrualRule.version))
        .offset(offset)
        .limit(limit)
    )
    return AccrualRuleListResponse(items=[_build_rule_response(r) for r in result.scalars().all()], total=total)


# ---------------------------------------------------------------------------
# Accrual posting
# ---------------------------------------------------------------------------


async def _is_eligible(session: AsyncSession, rule: _RuleInfo, employee: EmployeeRecord, as_of: date) -> bool:
    """Entitlement eligibility gates accrual; a leave type without entitlement rules accrues freely."""
    try:
        await resolve_entitlement(session, employee, rule.leave_type_id, as_of)
    except EligibilityError:
        return False
    except EntitlementRuleNotFoundError:
        return True
    return True


async def _accrue_period(
    session: AsyncSession,
    rule: _RuleInfo,
    employee: EmployeeRecord,
    period_start: date,
    result: AccrualRunResult,
) -> None:
    """Accrue one period of one rule for one employee, at most once."""
    _, period_end = period_bounds(rule.frequency, period_start)
    period = period_key(rule.frequency, period_start)

    if employee.employment_status == EmploymentStatus.TERMINATED or employee.hire_date > period_end:
        result.skipped += 1
        return
    if not await _is_eligible(session, rule, employee, period_end):
        result.skipped += 1
        return

    suspended = rule.suspend_during_unpaid_leave and employee.employment_status == EmploymentStatus.UNPAID_LEAVE
    amount = Decimal(0) if suspended else round_accrual(rule.rate_per_period, rule.rounding_method)

    transaction = None
    async with ledger.locked_balance(session, employee.id, rule.leave_type_id) as projection:
        marker = AccrualPeriodMarker(
            employee_id=employee.id,
            rule_id=rule.lineage_id,
            rule_version_id=rule.id,
            period=period,
            suspended=suspended,
        )
        # Insert the marker in a savepoint so a duplicate only rolls back this insert
        try:
            async with session.begin_nested():
                session.add(marker)
                await session.flush()
        except IntegrityError:
            await session.rollback()
            result.skipped += 1
            return

        if amount > 0:
            transaction = await ledger.append_locked(
                session,
                projection,
                amount=amount,
                transaction_type=TransactionType.ACCRUAL,
                performed_by=SYSTEM_ACTOR,
                reason=f"accrual {period}",
                idempotency_key=_build_accrual_key(rule, employee.id, period),
                metadata={
                    "rule_id": str(rule.id),
                    "rule_version": rule.version,
                    "period": period,
                    "frequency": rule.frequency.value,
                    "rounding_method": rule.rounding_method.value,
                },
            )
            marker.accrued_days = transaction.amount_days
            marker.transaction_id = transaction.id
        await session.commit()

    if transaction is None:
        if suspended:
            logger.info("Accrual for employee=%s period=%s suspended (unpaid leave)", employee.id, period)
            result.suspended += 1
        else:
            result.skipped += 1
        return

    result.accrued += 1
    await record_audit(
        session,
        target_type=AuditTargetType.TRANSACTION,
        target_id=transaction.id,
        changed_by=SYSTEM_ACTOR,
        after=model_to_audit_dict(transaction),
        reason=f"accrual {period}",
    )


async def _process(
    session: AsyncSession,
    rules: list[_RuleInfo],
    periods_for: dict[uuid.UUID, list[date]],
    result: AccrualRunResult,
) -> None:
    employees = await get_directory_service().list_employees()
    for rule in rules:
        for period_start in periods_for[rule.id]:
            for employee in employees:
                result.processed += 1
                try:
                    await _accrue_period(session, rule, employee, period_start, result)
                except Exception:
                    logger.exception(
                        "Error processing accrual for employee=%s rule=%s period_start=%s",
                        employee.id,
                        rule.id,
                        period_start,
                    )
                    await session.rollback()
                    result.errors += 1


async def _active_rules(session: AsyncSession, rule_id: uuid.UUID | None = None) -> list[_RuleInfo]:
    filters = [col(AccrualRule.is_active).is_(True), col(AccrualRule.deleted_at).is_(None)]
    if rule_id is not None:
        filters.append(col(AccrualRule.id) == rule_id)
    result = await session.execute(select(AccrualRule).where(*filters).order_by(col(AccrualRule.created_at)))
    return [_RuleInfo.from_rule(r) for r in result.scalars().all()]


async def run_accruals(
    session: AsyncSession,
    target_date: date | None = None,
    *,
    rule_id: uuid.UUID | None = None,
    executed_by: uuid.UUID | None = None,
) -> AccrualRunResult:
    """Accrue the period containing ``target_date`` for every active rule.

    Safe to run daily: a period already accrued for an employee is skipped.
    """
    if target_date is None:
        target_date = now_utc().date()

    result = AccrualRunResult(target_date=target_date)
    run = await start_job_run(session, JobRunType.ACCRUAL_RUN, period=target_date.isoformat(), executed_by=executed_by)
    result.job_run_id = run.id

    rules = await _active_rules(session, rule_id)
    await _process(session, rules, {r.id: [target_date] for r in rules}, result)

    await finish_job_run(
        session,
        run,
        errors=result.errors,
        processed=result.processed,
        summary={
            "rules": len(rules),
            "processed": result.processed,
            "accrued": result.accrued,
            "suspended": result.suspended,
            "skipped": result.skipped,
            "errors": result.errors,
        },
    )
    logger.info(
        "Accrual run for %s: processed=%d accrued=%d suspended=%d skipped=%d errors=%d",
        target_date,
        result.processed,
        result.accrued,
        result.suspended,
        result.skipped,
        result.errors,
    )
    return result


async def backfill_accruals(
    session: AsyncSession,
    rule_id: uuid.UUID,
    start_date: date,
    end_date: date,
    *,
    executed_by: uuid.UUID | None = None,
) -> AccrualRunResult:
    """Accrue every period of one rule between two dates. Already accrued periods are skipped."""
    rule = _RuleInfo.from_rule(await get_rule_or_404(session, rule_id))
    periods = list(iter_periods(rule.frequency, start_date, end_date))

    result = AccrualRunResult(target_date=end_date)
    run = await start_job_run(
        session,
        JobRunType.ACCRUAL_RUN,
        period=f"{start_date.isoformat()}..{end_date.isoformat()}",
        executed_by=executed_by,
    )
    result.job_run_id = run.id

    await _process(session, [rule], {rule.id: periods}, result)

    await finish_job_run(
        session,
        run,
        errors=result.errors,
        processed=result.processed,
        summary={
            "rule_id": str(rule_id),
            "periods": [period_key(rule.frequency, p) for p in periods],
            "accrued": result.accrued,
            "suspended": result.suspended,
            "skipped": result.skipped,
            "errors": result.errors,
        },
    )
    return result
