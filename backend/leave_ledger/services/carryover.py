"""Carryover and expiry processing.

Carryover: rolls balances into the plan year that began on the latest boundary
up to the run date. A daily run that finds the plan year not yet processed
catches up, so a missed boundary day is not lost. Balance above the rule's
``max_carryover_days`` is forfeited; the rest is carried and may expire.
Expiry: runs daily and forfeits carried days that were not used before
``expires_on``.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlmodel import col

from leave_ledger.config import get_settings
from leave_ledger.models.accrual import CarryoverRecord
from leave_ledger.models.balance import BalanceProjection
from leave_ledger.models.base import SYSTEM_ACTOR, now_utc, to_days
from leave_ledger.models.enums import AuditTargetType, JobRunType, TransactionType
from leave_ledger.models.ledger import LedgerTransaction
from leave_ledger.services import ledger
from leave_ledger.services.accrual import _active_rules, _RuleInfo
from leave_ledger.services.audit import model_to_audit_dict, record_audit
from leave_ledger.services.job import finish_job_run, start_job_run

if TYPE_CHECKING:
    from datetime import datetime

    from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

# Debits that consume carried days before they expire.
_CONSUMING_TYPES = [
    TransactionType.TAKE.value,
    TransactionType.RETRO.value,
    TransactionType.ENCASHMENT.value,
]


@dataclass
class CarryoverRunResult:
    """Result of a carryover or expiry run."""

    target_date: date
    job_run_id: uuid.UUID | None = None
    carried: int = 0
    forfeited: int = 0
    expired: int = 0
    skipped: int = 0
    errors: int = 0


def is_plan_year_boundary(target_date: date) -> bool:
    return target_date.day == 1 and target_date.month == get_settings().plan_year_start_month


def latest_plan_year_boundary(target_date: date) -> date:
    """First day of the plan year that contains ``target_date``."""
    boundary = date(target_date.year, get_settings().plan_year_start_month, 1)
    if boundary > target_date:
        boundary = boundary.replace(year=boundary.year - 1)
    return boundary


def _expiry_date(boundary: date, years: int | None) -> date | None:
    if not years:
        return None
    return boundary.replace(year=boundary.year + years)


# ---------------------------------------------------------------------------
# Carryover
# ---------------------------------------------------------------------------


async def _carry_one(
    session: AsyncSession,
    rule: _RuleInfo,
    employee_id: uuid.UUID,
    plan_year: int,
    boundary: date,
    result: CarryoverRunResult,
) -> None:
    """Roll one balance into the new plan year, at most once per plan year."""
    transaction = None
    async with ledger.locked_balance(session, employee_id, rule.leave_type_id) as projection:
        balance = to_days(projection.balance_days)
        cap = rule.max_carryover_days
        if cap is not None and balance > cap:
            carried, forfeited = to_days(cap), to_days(balance - cap)
        else:
            carried, forfeited = max(balance, Decimal(0)), Decimal(0)

        record = CarryoverRecord(
            employee_id=employee_id,
            rule_id=rule.lineage_id,
            leave_type_id=rule.leave_type_id,
            plan_year=plan_year,
            carried_days=carried,
            forfeited_days=forfeited,
            expires_on=_expiry_date(boundary, rule.carryover_expiry_years) if carried > 0 else None,
        )
        try:
            async with session.begin_nested():
                session.add(record)
                await session.flush()
        except IntegrityError:
            await session.rollback()
            result.skipped += 1
            return

        if forfeited > 0:
            transaction = await ledger.append_locked(
                session,
                projection,
                amount=-forfeited,
                transaction_type=TransactionType.ADJUSTMENT,
                performed_by=SYSTEM_ACTOR,
                reason="carryover cap",
                idempotency_key=f"carryover:{rule.lineage_id}:{employee_id}:{plan_year}",
                metadata={"plan_year": plan_year, "cap_days": str(cap), "balance_days": str(balance)},
            )
        await session.commit()

    if carried > 0:
        result.carried += 1
    if transaction is not None:
        result.forfeited += 1
        logger.info(
            "Carryover forfeited %s days for employee=%s leave_type=%s plan_year=%d",
            forfeited,
            employee_id,
            rule.leave_type_id,
            plan_year,
        )
        await record_audit(
            session,
            target_type=AuditTargetType.TRANSACTION,
            target_id=transaction.id,
            changed_by=SYSTEM_ACTOR,
            before={"balance_days": str(balance)},
            after=model_to_audit_dict(transaction),
            reason="carryover cap",
        )


async def _plan_year_processed(session: AsyncSession, plan_year: int) -> bool:
    result = await session.execute(
        select(func.count()).select_from(CarryoverRecord).where(col(CarryoverRecord.plan_year) == plan_year)
    )
    return result.scalar_one() > 0


async def run_carryover(
    session: AsyncSession,
    target_date: date | None = None,
    *,
    executed_by: uuid.UUID | None = None,
) -> CarryoverRunResult:
    """Process the rollover into the plan year that contains ``target_date``.

    Later in the plan year the run only acts while no carryover record exists
    for the closing year. A run dated on the boundary itself always walks every
    balance; the per-year markers skip what is already done, which is how a
    partially failed rollover is retried.
    """
    if target_date is None:
        target_date = now_utc().date()

    result = CarryoverRunResult(target_date=target_date)
    run = await start_job_run(
        session, JobRunType.CARRY_FORWARD, period=target_date.isoformat(), executed_by=executed_by
    )
    result.job_run_id = run.id

    boundary = latest_plan_year_boundary(target_date)
    plan_year = (boundary - timedelta(days=1)).year
    on_boundary = is_plan_year_boundary(target_date)
    if not on_boundary and await _plan_year_processed(session, plan_year):
        await finish_job_run(
            session,
            run,
            errors=0,
            summary={"boundary": boundary.isoformat(), "plan_year": plan_year, "already_processed": True},
        )
        return result

    if not on_boundary:
        logger.info("Catching up carryover for plan_year=%d (boundary %s) on %s", plan_year, boundary, target_date)

    rules = await _active_rules(session)
    processed = 0
    for rule in rules:
        employees_result = await session.execute(
            select(BalanceProjection.employee_id).where(col(BalanceProjection.leave_type_id) == rule.leave_type_id)
        )
        employee_ids = list(employees_result.scalars().all())
        for employee_id in employee_ids:
            processed += 1
            try:
                await _carry_one(session, rule, employee_id, plan_year, boundary, result)
            except Exception:
                logger.exception(
                    "Error processing carryover for employee=%s rule=%s plan_year=%d",
                    employee_id,
                    rule.id,
                    plan_year,
                )
                await session.rollback()
                result.errors += 1

    await finish_job_run(
        session,
        run,
        errors=result.errors,
        processed=processed,
        summary={
            "boundary": boundary.isoformat(),
            "plan_year": plan_year,
            "carried": result.carried,
            "forfeited": result.forfeited,
            "skipped": result.skipped,
            "errors": result.errors,
        },
    )
    return result


# ---------------------------------------------------------------------------
# Expiry
# ---------------------------------------------------------------------------


async def _debits_since(
    session: AsyncSession,
    employee_id: uuid.UUID,
    leave_type_id: uuid.UUID,
    since: datetime,
) -> Decimal:
    result = await session.execute(
        select(func.coalesce(func.sum(col(LedgerTransaction.amount_days)), 0)).where(
            col(LedgerTransaction.employee_id) == employee_id,
            col(LedgerTransaction.leave_type_id) == leave_type_id,
            col(LedgerTransaction.transaction_type).in_(_CONSUMING_TYPES),
            col(LedgerTransaction.amount_days) < 0,
            col(LedgerTransaction.created_at) > since,
        )
    )
    return -to_days(result.scalar_one())


async def _expire_one(
    session: AsyncSession,
    record_id: uuid.UUID,
    employee_id: uuid.UUID,
    leave_type_id: uuid.UUID,
    result: CarryoverRunResult,
) -> None:
    """Forfeit the unused carried days of one record, exactly once."""
    transaction = None
    async with ledger.locked_balance(session, employee_id, leave_type_id) as projection:
        record_result = await session.execute(
            select(CarryoverRecord)
            .where(col(CarryoverRecord.id) == record_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        record = record_result.scalar_one()
        if record.expired_at is not None:
            await session.rollback()
            result.skipped += 1
            return

        used = await _debits_since(session, employee_id, leave_type_id, record.created_at)
        unused = max(to_days(record.carried_days) - used, Decimal(0))
        unused = min(unused, max(to_days(projection.balance_days), Decimal(0)))

        if unused > 0:
            transaction = await ledger.append_locked(
                session,
                projection,
                amount=-unused,
                transaction_type=TransactionType.ADJUSTMENT,
                performed_by=SYSTEM_ACTOR,
                reason="carryover expiry",
                idempotency_key=f"carryover-expiry:{record_id}",
                metadata={"plan_year": record.plan_year, "carried_days": str(record.carried_days)},
            )
        record.expired_at = now_utc()
        record.expired_days = unused
        await session.commit()

    result.expired += 1
    if transaction is not None:
        await record_audit(
            session,
            target_type=AuditTargetType.TRANSACTION,
            target_id=transaction.id,
            changed_by=SYSTEM_ACTOR,
            after=model_to_audit_dict(transaction),
            reason="carryover expiry",
        )


async def run_expiry_sweep(
    session: AsyncSession,
    target_date: date | None = None,
    *,
    executed_by: uuid.UUID | None = None,
) -> CarryoverRunResult:
    """Expire every carryover record whose ``expires_on`` has passed."""
    if target_date is None:
        target_date = now_utc().date()

    result = CarryoverRunResult(target_date=target_date)
    run = await start_job_run(session, JobRunType.EXPIRY_SWEEP, period=target_date.isoformat(), executed_by=executed_by)
    result.job_run_id = run.id

    due = await session.execute(
        select(CarryoverRecord.id, CarryoverRecord.employee_id, CarryoverRecord.leave_type_id).where(
            col(CarryoverRecord.expires_on) <= target_date,
            col(CarryoverRecord.expired_at).is_(None),
        )
    )
    rows = list(due.all())
    await session.commit()

    for row in rows:
        try:
            await _expire_one(session, row.id, row.employee_id, row.leave_type_id, result)
        except Exception:
            logger.exception("Error expiring carryover record %s", row.id)
            await session.rollback()
            result.errors += 1

    await finish_job_run(
        session,
        run,
        errors=result.errors,
        processed=len(rows),
        summary={"due": len(rows), "expired": result.expired, "skipped": result.skipped, "errors": result.errors},
    )
    return result
