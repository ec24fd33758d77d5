from __future__ import annotations

import logging
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import select
from sqlmodel import col

from leave_ledger.exceptions import InsufficientBalanceError, ValidationError
from leave_ledger.models.base import now_utc, to_days
from leave_ledger.models.enums import (
    AuditTargetType,
    ExternalSystem,
    IntegrationAction,
    IntegrationEntityType,
    TransactionType,
)
from leave_ledger.models.leave_type import LeaveType
from leave_ledger.schemas.balance import (
    BalanceListResponse,
    BalanceResponse,
    ReconcileResponse,
    TransactionListResponse,
    TransactionResponse,
)
from leave_ledger.services import integration, ledger
from leave_ledger.services.audit import audit_warnings, model_to_audit_dict, record_audit
from leave_ledger.services.calendar import count_days
from leave_ledger.services.leave_type import get_leave_type_or_404

if TYPE_CHECKING:
    import uuid
    from datetime import datetime

    from sqlalchemy.ext.asyncio import AsyncSession

    from leave_ledger.models.ledger import LedgerTransaction
    from leave_ledger.schemas.auth import AuthContext
    from leave_ledger.schemas.balance import CreateAdjustmentRequest, EncashmentRequest, RetroDeductionRequest

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def build_transaction_response(
    transaction: LedgerTransaction,
    warnings: list[str] | None = None,
) -> TransactionResponse:
    """Map a ledger transaction to its response schema."""
    return TransactionResponse(
        id=transaction.id,
        employee_id=transaction.employee_id,
        leave_type_id=transaction.leave_type_id,
        amount_days=transaction.amount_days,
        transaction_type=TransactionType(transaction.transaction_type),
        origin_request_id=transaction.origin_request_id,
        performed_by=transaction.performed_by,
        reason=transaction.reason,
        metadata_json=transaction.metadata_json,
        created_at=transaction.created_at,
        warnings=warnings or [],
    )


async def _audit_transaction(
    session: AsyncSession,
    transaction: LedgerTransaction,
    actor_id: uuid.UUID,
    balance_before: Decimal,
    balance_after: Decimal,
) -> TransactionResponse:
    """Audit a committed HR transaction and return its response."""
    response = build_transaction_response(transaction)
    written = await record_audit(
        session,
        target_type=AuditTargetType.TRANSACTION,
        target_id=transaction.id,
        changed_by=actor_id,
        before={"balance_days": str(balance_before)},
        after={**model_to_audit_dict(transaction), "balance_days": str(balance_after)},
        reason=transaction.reason,
    )
    response.warnings = audit_warnings(written)
    return response


# ---------------------------------------------------------------------------
# Read path
# ---------------------------------------------------------------------------


async def get_balance(
    session: AsyncSession,
    employee_id: uuid.UUID,
    leave_type_id: uuid.UUID,
    as_of: datetime | None = None,
) -> BalanceResponse:
    leave_type = await get_leave_type_or_404(session, leave_type_id)
    as_of = as_of or now_utc()
    return BalanceResponse(
        employee_id=employee_id,
        leave_type_id=leave_type_id,
        leave_type_code=leave_type.code,
        balance_days=await ledger.get_balance(session, employee_id, leave_type_id, as_of),
        as_of=as_of,
    )


async def get_employee_balances(
    session: AsyncSession,
    employee_id: uuid.UUID,
    as_of: datetime | None = None,
) -> BalanceListResponse:
    """Balances of every active leave type for one employee."""
    as_of = as_of or now_utc()
    result = await session.execute(
        select(LeaveType)
        .where(col(LeaveType.deleted_at).is_(None), col(LeaveType.is_active).is_(True))
        .order_by(col(LeaveType.code))
    )
    items = [
        BalanceResponse(
            employee_id=employee_id,
            leave_type_id=leave_type.id,
            leave_type_code=leave_type.code,
            balance_days=await ledger.get_balance(session, employee_id, leave_type.id, as_of),
            as_of=as_of,
        )
        for leave_type in result.scalars().all()
    ]
    return BalanceListResponse(items=items, total=len(items))


async def list_ledger(
    session: AsyncSession,
    employee_id: uuid.UUID,
    leave_type_id: uuid.UUID,
    start: datetime | None = None,
    end: datetime | None = None,
    offset: int = 0,
    limit: int = 50,
) -> TransactionListResponse:
    await get_leave_type_or_404(session, leave_type_id)
    transactions, total = await ledger.list_transactions(
        session, employee_id, leave_type_id, start, end, offset=offset, limit=limit
    )
    return TransactionListResponse(items=[build_transaction_response(t) for t in transactions], total=total)


async def reconcile(session: AsyncSession, employee_id: uuid.UUID, leave_type_id: uuid.UUID) -> ReconcileResponse:
    await get_leave_type_or_404(session, leave_type_id)
    ledger_balance, cached = await ledger.reconcile_balance(session, employee_id, leave_type_id)
    return ReconcileResponse(
        employee_id=employee_id,
        leave_type_id=leave_type_id,
        ledger_balance_days=ledger_balance,
        cached_balance_days=cached,
        diverged=cached is not None and cached != ledger_balance,
    )


# ---------------------------------------------------------------------------
# HR operations
# ---------------------------------------------------------------------------


async def create_adjustment(
    session: AsyncSession,
    auth: AuthContext,
    payload: CreateAdjustmentRequest,
) -> TransactionResponse:
    """Post a signed manual correction.

    Debits below zero are refused unless ``allow_negative`` is set.
    """
    await get_leave_type_or_404(session, payload.leave_type_id)

    async with ledger.locked_balance(session, payload.employee_id, payload.leave_type_id) as projection:
        before = to_days(projection.balance_days)
        transaction = await ledger.append_locked(
            session,
            projection,
            amount=payload.amount_days,
            transaction_type=TransactionType.ADJUSTMENT,
            performed_by=auth.user_id,
            reason=payload.reason,
            allow_negative=payload.allow_negative,
        )
        after = to_days(projection.balance_days)
        await session.commit()

    logger.info(
        "Adjustment of %s days posted for employee=%s leave_type=%s by %s",
        transaction.amount_days,
        payload.employee_id,
        payload.leave_type_id,
        auth.user_id,
    )
    return await _audit_transaction(session, transaction, auth.user_id, before, after)


async def create_retro_deduction(
    session: AsyncSession,
    auth: AuthContext,
    payload: RetroDeductionRequest,
) -> TransactionResponse:
    """Deduct leave that was taken without a request.

    The balance may go negative. Payroll is told about the deduction through
    the integration outbox in the same transaction.
    """
    await get_leave_type_or_404(session, payload.leave_type_id)
    if payload.days is not None:
        days = to_days(payload.days)
    else:
        _, days = await count_days(session, payload.start_date, payload.end_date)
    if days <= 0:
        raise ValidationError("The date range contains no working days to deduct")

    async with ledger.locked_balance(session, payload.employee_id, payload.leave_type_id) as projection:
        before = to_days(projection.balance_days)
        transaction = await ledger.append_locked(
            session,
            projection,
            amount=-days,
            transaction_type=TransactionType.RETRO,
            performed_by=auth.user_id,
            reason=payload.reason,
            metadata={"start_date": payload.start_date.isoformat(), "end_date": payload.end_date.isoformat()},
            allow_negative=True,
        )
        after = to_days(projection.balance_days)
        integration.enqueue(
            session,
            entity_type=IntegrationEntityType.LEAVE_TRANSACTION,
            entity_id=transaction.id,
            external_system=ExternalSystem.PAYROLL,
            action=IntegrationAction.UPDATE_BALANCE,
            payload_summary={
                "employee_id": str(payload.employee_id),
                "leave_type_id": str(payload.leave_type_id),
                "amount_days": str(transaction.amount_days),
                "start_date": payload.start_date.isoformat(),
                "end_date": payload.end_date.isoformat(),
            },
        )
        await session.commit()

    if after < 0:
        logger.warning("Retro deduction left employee=%s with a negative balance of %s", payload.employee_id, after)
    return await _audit_transaction(session, transaction, auth.user_id, before, after)


async def create_encashment(
    session: AsyncSession,
    auth: AuthContext,
    payload: EncashmentRequest,
) -> TransactionResponse:
    """Cash out unused balance. Never more than what is available."""
    await get_leave_type_or_404(session, payload.leave_type_id)

    async with ledger.locked_balance(session, payload.employee_id, payload.leave_type_id) as projection:
        available = to_days(projection.balance_days)
        days = to_days(payload.days) if payload.days is not None else available
        if days <= 0:
            raise ValidationError("No balance is available to encash")
        if days > available:
            raise InsufficientBalanceError(f"Cannot encash {days} days; only {available} days are available")

        transaction = await ledger.append_locked(
            session,
            projection,
            amount=-days,
            transaction_type=TransactionType.ENCASHMENT,
            performed_by=auth.user_id,
            reason=payload.reason,
        )
        after = to_days(projection.balance_days)
        integration.enqueue(
            session,
            entity_type=IntegrationEntityType.LEAVE_TRANSACTION,
            entity_id=transaction.id,
            external_system=ExternalSystem.PAYROLL,
            action=IntegrationAction.ENCASHMENT,
            payload_summary={
                "employee_id": str(payload.employee_id),
                "leave_type_id": str(payload.leave_type_id),
                "days": str(days),
            },
        )
        await session.commit()

    return await _audit_transaction(session, transaction, auth.user_id, available, after)
