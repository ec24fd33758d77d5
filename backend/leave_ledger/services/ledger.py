"""Ledger store: the only writer of balance-affecting rows.

Every balance change is an appended ``LedgerTransaction``. The balance is the
sum of transaction amounts; ``BalanceProjection`` is a cache of that sum,
written only here and only in the same database transaction as an append.

Appends for one (employee, leave type) pair are serialized three ways:

1. an in-process ``asyncio.Lock`` per pair,
2. ``SELECT ... FOR UPDATE`` on the projection row (cross-process, where the
   backend supports row locks),
3. a compare-and-swap on ``BalanceProjection.version``; a stale writer gets
   ``ConflictError`` and must retry the whole operation.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
import weakref
from contextlib import asynccontextmanager
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.attributes import set_committed_value
from sqlmodel import col

from leave_ledger.exceptions import ConflictError, InsufficientBalanceError
from leave_ledger.models.balance import BalanceProjection
from leave_ledger.models.base import now_utc, to_days
from leave_ledger.models.enums import TransactionType
from leave_ledger.models.ledger import LedgerTransaction

if TYPE_CHECKING:
    from collections.abc import AsyncIterator
    from datetime import datetime

    from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

_BalanceKey = tuple[uuid.UUID, uuid.UUID]
_locks: weakref.WeakValueDictionary[_BalanceKey, asyncio.Lock] = weakref.WeakValueDictionary()


def _lock_for(employee_id: uuid.UUID, leave_type_id: uuid.UUID) -> asyncio.Lock:
    key = (employee_id, leave_type_id)
    lock = _locks.get(key)
    if lock is None:
        lock = asyncio.Lock()
        _locks[key] = lock
    return lock


# ---------------------------------------------------------------------------
# Read path
# ---------------------------------------------------------------------------


async def get_balance(
    session: AsyncSession,
    employee_id: uuid.UUID,
    leave_type_id: uuid.UUID,
    as_of: datetime | None = None,
) -> Decimal:
    """Sum of transaction amounts created at or before ``as_of`` (default now).

    A single aggregate statement, so the result never reflects part of a
    concurrent append.
    """
    as_of = as_of or now_utc()
    result = await session.execute(
        select(func.coalesce(func.sum(col(LedgerTransaction.amount_days)), 0)).where(
            col(LedgerTransaction.employee_id) == employee_id,
            col(LedgerTransaction.leave_type_id) == leave_type_id,
            col(LedgerTransaction.created_at) <= as_of,
        )
    )
    return to_days(result.scalar_one())


async def _ledger_sum(session: AsyncSession, employee_id: uuid.UUID, leave_type_id: uuid.UUID) -> Decimal:
    result = await session.execute(
        select(func.coalesce(func.sum(col(LedgerTransaction.amount_days)), 0)).where(
            col(LedgerTransaction.employee_id) == employee_id,
            col(LedgerTransaction.leave_type_id) == leave_type_id,
        )
    )
    return to_days(result.scalar_one())


async def list_transactions(
    session: AsyncSession,
    employee_id: uuid.UUID,
    leave_type_id: uuid.UUID,
    start: datetime | None = None,
    end: datetime | None = None,
    *,
    offset: int = 0,
    limit: int | None = None,
) -> tuple[list[LedgerTransaction], int]:
    """Transactions for one pair in creation order, with the unpaginated total."""
    filters = [
        col(LedgerTransaction.employee_id) == employee_id,
        col(LedgerTransaction.leave_type_id) == leave_type_id,
    ]
    if start is not None:
        filters.append(col(LedgerTransaction.created_at) >= start)
    if end is not None:
        filters.append(col(LedgerTransaction.created_at) <= end)

    count_result = await session.execute(select(func.count()).select_from(LedgerTransaction).where(*filters))
    total = count_result.scalar_one()

    query = (
        select(LedgerTransaction)
        .where(*filters)
        .order_by(col(LedgerTransaction.created_at), col(LedgerTransaction.id))
        .offset(offset)
    )
    if limit is not None:
        query = query.limit(limit)
    result = await session.execute(query)
    return list(result.scalars().all()), total


async def get_transaction_by_key(session: AsyncSession, idempotency_key: str) -> LedgerTransaction | None:
    result = await session.execute(
        select(LedgerTransaction).where(col(LedgerTransaction.idempotency_key) == idempotency_key)
    )
    return result.scalar_one_or_none()


# ---------------------------------------------------------------------------
# Write path
# ---------------------------------------------------------------------------


async def _get_or_create_projection_for_update(
    session: AsyncSession,
    employee_id: uuid.UUID,
    leave_type_id: uuid.UUID,
) -> BalanceProjection:
    """Lock the projection row, creating it from the ledger on first use."""
    result = await session.execute(
        select(BalanceProjection)
        .where(
            col(BalanceProjection.employee_id) == employee_id,
            col(BalanceProjection.leave_type_id) == leave_type_id,
        )
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    projection = result.scalar_one_or_none()

    if projection is None:
        projection = BalanceProjection(
            employee_id=employee_id,
            leave_type_id=leave_type_id,
            balance_days=await _ledger_sum(session, employee_id, leave_type_id),
            version=1,
        )
        try:
            async with session.begin_nested():
                session.add(projection)
                await session.flush()
        except IntegrityError:
            raise ConflictError("Balance was initialised concurrently; retry the operation") from None

    return projection


@asynccontextmanager
async def locked_balance(
    session: AsyncSession,
    employee_id: uuid.UUID,
    leave_type_id: uuid.UUID,
) -> AsyncIterator[BalanceProjection]:
    """Hold the write lock for one balance and yield its projection.

    The caller must commit inside the block. If the block raises, the session
    is rolled back so nothing of the failed unit of work is persisted.
    """
    async with _lock_for(employee_id, leave_type_id):
        try:
            projection = await _get_or_create_projection_for_update(session, employee_id, leave_type_id)
            yield projection
        except Exception:
            await session.rollback()
            raise


async def append_locked(
    session: AsyncSession,
    projection: BalanceProjection,
    *,
    amount: Decimal,
    transaction_type: TransactionType,
    origin_request_id: uuid.UUID | None = None,
    performed_by: uuid.UUID | None = None,
    reason: str | None = None,
    idempotency_key: str | None = None,
    metadata: dict[str, Any] | None = None,
    allow_negative: bool = False,
) -> LedgerTransaction:
    """Append one transaction while holding ``locked_balance`` for its pair.

    Raises InsufficientBalanceError if a debit would leave the balance below
    zero and ``allow_negative`` is not set, and ConflictError if the
    projection changed since it was locked.
    """
    amount = to_days(amount)
    new_balance = to_days(projection.balance_days + amount)
    if amount < 0 and new_balance < 0 and not allow_negative:
        raise InsufficientBalanceError(
            f"Debit of {-amount} days exceeds available balance of {to_days(projection.balance_days)} days"
        )

    transaction = LedgerTransaction(
        employee_id=projection.employee_id,
        leave_type_id=projection.leave_type_id,
        amount_days=amount,
        transaction_type=transaction_type.value,
        origin_request_id=origin_request_id,
        performed_by=performed_by,
        reason=reason,
        idempotency_key=idempotency_key,
        metadata_json=metadata,
    )
    session.add(transaction)
    await session.flush()

    expected_version = projection.version
    result = await session.execute(
        update(BalanceProjection)
        .where(
            col(BalanceProjection.employee_id) == projection.employee_id,
            col(BalanceProjection.leave_type_id) == projection.leave_type_id,
            col(BalanceProjection.version) == expected_version,
        )
        .values(balance_days=new_balance, version=expected_version + 1, updated_at=now_utc())
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:  # type: ignore[attr-defined]
        raise ConflictError("Balance was modified concurrently; retry the operation")

    set_committed_value(projection, "balance_days", new_balance)
    set_committed_value(projection, "version", expected_version + 1)
    return transaction


async def append_transaction(
    session: AsyncSession,
    *,
    employee_id: uuid.UUID,
    leave_type_id: uuid.UUID,
    amount: Decimal,
    transaction_type: TransactionType,
    origin_request_id: uuid.UUID | None = None,
    performed_by: uuid.UUID | None = None,
    reason: str | None = None,
    idempotency_key: str | None = None,
    metadata: dict[str, Any] | None = None,
    allow_negative: bool = False,
) -> LedgerTransaction:
    """Atomically append one transaction and commit.

    Replaying an ``idempotency_key`` returns the transaction already stored
    under it instead of appending again.
    """
    if idempotency_key is not None:
        existing = await get_transaction_by_key(session, idempotency_key)
        if existing is not None:
            return existing

    async with locked_balance(session, employee_id, leave_type_id) as projection:
        transaction = await append_locked(
            session,
            projection,
            amount=amount,
            transaction_type=transaction_type,
            origin_request_id=origin_request_id,
            performed_by=performed_by,
            reason=reason,
            idempotency_key=idempotency_key,
            metadata=metadata,
            allow_negative=allow_negative,
        )
        await session.commit()
    return transaction


async def reconcile_balance(
    session: AsyncSession,
    employee_id: uuid.UUID,
    leave_type_id: uuid.UUID,
) -> tuple[Decimal, Decimal | None]:
    """Rebuild the cached projection from the ledger.

    Returns ``(ledger_balance, cached_balance_before)``. The ledger always
    wins; a divergence is logged as a warning.
    """
    async with _lock_for(employee_id, leave_type_id):
        try:
            result = await session.execute(
                select(BalanceProjection)
                .where(
                    col(BalanceProjection.employee_id) == employee_id,
                    col(BalanceProjection.leave_type_id) == leave_type_id,
                )
                .with_for_update()
                .execution_options(populate_existing=True)
            )
            projection = result.scalar_one_or_none()
            ledger_balance = await _ledger_sum(session, employee_id, leave_type_id)

            if projection is None:
                session.add(
                    BalanceProjection(employee_id=employee_id, leave_type_id=leave_type_id, balance_days=ledger_balance)
                )
                await session.commit()
                return ledger_balance, None

            cached = to_days(projection.balance_days)
            if cached != ledger_balance:
                logger.warning(
                    "Balance projection diverged for employee=%s leave_type=%s: cached=%s ledger=%s",
                    employee_id,
                    leave_type_id,
                    cached,
                    ledger_balance,
                )
                projection.balance_days = ledger_balance
                projection.version += 1
                projection.updated_at = now_utc()
            await session.commit()
            return ledger_balance, cached
        except Exception:
            await session.rollback()
            raise
