"""Ledger store: append-only transactions and the cached balance projection."""

from __future__ import annotations

import asyncio
import random
import uuid
from datetime import timedelta
from decimal import Decimal
from typing import TYPE_CHECKING

import pytest
from sqlalchemy import select, update
from sqlmodel import col

from leave_ledger.exceptions import ConflictError, InsufficientBalanceError
from leave_ledger.models.balance import BalanceProjection
from leave_ledger.models.base import now_utc
from leave_ledger.models.enums import TransactionType
from leave_ledger.models.ledger import LedgerTransaction
from leave_ledger.services import ledger
from tests.conftest import EMPLOYEE_ID, HR_ID, make_leave_type

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker


async def _credit(session: AsyncSession, leave_type_id: uuid.UUID, amount: str, **kwargs: object) -> LedgerTransaction:
    return await ledger.append_transaction(
        session,
        employee_id=EMPLOYEE_ID,
        leave_type_id=leave_type_id,
        amount=Decimal(amount),
        transaction_type=TransactionType.ADJUSTMENT,
        performed_by=HR_ID,
        reason="test",
        **kwargs,  # type: ignore[arg-type]
    )


async def _projection(session: AsyncSession, leave_type_id: uuid.UUID) -> BalanceProjection:
    result = await session.execute(
        select(BalanceProjection)
        .where(
            col(BalanceProjection.employee_id) == EMPLOYEE_ID,
            col(BalanceProjection.leave_type_id) == leave_type_id,
        )
        .execution_options(populate_existing=True)
    )
    return result.scalar_one()


async def test_empty_balance_is_zero(db_session: AsyncSession) -> None:
    leave_type = await make_leave_type(db_session)
    assert await ledger.get_balance(db_session, EMPLOYEE_ID, leave_type.id) == Decimal(0)


async def test_balance_is_sum_of_transactions(db_session: AsyncSession) -> None:
    leave_type = await make_leave_type(db_session)
    await _credit(db_session, leave_type.id, "10")
    await _credit(db_session, leave_type.id, "-2.5")
    await _credit(db_session, leave_type.id, "1.75")

    assert await ledger.get_balance(db_session, EMPLOYEE_ID, leave_type.id) == Decimal("9.25")
    projection = await _projection(db_session, leave_type.id)
    assert projection.balance_days == Decimal("9.25")
    assert projection.version == 4


async def test_balance_as_of_excludes_later_transactions(db_session: AsyncSession) -> None:
    leave_type = await make_leave_type(db_session)
    first = await _credit(db_session, leave_type.id, "5")
    await _credit(db_session, leave_type.id, "3")
    await db_session.execute(
        update(LedgerTransaction)
        .where(col(LedgerTransaction.id) == first.id)
        .values(created_at=now_utc() - timedelta(hours=2))
    )
    await db_session.commit()

    cutoff = now_utc() - timedelta(hours=1)
    assert await ledger.get_balance(db_session, EMPLOYEE_ID, leave_type.id, cutoff) == Decimal(5)
    assert await ledger.get_balance(db_session, EMPLOYEE_ID, leave_type.id) == Decimal(8)


async def test_debit_below_zero_is_refused(db_session: AsyncSession) -> None:
    leave_type = await make_leave_type(db_session)
    leave_type_id = leave_type.id
    await _credit(db_session, leave_type_id, "2")

    with pytest.raises(InsufficientBalanceError):
        await _credit(db_session, leave_type_id, "-3")

    assert await ledger.get_balance(db_session, EMPLOYEE_ID, leave_type_id) == Decimal(2)
    transactions, total = await ledger.list_transactions(db_session, EMPLOYEE_ID, leave_type_id)
    assert total == 1
    assert len(transactions) == 1


async def test_debit_below_zero_allowed_when_flagged(db_session: AsyncSession) -> None:
    leave_type = await make_leave_type(db_session)
    await _credit(db_session, leave_type.id, "-3", allow_negative=True)
    assert await ledger.get_balance(db_session, EMPLOYEE_ID, leave_type.id) == Decimal(-3)


async def test_idempotency_key_replay_returns_original(db_session: AsyncSession) -> None:
    leave_type = await make_leave_type(db_session)
    first = await _credit(db_session, leave_type.id, "4", idempotency_key="grant:1")
    second = await _credit(db_session, leave_type.id, "4", idempotency_key="grant:1")

    assert first.id == second.id
    assert await ledger.get_balance(db_session, EMPLOYEE_ID, leave_type.id) == Decimal(4)
    assert await ledger.get_transaction_by_key(db_session, "grant:1") is not None


async def test_stale_projection_version_conflicts(db_session: AsyncSession) -> None:
    leave_type = await make_leave_type(db_session)
    leave_type_id = leave_type.id
    await _credit(db_session, leave_type_id, "10")

    async with ledger.locked_balance(db_session, EMPLOYEE_ID, leave_type_id) as projection:
        # Another writer bumps the version behind this one's back.
        await db_session.execute(
            update(BalanceProjection)
            .where(col(BalanceProjection.employee_id) == EMPLOYEE_ID)
            .values(version=BalanceProjection.version + 1)
            .execution_options(synchronize_session=False)
        )
        with pytest.raises(ConflictError):
            await ledger.append_locked(
                db_session,
                projection,
                amount=Decimal(-1),
                transaction_type=TransactionType.TAKE,
            )
        await db_session.rollback()

    assert await ledger.get_balance(db_session, EMPLOYEE_ID, leave_type_id) == Decimal(10)


async def test_reconcile_repairs_diverged_projection(db_session: AsyncSession) -> None:
    leave_type = await make_leave_type(db_session)
    await _credit(db_session, leave_type.id, "6")
    await db_session.execute(
        update(BalanceProjection)
        .where(col(BalanceProjection.employee_id) == EMPLOYEE_ID)
        .values(balance_days=Decimal(99))
    )
    await db_session.commit()

    ledger_balance, cached = await ledger.reconcile_balance(db_session, EMPLOYEE_ID, leave_type.id)

    assert ledger_balance == Decimal(6)
    assert cached == Decimal(99)
    projection = await _projection(db_session, leave_type.id)
    assert projection.balance_days == Decimal(6)


async def test_reconcile_creates_missing_projection(db_session: AsyncSession) -> None:
    leave_type = await make_leave_type(db_session)
    ledger_balance, cached = await ledger.reconcile_balance(db_session, EMPLOYEE_ID, leave_type.id)
    assert ledger_balance == Decimal(0)
    assert cached is None


async def test_list_transactions_paginates_in_creation_order(db_session: AsyncSession) -> None:
    leave_type = await make_leave_type(db_session)
    for amount in ("1", "2", "3"):
        await _credit(db_session, leave_type.id, amount)

    page, total = await ledger.list_transactions(db_session, EMPLOYEE_ID, leave_type.id, offset=1, limit=1)
    assert total == 3
    assert [t.amount_days for t in page] == [Decimal(2)]


@pytest.mark.parametrize("seed", [7, 1234, 90210])
async def test_random_sequences_keep_projection_equal_to_ledger(db_session: AsyncSession, seed: int) -> None:
    leave_type = await make_leave_type(db_session)
    leave_type_id = leave_type.id
    rng = random.Random(seed)
    expected = Decimal(0)
    refused = 0

    for _ in range(40):
        amount = Decimal(rng.randint(1, 800)) / 100
        if rng.random() < 0.45:
            amount = -amount
        if expected + amount < 0:
            with pytest.raises(InsufficientBalanceError):
                await _credit(db_session, leave_type_id, str(amount))
            refused += 1
            continue
        await _credit(db_session, leave_type_id, str(amount))
        expected += amount

    transactions, total = await ledger.list_transactions(db_session, EMPLOYEE_ID, leave_type_id)
    assert total == 40 - refused
    assert sum((t.amount_days for t in transactions), Decimal(0)) == expected
    assert await ledger.get_balance(db_session, EMPLOYEE_ID, leave_type_id) == expected
    assert (await _projection(db_session, leave_type_id)).balance_days == expected
    assert await ledger.reconcile_balance(db_session, EMPLOYEE_ID, leave_type_id) == (expected, expected)


# ---------------------------------------------------------------------------
# Concurrent writers
# ---------------------------------------------------------------------------


async def _seed_balance(session_factory: async_sessionmaker[AsyncSession], amount: str) -> uuid.UUID:
    async with session_factory() as session:
        leave_type = await make_leave_type(session)
        leave_type_id = leave_type.id
        await _credit(session, leave_type_id, amount)
    return leave_type_id


async def _debit_in_own_session(
    session_factory: async_sessionmaker[AsyncSession], leave_type_id: uuid.UUID, amount: str
) -> LedgerTransaction:
    async with session_factory() as session:
        return await _credit(session, leave_type_id, amount)


async def test_concurrent_debits_lose_no_update(session_factory: async_sessionmaker[AsyncSession]) -> None:
    leave_type_id = await _seed_balance(session_factory, "10")

    results = await asyncio.gather(
        *(_debit_in_own_session(session_factory, leave_type_id, "-2") for _ in range(4)),
        return_exceptions=True,
    )

    assert all(isinstance(r, LedgerTransaction) for r in results), results
    async with session_factory() as session:
        assert await ledger.get_balance(session, EMPLOYEE_ID, leave_type_id) == Decimal(2)
        projection = await _projection(session, leave_type_id)
        assert projection.balance_days == Decimal(2)
        assert projection.version == 6
        _, total = await ledger.list_transactions(session, EMPLOYEE_ID, leave_type_id)
        assert total == 5


async def test_concurrent_debits_cannot_overdraw(session_factory: async_sessionmaker[AsyncSession]) -> None:
    leave_type_id = await _seed_balance(session_factory, "5")

    results = await asyncio.gather(
        _debit_in_own_session(session_factory, leave_type_id, "-3"),
        _debit_in_own_session(session_factory, leave_type_id, "-3"),
        return_exceptions=True,
    )

    assert sum(isinstance(r, LedgerTransaction) for r in results) == 1
    assert sum(isinstance(r, InsufficientBalanceError) for r in results) == 1
    async with session_factory() as session:
        assert await ledger.get_balance(session, EMPLOYEE_ID, leave_type_id) == Decimal(2)
        assert (await _projection(session, leave_type_id)).balance_days == Decimal(2)
