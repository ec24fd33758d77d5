# ruff: noqa: TC003
from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from leave_ledger.models.base import days_column, now_utc


class BalanceProjection(SQLModel, table=True):
    """Cached running balance, written only together with a ledger append.

    ``version`` is bumped on every write and checked with a compare-and-swap
    so a stale writer fails instead of overwriting a newer balance.
    """

    __tablename__ = "balance_projection"
    __table_args__ = (sa.PrimaryKeyConstraint("employee_id", "leave_type_id"),)

    employee_id: uuid.UUID = Field(sa_type=sa.Uuid)
    leave_type_id: uuid.UUID = Field(
        sa_column=sa.Column(sa.Uuid, sa.ForeignKey("leave_type.id"), nullable=False, index=True),
    )
    balance_days: Decimal = Field(default=Decimal(0), sa_column=days_column())
    version: int = Field(default=1, sa_column_kwargs={"server_default": "1"})
    updated_at: datetime = Field(  # type: ignore[call-overload]
        default_factory=now_utc,
        sa_type=sa.DateTime(timezone=True),
        sa_column_kwargs={"server_default": sa.func.now()},
    )
