# ruff: noqa: TC003
from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal

import sqlalchemy as sa
from sqlmodel import Field

from leave_ledger.models.base import TimestampMixin, UUIDBase, days_column
from leave_ledger.models.enums import AccrualFrequency, RoundingMethod


class AccrualRule(UUIDBase, TimestampMixin, table=True):
    """How many days a leave type earns per period, plus its carryover limits.

    Rules are versioned: an edit soft-deletes the current row and inserts a
    new one sharing the same ``lineage_id``. Period markers and carryover
    records key on the lineage so a new version never re-accrues a period.
    """

    __tablename__ = "accrual_rule"

    lineage_id: uuid.UUID = Field(index=True)
    version: int = Field(default=1)
    previous_version_id: uuid.UUID | None = None
    leave_type_id: uuid.UUID = Field(
        sa_column=sa.Column(sa.Uuid, sa.ForeignKey("leave_type.id"), nullable=False, index=True),
    )
    name: str = Field(max_length=255)
    frequency: str = Field(default=AccrualFrequency.MONTHLY, max_length=20)
    rate_per_period: Decimal = Field(sa_column=days_column(default=None))
    rounding_method: str = Field(default=RoundingMethod.NONE, max_length=20)
    max_carryover_days: Decimal | None = Field(default=Decimal(45), sa_column=days_column(nullable=True, default=None))
    carryover_expiry_years: int | None = Field(default=1)
    suspend_during_unpaid_leave: bool = Field(default=True)
    is_active: bool = Field(default=True)
    created_by: uuid.UUID | None = None
    deleted_at: datetime | None = Field(default=None, sa_type=sa.DateTime(timezone=True))  # ty: ignore[invalid-argument-type]


class AccrualPeriodMarker(UUIDBase, TimestampMixin, table=True):
    """Proof that a rule already accrued a period for an employee."""

    __tablename__ = "accrual_period_marker"
    __table_args__ = (sa.UniqueConstraint("employee_id", "rule_id", "period", name="uq_accrual_period_marker"),)

    employee_id: uuid.UUID = Field(index=True)
    rule_id: uuid.UUID
    rule_version_id: uuid.UUID
    period: str = Field(max_length=10)
    accrued_days: Decimal = Field(default=Decimal(0), sa_column=days_column())
    suspended: bool = Field(default=False)
    transaction_id: uuid.UUID | None = None


class CarryoverRecord(UUIDBase, TimestampMixin, table=True):
    """Outcome of a plan-year rollover for one employee and rule lineage."""

    __tablename__ = "carryover_record"
    __table_args__ = (sa.UniqueConstraint("employee_id", "rule_id", "plan_year", name="uq_carryover_plan_year"),)

    employee_id: uuid.UUID = Field(index=True)
    rule_id: uuid.UUID
    leave_type_id: uuid.UUID = Field(index=True)
    plan_year: int
    carried_days: Decimal = Field(default=Decimal(0), sa_column=days_column())
    forfeited_days: Decimal = Field(default=Decimal(0), sa_column=days_column())
    expires_on: date | None = Field(default=None, index=True)
    expired_at: datetime | None = Field(default=None, sa_type=sa.DateTime(timezone=True))  # ty: ignore[invalid-argument-type]
    expired_days: Decimal = Field(default=Decimal(0), sa_column=days_column())
