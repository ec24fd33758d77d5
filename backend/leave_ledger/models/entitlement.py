# ruff: noqa: TC003
from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any

import sqlalchemy as sa
from sqlmodel import Field

from leave_ledger.models.base import TimestampMixin, UUIDBase, days_column


class EntitlementRule(UUIDBase, TimestampMixin, table=True):
    """Base yearly entitlement for a leave type, gated by tenure, grade and contract type.

    Empty ``grades`` / ``contract_types`` lists match every employee.
    """

    __tablename__ = "entitlement_rule"

    leave_type_id: uuid.UUID = Field(
        sa_column=sa.Column(sa.Uuid, sa.ForeignKey("leave_type.id"), nullable=False, index=True),
    )
    name: str = Field(max_length=255)
    yearly_entitlement_days: Decimal = Field(sa_column=days_column(default=None))
    min_tenure_months: int = Field(default=0)
    grades: list[str] = Field(default_factory=list, sa_type=sa.JSON)
    contract_types: list[str] = Field(default_factory=list, sa_type=sa.JSON)
    is_active: bool = Field(default=True)
    deleted_at: datetime | None = Field(default=None, sa_type=sa.DateTime(timezone=True))  # ty: ignore[invalid-argument-type]


class PersonalizedEntitlement(UUIDBase, TimestampMixin, table=True):
    """Override of the base entitlement for one employee or a group of employees."""

    __tablename__ = "personalized_entitlement"

    leave_type_id: uuid.UUID = Field(
        sa_column=sa.Column(sa.Uuid, sa.ForeignKey("leave_type.id"), nullable=False, index=True),
    )
    employee_id: uuid.UUID | None = Field(default=None, index=True)
    group_criteria: dict[str, Any] | None = Field(default=None, sa_type=sa.JSON)
    yearly_entitlement_days: Decimal = Field(sa_column=days_column(default=None))
    reason: str
    created_by: uuid.UUID | None = None
    deleted_at: datetime | None = Field(default=None, sa_type=sa.DateTime(timezone=True))  # ty: ignore[invalid-argument-type]
