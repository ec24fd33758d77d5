# ruff: noqa: TC003
from __future__ import annotations

import uuid
from decimal import Decimal
from typing import Any

import sqlalchemy as sa
from sqlmodel import Field

from leave_ledger.models.base import TimestampMixin, UUIDBase, days_column


class LedgerTransaction(UUIDBase, TimestampMixin, table=True):
    """Immutable, signed balance change for one (employee, leave type) pair.

    Rows are only ever inserted. Corrections are new rows of type
    ``adjustment`` or ``retro``.
    """

    __tablename__ = "ledger_transaction"
    __table_args__ = (
        sa.Index("ix_ledger_employee_leave_type_created", "employee_id", "leave_type_id", "created_at"),
        sa.UniqueConstraint("idempotency_key", name="uq_ledger_idempotency_key"),
    )

    employee_id: uuid.UUID = Field(index=True)
    leave_type_id: uuid.UUID = Field(
        sa_column=sa.Column(sa.Uuid, sa.ForeignKey("leave_type.id"), nullable=False, index=True),
    )
    amount_days: Decimal = Field(sa_column=days_column(default=None))
    transaction_type: str = Field(max_length=50)
    origin_request_id: uuid.UUID | None = Field(default=None, index=True)
    performed_by: uuid.UUID | None = None
    reason: str | None = None
    idempotency_key: str | None = Field(default=None, max_length=255)
    metadata_json: dict[str, Any] | None = Field(default=None, sa_type=sa.JSON)
