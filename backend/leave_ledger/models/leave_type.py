from __future__ import annotations

from datetime import datetime

import sqlalchemy as sa
from sqlmodel import Field

from leave_ledger.models.base import TimestampMixin, UUIDBase
from leave_ledger.models.enums import InsufficientBalancePolicy


class LeaveType(UUIDBase, TimestampMixin, table=True):
    """Catalog entry for a kind of leave and the adjudication rules it carries."""

    __tablename__ = "leave_type"
    __table_args__ = (sa.UniqueConstraint("code", name="uq_leave_type_code"),)

    code: str = Field(max_length=50)
    name: str = Field(max_length=255)
    paid: bool = Field(default=True)
    payroll_code: str | None = Field(default=None, max_length=50)
    requires_hr_review: bool = Field(default=False)
    insufficient_balance_policy: str = Field(
        default=InsufficientBalancePolicy.REJECT,
        max_length=50,
        sa_column_kwargs={"server_default": InsufficientBalancePolicy.REJECT.value},
    )
    allow_hr_override: bool = Field(default=False)
    grace_period_hours: int | None = None
    requires_attachment: bool = Field(default=False)
    max_duration_days: int | None = None
    is_active: bool = Field(default=True)
    deleted_at: datetime | None = Field(default=None, sa_type=sa.DateTime(timezone=True))  # ty: ignore[invalid-argument-type]
