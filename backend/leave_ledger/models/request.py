# ruff: noqa: TC003
from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Any

import sqlalchemy as sa
from sqlmodel import Field

from leave_ledger.models.base import TimestampMixin, UpdatedAtMixin, UUIDBase, days_column
from leave_ledger.models.enums import RequestStatus


class LeaveRequest(UUIDBase, TimestampMixin, UpdatedAtMixin, table=True):
    """An employee's leave request and its adjudication state.

    ``version`` guards status transitions: every transition claims the row by
    bumping the version it read, so two racing decisions cannot both apply.
    """

    __tablename__ = "leave_request"
    __table_args__ = (
        sa.Index("ix_leave_request_employee_dates", "employee_id", "start_date", "end_date"),
        sa.Index("ix_leave_request_status_submitted", "status", "submitted_at"),
    )

    employee_id: uuid.UUID = Field(index=True)
    leave_type_id: uuid.UUID = Field(
        sa_column=sa.Column(sa.Uuid, sa.ForeignKey("leave_type.id"), nullable=False, index=True),
    )
    rule_id: uuid.UUID | None = None
    start_date: date
    end_date: date
    requested_days: Decimal = Field(sa_column=days_column(default=None))
    net_days: Decimal = Field(sa_column=days_column(default=None))
    justification: str | None = None
    attachments: list[dict[str, Any]] = Field(default_factory=list, sa_type=sa.JSON)
    status: str = Field(
        default=RequestStatus.SUBMITTED,
        max_length=50,
        index=True,
        sa_column_kwargs={"server_default": RequestStatus.SUBMITTED.value},
    )
    version: int = Field(default=1, sa_column_kwargs={"server_default": "1"})
    is_post_leave_request: bool = Field(default=False)
    has_overlap_with_approved_leave: bool = Field(default=False)
    overlapping_leave_request_ids: list[str] = Field(default_factory=list, sa_type=sa.JSON)
    exceeds_entitlement: bool = Field(default=False)
    converted_to_unpaid_days: Decimal = Field(default=Decimal(0), sa_column=days_column())
    payroll_sync_status: str | None = Field(default=None, max_length=20)
    time_sync_status: str | None = Field(default=None, max_length=20)
    manager_id: uuid.UUID | None = None
    current_approver: uuid.UUID | None = Field(default=None, index=True)
    grace_period_hours: int
    submitted_at: datetime = Field(sa_type=sa.DateTime(timezone=True))  # ty: ignore[invalid-argument-type]
    escalated_at: datetime | None = Field(default=None, sa_type=sa.DateTime(timezone=True))  # ty: ignore[invalid-argument-type]
    finalized_by: uuid.UUID | None = None
    finalized_at: datetime | None = Field(default=None, sa_type=sa.DateTime(timezone=True))  # ty: ignore[invalid-argument-type]


class ApprovalRecord(UUIDBase, table=True):
    """One step of a request's append-only approval history."""

    __tablename__ = "approval_record"
    __table_args__ = (sa.UniqueConstraint("request_id", "step_number", name="uq_approval_record_step"),)

    request_id: uuid.UUID = Field(
        sa_column=sa.Column(sa.Uuid, sa.ForeignKey("leave_request.id", ondelete="CASCADE"), nullable=False, index=True),
    )
    step_number: int
    approver_id: uuid.UUID
    approver_role: str = Field(max_length=20)
    action: str = Field(max_length=20)
    reason: str | None = None
    is_override: bool = Field(default=False)
    override_reason: str | None = None
    timestamp: datetime = Field(sa_type=sa.DateTime(timezone=True))  # ty: ignore[invalid-argument-type]


class UnpaidLeaveMarker(UUIDBase, TimestampMixin, table=True):
    """Days of a finalized request taken as unpaid because the balance fell short."""

    __tablename__ = "unpaid_leave_marker"
    __table_args__ = (sa.UniqueConstraint("request_id", name="uq_unpaid_leave_marker_request"),)

    request_id: uuid.UUID
    employee_id: uuid.UUID = Field(index=True)
    leave_type_id: uuid.UUID
    days: Decimal = Field(sa_column=days_column(default=None))
    start_date: date
    end_date: date
