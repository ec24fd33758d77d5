# ruff: noqa: TC003
from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import BaseModel, Field

from leave_ledger.models.enums import InsufficientBalancePolicy


class CreateLeaveTypeRequest(BaseModel):
    """Request body for registering a leave type."""

    code: str = Field(min_length=1, max_length=50)
    name: str = Field(min_length=1, max_length=255)
    paid: bool = True
    payroll_code: str | None = Field(default=None, max_length=50)
    requires_hr_review: bool = False
    insufficient_balance_policy: InsufficientBalancePolicy = InsufficientBalancePolicy.REJECT
    allow_hr_override: bool = False
    grace_period_hours: int | None = Field(default=None, ge=1)
    requires_attachment: bool = False
    max_duration_days: int | None = Field(default=None, ge=1)


class UpdateLeaveTypeRequest(BaseModel):
    """Partial update; omitted fields keep their current value."""

    name: str | None = Field(default=None, min_length=1, max_length=255)
    paid: bool | None = None
    payroll_code: str | None = Field(default=None, max_length=50)
    requires_hr_review: bool | None = None
    insufficient_balance_policy: InsufficientBalancePolicy | None = None
    allow_hr_override: bool | None = None
    grace_period_hours: int | None = Field(default=None, ge=1)
    requires_attachment: bool | None = None
    max_duration_days: int | None = Field(default=None, ge=1)
    is_active: bool | None = None


class LeaveTypeResponse(BaseModel):
    id: uuid.UUID
    code: str
    name: str
    paid: bool
    payroll_code: str | None
    requires_hr_review: bool
    insufficient_balance_policy: InsufficientBalancePolicy
    allow_hr_override: bool
    grace_period_hours: int | None
    requires_attachment: bool
    max_duration_days: int | None
    is_active: bool
    created_at: datetime


class LeaveTypeListResponse(BaseModel):
    items: list[LeaveTypeResponse]
    total: int
