# ruff: noqa: TC001, TC003
from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Self

from pydantic import BaseModel, Field, model_validator

from leave_ledger.models.enums import ApprovalAction, ApproverRole, RequestStatus

# ---------------------------------------------------------------------------
# Request payloads
# ---------------------------------------------------------------------------


class Attachment(BaseModel):
    file_name: str = Field(min_length=1, max_length=255)
    file_url: str = Field(min_length=1, max_length=2048)


class SubmitRequestPayload(BaseModel):
    """Request body for submitting a leave request."""

    employee_id: uuid.UUID
    leave_type_id: uuid.UUID
    start_date: date
    end_date: date
    justification: str | None = Field(default=None, max_length=2000)
    attachments: list[Attachment] = Field(default_factory=list)

    @model_validator(mode="after")
    def _validate_dates(self) -> Self:
        if self.end_date < self.start_date:
            msg = "end_date must not be before start_date"
            raise ValueError(msg)
        return self


class DecisionPayload(BaseModel):
    """Request body for approve/reject actions."""

    reason: str | None = Field(default=None, max_length=1000)


class HRDecisionPayload(DecisionPayload):
    """HR decision; ``override_reason`` is required when overturning a manager rejection."""

    override_reason: str | None = Field(default=None, max_length=1000)


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class ApprovalRecordResponse(BaseModel):
    step_number: int
    approver_id: uuid.UUID
    approver_role: ApproverRole
    action: ApprovalAction
    reason: str | None
    is_override: bool
    override_reason: str | None
    timestamp: datetime


class RequestResponse(BaseModel):
    """Response schema for a single leave request."""

    id: uuid.UUID
    employee_id: uuid.UUID
    leave_type_id: uuid.UUID
    rule_id: uuid.UUID | None
    start_date: date
    end_date: date
    requested_days: Decimal
    net_days: Decimal
    justification: str | None
    attachments: list[Attachment]
    status: RequestStatus
    version: int
    is_post_leave_request: bool
    has_overlap_with_approved_leave: bool
    overlapping_leave_request_ids: list[uuid.UUID]
    exceeds_entitlement: bool
    converted_to_unpaid_days: Decimal
    payroll_sync_status: str | None
    time_sync_status: str | None
    manager_id: uuid.UUID | None
    current_approver: uuid.UUID | None
    grace_period_hours: int
    submitted_at: datetime
    escalated_at: datetime | None
    finalized_by: uuid.UUID | None
    finalized_at: datetime | None
    approval_records: list[ApprovalRecordResponse]
    warnings: list[str] = Field(default_factory=list)


class RequestListResponse(BaseModel):
    items: list[RequestResponse]
    total: int


class EscalationSweepResponse(BaseModel):
    job_run_id: uuid.UUID | None
    escalated: int
    skipped: int
    errors: int
