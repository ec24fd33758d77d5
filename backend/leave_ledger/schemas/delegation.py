# ruff: noqa: TC001, TC003
from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import Self

from pydantic import BaseModel, Field, model_validator

from leave_ledger.models.enums import DelegationStatus


class CreateDelegationRequest(BaseModel):
    """A manager hands approval authority to ``delegate_id`` for an inclusive window."""

    delegate_id: uuid.UUID
    start_date: date | None = Field(default=None, description="Defaults to today")
    end_date: date | None = Field(default=None, description="None means until revoked")
    reason: str | None = Field(default=None, max_length=1000)

    @model_validator(mode="after")
    def _validate_window(self) -> Self:
        if self.start_date is not None and self.end_date is not None and self.end_date < self.start_date:
            msg = "end_date must not be before start_date"
            raise ValueError(msg)
        return self


class DelegationResponse(BaseModel):
    id: uuid.UUID
    manager_id: uuid.UUID
    delegate_id: uuid.UUID
    start_date: date
    end_date: date | None
    status: DelegationStatus
    reason: str | None
    responded_at: datetime | None
    revoked_at: datetime | None
    created_at: datetime
    warnings: list[str] = Field(default_factory=list)


class DelegationListResponse(BaseModel):
    items: list[DelegationResponse]
    total: int


class ResolvedApprover(BaseModel):
    manager_id: uuid.UUID
    as_of: date
    approver_id: uuid.UUID
    delegation_id: uuid.UUID | None
