# ruff: noqa: TC001, TC003
from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Self

from pydantic import BaseModel, Field, model_validator

from leave_ledger.models.enums import AccrualFrequency, RoundingMethod

# ---------------------------------------------------------------------------
# Accrual rule configuration
# ---------------------------------------------------------------------------


class AccrualRuleInput(BaseModel):
    """Request body for creating or editing an accrual rule."""

    leave_type_id: uuid.UUID
    name: str = Field(min_length=1, max_length=255)
    frequency: AccrualFrequency = AccrualFrequency.MONTHLY
    rate_per_period: Decimal = Field(gt=0)
    rounding_method: RoundingMethod = RoundingMethod.NONE
    max_carryover_days: Decimal | None = Field(default=Decimal(45), ge=0)
    carryover_expiry_years: int | None = Field(default=1, ge=1)
    suspend_during_unpaid_leave: bool = True
    is_active: bool = True


class AccrualRuleResponse(BaseModel):
    id: uuid.UUID
    lineage_id: uuid.UUID
    version: int
    previous_version_id: uuid.UUID | None
    leave_type_id: uuid.UUID
    name: str
    frequency: AccrualFrequency
    rate_per_period: Decimal
    rounding_method: RoundingMethod
    max_carryover_days: Decimal | None
    carryover_expiry_years: int | None
    suspend_during_unpaid_leave: bool
    is_active: bool
    created_at: datetime
    deleted_at: datetime | None


class AccrualRuleListResponse(BaseModel):
    items: list[AccrualRuleResponse]
    total: int


# ---------------------------------------------------------------------------
# Run triggers
# ---------------------------------------------------------------------------


class AccrualTriggerRequest(BaseModel):
    """Run accruals for the period containing ``target_date`` (defaults to today)."""

    target_date: date | None = None
    rule_id: uuid.UUID | None = None


class BackfillRequest(BaseModel):
    """Accrue every period of a rule between two dates, inclusive."""

    rule_id: uuid.UUID
    start_date: date
    end_date: date

    @model_validator(mode="after")
    def _validate_range(self) -> Self:
        if self.end_date < self.start_date:
            msg = "end_date must not be before start_date"
            raise ValueError(msg)
        return self


class CarryoverTriggerRequest(BaseModel):
    target_date: date | None = None


class AccrualRunResponse(BaseModel):
    job_run_id: uuid.UUID | None
    target_date: date
    processed: int
    accrued: int
    suspended: int
    skipped: int
    errors: int


class CarryoverRunResponse(BaseModel):
    job_run_id: uuid.UUID | None
    target_date: date
    carried: int
    forfeited: int
    expired: int
    skipped: int
    errors: int
