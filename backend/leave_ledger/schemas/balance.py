# ruff: noqa: TC001, TC003
from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Self

from pydantic import BaseModel, Field, model_validator

from leave_ledger.models.enums import TransactionType

# ---------------------------------------------------------------------------
# Balance response schemas
# ---------------------------------------------------------------------------


class BalanceResponse(BaseModel):
    """Balance of one leave type for an employee."""

    employee_id: uuid.UUID
    leave_type_id: uuid.UUID
    leave_type_code: str
    balance_days: Decimal
    as_of: datetime


class BalanceListResponse(BaseModel):
    items: list[BalanceResponse]
    total: int


class ReconcileResponse(BaseModel):
    """Outcome of rebuilding a cached balance from the ledger."""

    employee_id: uuid.UUID
    leave_type_id: uuid.UUID
    ledger_balance_days: Decimal
    cached_balance_days: Decimal | None
    diverged: bool


# ---------------------------------------------------------------------------
# Ledger response schemas
# ---------------------------------------------------------------------------


class TransactionResponse(BaseModel):
    """A single ledger transaction."""

    id: uuid.UUID
    employee_id: uuid.UUID
    leave_type_id: uuid.UUID
    amount_days: Decimal
    transaction_type: TransactionType
    origin_request_id: uuid.UUID | None
    performed_by: uuid.UUID | None
    reason: str | None
    metadata_json: dict[str, Any] | None
    created_at: datetime
    warnings: list[str] = Field(default_factory=list)


class TransactionListResponse(BaseModel):
    """Paginated ledger transactions, oldest first."""

    items: list[TransactionResponse]
    total: int


# ---------------------------------------------------------------------------
# HR write payloads
# ---------------------------------------------------------------------------


class CreateAdjustmentRequest(BaseModel):
    """Manual signed correction of a balance."""

    employee_id: uuid.UUID
    leave_type_id: uuid.UUID
    amount_days: Decimal = Field(description="Signed: positive to credit, negative to debit")
    reason: str = Field(min_length=1, max_length=1000)
    allow_negative: bool = False

    @model_validator(mode="after")
    def _validate_amount(self) -> Self:
        if self.amount_days == 0:
            msg = "amount_days must be non-zero"
            raise ValueError(msg)
        return self


class RetroDeductionRequest(BaseModel):
    """Deduction for leave already taken that never went through the request workflow."""

    employee_id: uuid.UUID
    leave_type_id: uuid.UUID
    start_date: date
    end_date: date
    days: Decimal | None = Field(default=None, gt=0, description="Defaults to the net working days in the range")
    reason: str = Field(min_length=1, max_length=1000)

    @model_validator(mode="after")
    def _validate_dates(self) -> Self:
        if self.end_date < self.start_date:
            msg = "end_date must not be before start_date"
            raise ValueError(msg)
        return self


class EncashmentRequest(BaseModel):
    """Cash-out of unused balance, typically on offboarding."""

    employee_id: uuid.UUID
    leave_type_id: uuid.UUID
    days: Decimal | None = Field(default=None, gt=0, description="Defaults to the full available balance")
    reason: str = Field(default="offboarding settlement", min_length=1, max_length=1000)
