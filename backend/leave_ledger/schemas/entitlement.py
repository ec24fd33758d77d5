# ruff: noqa: TC001, TC003
from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Self

from pydantic import BaseModel, Field, model_validator

from leave_ledger.models.enums import EntitlementSource

# ---------------------------------------------------------------------------
# Base rules
# ---------------------------------------------------------------------------


class EntitlementRuleInput(BaseModel):
    leave_type_id: uuid.UUID
    name: str = Field(min_length=1, max_length=255)
    yearly_entitlement_days: Decimal = Field(ge=0)
    min_tenure_months: int = Field(default=0, ge=0)
    grades: list[str] = Field(default_factory=list)
    contract_types: list[str] = Field(default_factory=list)


class EntitlementRuleResponse(BaseModel):
    id: uuid.UUID
    leave_type_id: uuid.UUID
    name: str
    yearly_entitlement_days: Decimal
    min_tenure_months: int
    grades: list[str]
    contract_types: list[str]
    is_active: bool
    created_at: datetime


class EntitlementRuleListResponse(BaseModel):
    items: list[EntitlementRuleResponse]
    total: int


# ---------------------------------------------------------------------------
# Personalized overrides
# ---------------------------------------------------------------------------


class GroupCriteria(BaseModel):
    """Employee attributes a group override applies to.

    Every non-empty list must contain the employee's value for the override to match.
    """

    department_ids: list[uuid.UUID] = Field(default_factory=list)
    position_ids: list[uuid.UUID] = Field(default_factory=list)
    locations: list[str] = Field(default_factory=list)
    contract_types: list[str] = Field(default_factory=list)
    employee_ids: list[uuid.UUID] = Field(default_factory=list)

    def is_empty(self) -> bool:
        return not (
            self.department_ids or self.position_ids or self.locations or self.contract_types or self.employee_ids
        )


class PersonalizedEntitlementInput(BaseModel):
    leave_type_id: uuid.UUID
    employee_id: uuid.UUID | None = None
    group_criteria: GroupCriteria | None = None
    yearly_entitlement_days: Decimal = Field(ge=0)
    reason: str = Field(min_length=1, max_length=1000)

    @model_validator(mode="after")
    def _validate_target(self) -> Self:
        has_group = self.group_criteria is not None and not self.group_criteria.is_empty()
        if (self.employee_id is None) == (not has_group):
            msg = "exactly one of employee_id or a non-empty group_criteria is required"
            raise ValueError(msg)
        return self


class PersonalizedEntitlementResponse(BaseModel):
    id: uuid.UUID
    leave_type_id: uuid.UUID
    employee_id: uuid.UUID | None
    group_criteria: GroupCriteria | None
    yearly_entitlement_days: Decimal
    reason: str
    created_at: datetime


class PersonalizedEntitlementListResponse(BaseModel):
    items: list[PersonalizedEntitlementResponse]
    total: int


# ---------------------------------------------------------------------------
# Resolution
# ---------------------------------------------------------------------------


class ResolvedEntitlement(BaseModel):
    """Entitlement that applies to an employee for a leave type on a date."""

    employee_id: uuid.UUID
    leave_type_id: uuid.UUID
    as_of: date
    yearly_entitlement_days: Decimal
    applied_rule_id: uuid.UUID
    source: EntitlementSource
