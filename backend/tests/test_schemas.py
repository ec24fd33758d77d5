"""Unit tests for request payload validation."""

from __future__ import annotations

import uuid
from datetime import date
from decimal import Decimal

import pytest
from pydantic import ValidationError

from leave_ledger.models.enums import AccrualFrequency, CalendarEntryKind, InsufficientBalancePolicy, RoundingMethod
from leave_ledger.schemas.accrual import AccrualRuleInput, BackfillRequest
from leave_ledger.schemas.balance import CreateAdjustmentRequest, EncashmentRequest, RetroDeductionRequest
from leave_ledger.schemas.calendar import CalendarEntryInput, CreateCalendarRequest
from leave_ledger.schemas.delegation import CreateDelegationRequest
from leave_ledger.schemas.leave_type import CreateLeaveTypeRequest
from leave_ledger.schemas.request import SubmitRequestPayload

LEAVE_TYPE_ID = uuid.uuid4()
EMPLOYEE_ID = uuid.uuid4()


# ---------------------------------------------------------------------------
# Leave types and rules
# ---------------------------------------------------------------------------


def test_leave_type_defaults() -> None:
    payload = CreateLeaveTypeRequest(code="ANNUAL", name="Annual leave")
    assert payload.insufficient_balance_policy == InsufficientBalancePolicy.REJECT
    assert payload.requires_hr_review is False


def test_leave_type_rejects_unknown_policy() -> None:
    with pytest.raises(ValidationError):
        CreateLeaveTypeRequest(code="ANNUAL", name="Annual", insufficient_balance_policy="BORROW")


def test_accrual_rule_defaults() -> None:
    rule = AccrualRuleInput(leave_type_id=LEAVE_TYPE_ID, name="monthly", rate_per_period=Decimal("1.75"))
    assert rule.frequency == AccrualFrequency.MONTHLY
    assert rule.rounding_method == RoundingMethod.NONE
    assert rule.max_carryover_days == Decimal(45)
    assert rule.carryover_expiry_years == 1


@pytest.mark.parametrize("rate", ["0", "-1"])
def test_accrual_rule_rate_must_be_positive(rate: str) -> None:
    with pytest.raises(ValidationError):
        AccrualRuleInput(leave_type_id=LEAVE_TYPE_ID, name="monthly", rate_per_period=Decimal(rate))


def test_backfill_range_must_not_be_inverted() -> None:
    with pytest.raises(ValidationError, match="end_date must not be before start_date"):
        BackfillRequest(rule_id=uuid.uuid4(), start_date=date(2025, 3, 1), end_date=date(2025, 2, 1))


# ---------------------------------------------------------------------------
# Balance operations
# ---------------------------------------------------------------------------


def test_adjustment_must_be_non_zero() -> None:
    with pytest.raises(ValidationError, match="non-zero"):
        CreateAdjustmentRequest(
            employee_id=EMPLOYEE_ID, leave_type_id=LEAVE_TYPE_ID, amount_days=Decimal(0), reason="fix"
        )


def test_adjustment_accepts_debits() -> None:
    payload = CreateAdjustmentRequest(
        employee_id=EMPLOYEE_ID, leave_type_id=LEAVE_TYPE_ID, amount_days=Decimal("-1.5"), reason="fix"
    )
    assert payload.amount_days == Decimal("-1.5")
    assert payload.allow_negative is False


def test_retro_deduction_validates_range() -> None:
    with pytest.raises(ValidationError):
        RetroDeductionRequest(
            employee_id=EMPLOYEE_ID,
            leave_type_id=LEAVE_TYPE_ID,
            start_date=date(2025, 3, 5),
            end_date=date(2025, 3, 4),
            reason="unreported absence",
        )


def test_encashment_defaults_to_full_balance() -> None:
    payload = EncashmentRequest(employee_id=EMPLOYEE_ID, leave_type_id=LEAVE_TYPE_ID)
    assert payload.days is None
    assert payload.reason == "offboarding settlement"


# ---------------------------------------------------------------------------
# Calendars, requests, delegations
# ---------------------------------------------------------------------------


def test_calendar_entry_defaults_to_single_day_holiday() -> None:
    entry = CalendarEntryInput(start_date=date(2025, 12, 25), name="Christmas")
    assert entry.kind == CalendarEntryKind.HOLIDAY
    assert entry.end_date is None


def test_calendar_year_bounds() -> None:
    with pytest.raises(ValidationError):
        CreateCalendarRequest(year=1800, name="Too early")


def test_request_dates_must_be_ordered() -> None:
    with pytest.raises(ValidationError):
        SubmitRequestPayload(
            employee_id=EMPLOYEE_ID,
            leave_type_id=LEAVE_TYPE_ID,
            start_date=date(2025, 3, 5),
            end_date=date(2025, 3, 3),
        )


def test_single_day_request_is_valid() -> None:
    payload = SubmitRequestPayload(
        employee_id=EMPLOYEE_ID, leave_type_id=LEAVE_TYPE_ID, start_date=date(2025, 3, 5), end_date=date(2025, 3, 5)
    )
    assert payload.attachments == []


def test_open_ended_delegation_is_valid() -> None:
    payload = CreateDelegationRequest(delegate_id=uuid.uuid4())
    assert payload.start_date is None
    assert payload.end_date is None


def test_delegation_window_must_be_ordered() -> None:
    with pytest.raises(ValidationError):
        CreateDelegationRequest(delegate_id=uuid.uuid4(), start_date=date(2025, 6, 2), end_date=date(2025, 6, 1))
