from __future__ import annotations

import uuid
from datetime import UTC, date, datetime
from decimal import Decimal

from leave_ledger.models import (
    AccrualRule,
    BalanceProjection,
    Delegation,
    IntegrationLog,
    LeaveRequest,
    LeaveType,
    LedgerTransaction,
    SQLModel,
)
from leave_ledger.models.base import SYSTEM_ACTOR, ensure_utc, to_days
from leave_ledger.models.enums import DelegationStatus, InsufficientBalancePolicy, RequestStatus

EXPECTED_TABLES = {
    "accrual_period_marker",
    "accrual_rule",
    "approval_record",
    "balance_projection",
    "calendar_holiday",
    "carryover_record",
    "delegation",
    "entitlement_rule",
    "holiday_calendar",
    "integration_log",
    "job_run_log",
    "leave_audit",
    "leave_request",
    "leave_type",
    "ledger_transaction",
    "personalized_entitlement",
    "unpaid_leave_marker",
}


def test_all_tables_registered() -> None:
    table_names = set(SQLModel.metadata.tables.keys())
    assert EXPECTED_TABLES.issubset(table_names)


def test_ledger_idempotency_key_is_unique() -> None:
    constraints = {c.name for c in LedgerTransaction.__table__.constraints}  # type: ignore[attr-defined]
    assert "uq_ledger_idempotency_key" in constraints


def test_leave_type_defaults() -> None:
    leave_type = LeaveType(code="ANNUAL", name="Annual leave")
    assert leave_type.paid is True
    assert leave_type.insufficient_balance_policy == InsufficientBalancePolicy.REJECT
    assert leave_type.allow_hr_override is False
    assert leave_type.id is not None


def test_balance_projection_starts_empty() -> None:
    projection = BalanceProjection(employee_id=uuid.uuid4(), leave_type_id=uuid.uuid4())
    assert projection.balance_days == Decimal(0)
    assert projection.version == 1


def test_leave_request_defaults() -> None:
    request = LeaveRequest(
        employee_id=uuid.uuid4(),
        leave_type_id=uuid.uuid4(),
        start_date=date(2025, 7, 1),
        end_date=date(2025, 7, 2),
        requested_days=Decimal(2),
        net_days=Decimal(2),
        grace_period_hours=48,
        submitted_at=datetime(2025, 6, 1, tzinfo=UTC),
    )
    assert request.status == RequestStatus.SUBMITTED
    assert request.version == 1
    assert request.exceeds_entitlement is False
    assert request.converted_to_unpaid_days == Decimal(0)
    assert request.overlapping_leave_request_ids == []


def test_accrual_rule_carryover_defaults() -> None:
    rule = AccrualRule(lineage_id=uuid.uuid4(), leave_type_id=uuid.uuid4(), name="monthly", rate_per_period=Decimal(2))
    assert rule.version == 1
    assert rule.max_carryover_days == Decimal(45)
    assert rule.carryover_expiry_years == 1
    assert rule.suspend_during_unpaid_leave is True


def test_delegation_starts_pending() -> None:
    delegation = Delegation(manager_id=uuid.uuid4(), delegate_id=uuid.uuid4(), start_date=date(2025, 1, 1))
    assert delegation.status == DelegationStatus.PENDING
    assert delegation.end_date is None


def test_integration_log_has_no_attempts_yet() -> None:
    log = IntegrationLog(
        entity_type="leave_request",
        entity_id=uuid.uuid4(),
        external_system="PAYROLL",
        action="update_balance",
        max_attempts=5,
    )
    assert log.attempts == 0
    assert log.next_attempt_at is None


def test_to_days_quantizes_to_four_places() -> None:
    assert to_days("1.23456") == Decimal("1.2346")
    assert to_days(2) == Decimal("2.0000")


def test_ensure_utc_assumes_naive_values_are_utc() -> None:
    naive = datetime(2025, 1, 1, 12, 0)
    assert ensure_utc(naive) == datetime(2025, 1, 1, 12, 0, tzinfo=UTC)
    assert SYSTEM_ACTOR == uuid.UUID(int=0)
