from sqlmodel import SQLModel

from leave_ledger.models.accrual import AccrualPeriodMarker, AccrualRule, CarryoverRecord
from leave_ledger.models.audit import LeaveAudit
from leave_ledger.models.balance import BalanceProjection
from leave_ledger.models.base import TimestampMixin, UpdatedAtMixin, UUIDBase
from leave_ledger.models.calendar import CalendarHoliday, HolidayCalendar
from leave_ledger.models.delegation import Delegation
from leave_ledger.models.entitlement import EntitlementRule, PersonalizedEntitlement
from leave_ledger.models.enums import (
    AccrualFrequency,
    ApprovalAction,
    AuditTargetType,
    DelegationStatus,
    ExternalSystem,
    IntegrationAction,
    IntegrationStatus,
    RequestStatus,
    RoundingMethod,
    TransactionType,
)
from leave_ledger.models.integration import IntegrationLog
from leave_ledger.models.job import JobRunLog
from leave_ledger.models.leave_type import LeaveType
from leave_ledger.models.ledger import LedgerTransaction
from leave_ledger.models.request import ApprovalRecord, LeaveRequest, UnpaidLeaveMarker

__all__ = [
    "AccrualFrequency",
    "AccrualPeriodMarker",
    "AccrualRule",
    "ApprovalAction",
    "ApprovalRecord",
    "AuditTargetType",
    "BalanceProjection",
    "CalendarHoliday",
    "CarryoverRecord",
    "Delegation",
    "DelegationStatus",
    "EntitlementRule",
    "ExternalSystem",
    "HolidayCalendar",
    "IntegrationAction",
    "IntegrationLog",
    "IntegrationStatus",
    "JobRunLog",
    "LeaveAudit",
    "LeaveRequest",
    "LeaveType",
    "LedgerTransaction",
    "PersonalizedEntitlement",
    "RequestStatus",
    "RoundingMethod",
    "SQLModel",
    "TimestampMixin",
    "TransactionType",
    "UUIDBase",
    "UnpaidLeaveMarker",
    "UpdatedAtMixin",
]
