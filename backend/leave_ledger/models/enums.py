from __future__ import annotations

import enum


class TransactionType(enum.StrEnum):
    """Kind of balance change recorded in the ledger."""

    ACCRUAL = "accrual"
    TAKE = "take"
    ADJUSTMENT = "adjustment"
    ENCASHMENT = "encashment"
    RETRO = "retro"
    RESERVE_RELEASE = "reserve_release"


class InsufficientBalancePolicy(enum.StrEnum):
    """What finalization does when a request needs more days than the balance holds.

    ``REJECT`` refuses the approval with InsufficientBalanceError and leaves the
    request where it was, so it stays open: it can be approved again once the
    balance is topped up, canceled by the employee, or escalated to HR after the
    grace period.
    """

    REJECT = "REJECT"
    CONVERT_TO_UNPAID = "CONVERT_TO_UNPAID"
    ALLOW_NEGATIVE = "ALLOW_NEGATIVE"


class AccrualFrequency(enum.StrEnum):
    """How often an accrual rule posts earned days."""

    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"


class RoundingMethod(enum.StrEnum):
    """How a raw accrual amount is rounded before posting."""

    NONE = "none"
    ARITHMETIC = "arithmetic"
    CEIL = "ceil"
    FLOOR = "floor"


class EntitlementSource(enum.StrEnum):
    """Which layer of the precedence chain produced an entitlement."""

    INDIVIDUAL = "INDIVIDUAL"
    GROUP = "GROUP"
    BASE = "BASE"


class CalendarEntryKind(enum.StrEnum):
    """Dates excluded from net-day counting."""

    HOLIDAY = "HOLIDAY"
    BLOCKED_PERIOD = "BLOCKED_PERIOD"


class RequestStatus(enum.StrEnum):
    """State machine for leave requests."""

    SUBMITTED = "SUBMITTED"
    PENDING_MANAGER = "PENDING_MANAGER"
    MANAGER_APPROVED = "MANAGER_APPROVED"
    MANAGER_REJECTED = "MANAGER_REJECTED"
    ESCALATED = "ESCALATED"
    HR_APPROVED = "HR_APPROVED"
    HR_REJECTED = "HR_REJECTED"
    FINALIZED = "FINALIZED"
    CANCELED = "CANCELED"


class ApprovalAction(enum.StrEnum):
    """Decision recorded on an approval record."""

    APPROVED = "approved"
    REJECTED = "rejected"
    DELEGATED = "delegated"
    OVERRIDDEN = "overridden"


class ApproverRole(enum.StrEnum):
    MANAGER = "manager"
    DELEGATE = "delegate"
    HR = "hr"
    SYSTEM = "system"


class DelegationStatus(enum.StrEnum):
    """Lifecycle of a manager's delegation of approval authority."""

    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"
    REVOKED = "REVOKED"


class ExternalSystem(enum.StrEnum):
    """Downstream systems that receive leave outcomes."""

    PAYROLL = "PAYROLL"
    TIME_MANAGEMENT = "TIME_MANAGEMENT"
    OTHER = "OTHER"


class IntegrationAction(enum.StrEnum):
    """Operation the downstream system is asked to apply."""

    BLOCK_ATTENDANCE = "block_attendance"
    UNBLOCK_ATTENDANCE = "unblock_attendance"
    ENCASHMENT = "encashment"
    UPDATE_BALANCE = "update_balance"
    GENERIC = "generic"


class IntegrationStatus(enum.StrEnum):
    """Delivery state of an integration log."""

    PENDING = "pending"
    SENT = "sent"
    SUCCESS = "success"
    FAILED = "failed"
    SUPERSEDED = "superseded"


class IntegrationEntityType(enum.StrEnum):
    LEAVE_REQUEST = "leave_request"
    LEAVE_BALANCE = "leave_balance"
    LEAVE_TRANSACTION = "leave_transaction"


class AckOutcome(enum.StrEnum):
    """Acknowledgement returned by a downstream system for one dispatch."""

    ACCEPTED = "ACCEPTED"
    ALREADY_APPLIED = "ALREADY_APPLIED"
    REJECTED = "REJECTED"


class AuditTargetType(enum.StrEnum):
    """Entity type recorded in the leave audit trail."""

    BALANCE = "balance"
    REQUEST = "request"
    TRANSACTION = "transaction"
    DELEGATION = "delegation"
    CONFIGURATION = "configuration"


class EmploymentStatus(enum.StrEnum):
    """Employment status reported by the directory."""

    ACTIVE = "ACTIVE"
    ON_LEAVE = "ON_LEAVE"
    UNPAID_LEAVE = "UNPAID_LEAVE"
    TERMINATED = "TERMINATED"


class JobRunType(enum.StrEnum):
    ACCRUAL_RUN = "accrual_run"
    CARRY_FORWARD = "carry_forward"
    EXPIRY_SWEEP = "expiry_sweep"
    ESCALATION_SWEEP = "escalation_sweep"
    INTEGRATION_SYNC = "integration_sync"


class JobRunStatus(enum.StrEnum):
    RUNNING = "running"
    SUCCESS = "success"
    PARTIAL = "partial"
    FAILED = "failed"
