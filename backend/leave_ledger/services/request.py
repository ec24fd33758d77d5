# ruff: noqa: TC003
"""Request adjudication: the leave request state machine.

    SUBMITTED -> PENDING_MANAGER -> MANAGER_APPROVED -> (HR_APPROVED) -> FINALIZED
                                 -> MANAGER_REJECTED -> (HR override)
                                 -> ESCALATED -> HR_APPROVED | HR_REJECTED

Every transition claims the request with a compare-and-swap on ``version``
and commits in one database transaction; on any error the session is rolled
back and the request keeps its prior state.
"""

from __future__ import annotations

import logging
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import func, select, update
from sqlalchemy.orm.attributes import set_committed_value
from sqlmodel import col

from leave_ledger.config import get_settings
from leave_ledger.exceptions import (
    ConflictError,
    EligibilityError,
    EntitlementRuleNotFoundError,
    IllegalTransitionError,
    InsufficientBalanceError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from leave_ledger.models.base import SYSTEM_ACTOR, ensure_utc, now_utc, to_days
from leave_ledger.models.enums import (
    ApprovalAction,
    ApproverRole,
    AuditTargetType,
    ExternalSystem,
    InsufficientBalancePolicy,
    IntegrationAction,
    IntegrationEntityType,
    IntegrationStatus,
    JobRunType,
    RequestStatus,
    TransactionType,
)
from leave_ledger.models.leave_type import LeaveType
from leave_ledger.models.request import ApprovalRecord, LeaveRequest, UnpaidLeaveMarker
from leave_ledger.schemas.request import (
    ApprovalRecordResponse,
    Attachment,
    RequestListResponse,
    RequestResponse,
)
from leave_ledger.services import integration, ledger
from leave_ledger.services.audit import audit_warnings, model_to_audit_dict, record_audit
from leave_ledger.services.calendar import count_days
from leave_ledger.services.delegation import find_active_delegation, resolve_approver
from leave_ledger.services.directory import get_directory_service
from leave_ledger.services.entitlement import resolve_entitlement
from leave_ledger.services.job import finish_job_run, start_job_run
from leave_ledger.services.leave_type import get_leave_type_or_404
from leave_ledger.services.notification import send_notification

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from sqlalchemy.ext.asyncio import AsyncSession

    from leave_ledger.models.balance import BalanceProjection
    from leave_ledger.models.ledger import LedgerTransaction
    from leave_ledger.schemas.auth import AuthContext
    from leave_ledger.schemas.request import DecisionPayload, HRDecisionPayload, SubmitRequestPayload

logger = logging.getLogger(__name__)

ESCALATION_REASON = "auto-escalated: manager SLA exceeded"
NO_MANAGER_REASON = "auto-escalated: no manager on record"

# ---------------------------------------------------------------------------
# Transition table
# ---------------------------------------------------------------------------

TRANSITIONS: dict[RequestStatus, frozenset[RequestStatus]] = {
    RequestStatus.SUBMITTED: frozenset(
        {RequestStatus.PENDING_MANAGER, RequestStatus.ESCALATED, RequestStatus.CANCELED}
    ),
    RequestStatus.PENDING_MANAGER: frozenset(
        {
            RequestStatus.MANAGER_APPROVED,
            RequestStatus.MANAGER_REJECTED,
            RequestStatus.ESCALATED,
            RequestStatus.CANCELED,
        }
    ),
    RequestStatus.MANAGER_APPROVED: frozenset(
        {
            RequestStatus.HR_APPROVED,
            RequestStatus.HR_REJECTED,
            RequestStatus.FINALIZED,
            RequestStatus.CANCELED,
        }
    ),
    # Only reachable when the leave type allows HR to overturn the manager.
    RequestStatus.MANAGER_REJECTED: frozenset(
        {RequestStatus.HR_APPROVED, RequestStatus.HR_REJECTED, RequestStatus.CANCELED}
    ),
    RequestStatus.ESCALATED: frozenset({RequestStatus.HR_APPROVED, RequestStatus.HR_REJECTED, RequestStatus.CANCELED}),
    RequestStatus.HR_APPROVED: frozenset({RequestStatus.FINALIZED, RequestStatus.CANCELED}),
    RequestStatus.HR_REJECTED: frozenset(),
    RequestStatus.FINALIZED: frozenset(),
    RequestStatus.CANCELED: frozenset(),
}

# Requests that still hold a claim on balance (not yet debited, not dead).
IN_FLIGHT_STATUSES = [
    RequestStatus.SUBMITTED.value,
    RequestStatus.PENDING_MANAGER.value,
    RequestStatus.MANAGER_APPROVED.value,
    RequestStatus.ESCALATED.value,
    RequestStatus.HR_APPROVED.value,
]

_OVERLAP_STATUSES = [*IN_FLIGHT_STATUSES, RequestStatus.FINALIZED.value]


def allowed_transitions(status: RequestStatus, leave_type: LeaveType) -> frozenset[RequestStatus]:
    """Legal next states for a request of ``leave_type`` currently in ``status``."""
    if status == RequestStatus.MANAGER_REJECTED and not leave_type.allow_hr_override:
        return frozenset()
    return TRANSITIONS[status]


def is_terminal(status: RequestStatus, leave_type: LeaveType) -> bool:
    return not allowed_transitions(status, leave_type)


def _move(request: LeaveRequest, leave_type: LeaveType, target: RequestStatus) -> None:
    current = RequestStatus(request.status)
    if target not in allowed_transitions(current, leave_type):
        raise IllegalTransitionError(f"Cannot move request from {current} to {target}")
    request.status = target.value


@dataclass
class EscalationSweepResult:
    """Summary of one auto-escalation pass."""

    job_run_id: uuid.UUID | None = None
    escalated: int = 0
    skipped: int = 0
    errors: int = 0


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _build_record_response(record: ApprovalRecord) -> ApprovalRecordResponse:
    return ApprovalRecordResponse(
        step_number=record.step_number,
        approver_id=record.approver_id,
        approver_role=ApproverRole(record.approver_role),
        action=ApprovalAction(record.action),
        reason=record.reason,
        is_override=record.is_override,
        override_reason=record.override_reason,
        timestamp=record.timestamp,
    )


def _build_request_response(
    request: LeaveRequest,
    records: list[ApprovalRecord],
    warnings: list[str] | None = None,
) -> RequestResponse:
    """Map a request model and its approval history to the response schema."""
    return RequestResponse(
        id=request.id,
        employee_id=request.employee_id,
        leave_type_id=request.leave_type_id,
        rule_id=request.rule_id,
        start_date=request.start_date,
        end_date=request.end_date,
        requested_days=request.requested_days,
        net_days=request.net_days,
        justification=request.justification,
        attachments=[Attachment.model_validate(a) for a in request.attachments or []],
        status=RequestStatus(request.status),
        version=request.version,
        is_post_leave_request=request.is_post_leave_request,
        has_overlap_with_approved_leave=request.has_overlap_with_approved_leave,
        overlapping_leave_request_ids=[uuid.UUID(i) for i in request.overlapping_leave_request_ids or []],
        exceeds_entitlement=request.exceeds_entitlement,
        converted_to_unpaid_days=request.converted_to_unpaid_days,
        payroll_sync_status=request.payroll_sync_status,
        time_sync_status=request.time_sync_status,
        manager_id=request.manager_id,
        current_approver=request.current_approver,
        grace_period_hours=request.grace_period_hours,
        submitted_at=request.submitted_at,
        escalated_at=request.escalated_at,
        finalized_by=request.finalized_by,
        finalized_at=request.finalized_at,
        approval_records=[_build_record_response(r) for r in records],
        warnings=warnings or [],
    )


async def _load_records(session: AsyncSession, request_id: uuid.UUID) -> list[ApprovalRecord]:
    result = await session.execute(
        select(ApprovalRecord)
        .where(col(ApprovalRecord.request_id) == request_id)
        .order_by(col(ApprovalRecord.step_number))
    )
    return list(result.scalars().all())


async def _get_request_or_404(session: AsyncSession, request_id: uuid.UUID) -> LeaveRequest:
    """Load a request, refreshing any stale copy held by the session."""
    result = await session.execute(
        select(LeaveRequest).where(col(LeaveRequest.id) == request_id).execution_options(populate_existing=True)
    )
    request = result.scalar_one_or_none()
    if request is None:
        raise NotFoundError("Leave request not found")
    return request


async def _leave_type_for(session: AsyncSession, request: LeaveRequest) -> LeaveType:
    """The request's leave type, including one soft-deleted since submission."""
    leave_type = await session.get(LeaveType, request.leave_type_id)
    if leave_type is None:
        raise NotFoundError("Leave type not found")
    return leave_type


async def _claim(session: AsyncSession, request: LeaveRequest) -> None:
    """Compare-and-swap the request version. Raises ConflictError if another transition won."""
    expected = request.version
    result = await session.execute(
        update(LeaveRequest)
        .where(col(LeaveRequest.id) == request.id, col(LeaveRequest.version) == expected)
        .values(version=expected + 1)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:  # type: ignore[attr-defined]
        raise ConflictError("Leave request was modified concurrently; reload and retry")
    set_committed_value(request, "version", expected + 1)


async def _add_record(
    session: AsyncSession,
    request: LeaveRequest,
    *,
    approver_id: uuid.UUID,
    role: ApproverRole,
    action: ApprovalAction,
    now: datetime,
    reason: str | None = None,
    is_override: bool = False,
    override_reason: str | None = None,
) -> ApprovalRecord:
    """Append the next step of the request's approval history."""
    result = await session.execute(
        select(func.coalesce(func.max(col(ApprovalRecord.step_number)), 0)).where(
            col(ApprovalRecord.request_id) == request.id
        )
    )
    record = ApprovalRecord(
        request_id=request.id,
        step_number=result.scalar_one() + 1,
        approver_id=approver_id,
        approver_role=role.value,
        action=action.value,
        reason=reason,
        is_override=is_override,
        override_reason=override_reason,
        timestamp=now,
    )
    session.add(record)
    await session.flush()
    return record


@asynccontextmanager
async def _rollback_on_error(session: AsyncSession) -> AsyncIterator[None]:
    try:
        yield
    except Exception:
        await session.rollback()
        raise


async def _in_flight_days(
    session: AsyncSession,
    employee_id: uuid.UUID,
    leave_type_id: uuid.UUID,
) -> Decimal:
    """Net days of the employee's other undecided requests of the same leave type."""
    result = await session.execute(
        select(func.coalesce(func.sum(col(LeaveRequest.net_days)), 0)).where(
            col(LeaveRequest.employee_id) == employee_id,
            col(LeaveRequest.leave_type_id) == leave_type_id,
            col(LeaveRequest.status).in_(IN_FLIGHT_STATUSES),
        )
    )
    return to_days(result.scalar_one())


async def _find_overlaps(
    session: AsyncSession,
    employee_id: uuid.UUID,
    start_date: date,
    end_date: date,
) -> list[uuid.UUID]:
    """Live requests of the employee (any leave type) whose date range intersects."""
    result = await session.execute(
        select(LeaveRequest.id)
        .where(
            col(LeaveRequest.employee_id) == employee_id,
            col(LeaveRequest.status).in_(_OVERLAP_STATUSES),
            col(LeaveRequest.start_date) <= end_date,
            col(LeaveRequest.end_date) >= start_date,
        )
        .order_by(col(LeaveRequest.start_date))
    )
    return list(result.scalars().all())


def _needs_hr_review(request: LeaveRequest, leave_type: LeaveType) -> bool:
    return request.exceeds_entitlement or leave_type.requires_hr_review


async def _finalize(
    session: AsyncSession,
    request: LeaveRequest,
    leave_type: LeaveType,
    projection: BalanceProjection,
    actor_id: uuid.UUID,
    now: datetime,
) -> LedgerTransaction | None:
    """Debit the balance and finalize. Must run inside ``ledger.locked_balance``.

    Flow:
    1. Compare net days with the available balance.
    2. On a shortfall apply the leave type's insufficient-balance policy.
    3. Append the ``take`` transaction for the debited part.
    4. Mark FINALIZED and enqueue payroll and time-management sync.
    """
    policy = InsufficientBalancePolicy(leave_type.insufficient_balance_policy)
    net = to_days(request.net_days)
    available = max(to_days(projection.balance_days), Decimal(0))
    shortfall = max(net - available, Decimal(0))
    debit = net

    if shortfall > 0:
        if policy == InsufficientBalancePolicy.REJECT:
            raise InsufficientBalanceError(
                f"Request needs {net} days but only {available} days are available for this leave type"
            )
        if policy == InsufficientBalancePolicy.CONVERT_TO_UNPAID:
            debit = net - shortfall
            request.converted_to_unpaid_days = shortfall
            session.add(
                UnpaidLeaveMarker(
                    request_id=request.id,
                    employee_id=request.employee_id,
                    leave_type_id=request.leave_type_id,
                    days=shortfall,
                    start_date=request.start_date,
                    end_date=request.end_date,
                )
            )

    transaction = None
    if debit > 0:
        transaction = await ledger.append_locked(
            session,
            projection,
            amount=-debit,
            transaction_type=TransactionType.TAKE,
            origin_request_id=request.id,
            performed_by=actor_id,
            reason=f"leave {request.start_date.isoformat()} to {request.end_date.isoformat()}",
            idempotency_key=f"take:{request.id}",
            metadata={"net_days": str(net), "converted_to_unpaid_days": str(shortfall if debit < net else 0)},
            allow_negative=policy == InsufficientBalancePolicy.ALLOW_NEGATIVE,
        )

    _move(request, leave_type, RequestStatus.FINALIZED)
    request.finalized_by = actor_id
    request.finalized_at = now
    request.current_approver = None
    request.payroll_sync_status = IntegrationStatus.PENDING.value
    request.time_sync_status = IntegrationStatus.PENDING.value

    summary = {
        "employee_id": str(request.employee_id),
        "leave_type_id": str(request.leave_type_id),
        "payroll_code": leave_type.payroll_code,
        "start_date": request.start_date.isoformat(),
        "end_date": request.end_date.isoformat(),
        "net_days": str(net),
        "debited_days": str(debit),
        "unpaid_days": str(request.converted_to_unpaid_days),
    }
    integration.enqueue(
        session,
        entity_type=IntegrationEntityType.LEAVE_REQUEST,
        entity_id=request.id,
        external_system=ExternalSystem.PAYROLL,
        action=IntegrationAction.UPDATE_BALANCE,
        payload_summary=summary,
    )
    integration.enqueue(
        session,
        entity_type=IntegrationEntityType.LEAVE_REQUEST,
        entity_id=request.id,
        external_system=ExternalSystem.TIME_MANAGEMENT,
        action=IntegrationAction.BLOCK_ATTENDANCE,
        payload_summary=summary,
    )
    return transaction


async def _after_commit(
    session: AsyncSession,
    request: LeaveRequest,
    actor_id: uuid.UUID,
    before: dict[str, object] | None,
    reason: str,
    transaction: LedgerTransaction | None = None,
) -> RequestResponse:
    """Build the response, then write the audit trail for a committed transition."""
    response = _build_request_response(request, await _load_records(session, request.id))
    after = model_to_audit_dict(request)
    transaction_after = model_to_audit_dict(transaction) if transaction is not None else None

    written = [
        await record_audit(
            session,
            target_type=AuditTargetType.REQUEST,
            target_id=response.id,
            changed_by=actor_id,
            before=before,
            after=after,
            reason=reason,
        )
    ]
    if transaction_after is not None:
        written.append(
            await record_audit(
                session,
                target_type=AuditTargetType.TRANSACTION,
                target_id=uuid.UUID(transaction_after["id"]),
                changed_by=actor_id,
                after=transaction_after,
                reason=f"take for request {response.id}",
            )
        )
    response.warnings = audit_warnings(*written)
    return response


async def _notify(event_type: str, response: RequestResponse, *extra: uuid.UUID | None) -> None:
    await send_notification(
        event_type,
        [response.employee_id, *extra],
        request_id=response.id,
        status=response.status.value,
    )


# ---------------------------------------------------------------------------
# Submission
# ---------------------------------------------------------------------------


async def submit_request(
    session: AsyncSession,
    auth: AuthContext,
    payload: SubmitRequestPayload,
    *,
    now: datetime | None = None,
) -> RequestResponse:
    """Submit a leave request and route it for approval.

    Flow:
    1. Validate the employee, leave type, attachments and duration.
    2. Count requested and net days (missing calendar year fails, nothing persisted).
    3. Flag overlaps with the employee's live requests.
    4. Resolve the entitlement and project the balance; flag exceeds_entitlement.
    5. Route to the manager or the manager's active delegate, or escalate to HR
       when no manager is on record.
    6. Commit, audit, notify.
    """
    now = now or now_utc()
    today = now.date()

    if payload.employee_id != auth.user_id and not auth.is_hr:
        raise PermissionDeniedError("Employees can only submit their own leave requests")

    employee = await get_directory_service().get_employee(payload.employee_id)
    if employee is None:
        raise NotFoundError("Employee not found")
    leave_type = await get_leave_type_or_404(session, payload.leave_type_id)
    if not leave_type.is_active:
        raise ValidationError(f"Leave type '{leave_type.code}' is not active")
    if leave_type.requires_attachment and not payload.attachments:
        raise ValidationError(f"Leave type '{leave_type.code}' requires a supporting attachment")

    # 2. Day counts.
    requested_days, net_days = await count_days(session, payload.start_date, payload.end_date)
    if leave_type.max_duration_days is not None and net_days > leave_type.max_duration_days:
        raise ValidationError(
            f"Request of {net_days} days exceeds the maximum of {leave_type.max_duration_days} days"
        )

    # 3. Overlaps.
    overlaps = await _find_overlaps(session, payload.employee_id, payload.start_date, payload.end_date)

    # 4. Entitlement and projected balance.
    exceeds = False
    rule_id: uuid.UUID | None = None
    try:
        entitlement = await resolve_entitlement(session, employee, payload.leave_type_id, payload.start_date)
    except EligibilityError as exc:
        logger.info("Employee %s not eligible for leave type %s: %s", employee.id, leave_type.code, exc.message)
        exceeds = True
    except EntitlementRuleNotFoundError:
        # No entitlement configured for the leave type: only the balance limits it.
        pass
    else:
        rule_id = entitlement.applied_rule_id
        exceeds = net_days > entitlement.yearly_entitlement_days

    balance = await ledger.get_balance(session, payload.employee_id, payload.leave_type_id)
    pending = await _in_flight_days(session, payload.employee_id, payload.leave_type_id)
    if balance - pending - net_days < 0:
        exceeds = True

    request = LeaveRequest(
        employee_id=payload.employee_id,
        leave_type_id=payload.leave_type_id,
        rule_id=rule_id,
        start_date=payload.start_date,
        end_date=payload.end_date,
        requested_days=requested_days,
        net_days=net_days,
        justification=payload.justification,
        attachments=[a.model_dump() for a in payload.attachments],
        status=RequestStatus.SUBMITTED.value,
        is_post_leave_request=payload.start_date < today,
        has_overlap_with_approved_leave=bool(overlaps),
        overlapping_leave_request_ids=[str(i) for i in overlaps],
        exceeds_entitlement=exceeds,
        manager_id=employee.manager_id,
        grace_period_hours=leave_type.grace_period_hours or get_settings().escalation_grace_hours,
        submitted_at=now,
    )

    async with _rollback_on_error(session):
        session.add(request)
        await session.flush()

        # 5. Routing.
        if employee.manager_id is None:
            _move(request, leave_type, RequestStatus.ESCALATED)
            request.escalated_at = now
            await _add_record(
                session,
                request,
                approver_id=SYSTEM_ACTOR,
                role=ApproverRole.SYSTEM,
                action=ApprovalAction.OVERRIDDEN,
                now=now,
                reason=NO_MANAGER_REASON,
            )
        else:
            _move(request, leave_type, RequestStatus.PENDING_MANAGER)
            resolved = await resolve_approver(session, employee.manager_id, today)
            request.current_approver = resolved.approver_id
            if resolved.delegation_id is not None:
                await _add_record(
                    session,
                    request,
                    approver_id=resolved.approver_id,
                    role=ApproverRole.DELEGATE,
                    action=ApprovalAction.DELEGATED,
                    now=now,
                    reason=f"routed to delegate of manager {employee.manager_id}",
                )
        await session.commit()

    logger.info(
        "Leave request %s submitted for employee=%s (%s net days, status=%s)",
        request.id,
        request.employee_id,
        net_days,
        request.status,
    )
    response = await _after_commit(session, request, auth.user_id, None, "request submitted")
    await _notify("request.submitted", response, response.current_approver)
    if response.status == RequestStatus.ESCALATED:
        await _notify("request.escalated", response)
    return response


# ---------------------------------------------------------------------------
# Manager decisions
# ---------------------------------------------------------------------------


async def _manager_role(
    session: AsyncSession,
    auth: AuthContext,
    request: LeaveRequest,
    today: date,
) -> ApproverRole:
    """Who may decide at the manager step: the manager, or the delegate active on ``today``.

    ``current_approver`` only records where the request was routed; a delegate
    whose delegation was revoked or has run out loses authority immediately.
    """
    if request.manager_id is not None and auth.user_id == request.manager_id:
        return ApproverRole.MANAGER
    if request.manager_id is not None:
        delegation = await find_active_delegation(session, request.manager_id, today)
        if delegation is not None and delegation.delegate_id == auth.user_id:
            return ApproverRole.DELEGATE
    raise PermissionDeniedError("Only the request's manager or an active delegate can decide at this step")


async def approve_by_manager(
    session: AsyncSession,
    auth: AuthContext,
    request_id: uuid.UUID,
    payload: DecisionPayload | None = None,
    *,
    now: datetime | None = None,
) -> RequestResponse:
    """Manager approval. Finalizes immediately unless HR review is required."""
    now = now or now_utc()
    request = await _get_request_or_404(session, request_id)
    leave_type = await _leave_type_for(session, request)
    if RequestStatus(request.status) != RequestStatus.PENDING_MANAGER:
        raise IllegalTransitionError(f"Request is {request.status}, not awaiting a manager decision")
    role = await _manager_role(session, auth, request, now.date())
    before = model_to_audit_dict(request)

    transaction = None
    async with ledger.locked_balance(session, request.employee_id, request.leave_type_id) as projection:
        await _claim(session, request)
        _move(request, leave_type, RequestStatus.MANAGER_APPROVED)
        await _add_record(
            session,
            request,
            approver_id=auth.user_id,
            role=role,
            action=ApprovalAction.APPROVED,
            now=now,
            reason=payload.reason if payload else None,
        )
        if _needs_hr_review(request, leave_type):
            request.current_approver = None
        else:
            transaction = await _finalize(session, request, leave_type, projection, auth.user_id, now)
        await session.commit()

    response = await _after_commit(session, request, auth.user_id, before, "manager approved", transaction)
    await _notify(
        "request.finalized" if response.status == RequestStatus.FINALIZED else "request.manager_approved", response
    )
    return response


async def reject_by_manager(
    session: AsyncSession,
    auth: AuthContext,
    request_id: uuid.UUID,
    payload: DecisionPayload | None = None,
    *,
    now: datetime | None = None,
) -> RequestResponse:
    now = now or now_utc()
    request = await _get_request_or_404(session, request_id)
    leave_type = await _leave_type_for(session, request)
    if RequestStatus(request.status) != RequestStatus.PENDING_MANAGER:
        raise IllegalTransitionError(f"Request is {request.status}, not awaiting a manager decision")
    role = await _manager_role(session, auth, request, now.date())
    before = model_to_audit_dict(request)

    async with _rollback_on_error(session):
        await _claim(session, request)
        _move(request, leave_type, RequestStatus.MANAGER_REJECTED)
        request.current_approver = None
        await _add_record(
            session,
            request,
            approver_id=auth.user_id,
            role=role,
            action=ApprovalAction.REJECTED,
            now=now,
            reason=payload.reason if payload else None,
        )
        await session.commit()

    response = await _after_commit(session, request, auth.user_id, before, "manager rejected")
    await _notify("request.rejected", response)
    return response


# ---------------------------------------------------------------------------
# HR decisions
# ---------------------------------------------------------------------------

_HR_DECIDABLE = (RequestStatus.MANAGER_APPROVED, RequestStatus.ESCALATED, RequestStatus.MANAGER_REJECTED)


async def _load_for_hr(
    session: AsyncSession,
    auth: AuthContext,
    request_id: uuid.UUID,
) -> tuple[LeaveRequest, LeaveType]:
    if not auth.is_hr:
        raise PermissionDeniedError("HR role required")
    request = await _get_request_or_404(session, request_id)
    leave_type = await _leave_type_for(session, request)
    status = RequestStatus(request.status)
    if status not in _HR_DECIDABLE or is_terminal(status, leave_type):
        raise IllegalTransitionError(f"Request is {status}, which is not awaiting an HR decision")
    return request, leave_type


async def approve_by_hr(
    session: AsyncSession,
    auth: AuthContext,
    request_id: uuid.UUID,
    payload: HRDecisionPayload | None = None,
    *,
    now: datetime | None = None,
) -> RequestResponse:
    """HR approval, then finalization.

    Approving a MANAGER_REJECTED request is an override and needs an
    ``override_reason``.
    """
    now = now or now_utc()
    request, leave_type = await _load_for_hr(session, auth, request_id)
    is_override = RequestStatus(request.status) == RequestStatus.MANAGER_REJECTED
    override_reason = payload.override_reason if payload else None
    if is_override and not override_reason:
        raise ValidationError("override_reason is required to overturn a manager rejection")
    before = model_to_audit_dict(request)

    async with ledger.locked_balance(session, request.employee_id, request.leave_type_id) as projection:
        await _claim(session, request)
        _move(request, leave_type, RequestStatus.HR_APPROVED)
        await _add_record(
            session,
            request,
            approver_id=auth.user_id,
            role=ApproverRole.HR,
            action=ApprovalAction.APPROVED,
            now=now,
            reason=payload.reason if payload else None,
            is_override=is_override,
            override_reason=override_reason,
        )
        transaction = await _finalize(session, request, leave_type, projection, auth.user_id, now)
        await session.commit()

    response = await _after_commit(
        session, request, auth.user_id, before, "HR override approved" if is_override else "HR approved", transaction
    )
    await _notify("request.finalized", response, response.manager_id)
    return response


async def reject_by_hr(
    session: AsyncSession,
    auth: AuthContext,
    request_id: uuid.UUID,
    payload: HRDecisionPayload | None = None,
    *,
    now: datetime | None = None,
) -> RequestResponse:
    now = now or now_utc()
    request, leave_type = await _load_for_hr(session, auth, request_id)
    before = model_to_audit_dict(request)

    async with _rollback_on_error(session):
        await _claim(session, request)
        _move(request, leave_type, RequestStatus.HR_REJECTED)
        request.current_approver = None
        await _add_record(
            session,
            request,
            approver_id=auth.user_id,
            role=ApproverRole.HR,
            action=ApprovalAction.REJECTED,
            now=now,
            reason=payload.reason if payload else None,
        )
        await session.commit()

    response = await _after_commit(session, request, auth.user_id, before, "HR rejected")
    await _notify("request.rejected", response, response.manager_id)
    return response


# ---------------------------------------------------------------------------
# Cancellation
# ---------------------------------------------------------------------------


async def cancel_request(
    session: AsyncSession,
    auth: AuthContext,
    request_id: uuid.UUID,
    payload: DecisionPayload | None = None,
) -> RequestResponse:
    """Cancel a request that has not been finalized. Requester or HR only."""
    request = await _get_request_or_404(session, request_id)
    if auth.user_id != request.employee_id and not auth.is_hr:
        raise PermissionDeniedError("Only the requester or HR can cancel a request")
    leave_type = await _leave_type_for(session, request)
    before = model_to_audit_dict(request)

    async with _rollback_on_error(session):
        await _claim(session, request)
        _move(request, leave_type, RequestStatus.CANCELED)
        request.current_approver = None
        await session.commit()

    reason = payload.reason if payload and payload.reason else "request canceled"
    response = await _after_commit(session, request, auth.user_id, before, reason)
    await _notify("request.canceled", response, response.manager_id)
    return response


# ---------------------------------------------------------------------------
# Auto-escalation
# ---------------------------------------------------------------------------


async def _escalate_one(session: AsyncSession, request_id: uuid.UUID, now: datetime) -> bool:
    """Escalate one overdue request. Returns False if it was no longer pending."""
    request = await _get_request_or_404(session, request_id)
    if RequestStatus(request.status) != RequestStatus.PENDING_MANAGER:
        return False
    leave_type = await _leave_type_for(session, request)
    before = model_to_audit_dict(request)

    async with _rollback_on_error(session):
        await _claim(session, request)
        _move(request, leave_type, RequestStatus.ESCALATED)
        request.escalated_at = now
        request.current_approver = None
        await _add_record(
            session,
            request,
            approver_id=SYSTEM_ACTOR,
            role=ApproverRole.SYSTEM,
            action=ApprovalAction.OVERRIDDEN,
            now=now,
            reason=ESCALATION_REASON,
        )
        await session.commit()

    response = await _after_commit(session, request, SYSTEM_ACTOR, before, ESCALATION_REASON)
    await _notify("request.escalated", response, response.manager_id)
    return True


async def run_escalation_sweep(
    session: AsyncSession,
    now: datetime | None = None,
    *,
    executed_by: uuid.UUID | None = None,
) -> EscalationSweepResult:
    """Move every PENDING_MANAGER request past its grace period to ESCALATED.

    Safe to run repeatedly: an escalated request is no longer pending, and a
    request decided concurrently loses the version compare-and-swap.
    A pass with nothing due records no job run.
    """
    now = now or now_utc()
    result = EscalationSweepResult()

    pending = await session.execute(
        select(LeaveRequest.id, LeaveRequest.submitted_at, LeaveRequest.grace_period_hours).where(
            col(LeaveRequest.status) == RequestStatus.PENDING_MANAGER.value
        )
    )
    due = [
        row.id
        for row in pending.all()
        if ensure_utc(row.submitted_at) + timedelta(hours=row.grace_period_hours) <= now
    ]
    await session.commit()
    if not due:
        logger.debug("Escalation sweep found nothing due")
        return result

    run = await start_job_run(session, JobRunType.ESCALATION_SWEEP, period=now.date().isoformat(), executed_by=executed_by)
    result.job_run_id = run.id

    for request_id in due:
        try:
            if await _escalate_one(session, request_id, now):
                result.escalated += 1
            else:
                result.skipped += 1
        except ConflictError:
            logger.info("Request %s was decided during escalation; skipping", request_id)
            result.skipped += 1
        except Exception:
            logger.exception("Error escalating request %s", request_id)
            await session.rollback()
            result.errors += 1

    await finish_job_run(
        session,
        run,
        errors=result.errors,
        processed=len(due),
        summary={"due": len(due), "escalated": result.escalated, "skipped": result.skipped, "errors": result.errors},
    )
    if result.escalated:
        logger.info("Escalation sweep moved %d request(s) to HR", result.escalated)
    return result


# ---------------------------------------------------------------------------
# Read path
# ---------------------------------------------------------------------------


async def get_request(session: AsyncSession, request_id: uuid.UUID) -> RequestResponse:
    request = await _get_request_or_404(session, request_id)
    return _build_request_response(request, await _load_records(session, request.id))


async def list_requests(
    session: AsyncSession,
    status: RequestStatus | None = None,
    employee_id: uuid.UUID | None = None,
    approver_id: uuid.UUID | None = None,
    offset: int = 0,
    limit: int = 50,
) -> RequestListResponse:
    filters = []
    if status is not None:
        filters.append(col(LeaveRequest.status) == status.value)
    if employee_id is not None:
        filters.append(col(LeaveRequest.employee_id) == employee_id)
    if approver_id is not None:
        filters.append(col(LeaveRequest.current_approver) == approver_id)

    count_result = await session.execute(select(func.count()).select_from(LeaveRequest).where(*filters))
    total = count_result.scalar_one()
    result = await session.execute(
        select(LeaveRequest).where(*filters).order_by(col(LeaveRequest.submitted_at).desc()).offset(offset).limit(limit)
    )
    items = [_build_request_response(r, await _load_records(session, r.id)) for r in result.scalars().all()]
    return RequestListResponse(items=items, total=total)
