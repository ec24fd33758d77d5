"""Delegation of a manager's approval authority.

Lifecycle: ``PENDING`` -> ``ACCEPTED`` | ``REJECTED`` by the delegate, and
``REVOKED`` by the manager from any state but ``REVOKED``. Only an accepted
delegation whose window contains the date routes approvals to the delegate.
Revoking sends the manager's pending requests routed to the delegate back to
the manager.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from sqlalchemy import func, or_, select, update
from sqlmodel import col

from leave_ledger.exceptions import ConflictError, NotFoundError, PermissionDeniedError, ValidationError
from leave_ledger.models.base import now_utc
from leave_ledger.models.delegation import Delegation
from leave_ledger.models.enums import AuditTargetType, DelegationStatus, RequestStatus
from leave_ledger.models.request import LeaveRequest
from leave_ledger.schemas.delegation import DelegationListResponse, DelegationResponse, ResolvedApprover
from leave_ledger.services.audit import audit_warnings, model_to_audit_dict, record_audit
from leave_ledger.services.notification import send_notification

if TYPE_CHECKING:
    import uuid
    from datetime import date

    from sqlalchemy.ext.asyncio import AsyncSession

    from leave_ledger.schemas.auth import AuthContext
    from leave_ledger.schemas.delegation import CreateDelegationRequest

logger = logging.getLogger(__name__)

_OPEN_STATUSES = [DelegationStatus.PENDING.value, DelegationStatus.ACCEPTED.value]


def _build_delegation_response(delegation: Delegation, warnings: list[str] | None = None) -> DelegationResponse:
    return DelegationResponse(
        id=delegation.id,
        manager_id=delegation.manager_id,
        delegate_id=delegation.delegate_id,
        start_date=delegation.start_date,
        end_date=delegation.end_date,
        status=DelegationStatus(delegation.status),
        reason=delegation.reason,
        responded_at=delegation.responded_at,
        revoked_at=delegation.revoked_at,
        created_at=delegation.created_at,
        warnings=warnings or [],
    )


async def _get_delegation_or_404(session: AsyncSession, delegation_id: uuid.UUID) -> Delegation:
    delegation = await session.get(Delegation, delegation_id)
    if delegation is None:
        raise NotFoundError("Delegation not found")
    return delegation


async def _audited_response(
    session: AsyncSession,
    delegation: Delegation,
    actor_id: uuid.UUID,
    before: dict[str, object] | None,
    reason: str,
) -> DelegationResponse:
    response = _build_delegation_response(delegation)
    written = await record_audit(
        session,
        target_type=AuditTargetType.DELEGATION,
        target_id=delegation.id,
        changed_by=actor_id,
        before=before,
        after=response.model_dump(mode="json", exclude={"warnings"}),
        reason=reason,
    )
    response.warnings = audit_warnings(written)
    return response


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------


async def create_delegation(
    session: AsyncSession,
    auth: AuthContext,
    payload: CreateDelegationRequest,
) -> DelegationResponse:
    """Create a pending delegation from the calling manager to ``delegate_id``.

    Windows of one manager's pending or accepted delegations may not overlap.
    """
    if payload.delegate_id == auth.user_id:
        raise ValidationError("A manager cannot delegate to themselves")

    start_date = payload.start_date or now_utc().date()
    if payload.end_date is not None and payload.end_date < start_date:
        raise ValidationError("end_date must not be before start_date")

    overlap_filters = [
        col(Delegation.manager_id) == auth.user_id,
        col(Delegation.status).in_(_OPEN_STATUSES),
        or_(col(Delegation.end_date).is_(None), col(Delegation.end_date) >= start_date),
    ]
    if payload.end_date is not None:
        overlap_filters.append(col(Delegation.start_date) <= payload.end_date)
    overlap = await session.execute(select(func.count()).select_from(Delegation).where(*overlap_filters))
    if overlap.scalar_one() > 0:
        raise ConflictError("An open delegation already covers part of this window")

    delegation = Delegation(
        manager_id=auth.user_id,
        delegate_id=payload.delegate_id,
        start_date=start_date,
        end_date=payload.end_date,
        reason=payload.reason,
    )
    session.add(delegation)
    await session.commit()

    response = await _audited_response(session, delegation, auth.user_id, None, "delegation created")
    await send_notification(
        "delegation.requested",
        [payload.delegate_id],
        delegation_id=str(response.id),
        manager_id=str(auth.user_id),
    )
    return response


async def respond_to_delegation(
    session: AsyncSession,
    auth: AuthContext,
    delegation_id: uuid.UUID,
    *,
    accept: bool,
) -> DelegationResponse:
    """Accept or reject a pending delegation. Only the delegate may respond."""
    delegation = await _get_delegation_or_404(session, delegation_id)
    if delegation.delegate_id != auth.user_id:
        raise PermissionDeniedError("Only the delegate can respond to a delegation")
    if delegation.status != DelegationStatus.PENDING:
        raise ConflictError(f"Delegation is {delegation.status}, not PENDING")

    before = model_to_audit_dict(delegation)
    delegation.status = (DelegationStatus.ACCEPTED if accept else DelegationStatus.REJECTED).value
    delegation.responded_at = now_utc()
    await session.commit()

    response = await _audited_response(
        session, delegation, auth.user_id, before, "delegation accepted" if accept else "delegation rejected"
    )
    await send_notification(
        "delegation.accepted" if accept else "delegation.rejected",
        [response.manager_id],
        delegation_id=str(response.id),
    )
    return response


async def revoke_delegation(session: AsyncSession, auth: AuthContext, delegation_id: uuid.UUID) -> DelegationResponse:
    """Revoke a delegation. The manager may do this at any time."""
    delegation = await _get_delegation_or_404(session, delegation_id)
    if delegation.manager_id != auth.user_id and not auth.is_hr:
        raise PermissionDeniedError("Only the delegating manager can revoke a delegation")
    if delegation.status == DelegationStatus.REVOKED:
        raise ConflictError("Delegation is already revoked")

    before = model_to_audit_dict(delegation)
    delegation.status = DelegationStatus.REVOKED.value
    delegation.revoked_at = now_utc()
    rerouted = await session.execute(
        update(LeaveRequest)
        .where(
            col(LeaveRequest.manager_id) == delegation.manager_id,
            col(LeaveRequest.current_approver) == delegation.delegate_id,
            col(LeaveRequest.status) == RequestStatus.PENDING_MANAGER.value,
        )
        .values(current_approver=delegation.manager_id)
        .execution_options(synchronize_session=False)
    )
    await session.commit()

    logger.info(
        "Delegation %s revoked by %s; %d pending request(s) routed back to the manager",
        delegation.id,
        auth.user_id,
        rerouted.rowcount,  # type: ignore[attr-defined]
    )
    return await _audited_response(session, delegation, auth.user_id, before, "delegation revoked")


# ---------------------------------------------------------------------------
# Resolution
# ---------------------------------------------------------------------------


async def find_active_delegation(
    session: AsyncSession,
    manager_id: uuid.UUID,
    as_of: date,
) -> Delegation | None:
    """The accepted delegation of ``manager_id`` whose window contains ``as_of``, if any."""
    result = await session.execute(
        select(Delegation)
        .where(
            col(Delegation.manager_id) == manager_id,
            col(Delegation.status) == DelegationStatus.ACCEPTED.value,
            col(Delegation.start_date) <= as_of,
            or_(col(Delegation.end_date).is_(None), col(Delegation.end_date) >= as_of),
        )
        .order_by(col(Delegation.created_at).desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def resolve_approver(session: AsyncSession, manager_id: uuid.UUID, as_of: date) -> ResolvedApprover:
    """Who approves on behalf of ``manager_id`` on ``as_of``: the active delegate or the manager."""
    delegation = await find_active_delegation(session, manager_id, as_of)
    return ResolvedApprover(
        manager_id=manager_id,
        as_of=as_of,
        approver_id=delegation.delegate_id if delegation is not None else manager_id,
        delegation_id=delegation.id if delegation is not None else None,
    )


# ---------------------------------------------------------------------------
# Read path
# ---------------------------------------------------------------------------


async def get_delegation(session: AsyncSession, delegation_id: uuid.UUID) -> DelegationResponse:
    return _build_delegation_response(await _get_delegation_or_404(session, delegation_id))


async def list_delegations(
    session: AsyncSession,
    manager_id: uuid.UUID | None = None,
    delegate_id: uuid.UUID | None = None,
    status: DelegationStatus | None = None,
    offset: int = 0,
    limit: int = 50,
) -> DelegationListResponse:
    filters = []
    if manager_id is not None:
        filters.append(col(Delegation.manager_id) == manager_id)
    if delegate_id is not None:
        filters.append(col(Delegation.delegate_id) == delegate_id)
    if status is not None:
        filters.append(col(Delegation.status) == status.value)

    count_result = await session.execute(select(func.count()).select_from(Delegation).where(*filters))
    total = count_result.scalar_one()
    result = await session.execute(
        select(Delegation).where(*filters).order_by(col(Delegation.created_at).desc()).offset(offset).limit(limit)
    )
    return DelegationListResponse(items=[_build_delegation_response(d) for d in result.scalars().all()], total=total)
