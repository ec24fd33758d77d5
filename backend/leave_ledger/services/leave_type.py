from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlmodel import col

from leave_ledger.exceptions import ConflictError, NotFoundError
from leave_ledger.models.base import now_utc
from leave_ledger.models.enums import AuditTargetType, InsufficientBalancePolicy
from leave_ledger.models.leave_type import LeaveType
from leave_ledger.schemas.leave_type import LeaveTypeListResponse, LeaveTypeResponse
from leave_ledger.services.audit import model_to_audit_dict, record_audit

if TYPE_CHECKING:
    import uuid

    from sqlalchemy.ext.asyncio import AsyncSession

    from leave_ledger.schemas.auth import AuthContext
    from leave_ledger.schemas.leave_type import CreateLeaveTypeRequest, UpdateLeaveTypeRequest


def _build_leave_type_response(leave_type: LeaveType) -> LeaveTypeResponse:
    return LeaveTypeResponse(
        id=leave_type.id,
        code=leave_type.code,
        name=leave_type.name,
        paid=leave_type.paid,
        payroll_code=leave_type.payroll_code,
        requires_hr_review=leave_type.requires_hr_review,
        insufficient_balance_policy=InsufficientBalancePolicy(leave_type.insufficient_balance_policy),
        allow_hr_override=leave_type.allow_hr_override,
        grace_period_hours=leave_type.grace_period_hours,
        requires_attachment=leave_type.requires_attachment,
        max_duration_days=leave_type.max_duration_days,
        is_active=leave_type.is_active,
        created_at=leave_type.created_at,
    )


async def get_leave_type_or_404(session: AsyncSession, leave_type_id: uuid.UUID) -> LeaveType:
    """Fetch a leave type that has not been deleted. Raises 404 otherwise."""
    leave_type = await session.get(LeaveType, leave_type_id)
    if leave_type is None or leave_type.deleted_at is not None:
        raise NotFoundError("Leave type not found")
    return leave_type


async def create_leave_type(
    session: AsyncSession,
    auth: AuthContext,
    payload: CreateLeaveTypeRequest,
) -> LeaveTypeResponse:
    leave_type = LeaveType(**payload.model_dump(mode="json"))
    session.add(leave_type)
    try:
        await session.flush()
    except IntegrityError:
        await session.rollback()
        raise ConflictError(f"Leave type with code '{payload.code}' already exists") from None
    await session.commit()

    response = _build_leave_type_response(leave_type)
    await record_audit(
        session,
        target_type=AuditTargetType.CONFIGURATION,
        target_id=leave_type.id,
        changed_by=auth.user_id,
        after=model_to_audit_dict(leave_type),
        reason="leave type created",
    )
    return response


async def update_leave_type(
    session: AsyncSession,
    auth: AuthContext,
    leave_type_id: uuid.UUID,
    payload: UpdateLeaveTypeRequest,
) -> LeaveTypeResponse:
    leave_type = await get_leave_type_or_404(session, leave_type_id)
    before = model_to_audit_dict(leave_type)

    for key, value in payload.model_dump(mode="json", exclude_unset=True).items():
        setattr(leave_type, key, value)
    await session.commit()

    response = _build_leave_type_response(leave_type)
    await record_audit(
        session,
        target_type=AuditTargetType.CONFIGURATION,
        target_id=leave_type.id,
        changed_by=auth.user_id,
        before=before,
        after=model_to_audit_dict(leave_type),
        reason="leave type updated",
    )
    return response


async def delete_leave_type(session: AsyncSession, auth: AuthContext, leave_type_id: uuid.UUID) -> None:
    """Soft-delete: historical transactions keep referencing the row."""
    leave_type = await get_leave_type_or_404(session, leave_type_id)
    before = model_to_audit_dict(leave_type)
    leave_type.is_active = False
    leave_type.deleted_at = now_utc()
    after = model_to_audit_dict(leave_type)
    await session.commit()
    await record_audit(
        session,
        target_type=AuditTargetType.CONFIGURATION,
        target_id=leave_type_id,
        changed_by=auth.user_id,
        before=before,
        after=after,
        reason="leave type deleted",
    )


async def get_leave_type(session: AsyncSession, leave_type_id: uuid.UUID) -> LeaveTypeResponse:
    return _build_leave_type_response(await get_leave_type_or_404(session, leave_type_id))


async def list_leave_types(
    session: AsyncSession,
    include_inactive: bool = False,
    offset: int = 0,
    limit: int = 50,
) -> LeaveTypeListResponse:
    filters = [col(LeaveType.deleted_at).is_(None)]
    if not include_inactive:
        filters.append(col(LeaveType.is_active).is_(True))

    count_result = await session.execute(select(func.count()).select_from(LeaveType).where(*filters))
    total = count_result.scalar_one()
    result = await session.execute(
        select(LeaveType).where(*filters).order_by(col(LeaveType.code)).offset(offset).limit(limit)
    )
    return LeaveTypeListResponse(items=[_build_leave_type_response(t) for t in result.scalars().all()], total=total)
