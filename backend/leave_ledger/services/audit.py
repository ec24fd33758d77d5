"""Leave audit trail.

Audit entries are written after the business change has committed, in their
own commit. A failed write never undoes the business change: it is logged at
ERROR and reported back so the caller can flag the response as degraded.
"""

from __future__ import annotations

import logging
import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import col

from leave_ledger.exceptions import AUDIT_WRITE_FAILED_WARNING, AuditWriteFailure
from leave_ledger.models.audit import LeaveAudit
from leave_ledger.models.enums import AuditTargetType
from leave_ledger.schemas.audit import AuditEntryResponse, AuditListResponse

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession
    from sqlmodel import SQLModel

logger = logging.getLogger(__name__)


def model_to_audit_dict(model: SQLModel) -> dict[str, Any]:
    """Serialize a SQLModel instance to a JSON-safe dict for audit logging."""
    return {key: _json_safe(value) for key, value in model.model_dump().items()}


def _json_safe(value: Any) -> Any:
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, dict):
        return {k: _json_safe(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_json_safe(v) for v in value]
    return value


async def _write_entry(session: AsyncSession, entry: LeaveAudit) -> None:
    session.add(entry)
    await session.commit()


async def record_audit(
    session: AsyncSession,
    *,
    target_type: AuditTargetType,
    target_id: uuid.UUID,
    changed_by: uuid.UUID | None,
    before: dict[str, Any] | None = None,
    after: dict[str, Any] | None = None,
    reason: str | None = None,
) -> bool:
    """Persist one audit entry. Call only after the audited change has committed.

    Returns False when the entry could not be written.
    """
    entry = LeaveAudit(
        target_type=target_type.value,
        target_id=target_id,
        changed_by=changed_by,
        before=before,
        after=after,
        reason=reason,
    )
    try:
        await _write_entry(session, entry)
    except SQLAlchemyError as exc:
        await session.rollback()
        failure = AuditWriteFailure(f"Audit write failed for {target_type.value} {target_id} (changed_by={changed_by})")
        logger.error("%s; business change is committed", failure.message, exc_info=exc)
        return False
    return True


def audit_warnings(*written: bool) -> list[str]:
    """Map audit write outcomes to response warnings."""
    return [] if all(written) else [AUDIT_WRITE_FAILED_WARNING]


# ---------------------------------------------------------------------------
# Read path
# ---------------------------------------------------------------------------


def _build_audit_response(entry: LeaveAudit) -> AuditEntryResponse:
    return AuditEntryResponse(
        id=entry.id,
        target_type=AuditTargetType(entry.target_type),
        target_id=entry.target_id,
        changed_by=entry.changed_by,
        before=entry.before,
        after=entry.after,
        reason=entry.reason,
        created_at=entry.created_at,
    )


async def list_audit_entries(
    session: AsyncSession,
    *,
    target_type: AuditTargetType | None = None,
    target_id: uuid.UUID | None = None,
    changed_by: uuid.UUID | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    offset: int = 0,
    limit: int = 50,
) -> AuditListResponse:
    """Query the audit trail, newest first."""
    filters = []
    if target_type is not None:
        filters.append(col(LeaveAudit.target_type) == target_type.value)
    if target_id is not None:
        filters.append(col(LeaveAudit.target_id) == target_id)
    if changed_by is not None:
        filters.append(col(LeaveAudit.changed_by) == changed_by)
    if start is not None:
        filters.append(col(LeaveAudit.created_at) >= start)
    if end is not None:
        filters.append(col(LeaveAudit.created_at) <= end)

    count_result = await session.execute(select(func.count()).select_from(LeaveAudit).where(*filters))
    total = count_result.scalar_one()

    result = await session.execute(
        select(LeaveAudit).where(*filters).order_by(col(LeaveAudit.created_at).desc()).offset(offset).limit(limit)
    )
    return AuditListResponse(items=[_build_audit_response(e) for e in result.scalars().all()], total=total)
