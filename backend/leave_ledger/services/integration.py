"""Integration sync: durable outbox of outcomes owed to payroll and time management.

``enqueue`` only inserts a ``pending`` log inside the caller's transaction.
Delivery happens later in ``deliver_due_logs``, driven by the worker loop:

    pending -> sent -> success
                    -> failed -> (backoff) -> sent -> ...

After ``max_attempts`` failed deliveries a log stays ``failed`` with no next
attempt until an operator requeues or supersedes it.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import timedelta
from typing import TYPE_CHECKING, Any

from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.orm.attributes import set_committed_value
from sqlmodel import col

from leave_ledger.config import get_settings
from leave_ledger.exceptions import ConflictError, IntegrationDeliveryError, NotFoundError
from leave_ledger.models.base import ensure_utc, now_utc
from leave_ledger.models.enums import (
    AckOutcome,
    ExternalSystem,
    IntegrationAction,
    IntegrationEntityType,
    IntegrationStatus,
    JobRunType,
)
from leave_ledger.models.integration import IntegrationLog
from leave_ledger.models.request import LeaveRequest
from leave_ledger.schemas.integration import (
    IntegrationLogListResponse,
    IntegrationLogResponse,
    IntegrationPayload,
)
from leave_ledger.services.integration_client import get_integration_client
from leave_ledger.services.job import finish_job_run, start_job_run

if TYPE_CHECKING:
    from datetime import datetime

    from sqlalchemy.ext.asyncio import AsyncSession

    from leave_ledger.schemas.auth import AuthContext

logger = logging.getLogger(__name__)


@dataclass
class SyncRunResult:
    """Summary of one delivery pass."""

    job_run_id: uuid.UUID | None = None
    attempted: int = 0
    succeeded: int = 0
    failed: int = 0
    exhausted: int = 0
    skipped: int = 0


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _build_log_response(log: IntegrationLog) -> IntegrationLogResponse:
    return IntegrationLogResponse(
        id=log.id,
        entity_type=IntegrationEntityType(log.entity_type),
        entity_id=log.entity_id,
        external_system=ExternalSystem(log.external_system),
        action=IntegrationAction(log.action),
        payload_summary=log.payload_summary,
        status=IntegrationStatus(log.status),
        attempts=log.attempts,
        max_attempts=log.max_attempts,
        last_attempt_at=log.last_attempt_at,
        next_attempt_at=log.next_attempt_at,
        last_error=log.last_error,
        external_id=log.external_id,
        created_at=log.created_at,
    )


def backoff_delay(attempts: int) -> timedelta:
    """Delay before the next attempt after ``attempts`` failed deliveries."""
    settings = get_settings()
    seconds = settings.integration_backoff_base_seconds * 2 ** max(attempts - 1, 0)
    return timedelta(seconds=min(seconds, settings.integration_backoff_max_seconds))


async def _get_log_or_404(session: AsyncSession, log_id: uuid.UUID) -> IntegrationLog:
    log = await session.get(IntegrationLog, log_id)
    if log is None:
        raise NotFoundError("Integration log not found")
    return log


async def _mirror_request_status(session: AsyncSession, log: IntegrationLog) -> None:
    """Copy a request's delivery status onto the request for display."""
    if log.entity_type != IntegrationEntityType.LEAVE_REQUEST:
        return
    request = await session.get(LeaveRequest, log.entity_id)
    if request is None:
        return
    if log.external_system == ExternalSystem.PAYROLL:
        request.payroll_sync_status = log.status
    elif log.external_system == ExternalSystem.TIME_MANAGEMENT:
        request.time_sync_status = log.status


# ---------------------------------------------------------------------------
# Enqueue
# ---------------------------------------------------------------------------


def enqueue(
    session: AsyncSession,
    *,
    entity_type: IntegrationEntityType,
    entity_id: uuid.UUID,
    external_system: ExternalSystem,
    action: IntegrationAction,
    payload_summary: dict[str, Any] | None = None,
) -> IntegrationLog:
    """Add a ``pending`` log to the caller's transaction. The caller commits."""
    log = IntegrationLog(
        entity_type=entity_type.value,
        entity_id=entity_id,
        external_system=external_system.value,
        action=action.value,
        payload_summary=payload_summary,
        status=IntegrationStatus.PENDING.value,
        attempts=0,
        max_attempts=get_settings().integration_max_attempts,
    )
    session.add(log)
    return log


# ---------------------------------------------------------------------------
# Delivery
# ---------------------------------------------------------------------------


async def _claim_log(session: AsyncSession, log: IntegrationLog, now: datetime) -> bool:
    """Mark ``log`` as ``sent`` only if nobody changed it since it was read.

    Conditioned on the status and attempt count this caller saw, so of two
    delivery passes reading the same due log only one dispatches it.
    """
    seen_status, seen_attempts = log.status, log.attempts
    result = await session.execute(
        update(IntegrationLog)
        .where(
            col(IntegrationLog.id) == log.id,
            col(IntegrationLog.status) == seen_status,
            col(IntegrationLog.attempts) == seen_attempts,
        )
        .values(
            status=IntegrationStatus.SENT.value,
            attempts=seen_attempts + 1,
            last_attempt_at=now,
            next_attempt_at=None,
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:  # type: ignore[attr-defined]
        # Nothing was written; end the transaction without expiring loaded logs.
        await session.commit()
        return False

    set_committed_value(log, "status", IntegrationStatus.SENT.value)
    set_committed_value(log, "attempts", seen_attempts + 1)
    set_committed_value(log, "last_attempt_at", now)
    set_committed_value(log, "next_attempt_at", None)
    return True


async def attempt_delivery(
    session: AsyncSession,
    log: IntegrationLog,
    now: datetime | None = None,
) -> IntegrationStatus | None:
    """Claim, dispatch and record the outcome of one log.

    Returns None when another delivery pass claimed the log first. The
    ``sent`` state is committed before the dispatch so a crash mid-call
    leaves a visible, retryable record.
    """
    now = now or now_utc()
    if not await _claim_log(session, log, now):
        logger.info("Integration log %s was claimed by another delivery pass; skipping", log.id)
        return None
    await _mirror_request_status(session, log)
    await session.commit()

    payload = IntegrationPayload(
        log_id=log.id,
        entity_type=IntegrationEntityType(log.entity_type),
        entity_id=log.entity_id,
        action=IntegrationAction(log.action),
        summary=log.payload_summary or {},
    )
    client = get_integration_client(ExternalSystem(log.external_system))

    error: str | None = None
    try:
        ack = await client.dispatch(payload)
    except IntegrationDeliveryError as exc:
        error = exc.message
    except Exception as exc:
        logger.exception("Unexpected error dispatching integration log %s", log.id)
        error = f"{type(exc).__name__}: {exc}"
    else:
        if ack.outcome == AckOutcome.REJECTED:
            error = ack.message or "rejected by external system"
        else:
            log.status = IntegrationStatus.SUCCESS.value
            log.last_error = None
            log.external_id = ack.external_id or log.external_id
            if ack.outcome == AckOutcome.ALREADY_APPLIED:
                logger.info("Integration log %s already applied by %s", log.id, log.external_system)

    if error is not None:
        log.status = IntegrationStatus.FAILED.value
        log.last_error = error[:2000]
        if log.attempts < log.max_attempts:
            log.next_attempt_at = now + backoff_delay(log.attempts)
            logger.warning(
                "Integration log %s to %s failed (attempt %d/%d): %s",
                log.id,
                log.external_system,
                log.attempts,
                log.max_attempts,
                error,
            )
        else:
            logger.error(
                "Integration log %s to %s exhausted %d attempts; operator action required: %s",
                log.id,
                log.external_system,
                log.attempts,
                error,
            )

    await _mirror_request_status(session, log)
    await session.commit()
    return IntegrationStatus(log.status)


async def deliver_due_logs(
    session: AsyncSession,
    now: datetime | None = None,
    *,
    limit: int | None = None,
) -> SyncRunResult:
    """Attempt every log that is due, oldest first."""
    settings = get_settings()
    now = now or now_utc()
    stale_sent_before = now - timedelta(seconds=settings.integration_sent_timeout_seconds)

    result = await session.execute(
        select(IntegrationLog)
        .where(
            or_(
                col(IntegrationLog.status) == IntegrationStatus.PENDING.value,
                and_(
                    col(IntegrationLog.status) == IntegrationStatus.FAILED.value,
                    col(IntegrationLog.attempts) < col(IntegrationLog.max_attempts),
                    col(IntegrationLog.next_attempt_at) <= now,
                ),
                and_(
                    col(IntegrationLog.status) == IntegrationStatus.SENT.value,
                    col(IntegrationLog.last_attempt_at) <= stale_sent_before,
                ),
            )
        )
        .order_by(col(IntegrationLog.created_at))
        .limit(limit or settings.integration_batch_size)
        .execution_options(populate_existing=True)
    )
    logs = list(result.scalars().all())
    await session.commit()

    run = SyncRunResult()
    for log in logs:
        status = await attempt_delivery(session, log, now)
        if status is None:
            run.skipped += 1
            continue
        run.attempted += 1
        if status == IntegrationStatus.SUCCESS:
            run.succeeded += 1
        else:
            run.failed += 1
            if log.attempts >= log.max_attempts:
                run.exhausted += 1
    return run


async def run_sync(
    session: AsyncSession,
    now: datetime | None = None,
    *,
    executed_by: uuid.UUID | None = None,
) -> SyncRunResult:
    """Operator-triggered delivery pass, recorded as an ``integration_sync`` job run."""
    now = now or now_utc()
    job = await start_job_run(
        session, JobRunType.INTEGRATION_SYNC, period=now.date().isoformat(), executed_by=executed_by
    )
    result = await deliver_due_logs(session, now)
    result.job_run_id = job.id
    await finish_job_run(
        session,
        job,
        errors=result.failed,
        processed=result.attempted,
        summary={
            "attempted": result.attempted,
            "succeeded": result.succeeded,
            "failed": result.failed,
            "exhausted": result.exhausted,
            "skipped": result.skipped,
        },
    )
    return result


# ---------------------------------------------------------------------------
# Operator actions
# ---------------------------------------------------------------------------


async def requeue_log(session: AsyncSession, auth: AuthContext, log_id: uuid.UUID) -> IntegrationLogResponse:
    """Give a failed log a fresh attempt budget and make it due immediately."""
    log = await _get_log_or_404(session, log_id)
    if log.status != IntegrationStatus.FAILED:
        raise ConflictError(f"Only failed logs can be requeued (status is {log.status})")

    log.max_attempts = log.attempts + get_settings().integration_max_attempts
    log.next_attempt_at = now_utc()
    await session.commit()
    logger.info("Integration log %s requeued by %s", log.id, auth.user_id)
    return _build_log_response(log)


async def supersede_log(session: AsyncSession, auth: AuthContext, log_id: uuid.UUID) -> IntegrationLogResponse:
    """Stop further retries. The log itself is kept."""
    log = await _get_log_or_404(session, log_id)
    if log.status == IntegrationStatus.SUCCESS:
        raise ConflictError("Delivered logs cannot be superseded")

    log.status = IntegrationStatus.SUPERSEDED.value
    log.next_attempt_at = None
    await _mirror_request_status(session, log)
    await session.commit()
    logger.info("Integration log %s superseded by %s", log.id, auth.user_id)
    return _build_log_response(log)


# ---------------------------------------------------------------------------
# Read path
# ---------------------------------------------------------------------------


async def get_log(session: AsyncSession, log_id: uuid.UUID) -> IntegrationLogResponse:
    return _build_log_response(await _get_log_or_404(session, log_id))


async def list_logs(
    session: AsyncSession,
    *,
    entity_id: uuid.UUID | None = None,
    external_system: ExternalSystem | None = None,
    status: IntegrationStatus | None = None,
    offset: int = 0,
    limit: int = 50,
) -> IntegrationLogListResponse:
    filters = []
    if entity_id is not None:
        filters.append(col(IntegrationLog.entity_id) == entity_id)
    if external_system is not None:
        filters.append(col(IntegrationLog.external_system) == external_system.value)
    if status is not None:
        filters.append(col(IntegrationLog.status) == status.value)

    count_result = await session.execute(select(func.count()).select_from(IntegrationLog).where(*filters))
    total = count_result.scalar_one()
    result = await session.execute(
        select(IntegrationLog).where(*filters).order_by(col(IntegrationLog.created_at)).offset(offset).limit(limit)
    )
    return IntegrationLogListResponse(items=[_build_log_response(log) for log in result.scalars().all()], total=total)


def is_due(log: IntegrationLog, now: datetime) -> bool:
    """Whether the worker would pick this log up at ``now``."""
    if log.status == IntegrationStatus.PENDING:
        return True
    if log.status != IntegrationStatus.FAILED or log.attempts >= log.max_attempts or log.next_attempt_at is None:
        return False
    return ensure_utc(log.next_attempt_at) <= now
