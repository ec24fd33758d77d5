from __future__ import annotations

import uuid
from typing import TYPE_CHECKING, Any

from sqlalchemy import func, select
from sqlmodel import col

from leave_ledger.models.base import now_utc
from leave_ledger.models.enums import JobRunStatus, JobRunType
from leave_ledger.models.job import JobRunLog
from leave_ledger.schemas.job import JobRunListResponse, JobRunResponse

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession


async def start_job_run(
    session: AsyncSession,
    run_type: JobRunType,
    *,
    period: str | None = None,
    executed_by: uuid.UUID | None = None,
) -> JobRunLog:
    """Insert and commit a ``running`` job log so a crashed run stays visible."""
    run = JobRunLog(run_type=run_type.value, period=period, executed_by=executed_by)
    session.add(run)
    await session.commit()
    return run


async def finish_job_run(
    session: AsyncSession,
    run: JobRunLog,
    *,
    errors: int,
    summary: dict[str, Any],
    processed: int | None = None,
) -> None:
    """Close a job log. Errors on only some items mark the run ``partial``."""
    if errors == 0:
        status = JobRunStatus.SUCCESS
    elif processed is not None and errors < processed:
        status = JobRunStatus.PARTIAL
    else:
        status = JobRunStatus.FAILED
    run.status = status.value
    run.finished_at = now_utc()
    run.summary = summary
    session.add(run)
    await session.commit()


def _build_job_run_response(run: JobRunLog) -> JobRunResponse:
    return JobRunResponse(
        id=run.id,
        run_type=JobRunType(run.run_type),
        period=run.period,
        executed_by=run.executed_by,
        started_at=run.started_at,
        finished_at=run.finished_at,
        status=JobRunStatus(run.status),
        summary=run.summary,
    )


async def list_job_runs(
    session: AsyncSession,
    run_type: JobRunType | None = None,
    offset: int = 0,
    limit: int = 50,
) -> JobRunListResponse:
    filters = []
    if run_type is not None:
        filters.append(col(JobRunLog.run_type) == run_type.value)

    count_result = await session.execute(select(func.count()).select_from(JobRunLog).where(*filters))
    total = count_result.scalar_one()
    result = await session.execute(
        select(JobRunLog).where(*filters).order_by(col(JobRunLog.started_at).desc()).offset(offset).limit(limit)
    )
    return JobRunListResponse(items=[_build_job_run_response(r) for r in result.scalars().all()], total=total)
