# ruff: noqa: TC003
from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

import sqlalchemy as sa
from sqlmodel import Field

from leave_ledger.models.base import UUIDBase, now_utc
from leave_ledger.models.enums import JobRunStatus


class JobRunLog(UUIDBase, table=True):
    """One execution of a scheduled or operator-triggered batch job."""

    __tablename__ = "job_run_log"

    run_type: str = Field(max_length=50, index=True)
    period: str | None = Field(default=None, max_length=32)
    executed_by: uuid.UUID | None = None
    started_at: datetime = Field(
        default_factory=now_utc,
        sa_type=sa.DateTime(timezone=True),  # ty: ignore[invalid-argument-type]
    )
    finished_at: datetime | None = Field(default=None, sa_type=sa.DateTime(timezone=True))  # ty: ignore[invalid-argument-type]
    status: str = Field(default=JobRunStatus.RUNNING, max_length=20)
    summary: dict[str, Any] | None = Field(default=None, sa_type=sa.JSON)
