# ruff: noqa: TC001, TC003
from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from pydantic import BaseModel

from leave_ledger.models.enums import JobRunStatus, JobRunType


class JobRunResponse(BaseModel):
    id: uuid.UUID
    run_type: JobRunType
    period: str | None
    executed_by: uuid.UUID | None
    started_at: datetime
    finished_at: datetime | None
    status: JobRunStatus
    summary: dict[str, Any] | None


class JobRunListResponse(BaseModel):
    items: list[JobRunResponse]
    total: int
