# ruff: noqa: TC001, TC003
from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from pydantic import BaseModel

from leave_ledger.models.enums import AuditTargetType


class AuditEntryResponse(BaseModel):
    id: uuid.UUID
    target_type: AuditTargetType
    target_id: uuid.UUID
    changed_by: uuid.UUID | None
    before: dict[str, Any] | None
    after: dict[str, Any] | None
    reason: str | None
    created_at: datetime


class AuditListResponse(BaseModel):
    items: list[AuditEntryResponse]
    total: int
