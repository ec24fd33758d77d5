# ruff: noqa: TC001, TC003
from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from leave_ledger.models.enums import (
    AckOutcome,
    ExternalSystem,
    IntegrationAction,
    IntegrationEntityType,
    IntegrationStatus,
)


class IntegrationPayload(BaseModel):
    """Body sent to an external system for one integration log."""

    log_id: uuid.UUID
    entity_type: IntegrationEntityType
    entity_id: uuid.UUID
    action: IntegrationAction
    summary: dict[str, Any] = Field(default_factory=dict)


class IntegrationAck(BaseModel):
    """Acknowledgement an external system returns for one dispatch."""

    outcome: AckOutcome
    external_id: str | None = None
    message: str | None = None


class IntegrationLogResponse(BaseModel):
    id: uuid.UUID
    entity_type: IntegrationEntityType
    entity_id: uuid.UUID
    external_system: ExternalSystem
    action: IntegrationAction
    payload_summary: dict[str, Any] | None
    status: IntegrationStatus
    attempts: int
    max_attempts: int
    last_attempt_at: datetime | None
    next_attempt_at: datetime | None
    last_error: str | None
    external_id: str | None
    created_at: datetime


class IntegrationLogListResponse(BaseModel):
    items: list[IntegrationLogResponse]
    total: int


class SyncRunResponse(BaseModel):
    job_run_id: uuid.UUID | None
    attempted: int
    succeeded: int
    failed: int
    exhausted: int
