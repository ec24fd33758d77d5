# ruff: noqa: TC003
from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

import sqlalchemy as sa
from sqlmodel import Field

from leave_ledger.models.base import TimestampMixin, UpdatedAtMixin, UUIDBase
from leave_ledger.models.enums import IntegrationStatus


class IntegrationLog(UUIDBase, TimestampMixin, UpdatedAtMixin, table=True):
    """Delivery record for one outcome pushed to an external system.

    Logs are never deleted. Retries stop when ``attempts`` reaches
    ``max_attempts`` or when an operator marks the log superseded.
    """

    __tablename__ = "integration_log"
    __table_args__ = (
        sa.Index("ix_integration_log_entity", "entity_type", "entity_id"),
        sa.Index("ix_integration_log_due", "status", "next_attempt_at"),
    )

    entity_type: str = Field(max_length=50)
    entity_id: uuid.UUID
    external_system: str = Field(max_length=50)
    action: str = Field(max_length=50)
    payload_summary: dict[str, Any] | None = Field(default=None, sa_type=sa.JSON)
    status: str = Field(default=IntegrationStatus.PENDING, max_length=20, index=True)
    attempts: int = Field(default=0)
    max_attempts: int
    last_attempt_at: datetime | None = Field(default=None, sa_type=sa.DateTime(timezone=True))  # ty: ignore[invalid-argument-type]
    next_attempt_at: datetime | None = Field(default=None, sa_type=sa.DateTime(timezone=True))  # ty: ignore[invalid-argument-type]
    last_error: str | None = None
    external_id: str | None = Field(default=None, max_length=255)
