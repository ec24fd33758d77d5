# ruff: noqa: TC003
from __future__ import annotations

import uuid
from typing import Any

import sqlalchemy as sa
from sqlmodel import Field

from leave_ledger.models.base import TimestampMixin, UUIDBase


class LeaveAudit(UUIDBase, TimestampMixin, table=True):
    """Immutable before/after record of a mutation on a balance, request or transaction."""

    __tablename__ = "leave_audit"
    __table_args__ = (sa.Index("ix_leave_audit_target", "target_type", "target_id"),)

    target_type: str = Field(max_length=50)
    target_id: uuid.UUID
    changed_by: uuid.UUID | None = Field(default=None, index=True)
    before: dict[str, Any] | None = Field(default=None, sa_type=sa.JSON)
    after: dict[str, Any] | None = Field(default=None, sa_type=sa.JSON)
    reason: str | None = None
