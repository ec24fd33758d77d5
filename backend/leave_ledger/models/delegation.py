# ruff: noqa: TC003
from __future__ import annotations

import uuid
from datetime import date, datetime

import sqlalchemy as sa
from sqlmodel import Field

from leave_ledger.models.base import TimestampMixin, UUIDBase
from leave_ledger.models.enums import DelegationStatus


class Delegation(UUIDBase, TimestampMixin, table=True):
    """A manager's hand-off of approval authority for an inclusive date window.

    ``end_date`` of None means the delegation runs until revoked.
    """

    __tablename__ = "delegation"
    __table_args__ = (sa.Index("ix_delegation_manager_status", "manager_id", "status"),)

    manager_id: uuid.UUID
    delegate_id: uuid.UUID = Field(index=True)
    start_date: date
    end_date: date | None = None
    status: str = Field(default=DelegationStatus.PENDING, max_length=20)
    reason: str | None = None
    responded_at: datetime | None = Field(default=None, sa_type=sa.DateTime(timezone=True))  # ty: ignore[invalid-argument-type]
    revoked_at: datetime | None = Field(default=None, sa_type=sa.DateTime(timezone=True))  # ty: ignore[invalid-argument-type]
