from __future__ import annotations

import uuid
from datetime import UTC, datetime
from decimal import ROUND_HALF_UP, Decimal

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

# Days are stored with four decimal places (quarter-hour precision on an 8h day and better).
DAYS_QUANTUM = Decimal("0.0001")

# Actor recorded for transitions the system performs on its own (sweeps, schedulers).
SYSTEM_ACTOR = uuid.UUID(int=0)


def now_utc() -> datetime:
    """Return the current UTC time."""
    return datetime.now(UTC)


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes read back from backends without timezone support."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def to_days(value: Decimal | int | float | str) -> Decimal:
    """Normalise a day amount to the stored precision."""
    return Decimal(str(value)).quantize(DAYS_QUANTUM, rounding=ROUND_HALF_UP)


def days_column(*, nullable: bool = False, default: str | None = "0") -> sa.Column:  # type: ignore[type-arg]
    """Build a Numeric column for signed day amounts."""
    kwargs: dict[str, object] = {"nullable": nullable}
    if default is not None:
        kwargs["server_default"] = default
    return sa.Column(sa.Numeric(12, 4), **kwargs)  # type: ignore[arg-type]


class UUIDBase(SQLModel):
    """Base model with UUID primary key."""

    id: uuid.UUID = Field(
        default_factory=uuid.uuid4,
        primary_key=True,
        sa_type=sa.Uuid,
    )


class TimestampMixin(SQLModel):
    """Mixin that adds a created_at timestamp."""

    created_at: datetime = Field(
        default_factory=now_utc,
        index=True,
        sa_type=sa.DateTime(timezone=True),  # ty: ignore[invalid-argument-type]
        sa_column_kwargs={"server_default": sa.func.now()},
    )


class UpdatedAtMixin(SQLModel):
    """Mixin that adds an updated_at timestamp refreshed on every ORM update."""

    updated_at: datetime = Field(
        default_factory=now_utc,
        sa_type=sa.DateTime(timezone=True),  # ty: ignore[invalid-argument-type]
        sa_column_kwargs={"server_default": sa.func.now(), "onupdate": now_utc},
    )
