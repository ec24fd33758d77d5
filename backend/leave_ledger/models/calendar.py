# ruff: noqa: TC003
from __future__ import annotations

import uuid
from datetime import date

import sqlalchemy as sa
from sqlmodel import Field

from leave_ledger.models.base import TimestampMixin, UUIDBase
from leave_ledger.models.enums import CalendarEntryKind


class HolidayCalendar(UUIDBase, TimestampMixin, table=True):
    """Working calendar for one year. Net-day counting requires one per year touched."""

    __tablename__ = "holiday_calendar"
    __table_args__ = (sa.UniqueConstraint("year", name="uq_holiday_calendar_year"),)

    year: int
    name: str = Field(max_length=255)


class CalendarHoliday(UUIDBase, table=True):
    """A holiday or blocked period inside a calendar; both are excluded from net days."""

    __tablename__ = "calendar_holiday"

    calendar_id: uuid.UUID = Field(
        sa_column=sa.Column(sa.Uuid, sa.ForeignKey("holiday_calendar.id", ondelete="CASCADE"), nullable=False, index=True),
    )
    kind: str = Field(default=CalendarEntryKind.HOLIDAY, max_length=20)
    start_date: date
    end_date: date
    name: str = Field(max_length=255)
