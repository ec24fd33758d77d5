# ruff: noqa: TC001, TC003
from __future__ import annotations

import uuid
from datetime import date
from decimal import Decimal
from typing import Self

from pydantic import BaseModel, Field, model_validator

from leave_ledger.models.enums import CalendarEntryKind


class CalendarEntryInput(BaseModel):
    kind: CalendarEntryKind = CalendarEntryKind.HOLIDAY
    start_date: date
    end_date: date | None = None
    name: str = Field(min_length=1, max_length=255)

    @model_validator(mode="after")
    def _validate_range(self) -> Self:
        if self.end_date is not None and self.end_date < self.start_date:
            msg = "end_date must not be before start_date"
            raise ValueError(msg)
        return self


class CreateCalendarRequest(BaseModel):
    year: int = Field(ge=1900, le=9999)
    name: str = Field(min_length=1, max_length=255)
    entries: list[CalendarEntryInput] = Field(default_factory=list)


class CalendarEntryResponse(BaseModel):
    id: uuid.UUID
    kind: CalendarEntryKind
    start_date: date
    end_date: date
    name: str


class CalendarResponse(BaseModel):
    id: uuid.UUID
    year: int
    name: str
    entries: list[CalendarEntryResponse]


class CalendarListResponse(BaseModel):
    items: list[CalendarResponse]
    total: int


class NetDaysResponse(BaseModel):
    """Working days in an inclusive range after weekends, holidays and blocked periods."""

    start_date: date
    end_date: date
    requested_days: Decimal
    net_days: Decimal
