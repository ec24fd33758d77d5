# ruff: noqa: B008, TC001, TC003
from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Query, status

from leave_ledger.api.deps import AuthDep, HRDep
from leave_ledger.db import SessionDep
from leave_ledger.exceptions import ValidationError
from leave_ledger.schemas.calendar import (
    CalendarEntryInput,
    CalendarListResponse,
    CalendarResponse,
    CreateCalendarRequest,
    NetDaysResponse,
)
from leave_ledger.services import calendar as calendar_service

calendars_router = APIRouter(prefix="/calendars", tags=["calendars"])


@calendars_router.post("", response_model=CalendarResponse, status_code=status.HTTP_201_CREATED)
async def create_calendar(
    payload: CreateCalendarRequest,
    session: SessionDep,
    auth: HRDep,
) -> CalendarResponse:
    """Create the holiday calendar for a year (HR only)."""
    return await calendar_service.create_calendar(session, auth, payload)


@calendars_router.get("", response_model=CalendarListResponse)
async def list_calendars(
    session: SessionDep,
    _auth: AuthDep,
    offset: int = Query(default=0, ge=0),
    limit: int = Query(default=50, ge=1, le=100),
) -> CalendarListResponse:
    return await calendar_service.list_calendars(session, offset, limit)


@calendars_router.get("/net-days", response_model=NetDaysResponse)
async def get_net_days(
    session: SessionDep,
    _auth: AuthDep,
    start_date: date = Query(),
    end_date: date = Query(),
) -> NetDaysResponse:
    """Gross and net leave days for a date range."""
    if end_date < start_date:
        raise ValidationError("end_date must not be before start_date")
    return await calendar_service.get_net_days(session, start_date, end_date)


@calendars_router.get("/{year}", response_model=CalendarResponse)
async def get_calendar(
    year: int,
    session: SessionDep,
    _auth: AuthDep,
) -> CalendarResponse:
    return await calendar_service.get_calendar(session, year)


@calendars_router.post("/{year}/entries", response_model=CalendarResponse, status_code=status.HTTP_201_CREATED)
async def add_calendar_entry(
    year: int,
    payload: CalendarEntryInput,
    session: SessionDep,
    auth: HRDep,
) -> CalendarResponse:
    return await calendar_service.add_calendar_entry(session, auth, year, payload)
