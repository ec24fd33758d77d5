from __future__ import annotations

from datetime import date, timedelta
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlmodel import col

from leave_ledger.exceptions import CalendarNotFoundError, ConflictError, NotFoundError
from leave_ledger.models.calendar import CalendarHoliday, HolidayCalendar
from leave_ledger.models.enums import AuditTargetType, CalendarEntryKind
from leave_ledger.schemas.calendar import (
    CalendarEntryResponse,
    CalendarListResponse,
    CalendarResponse,
    NetDaysResponse,
)
from leave_ledger.services.audit import model_to_audit_dict, record_audit

if TYPE_CHECKING:
    import uuid
    from collections.abc import Iterator

    from sqlalchemy.ext.asyncio import AsyncSession

    from leave_ledger.schemas.auth import AuthContext
    from leave_ledger.schemas.calendar import CalendarEntryInput, CreateCalendarRequest

_SATURDAY = 5


def _iter_dates(start_date: date, end_date: date) -> Iterator[date]:
    current = start_date
    while current <= end_date:
        yield current
        current += timedelta(days=1)


def _build_calendar_response(calendar: HolidayCalendar, entries: list[CalendarHoliday]) -> CalendarResponse:
    return CalendarResponse(
        id=calendar.id,
        year=calendar.year,
        name=calendar.name,
        entries=[
            CalendarEntryResponse(
                id=e.id,
                kind=CalendarEntryKind(e.kind),
                start_date=e.start_date,
                end_date=e.end_date,
                name=e.name,
            )
            for e in sorted(entries, key=lambda e: (e.start_date, e.name))
        ],
    )


async def _get_entries(session: AsyncSession, calendar_id: uuid.UUID) -> list[CalendarHoliday]:
    result = await session.execute(select(CalendarHoliday).where(col(CalendarHoliday.calendar_id) == calendar_id))
    return list(result.scalars().all())


async def _get_calendar_or_404(session: AsyncSession, year: int) -> HolidayCalendar:
    result = await session.execute(select(HolidayCalendar).where(col(HolidayCalendar.year) == year))
    calendar = result.scalar_one_or_none()
    if calendar is None:
        raise NotFoundError(f"No holiday calendar for {year}")
    return calendar


def _entry_from_input(calendar: HolidayCalendar, payload: CalendarEntryInput) -> CalendarHoliday:
    return CalendarHoliday(
        calendar_id=calendar.id,
        kind=payload.kind.value,
        start_date=payload.start_date,
        end_date=payload.end_date or payload.start_date,
        name=payload.name,
    )


# ---------------------------------------------------------------------------
# Net-day counting
# ---------------------------------------------------------------------------


async def excluded_dates(session: AsyncSession, start_date: date, end_date: date) -> set[date]:
    """Holiday and blocked-period dates in the inclusive range.

    Raises CalendarNotFoundError if any year in the range has no calendar.
    """
    years = set(range(start_date.year, end_date.year + 1))
    result = await session.execute(select(HolidayCalendar).where(col(HolidayCalendar.year).in_(years)))
    calendars = {c.year: c for c in result.scalars().all()}
    missing = sorted(years - calendars.keys())
    if missing:
        raise CalendarNotFoundError(f"No holiday calendar configured for {', '.join(map(str, missing))}")

    entries_result = await session.execute(
        select(CalendarHoliday).where(
            col(CalendarHoliday.calendar_id).in_([c.id for c in calendars.values()]),
            col(CalendarHoliday.start_date) <= end_date,
            col(CalendarHoliday.end_date) >= start_date,
        )
    )
    excluded: set[date] = set()
    for entry in entries_result.scalars().all():
        for day in _iter_dates(max(entry.start_date, start_date), min(entry.end_date, end_date)):
            excluded.add(day)
    return excluded


async def count_days(session: AsyncSession, start_date: date, end_date: date) -> tuple[Decimal, Decimal]:
    """Return ``(requested_days, net_days)`` for an inclusive date range.

    Requested days are the calendar span. Net days drop weekends, holidays
    and blocked periods.
    """
    excluded = await excluded_dates(session, start_date, end_date)
    requested = 0
    net = 0
    for day in _iter_dates(start_date, end_date):
        requested += 1
        if day.weekday() >= _SATURDAY or day in excluded:
            continue
        net += 1
    return Decimal(requested), Decimal(net)


async def get_net_days(session: AsyncSession, start_date: date, end_date: date) -> NetDaysResponse:
    requested, net = await count_days(session, start_date, end_date)
    return NetDaysResponse(start_date=start_date, end_date=end_date, requested_days=requested, net_days=net)


# ---------------------------------------------------------------------------
# Calendar management
# ---------------------------------------------------------------------------


async def create_calendar(
    session: AsyncSession,
    auth: AuthContext,
    payload: CreateCalendarRequest,
) -> CalendarResponse:
    """Create the calendar for a year together with its initial entries."""
    calendar = HolidayCalendar(year=payload.year, name=payload.name)
    session.add(calendar)
    try:
        await session.flush()
    except IntegrityError:
        await session.rollback()
        raise ConflictError(f"A holiday calendar for {payload.year} already exists") from None

    entries = [_entry_from_input(calendar, e) for e in payload.entries]
    session.add_all(entries)
    await session.commit()

    response = _build_calendar_response(calendar, entries)
    await record_audit(
        session,
        target_type=AuditTargetType.CONFIGURATION,
        target_id=calendar.id,
        changed_by=auth.user_id,
        after=response.model_dump(mode="json"),
        reason="holiday calendar created",
    )
    return response


async def add_calendar_entry(
    session: AsyncSession,
    auth: AuthContext,
    year: int,
    payload: CalendarEntryInput,
) -> CalendarResponse:
    calendar = await _get_calendar_or_404(session, year)
    entry = _entry_from_input(calendar, payload)
    session.add(entry)
    await session.commit()

    response = _build_calendar_response(calendar, await _get_entries(session, calendar.id))
    await record_audit(
        session,
        target_type=AuditTargetType.CONFIGURATION,
        target_id=calendar.id,
        changed_by=auth.user_id,
        after=model_to_audit_dict(entry),
        reason="calendar entry added",
    )
    return response


async def get_calendar(session: AsyncSession, year: int) -> CalendarResponse:
    calendar = await _get_calendar_or_404(session, year)
    return _build_calendar_response(calendar, await _get_entries(session, calendar.id))


async def list_calendars(session: AsyncSession, offset: int = 0, limit: int = 50) -> CalendarListResponse:
    count_result = await session.execute(select(func.count()).select_from(HolidayCalendar))
    total = count_result.scalar_one()
    result = await session.execute(
        select(HolidayCalendar).order_by(col(HolidayCalendar.year)).offset(offset).limit(limit)
    )
    items = [_build_calendar_response(c, await _get_entries(session, c.id)) for c in result.scalars().all()]
    return CalendarListResponse(items=items, total=total)
