"""Entitlement resolution: individual override, then group override, then base rule."""

from __future__ import annotations

import uuid
from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING

import pytest

from leave_ledger.config import get_settings
from leave_ledger.exceptions import EligibilityError, EntitlementRuleNotFoundError
from leave_ledger.models.entitlement import PersonalizedEntitlement
from leave_ledger.models.enums import EntitlementSource
from leave_ledger.schemas.entitlement import GroupCriteria, PersonalizedEntitlementInput
from leave_ledger.services.directory import EmployeeRecord
from leave_ledger.services.entitlement import group_matches, resolve_entitlement
from tests.conftest import EMPLOYEE_HEADERS, EMPLOYEE_ID, HR_HEADERS, make_entitlement_rule, make_leave_type

if TYPE_CHECKING:
    from collections.abc import Iterator

    from httpx import AsyncClient
    from sqlalchemy.ext.asyncio import AsyncSession

DEPT_ID = uuid.uuid4()


def _employee(**overrides: object) -> EmployeeRecord:
    fields: dict[str, object] = {
        "id": EMPLOYEE_ID,
        "hire_date": date(2020, 1, 15),
        "department_id": DEPT_ID,
        "location": "Berlin",
        "contract_type": "full_time",
        "grade": "B",
    }
    fields.update(overrides)
    return EmployeeRecord.model_validate(fields)


@pytest.fixture
def tiebreak() -> Iterator[None]:
    settings = get_settings()
    original = settings.group_override_tiebreak
    yield
    settings.group_override_tiebreak = original


# ---------------------------------------------------------------------------
# Group matching (no DB)
# ---------------------------------------------------------------------------


def test_group_matches_requires_every_non_empty_criterion() -> None:
    employee = _employee()
    assert group_matches(GroupCriteria(department_ids=[DEPT_ID], locations=["Berlin"]), employee)
    assert not group_matches(GroupCriteria(department_ids=[DEPT_ID], locations=["Paris"]), employee)


def test_group_matches_empty_criteria_never_match() -> None:
    assert not group_matches(GroupCriteria(), _employee())


def test_group_matches_missing_attribute_does_not_match() -> None:
    assert not group_matches(GroupCriteria(locations=["Berlin"]), _employee(location=None))


def test_override_input_needs_exactly_one_target() -> None:
    with pytest.raises(ValueError, match="exactly one"):
        PersonalizedEntitlementInput(leave_type_id=uuid.uuid4(), yearly_entitlement_days=Decimal(5), reason="x")
    with pytest.raises(ValueError, match="exactly one"):
        PersonalizedEntitlementInput(
            leave_type_id=uuid.uuid4(),
            employee_id=EMPLOYEE_ID,
            group_criteria=GroupCriteria(locations=["Berlin"]),
            yearly_entitlement_days=Decimal(5),
            reason="x",
        )


# ---------------------------------------------------------------------------
# Precedence
# ---------------------------------------------------------------------------


async def test_base_rule_applies_without_overrides(db_session: AsyncSession) -> None:
    leave_type = await make_leave_type(db_session)
    rule = await make_entitlement_rule(db_session, leave_type.id, 21)

    resolved = await resolve_entitlement(db_session, _employee(), leave_type.id, date(2025, 6, 1))

    assert resolved.source == EntitlementSource.BASE
    assert resolved.yearly_entitlement_days == Decimal(21)
    assert resolved.applied_rule_id == rule.id


async def test_highest_reached_tenure_band_wins(db_session: AsyncSession) -> None:
    leave_type = await make_leave_type(db_session)
    await make_entitlement_rule(db_session, leave_type.id, 21)
    senior = await make_entitlement_rule(db_session, leave_type.id, 25, min_tenure_months=60)
    await make_entitlement_rule(db_session, leave_type.id, 30, min_tenure_months=120)

    resolved = await resolve_entitlement(db_session, _employee(), leave_type.id, date(2025, 6, 1))

    assert resolved.applied_rule_id == senior.id
    assert resolved.yearly_entitlement_days == Decimal(25)


async def test_group_override_beats_base_rule(db_session: AsyncSession) -> None:
    leave_type = await make_leave_type(db_session)
    await make_entitlement_rule(db_session, leave_type.id, 21)
    db_session.add(
        PersonalizedEntitlement(
            leave_type_id=leave_type.id,
            group_criteria={"locations": ["Berlin"]},
            yearly_entitlement_days=Decimal(26),
            reason="works council agreement",
        )
    )
    await db_session.commit()

    resolved = await resolve_entitlement(db_session, _employee(), leave_type.id)

    assert resolved.source == EntitlementSource.GROUP
    assert resolved.yearly_entitlement_days == Decimal(26)


async def test_individual_override_beats_group_override(db_session: AsyncSession) -> None:
    leave_type = await make_leave_type(db_session)
    await make_entitlement_rule(db_session, leave_type.id, 21)
    db_session.add_all(
        [
            PersonalizedEntitlement(
                leave_type_id=leave_type.id,
                group_criteria={"locations": ["Berlin"]},
                yearly_entitlement_days=Decimal(26),
                reason="group",
            ),
            PersonalizedEntitlement(
                leave_type_id=leave_type.id,
                employee_id=EMPLOYEE_ID,
                yearly_entitlement_days=Decimal(30),
                reason="negotiated",
            ),
        ]
    )
    await db_session.commit()

    resolved = await resolve_entitlement(db_session, _employee(), leave_type.id)

    assert resolved.source == EntitlementSource.INDIVIDUAL
    assert resolved.yearly_entitlement_days == Decimal(30)


async def test_group_tiebreak_highest(db_session: AsyncSession, tiebreak: None) -> None:
    get_settings().group_override_tiebreak = "highest"
    leave_type = await make_leave_type(db_session)
    for days in (24, 28, 26):
        db_session.add(
            PersonalizedEntitlement(
                leave_type_id=leave_type.id,
                group_criteria={"department_ids": [str(DEPT_ID)]},
                yearly_entitlement_days=Decimal(days),
                reason=f"group {days}",
            )
        )
    await db_session.commit()

    resolved = await resolve_entitlement(db_session, _employee(), leave_type.id)

    assert resolved.yearly_entitlement_days == Decimal(28)


async def test_group_tiebreak_lowest(db_session: AsyncSession, tiebreak: None) -> None:
    get_settings().group_override_tiebreak = "lowest"
    leave_type = await make_leave_type(db_session)
    for days in (24, 28, 22):
        db_session.add(
            PersonalizedEntitlement(
                leave_type_id=leave_type.id,
                group_criteria={"contract_types": ["full_time"]},
                yearly_entitlement_days=Decimal(days),
                reason=f"group {days}",
            )
        )
    await db_session.commit()

    resolved = await resolve_entitlement(db_session, _employee(), leave_type.id)

    assert resolved.yearly_entitlement_days == Decimal(22)


# ---------------------------------------------------------------------------
# Failures
# ---------------------------------------------------------------------------


async def test_no_rule_configured(db_session: AsyncSession) -> None:
    leave_type = await make_leave_type(db_session)
    with pytest.raises(EntitlementRuleNotFoundError):
        await resolve_entitlement(db_session, _employee(), leave_type.id)


async def test_tenure_not_reached(db_session: AsyncSession) -> None:
    leave_type = await make_leave_type(db_session)
    await make_entitlement_rule(db_session, leave_type.id, 21, min_tenure_months=6)

    with pytest.raises(EligibilityError, match="Tenure of 2 months"):
        await resolve_entitlement(db_session, _employee(hire_date=date(2025, 1, 10)), leave_type.id, date(2025, 3, 20))


async def test_grade_filter_excludes_employee(db_session: AsyncSession) -> None:
    leave_type = await make_leave_type(db_session)
    await make_entitlement_rule(db_session, leave_type.id, 21, grades=["A"])

    with pytest.raises(EligibilityError):
        await resolve_entitlement(db_session, _employee(grade="B"), leave_type.id)


# ---------------------------------------------------------------------------
# API
# ---------------------------------------------------------------------------


async def test_api_create_rule_and_resolve(async_client: AsyncClient, db_session: AsyncSession) -> None:
    leave_type = await make_leave_type(db_session)
    resp = await async_client.post(
        "/entitlement-rules",
        json={"leave_type_id": str(leave_type.id), "name": "base", "yearly_entitlement_days": "20"},
        headers=HR_HEADERS,
    )
    assert resp.status_code == 201

    resp = await async_client.get(
        f"/entitlements/{EMPLOYEE_ID}/{leave_type.id}", params={"as_of": "2025-06-01"}, headers=EMPLOYEE_HEADERS
    )
    assert resp.status_code == 200
    data = resp.json()
    assert data["source"] == "BASE"
    assert Decimal(data["yearly_entitlement_days"]) == Decimal(20)


async def test_api_rule_creation_requires_hr(async_client: AsyncClient, db_session: AsyncSession) -> None:
    leave_type = await make_leave_type(db_session)
    resp = await async_client.post(
        "/entitlement-rules",
        json={"leave_type_id": str(leave_type.id), "name": "base", "yearly_entitlement_days": "20"},
        headers=EMPLOYEE_HEADERS,
    )
    assert resp.status_code == 403


async def test_api_group_override_round_trip(async_client: AsyncClient, db_session: AsyncSession) -> None:
    leave_type = await make_leave_type(db_session)
    resp = await async_client.post(
        "/personalized-entitlements",
        json={
            "leave_type_id": str(leave_type.id),
            "group_criteria": {"locations": ["Berlin"]},
            "yearly_entitlement_days": "27",
            "reason": "site agreement",
        },
        headers=HR_HEADERS,
    )
    assert resp.status_code == 201
    assert resp.json()["group_criteria"]["locations"] == ["Berlin"]

    resp = await async_client.get("/personalized-entitlements", headers=HR_HEADERS)
    assert resp.json()["total"] == 1
