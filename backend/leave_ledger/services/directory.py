# ruff: noqa: TC003
from __future__ import annotations

import uuid
from datetime import date
from typing import Protocol, runtime_checkable

from pydantic import BaseModel

from leave_ledger.models.enums import EmploymentStatus


class EmployeeRecord(BaseModel):
    """Employee metadata from the organization directory."""

    id: uuid.UUID
    hire_date: date
    manager_id: uuid.UUID | None = None
    department_id: uuid.UUID | None = None
    position_id: uuid.UUID | None = None
    location: str | None = None
    contract_type: str | None = None  # e.g. "full_time", "part_time"
    grade: str | None = None
    employment_status: EmploymentStatus = EmploymentStatus.ACTIVE


def tenure_months(hire_date: date, as_of: date) -> int:
    """Whole months of service between ``hire_date`` and ``as_of``."""
    months = (as_of.year - hire_date.year) * 12 + (as_of.month - hire_date.month)
    if as_of.day < hire_date.day:
        months -= 1
    return max(months, 0)


@runtime_checkable
class DirectoryService(Protocol):
    """Interface for the employee/organization directory."""

    async def get_employee(self, employee_id: uuid.UUID) -> EmployeeRecord | None:
        """Fetch employee metadata. Returns None if not found."""
        ...

    async def list_employees(self) -> list[EmployeeRecord]:
        """List every employee known to the directory."""
        ...


class InMemoryDirectoryService:
    """In-memory stub implementation for development."""

    def __init__(self) -> None:
        self._employees: dict[uuid.UUID, EmployeeRecord] = {}

    def seed(self, employee: EmployeeRecord) -> None:
        """Seed an employee for testing."""
        self._employees[employee.id] = employee

    async def get_employee(self, employee_id: uuid.UUID) -> EmployeeRecord | None:
        """Fetch employee metadata. Returns None if not found."""
        return self._employees.get(employee_id)

    async def list_employees(self) -> list[EmployeeRecord]:
        """List every employee known to the directory."""
        return list(self._employees.values())


_directory_service: DirectoryService = InMemoryDirectoryService()


def get_directory_service() -> DirectoryService:
    """FastAPI dependency for the directory."""
    return _directory_service


def set_directory_service(service: DirectoryService) -> None:
    """Override the service (for testing or production wiring)."""
    global _directory_service
    _directory_service = service
