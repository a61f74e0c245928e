"""
Employee Domain Models (``payroll_modules.employees.models``).

Frozen dataclass value objects for employees and their append-only salary
history.  Pure data with ZERO I/O; ``to_document`` / ``from_document``
convert to and from the store payload.

Invariants enforced
-------------------
* ``current_salary`` is a positive ``Decimal``.
* ``SalaryHistory`` rows are never updated; a salary change appends one.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from payroll_kernel.logging_config import get_logger
from payroll_modules._documents import dec, iso, parse_date, parse_datetime

logger = get_logger("modules.employees.models")


@dataclass(frozen=True)
class Employee:
    """An employee paid a fixed monthly salary."""
    id: str
    name: str
    current_salary: Decimal
    overtime_eligible: bool
    hire_date: date
    position: str = ""
    created_at: datetime | None = None

    def __post_init__(self):
        if not self.name or not self.name.strip():
            raise ValueError("Employee name cannot be empty")
        if self.current_salary <= 0:
            logger.warning(
                "employee_non_positive_salary",
                extra={"employee_id": self.id, "salary": str(self.current_salary)},
            )
            raise ValueError("current_salary must be positive")

    def is_hired_by(self, day: date) -> bool:
        return self.hire_date <= day

    def to_document(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "current_salary": str(self.current_salary),
            "overtime_eligible": self.overtime_eligible,
            "hire_date": iso(self.hire_date),
            "position": self.position,
            "created_at": iso(self.created_at),
        }

    @classmethod
    def from_document(cls, doc_id: str, data: dict[str, Any]) -> Employee:
        return cls(
            id=doc_id,
            name=data["name"],
            current_salary=dec(data["current_salary"]),
            overtime_eligible=bool(data.get("overtime_eligible", False)),
            hire_date=parse_date(data["hire_date"]),
            position=data.get("position", ""),
            created_at=parse_datetime(data.get("created_at")),
        )


@dataclass(frozen=True)
class SalaryHistory:
    """One salary change.  ``increment_percentage`` is negative for a decrease."""
    id: str
    employee_id: str
    employee_name: str
    old_salary: Decimal
    new_salary: Decimal
    increment_percentage: Decimal
    effective_date: date
    notes: str = ""
    created_at: datetime | None = None

    def to_document(self) -> dict[str, Any]:
        return {
            "employee_id": self.employee_id,
            "employee_name": self.employee_name,
            "old_salary": str(self.old_salary),
            "new_salary": str(self.new_salary),
            "increment_percentage": str(self.increment_percentage),
            "effective_date": iso(self.effective_date),
            "notes": self.notes,
            "created_at": iso(self.created_at),
        }

    @classmethod
    def from_document(cls, doc_id: str, data: dict[str, Any]) -> SalaryHistory:
        return cls(
            id=doc_id,
            employee_id=data["employee_id"],
            employee_name=data.get("employee_name", ""),
            old_salary=dec(data["old_salary"]),
            new_salary=dec(data["new_salary"]),
            increment_percentage=dec(data["increment_percentage"]),
            effective_date=parse_date(data["effective_date"]),
            notes=data.get("notes", ""),
            created_at=parse_datetime(data.get("created_at")),
        )
