"""
Overtime Domain Models (``payroll_modules.overtime.models``).

An ``OvertimeEntry`` is one logged block of extra hours on one day.  Its
``month`` key is derived from the date.  Once a payroll run consumes the
entry it carries ``linked_payroll_id`` and is read-only until unlinked.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from payroll_kernel.domain.periods import month_of
from payroll_modules._documents import dec, iso, parse_date, parse_datetime


@dataclass(frozen=True)
class OvertimeEntry:
    id: str
    employee_id: str
    employee_name: str
    date: date
    hours: Decimal
    notes: str = ""
    linked_payroll_id: str | None = None
    created_at: datetime | None = None
    created_by: str | None = None

    def __post_init__(self):
        if self.hours <= 0:
            raise ValueError("Overtime hours must be positive")

    @property
    def month(self) -> str:
        return month_of(self.date)

    @property
    def is_locked(self) -> bool:
        return self.linked_payroll_id is not None

    def to_document(self) -> dict[str, Any]:
        return {
            "employee_id": self.employee_id,
            "employee_name": self.employee_name,
            "date": iso(self.date),
            "hours": str(self.hours),
            "month": self.month,
            "notes": self.notes,
            "linked_payroll_id": self.linked_payroll_id,
            "created_at": iso(self.created_at),
            "created_by": self.created_by,
        }

    @classmethod
    def from_document(cls, doc_id: str, data: dict[str, Any]) -> OvertimeEntry:
        return cls(
            id=doc_id,
            employee_id=data["employee_id"],
            employee_name=data.get("employee_name", ""),
            date=parse_date(data["date"]),
            hours=dec(data["hours"]),
            notes=data.get("notes", ""),
            linked_payroll_id=data.get("linked_payroll_id"),
            created_at=parse_datetime(data.get("created_at")),
            created_by=data.get("created_by"),
        )


@dataclass(frozen=True)
class EmployeeOvertimeSummary:
    """One employee's overtime for a month.  ``entries`` are newest first."""
    employee_id: str
    employee_name: str
    total_hours: Decimal
    entries: tuple[OvertimeEntry, ...] = field(default_factory=tuple)

    @property
    def entry_ids(self) -> tuple[str, ...]:
        return tuple(e.id for e in self.entries)
