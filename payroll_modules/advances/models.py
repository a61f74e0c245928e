"""
Advance Domain Models (``payroll_modules.advances.models``).

A cash advance is money paid to an employee ahead of payroll.  ``amount``
is fixed at creation; ``remaining_amount`` is what a payroll run will still
deduct.  ``linked_payroll_month`` marks the advance as claimed by an unpaid
payroll run.

Invariants enforced
-------------------
* ``amount`` > 0 and 0 <= ``remaining_amount`` <= ``amount``.
* FULLY_DEDUCTED implies ``remaining_amount`` == 0.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from payroll_modules._documents import dec, iso, parse_date, parse_datetime


class AdvanceStatus(Enum):
    ACTIVE = "active"
    FULLY_DEDUCTED = "fully_deducted"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class Advance:
    """A cash advance and its deduction state."""
    id: str
    employee_id: str
    employee_name: str
    amount: Decimal
    remaining_amount: Decimal
    status: AdvanceStatus
    date: date
    linked_payroll_month: str | None = None
    linked_transaction_id: str | None = None
    notes: str = ""
    created_at: datetime | None = None

    def __post_init__(self):
        if self.amount <= 0:
            raise ValueError("Advance amount must be positive")
        if not Decimal("0") <= self.remaining_amount <= self.amount:
            raise ValueError(
                f"remaining_amount {self.remaining_amount} outside [0, {self.amount}]"
            )
        if self.status == AdvanceStatus.FULLY_DEDUCTED and self.remaining_amount != 0:
            raise ValueError("A fully deducted advance has no remaining amount")

    @property
    def is_claimed(self) -> bool:
        return self.linked_payroll_month is not None

    @property
    def is_eligible_for_deduction(self) -> bool:
        return self.status == AdvanceStatus.ACTIVE and not self.is_claimed

    def to_document(self) -> dict[str, Any]:
        return {
            "employee_id": self.employee_id,
            "employee_name": self.employee_name,
            "amount": str(self.amount),
            "remaining_amount": str(self.remaining_amount),
            "status": self.status.value,
            "date": iso(self.date),
            "linked_payroll_month": self.linked_payroll_month,
            "linked_transaction_id": self.linked_transaction_id,
            "notes": self.notes,
            "created_at": iso(self.created_at),
        }

    @classmethod
    def from_document(cls, doc_id: str, data: dict[str, Any]) -> Advance:
        return cls(
            id=doc_id,
            employee_id=data["employee_id"],
            employee_name=data.get("employee_name", ""),
            amount=dec(data["amount"]),
            remaining_amount=dec(data["remaining_amount"]),
            status=AdvanceStatus(data["status"]),
            date=parse_date(data["date"]),
            linked_payroll_month=data.get("linked_payroll_month"),
            linked_transaction_id=data.get("linked_transaction_id"),
            notes=data.get("notes", ""),
            created_at=parse_datetime(data.get("created_at")),
        )
