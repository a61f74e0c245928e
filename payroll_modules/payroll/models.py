"""
Payroll Domain Models (``payroll_modules.payroll.models``).

Responsibility
--------------
Frozen dataclass value objects for a monthly payroll run: per-employee
adjustments (bonuses and deductions as a tagged variant), the payroll entry
itself, and the derived month / employee aggregates.

Invariants enforced
-------------------
* All models are ``frozen=True``.
* All monetary fields use ``Decimal`` -- NEVER ``float``.
* ``PayrollEntry.net_salary == round(total_salary - advance_deduction)``.
* An adjustment's ``type`` belongs to the enum of its ``kind``.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from payroll_kernel.domain.amounts import safe_subtract, sum_amounts
from payroll_kernel.logging_config import get_logger
from payroll_modules._documents import dec, iso, parse_date, parse_datetime

logger = get_logger("modules.payroll.models")


class AdjustmentKind(Enum):
    BONUS = "bonus"
    DEDUCTION = "deduction"


class BonusType(Enum):
    PERFORMANCE = "performance"
    EID = "eid"
    ANNUAL = "annual"
    OTHER = "other"


class DeductionType(Enum):
    ABSENCE = "absence"
    PENALTY = "penalty"
    INSURANCE = "insurance"
    TAX = "tax"
    OTHER = "other"


_TYPE_ENUM: dict[AdjustmentKind, type[Enum]] = {
    AdjustmentKind.BONUS: BonusType,
    AdjustmentKind.DEDUCTION: DeductionType,
}


class PayrollEntryStatus(Enum):
    """States of one employee's payroll for one month."""
    UNPROCESSED = "unprocessed"
    UNPAID = "unpaid"
    PAID = "paid"
    DELETED = "deleted"


@dataclass(frozen=True)
class PayrollAdjustment:
    """A bonus or deduction line on a payroll entry."""
    kind: AdjustmentKind
    type: BonusType | DeductionType
    description: str
    amount: Decimal

    def __post_init__(self):
        if not isinstance(self.type, _TYPE_ENUM[self.kind]):
            raise ValueError(f"{self.type!r} is not a valid {self.kind.value} type")
        if self.amount <= 0:
            raise ValueError("Adjustment amount must be positive")

    @classmethod
    def bonus(cls, amount: Decimal, type: BonusType = BonusType.OTHER,
              description: str = "Bonus") -> PayrollAdjustment:
        return cls(AdjustmentKind.BONUS, type, description, amount)

    @classmethod
    def deduction(cls, amount: Decimal, type: DeductionType = DeductionType.OTHER,
                  description: str = "Deduction") -> PayrollAdjustment:
        return cls(AdjustmentKind.DEDUCTION, type, description, amount)

    def to_document(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "type": self.type.value,
            "description": self.description,
            "amount": str(self.amount),
        }

    @classmethod
    def from_document(cls, data: Mapping[str, Any]) -> PayrollAdjustment:
        kind = AdjustmentKind(data["kind"])
        return cls(
            kind=kind,
            type=_TYPE_ENUM[kind](data["type"]),
            description=data.get("description", ""),
            amount=dec(data["amount"]),
        )


@dataclass(frozen=True)
class EmployeeAdjustments:
    """Per-employee input to a payroll run."""
    adjustments: tuple[PayrollAdjustment, ...] = ()
    notes: str = ""

    @property
    def bonuses(self) -> tuple[PayrollAdjustment, ...]:
        return tuple(a for a in self.adjustments if a.kind == AdjustmentKind.BONUS)

    @property
    def deductions(self) -> tuple[PayrollAdjustment, ...]:
        return tuple(a for a in self.adjustments if a.kind == AdjustmentKind.DEDUCTION)


@dataclass(frozen=True)
class PayrollEntry:
    """One employee's payroll for one month."""
    id: str
    employee_id: str
    employee_name: str
    month: str
    base_salary: Decimal
    full_monthly_salary: Decimal
    days_worked: int
    days_in_month: int
    is_prorated: bool
    overtime_hours: Decimal
    overtime_pay: Decimal
    total_salary: Decimal
    net_salary: Decimal
    bonuses: tuple[PayrollAdjustment, ...] = ()
    deductions: tuple[PayrollAdjustment, ...] = ()
    overtime_entry_ids: tuple[str, ...] = ()
    advance_deduction: Decimal = Decimal("0")
    advance_ids: tuple[str, ...] = ()
    is_paid: bool = False
    paid_date: date | None = None
    linked_transaction_id: str | None = None
    notes: str = ""
    created_at: datetime | None = None

    def __post_init__(self):
        expected_net = safe_subtract(self.total_salary, self.advance_deduction)
        if self.net_salary != expected_net:
            logger.error(
                "payroll_entry_net_mismatch",
                extra={
                    "entry_id": self.id,
                    "net_salary": str(self.net_salary),
                    "expected_net": str(expected_net),
                },
            )
            raise ValueError(
                f"net_salary {self.net_salary} != total_salary - advance_deduction "
                f"({expected_net})"
            )
        if self.is_paid and self.paid_date is None:
            raise ValueError("A paid entry must have a paid_date")

    @property
    def status(self) -> PayrollEntryStatus:
        return PayrollEntryStatus.PAID if self.is_paid else PayrollEntryStatus.UNPAID

    @property
    def bonus_total(self) -> Decimal:
        return sum_amounts(b.amount for b in self.bonuses)

    @property
    def deduction_total(self) -> Decimal:
        return sum_amounts(d.amount for d in self.deductions)

    def to_document(self) -> dict[str, Any]:
        return {
            "employee_id": self.employee_id,
            "employee_name": self.employee_name,
            "month": self.month,
            "base_salary": str(self.base_salary),
            "full_monthly_salary": str(self.full_monthly_salary),
            "days_worked": self.days_worked,
            "days_in_month": self.days_in_month,
            "is_prorated": self.is_prorated,
            "overtime_hours": str(self.overtime_hours),
            "overtime_pay": str(self.overtime_pay),
            "overtime_entry_ids": list(self.overtime_entry_ids),
            "bonuses": [b.to_document() for b in self.bonuses],
            "deductions": [d.to_document() for d in self.deductions],
            "advance_deduction": str(self.advance_deduction),
            "advance_ids": list(self.advance_ids),
            "total_salary": str(self.total_salary),
            "net_salary": str(self.net_salary),
            "is_paid": self.is_paid,
            "paid_date": iso(self.paid_date),
            "linked_transaction_id": self.linked_transaction_id,
            "notes": self.notes,
            "created_at": iso(self.created_at),
        }

    @classmethod
    def from_document(cls, doc_id: str, data: dict[str, Any]) -> PayrollEntry:
        return cls(
            id=doc_id,
            employee_id=data["employee_id"],
            employee_name=data.get("employee_name", ""),
            month=data["month"],
            base_salary=dec(data["base_salary"]),
            full_monthly_salary=dec(data["full_monthly_salary"]),
            days_worked=int(data["days_worked"]),
            days_in_month=int(data["days_in_month"]),
            is_prorated=bool(data.get("is_prorated", False)),
            overtime_hours=dec(data.get("overtime_hours", "0")),
            overtime_pay=dec(data.get("overtime_pay", "0")),
            overtime_entry_ids=tuple(data.get("overtime_entry_ids", ())),
            bonuses=tuple(PayrollAdjustment.from_document(b) for b in data.get("bonuses", ())),
            deductions=tuple(
                PayrollAdjustment.from_document(d) for d in data.get("deductions", ())
            ),
            advance_deduction=dec(data.get("advance_deduction", "0")),
            advance_ids=tuple(data.get("advance_ids", ())),
            total_salary=dec(data["total_salary"]),
            net_salary=dec(data["net_salary"]),
            is_paid=bool(data.get("is_paid", False)),
            paid_date=parse_date(data.get("paid_date")),
            linked_transaction_id=data.get("linked_transaction_id"),
            notes=data.get("notes", ""),
            created_at=parse_datetime(data.get("created_at")),
        )


@dataclass(frozen=True)
class ProcessResult:
    month: str
    entries: tuple[PayrollEntry, ...]
    skipped_count: int


@dataclass(frozen=True)
class PayrollMonthSummary:
    """Totals for one month's payroll entries."""
    month: str
    entry_count: int = 0
    total_base: Decimal = Decimal("0")
    total_overtime: Decimal = Decimal("0")
    total_bonuses: Decimal = Decimal("0")
    total_deductions: Decimal = Decimal("0")
    total_advance_deductions: Decimal = Decimal("0")
    grand_total: Decimal = Decimal("0")
    grand_net_total: Decimal = Decimal("0")
    paid_count: int = 0
    unpaid_count: int = 0
    unpaid_total: Decimal = Decimal("0")
    prorated_count: int = 0
    advance_count: int = 0


@dataclass(frozen=True)
class PayrollPreview:
    """What ``process`` would write, computed without writing."""
    month: str
    entries: tuple[PayrollEntry, ...]
    skipped_count: int
    summary: PayrollMonthSummary
    already_processed: bool = False


@dataclass(frozen=True)
class EmployeeBalance:
    """
    Display-only position of one employee.

    ``net_balance`` = unpaid salaries - outstanding advances.  A negative
    value means the employee owes more in advances than is due to them.
    """
    employee_id: str
    unpaid_salaries: Decimal
    outstanding_advances: Decimal
    net_balance: Decimal = field(init=False)

    def __post_init__(self):
        object.__setattr__(
            self, "net_balance",
            safe_subtract(self.unpaid_salaries, self.outstanding_advances),
        )
