"""
Payroll Helpers (``payroll_modules.payroll.helpers``).

Responsibility
--------------
Pure calculation functions for a monthly payroll entry: hire-date
proration, overtime pay, gross and net totals, the entry notes, and the
month summary.

Architecture position
---------------------
**Modules layer** -- pure helper functions.  No I/O, no store, no clock.
Called by ``PayrollEngine`` and from tests.

Invariants enforced
-------------------
* All numeric inputs and outputs use ``Decimal`` -- NEVER ``float``.
* Ratios are multiply-before-divide with one rounding step
  (``multiply_divide``), so ``600 x 22 / 31`` is 425.81 and not the
  425.70 that rounding the daily rate first would give.
* ``total = round(base + overtime + bonuses - deductions)`` and
  ``net = round(total - advance_deduction)``.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from payroll_kernel.domain.amounts import (
    multiply_divide,
    round_currency,
    safe_subtract,
    sum_amounts,
)
from payroll_kernel.domain.periods import days_in_month, month_end, parse_month
from payroll_modules.payroll.models import PayrollEntry, PayrollMonthSummary


@dataclass(frozen=True)
class Proration:
    base_salary: Decimal
    days_worked: int
    days_in_month: int
    is_prorated: bool


def is_eligible_for_month(hire_date: date, month: str) -> bool:
    """An employee is paid for ``month`` if hired on or before its last day."""
    return hire_date <= month_end(month)


def compute_proration(monthly_salary: Decimal, hire_date: date, month: str) -> Proration:
    """
    Base salary for ``month`` given the hire date.

    Preconditions:
        - ``is_eligible_for_month(hire_date, month)``.
    Postconditions:
        - Hired in ``month`` on a day > 1: ``days_worked = days - hire_day + 1``
          and ``base = round(salary * days_worked / days)``.
        - Otherwise the full salary, ``is_prorated == False``.
    """
    year, month_number = parse_month(month)
    days = days_in_month(month)
    hired_this_month = (hire_date.year, hire_date.month) == (year, month_number)
    if hired_this_month and hire_date.day > 1:
        days_worked = days - hire_date.day + 1
        return Proration(
            base_salary=multiply_divide(monthly_salary, days_worked, days),
            days_worked=days_worked,
            days_in_month=days,
            is_prorated=True,
        )
    return Proration(
        base_salary=round_currency(monthly_salary),
        days_worked=days,
        days_in_month=days,
        is_prorated=False,
    )


def compute_overtime_pay(
    monthly_salary: Decimal,
    hours: Decimal,
    hours_divisor: Decimal = Decimal("208"),
    multiplier: Decimal = Decimal("1.0"),
) -> Decimal:
    """
    Overtime pay at ``multiplier`` times the hourly rate.

    The hourly rate is ``monthly_salary / hours_divisor``; it is never
    rounded on its own.  ``round(600 * 10 * 1.0 / 208) == 28.85``.

    Postconditions:
        - Returns ``Decimal("0.00")`` when ``hours`` is zero.
    """
    if hours <= 0:
        return round_currency(0)
    return multiply_divide(monthly_salary, hours * multiplier, hours_divisor)


def compute_total_salary(
    base_salary: Decimal,
    overtime_pay: Decimal,
    bonus_total: Decimal,
    deduction_total: Decimal,
) -> Decimal:
    """``round(base + overtime + bonuses - deductions)``."""
    return safe_subtract(
        sum_amounts((base_salary, overtime_pay, bonus_total)), deduction_total
    )


def compute_net_salary(total_salary: Decimal, advance_deduction: Decimal) -> Decimal:
    """The amount disbursed.  Negative when advances exceed the total."""
    return safe_subtract(total_salary, advance_deduction)


def build_entry_notes(proration: Proration, notes: str = "") -> str:
    notes = notes.strip()
    if not proration.is_prorated:
        return notes
    prorated = f"Prorated: {proration.days_worked} of {proration.days_in_month} days"
    return f"{prorated} - {notes}" if notes else prorated


def salary_payment_notes(entry: PayrollEntry) -> str:
    """Notes for the ledger record of a salary payment."""
    parts = [f"Salary for {entry.month}"]
    if entry.overtime_hours > 0:
        parts.append(f"overtime hours: {entry.overtime_hours}")
    if entry.advance_deduction > 0:
        parts.append(f"advance deduction: {entry.advance_deduction}")
    return " - ".join(parts)


def salary_payment_description(entry: PayrollEntry) -> str:
    suffix = " (after advance deduction)" if entry.advance_deduction > 0 else ""
    return f"Salary {entry.employee_name} - {entry.month}{suffix}"


def summarize_entries(month: str, entries: Sequence[PayrollEntry]) -> PayrollMonthSummary:
    """
    Totals by category plus paid / unpaid / prorated / advance counts.

    ``unpaid_total`` sums the net salary of unpaid entries, the amount still
    to be disbursed for the month.
    """
    unpaid = [e for e in entries if not e.is_paid]
    return PayrollMonthSummary(
        month=month,
        entry_count=len(entries),
        total_base=sum_amounts(e.base_salary for e in entries),
        total_overtime=sum_amounts(e.overtime_pay for e in entries),
        total_bonuses=sum_amounts(e.bonus_total for e in entries),
        total_deductions=sum_amounts(e.deduction_total for e in entries),
        total_advance_deductions=sum_amounts(e.advance_deduction for e in entries),
        grand_total=sum_amounts(e.total_salary for e in entries),
        grand_net_total=sum_amounts(e.net_salary for e in entries),
        paid_count=len(entries) - len(unpaid),
        unpaid_count=len(unpaid),
        unpaid_total=sum_amounts(e.net_salary for e in unpaid),
        prorated_count=sum(1 for e in entries if e.is_prorated),
        advance_count=sum(1 for e in entries if e.advance_ids),
    )
