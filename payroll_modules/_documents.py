"""
Shared document conventions for the payroll modules.

Collection names and the conversions between model fields and the JSON
payloads the document store holds.  Decimals travel as strings, dates and
datetimes as ISO-8601 strings.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any

EMPLOYEES = "employees"
SALARY_HISTORY = "salary_history"
OVERTIME_ENTRIES = "overtime_entries"
ADVANCES = "advances"
PAYROLL = "payroll"
PAYROLL_MONTHS = "payroll_months"


def dec(value: Any) -> Decimal:
    return Decimal(str(value))


def iso(value: date | datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def parse_date(value: Any) -> date | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def parse_datetime(value: Any) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))
