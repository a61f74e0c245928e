"""
Periods -- Calendar month helpers.

Payroll is month-scoped.  A month is identified by its ``"YYYY-MM"`` key,
the same string stored on overtime entries, payroll entries and the month
marker.  All functions here are pure; "today" is always passed in by the
caller (usually from a ``Clock``).
"""

from __future__ import annotations

import calendar
import re
from datetime import date

from payroll_kernel.exceptions import ValidationError

_MONTH_PATTERN = re.compile(r"^(\d{4})-(\d{2})$")


def month_of(day: date) -> str:
    """Month key for a date: ``date(2025, 1, 10)`` -> ``"2025-01"``."""
    return f"{day.year:04d}-{day.month:02d}"


def parse_month(month: str) -> tuple[int, int]:
    """
    Split a ``"YYYY-MM"`` key into ``(year, month)``.

    Raises:
        ValidationError: If the key is malformed or the month is not 1-12.
    """
    match = _MONTH_PATTERN.match(month or "")
    if match is None:
        raise ValidationError(f"Invalid month '{month}', expected YYYY-MM", "month")
    year, month_number = int(match.group(1)), int(match.group(2))
    if not 1 <= month_number <= 12:
        raise ValidationError(f"Invalid month '{month}', expected YYYY-MM", "month")
    return year, month_number


def days_in_month(month: str) -> int:
    year, month_number = parse_month(month)
    return calendar.monthrange(year, month_number)[1]


def month_start(month: str) -> date:
    year, month_number = parse_month(month)
    return date(year, month_number, 1)


def month_end(month: str) -> date:
    """Last calendar day of the month."""
    year, month_number = parse_month(month)
    return date(year, month_number, days_in_month(month))


def current_month(today: date) -> str:
    return month_of(today)


def is_future_month(month: str, today: date) -> bool:
    """True if ``month`` is strictly after the month containing ``today``."""
    return parse_month(month) > (today.year, today.month)
