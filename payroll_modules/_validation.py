"""Input validation shared by the payroll module services."""

from __future__ import annotations

from datetime import date
from decimal import Decimal, InvalidOperation

from payroll_kernel.domain.amounts import AmountLike, to_decimal
from payroll_kernel.exceptions import ValidationError


def require_positive(value: AmountLike, field: str) -> Decimal:
    """
    Convert ``value`` to a finite, positive Decimal.

    Raises:
        ValidationError: if the value is not a number or is <= 0.
    """
    try:
        number = to_decimal(value)
    except (TypeError, InvalidOperation, ValueError) as exc:
        raise ValidationError(f"{field} must be a number, got {value!r}", field) from exc
    if not number.is_finite() or number <= 0:
        raise ValidationError(f"{field} must be greater than zero", field)
    return number


def require_not_future(day: date, today: date, field: str = "date") -> date:
    if day > today:
        raise ValidationError(f"{field} cannot be in the future ({day} > {today})", field)
    return day


def require_text(value: str | None, field: str) -> str:
    text = (value or "").strip()
    if not text:
        raise ValidationError(f"{field} is required", field)
    return text
