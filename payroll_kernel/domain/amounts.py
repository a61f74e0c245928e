"""
Amounts -- Safe decimal arithmetic for currency values.

Responsibility:
    The only sanctioned way to add, subtract, multiply, divide, round and
    parse monetary amounts.  Every payroll, overtime and advance computation
    routes through these functions.

Architecture position:
    Kernel > Domain -- pure functions, zero I/O.  Imported by every module
    that touches money.

Invariants enforced:
    - Amounts are ``Decimal``.  ``float`` is rejected at the boundary because
      binary floating point cannot represent most decimal fractions.
    - Results are rounded to ``CURRENCY_DECIMAL_PLACES`` with ROUND_HALF_UP.
    - Ratios (proration, hourly rate) are computed multiply-before-divide at
      full precision and rounded once, so chained operations do not compound
      rounding error.

Failure modes:
    - TypeError when a float is passed to an arithmetic helper.
    - ``parse_amount`` never raises; unparseable input yields ``Decimal("0")``.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation, localcontext

CURRENCY_DECIMAL_PLACES = 2
_QUANTUM = Decimal(1).scaleb(-CURRENCY_DECIMAL_PLACES)
_ZERO = Decimal("0")

# Intermediate precision for multiply/divide before the final rounding
_WORKING_PRECISION = 34

# Leading numeric prefix, the way a form field's number parser reads "12.5kg"
_NUMBER_PREFIX = re.compile(r"^[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?")

AmountLike = Decimal | int | str


def to_decimal(value: AmountLike) -> Decimal:
    """
    Convert ``value`` to ``Decimal`` without rounding.

    Raises:
        TypeError: If ``value`` is a float.
        InvalidOperation: If a string is not a number.
    """
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool) or isinstance(value, float):
        raise TypeError(f"Amounts must not be {type(value).__name__}: {value!r}")
    return Decimal(str(value))


def round_currency(value: AmountLike) -> Decimal:
    """
    Round to 2 decimal places, half up.

    Examples:
        round_currency(Decimal("10.555")) -> Decimal("10.56")
        round_currency(Decimal("10.554")) -> Decimal("10.55")
    """
    return to_decimal(value).quantize(_QUANTUM, rounding=ROUND_HALF_UP)


def safe_add(a: AmountLike, b: AmountLike) -> Decimal:
    """Sum of two amounts, rounded."""
    return round_currency(to_decimal(a) + to_decimal(b))


def safe_subtract(a: AmountLike, b: AmountLike) -> Decimal:
    """Difference of two amounts, rounded."""
    return round_currency(to_decimal(a) - to_decimal(b))


def safe_multiply(a: AmountLike, b: AmountLike) -> Decimal:
    """Product of two values (e.g. hours x rate), rounded."""
    with localcontext() as ctx:
        ctx.prec = _WORKING_PRECISION
        product = to_decimal(a) * to_decimal(b)
    return round_currency(product)


def safe_divide(a: AmountLike, b: AmountLike) -> Decimal:
    """Quotient, rounded.  Division by zero yields ``Decimal("0")``."""
    divisor = to_decimal(b)
    if divisor == 0:
        return _ZERO.quantize(_QUANTUM)
    with localcontext() as ctx:
        ctx.prec = _WORKING_PRECISION
        quotient = to_decimal(a) / divisor
    return round_currency(quotient)


def multiply_divide(a: AmountLike, b: AmountLike, c: AmountLike) -> Decimal:
    """
    ``round(a * b / c)`` with a single rounding step.

    The product is formed first at full precision, then divided, then
    rounded.  Used for proration (salary x days_worked / days_in_month) and
    overtime (salary x hours / divisor).  Division by zero yields 0.
    """
    divisor = to_decimal(c)
    if divisor == 0:
        return _ZERO.quantize(_QUANTUM)
    with localcontext() as ctx:
        ctx.prec = _WORKING_PRECISION
        result = to_decimal(a) * to_decimal(b) / divisor
    return round_currency(result)


def sum_amounts(values: Iterable[AmountLike]) -> Decimal:
    """
    Sum an iterable of amounts.

    Accumulates at full precision and rounds once at the end.
    """
    total = _ZERO
    for value in values:
        total += to_decimal(value)
    return round_currency(total)


def sum_hours(values: Iterable[AmountLike]) -> Decimal:
    """
    Exact sum of hour quantities.

    Hours are not currency: the total keeps every digit of its inputs and
    is not rounded to two places.
    """
    total = _ZERO
    for value in values:
        total += to_decimal(value)
    return total


def parse_amount(value: str | int | Decimal | None) -> Decimal:
    """
    Parse user input into a rounded amount.

    Never raises.  Empty, invalid, NaN or infinite input returns
    ``Decimal("0.00")``.  Like a form number parser, a leading number is
    accepted even when followed by other characters ("150 JOD" -> 150.00).
    """
    if value is None or isinstance(value, (bool, float)):
        return _ZERO.quantize(_QUANTUM)
    if isinstance(value, Decimal):
        parsed = value
    elif isinstance(value, int):
        parsed = Decimal(value)
    else:
        match = _NUMBER_PREFIX.match(str(value).strip().replace(",", ""))
        if match is None:
            return _ZERO.quantize(_QUANTUM)
        try:
            parsed = Decimal(match.group(0))
        except InvalidOperation:
            return _ZERO.quantize(_QUANTUM)
    if not parsed.is_finite():
        return _ZERO.quantize(_QUANTUM)
    try:
        return round_currency(parsed)
    except InvalidOperation:
        # Too many digits to hold at two places
        return _ZERO.quantize(_QUANTUM)


def currency_equals(a: AmountLike, b: AmountLike) -> bool:
    """True if both amounts are equal after rounding to 2 places."""
    return round_currency(a) == round_currency(b)


def is_zero(value: AmountLike) -> bool:
    """True if the amount rounds to 0.00."""
    return round_currency(value) == 0


def zero_floor(value: AmountLike) -> Decimal:
    """The rounded amount, or 0.00 if it is negative."""
    rounded = round_currency(value)
    return rounded if rounded > 0 else _ZERO.quantize(_QUANTUM)


def percentage_change(old: AmountLike, new: AmountLike) -> Decimal:
    """
    ``(new - old) / old * 100`` rounded to 2 places.

    Returns 0.00 when ``old`` is zero.
    """
    return multiply_divide(safe_subtract(new, old), 100, old)
