"""Document and transaction identifiers."""

from datetime import date
from uuid import uuid4


def new_id() -> str:
    return uuid4().hex


def transaction_id(prefix: str, day: date) -> str:
    """
    Human-readable transaction id, e.g. ``SAL-20250131-3f9a1c``.

    The suffix is random; uniqueness across a tenant is probabilistic, the
    reconciliation documents themselves are keyed by ``new_id()``.
    """
    return f"{prefix}-{day:%Y%m%d}-{uuid4().hex[:6]}"
