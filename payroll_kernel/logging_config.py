"""
Structured logging for payroll operations.

Responsibility:
    One JSON object per log line, carrying the payroll scope the line was
    emitted in (tenant, month, employee, entry, actor) without every call
    site repeating it in ``extra=``.

Architecture position:
    Kernel.  Imported by every service; imports only
    ``payroll_kernel.exceptions``.

Usage::

    logger = get_logger("modules.payroll.service")

    with LogContext.bind(month="2025-01", actor_id=actor_id):
        logger.info("payroll_process_started", extra={"employee_count": 3})

    # {"ts": "...", "level": "INFO", "logger": "payroll_kernel.modules...",
    #  "message": "payroll_process_started", "month": "2025-01",
    #  "actor_id": "...", "employee_count": 3}

Encoding:
    Amounts (``Decimal``) are written as strings with their exact digits
    (``"425.81"``).  Dates are ISO strings, enums their
    value, tuples and sets lists.  A ``PayrollKernelError`` in ``exc_info``
    is flattened into ``exc_code`` plus one ``exc_<field>`` per public
    attribute (``exc_month``, ``exc_paid_count`` ...).
"""

from __future__ import annotations

__all__ = [
    "CONTEXT_FIELDS",
    "LogContext",
    "StructuredFormatter",
    "configure_logging",
    "get_logger",
    "reset_logging",
]

import json
import logging
import sys
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, date, datetime
from decimal import Decimal
from enum import Enum
from types import MappingProxyType
from typing import Any, TextIO
from uuid import UUID

from payroll_kernel.exceptions import PayrollKernelError

LOGGER_NAMESPACE = "payroll_kernel"

# Order is the order the fields appear in a log line
CONTEXT_FIELDS = (
    "correlation_id",
    "tenant_id",
    "actor_id",
    "month",
    "employee_id",
    "entry_id",
)

_EMPTY: Mapping[str, str] = MappingProxyType({})
_scope: ContextVar[Mapping[str, str]] = ContextVar("payroll_log_scope", default=_EMPTY)


# ---------------------------------------------------------------------------
# Payroll scope
# ---------------------------------------------------------------------------


class LogContext:
    """
    The payroll scope attached to every log line.

    Held in one ``ContextVar`` so threads and asyncio tasks each see their
    own scope.  Only the names in ``CONTEXT_FIELDS`` are accepted.
    """

    @staticmethod
    def _merged(fields: Mapping[str, Any]) -> Mapping[str, str]:
        unknown = set(fields) - set(CONTEXT_FIELDS)
        if unknown:
            raise TypeError(f"Unknown log context field(s): {', '.join(sorted(unknown))}")
        merged = dict(_scope.get())
        merged.update({k: str(v) for k, v in fields.items() if v is not None})
        return MappingProxyType(merged)

    @classmethod
    def set(cls, **fields: Any) -> None:
        """Set fields for the rest of the current context.  None is ignored."""
        _scope.set(cls._merged(fields))

    @classmethod
    @contextmanager
    def bind(cls, **fields: Any) -> Iterator[None]:
        """Set fields for the ``with`` block, then restore the previous scope."""
        token = _scope.set(cls._merged(fields))
        try:
            yield
        finally:
            _scope.reset(token)

    @staticmethod
    def get_all() -> dict[str, str]:
        scope = _scope.get()
        return {name: scope[name] for name in CONTEXT_FIELDS if name in scope}

    @staticmethod
    def clear() -> None:
        _scope.set(_EMPTY)


# ---------------------------------------------------------------------------
# JSON lines
# ---------------------------------------------------------------------------

_RESERVED = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "asctime", "taskName"}


def _encode(value: Any) -> Any:
    if isinstance(value, (Decimal, UUID)):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (tuple, set, frozenset)):
        return list(value)
    return str(value)


def _exception_fields(exc: BaseException) -> dict[str, Any]:
    fields: dict[str, Any] = {
        "exc_type": type(exc).__name__,
        "exc_message": str(exc),
    }
    if isinstance(exc, PayrollKernelError):
        fields["exc_code"] = exc.code
        for name, value in vars(exc).items():
            if not name.startswith("_"):
                fields[f"exc_{name}"] = value
    return fields


class StructuredFormatter(logging.Formatter):
    """Formats a record as one JSON object: base keys, scope, extras, exception."""

    def format(self, record: logging.LogRecord) -> str:
        line: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **LogContext.get_all(),
        }
        line.update(
            (key, value)
            for key, value in vars(record).items()
            if key not in _RESERVED and key not in line
        )
        if record.exc_info and record.exc_info[1] is not None:
            line.update(_exception_fields(record.exc_info[1]))
            line["traceback"] = self.formatException(record.exc_info)
        return json.dumps(line, default=_encode)


# ---------------------------------------------------------------------------
# Setup
# ---------------------------------------------------------------------------


def get_logger(name: str) -> logging.Logger:
    """Logger ``payroll_kernel.<name>``."""
    return logging.getLogger(f"{LOGGER_NAMESPACE}.{name}")


def _installed_handlers(root: logging.Logger) -> list[logging.Handler]:
    return [h for h in root.handlers if getattr(h, "_payroll_structured", False)]


def configure_logging(
    *,
    level: int | str = logging.INFO,
    stream: TextIO | None = None,
    handler: logging.Handler | None = None,
) -> None:
    """
    Send ``payroll_kernel.*`` logs to ``handler`` (default: stderr) as JSON.

    ``level`` is a ``logging`` constant or its name ("DEBUG").  Calling again
    once a handler is installed changes nothing, so the engine bootstrap and
    an application can both call it.
    """
    root = logging.getLogger(LOGGER_NAMESPACE)
    if _installed_handlers(root):
        return
    if isinstance(level, str):
        resolved = logging.getLevelName(level.upper())
        if not isinstance(resolved, int):
            raise ValueError(f"Unknown log level: {level}")
        level = resolved

    target = handler or logging.StreamHandler(stream or sys.stderr)
    target.setFormatter(StructuredFormatter())
    target._payroll_structured = True  # type: ignore[attr-defined]
    root.addHandler(target)
    root.setLevel(level)
    root.propagate = False


def reset_logging() -> None:
    """Remove the handler ``configure_logging`` installed (tests)."""
    root = logging.getLogger(LOGGER_NAMESPACE)
    for h in _installed_handlers(root):
        root.removeHandler(h)
    root.setLevel(logging.WARNING)
