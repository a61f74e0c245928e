"""
Overtime Ledger (``payroll_modules.overtime.service``).

Responsibility
--------------
Records, edits and deletes logged overtime hours, and answers per-month
questions about them.  The payroll engine owns the link protocol:
``link`` / ``unlink`` return store writes which the engine puts into its own
batch, so an entry is locked exactly when its payroll entry exists.

Invariants enforced
-------------------
* 0 < hours <= the configured maximum per entry (24).
* hire_date <= entry date <= today.
* Only overtime-eligible employees can log hours.
* A linked entry cannot be edited or deleted (``LockedError``).
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import replace
from datetime import date
from decimal import Decimal

from payroll_config.schema import PayrollConfig
from payroll_kernel.domain.amounts import AmountLike, sum_hours
from payroll_kernel.domain.clock import Clock, SystemClock
from payroll_kernel.domain.identifiers import new_id
from payroll_kernel.domain.periods import parse_month
from payroll_kernel.exceptions import LockedError, NotFoundError, ValidationError
from payroll_kernel.logging_config import get_logger
from payroll_kernel.sinks import AuditSink, NullAuditSink, emit_best_effort
from payroll_kernel.store.base import DocumentStore, WriteOp, eq
from payroll_modules._documents import OVERTIME_ENTRIES, PAYROLL_MONTHS
from payroll_modules._validation import require_not_future, require_positive
from payroll_modules.employees.models import Employee
from payroll_modules.overtime.models import EmployeeOvertimeSummary, OvertimeEntry

logger = get_logger("modules.overtime.service")

AUDIT_MODULE = "overtime"


class OvertimeLedger:
    """
    Per-employee, per-month overtime hours.

    Contract:
        Mutations validate first and then commit a single batch.
    """

    def __init__(
        self,
        store: DocumentStore,
        clock: Clock | None = None,
        config: PayrollConfig | None = None,
        audit: AuditSink | None = None,
    ):
        self._store = store
        self._clock = clock or SystemClock()
        self._config = config or PayrollConfig()
        self._audit = audit or NullAuditSink()

    # =========================================================================
    # Mutations
    # =========================================================================

    def record_entry(
        self,
        employee: Employee,
        day: date,
        hours: AmountLike,
        notes: str = "",
        actor_id: str | None = None,
    ) -> OvertimeEntry:
        """
        Log overtime hours for ``employee`` on ``day``.

        Raises:
            ValidationError: hours out of range, future date, date before
                the hire date, or employee not overtime-eligible.
        """
        hours = self._validate(employee, day, hours)
        entry = OvertimeEntry(
            id=new_id(),
            employee_id=employee.id,
            employee_name=employee.name,
            date=day,
            hours=hours,
            notes=notes.strip(),
            created_at=self._clock.now(),
            created_by=actor_id,
        )
        self._store.batch_write([
            WriteOp.create(OVERTIME_ENTRIES, entry.id, entry.to_document()),
        ])

        logger.info("overtime_entry_recorded", extra={
            "overtime_entry_id": entry.id,
            "employee_id": employee.id,
            "hours": str(hours),
            "month": entry.month,
        })
        emit_best_effort(
            "overtime_entry_recorded",
            lambda: self._audit.log_activity(
                "create", AUDIT_MODULE, entry.id, actor_id,
                f"Overtime logged: {employee.name} - {hours} hours",
                {"date": entry.date.isoformat(), "hours": hours},
            ),
            overtime_entry_id=entry.id,
        )
        return entry

    def update_entry(
        self,
        entry_id: str,
        employee: Employee,
        day: date,
        hours: AmountLike,
        notes: str = "",
        actor_id: str | None = None,
    ) -> OvertimeEntry:
        """
        Replace the date, hours and notes of an unlinked entry.

        Raises:
            LockedError: the entry is linked to a payroll entry.
            ValidationError: same rules as ``record_entry``.
        """
        current = self.get_entry(entry_id)
        if current.is_locked:
            raise LockedError(entry_id, current.linked_payroll_id)
        hours = self._validate(employee, day, hours)
        updated = replace(
            current,
            employee_id=employee.id,
            employee_name=employee.name,
            date=day,
            hours=hours,
            notes=notes.strip(),
        )
        self._store.batch_write([
            WriteOp.update(OVERTIME_ENTRIES, entry_id, updated.to_document()),
        ])

        logger.info("overtime_entry_updated", extra={
            "overtime_entry_id": entry_id,
            "hours": str(hours),
            "month": updated.month,
        })
        emit_best_effort(
            "overtime_entry_updated",
            lambda: self._audit.log_activity(
                "update", AUDIT_MODULE, entry_id, actor_id,
                f"Overtime updated: {employee.name} - {hours} hours",
            ),
            overtime_entry_id=entry_id,
        )
        return updated

    def delete_entry(self, entry: OvertimeEntry, actor_id: str | None = None) -> None:
        """
        Delete an unlinked entry.

        The link is checked against the stored entry, not the caller's copy.

        Raises:
            LockedError: the entry is linked to a payroll entry.
        """
        current = self.get_entry(entry.id)
        if current.is_locked:
            raise LockedError(entry.id, current.linked_payroll_id)
        self._store.batch_write([WriteOp.delete(OVERTIME_ENTRIES, entry.id)])

        logger.info("overtime_entry_deleted", extra={
            "overtime_entry_id": entry.id,
            "employee_id": current.employee_id,
        })
        emit_best_effort(
            "overtime_entry_deleted",
            lambda: self._audit.log_activity(
                "delete", AUDIT_MODULE, entry.id, actor_id,
                f"Overtime deleted: {current.employee_name} - {current.hours} hours",
            ),
            overtime_entry_id=entry.id,
        )

    # =========================================================================
    # Link protocol (payroll engine only)
    # =========================================================================

    def link(self, entry_ids: Iterable[str], payroll_id: str) -> list[WriteOp]:
        return [
            WriteOp.update(OVERTIME_ENTRIES, entry_id, {"linked_payroll_id": payroll_id})
            for entry_id in entry_ids
        ]

    def unlink(self, entry_ids: Iterable[str]) -> list[WriteOp]:
        return [
            WriteOp.update(OVERTIME_ENTRIES, entry_id, {"linked_payroll_id": None})
            for entry_id in entry_ids
        ]

    # =========================================================================
    # Queries
    # =========================================================================

    def get_entry(self, entry_id: str) -> OvertimeEntry:
        doc = self._store.get(OVERTIME_ENTRIES, entry_id)
        if doc is None:
            raise NotFoundError("overtime_entry", entry_id)
        return OvertimeEntry.from_document(doc.doc_id, doc.data)

    def entries_for_month(self, month: str) -> list[OvertimeEntry]:
        """All entries in ``month``, newest first."""
        parse_month(month)
        return self._entries([eq("month", month)])

    def entries_for_employee_month(self, employee_id: str, month: str) -> list[OvertimeEntry]:
        parse_month(month)
        return self._entries([eq("employee_id", employee_id), eq("month", month)])

    def hours_for_employee_month(self, employee_id: str, month: str) -> Decimal:
        return sum_hours(
            e.hours for e in self.entries_for_employee_month(employee_id, month)
        )

    def summary_by_employee(self, month: str) -> list[EmployeeOvertimeSummary]:
        """
        Group a month's entries by employee.

        Summaries are ordered by employee name; each summary's entries are
        newest first.
        """
        grouped: dict[str, list[OvertimeEntry]] = {}
        for entry in self.entries_for_month(month):
            grouped.setdefault(entry.employee_id, []).append(entry)
        summaries = [
            EmployeeOvertimeSummary(
                employee_id=employee_id,
                employee_name=entries[0].employee_name,
                total_hours=sum_hours(e.hours for e in entries),
                entries=tuple(entries),
            )
            for employee_id, entries in grouped.items()
        ]
        return sorted(summaries, key=lambda s: s.employee_name)

    def is_month_processed(self, month: str) -> bool:
        """True if a payroll run exists for ``month``; its overtime is locked."""
        parse_month(month)
        return self._store.get(PAYROLL_MONTHS, month) is not None

    # =========================================================================
    # Internals
    # =========================================================================

    def _entries(self, filters: Sequence) -> list[OvertimeEntry]:
        docs = self._store.query(
            OVERTIME_ENTRIES,
            filters,
            order_by=["-date", "-created_at"],
        )
        return [OvertimeEntry.from_document(doc.doc_id, doc.data) for doc in docs]

    def _validate(self, employee: Employee, day: date, hours: AmountLike) -> Decimal:
        hours = require_positive(hours, "hours")
        limit = self._config.max_overtime_hours_per_entry
        if hours > limit:
            raise ValidationError(f"hours cannot exceed {limit} per entry", "hours")
        require_not_future(day, self._clock.today())
        if day < employee.hire_date:
            raise ValidationError(
                f"date {day} is before the hire date {employee.hire_date}", "date"
            )
        if not employee.overtime_eligible:
            raise ValidationError(
                f"Employee {employee.name} is not eligible for overtime",
                "employee_id",
            )
        return hours
