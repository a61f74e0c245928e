"""
Payroll Engine (``payroll_modules.payroll.service``).

Responsibility
--------------
Derives a month's payroll entries from the employee list, the overtime
ledger and the advance ledger, and moves entries through their lifecycle:
mark paid, reverse payment, delete one unpaid entry, undo a whole unpaid
month.  Also answers the month and per-employee queries the UI shows.

Architecture position
---------------------
**Modules layer**.  ``PayrollEngine`` is the sole writer of payroll entries
and the only caller of the overtime link and advance claim protocols.  Pure
computation lives in ``helpers.py``.

Invariants enforced
-------------------
* Each public mutation is ONE ``batch_write``: the entry change, the advance
  claim/release/settle/restore writes, the overtime link/unlink writes, the
  month marker and the ledger records of a store-backed reconciliation sink
  commit together or not at all.
* A month is processed at most once.  The ``payroll_months/<YYYY-MM>``
  marker is written with a create-only op inside the processing batch, so
  two concurrent runs for the same month cannot both commit.
* ``net_salary = round(total_salary - advance_deduction)`` on every entry.
* Paid entries cannot be deleted; a month with paid entries cannot be undone.
* Deleting or undoing entries releases their advances AND unlinks their
  overtime entries.

Failure modes
-------------
* ``FutureMonthError`` / ``AlreadyProcessedError`` /
  ``NoEligibleEmployeesError`` from ``process``.
* ``AlreadyPaidError`` / ``NotPaidError`` / ``InvalidStateError`` /
  ``PartiallyPaidError`` from the lifecycle operations.
* ``StoreError`` subclasses propagate unchanged; nothing is partially applied.

Reconciliation records join the payment or reversal batch when the sink
writes into the same store; an external sink and the activity log are
called after commit and never fail the operation (see
``payroll_kernel.sinks``).

Usage::

    engine = PayrollEngine(store, overtime, advances, clock=clock)
    result = engine.process("2025-01", registry.list_employees())
    engine.mark_as_paid(result.entries[0])
"""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, replace
from decimal import Decimal

from payroll_config.schema import PayrollConfig
from payroll_kernel.domain.amounts import sum_amounts, sum_hours
from payroll_kernel.domain.clock import Clock, SystemClock
from payroll_kernel.domain.identifiers import new_id, transaction_id
from payroll_kernel.domain.periods import current_month, is_future_month, parse_month
from payroll_kernel.domain.workflow import require_transition
from payroll_kernel.exceptions import (
    AlreadyPaidError,
    AlreadyProcessedError,
    DocumentExistsError,
    FutureMonthError,
    InvalidStateError,
    NoEligibleEmployeesError,
    NotFoundError,
    NotPaidError,
    PartiallyPaidError,
    ValidationError,
)
from payroll_kernel.logging_config import LogContext, get_logger
from payroll_kernel.sinks import (
    AuditSink,
    NullAuditSink,
    NullReconciliationSink,
    ReconciliationSink,
    RecordCategory,
    RecordKind,
    ReconciliationRecord,
    RecordSubCategory,
    emit_best_effort,
    reconcile,
)
from payroll_kernel.store.base import DocumentStore, Unsubscribe, WriteOp, eq
from payroll_modules._documents import PAYROLL, PAYROLL_MONTHS
from payroll_modules.advances.service import AdvanceLedger
from payroll_modules.employees.models import Employee
from payroll_modules.overtime.models import OvertimeEntry
from payroll_modules.overtime.service import OvertimeLedger
from payroll_modules.payroll.helpers import (
    build_entry_notes,
    compute_net_salary,
    compute_overtime_pay,
    compute_proration,
    compute_total_salary,
    is_eligible_for_month,
    salary_payment_description,
    salary_payment_notes,
    summarize_entries,
)
from payroll_modules.payroll.models import (
    EmployeeAdjustments,
    EmployeeBalance,
    PayrollEntry,
    PayrollMonthSummary,
    PayrollPreview,
    ProcessResult,
)
from payroll_modules.payroll.workflows import PAYROLL_ENTRY_WORKFLOW

logger = get_logger("modules.payroll.service")

AUDIT_MODULE = "payroll"

_NO_ADJUSTMENTS = EmployeeAdjustments()


@dataclass(frozen=True)
class _Plan:
    entries: tuple[PayrollEntry, ...]
    skipped_count: int


class PayrollEngine:
    """
    Monthly payroll computation and lifecycle.

    Contract:
        Callers pass entries they previously read; every lifecycle operation
        re-reads the stored entry and acts on its current state.

    Guarantees:
        - The disbursed (reconciled) amount of a payment is ``net_salary``.
        - ``mark_as_paid`` followed by ``reverse_payment`` leaves the entry
          unpaid with its advance deduction and advance ids unchanged, and
          every claimed advance ACTIVE with its full amount remaining.

    Non-goals:
        Tax withholding, multi-currency, partial advance deduction.
    """

    def __init__(
        self,
        store: DocumentStore,
        overtime: OvertimeLedger,
        advances: AdvanceLedger,
        clock: Clock | None = None,
        config: PayrollConfig | None = None,
        reconciliation: ReconciliationSink | None = None,
        audit: AuditSink | None = None,
    ):
        self._store = store
        self._overtime = overtime
        self._advances = advances
        self._clock = clock or SystemClock()
        self._config = config or PayrollConfig()
        self._reconciliation = reconciliation or NullReconciliationSink()
        self._audit = audit or NullAuditSink()

    # =========================================================================
    # Processing
    # =========================================================================

    def process(
        self,
        month: str,
        employees: Sequence[Employee],
        adjustments: Mapping[str, EmployeeAdjustments] | None = None,
        actor_id: str | None = None,
    ) -> ProcessResult:
        """
        Create one unpaid payroll entry per eligible employee for ``month``.

        Employees hired after the month are skipped and counted.  Overtime
        entries consumed are linked to their payroll entry; eligible
        advances are claimed for the month.

        Raises:
            FutureMonthError: ``month`` is after the current month.
            AlreadyProcessedError: ``month`` already has a payroll run.
            NoEligibleEmployeesError: every employee was hired after ``month``.
            ValidationError: an employee is listed more than once.
        """
        with LogContext.bind(month=month, actor_id=actor_id):
            self._require_not_future(month)
            if self._is_processed(month):
                raise AlreadyProcessedError(month)

            plan = self._plan(month, employees, adjustments or {})
            if not plan.entries:
                raise NoEligibleEmployeesError(month, plan.skipped_count)

            logger.info("payroll_process_started", extra={
                "employee_count": len(plan.entries),
                "skipped_count": plan.skipped_count,
            })

            ops: list[WriteOp] = []
            for entry in plan.entries:
                ops.append(WriteOp.create(PAYROLL, entry.id, entry.to_document()))
                ops.extend(self._overtime.link(entry.overtime_entry_ids, entry.id))
            # Claimed in one call: an advance id appears at most once per run
            ops.extend(self._advances.claim(
                [advance_id for entry in plan.entries for advance_id in entry.advance_ids],
                month,
            ))
            ops.append(WriteOp.create(PAYROLL_MONTHS, month, {
                "month": month,
                "entry_ids": [e.id for e in plan.entries],
                "processed_at": self._clock.now().isoformat(),
                "processed_by": actor_id,
            }))

            try:
                self._store.batch_write(ops)
            except DocumentExistsError as exc:
                if exc.collection == PAYROLL_MONTHS:
                    logger.warning("payroll_process_lost_race")
                    raise AlreadyProcessedError(month) from exc
                raise

            summary = summarize_entries(month, plan.entries)
            logger.info("payroll_process_completed", extra={
                "entry_count": summary.entry_count,
                "grand_total": str(summary.grand_total),
                "grand_net_total": str(summary.grand_net_total),
                "prorated_count": summary.prorated_count,
                "advance_count": summary.advance_count,
            })
            emit_best_effort(
                "payroll_processed",
                lambda: self._audit.log_activity(
                    "create", AUDIT_MODULE, month, actor_id,
                    f"Payroll processed for {month}",
                    {
                        "month": month,
                        "employee_count": len(plan.entries),
                        "skipped_count": plan.skipped_count,
                    },
                ),
                payroll_month=month,
            )
            return ProcessResult(month, plan.entries, plan.skipped_count)

    def preview(
        self,
        month: str,
        employees: Sequence[Employee],
        adjustments: Mapping[str, EmployeeAdjustments] | None = None,
    ) -> PayrollPreview:
        """
        Compute what ``process`` would create, without writing anything.

        The preview does not refuse an already processed month; it reports
        it through ``already_processed``.

        Raises:
            FutureMonthError: ``month`` is after the current month.
        """
        self._require_not_future(month)
        plan = self._plan(month, employees, adjustments or {})
        return PayrollPreview(
            month=month,
            entries=plan.entries,
            skipped_count=plan.skipped_count,
            summary=summarize_entries(month, plan.entries),
            already_processed=self._is_processed(month),
        )

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def mark_as_paid(self, entry: PayrollEntry, actor_id: str | None = None) -> PayrollEntry:
        """
        Pay an unpaid entry and settle its advances.

        Raises:
            AlreadyPaidError: the entry is already paid.
        """
        current = self.get_entry(entry.id)
        with LogContext.bind(
            month=current.month,
            employee_id=current.employee_id,
            entry_id=current.id,
            actor_id=actor_id,
        ):
            if current.is_paid:
                raise AlreadyPaidError(current.id)
            require_transition(
                PAYROLL_ENTRY_WORKFLOW, "payroll_entry", current.id,
                current.status.value, "mark_paid",
            )

            today = self._clock.today()
            paid = replace(
                current,
                is_paid=True,
                paid_date=today,
                linked_transaction_id=transaction_id(
                    self._config.salary_transaction_prefix, today
                ),
            )
            if paid.net_salary > 0:
                record = ReconciliationRecord(
                    RecordKind.DEBIT,
                    paid.net_salary,
                    paid.employee_name,
                    paid.id,
                    salary_payment_notes(paid),
                    paid.linked_transaction_id,
                    description=salary_payment_description(paid),
                    category=RecordCategory.OPERATING_EXPENSES,
                    sub_category=RecordSubCategory.SALARIES_AND_WAGES,
                )
            else:
                record = None
                logger.info("payroll_reconciliation_skipped", extra={
                    "net_salary": str(paid.net_salary),
                })
            reconcile(
                self._store,
                [
                    WriteOp.update(PAYROLL, current.id, {
                        "is_paid": True,
                        "paid_date": today.isoformat(),
                        "linked_transaction_id": paid.linked_transaction_id,
                    }),
                    *self._advances.settle(current.advance_ids),
                ],
                self._reconciliation,
                record,
                event="salary_paid",
                entry_id=paid.id,
            )

            logger.info("payroll_entry_paid", extra={
                "net_salary": str(paid.net_salary),
                "advance_deduction": str(paid.advance_deduction),
                "transaction_id": paid.linked_transaction_id,
            })
            emit_best_effort(
                "salary_paid_activity",
                lambda: self._audit.log_activity(
                    "update", AUDIT_MODULE, paid.id, actor_id,
                    f"Salary paid: {paid.employee_name}",
                    {
                        "month": paid.month,
                        "net_salary": paid.net_salary,
                        "advance_deduction": paid.advance_deduction,
                        "transaction_id": paid.linked_transaction_id,
                    },
                ),
                entry_id=paid.id,
            )
            return paid

    def reverse_payment(self, entry: PayrollEntry, actor_id: str | None = None) -> PayrollEntry:
        """
        Undo a payment: the entry becomes unpaid and its advances are
        restored to ACTIVE with their full original amount.

        A compensating credit of ``net_salary`` is reconciled, referencing
        the original transaction id.

        Raises:
            NotPaidError: the entry is not paid.
        """
        current = self.get_entry(entry.id)
        with LogContext.bind(
            month=current.month,
            employee_id=current.employee_id,
            entry_id=current.id,
            actor_id=actor_id,
        ):
            if not current.is_paid:
                raise NotPaidError(current.id)
            require_transition(
                PAYROLL_ENTRY_WORKFLOW, "payroll_entry", current.id,
                current.status.value, "reverse",
            )

            original_transaction_id = current.linked_transaction_id
            reversal_transaction_id = transaction_id(
                self._config.reversal_transaction_prefix, self._clock.today()
            )
            reversed_entry = replace(
                current, is_paid=False, paid_date=None, linked_transaction_id=None
            )
            record = None
            if current.net_salary > 0:
                record = ReconciliationRecord(
                    RecordKind.CREDIT,
                    current.net_salary,
                    current.employee_name,
                    f"Reversal-{original_transaction_id}",
                    f"Reversal of salary payment for {current.month}",
                    reversal_transaction_id,
                    description=f"Salary reversal {current.employee_name} - {current.month}",
                    category=RecordCategory.ADJUSTMENTS,
                    sub_category=RecordSubCategory.SALARY_REVERSALS,
                )
            reconcile(
                self._store,
                [
                    WriteOp.update(PAYROLL, current.id, {
                        "is_paid": False,
                        "paid_date": None,
                        "linked_transaction_id": None,
                    }),
                    *self._advances.restore(current.advance_ids),
                ],
                self._reconciliation,
                record,
                event="salary_reversed",
                entry_id=current.id,
            )

            logger.info("payroll_payment_reversed", extra={
                "net_salary": str(current.net_salary),
                "original_transaction_id": original_transaction_id,
                "reversal_transaction_id": reversal_transaction_id,
                "restored_advances": len(current.advance_ids),
            })
            emit_best_effort(
                "salary_reversed_activity",
                lambda: self._audit.log_activity(
                    "update", AUDIT_MODULE, current.id, actor_id,
                    f"Salary payment reversed: {current.employee_name}",
                    {
                        "month": current.month,
                        "net_salary": current.net_salary,
                        "original_transaction_id": original_transaction_id,
                        "reversal_transaction_id": reversal_transaction_id,
                    },
                ),
                entry_id=current.id,
            )
            return reversed_entry

    def delete_entry(self, entry: PayrollEntry, actor_id: str | None = None) -> None:
        """
        Delete one unpaid entry, releasing its advances and unlinking its
        overtime.  Deleting the month's last entry makes the month
        processable again.

        Raises:
            InvalidStateError: the entry is paid; reverse the payment first.
        """
        current = self.get_entry(entry.id)
        with LogContext.bind(
            month=current.month,
            employee_id=current.employee_id,
            entry_id=current.id,
            actor_id=actor_id,
        ):
            if current.is_paid:
                raise InvalidStateError(
                    "payroll_entry", current.id, current.status.value, "delete",
                    "Cannot delete a paid payroll entry; reverse the payment first",
                )
            require_transition(
                PAYROLL_ENTRY_WORKFLOW, "payroll_entry", current.id,
                current.status.value, "delete",
            )
            self._store.batch_write(self._removal_ops([current]))

            logger.info("payroll_entry_deleted", extra={
                "released_advances": len(current.advance_ids),
                "unlinked_overtime": len(current.overtime_entry_ids),
            })
            emit_best_effort(
                "payroll_entry_deleted",
                lambda: self._audit.log_activity(
                    "delete", AUDIT_MODULE, current.id, actor_id,
                    f"Payroll entry deleted: {current.employee_name} - {current.month}",
                ),
                entry_id=current.id,
            )

    def undo_month(self, month: str, actor_id: str | None = None) -> int:
        """
        Delete every entry of an entirely unpaid month.

        The month's entries are read from the store in this call.  Returns
        the number of entries removed.

        Raises:
            ValidationError: the month has no entries.
            PartiallyPaidError: some entries are paid.
        """
        with LogContext.bind(month=month, actor_id=actor_id):
            entries = self.entries_for_month(month)
            if not entries:
                raise ValidationError(f"No payroll entries to undo for {month}", "month")
            paid_count = sum(1 for e in entries if e.is_paid)
            if paid_count:
                raise PartiallyPaidError(month, paid_count)

            ops = [op for entry in entries for op in self._entry_removal_ops(entry)]
            ops.append(WriteOp.delete(PAYROLL_MONTHS, month))
            self._store.batch_write(ops)

            logger.info("payroll_month_undone", extra={
                "entry_count": len(entries),
                "released_advances": sum(len(e.advance_ids) for e in entries),
            })
            emit_best_effort(
                "payroll_month_undone",
                lambda: self._audit.log_activity(
                    "delete", AUDIT_MODULE, month, actor_id,
                    f"Payroll processing undone for {month}",
                    {"month": month, "entry_count": len(entries)},
                ),
                payroll_month=month,
            )
            return len(entries)

    def unpaid_removal_ops(self, employee_id: str) -> list[WriteOp]:
        """Writes that delete one employee's unpaid entries (employee deletion)."""
        unpaid = [e for e in self.entries_for_employee(employee_id) if not e.is_paid]
        return self._removal_ops(unpaid)

    # =========================================================================
    # Queries
    # =========================================================================

    def get_entry(self, entry_id: str) -> PayrollEntry:
        doc = self._store.get(PAYROLL, entry_id)
        if doc is None:
            raise NotFoundError("payroll_entry", entry_id)
        return PayrollEntry.from_document(doc.doc_id, doc.data)

    def entries_for_month(self, month: str) -> list[PayrollEntry]:
        parse_month(month)
        docs = self._store.query(PAYROLL, [eq("month", month)], order_by=["employee_name"])
        return [PayrollEntry.from_document(doc.doc_id, doc.data) for doc in docs]

    def month_summary(self, month: str) -> PayrollMonthSummary:
        return summarize_entries(month, self.entries_for_month(month))

    def entries_for_employee(self, employee_id: str) -> list[PayrollEntry]:
        """One employee's payroll history, newest month first."""
        docs = self._store.query(
            PAYROLL, [eq("employee_id", employee_id)], order_by=["-month"]
        )
        return [PayrollEntry.from_document(doc.doc_id, doc.data) for doc in docs]

    def unpaid_salaries(self, employee_id: str) -> Decimal:
        return sum_amounts(
            e.net_salary for e in self.entries_for_employee(employee_id) if not e.is_paid
        )

    def employee_balance(self, employee_id: str) -> EmployeeBalance:
        return EmployeeBalance(
            employee_id=employee_id,
            unpaid_salaries=self.unpaid_salaries(employee_id),
            outstanding_advances=self._advances.outstanding_balance(employee_id),
        )

    def subscribe_month(
        self,
        month: str,
        on_change: Callable[[list[PayrollEntry]], None],
    ) -> Unsubscribe:
        """Push the month's entries to ``on_change`` now and after every change."""
        parse_month(month)

        def deliver(docs) -> None:
            entries = [PayrollEntry.from_document(d.doc_id, d.data) for d in docs]
            on_change(sorted(entries, key=lambda e: e.employee_name))

        return self._store.subscribe(PAYROLL, [eq("month", month)], deliver)

    # =========================================================================
    # Internals
    # =========================================================================

    def _require_not_future(self, month: str) -> None:
        today = self._clock.today()
        if is_future_month(month, today):
            raise FutureMonthError(month, current_month(today))

    def _is_processed(self, month: str) -> bool:
        if self._store.get(PAYROLL_MONTHS, month) is not None:
            return True
        # Entries without a marker still mark the month as processed
        return bool(self._store.query(PAYROLL, [eq("month", month)], limit=1))

    def _plan(
        self,
        month: str,
        employees: Sequence[Employee],
        adjustments: Mapping[str, EmployeeAdjustments],
    ) -> _Plan:
        overtime_by_employee: dict[str, list[OvertimeEntry]] = {}
        for ot in self._overtime.entries_for_month(month):
            if not ot.is_locked:
                overtime_by_employee.setdefault(ot.employee_id, []).append(ot)

        seen: set[str] = set()
        for employee in employees:
            if employee.id in seen:
                raise ValidationError(
                    f"Employee {employee.name} is listed more than once", "employees"
                )
            seen.add(employee.id)

        now = self._clock.now()
        entries: list[PayrollEntry] = []
        skipped = 0
        for employee in employees:
            if not is_eligible_for_month(employee.hire_date, month):
                skipped += 1
                continue

            proration = compute_proration(employee.current_salary, employee.hire_date, month)

            overtime_entries = (
                overtime_by_employee.get(employee.id, [])
                if employee.overtime_eligible else []
            )
            overtime_hours = sum_hours(ot.hours for ot in overtime_entries)
            overtime_pay = compute_overtime_pay(
                employee.current_salary,
                overtime_hours,
                self._config.overtime_hours_divisor,
                self._config.overtime_multiplier,
            )

            extra = adjustments.get(employee.id, _NO_ADJUSTMENTS)
            bonuses = extra.bonuses
            deductions = extra.deductions
            total_salary = compute_total_salary(
                proration.base_salary,
                overtime_pay,
                sum_amounts(b.amount for b in bonuses),
                sum_amounts(d.amount for d in deductions),
            )

            advances = self._advances.eligible_for_deduction(employee.id)
            advance_deduction = sum_amounts(a.remaining_amount for a in advances)

            entries.append(PayrollEntry(
                id=new_id(),
                employee_id=employee.id,
                employee_name=employee.name,
                month=month,
                base_salary=proration.base_salary,
                full_monthly_salary=employee.current_salary,
                days_worked=proration.days_worked,
                days_in_month=proration.days_in_month,
                is_prorated=proration.is_prorated,
                overtime_hours=overtime_hours,
                overtime_pay=overtime_pay,
                overtime_entry_ids=tuple(ot.id for ot in overtime_entries),
                bonuses=bonuses,
                deductions=deductions,
                advance_deduction=advance_deduction,
                advance_ids=tuple(a.id for a in advances),
                total_salary=total_salary,
                net_salary=compute_net_salary(total_salary, advance_deduction),
                notes=build_entry_notes(proration, extra.notes),
                created_at=now,
            ))
        return _Plan(tuple(entries), skipped)

    def _entry_removal_ops(self, entry: PayrollEntry) -> list[WriteOp]:
        return [
            WriteOp.delete(PAYROLL, entry.id),
            *self._advances.release(entry.advance_ids),
            *self._overtime.unlink(entry.overtime_entry_ids),
        ]

    def _removal_ops(self, entries: Sequence[PayrollEntry]) -> list[WriteOp]:
        """
        Entry removal writes plus month marker maintenance.

        A marker whose last entry is removed is deleted so the month can be
        processed again.
        """
        ops = [op for entry in entries for op in self._entry_removal_ops(entry)]
        removed_by_month: dict[str, set[str]] = {}
        for entry in entries:
            removed_by_month.setdefault(entry.month, set()).add(entry.id)
        for month, removed in sorted(removed_by_month.items()):
            marker = self._store.get(PAYROLL_MONTHS, month)
            if marker is None:
                continue
            remaining = [i for i in marker.data.get("entry_ids", []) if i not in removed]
            if remaining:
                ops.append(WriteOp.update(PAYROLL_MONTHS, month, {"entry_ids": remaining}))
            else:
                ops.append(WriteOp.delete(PAYROLL_MONTHS, month))
        return ops
