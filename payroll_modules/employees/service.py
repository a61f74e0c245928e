"""
Employee Registry (``payroll_modules.employees.service``).

Responsibility
--------------
Creates, edits and deletes employees.  A salary edit appends a
``SalaryHistory`` row in the same batch as the employee update.  Deleting an
employee removes their unpaid payroll entries (releasing the advances and
overtime those entries claimed) and their salary history; paid payroll
entries are retained for audit.

Architecture position
---------------------
**Modules layer**.  Depends on the kernel store and on a ``PayrollCleanup``
collaborator (the payroll engine) for the removal writes of unpaid entries,
so that the entry/advance/overtime link bookkeeping lives in one place.

Failure modes
-------------
* ``ValidationError`` for bad input, before any write.
* ``NotFoundError`` for an unknown employee id.
* ``StoreError`` subclasses propagate; nothing is partially applied.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date
from decimal import Decimal
from typing import Protocol

from payroll_kernel.domain.amounts import AmountLike, percentage_change, round_currency
from payroll_kernel.domain.clock import Clock, SystemClock
from payroll_kernel.domain.identifiers import new_id
from payroll_kernel.exceptions import NotFoundError
from payroll_kernel.logging_config import get_logger
from payroll_kernel.sinks import AuditSink, NullAuditSink, emit_best_effort
from payroll_kernel.store.base import DocumentStore, WriteKind, WriteOp, eq
from payroll_modules._documents import EMPLOYEES, PAYROLL, SALARY_HISTORY
from payroll_modules._validation import require_positive, require_text
from payroll_modules.employees.models import Employee, SalaryHistory

logger = get_logger("modules.employees.service")

AUDIT_MODULE = "employees"


class PayrollCleanup(Protocol):
    def unpaid_removal_ops(self, employee_id: str) -> list[WriteOp]:
        """Writes that delete the employee's unpaid payroll entries."""
        ...


@dataclass(frozen=True)
class DeleteEmployeeResult:
    employee_id: str
    removed_payroll_entries: int
    removed_history_records: int


class EmployeeRegistry:
    """
    Employee records and salary history.

    Contract:
        Every public mutation is one ``batch_write``.

    Guarantees:
        - A salary change and its ``SalaryHistory`` row commit together.
        - ``delete_employee`` never deletes a paid payroll entry.
    """

    def __init__(
        self,
        store: DocumentStore,
        payroll: PayrollCleanup,
        clock: Clock | None = None,
        audit: AuditSink | None = None,
    ):
        self._store = store
        self._payroll = payroll
        self._clock = clock or SystemClock()
        self._audit = audit or NullAuditSink()

    # =========================================================================
    # Mutations
    # =========================================================================

    def create_employee(
        self,
        name: str,
        current_salary: AmountLike,
        hire_date: date,
        overtime_eligible: bool = False,
        position: str = "",
        actor_id: str | None = None,
    ) -> Employee:
        employee = Employee(
            id=new_id(),
            name=require_text(name, "name"),
            current_salary=round_currency(require_positive(current_salary, "current_salary")),
            overtime_eligible=overtime_eligible,
            hire_date=hire_date,
            position=position.strip(),
            created_at=self._clock.now(),
        )
        self._store.batch_write([
            WriteOp.create(EMPLOYEES, employee.id, employee.to_document()),
        ])

        logger.info("employee_created", extra={
            "employee_id": employee.id,
            "salary": str(employee.current_salary),
            "hire_date": employee.hire_date,
            "overtime_eligible": employee.overtime_eligible,
        })
        emit_best_effort(
            "employee_created",
            lambda: self._audit.log_activity(
                "create", AUDIT_MODULE, employee.id, actor_id,
                f"Employee added: {employee.name}",
                {"salary": employee.current_salary, "position": employee.position},
            ),
            employee_id=employee.id,
        )
        return employee

    def update_employee(
        self,
        employee_id: str,
        *,
        name: str | None = None,
        current_salary: AmountLike | None = None,
        hire_date: date | None = None,
        overtime_eligible: bool | None = None,
        position: str | None = None,
        actor_id: str | None = None,
    ) -> Employee:
        """
        Apply the given field changes.

        A changed salary appends a ``SalaryHistory`` row effective today,
        noted "Salary increase" or "Salary decrease".
        """
        current = self.get_employee(employee_id)
        changes: dict = {}
        if name is not None:
            changes["name"] = require_text(name, "name")
        if current_salary is not None:
            changes["current_salary"] = round_currency(
                require_positive(current_salary, "current_salary")
            )
        if hire_date is not None:
            changes["hire_date"] = hire_date
        if overtime_eligible is not None:
            changes["overtime_eligible"] = overtime_eligible
        if position is not None:
            changes["position"] = position.strip()
        updated = replace(current, **changes)

        ops = [WriteOp.update(EMPLOYEES, employee_id, updated.to_document())]
        history: SalaryHistory | None = None
        if updated.current_salary != current.current_salary:
            history = self._salary_history_row(current, updated)
            ops.append(WriteOp.create(SALARY_HISTORY, history.id, history.to_document()))

        self._store.batch_write(ops)

        logger.info("employee_updated", extra={
            "employee_id": employee_id,
            "fields": sorted(changes),
            "salary_changed": history is not None,
        })
        if history is not None:
            emit_best_effort(
                "employee_salary_changed",
                lambda: self._audit.log_activity(
                    "update", AUDIT_MODULE, employee_id, actor_id,
                    f"Salary change: {updated.name} -> {updated.current_salary}",
                    {
                        "old_salary": history.old_salary,
                        "new_salary": history.new_salary,
                        "increment_percentage": history.increment_percentage,
                    },
                ),
                employee_id=employee_id,
            )
        else:
            emit_best_effort(
                "employee_updated",
                lambda: self._audit.log_activity(
                    "update", AUDIT_MODULE, employee_id, actor_id,
                    f"Employee details updated: {updated.name}",
                    {"fields": sorted(changes)},
                ),
                employee_id=employee_id,
            )
        return updated

    def delete_employee(
        self, employee_id: str, actor_id: str | None = None
    ) -> DeleteEmployeeResult:
        """
        Delete the employee, their unpaid payroll entries and salary history.

        Paid payroll entries stay.  Advances and overtime entries stay as
        records; those claimed by a removed payroll entry are released.
        """
        employee = self.get_employee(employee_id)
        payroll_ops = self._payroll.unpaid_removal_ops(employee_id)
        history_ids = [
            doc.doc_id
            for doc in self._store.query(SALARY_HISTORY, [eq("employee_id", employee_id)])
        ]
        ops = [
            *payroll_ops,
            *(WriteOp.delete(SALARY_HISTORY, doc_id) for doc_id in history_ids),
            WriteOp.delete(EMPLOYEES, employee_id),
        ]
        self._store.batch_write(ops)

        result = DeleteEmployeeResult(
            employee_id=employee_id,
            removed_payroll_entries=sum(
                1 for op in payroll_ops
                if op.collection == PAYROLL and op.kind == WriteKind.DELETE
            ),
            removed_history_records=len(history_ids),
        )
        logger.info("employee_deleted", extra={
            "employee_id": employee_id,
            "removed_payroll_entries": result.removed_payroll_entries,
            "removed_history_records": result.removed_history_records,
        })
        emit_best_effort(
            "employee_deleted",
            lambda: self._audit.log_activity(
                "delete", AUDIT_MODULE, employee_id, actor_id,
                f"Employee deleted: {employee.name}",
                {"removed_payroll_entries": result.removed_payroll_entries},
            ),
            employee_id=employee_id,
        )
        return result

    # =========================================================================
    # Queries
    # =========================================================================

    def get_employee(self, employee_id: str) -> Employee:
        doc = self._store.get(EMPLOYEES, employee_id)
        if doc is None:
            raise NotFoundError("employee", employee_id)
        return Employee.from_document(doc.doc_id, doc.data)

    def list_employees(self) -> list[Employee]:
        """All employees, ordered by name."""
        return [
            Employee.from_document(doc.doc_id, doc.data)
            for doc in self._store.query(EMPLOYEES, order_by=["name"])
        ]

    def salary_history(self, employee_id: str) -> list[SalaryHistory]:
        """Salary changes for one employee, newest first."""
        docs = self._store.query(
            SALARY_HISTORY,
            [eq("employee_id", employee_id)],
            order_by=["-created_at"],
        )
        return [SalaryHistory.from_document(doc.doc_id, doc.data) for doc in docs]

    # =========================================================================
    # Internals
    # =========================================================================

    def _salary_history_row(self, old: Employee, new: Employee) -> SalaryHistory:
        increment: Decimal = percentage_change(old.current_salary, new.current_salary)
        return SalaryHistory(
            id=new_id(),
            employee_id=new.id,
            employee_name=new.name,
            old_salary=old.current_salary,
            new_salary=new.current_salary,
            increment_percentage=increment,
            effective_date=self._clock.today(),
            notes="Salary increase" if increment > 0 else "Salary decrease",
            created_at=self._clock.now(),
        )
