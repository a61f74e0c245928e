"""
Advance Ledger (``payroll_modules.advances.service``).

Responsibility
--------------
Disburses and cancels cash advances and tracks what each employee still
owes.  The payroll engine drives the claim protocol:

    claim    ACTIVE, unclaimed  -> linked_payroll_month = month
    release  claimed            -> linked_payroll_month cleared
    settle   ACTIVE             -> FULLY_DEDUCTED, remaining 0
    restore  FULLY_DEDUCTED     -> ACTIVE, remaining = amount

Each protocol method returns store writes for the engine's batch; none of
them commits anything.

Invariants enforced
-------------------
* Only ACTIVE, unclaimed advances are eligible for deduction, so an advance
  cannot be deducted by two payroll months.
* ``restore`` repopulates ``remaining_amount`` from the stored ``amount``.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import replace
from datetime import date
from decimal import Decimal

from payroll_config.schema import PayrollConfig
from payroll_kernel.domain.amounts import AmountLike, round_currency, sum_amounts
from payroll_kernel.domain.clock import Clock, SystemClock
from payroll_kernel.domain.identifiers import new_id, transaction_id
from payroll_kernel.domain.workflow import require_transition
from payroll_kernel.exceptions import InvalidStateError, NotFoundError
from payroll_kernel.logging_config import get_logger
from payroll_kernel.sinks import (
    AuditSink,
    NullAuditSink,
    NullReconciliationSink,
    ReconciliationSink,
    ReconciliationRecord,
    RecordCategory,
    RecordKind,
    RecordSubCategory,
    emit_best_effort,
    reconcile,
)
from payroll_kernel.store.base import DocumentStore, WriteOp, eq
from payroll_modules._documents import ADVANCES
from payroll_modules._validation import require_not_future, require_positive
from payroll_modules.advances.models import Advance, AdvanceStatus
from payroll_modules.advances.workflows import ADVANCE_WORKFLOW
from payroll_modules.employees.models import Employee

logger = get_logger("modules.advances.service")

AUDIT_MODULE = "advances"


class AdvanceLedger:
    """
    Employee cash advances.

    Contract:
        ``create_advance`` and ``cancel_advance`` each commit one batch.
        The disbursement reconciliation record is written after commit and
        may fail without undoing the advance.
    """

    def __init__(
        self,
        store: DocumentStore,
        clock: Clock | None = None,
        config: PayrollConfig | None = None,
        reconciliation: ReconciliationSink | None = None,
        audit: AuditSink | None = None,
    ):
        self._store = store
        self._clock = clock or SystemClock()
        self._config = config or PayrollConfig()
        self._reconciliation = reconciliation or NullReconciliationSink()
        self._audit = audit or NullAuditSink()

    # =========================================================================
    # Mutations
    # =========================================================================

    def create_advance(
        self,
        employee: Employee,
        amount: AmountLike,
        day: date,
        notes: str = "",
        actor_id: str | None = None,
    ) -> Advance:
        """
        Disburse an advance to ``employee``.

        Raises:
            ValidationError: amount <= 0 or ``day`` in the future.
        """
        amount = round_currency(require_positive(amount, "amount"))
        require_not_future(day, self._clock.today())

        advance = Advance(
            id=new_id(),
            employee_id=employee.id,
            employee_name=employee.name,
            amount=amount,
            remaining_amount=amount,
            status=AdvanceStatus.ACTIVE,
            date=day,
            linked_transaction_id=transaction_id(
                self._config.advance_transaction_prefix, self._clock.today()
            ),
            notes=notes.strip(),
            created_at=self._clock.now(),
        )
        reconcile(
            self._store,
            [WriteOp.create(ADVANCES, advance.id, advance.to_document())],
            self._reconciliation,
            ReconciliationRecord(
                RecordKind.DEBIT,
                amount,
                employee.name,
                advance.id,
                advance.notes or f"Advance to {employee.name}",
                advance.linked_transaction_id,
                description=f"Advance {employee.name}",
                category=RecordCategory.OPERATING_EXPENSES,
                sub_category=RecordSubCategory.EMPLOYEE_ADVANCES,
            ),
            event="advance_disbursed",
            advance_id=advance.id,
        )

        logger.info("advance_created", extra={
            "advance_id": advance.id,
            "employee_id": employee.id,
            "amount": str(amount),
            "transaction_id": advance.linked_transaction_id,
        })
        emit_best_effort(
            "advance_created",
            lambda: self._audit.log_activity(
                "create", AUDIT_MODULE, advance.id, actor_id,
                f"Advance disbursed: {employee.name} - {amount} {self._config.currency}",
                {"amount": amount, "employee_id": employee.id},
            ),
            advance_id=advance.id,
        )
        return advance

    def cancel_advance(self, advance: Advance, actor_id: str | None = None) -> Advance:
        """
        Cancel an ACTIVE advance that no payroll run has claimed.

        Raises:
            InvalidStateError: the advance is not ACTIVE, or it is claimed by
                an unpaid payroll month (delete or undo that payroll first).
        """
        current = self.get_advance(advance.id)
        require_transition(
            ADVANCE_WORKFLOW, "advance", current.id, current.status.value, "cancel"
        )
        if current.is_claimed:
            raise InvalidStateError(
                "advance", current.id, current.status.value, "cancel",
                f"Advance {current.id} is claimed by payroll month "
                f"{current.linked_payroll_month}; delete that payroll entry first",
            )
        self._store.batch_write([
            WriteOp.update(ADVANCES, current.id, {"status": AdvanceStatus.CANCELLED.value}),
        ])

        logger.info("advance_cancelled", extra={
            "advance_id": current.id,
            "employee_id": current.employee_id,
            "amount": str(current.amount),
        })
        emit_best_effort(
            "advance_cancelled",
            lambda: self._audit.log_activity(
                "update", AUDIT_MODULE, current.id, actor_id,
                f"Advance cancelled: {current.employee_name}",
            ),
            advance_id=current.id,
        )
        return replace(current, status=AdvanceStatus.CANCELLED)

    # =========================================================================
    # Claim protocol (payroll engine only)
    # =========================================================================

    def claim(self, advance_ids: Iterable[str], month: str) -> list[WriteOp]:
        """
        Writes that claim each advance for ``month``.

        Raises:
            InvalidStateError: an advance is not ACTIVE, already claimed, or
                listed twice.
        """
        ops = []
        seen: set[str] = set()
        for advance in self._load_all(advance_ids):
            if advance.id in seen:
                raise InvalidStateError(
                    "advance", advance.id, advance.status.value, "claim",
                    f"Advance {advance.id} is claimed twice in one payroll run",
                )
            seen.add(advance.id)
            require_transition(
                ADVANCE_WORKFLOW, "advance", advance.id, advance.status.value, "claim"
            )
            if advance.is_claimed:
                raise InvalidStateError(
                    "advance", advance.id, advance.status.value, "claim",
                    f"Advance {advance.id} is already claimed by "
                    f"{advance.linked_payroll_month}",
                )
            ops.append(WriteOp.update(ADVANCES, advance.id, {"linked_payroll_month": month}))
        return ops

    def release(self, advance_ids: Iterable[str]) -> list[WriteOp]:
        return [
            WriteOp.update(ADVANCES, advance_id, {"linked_payroll_month": None})
            for advance_id in advance_ids
        ]

    def settle(self, advance_ids: Iterable[str]) -> list[WriteOp]:
        """Writes that zero each advance and mark it FULLY_DEDUCTED."""
        ops = []
        for advance in self._load_all(advance_ids):
            require_transition(
                ADVANCE_WORKFLOW, "advance", advance.id, advance.status.value, "settle"
            )
            ops.append(WriteOp.update(ADVANCES, advance.id, {
                "remaining_amount": str(round_currency(0)),
                "status": AdvanceStatus.FULLY_DEDUCTED.value,
            }))
        return ops

    def restore(self, advance_ids: Iterable[str]) -> list[WriteOp]:
        """Writes that return each advance to ACTIVE with its full original amount."""
        ops = []
        for advance in self._load_all(advance_ids):
            require_transition(
                ADVANCE_WORKFLOW, "advance", advance.id, advance.status.value, "restore"
            )
            ops.append(WriteOp.update(ADVANCES, advance.id, {
                "remaining_amount": str(advance.amount),
                "status": AdvanceStatus.ACTIVE.value,
            }))
        return ops

    # =========================================================================
    # Queries
    # =========================================================================

    def get_advance(self, advance_id: str) -> Advance:
        doc = self._store.get(ADVANCES, advance_id)
        if doc is None:
            raise NotFoundError("advance", advance_id)
        return Advance.from_document(doc.doc_id, doc.data)

    def advances_for_employee(self, employee_id: str) -> list[Advance]:
        """Every advance of one employee, newest first."""
        docs = self._store.query(
            ADVANCES,
            [eq("employee_id", employee_id)],
            order_by=["-date", "-created_at"],
            limit=self._config.query_limit,
        )
        return [Advance.from_document(doc.doc_id, doc.data) for doc in docs]

    def eligible_for_deduction(self, employee_id: str) -> list[Advance]:
        """ACTIVE advances no payroll month has claimed, oldest first."""
        return self._unclaimed(
            [eq("employee_id", employee_id)], order_by=["date", "created_at"]
        )

    def outstanding_balance(self, employee_id: str) -> Decimal:
        """
        What the employee still owes on advances no payroll run has claimed.

        A claimed advance is already subtracted from its unpaid payroll
        entry's net salary, so it is not counted again here.
        """
        return sum_amounts(
            a.remaining_amount
            for a in self._unclaimed([eq("employee_id", employee_id)])
        )

    def total_outstanding(self) -> Decimal:
        return sum_amounts(a.remaining_amount for a in self._unclaimed([]))

    # =========================================================================
    # Internals
    # =========================================================================

    def _unclaimed(self, filters: list, order_by: Sequence[str] = ()) -> list[Advance]:
        """ACTIVE advances without a payroll month claim."""
        docs = self._store.query(
            ADVANCES,
            [
                *filters,
                eq("status", AdvanceStatus.ACTIVE.value),
                eq("linked_payroll_month", None),
            ],
            order_by=order_by,
        )
        return [Advance.from_document(doc.doc_id, doc.data) for doc in docs]

    def _load_all(self, advance_ids: Iterable[str]) -> list[Advance]:
        return [self.get_advance(advance_id) for advance_id in advance_ids]
