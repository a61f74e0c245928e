"""
Reconciliation and audit sinks.

Responsibility:
    Secondary effects of payroll operations: the bookkeeping ledger and
    payment journal records produced when money moves (advance disbursed,
    salary paid, salary payment reversed), and the activity log.

Architecture position:
    Kernel.  Services receive sinks by constructor injection.

Invariants enforced:
    - A transactional reconciliation sink (one that writes into the same
      document store) contributes its writes through ``ops_for`` to the
      caller's batch.  The ledger record then commits or fails together
      with the payroll change it records.
    - Non-transactional sinks (external ledgers, the audit log) are called
      through ``emit_best_effort`` only after the primary batch committed.
      Their failure never rolls back the primary operation; every swallowed
      failure is logged at WARNING with the full record so it can be
      replayed.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any

from payroll_kernel.domain.amounts import round_currency
from payroll_kernel.domain.clock import Clock, SystemClock
from payroll_kernel.domain.identifiers import new_id
from payroll_kernel.logging_config import get_logger
from payroll_kernel.store.base import DocumentStore, WriteOp

logger = get_logger("sinks")

LEDGER_COLLECTION = "ledger"
PAYMENTS_COLLECTION = "payments"
ACTIVITY_LOG_COLLECTION = "activity_logs"


class RecordKind(str, Enum):
    """Direction of cash relative to the business."""

    DEBIT = "debit"  # money out
    CREDIT = "credit"  # money back in


class RecordCategory(str, Enum):
    OPERATING_EXPENSES = "operating_expenses"
    ADJUSTMENTS = "adjustments"


class RecordSubCategory(str, Enum):
    SALARIES_AND_WAGES = "salaries_and_wages"
    SALARY_REVERSALS = "salary_reversals"
    EMPLOYEE_ADVANCES = "employee_advances"


@dataclass(frozen=True)
class ReconciliationRecord:
    kind: RecordKind
    amount: Decimal
    party_name: str
    reference_id: str
    notes: str
    transaction_id: str | None = None
    description: str = ""
    category: RecordCategory = RecordCategory.OPERATING_EXPENSES
    sub_category: RecordSubCategory = RecordSubCategory.SALARIES_AND_WAGES

    def __post_init__(self) -> None:
        if self.amount < 0:
            raise ValueError(f"Reconciliation amount cannot be negative: {self.amount}")


@dataclass(frozen=True)
class ActivityRecord:
    action: str
    module: str
    target_id: str
    actor_id: str | None
    description: str
    metadata: Mapping[str, Any] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Reconciliation
# ---------------------------------------------------------------------------


class ReconciliationSink(ABC):
    """
    External bookkeeping collaborator.

    A sink with ``transactional = True`` writes into the caller's document
    store: callers put ``ops_for(record)`` in their own batch instead of
    calling ``record`` after commit.
    """

    transactional = False

    @abstractmethod
    def record(
        self,
        kind: RecordKind,
        amount: Decimal,
        party_name: str,
        reference_id: str,
        notes: str,
        transaction_id: str | None = None,
        *,
        description: str = "",
        category: RecordCategory = RecordCategory.OPERATING_EXPENSES,
        sub_category: RecordSubCategory = RecordSubCategory.SALARIES_AND_WAGES,
    ) -> None:
        ...

    def ops_for(self, record: ReconciliationRecord) -> list[WriteOp]:
        """Writes that persist ``record`` as part of another batch."""
        raise NotImplementedError(
            f"{type(self).__name__} is not a transactional reconciliation sink"
        )

    def emit(self, record: ReconciliationRecord) -> None:
        self.record(
            record.kind, record.amount, record.party_name, record.reference_id,
            record.notes, record.transaction_id,
            description=record.description,
            category=record.category,
            sub_category=record.sub_category,
        )


class NullReconciliationSink(ReconciliationSink):
    """Writes nothing; keeps records in memory for inspection."""

    def __init__(self) -> None:
        self.records: list[ReconciliationRecord] = []

    def record(self, kind, amount, party_name, reference_id, notes,
               transaction_id=None, *, description="",
               category=RecordCategory.OPERATING_EXPENSES,
               sub_category=RecordSubCategory.SALARIES_AND_WAGES) -> None:
        self.records.append(
            ReconciliationRecord(
                kind, amount, party_name, reference_id, notes, transaction_id,
                description, category, sub_category,
            )
        )


class StoreReconciliationSink(ReconciliationSink):
    """
    Writes a ``ledger`` document and a ``payments`` document per record.

    Both documents always share a batch, so the ledger and the payment
    journal never disagree.  Payroll operations include them in their own
    batch through ``ops_for``.
    """

    transactional = True

    def __init__(self, store: DocumentStore, clock: Clock | None = None):
        self._store = store
        self._clock = clock or SystemClock()

    def record(self, kind, amount, party_name, reference_id, notes,
               transaction_id=None, *, description="",
               category=RecordCategory.OPERATING_EXPENSES,
               sub_category=RecordSubCategory.SALARIES_AND_WAGES) -> None:
        rec = ReconciliationRecord(
            kind, amount, party_name, reference_id, notes,
            transaction_id, description, category, sub_category,
        )
        self._store.batch_write(self.ops_for(rec))
        logger.info(
            "reconciliation_recorded",
            extra={
                "kind": rec.kind.value,
                "amount": str(rec.amount),
                "transaction_id": rec.transaction_id,
                "reference_id": rec.reference_id,
            },
        )

    def ops_for(self, record: ReconciliationRecord) -> list[WriteOp]:
        now = self._clock.now()
        amount = str(round_currency(record.amount))
        ledger_doc = {
            "transaction_id": record.transaction_id,
            "description": record.description,
            "type": "expense" if record.kind == RecordKind.DEBIT else "income",
            "amount": amount,
            "category": record.category.value,
            "sub_category": record.sub_category.value,
            "associated_party": record.party_name,
            "reference_id": record.reference_id,
            "date": now.date().isoformat(),
            "notes": record.notes,
            "created_at": now.isoformat(),
        }
        payment_doc = {
            "client_name": record.party_name,
            "amount": amount,
            "type": "disbursement" if record.kind == RecordKind.DEBIT else "receipt",
            "linked_transaction_id": record.transaction_id,
            "reference_id": record.reference_id,
            "date": now.date().isoformat(),
            "notes": record.notes,
            "category": record.category.value,
            "sub_category": record.sub_category.value,
            "created_at": now.isoformat(),
        }
        return [
            WriteOp.set(LEDGER_COLLECTION, new_id(), ledger_doc),
            WriteOp.set(PAYMENTS_COLLECTION, new_id(), payment_doc),
        ]


def reconcile(
    store: DocumentStore,
    ops: list[WriteOp],
    sink: ReconciliationSink,
    record: ReconciliationRecord | None,
    *,
    event: str,
    **context: Any,
) -> None:
    """
    Write ``ops`` to ``store`` in one batch and reconcile ``record``.

    A transactional sink's writes join ``ops`` and commit atomically with
    them.  Any other sink is called best-effort once ``ops`` committed.
    ``record`` may be None when there is nothing to reconcile.
    """
    if record is None:
        store.batch_write(ops)
        return
    if sink.transactional:
        store.batch_write([*ops, *sink.ops_for(record)])
        logger.info(
            "reconciliation_recorded",
            extra={
                "kind": record.kind.value,
                "amount": str(record.amount),
                "transaction_id": record.transaction_id,
                "reference_id": record.reference_id,
            },
        )
        return
    store.batch_write(ops)
    emit_best_effort(
        event,
        lambda: sink.emit(record),
        amount=record.amount,
        transaction_id=record.transaction_id,
        **context,
    )


# ---------------------------------------------------------------------------
# Audit
# ---------------------------------------------------------------------------


class AuditSink(ABC):

    @abstractmethod
    def log_activity(
        self,
        action: str,
        module: str,
        target_id: str,
        actor_id: str | None,
        description: str,
        metadata: Mapping[str, Any] | None = None,
    ) -> None:
        ...


class NullAuditSink(AuditSink):
    def __init__(self) -> None:
        self.activities: list[ActivityRecord] = []

    def log_activity(self, action, module, target_id, actor_id, description,
                     metadata=None) -> None:
        self.activities.append(
            ActivityRecord(action, module, target_id, actor_id, description,
                           dict(metadata or {}))
        )


class StoreAuditSink(AuditSink):
    """Appends ``activity_logs`` documents."""

    def __init__(self, store: DocumentStore, clock: Clock | None = None):
        self._store = store
        self._clock = clock or SystemClock()

    def log_activity(self, action, module, target_id, actor_id, description,
                     metadata=None) -> None:
        self._store.batch_write([
            WriteOp.set(ACTIVITY_LOG_COLLECTION, new_id(), {
                "action": action,
                "module": module,
                "target_id": target_id,
                "actor_id": actor_id,
                "description": description,
                "metadata": _json_safe(dict(metadata or {})),
                "created_at": self._clock.now().isoformat(),
            }),
        ])


def _json_safe(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {k: _json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_json_safe(v) for v in value]
    return value


# ---------------------------------------------------------------------------
# Post-commit emission
# ---------------------------------------------------------------------------


def emit_best_effort(event: str, emit: Callable[[], None], **context: Any) -> bool:
    """
    Run a sink call after the primary batch committed.

    Failures are logged with ``context`` and swallowed.  Returns True if the
    call succeeded.
    """
    try:
        emit()
    except Exception:
        logger.warning(
            "sink_emit_failed",
            extra={"sink_event": event, **_json_safe(context)},
            exc_info=True,
        )
        return False
    return True
