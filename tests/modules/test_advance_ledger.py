"""
Tests for the Advance Ledger.

Verifies:
- Disbursement validation and its reconciliation record
- Cancellation rules
- The claim protocol keeps an advance to one payroll month
- Outstanding balances
"""

from datetime import date
from decimal import Decimal

import pytest

from payroll_kernel.exceptions import (
    DocumentNotFoundError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from payroll_kernel.sinks import (
    LEDGER_COLLECTION,
    PAYMENTS_COLLECTION,
    ReconciliationSink,
    RecordKind,
    RecordSubCategory,
    StoreReconciliationSink,
)
from payroll_kernel.store.base import WriteOp
from payroll_modules.advances.models import Advance, AdvanceStatus
from payroll_modules.advances.service import AdvanceLedger


@pytest.fixture
def employee(create_employee):
    return create_employee("Ahmad Khalil", hire_date=date(2024, 6, 1))


class TestCreateAdvance:

    def test_create(self, advances, employee, reconciliation):
        advance = advances.create_advance(employee, "300", date(2025, 1, 5), "Rent")

        assert advance.amount == Decimal("300.00")
        assert advance.remaining_amount == Decimal("300.00")
        assert advance.status == AdvanceStatus.ACTIVE
        assert advance.is_eligible_for_deduction
        assert advance.linked_transaction_id.startswith("ADV-20250615-")
        assert advances.get_advance(advance.id) == advance

        record = reconciliation.records[-1]
        assert record.kind == RecordKind.DEBIT
        assert record.amount == Decimal("300.00")
        assert record.sub_category == RecordSubCategory.EMPLOYEE_ADVANCES
        assert record.reference_id == advance.id
        assert record.transaction_id == advance.linked_transaction_id

    @pytest.mark.parametrize("amount", ["0", "-5", "lots"])
    def test_invalid_amount(self, advances, employee, amount):
        with pytest.raises(ValidationError):
            advances.create_advance(employee, amount, date(2025, 1, 5))
        assert advances.advances_for_employee(employee.id) == []

    def test_future_date(self, advances, employee):
        with pytest.raises(ValidationError):
            advances.create_advance(employee, "100", date(2025, 7, 1))

    def test_external_sink_failure_does_not_undo_advance(
        self, store, clock, config, employee, captured_logs
    ):
        class BrokenSink(ReconciliationSink):
            def record(self, *args, **kwargs):
                raise RuntimeError("ledger offline")

        ledger = AdvanceLedger(store, clock, config, BrokenSink())
        advance = ledger.create_advance(employee, "50", date(2025, 1, 5))

        assert ledger.get_advance(advance.id).status == AdvanceStatus.ACTIVE
        failures = [r for r in captured_logs() if r["message"] == "sink_emit_failed"]
        assert failures[0]["sink_event"] == "advance_disbursed"
        assert failures[0]["advance_id"] == advance.id

    def test_store_ledger_records_disbursement_in_same_batch(
        self, store, clock, config, employee
    ):
        ledger = AdvanceLedger(store, clock, config, StoreReconciliationSink(store, clock))
        advance = ledger.create_advance(employee, "50", date(2025, 1, 5))

        [record] = store.query(LEDGER_COLLECTION)
        assert record.data["reference_id"] == advance.id
        assert record.data["amount"] == "50.00"
        assert len(store.query(PAYMENTS_COLLECTION)) == 1

    def test_failed_ledger_write_rolls_back_advance(self, store, clock, config, employee):
        class RejectingLedger(StoreReconciliationSink):
            def ops_for(self, record):
                return [WriteOp.update(LEDGER_COLLECTION, "closed-book", {"x": 1})]

        ledger = AdvanceLedger(store, clock, config, RejectingLedger(store, clock))
        with pytest.raises(DocumentNotFoundError):
            ledger.create_advance(employee, "50", date(2025, 1, 5))

        assert ledger.advances_for_employee(employee.id) == []
        assert store.query(LEDGER_COLLECTION) == []


class TestCancelAdvance:

    def test_cancel(self, advances, employee):
        advance = advances.create_advance(employee, "100", date(2025, 1, 5))
        cancelled = advances.cancel_advance(advance)
        assert cancelled.status == AdvanceStatus.CANCELLED
        assert advances.get_advance(advance.id).status == AdvanceStatus.CANCELLED
        assert advances.eligible_for_deduction(employee.id) == []

    def test_cancel_twice(self, advances, employee):
        advance = advances.create_advance(employee, "100", date(2025, 1, 5))
        advances.cancel_advance(advance)
        with pytest.raises(InvalidStateError):
            advances.cancel_advance(advance)

    def test_claimed_advance_cannot_be_cancelled(self, advances, payroll, employee):
        advance = advances.create_advance(employee, "100", date(2025, 1, 5))
        payroll.process("2025-01", [employee])
        with pytest.raises(InvalidStateError, match="claimed"):
            advances.cancel_advance(advance)

    def test_deducted_advance_cannot_be_cancelled(self, advances, payroll, employee):
        advance = advances.create_advance(employee, "100", date(2025, 1, 5))
        entry = payroll.process("2025-01", [employee]).entries[0]
        payroll.mark_as_paid(entry)
        with pytest.raises(InvalidStateError):
            advances.cancel_advance(advance)

    def test_unknown_advance(self, advances):
        with pytest.raises(NotFoundError):
            advances.get_advance("missing")


class TestClaimProtocol:

    def test_claim_returns_writes_only(self, advances, employee):
        advance = advances.create_advance(employee, "100", date(2025, 1, 5))
        ops = advances.claim([advance.id], "2025-01")
        assert len(ops) == 1
        assert ops[0].data == {"linked_payroll_month": "2025-01"}
        assert advances.get_advance(advance.id).linked_payroll_month is None

    def test_claimed_advance_not_eligible_again(self, advances, store, employee):
        advance = advances.create_advance(employee, "100", date(2025, 1, 5))
        store.batch_write(advances.claim([advance.id], "2025-01"))

        assert advances.eligible_for_deduction(employee.id) == []
        with pytest.raises(InvalidStateError, match="already claimed"):
            advances.claim([advance.id], "2025-02")

    def test_claim_rejects_repeated_id(self, advances, employee):
        advance = advances.create_advance(employee, "100", date(2025, 1, 5))
        with pytest.raises(InvalidStateError, match="claimed twice"):
            advances.claim([advance.id, advance.id], "2025-01")

    def test_release_makes_eligible(self, advances, store, employee):
        advance = advances.create_advance(employee, "100", date(2025, 1, 5))
        store.batch_write(advances.claim([advance.id], "2025-01"))
        store.batch_write(advances.release([advance.id]))
        assert [a.id for a in advances.eligible_for_deduction(employee.id)] == [advance.id]

    def test_settle_and_restore(self, advances, store, employee):
        advance = advances.create_advance(employee, "120.50", date(2025, 1, 5))
        store.batch_write(advances.settle([advance.id]))
        settled = advances.get_advance(advance.id)
        assert settled.status == AdvanceStatus.FULLY_DEDUCTED
        assert settled.remaining_amount == Decimal("0.00")

        with pytest.raises(InvalidStateError):
            advances.settle([advance.id])

        store.batch_write(advances.restore([advance.id]))
        restored = advances.get_advance(advance.id)
        assert restored.status == AdvanceStatus.ACTIVE
        assert restored.remaining_amount == Decimal("120.50")

    def test_eligible_oldest_first(self, advances, employee):
        later = advances.create_advance(employee, "10", date(2025, 2, 1))
        earlier = advances.create_advance(employee, "20", date(2025, 1, 1))
        assert [a.id for a in advances.eligible_for_deduction(employee.id)] == [
            earlier.id,
            later.id,
        ]


class TestBalances:

    def test_outstanding_balance(self, advances, store, employee, create_employee):
        other = create_employee("Lina")
        advances.create_advance(employee, "100", date(2025, 1, 5))
        advances.create_advance(employee, "50.25", date(2025, 1, 6))
        cancelled = advances.create_advance(employee, "999", date(2025, 1, 7))
        advances.cancel_advance(cancelled)
        advances.create_advance(other, "10", date(2025, 1, 7))

        assert advances.outstanding_balance(employee.id) == Decimal("150.25")
        assert advances.total_outstanding() == Decimal("160.25")

    def test_claimed_advance_not_outstanding(self, advances, store, employee):
        claimed = advances.create_advance(employee, "100", date(2025, 1, 5))
        advances.create_advance(employee, "50.25", date(2025, 1, 6))
        store.batch_write(advances.claim([claimed.id], "2025-01"))

        assert advances.outstanding_balance(employee.id) == Decimal("50.25")
        assert advances.total_outstanding() == Decimal("50.25")

        store.batch_write(advances.release([claimed.id]))
        assert advances.outstanding_balance(employee.id) == Decimal("150.25")

    def test_advances_for_employee_newest_first(self, advances, employee):
        advances.create_advance(employee, "10", date(2025, 1, 1))
        advances.create_advance(employee, "20", date(2025, 3, 1))
        assert [a.amount for a in advances.advances_for_employee(employee.id)] == [
            Decimal("20.00"),
            Decimal("10.00"),
        ]


class TestAdvanceModel:

    def _advance(self, **overrides):
        fields = dict(
            id="a1", employee_id="e1", employee_name="A", amount=Decimal("100"),
            remaining_amount=Decimal("100"), status=AdvanceStatus.ACTIVE,
            date=date(2025, 1, 1),
        )
        fields.update(overrides)
        return Advance(**fields)

    def test_remaining_above_amount(self):
        with pytest.raises(ValueError):
            self._advance(remaining_amount=Decimal("101"))

    def test_fully_deducted_requires_zero_remaining(self):
        with pytest.raises(ValueError):
            self._advance(status=AdvanceStatus.FULLY_DEDUCTED)

    def test_claimed_is_not_eligible(self):
        assert not self._advance(linked_payroll_month="2025-01").is_eligible_for_deduction
