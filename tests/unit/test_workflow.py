"""
Unit tests for lifecycle state machines.

Covers the generic Workflow type and the two declared lifecycles
(payroll entry and advance).
"""

import pytest

from payroll_kernel.domain.workflow import Transition, Workflow, require_transition
from payroll_kernel.exceptions import InvalidStateError
from payroll_modules.advances.models import AdvanceStatus
from payroll_modules.advances.workflows import ADVANCE_WORKFLOW
from payroll_modules.payroll.models import PayrollEntryStatus
from payroll_modules.payroll.workflows import PAYROLL_ENTRY_WORKFLOW


class TestWorkflowDefinition:

    def test_unknown_initial_state_rejected(self):
        with pytest.raises(ValueError, match="initial state"):
            Workflow(
                name="w",
                description="",
                initial_state="missing",
                states=("a",),
                transitions=(),
            )

    def test_transition_to_unknown_state_rejected(self):
        with pytest.raises(ValueError, match="unknown state"):
            Workflow(
                name="w",
                description="",
                initial_state="a",
                states=("a",),
                transitions=(Transition("a", "b", "go"),),
            )

    def test_actions_from(self):
        workflow = Workflow(
            name="w",
            description="",
            initial_state="a",
            states=("a", "b"),
            transitions=(Transition("a", "b", "go"), Transition("b", "a", "back")),
        )
        assert workflow.actions_from("a") == ("go",)
        assert workflow.find_transition("b", "go") is None


class TestPayrollEntryWorkflow:

    def test_lifecycle(self):
        unpaid = PayrollEntryStatus.UNPAID.value
        paid = PayrollEntryStatus.PAID.value
        assert require_transition(
            PAYROLL_ENTRY_WORKFLOW, "payroll_entry", "e1", unpaid, "mark_paid"
        ).to_state == paid
        assert require_transition(
            PAYROLL_ENTRY_WORKFLOW, "payroll_entry", "e1", paid, "reverse"
        ).to_state == unpaid

    def test_paid_entry_cannot_be_deleted(self):
        with pytest.raises(InvalidStateError) as exc_info:
            require_transition(
                PAYROLL_ENTRY_WORKFLOW,
                "payroll_entry",
                "e1",
                PayrollEntryStatus.PAID.value,
                "delete",
            )
        assert exc_info.value.current_state == "paid"
        assert exc_info.value.action == "delete"

    def test_money_moving_transitions_flagged(self):
        flagged = {
            t.action for t in PAYROLL_ENTRY_WORKFLOW.transitions if t.emits_reconciliation
        }
        assert flagged == {"mark_paid", "reverse"}


class TestAdvanceWorkflow:

    def test_cancelled_is_terminal(self):
        cancelled = AdvanceStatus.CANCELLED.value
        assert cancelled in ADVANCE_WORKFLOW.terminal_states
        assert ADVANCE_WORKFLOW.actions_from(cancelled) == ()

    def test_settled_advance_cannot_be_cancelled(self):
        with pytest.raises(InvalidStateError):
            require_transition(
                ADVANCE_WORKFLOW,
                "advance",
                "a1",
                AdvanceStatus.FULLY_DEDUCTED.value,
                "cancel",
            )

    def test_settle_and_restore(self):
        settle = require_transition(
            ADVANCE_WORKFLOW, "advance", "a1", AdvanceStatus.ACTIVE.value, "settle"
        )
        assert settle.to_state == AdvanceStatus.FULLY_DEDUCTED.value
        restore = require_transition(
            ADVANCE_WORKFLOW, "advance", "a1", settle.to_state, "restore"
        )
        assert restore.to_state == AdvanceStatus.ACTIVE.value
