"""Payroll entry lifecycle.

One employee's payroll for one month:

    unprocessed --process--> unpaid --mark_paid--> paid
                             unpaid <--reverse---- paid
                             unpaid --delete--> deleted
"""

from payroll_kernel.domain.workflow import Transition, Workflow
from payroll_kernel.logging_config import get_logger
from payroll_modules.payroll.models import PayrollEntryStatus

logger = get_logger("modules.payroll.workflows")

UNPROCESSED = PayrollEntryStatus.UNPROCESSED.value
UNPAID = PayrollEntryStatus.UNPAID.value
PAID = PayrollEntryStatus.PAID.value
DELETED = PayrollEntryStatus.DELETED.value

PAYROLL_ENTRY_WORKFLOW = Workflow(
    name="payroll_entry",
    description="Monthly payroll entry from processing to payment",
    initial_state=UNPROCESSED,
    states=(UNPROCESSED, UNPAID, PAID, DELETED),
    transitions=(
        Transition(UNPROCESSED, UNPAID, action="process"),
        Transition(UNPAID, PAID, action="mark_paid", emits_reconciliation=True),
        Transition(PAID, UNPAID, action="reverse", emits_reconciliation=True),
        Transition(UNPAID, DELETED, action="delete"),
    ),
    terminal_states=(DELETED,),
)

logger.debug(
    "payroll_workflow_defined",
    extra={
        "workflow": PAYROLL_ENTRY_WORKFLOW.name,
        "transitions": [t.action for t in PAYROLL_ENTRY_WORKFLOW.transitions],
    },
)
