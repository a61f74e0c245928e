"""Advance lifecycle.

Claiming and releasing do not change the status; they set and clear
``linked_payroll_month`` on an ACTIVE advance.
"""

from payroll_kernel.domain.workflow import Transition, Workflow
from payroll_modules.advances.models import AdvanceStatus

ACTIVE = AdvanceStatus.ACTIVE.value
FULLY_DEDUCTED = AdvanceStatus.FULLY_DEDUCTED.value
CANCELLED = AdvanceStatus.CANCELLED.value

ADVANCE_WORKFLOW = Workflow(
    name="advance",
    description="Employee cash advance from disbursement to deduction",
    initial_state=ACTIVE,
    states=(ACTIVE, FULLY_DEDUCTED, CANCELLED),
    transitions=(
        Transition(ACTIVE, ACTIVE, action="claim"),
        Transition(ACTIVE, ACTIVE, action="release"),
        Transition(ACTIVE, FULLY_DEDUCTED, action="settle"),
        Transition(FULLY_DEDUCTED, ACTIVE, action="restore"),
        Transition(ACTIVE, CANCELLED, action="cancel"),
    ),
    terminal_states=(CANCELLED,),
)
