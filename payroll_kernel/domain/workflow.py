"""
Canonical workflow types (``payroll_kernel.domain.workflow``).

Responsibility
--------------
Pure value objects for lifecycle state machines.  The payroll entry and
advance lifecycles are declared once as ``Workflow`` instances and every
state-changing service operation checks its move with ``require_transition``
before building any writes.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.

Invariants enforced
-------------------
* Transitions reference only states in ``Workflow.states``.
* ``initial_state`` is a member of ``states``.
"""

from __future__ import annotations

from dataclasses import dataclass

from payroll_kernel.exceptions import InvalidStateError


@dataclass(frozen=True)
class Transition:
    """A valid state transition in a workflow.

    Contract: frozen.  ``emits_reconciliation=True`` marks a transition that
    moves money and must emit a reconciliation record after commit.
    """
    from_state: str
    to_state: str
    action: str
    emits_reconciliation: bool = False


@dataclass(frozen=True)
class Workflow:
    """A state machine definition for an entity lifecycle.

    Contract: frozen; ``transitions`` reference only states in ``states``.
    Guarantees: ``initial_state`` is a member of ``states``.
    ``terminal_states`` are states with no outgoing transitions (optional).
    """
    name: str
    description: str
    initial_state: str
    states: tuple[str, ...]
    transitions: tuple[Transition, ...]
    terminal_states: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.initial_state not in self.states:
            raise ValueError(
                f"Workflow {self.name}: initial state '{self.initial_state}' "
                f"is not one of {self.states}"
            )
        for transition in self.transitions:
            for state in (transition.from_state, transition.to_state):
                if state not in self.states:
                    raise ValueError(
                        f"Workflow {self.name}: transition '{transition.action}' "
                        f"references unknown state '{state}'"
                    )

    def find_transition(self, from_state: str, action: str) -> Transition | None:
        for transition in self.transitions:
            if transition.from_state == from_state and transition.action == action:
                return transition
        return None

    def actions_from(self, state: str) -> tuple[str, ...]:
        return tuple(t.action for t in self.transitions if t.from_state == state)


def require_transition(
    workflow: Workflow,
    entity: str,
    entity_id: str,
    current_state: str,
    action: str,
) -> Transition:
    """
    Return the transition for ``action`` from ``current_state``.

    Raises:
        InvalidStateError: If the workflow has no such transition.
    """
    transition = workflow.find_transition(current_state, action)
    if transition is None:
        raise InvalidStateError(entity, entity_id, current_state, action)
    return transition
