"""
Reimbursement workflow definition (``reimbursement_kernel.domain.workflow``).

Responsibility
--------------
The closed set of request statuses, the transition table that is the only
source of legal status changes, and a declarative ``Workflow`` value built
from that table for introspection (reviewer queues, UIs, docs).

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.

Invariants enforced
-------------------
* ``STATUS_TRANSITIONS`` has an entry for every ``RequestStatus`` (checked
  at import time) and is read-only.
* Terminal states (DISBURSED, REJECTED) have no outgoing edges.
* ``REIMBURSEMENT_WORKFLOW.transitions`` reference only declared states and
  mirror ``STATUS_TRANSITIONS`` exactly.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Mapping


class RequestStatus(str, Enum):
    """Reimbursement request lifecycle states."""

    PENDING = "PENDING"
    UNDER_COORDINATOR = "UNDER_COORDINATOR"
    UNDER_HOD = "UNDER_HOD"
    UNDER_PRINCIPAL = "UNDER_PRINCIPAL"
    APPROVED = "APPROVED"
    DISBURSED = "DISBURSED"
    REJECTED = "REJECTED"

    @property
    def label(self) -> str:
        """Display string used by the portal ("Under HOD", "Approved", ...)."""
        return _STATUS_LABELS[self]

    @classmethod
    def from_label(cls, text: str) -> "RequestStatus":
        """Accept either the enum value or the display label, any case."""
        key = text.strip().casefold()
        for status in cls:
            if key in (status.value.casefold(), status.label.casefold()):
                return status
        raise ValueError(f"Unknown request status: {text!r}")

    @classmethod
    def resolve(cls, value: object) -> "RequestStatus | None":
        """Status for an enum member, value or label; None when unknown."""
        if isinstance(value, RequestStatus):
            return value
        if not isinstance(value, str):
            return None
        try:
            return cls.from_label(value)
        except ValueError:
            return None


_STATUS_LABELS: dict[RequestStatus, str] = {
    RequestStatus.PENDING: "Pending",
    RequestStatus.UNDER_COORDINATOR: "Under Coordinator",
    RequestStatus.UNDER_HOD: "Under HOD",
    RequestStatus.UNDER_PRINCIPAL: "Under Principal",
    RequestStatus.APPROVED: "Approved",
    RequestStatus.DISBURSED: "Disbursed",
    RequestStatus.REJECTED: "Rejected",
}

INITIAL_STATUS = RequestStatus.PENDING

STATUS_TRANSITIONS: Mapping[RequestStatus, frozenset[RequestStatus]] = MappingProxyType({
    RequestStatus.PENDING: frozenset({
        RequestStatus.UNDER_COORDINATOR,
        RequestStatus.REJECTED,
    }),
    RequestStatus.UNDER_COORDINATOR: frozenset({
        RequestStatus.UNDER_HOD,
        RequestStatus.REJECTED,
    }),
    RequestStatus.UNDER_HOD: frozenset({
        RequestStatus.UNDER_PRINCIPAL,
        RequestStatus.REJECTED,
    }),
    RequestStatus.UNDER_PRINCIPAL: frozenset({
        RequestStatus.APPROVED,
        RequestStatus.REJECTED,
    }),
    RequestStatus.APPROVED: frozenset({
        RequestStatus.DISBURSED,
    }),
    RequestStatus.DISBURSED: frozenset(),
    RequestStatus.REJECTED: frozenset(),
})

TERMINAL_STATUSES: frozenset[RequestStatus] = frozenset(
    status for status, targets in STATUS_TRANSITIONS.items() if not targets
)

_missing = set(RequestStatus) - set(STATUS_TRANSITIONS)
if _missing:
    raise RuntimeError(
        f"STATUS_TRANSITIONS is missing statuses: {sorted(s.value for s in _missing)}"
    )
del _missing


def successors(status: RequestStatus) -> frozenset[RequestStatus]:
    return STATUS_TRANSITIONS[status]


def is_legal_transition(from_status: RequestStatus, to_status: RequestStatus) -> bool:
    return to_status in STATUS_TRANSITIONS[from_status]


def is_terminal(status: RequestStatus) -> bool:
    return status in TERMINAL_STATUSES


# ---------------------------------------------------------------------------
# Declarative form
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Transition:
    """A valid state transition in a workflow.

    Contract: frozen.  ``action`` is the verb reviewers see for this edge.
    """
    from_state: RequestStatus
    to_state: RequestStatus
    action: str


@dataclass(frozen=True)
class Workflow:
    """A state machine definition for a document lifecycle.

    Contract: frozen; ``transitions`` reference only states in ``states``.
    Guarantees: ``initial_state`` is a member of ``states``.
    ``terminal_states`` are states with no outgoing transitions.
    """
    name: str
    description: str
    initial_state: RequestStatus
    states: tuple[RequestStatus, ...]
    transitions: tuple[Transition, ...]
    terminal_states: tuple[RequestStatus, ...] = ()

    def transition_for(
        self, from_state: RequestStatus, to_state: RequestStatus
    ) -> Transition | None:
        for transition in self.transitions:
            if transition.from_state == from_state and transition.to_state == to_state:
                return transition
        return None


_ACTIONS: dict[tuple[RequestStatus, RequestStatus], str] = {
    (RequestStatus.PENDING, RequestStatus.UNDER_COORDINATOR): "accept",
    (RequestStatus.UNDER_COORDINATOR, RequestStatus.UNDER_HOD): "forward_to_hod",
    (RequestStatus.UNDER_HOD, RequestStatus.UNDER_PRINCIPAL): "forward_to_principal",
    (RequestStatus.UNDER_PRINCIPAL, RequestStatus.APPROVED): "approve",
    (RequestStatus.APPROVED, RequestStatus.DISBURSED): "disburse",
}


def _build_workflow() -> Workflow:
    transitions = tuple(
        Transition(
            from_state=from_status,
            to_state=to_status,
            action=_ACTIONS.get((from_status, to_status), "reject"),
        )
        for from_status in RequestStatus
        for to_status in sorted(STATUS_TRANSITIONS[from_status], key=list(RequestStatus).index)
    )
    return Workflow(
        name="reimbursement_request",
        description="Claim review chain: Coordinator -> HOD -> Principal -> Accounts",
        initial_state=INITIAL_STATUS,
        states=tuple(RequestStatus),
        transitions=transitions,
        terminal_states=tuple(s for s in RequestStatus if s in TERMINAL_STATUSES),
    )


REIMBURSEMENT_WORKFLOW = _build_workflow()
