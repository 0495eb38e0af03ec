"""
Role-authorization gate (``reimbursement_kernel.domain.authorization``).

Responsibility:
    Decide whether an actor role may invoke a given (from, to) edge,
    independently of whether the edge is legal in the transition table.

Architecture position:
    Kernel > Domain.  Pure function over (role, from_status, to_status) plus
    an optional department scope.  The state machine calls this BEFORE the
    legality check so an unauthorized actor always receives the same error,
    whether or not the edge exists.

Invariants:
    - Grants are keyed on the request's current status: a role holding a
      grant for a different from-status is refused.
    - Claimant roles (Student, Faculty) hold no transition grants; HOD and
      Coordinator claimants act only in their reviewer capacity.
    - Accounts may only disburse, and only from APPROVED.
    - Unknown role strings are refused (fail closed).
"""

from __future__ import annotations

from enum import Enum
from types import MappingProxyType
from typing import Mapping

from reimbursement_kernel.domain.codes import department_scope_key
from reimbursement_kernel.domain.workflow import (
    STATUS_TRANSITIONS,
    RequestStatus,
)


class ActorRole(str, Enum):
    """Roles that can act on a request."""

    STUDENT = "Student"
    FACULTY = "Faculty"
    COORDINATOR = "Coordinator"
    HOD = "HOD"
    PRINCIPAL = "Principal"
    ACCOUNTS = "Accounts"

    @classmethod
    def parse(cls, value: object) -> "ActorRole | None":
        """Case-insensitive lookup by value; None for unknown roles."""
        if isinstance(value, ActorRole):
            return value
        if value is None:
            return None
        key = str(value).strip().casefold()
        for role in cls:
            if role.value.casefold() == key:
                return role
        return None


Edge = tuple[RequestStatus, RequestStatus]

ROLE_GRANTS: Mapping[ActorRole, frozenset[Edge]] = MappingProxyType({
    ActorRole.STUDENT: frozenset(),
    ActorRole.FACULTY: frozenset(),
    ActorRole.COORDINATOR: frozenset({
        (RequestStatus.PENDING, RequestStatus.UNDER_COORDINATOR),
        (RequestStatus.UNDER_COORDINATOR, RequestStatus.UNDER_HOD),
        (RequestStatus.PENDING, RequestStatus.REJECTED),
        (RequestStatus.UNDER_COORDINATOR, RequestStatus.REJECTED),
    }),
    ActorRole.HOD: frozenset({
        (RequestStatus.UNDER_HOD, RequestStatus.UNDER_PRINCIPAL),
        (RequestStatus.UNDER_HOD, RequestStatus.REJECTED),
    }),
    ActorRole.PRINCIPAL: frozenset({
        (RequestStatus.UNDER_PRINCIPAL, RequestStatus.APPROVED),
        (RequestStatus.UNDER_PRINCIPAL, RequestStatus.REJECTED),
    }),
    ActorRole.ACCOUNTS: frozenset({
        (RequestStatus.APPROVED, RequestStatus.DISBURSED),
    }),
})

# Roles whose grants only cover requests from their own department.
DEPARTMENT_SCOPED_ROLES: frozenset[ActorRole] = frozenset({ActorRole.COORDINATOR})


def same_department(actor_department: str | None, request_department: str | None) -> bool:
    """True when both names denote the same department. Blank never matches."""
    actor_key = department_scope_key(actor_department)
    return bool(actor_key) and actor_key == department_scope_key(request_department)


def check_authorization(
    actor_role: ActorRole | str | None,
    from_status: RequestStatus,
    to_status: RequestStatus | None,
    *,
    request_department: str | None = None,
    actor_department: str | None = None,
) -> tuple[bool, str]:
    """Check whether ``actor_role`` may move a request along this edge.

    Args:
        actor_role: Role the actor is acting under.
        from_status: The request's current status.
        to_status: The requested status, or None when the caller asked for
            a status that does not exist.  Only a role holding some grant
            out of ``from_status`` passes; the state machine then refuses
            the target as an invalid transition.
        request_department: Department recorded on the request.
        actor_department: The actor's own department; when given, roles in
            DEPARTMENT_SCOPED_ROLES are limited to matching requests.

    Returns:
        (allowed, reason). reason is empty when allowed, or a short message
        when denied.
    """
    role = ActorRole.parse(actor_role)
    if role is None:
        return (False, f"unknown role {actor_role!r}")

    if to_status is None:
        if not any(edge[0] == from_status for edge in ROLE_GRANTS[role]):
            return (False, f"role {role.value} holds no grant for this edge")
    elif (from_status, to_status) not in ROLE_GRANTS[role]:
        return (False, f"role {role.value} holds no grant for this edge")

    if role in DEPARTMENT_SCOPED_ROLES and actor_department is not None:
        if not same_department(actor_department, request_department):
            return (
                False,
                f"{role.value} of {actor_department!r} cannot act on requests "
                f"from {request_department!r}",
            )

    return (True, "")


def available_transitions(
    actor_role: ActorRole | str | None, status: RequestStatus
) -> frozenset[RequestStatus]:
    """Destinations ``actor_role`` may invoke from ``status`` (legal edges only)."""
    role = ActorRole.parse(actor_role)
    if role is None:
        return frozenset()
    return frozenset(
        to_status
        for from_status, to_status in ROLE_GRANTS[role]
        if from_status == status and to_status in STATUS_TRANSITIONS[status]
    )


def actionable_statuses(actor_role: ActorRole | str | None) -> frozenset[RequestStatus]:
    """Statuses in which ``actor_role`` has at least one grant (its review queue)."""
    role = ActorRole.parse(actor_role)
    if role is None:
        return frozenset()
    return frozenset(from_status for from_status, _ in ROLE_GRANTS[role])
