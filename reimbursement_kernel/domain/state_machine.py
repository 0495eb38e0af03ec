"""
Request state machine (``reimbursement_kernel.domain.state_machine``).

Responsibility:
    The only code path that changes a request's status.  Builds new PENDING
    aggregates and produces the next aggregate for an authorized, legal
    transition.

Architecture position:
    Kernel > Domain.  Pure functions; time comes from an injected Clock.

Invariants enforced:
    - Authorization is evaluated BEFORE legality, so an actor without the
      grant is told "unauthorized" whether or not the edge exists.
    - Only edges in ``STATUS_TRANSITIONS`` are ever applied.
    - The input aggregate is never modified; on failure nothing changes.
    - Each success appends exactly one ReviewComment and bumps ``version``
      by exactly one.

Failure modes:
    - UnauthorizedTransitionError: role lacks the (from, to) grant, or is
      outside the request's department when department scope applies.
    - InvalidTransitionError: the edge is not in the transition table, or
      the requested status does not exist (for a role that could act now).
"""

from __future__ import annotations

from dataclasses import replace

from reimbursement_kernel.domain.authorization import ActorRole, check_authorization
from reimbursement_kernel.domain.clock import Clock, SystemClock
from reimbursement_kernel.domain.codes import (
    ApplicantType,
    normalize_applicant_type,
    normalize_reimbursement_type,
)
from reimbursement_kernel.domain.request import (
    ClaimSubmission,
    ReimbursementRequest,
    ReviewComment,
)
from reimbursement_kernel.domain.workflow import (
    INITIAL_STATUS,
    RequestStatus,
    is_legal_transition,
)
from reimbursement_kernel.exceptions import (
    InvalidTransitionError,
    UnauthorizedTransitionError,
)


def create_request(
    claim: ClaimSubmission,
    application_id: str,
    *,
    clock: Clock | None = None,
) -> ReimbursementRequest:
    """Build the initial PENDING aggregate for ``claim``.

    Unknown applicant types are recorded as Student and unknown categories as
    Other, matching the prefixes already baked into ``application_id``.
    """
    now = (clock or SystemClock()).now()
    return ReimbursementRequest(
        application_id=application_id,
        applicant_type=normalize_applicant_type(claim.applicant_type) or ApplicantType.STUDENT,
        reimbursement_type=normalize_reimbursement_type(claim.reimbursement_type),
        department=(claim.department or "").strip(),
        academic_year=(claim.academic_year or "").strip(),
        amount=claim.amount,
        claimant=claim.claimant,
        bank=claim.bank,
        documents=tuple(claim.documents),
        remarks=claim.remarks or "",
        status=INITIAL_STATUS,
        history=(),
        version=1,
        created_at=now,
        updated_at=now,
    )


def _role_value(actor_role: ActorRole | str | None) -> str:
    if isinstance(actor_role, ActorRole):
        return actor_role.value
    return str(actor_role)


def status_text(status: RequestStatus | str | None) -> str:
    """Status value for errors and logs; unknown input is echoed as given."""
    resolved = RequestStatus.resolve(status)
    return resolved.value if resolved is not None else str(status)


def authorize_transition(
    request: ReimbursementRequest,
    desired_status: RequestStatus | str,
    actor_role: ActorRole | str | None,
    *,
    actor_department: str | None = None,
) -> None:
    """Raise UnauthorizedTransitionError unless the role holds the grant.

    An unknown ``desired_status`` is only let through for a role that could
    act on the request now; everyone else gets the same refusal as for a
    real status they hold no grant for.
    """
    allowed, reason = check_authorization(
        actor_role,
        request.status,
        RequestStatus.resolve(desired_status),
        request_department=request.department,
        actor_department=actor_department,
    )
    if not allowed:
        raise UnauthorizedTransitionError(
            request.application_id,
            _role_value(actor_role),
            request.status.value,
            status_text(desired_status),
            reason,
        )


def apply_transition(
    request: ReimbursementRequest,
    desired_status: RequestStatus | str,
    actor_role: ActorRole | str | None,
    comment: str | None = None,
    *,
    actor_department: str | None = None,
    clock: Clock | None = None,
) -> ReimbursementRequest:
    """
    Move ``request`` to ``desired_status`` on behalf of ``actor_role``.

    Preconditions:
        ``desired_status`` is a RequestStatus, its value or its display
        label (any case).  Anything else is treated as an illegal target.

    Postconditions:
        Returned aggregate has the new status, one more history entry whose
        comment is ``comment`` verbatim (None when blank), a refreshed
        ``updated_at`` and ``version + 1``.

    Raises:
        UnauthorizedTransitionError: checked first.
        InvalidTransitionError: edge not in the transition table, or the
            target is not a status at all.
    """
    authorize_transition(
        request, desired_status, actor_role, actor_department=actor_department,
    )

    target = RequestStatus.resolve(desired_status)
    if target is None or not is_legal_transition(request.status, target):
        raise InvalidTransitionError(
            request.application_id,
            request.status.value,
            status_text(desired_status),
        )

    now = (clock or SystemClock()).now()
    entry = ReviewComment(
        from_status=request.status,
        to_status=target,
        actor_role=_role_value(ActorRole.parse(actor_role) or actor_role),
        comment=comment if comment and comment.strip() else None,
        created_at=now,
    )
    return replace(
        request,
        status=target,
        history=request.history + (entry,),
        updated_at=now,
        version=request.version + 1,
    )
