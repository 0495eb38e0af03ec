"""
RequestService -- reimbursement request lifecycle management.

Responsibility:
    Orchestrates the pure domain functions against a RequestStore:
    validates and files new claims (allocating their application IDs),
    applies reviewer transitions, serves reviewer queues and claimant
    listings, and lets owners edit or withdraw claims still PENDING.

Architecture position:
    Kernel > Services -- imperative shell around the domain core.

Invariants enforced:
    - Application IDs never collide: an INSERT that hits an existing ID is
      retried with a fresh bucket read, up to ``max_allocation_attempts``.
    - Every status change goes through ``apply_transition`` (authorization,
      then legality) and is persisted with the version read beforehand.
    - Owner edits and deletions only while PENDING, only by the claimant.

Failure modes:
    - ClaimValidationError on bad claim fields.
    - AllocationExhaustedError when every attempt collided.
    - UnauthorizedTransitionError / InvalidTransitionError from the state
      machine, logged as ``transition_refused`` and re-raised.
    - ConcurrentModificationError when another writer got there first.
    - RequestNotFoundError, RequestNotEditableError.

Audit relevance:
    ``request_created`` and ``transition_applied`` are logged at INFO with
    the application ID, statuses and actor role; refusals at WARNING with
    the error code.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import replace

from reimbursement_kernel.domain.authorization import (
    DEPARTMENT_SCOPED_ROLES,
    ActorRole,
    actionable_statuses,
    same_department,
)
from reimbursement_kernel.domain.clock import Clock, SystemClock
from reimbursement_kernel.domain.identifiers import (
    allocate_application_id,
    bucket_prefix,
)
from reimbursement_kernel.domain.request import ClaimSubmission, ReimbursementRequest
from reimbursement_kernel.domain.state_machine import (
    apply_transition,
    create_request,
    status_text,
)
from reimbursement_kernel.domain.workflow import RequestStatus
from reimbursement_kernel.exceptions import (
    AllocationExhaustedError,
    ClaimValidationError,
    ConcurrentModificationError,
    DuplicateApplicationIdError,
    InvalidTransitionError,
    RequestNotEditableError,
    RequestNotFoundError,
    UnauthorizedTransitionError,
)
from reimbursement_kernel.logging_config import LogContext, get_logger
from reimbursement_kernel.services.claim_validation import claim_errors, validate_claim
from reimbursement_kernel.services.request_store import RequestStore

logger = get_logger("services.request")

DEFAULT_MAX_ALLOCATION_ATTEMPTS = 10

# Fields an owner may change while the request is PENDING.  Everything else
# is either encoded in the application ID or owned by the workflow.
EDITABLE_FIELDS: frozenset[str] = frozenset({
    "amount",
    "claimant",
    "bank",
    "documents",
    "remarks",
})


class RequestService:
    """Files, reviews and lists reimbursement requests."""

    def __init__(
        self,
        store: RequestStore,
        clock: Clock | None = None,
        *,
        max_allocation_attempts: int = DEFAULT_MAX_ALLOCATION_ATTEMPTS,
        strict_claim_types: bool = False,
        degraded_fallback_enabled: bool = True,
    ) -> None:
        if max_allocation_attempts < 1:
            raise ValueError("max_allocation_attempts must be at least 1")
        self._store = store
        self._clock = clock or SystemClock()
        self._max_attempts = max_allocation_attempts
        self._strict_claim_types = strict_claim_types
        self._degraded_fallback_enabled = degraded_fallback_enabled

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def create_request(self, claim: ClaimSubmission) -> ReimbursementRequest:
        """Validate ``claim``, allocate its application ID and store it.

        Preconditions:
            ``claim`` passes claim validation.

        Postconditions:
            The returned request is PENDING, version 1, and stored under an
            application ID no other stored request has.

        Raises:
            ClaimValidationError: invalid claim fields.
            AllocationExhaustedError: every attempt collided.
        """
        validate_claim(claim, strict_types=self._strict_claim_types)

        identifier_input = claim.identifier_input()
        prefix = bucket_prefix(identifier_input, self._clock)

        with self._store.allocation_lock(prefix):
            for attempt in range(1, self._max_attempts + 1):
                allocation = allocate_application_id(
                    identifier_input,
                    self._store.find_application_ids,
                    clock=self._clock,
                    degrade_on_lookup_failure=self._degraded_fallback_enabled,
                )
                request = create_request(
                    claim, allocation.application_id, clock=self._clock,
                )
                try:
                    self._store.insert(request)
                except DuplicateApplicationIdError:
                    logger.info(
                        "application_id_conflict_retry",
                        extra={
                            "application_id": allocation.application_id,
                            "attempt": attempt,
                            "max_attempts": self._max_attempts,
                        },
                    )
                    continue

                logger.info(
                    "request_created",
                    extra={
                        "application_id": request.application_id,
                        "claimant_user_id": request.claimant.user_id,
                        "applicant_type": request.applicant_type.value,
                        "reimbursement_type": request.reimbursement_type.value,
                        "amount": request.amount,
                        "attempts": attempt,
                        "degraded": allocation.degraded,
                    },
                )
                return request

        logger.error(
            "application_id_allocation_exhausted",
            extra={"prefix": prefix, "attempts": self._max_attempts},
        )
        raise AllocationExhaustedError(prefix, self._max_attempts)

    # ------------------------------------------------------------------
    # Review
    # ------------------------------------------------------------------

    def get(self, application_id: str) -> ReimbursementRequest:
        request = self._store.get(application_id)
        if request is None:
            raise RequestNotFoundError(application_id)
        return request

    def transition(
        self,
        application_id: str,
        desired_status: RequestStatus | str,
        actor_role: ActorRole | str,
        comment: str | None = None,
        actor_department: str | None = None,
    ) -> ReimbursementRequest:
        """Apply a reviewer decision and persist it.

        Raises:
            RequestNotFoundError: unknown application ID.
            UnauthorizedTransitionError: role may not take this edge.
            InvalidTransitionError: edge not in the transition table.
            ConcurrentModificationError: request changed since it was read.
        """
        role_value = actor_role.value if isinstance(actor_role, ActorRole) else str(actor_role)
        with LogContext.bind(application_id=application_id, actor_role=role_value):
            current = self.get(application_id)
            try:
                updated = apply_transition(
                    current,
                    desired_status,
                    actor_role,
                    comment,
                    actor_department=actor_department,
                    clock=self._clock,
                )
                self._store.update(updated, expected_version=current.version)
            except (
                UnauthorizedTransitionError,
                InvalidTransitionError,
                ConcurrentModificationError,
            ) as exc:
                logger.warning(
                    "transition_refused",
                    extra={
                        "application_id": application_id,
                        "from_status": current.status.value,
                        "to_status": status_text(desired_status),
                        "error_code": exc.code,
                    },
                )
                raise

            logger.info(
                "transition_applied",
                extra={
                    "application_id": application_id,
                    "from_status": current.status.value,
                    "to_status": updated.status.value,
                    "version": updated.version,
                },
            )
            return updated

    def queue_for(
        self,
        actor_role: ActorRole | str,
        actor_department: str | None = None,
    ) -> list[ReimbursementRequest]:
        """Requests ``actor_role`` can act on now, newest first.

        Department-scoped roles only see their own department when
        ``actor_department`` is given.
        """
        statuses = actionable_statuses(actor_role)
        if not statuses:
            return []
        requests = self._store.list_by_status(statuses)
        role = ActorRole.parse(actor_role)
        if role in DEPARTMENT_SCOPED_ROLES and actor_department is not None:
            requests = [r for r in requests if same_department(actor_department, r.department)]
        return requests

    def list_for_claimant(self, user_id: str) -> list[ReimbursementRequest]:
        return self._store.list_by_claimant(user_id)

    # ------------------------------------------------------------------
    # Owner edits
    # ------------------------------------------------------------------

    def _owned_pending(self, application_id: str, user_id: str) -> ReimbursementRequest:
        request = self.get(application_id)
        if request.claimant.user_id != user_id:
            raise RequestNotEditableError(application_id, "only the claimant may change it")
        if request.status is not RequestStatus.PENDING:
            raise RequestNotEditableError(
                application_id, f"status is {request.status.value}, not PENDING",
            )
        return request

    def update_claim(
        self,
        application_id: str,
        user_id: str,
        changes: Mapping[str, object],
    ) -> ReimbursementRequest:
        """Apply owner edits to a PENDING request.

        Only EDITABLE_FIELDS may change; the claimant's user id may not.
        The result is re-validated and stored with a bumped version.
        """
        current = self._owned_pending(application_id, user_id)

        locked = sorted(set(changes) - EDITABLE_FIELDS)
        if locked:
            raise RequestNotEditableError(
                application_id, f"fields not editable: {', '.join(locked)}",
            )
        claimant = changes.get("claimant", current.claimant)
        if claimant.user_id != current.claimant.user_id:
            raise RequestNotEditableError(application_id, "claimant user id cannot change")

        fields = dict(changes)
        if "documents" in fields:
            fields["documents"] = tuple(fields["documents"])
        updated = replace(
            current,
            **fields,
            updated_at=self._clock.now(),
            version=current.version + 1,
        )
        errors = claim_errors(_as_claim(updated), strict_types=self._strict_claim_types)
        if errors:
            raise ClaimValidationError(errors)

        self._store.update(updated, expected_version=current.version)
        logger.info(
            "request_updated",
            extra={
                "application_id": application_id,
                "fields": sorted(changes),
                "version": updated.version,
            },
        )
        return updated

    def delete_request(self, application_id: str, user_id: str) -> None:
        """Withdraw a PENDING request. Owner only."""
        self._owned_pending(application_id, user_id)
        self._store.delete(application_id)
        logger.info("request_deleted", extra={"application_id": application_id})


def _as_claim(request: ReimbursementRequest) -> ClaimSubmission:
    return ClaimSubmission(
        applicant_type=request.applicant_type,
        reimbursement_type=request.reimbursement_type,
        department=request.department,
        academic_year=request.academic_year,
        amount=request.amount,
        claimant=request.claimant,
        bank=request.bank,
        documents=request.documents,
        remarks=request.remarks,
    )
