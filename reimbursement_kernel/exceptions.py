"""
Typed Exception Hierarchy for the Reimbursement Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers of the approval workflow must be able to tell *why* a request was
refused.  "You are not allowed", "that move does not exist" and "someone else
got there first, try again" need different responses, and parsing message
strings to tell them apart is fragile.

Every exception therefore:
  1. Has its own class (catch by type, not message)
  2. Carries a ``code`` class attribute (machine-readable, API-safe)
  3. Stores structured data as attributes (not just a message string)

Example - WRONG way to handle errors:
    try:
        service.transition(app_id, RequestStatus.UNDER_HOD, ActorRole.COORDINATOR)
    except Exception as e:
        if "not permitted" in str(e):  # FRAGILE
            ...

Example - RIGHT way:
    try:
        service.transition(app_id, RequestStatus.UNDER_HOD, ActorRole.COORDINATOR)
    except UnauthorizedTransitionError as e:
        api_response(403, code=e.code, role=e.actor_role)
    except InvalidTransitionError as e:
        api_response(409, code=e.code, current=e.from_status)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    ReimbursementKernelError (base)
    |
    +-- WorkflowError
    |   +-- InvalidTransitionError
    |   +-- UnauthorizedTransitionError
    |
    +-- ConcurrencyError
    |   +-- ConcurrentModificationError
    |
    +-- AllocationError
    |   +-- AllocationDegradedError
    |   +-- DuplicateApplicationIdError
    |   +-- AllocationExhaustedError
    |
    +-- IdentifierError
    |   +-- MalformedIdentifierError
    |
    +-- RequestError
    |   +-- RequestNotFoundError
    |   +-- RequestNotEditableError
    |   +-- ClaimValidationError
    |
    +-- ImmutabilityError
        +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category      | Code                      | When Raised
--------------|---------------------------|------------------------------------------
Workflow      | INVALID_TRANSITION        | Target status is not a successor of current
              | UNAUTHORIZED              | Actor role may not invoke this edge
--------------|---------------------------|------------------------------------------
Concurrency   | CONCURRENT_MODIFICATION   | Stored version changed since it was read
--------------|---------------------------|------------------------------------------
Allocation    | ALLOCATION_DEGRADED       | Bucket lookup failed, timestamp sequence used
              | DUPLICATE_APPLICATION_ID  | Store already holds this application ID
              | ALLOCATION_EXHAUSTED      | Every retry collided
--------------|---------------------------|------------------------------------------
Identifier    | MALFORMED_IDENTIFIER      | ID does not split into exactly 5 segments
--------------|---------------------------|------------------------------------------
Request       | REQUEST_NOT_FOUND         | No request with this application ID
              | REQUEST_NOT_EDITABLE      | Edit/delete outside PENDING or by non-owner
              | CLAIM_VALIDATION          | Submitted claim fields are invalid
--------------|---------------------------|------------------------------------------
Immutability  | IMMUTABILITY_VIOLATION    | Update/delete of an append-only record

===============================================================================
PROPAGATION
===============================================================================

Every error here is recoverable by the caller (retry, re-authenticate, or
resubmit with corrected input).  None of them is fatal to the process.
``ERROR_KINDS`` gives collaborators a stable response category per code.

AllocationDegradedError is special: the allocator does not raise it.  It is
attached to the ``AllocationResult`` and logged so the weakened-uniqueness
event is never silent, while claim creation still succeeds.
"""


class ReimbursementKernelError(Exception):
    """
    Base exception for all reimbursement kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "REIMBURSEMENT_KERNEL_ERROR"


# Workflow-related exceptions


class WorkflowError(ReimbursementKernelError):
    """Base exception for workflow transition errors."""

    code: str = "WORKFLOW_ERROR"


class InvalidTransitionError(WorkflowError):
    """Requested status is not a legal successor of the current status."""

    code: str = "INVALID_TRANSITION"

    def __init__(self, application_id: str, from_status: str, to_status: str):
        self.application_id = application_id
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Invalid transition for {application_id}: "
            f"{from_status} -> {to_status}"
        )


class UnauthorizedTransitionError(WorkflowError):
    """Actor role lacks rights for the attempted edge."""

    code: str = "UNAUTHORIZED"

    def __init__(
        self,
        application_id: str,
        actor_role: str,
        from_status: str,
        to_status: str,
        reason: str = "",
    ):
        self.application_id = application_id
        self.actor_role = actor_role
        self.from_status = from_status
        self.to_status = to_status
        self.reason = reason
        message = (
            f"Role {actor_role} is not permitted to move {application_id} "
            f"from {from_status} to {to_status}"
        )
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


# Concurrency-related exceptions


class ConcurrencyError(ReimbursementKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class ConcurrentModificationError(ConcurrencyError):
    """The aggregate changed between read and write."""

    code: str = "CONCURRENT_MODIFICATION"

    def __init__(
        self,
        application_id: str,
        expected_version: int,
        actual_version: int | None = None,
    ):
        self.application_id = application_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            f"Concurrent modification of {application_id}: expected version "
            f"{expected_version}, found {actual_version}"
        )


# Allocation-related exceptions


class AllocationError(ReimbursementKernelError):
    """Base exception for application-ID allocation errors."""

    code: str = "ALLOCATION_ERROR"


class AllocationDegradedError(AllocationError):
    """
    Bucket lookup failed and the timestamp fallback sequence was used.

    Reported on the AllocationResult and logged, not raised.  The resulting
    ID is not guaranteed unique against the bucket.
    """

    code: str = "ALLOCATION_DEGRADED"

    def __init__(self, prefix: str, cause: str):
        self.prefix = prefix
        self.cause = cause
        super().__init__(
            f"Application ID allocation for bucket {prefix} degraded to "
            f"timestamp sequence: {cause}"
        )


class DuplicateApplicationIdError(AllocationError):
    """The store already holds a request with this application ID."""

    code: str = "DUPLICATE_APPLICATION_ID"

    def __init__(self, application_id: str):
        self.application_id = application_id
        super().__init__(f"Application ID already exists: {application_id}")


class AllocationExhaustedError(AllocationError):
    """Every allocation attempt collided with a concurrent submission."""

    code: str = "ALLOCATION_EXHAUSTED"

    def __init__(self, prefix: str, attempts: int):
        self.prefix = prefix
        self.attempts = attempts
        super().__init__(
            f"Could not allocate a unique application ID in bucket {prefix} "
            f"after {attempts} attempts"
        )


# Identifier-related exceptions


class IdentifierError(ReimbursementKernelError):
    """Base exception for application-ID parsing errors."""

    code: str = "IDENTIFIER_ERROR"


class MalformedIdentifierError(IdentifierError):
    """Application ID does not split into exactly 5 segments."""

    code: str = "MALFORMED_IDENTIFIER"

    def __init__(self, application_id: str, reason: str):
        self.application_id = application_id
        self.reason = reason
        super().__init__(f"Malformed application ID {application_id!r}: {reason}")


# Request-related exceptions


class RequestError(ReimbursementKernelError):
    """Base exception for request lookup and editing errors."""

    code: str = "REQUEST_ERROR"


class RequestNotFoundError(RequestError):
    """No request with the given application ID."""

    code: str = "REQUEST_NOT_FOUND"

    def __init__(self, application_id: str):
        self.application_id = application_id
        super().__init__(f"Reimbursement request not found: {application_id}")


class RequestNotEditableError(RequestError):
    """Edit or delete attempted outside PENDING, or by someone other than the owner."""

    code: str = "REQUEST_NOT_EDITABLE"

    def __init__(self, application_id: str, reason: str):
        self.application_id = application_id
        self.reason = reason
        super().__init__(f"Request {application_id} cannot be changed: {reason}")


class ClaimValidationError(RequestError):
    """Submitted claim fields failed validation."""

    code: str = "CLAIM_VALIDATION"

    def __init__(self, field_errors: list[dict]):
        self.field_errors = field_errors
        super().__init__(
            f"Claim validation failed: {len(field_errors)} error(s)"
        )


# Immutability-related exceptions


class ImmutabilityError(ReimbursementKernelError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """Attempted to modify or delete an append-only record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )


# Stable response category per code, for collaborators that map kernel
# errors onto user-visible responses.
ERROR_KINDS: dict[str, str] = {
    InvalidTransitionError.code: "conflict",
    UnauthorizedTransitionError.code: "forbidden",
    ConcurrentModificationError.code: "retry",
    AllocationDegradedError.code: "degraded",
    DuplicateApplicationIdError.code: "retry",
    AllocationExhaustedError.code: "retry",
    MalformedIdentifierError.code: "invalid",
    RequestNotFoundError.code: "not_found",
    RequestNotEditableError.code: "forbidden",
    ClaimValidationError.code: "invalid",
    ImmutabilityViolationError.code: "forbidden",
}


def error_kind(exc: ReimbursementKernelError) -> str:
    """Return the response category for a kernel error ("internal" if unmapped)."""
    return ERROR_KINDS.get(exc.code, "internal")
