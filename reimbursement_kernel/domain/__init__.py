"""
Pure domain layer.

Status workflow, role grants, identifier allocation and the request
aggregate, with NO dependencies on:
- ORM (SQLAlchemy)
- Database
- Wall-clock time (an injected Clock is used instead)

All domain objects are immutable and deterministic.
"""

from reimbursement_kernel.domain.authorization import (
    ROLE_GRANTS,
    ActorRole,
    actionable_statuses,
    available_transitions,
    check_authorization,
)
from reimbursement_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from reimbursement_kernel.domain.codes import (
    ApplicantType,
    ReimbursementType,
    applicant_prefix,
    category_code,
    department_code,
)
from reimbursement_kernel.domain.identifiers import (
    AllocationResult,
    IdentifierInput,
    ParsedApplicationId,
    allocate_application_id,
    bucket_prefix,
    extract_year,
    format_sequence,
    next_sequence,
    parse_application_id,
    parse_application_id_strict,
)
from reimbursement_kernel.domain.request import (
    BankDetails,
    ClaimantDetails,
    ClaimSubmission,
    DocumentRef,
    ReimbursementRequest,
    ReviewComment,
)
from reimbursement_kernel.domain.state_machine import (
    apply_transition,
    authorize_transition,
    create_request,
)
from reimbursement_kernel.domain.workflow import (
    INITIAL_STATUS,
    REIMBURSEMENT_WORKFLOW,
    STATUS_TRANSITIONS,
    TERMINAL_STATUSES,
    RequestStatus,
    Transition,
    Workflow,
    is_legal_transition,
    is_terminal,
)

__all__ = [
    # Clock
    "Clock",
    "SystemClock",
    "DeterministicClock",
    # Codes
    "ApplicantType",
    "ReimbursementType",
    "applicant_prefix",
    "category_code",
    "department_code",
    # Identifiers
    "AllocationResult",
    "IdentifierInput",
    "ParsedApplicationId",
    "allocate_application_id",
    "bucket_prefix",
    "extract_year",
    "format_sequence",
    "next_sequence",
    "parse_application_id",
    "parse_application_id_strict",
    # Workflow
    "INITIAL_STATUS",
    "REIMBURSEMENT_WORKFLOW",
    "STATUS_TRANSITIONS",
    "TERMINAL_STATUSES",
    "RequestStatus",
    "Transition",
    "Workflow",
    "is_legal_transition",
    "is_terminal",
    # Authorization
    "ROLE_GRANTS",
    "ActorRole",
    "actionable_statuses",
    "available_transitions",
    "check_authorization",
    # Aggregate
    "BankDetails",
    "ClaimantDetails",
    "ClaimSubmission",
    "DocumentRef",
    "ReimbursementRequest",
    "ReviewComment",
    # State machine
    "apply_transition",
    "authorize_transition",
    "create_request",
]
