"""
Reimbursement request aggregate (``reimbursement_kernel.domain.request``).

Responsibility
--------------
Immutable value objects for a submitted claim and the request aggregate it
becomes.  The aggregate is the single source of truth for status, review
history and version; every other component is a function over it.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.

Invariants enforced
-------------------
* ``application_id`` is set once, at creation, and never regenerated.
* ``history`` is a tuple; entries are only ever appended by producing a new
  aggregate (see ``state_machine.apply_transition``).
* ``version`` starts at 1 and increases by exactly 1 per persisted change.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal

from reimbursement_kernel.domain.codes import ApplicantType, ReimbursementType
from reimbursement_kernel.domain.identifiers import IdentifierInput
from reimbursement_kernel.domain.workflow import RequestStatus, is_terminal


@dataclass(frozen=True)
class ClaimantDetails:
    """Who submitted the claim.

    ``student_id`` and ``division`` are set for students; ``job_title`` for
    staff claimants.
    """

    user_id: str
    name: str
    email: str
    student_id: str | None = None
    division: str | None = None
    job_title: str | None = None


@dataclass(frozen=True)
class BankDetails:
    """Account the reimbursement is paid into."""

    account_name: str
    ifsc_code: str
    account_number: str


@dataclass(frozen=True)
class DocumentRef:
    """Opaque reference to an uploaded supporting document."""

    filename: str
    url: str
    mimetype: str | None = None
    public_id: str | None = None


@dataclass(frozen=True)
class ReviewComment:
    """One entry of the audit trail. Immutable.

    Written once per successful transition; ``comment`` is kept verbatim.
    """

    from_status: RequestStatus
    to_status: RequestStatus
    actor_role: str
    comment: str | None
    created_at: datetime


@dataclass(frozen=True)
class ClaimSubmission:
    """Claim fields as submitted, before an application ID exists.

    ``applicant_type`` and ``reimbursement_type`` may be free text; they are
    normalized when the request is created.
    """

    applicant_type: ApplicantType | str | None
    reimbursement_type: ReimbursementType | str | None
    department: str
    academic_year: str
    amount: Decimal
    claimant: ClaimantDetails
    bank: BankDetails | None = None
    documents: tuple[DocumentRef, ...] = ()
    remarks: str = ""

    def identifier_input(self) -> IdentifierInput:
        return IdentifierInput(
            applicant_type=self.applicant_type,
            reimbursement_type=self.reimbursement_type,
            academic_year=self.academic_year,
            department=self.department,
        )


@dataclass(frozen=True)
class ReimbursementRequest:
    """Immutable snapshot of a reimbursement request.

    Contract:
        Frozen.  State changes produce a new instance via
        ``state_machine.apply_transition``; the old instance is untouched.

    Guarantees:
        ``created_at <= updated_at``.  ``version`` grows by one with every
        persisted change (transitions and owner edits alike).
    """

    application_id: str
    applicant_type: ApplicantType
    reimbursement_type: ReimbursementType
    department: str
    academic_year: str
    amount: Decimal
    claimant: ClaimantDetails
    created_at: datetime
    updated_at: datetime
    status: RequestStatus = RequestStatus.PENDING
    history: tuple[ReviewComment, ...] = ()
    version: int = 1
    documents: tuple[DocumentRef, ...] = field(default_factory=tuple)
    bank: BankDetails | None = None
    remarks: str = ""

    @property
    def is_terminal(self) -> bool:
        return is_terminal(self.status)

    @property
    def latest_comment(self) -> ReviewComment | None:
        return self.history[-1] if self.history else None
