"""
Claim validation -- field checks applied before a claim becomes a request.

Responsibility:
    Collects every field error in a submitted claim and raises them together
    as one ClaimValidationError, so a claimant sees all problems at once.

Architecture position:
    Kernel > Services.  The domain core accepts any claim (lenient defaults
    for unknown types); these checks are the service-level gate in front
    of it.

Rules:
    - claimant user id, name and email are required; email must look like
      ``local@domain.tld``.
    - Student claims (including claims whose applicant type is unknown and
      therefore recorded as Student) need a student id and division.
    - Bank details, when present: IFSC ``^[A-Z]{4}0[A-Z0-9]{6}$``, account
      number of 9 to 18 digits, account name required.
    - academic year, when given: ``YYYY`` or ``YYYY-YYYY``.
    - amount must be a finite, non-negative Decimal with at most 12 digits
      before the point and 2 after, so every store keeps it exactly.
    - strict mode only: applicant type and reimbursement type must be known.
"""

import re
from decimal import Decimal

from reimbursement_kernel.domain.codes import (
    ApplicantType,
    is_known_reimbursement_type,
    normalize_applicant_type,
)
from reimbursement_kernel.domain.request import BankDetails, ClaimSubmission
from reimbursement_kernel.exceptions import ClaimValidationError

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
IFSC_CODE_PATTERN = re.compile(r"^[A-Z]{4}0[A-Z0-9]{6}$")
ACCOUNT_NUMBER_PATTERN = re.compile(r"^[0-9]{9,18}$")
ACADEMIC_YEAR_PATTERN = re.compile(r"^[0-9]{4}(-[0-9]{4})?$")

# Stored as NUMERIC(14, 2).
AMOUNT_INTEGER_DIGITS = 12
AMOUNT_QUANTUM = Decimal("0.01")


def _error(field: str, message: str) -> dict:
    return {"field": field, "message": message}


def _bank_errors(bank: BankDetails) -> list[dict]:
    errors = []
    if not (bank.account_name or "").strip():
        errors.append(_error("bank.account_name", "Account name is required"))
    if not IFSC_CODE_PATTERN.match(bank.ifsc_code or ""):
        errors.append(_error("bank.ifsc_code", "IFSC code must look like ABCD0123456"))
    if not ACCOUNT_NUMBER_PATTERN.match(bank.account_number or ""):
        errors.append(_error("bank.account_number", "Account number must be 9 to 18 digits"))
    return errors


def claim_errors(claim: ClaimSubmission, *, strict_types: bool = False) -> list[dict]:
    """Return every field error in ``claim`` (empty list when valid)."""
    errors: list[dict] = []
    claimant = claim.claimant

    if not (claimant.user_id or "").strip():
        errors.append(_error("claimant.user_id", "User id is required"))
    if not (claimant.name or "").strip():
        errors.append(_error("claimant.name", "Name is required"))
    if not (claimant.email or "").strip():
        errors.append(_error("claimant.email", "Email is required"))
    elif not EMAIL_PATTERN.match(claimant.email.strip()):
        errors.append(_error("claimant.email", "Email address is not valid"))

    applicant_type = normalize_applicant_type(claim.applicant_type)
    if applicant_type is None and strict_types:
        errors.append(_error("applicant_type", f"Unknown applicant type {claim.applicant_type!r}"))
    if (applicant_type or ApplicantType.STUDENT) is ApplicantType.STUDENT:
        if not (claimant.student_id or "").strip():
            errors.append(_error("claimant.student_id", "Student id is required for student claims"))
        if not (claimant.division or "").strip():
            errors.append(_error("claimant.division", "Division is required for student claims"))

    if strict_types and not is_known_reimbursement_type(claim.reimbursement_type):
        errors.append(
            _error("reimbursement_type", f"Unknown reimbursement type {claim.reimbursement_type!r}")
        )

    year = (claim.academic_year or "").strip()
    if year and not ACADEMIC_YEAR_PATTERN.match(year):
        errors.append(_error("academic_year", "Academic year must be YYYY or YYYY-YYYY"))

    amount = claim.amount
    if not isinstance(amount, Decimal) or not amount.is_finite():
        errors.append(_error("amount", "Amount must be a finite decimal"))
    elif amount < 0:
        errors.append(_error("amount", "Amount cannot be negative"))
    elif amount.adjusted() >= AMOUNT_INTEGER_DIGITS:
        errors.append(
            _error("amount", f"Amount cannot exceed {AMOUNT_INTEGER_DIGITS} digits before the decimal point")
        )
    elif amount != amount.quantize(AMOUNT_QUANTUM):
        errors.append(_error("amount", "Amount cannot have more than 2 decimal places"))

    if claim.bank is not None:
        errors.extend(_bank_errors(claim.bank))

    return errors


def validate_claim(claim: ClaimSubmission, *, strict_types: bool = False) -> None:
    """Raise ClaimValidationError listing every problem with ``claim``."""
    errors = claim_errors(claim, strict_types=strict_types)
    if errors:
        raise ClaimValidationError(errors)
