"""
Application identifier allocation (``reimbursement_kernel.domain.identifiers``).

Responsibility
--------------
Derives the human-readable application ID
``{ApplicantPrefix}-{CategoryCode}-{Year}-{DeptCode}-{Sequence}`` from claim
attributes plus the IDs already present in the claim's bucket, and parses
such IDs back into their labelled parts.

Architecture position
---------------------
**Kernel domain layer**.  The only I/O boundary is the caller-supplied
``existing_ids_in_bucket`` callable; it is invoked exactly once per
allocation, before the sequence is chosen.

Invariants enforced
-------------------
* Sequence = max(existing trailing numbers in the bucket) + 1, starting at 1.
  Gaps left by deleted requests are never reused.
* Sequences are zero-padded to three digits; larger values simply grow.
* Uniqueness under concurrency is NOT decided here.  Two callers that read
  the same bucket compute the same candidate; the store's uniqueness check
  and the service-level retry (``RequestService.create_request``) resolve it.

Failure modes
-------------
* Bucket lookup raises -> the last four digits of the epoch milliseconds
  become the sequence text unchanged (leading zeros kept), ``degraded=True``,
  WARNING ``application_id_allocation_degraded``.  With
  ``degrade_on_lookup_failure=False`` the lookup error propagates instead.
* ``parse_application_id`` never raises; malformed input returns None.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable, Iterable

from reimbursement_kernel.domain.clock import Clock, SystemClock
from reimbursement_kernel.domain.codes import (
    applicant_label,
    applicant_prefix,
    category_code,
    category_label,
    department_code,
    department_label,
)
from reimbursement_kernel.exceptions import (
    AllocationDegradedError,
    MalformedIdentifierError,
)
from reimbursement_kernel.logging_config import get_logger

logger = get_logger("domain.identifiers")

SEGMENT_SEPARATOR = "-"
SEGMENT_COUNT = 5
SEQUENCE_WIDTH = 3
FALLBACK_SEQUENCE_WIDTH = 4

BucketLookup = Callable[[str], Iterable[str]]

_FOUR_DIGITS = re.compile(r"^[0-9]{4}$")
_FIRST_FOUR_DIGITS = re.compile(r"[0-9]{4}")


@dataclass(frozen=True)
class IdentifierInput:
    """The claim attributes that participate in an application ID."""

    applicant_type: object = None
    reimbursement_type: object = None
    academic_year: str | None = None
    department: str | None = None


@dataclass(frozen=True)
class AllocationResult:
    """Outcome of one allocation.

    ``degraded`` is True when the bucket lookup failed and the sequence came
    from the clock; ``degraded_reason`` then carries the typed error.
    """

    application_id: str
    prefix: str
    sequence: int
    degraded: bool = False
    degraded_reason: AllocationDegradedError | None = None


@dataclass(frozen=True)
class ParsedApplicationId:
    """Labelled segments of an application ID."""

    applicant_type: str
    category: str
    year: str
    department: str
    sequence: int
    type_prefix: str
    category_code: str
    department_code: str
    raw: str


def extract_year(academic_year: str | None, clock: Clock | None = None) -> str:
    """Four-digit year that participates in the ID.

    ``"2025-2026"`` -> ``"2025"``; ``"2026"`` -> ``"2026"``; otherwise the first
    four-digit run, else the current calendar year.
    """
    text = (academic_year or "").strip()
    if text:
        if SEGMENT_SEPARATOR in text:
            head = text.split(SEGMENT_SEPARATOR, 1)[0].strip()
            if _FOUR_DIGITS.match(head):
                return head
        elif _FOUR_DIGITS.match(text):
            return text
        match = _FIRST_FOUR_DIGITS.search(text)
        if match:
            return match.group(0)
    return str((clock or SystemClock()).now().year)


def bucket_prefix(claim: IdentifierInput, clock: Clock | None = None) -> str:
    """``"{type}-{category}-{year}-{dept}-"`` for the claim's bucket."""
    parts = (
        applicant_prefix(claim.applicant_type),
        category_code(claim.reimbursement_type),
        extract_year(claim.academic_year, clock),
        department_code(claim.department),
    )
    return SEGMENT_SEPARATOR.join(parts) + SEGMENT_SEPARATOR


def format_sequence(sequence: int) -> str:
    return str(sequence).zfill(SEQUENCE_WIDTH)


def next_sequence(prefix: str, existing_ids: Iterable[str]) -> int:
    """max(trailing number of IDs in the bucket) + 1, or 1 for an empty bucket.

    IDs outside the bucket (case-insensitive prefix test) and IDs whose last
    segment is not an integer are ignored.
    """
    folded = prefix.casefold()
    highest = 0
    for application_id in existing_ids:
        if not application_id or not application_id.casefold().startswith(folded):
            continue
        tail = application_id.rsplit(SEGMENT_SEPARATOR, 1)[-1]
        if tail.isascii() and tail.isdigit():
            highest = max(highest, int(tail))
    return highest + 1


def fallback_sequence_text(clock: Clock) -> str:
    """Last four digits of the epoch milliseconds, kept as written ("0042")."""
    return str(clock.epoch_millis())[-FALLBACK_SEQUENCE_WIDTH:].zfill(SEQUENCE_WIDTH)


def allocate_application_id(
    claim: IdentifierInput,
    existing_ids_in_bucket: BucketLookup,
    *,
    clock: Clock | None = None,
    degrade_on_lookup_failure: bool = True,
) -> AllocationResult:
    """
    Compute the next application ID for ``claim``.

    Preconditions:
        ``existing_ids_in_bucket(prefix)`` returns every stored ID beginning
        with ``prefix`` (case-insensitive).

    Postconditions:
        The returned ID parses back into five segments.  Under the normal
        path its sequence exceeds every sequence the lookup returned.

    Raises:
        Whatever the lookup raises, but only when
        ``degrade_on_lookup_failure`` is False.
    """
    clock = clock or SystemClock()
    prefix = bucket_prefix(claim, clock)

    try:
        existing = list(existing_ids_in_bucket(prefix))
    except Exception as exc:
        if not degrade_on_lookup_failure:
            raise
        sequence_text = fallback_sequence_text(clock)
        sequence = int(sequence_text)
        reason = AllocationDegradedError(prefix, f"{type(exc).__name__}: {exc}")
        application_id = prefix + sequence_text
        logger.warning(
            "application_id_allocation_degraded",
            extra={
                "prefix": prefix,
                "application_id": application_id,
                "error_code": reason.code,
                "cause": reason.cause,
            },
            exc_info=True,
        )
        return AllocationResult(
            application_id=application_id,
            prefix=prefix,
            sequence=sequence,
            degraded=True,
            degraded_reason=reason,
        )

    sequence = next_sequence(prefix, existing)
    application_id = prefix + format_sequence(sequence)
    logger.debug(
        "application_id_allocated",
        extra={
            "prefix": prefix,
            "application_id": application_id,
            "bucket_size": len(existing),
        },
    )
    return AllocationResult(
        application_id=application_id,
        prefix=prefix,
        sequence=sequence,
    )


def parse_application_id(application_id: object) -> ParsedApplicationId | None:
    """Split an ID into labelled parts; None when it is not five segments."""
    if not isinstance(application_id, str) or not application_id:
        return None
    parts = application_id.split(SEGMENT_SEPARATOR)
    if len(parts) != SEGMENT_COUNT:
        return None
    type_prefix, cat_code, year, dept_code, sequence_text = parts
    if not (sequence_text.isascii() and sequence_text.isdigit()):
        return None
    return ParsedApplicationId(
        applicant_type=applicant_label(type_prefix),
        category=category_label(cat_code),
        year=year,
        department=department_label(dept_code),
        sequence=int(sequence_text),
        type_prefix=type_prefix,
        category_code=cat_code,
        department_code=dept_code,
        raw=application_id,
    )


def parse_application_id_strict(application_id: str) -> ParsedApplicationId:
    """Like ``parse_application_id`` but raises MalformedIdentifierError."""
    parsed = parse_application_id(application_id)
    if parsed is None:
        raise MalformedIdentifierError(
            str(application_id),
            f"expected {SEGMENT_COUNT} '{SEGMENT_SEPARATOR}'-separated segments "
            "ending in a numeric sequence",
        )
    return parsed
