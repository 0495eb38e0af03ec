"""
Identifier code tables (``reimbursement_kernel.domain.codes``).

Responsibility
--------------
Closed vocabularies for claimant type and reimbursement category, and the
immutable lookup tables that map free-text claim attributes onto the short
codes embedded in application identifiers.

Architecture position
---------------------
**Kernel domain layer** -- pure functions over constant tables.  ZERO I/O.

Invariants enforced
-------------------
* Tables are ``MappingProxyType`` constants; nothing mutates them at runtime.
* Fuzzy matching is deterministic: exact match on the normalized input
  first, then a substring scan in table-declaration order.
* Every code produced here is free of ``-`` so identifiers always split into
  exactly five segments.
"""

from __future__ import annotations

import re
from enum import Enum
from types import MappingProxyType
from typing import Mapping


class ApplicantType(str, Enum):
    """Who submitted the claim."""

    STUDENT = "Student"
    FACULTY = "Faculty"
    COORDINATOR = "Coordinator"
    HOD = "HOD"


class ReimbursementType(str, Enum):
    """Normalized reimbursement category."""

    NPTEL = "NPTEL"
    FDP = "FDP"
    CONFERENCE = "Conference"
    WORKSHOP = "Workshop"
    TRAVEL = "Travel"
    LAB_MATERIALS = "Lab Materials"
    OTHER = "Other"


DEFAULT_APPLICANT_PREFIX = "S"
DEFAULT_CATEGORY_CODE = "NPT"
FALLBACK_CATEGORY_CODE = "OTH"
MISSING_DEPARTMENT_CODE = "UNK"
UNKNOWN_LABEL = "Unknown"

APPLICANT_PREFIXES: Mapping[ApplicantType, str] = MappingProxyType({
    ApplicantType.STUDENT: "S",
    ApplicantType.FACULTY: "F",
    ApplicantType.COORDINATOR: "C",
    ApplicantType.HOD: "H",
})

# Keys are normalized (lower-case, trimmed).  Order matters for the
# substring scan.
CATEGORY_CODES: Mapping[str, str] = MappingProxyType({
    "nptel": "NPT",
    "fdp": "FDP",
    "faculty development program": "FDP",
    "conference": "CNF",
    "workshop": "WKS",
    "travel": "TRV",
    "lab materials": "LAB",
    "labmaterials": "LAB",
    "other": "OTH",
})

CATEGORY_TYPES: Mapping[str, ReimbursementType] = MappingProxyType({
    "NPT": ReimbursementType.NPTEL,
    "FDP": ReimbursementType.FDP,
    "CNF": ReimbursementType.CONFERENCE,
    "WKS": ReimbursementType.WORKSHOP,
    "TRV": ReimbursementType.TRAVEL,
    "LAB": ReimbursementType.LAB_MATERIALS,
    "OTH": ReimbursementType.OTHER,
})

DEPARTMENT_CODES: Mapping[str, str] = MappingProxyType({
    # Computer Engineering
    "computer engineering": "CE",
    "computer engg": "CE",
    "comps": "CE",
    "comp": "CE",
    "ce": "CE",
    # Information Technology
    "information technology": "IT",
    "it": "IT",
    "infotech": "IT",
    # CSE AI and ML
    "cse ai and ml": "AIML",
    "cse aiml": "AIML",
    "aiml": "AIML",
    "ai ml": "AIML",
    "artificial intelligence": "AIML",
    # CSE Data Science
    "cse data science": "DS",
    "cse ds": "DS",
    "data science": "DS",
    "ds": "DS",
    # Civil Engineering
    "civil engineering": "CVL",
    "civil engg": "CVL",
    "civil": "CVL",
    "cvl": "CVL",
    # Mechanical Engineering
    "mechanical engineering": "MECH",
    "mechanical engg": "MECH",
    "mechanical": "MECH",
    "mech": "MECH",
    # Fallback
    "other": "OTH",
    "unknown": "UNK",
})

DEPARTMENT_LABELS: Mapping[str, str] = MappingProxyType({
    "CE": "Computer Engineering",
    "IT": "Information Technology",
    "AIML": "CSE AI and ML",
    "DS": "CSE Data Science",
    "CVL": "Civil Engineering",
    "MECH": "Mechanical Engineering",
    "OTH": "Other",
    "UNK": UNKNOWN_LABEL,
})

_NON_ALNUM = re.compile(r"[^0-9A-Za-z]")


def _normalize(value: object) -> str:
    if value is None:
        return ""
    if isinstance(value, Enum):
        value = value.value
    return str(value).strip().lower()


def match_code(value: object, table: Mapping[str, str]) -> str | None:
    """Look ``value`` up in ``table``: exact, then substring either way.

    Returns None for blank input or when nothing matches.
    """
    key = _normalize(value)
    if not key:
        return None
    if key in table:
        return table[key]
    for candidate, code in table.items():
        if key in candidate or candidate in key:
            return code
    return None


def normalize_applicant_type(value: object) -> ApplicantType | None:
    """Map free text or an enum onto ApplicantType (case-insensitive), or None."""
    if isinstance(value, ApplicantType):
        return value
    key = _normalize(value)
    for applicant_type in ApplicantType:
        if applicant_type.value.lower() == key:
            return applicant_type
    return None


def applicant_prefix(applicant_type: object) -> str:
    """Single-letter prefix; unknown or missing applicant types map to ``S``."""
    normalized = normalize_applicant_type(applicant_type)
    if normalized is None:
        return DEFAULT_APPLICANT_PREFIX
    return APPLICANT_PREFIXES[normalized]


def category_code(reimbursement_type: object) -> str:
    """Three-letter category code.

    Missing input defaults to NPTEL; unmatched free text falls back to OTH.
    """
    if not _normalize(reimbursement_type):
        return DEFAULT_CATEGORY_CODE
    return match_code(reimbursement_type, CATEGORY_CODES) or FALLBACK_CATEGORY_CODE


def normalize_reimbursement_type(value: object) -> ReimbursementType:
    """Free text -> ReimbursementType using the category matching rules."""
    if isinstance(value, ReimbursementType):
        return value
    return CATEGORY_TYPES[category_code(value)]


def is_known_reimbursement_type(value: object) -> bool:
    """True when ``value`` matches a category without falling back."""
    if isinstance(value, ReimbursementType):
        return True
    return match_code(value, CATEGORY_CODES) is not None


def department_code(department: object) -> str:
    """Department code from a display name.

    Unmatched multi-word names become their initials (max 4); unmatched
    single words are truncated to 4 characters.  Missing -> ``UNK``.
    """
    text = "" if department is None else str(department).strip()
    if not text:
        return MISSING_DEPARTMENT_CODE

    code = match_code(text, DEPARTMENT_CODES)
    if code is not None:
        return code

    words = [_NON_ALNUM.sub("", w) for w in text.split()]
    words = [w for w in words if w]
    if len(words) > 1:
        return "".join(w[0] for w in words).upper()[:4]
    if words:
        return words[0][:4].upper()
    return MISSING_DEPARTMENT_CODE


def department_scope_key(department: object) -> str:
    """Key used to decide whether two department names are the same department.

    Names listed in DEPARTMENT_CODES (exact, case-insensitive) collapse to
    their code, so "IT" and "Information Technology" agree.  Anything else
    is compared as its case-folded, whitespace-collapsed name; the substring
    scan used for identifiers never applies here.  Blank -> "".
    """
    text = " ".join(_normalize(department).split())
    if not text:
        return ""
    return DEPARTMENT_CODES.get(text, text.casefold())


def applicant_label(prefix: str) -> str:
    for applicant_type, code in APPLICANT_PREFIXES.items():
        if code == prefix:
            return applicant_type.value
    return UNKNOWN_LABEL


def category_label(code: str) -> str:
    reimbursement_type = CATEGORY_TYPES.get(code)
    return reimbursement_type.value if reimbursement_type else UNKNOWN_LABEL


def department_label(code: str) -> str:
    return DEPARTMENT_LABELS.get(code, UNKNOWN_LABEL)
