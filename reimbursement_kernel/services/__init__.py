"""Services: the imperative shell around the reimbursement domain."""

from reimbursement_kernel.services.claim_validation import claim_errors, validate_claim
from reimbursement_kernel.services.request_service import RequestService
from reimbursement_kernel.services.request_store import InMemoryRequestStore, RequestStore
from reimbursement_kernel.services.sql_request_store import SqlRequestStore

__all__ = [
    "RequestService",
    "RequestStore",
    "InMemoryRequestStore",
    "SqlRequestStore",
    "claim_errors",
    "validate_claim",
]
