"""ORM models for the reimbursement kernel."""

from reimbursement_kernel.models.request import (
    ReimbursementRequestModel,
    RequestDocumentModel,
    ReviewCommentModel,
)

__all__ = [
    "ReimbursementRequestModel",
    "RequestDocumentModel",
    "ReviewCommentModel",
]
