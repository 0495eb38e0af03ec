"""Selectors for the reimbursement kernel (read side)."""

from reimbursement_kernel.selectors.request_selector import RequestSelector

__all__ = [
    "RequestSelector",
]
