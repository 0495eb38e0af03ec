"""
Module: reimbursement_kernel.selectors.request_selector
Responsibility: Read queries over reimbursement requests: lookup by
    application ID, bucket scans for ID allocation, reviewer queues and
    claimant listings.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Bucket scans are case-insensitive on the application ID prefix, the
      same rule ``next_sequence`` applies.
    - Listings are ordered newest first, ties broken by application ID, so
      results are deterministic.
"""

from collections.abc import Iterable

from sqlalchemy import func, select

from reimbursement_kernel.domain.request import ReimbursementRequest
from reimbursement_kernel.domain.workflow import RequestStatus
from reimbursement_kernel.models.request import ReimbursementRequestModel
from reimbursement_kernel.selectors.base import BaseSelector


class RequestSelector(BaseSelector[ReimbursementRequestModel]):
    """Read-only queries over ``reimbursement_requests``."""

    def get_model(self, application_id: str) -> ReimbursementRequestModel | None:
        return self.session.execute(
            select(ReimbursementRequestModel).where(
                ReimbursementRequestModel.application_id == application_id
            )
        ).scalar_one_or_none()

    def get(self, application_id: str) -> ReimbursementRequest | None:
        model = self.get_model(application_id)
        return model.to_dto() if model is not None else None

    def application_ids_with_prefix(self, prefix: str) -> list[str]:
        """Every stored application ID in the bucket ``prefix``."""
        stmt = select(ReimbursementRequestModel.application_id).where(
            func.lower(ReimbursementRequestModel.application_id).startswith(
                prefix.lower(), autoescape=True
            )
        )
        return list(self.session.execute(stmt).scalars())

    def list_by_status(
        self, statuses: Iterable[RequestStatus]
    ) -> list[ReimbursementRequest]:
        values = sorted(RequestStatus(s).value for s in statuses)
        if not values:
            return []
        stmt = (
            select(ReimbursementRequestModel)
            .where(ReimbursementRequestModel.status.in_(values))
            .order_by(
                ReimbursementRequestModel.created_at.desc(),
                ReimbursementRequestModel.application_id.desc(),
            )
        )
        return [m.to_dto() for m in self.session.execute(stmt).scalars()]

    def list_by_claimant(self, user_id: str) -> list[ReimbursementRequest]:
        stmt = (
            select(ReimbursementRequestModel)
            .where(ReimbursementRequestModel.claimant_user_id == user_id)
            .order_by(
                ReimbursementRequestModel.created_at.desc(),
                ReimbursementRequestModel.application_id.desc(),
            )
        )
        return [m.to_dto() for m in self.session.execute(stmt).scalars()]
