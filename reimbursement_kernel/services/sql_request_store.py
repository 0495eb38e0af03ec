"""
SqlRequestStore -- RequestStore over the SQLAlchemy models.

Responsibility:
    Persists reimbursement requests, their review history and document
    references.  Each operation runs in its own short transaction opened
    from the injected session factory, so one store instance can be shared
    between threads.

Architecture position:
    Kernel > Services -- imperative shell.  Reads go through
    RequestSelector; writes go through the ORM so the append-only listeners
    in db/immutability.py always fire.

Invariants enforced:
    - UNIQUE(application_id): a colliding INSERT surfaces as
      DuplicateApplicationIdError, which the request service retries.
    - Optimistic concurrency: the mapper's version column turns every
      UPDATE into ``... WHERE version = :loaded``; a lost race surfaces as
      ConcurrentModificationError.
    - History is append-only: new ReviewCommentModel rows are added after
      the stored ones; existing rows are never touched.

Failure modes:
    - RequestNotFoundError on update/delete of an unknown ID.
    - ImmutabilityViolationError from the ORM listeners (terminal request,
      rewritten history).
    - Other IntegrityErrors (check constraints) propagate unchanged.
"""

from __future__ import annotations

from collections.abc import Iterable
from contextlib import nullcontext
from typing import ContextManager

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from reimbursement_kernel.db.engine import session_scope
from reimbursement_kernel.domain.request import ReimbursementRequest
from reimbursement_kernel.domain.workflow import RequestStatus
from reimbursement_kernel.exceptions import (
    ConcurrentModificationError,
    DuplicateApplicationIdError,
    RequestNotFoundError,
)
from reimbursement_kernel.logging_config import get_logger
from reimbursement_kernel.models.request import (
    ReimbursementRequestModel,
    RequestDocumentModel,
    ReviewCommentModel,
)
from reimbursement_kernel.selectors.request_selector import RequestSelector
from reimbursement_kernel.services.request_store import check_history_appended

logger = get_logger("services.sql_request_store")


class SqlRequestStore:
    """Database-backed RequestStore.

    Contract:
        ``session_factory`` produces sessions bound to an engine whose schema
        was created with ``create_tables()``.
    """

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    def find_application_ids(self, prefix: str) -> list[str]:
        with session_scope(self._session_factory) as session:
            return RequestSelector(session).application_ids_with_prefix(prefix)

    def allocation_lock(self, prefix: str) -> ContextManager[None]:
        # Cross-process uniqueness comes from the UNIQUE constraint.
        return nullcontext()

    def insert(self, request: ReimbursementRequest) -> None:
        try:
            with session_scope(self._session_factory) as session:
                session.add(ReimbursementRequestModel.from_dto(request))
        except IntegrityError as exc:
            if self._exists(request.application_id):
                logger.info(
                    "application_id_duplicate_rejected",
                    extra={"application_id": request.application_id},
                )
                raise DuplicateApplicationIdError(request.application_id) from exc
            raise

    def _exists(self, application_id: str) -> bool:
        with session_scope(self._session_factory) as session:
            return RequestSelector(session).get_model(application_id) is not None

    def get(self, application_id: str) -> ReimbursementRequest | None:
        with session_scope(self._session_factory) as session:
            return RequestSelector(session).get(application_id)

    def update(self, request: ReimbursementRequest, expected_version: int) -> None:
        try:
            with session_scope(self._session_factory) as session:
                model = RequestSelector(session).get_model(request.application_id)
                if model is None:
                    raise RequestNotFoundError(request.application_id)
                if model.version != expected_version:
                    raise ConcurrentModificationError(
                        request.application_id, expected_version, model.version,
                    )

                stored = model.to_dto()
                check_history_appended(stored, request)

                model.status = request.status.value
                model.version = request.version
                model.updated_at = request.updated_at
                model.apply_claim_fields(request)

                for position in range(len(stored.history), len(request.history)):
                    model.comments.append(
                        ReviewCommentModel.from_dto(request.history[position], position + 1)
                    )

                if request.documents != stored.documents:
                    model.documents = [
                        RequestDocumentModel.from_dto(doc, position)
                        for position, doc in enumerate(request.documents, start=1)
                    ]
        except StaleDataError as exc:
            logger.info(
                "request_version_conflict",
                extra={
                    "application_id": request.application_id,
                    "expected_version": expected_version,
                },
            )
            raise ConcurrentModificationError(
                request.application_id, expected_version,
            ) from exc

    def delete(self, application_id: str) -> None:
        with session_scope(self._session_factory) as session:
            model = RequestSelector(session).get_model(application_id)
            if model is None:
                raise RequestNotFoundError(application_id)
            session.delete(model)

    def list_by_status(self, statuses: Iterable[RequestStatus]) -> list[ReimbursementRequest]:
        with session_scope(self._session_factory) as session:
            return RequestSelector(session).list_by_status(statuses)

    def list_by_claimant(self, user_id: str) -> list[ReimbursementRequest]:
        with session_scope(self._session_factory) as session:
            return RequestSelector(session).list_by_claimant(user_id)
