"""
Request storage contract and the in-memory implementation.

Responsibility:
    ``RequestStore`` is the persistence boundary the request service talks
    to.  ``InMemoryRequestStore`` is a thread-safe implementation for tests
    and single-process use; ``SqlRequestStore`` (sql_request_store.py) is the
    database-backed one.

Invariants enforced (both implementations):
    - insert() rejects an application ID that is already stored
      (DuplicateApplicationIdError); nothing is overwritten.
    - update() only succeeds when the stored version equals
      ``expected_version`` (ConcurrentModificationError otherwise).
    - Stored review history is append-only, and terminal requests are never
      changed or deleted (ImmutabilityViolationError).

Concurrency:
    InMemoryRequestStore guards its dict with one lock, and additionally
    hands out a per-bucket ``allocation_lock`` so read-then-insert ID
    allocation inside one process is serialized per bucket.
"""

from __future__ import annotations

import threading
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from typing import ContextManager, Protocol

from reimbursement_kernel.domain.request import ReimbursementRequest
from reimbursement_kernel.domain.workflow import RequestStatus, is_terminal
from reimbursement_kernel.exceptions import (
    ConcurrentModificationError,
    DuplicateApplicationIdError,
    ImmutabilityViolationError,
    RequestNotFoundError,
)


class RequestStore(Protocol):
    """Persistence operations the request service depends on."""

    def find_application_ids(self, prefix: str) -> list[str]:
        """Stored IDs starting with ``prefix`` (case-insensitive)."""
        ...

    def allocation_lock(self, prefix: str) -> ContextManager[None]:
        """Context manager held around allocate-then-insert for one bucket."""
        ...

    def insert(self, request: ReimbursementRequest) -> None:
        ...

    def get(self, application_id: str) -> ReimbursementRequest | None:
        ...

    def update(self, request: ReimbursementRequest, expected_version: int) -> None:
        ...

    def delete(self, application_id: str) -> None:
        ...

    def list_by_status(self, statuses: Iterable[RequestStatus]) -> list[ReimbursementRequest]:
        ...

    def list_by_claimant(self, user_id: str) -> list[ReimbursementRequest]:
        ...


def _newest_first(requests: Iterable[ReimbursementRequest]) -> list[ReimbursementRequest]:
    return sorted(
        requests,
        key=lambda r: (r.created_at, r.application_id),
        reverse=True,
    )


def check_history_appended(
    stored: ReimbursementRequest, incoming: ReimbursementRequest
) -> None:
    """Raise unless ``incoming.history`` extends ``stored.history`` unchanged."""
    existing = len(stored.history)
    if incoming.history[:existing] != stored.history:
        raise ImmutabilityViolationError(
            entity_type="ReviewComment",
            entity_id=stored.application_id,
            reason="Review history entries cannot be rewritten or removed",
        )


class InMemoryRequestStore:
    """Dict-backed RequestStore.

    Guarantees:
        - All reads and writes happen under one lock.
        - ``allocation_lock(prefix)`` serializes callers of the same bucket.
          A bucket's lock exists only while someone holds or waits on it,
          so idle buckets cost nothing.
    """

    def __init__(self) -> None:
        self._requests: dict[str, ReimbursementRequest] = {}
        self._lock = threading.Lock()
        # bucket -> [lock, callers holding or waiting on it]
        self._bucket_locks: dict[str, list] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._requests)

    def find_application_ids(self, prefix: str) -> list[str]:
        folded = prefix.casefold()
        with self._lock:
            return [
                application_id
                for application_id in self._requests
                if application_id.casefold().startswith(folded)
            ]

    @contextmanager
    def allocation_lock(self, prefix: str) -> Iterator[None]:
        key = prefix.casefold()
        with self._lock:
            entry = self._bucket_locks.setdefault(key, [threading.Lock(), 0])
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._lock:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._bucket_locks[key]

    def insert(self, request: ReimbursementRequest) -> None:
        with self._lock:
            if request.application_id in self._requests:
                raise DuplicateApplicationIdError(request.application_id)
            self._requests[request.application_id] = request

    def get(self, application_id: str) -> ReimbursementRequest | None:
        with self._lock:
            return self._requests.get(application_id)

    def update(self, request: ReimbursementRequest, expected_version: int) -> None:
        with self._lock:
            stored = self._requests.get(request.application_id)
            if stored is None:
                raise RequestNotFoundError(request.application_id)
            if stored.version != expected_version:
                raise ConcurrentModificationError(
                    request.application_id, expected_version, stored.version,
                )
            if is_terminal(stored.status):
                raise ImmutabilityViolationError(
                    entity_type="ReimbursementRequest",
                    entity_id=stored.application_id,
                    reason=f"Request is final in status {stored.status.value}",
                )
            check_history_appended(stored, request)
            self._requests[request.application_id] = request

    def delete(self, application_id: str) -> None:
        with self._lock:
            stored = self._requests.get(application_id)
            if stored is None:
                raise RequestNotFoundError(application_id)
            if is_terminal(stored.status):
                raise ImmutabilityViolationError(
                    entity_type="ReimbursementRequest",
                    entity_id=application_id,
                    reason=f"Request is final in status {stored.status.value}",
                )
            del self._requests[application_id]

    def list_by_status(self, statuses: Iterable[RequestStatus]) -> list[ReimbursementRequest]:
        wanted = {RequestStatus(s) for s in statuses}
        with self._lock:
            matches = [r for r in self._requests.values() if r.status in wanted]
        return _newest_first(matches)

    def list_by_claimant(self, user_id: str) -> list[ReimbursementRequest]:
        with self._lock:
            matches = [
                r for r in self._requests.values() if r.claimant.user_id == user_id
            ]
        return _newest_first(matches)
