"""
Application ID allocation under concurrent submission.

A bare "max existing sequence + 1" read races: two submitters that read the
same bucket compute the same candidate.  These tests show the race exists
at the allocator level and that RequestService never lets it through.

Run with: pytest tests/concurrency/test_allocation_race.py -v
Skip with: pytest -m "not slow_locks"
"""

from concurrent.futures import ThreadPoolExecutor
from contextlib import nullcontext
from threading import Barrier

import pytest

from reimbursement_kernel.domain.identifiers import allocate_application_id
from reimbursement_kernel.domain.state_machine import create_request
from reimbursement_kernel.exceptions import DuplicateApplicationIdError
from reimbursement_kernel.services.request_service import RequestService
from reimbursement_kernel.services.request_store import InMemoryRequestStore
from tests.factories import make_claim

pytestmark = pytest.mark.slow_locks

THREADS = 8


def _expected_ids(count):
    return {f"S-NPT-2025-IT-{n:03d}" for n in range(1, count + 1)}


class TestRawAllocatorRace:
    """The allocator alone is read-then-compute; uniqueness is the store's job."""

    def test_two_readers_compute_the_same_candidate(self, memory_store, deterministic_clock):
        barrier = Barrier(2)

        def lookup_then_wait(prefix):
            ids = memory_store.find_application_ids(prefix)
            barrier.wait(timeout=10)
            return ids

        def submit():
            allocation = allocate_application_id(
                make_claim().identifier_input(), lookup_then_wait, clock=deterministic_clock,
            )
            request = create_request(make_claim(), allocation.application_id, clock=deterministic_clock)
            try:
                memory_store.insert(request)
            except DuplicateApplicationIdError:
                return ("duplicate", allocation.application_id)
            return ("inserted", allocation.application_id)

        with ThreadPoolExecutor(max_workers=2) as pool:
            results = [f.result(timeout=30) for f in [pool.submit(submit) for _ in range(2)]]

        assert {application_id for _, application_id in results} == {"S-NPT-2025-IT-001"}
        assert sorted(outcome for outcome, _ in results) == ["duplicate", "inserted"]
        assert len(memory_store) == 1


class TestServiceAllocationInMemory:

    def test_concurrent_creates_get_distinct_ids(self, service, memory_store):
        barrier = Barrier(THREADS)

        def submit(n):
            barrier.wait(timeout=10)
            return service.create_request(make_claim(user_id=f"student-{n:03d}")).application_id

        with ThreadPoolExecutor(max_workers=THREADS) as pool:
            ids = [f.result(timeout=30) for f in [pool.submit(submit, n) for n in range(THREADS)]]

        assert len(ids) == len(set(ids))
        assert set(ids) == _expected_ids(THREADS)
        assert len(memory_store) == THREADS

    def test_unlocked_store_still_unique(self, deterministic_clock):
        """Without the bucket lock, the insert-time check plus retry keeps IDs unique."""
        class UnlockedStore(InMemoryRequestStore):
            def allocation_lock(self, prefix):
                return nullcontext()

        store = UnlockedStore()
        service = RequestService(store, deterministic_clock, max_allocation_attempts=THREADS + 2)
        barrier = Barrier(THREADS)

        def submit(n):
            barrier.wait(timeout=10)
            return service.create_request(make_claim(user_id=f"student-{n:03d}")).application_id

        with ThreadPoolExecutor(max_workers=THREADS) as pool:
            ids = [f.result(timeout=30) for f in [pool.submit(submit, n) for n in range(THREADS)]]

        assert set(ids) == _expected_ids(THREADS)


class TestServiceAllocationSql:

    def test_concurrent_creates_get_distinct_ids(self, sql_store, deterministic_clock):
        service = RequestService(sql_store, deterministic_clock, max_allocation_attempts=THREADS + 2)
        barrier = Barrier(THREADS)

        def submit(n):
            barrier.wait(timeout=10)
            return service.create_request(make_claim(user_id=f"student-{n:03d}")).application_id

        with ThreadPoolExecutor(max_workers=THREADS) as pool:
            ids = [f.result(timeout=60) for f in [pool.submit(submit, n) for n in range(THREADS)]]

        assert len(ids) == len(set(ids))
        assert set(ids) == _expected_ids(THREADS)
        assert sorted(sql_store.find_application_ids("S-NPT-2025-IT-")) == sorted(ids)
