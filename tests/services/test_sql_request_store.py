"""
SqlRequestStore and RequestService over a real database.

Each test gets a fresh SQLite file (or DATABASE_URL when set) via the
db_engine fixture.
"""

from dataclasses import replace
from decimal import Decimal

import pytest

from reimbursement_kernel.domain.authorization import ActorRole
from reimbursement_kernel.domain.request import DocumentRef
from reimbursement_kernel.domain.state_machine import apply_transition, create_request
from reimbursement_kernel.domain.workflow import RequestStatus
from reimbursement_kernel.exceptions import (
    ClaimValidationError,
    ConcurrentModificationError,
    DuplicateApplicationIdError,
    ImmutabilityViolationError,
    RequestNotFoundError,
)
from reimbursement_kernel.services.request_service import RequestService
from tests.factories import make_claim

S = RequestStatus


class TestInsertAndGet:

    def test_round_trip(self, sql_store, student_claim, deterministic_clock):
        request = create_request(student_claim, "S-NPT-2025-IT-001", clock=deterministic_clock)
        sql_store.insert(request)

        loaded = sql_store.get("S-NPT-2025-IT-001")
        assert loaded == request
        assert loaded.amount == Decimal("1500.00")
        assert loaded.created_at.tzinfo is not None
        assert loaded.documents[0].public_id == "reimbursements/nptel-certificate"

    def test_missing_returns_none(self, sql_store):
        assert sql_store.get("S-NPT-2025-IT-404") is None

    def test_duplicate_application_id(self, sql_store, deterministic_clock, captured_logs):
        sql_store.insert(create_request(make_claim(), "S-NPT-2025-IT-001", clock=deterministic_clock))
        with pytest.raises(DuplicateApplicationIdError):
            sql_store.insert(create_request(make_claim(), "S-NPT-2025-IT-001", clock=deterministic_clock))
        assert any(
            r["message"] == "application_id_duplicate_rejected" for r in captured_logs()
        )

    def test_bucket_lookup(self, sql_store, deterministic_clock):
        for application_id in ("S-NPT-2025-IT-001", "S-NPT-2025-IT-002", "F-NPT-2025-IT-001"):
            sql_store.insert(create_request(make_claim(), application_id, clock=deterministic_clock))
        assert sorted(sql_store.find_application_ids("S-NPT-2025-IT-")) == [
            "S-NPT-2025-IT-001",
            "S-NPT-2025-IT-002",
        ]
        assert sql_store.find_application_ids("s-npt-2025-it-") != []
        assert sql_store.find_application_ids("S-NPT-2024-IT-") == []


class TestUpdate:

    def test_transition_persists_history(self, sql_store, student_claim, deterministic_clock):
        request = create_request(student_claim, "S-NPT-2025-IT-001", clock=deterministic_clock)
        sql_store.insert(request)

        moved = apply_transition(
            request, S.UNDER_COORDINATOR, ActorRole.COORDINATOR, "Looks complete",
            clock=deterministic_clock,
        )
        sql_store.update(moved, expected_version=1)
        forwarded = apply_transition(
            moved, S.UNDER_HOD, ActorRole.COORDINATOR, clock=deterministic_clock,
        )
        sql_store.update(forwarded, expected_version=2)

        loaded = sql_store.get(request.application_id)
        assert loaded == forwarded
        assert loaded.version == 3
        assert [h.comment for h in loaded.history] == ["Looks complete", None]

    def test_stale_version(self, sql_store, student_claim, deterministic_clock):
        request = create_request(student_claim, "S-NPT-2025-IT-001", clock=deterministic_clock)
        sql_store.insert(request)
        moved = apply_transition(request, S.UNDER_COORDINATOR, ActorRole.COORDINATOR, clock=deterministic_clock)
        sql_store.update(moved, expected_version=1)

        rejected = apply_transition(request, S.REJECTED, ActorRole.COORDINATOR, clock=deterministic_clock)
        with pytest.raises(ConcurrentModificationError) as exc_info:
            sql_store.update(rejected, expected_version=1)
        assert exc_info.value.actual_version == 2
        assert sql_store.get(request.application_id).status is S.UNDER_COORDINATOR

    def test_unknown_request(self, sql_store, student_claim, deterministic_clock):
        request = create_request(student_claim, "S-NPT-2025-IT-001", clock=deterministic_clock)
        with pytest.raises(RequestNotFoundError):
            sql_store.update(request, expected_version=1)

    def test_history_rewrite_blocked(self, sql_store, student_claim, deterministic_clock):
        request = create_request(student_claim, "S-NPT-2025-IT-001", clock=deterministic_clock)
        sql_store.insert(request)
        moved = apply_transition(request, S.UNDER_COORDINATOR, ActorRole.COORDINATOR, "ok", clock=deterministic_clock)
        sql_store.update(moved, expected_version=1)

        tampered = replace(
            moved,
            history=(replace(moved.history[0], comment="tampered"),),
            version=3,
        )
        with pytest.raises(ImmutabilityViolationError):
            sql_store.update(tampered, expected_version=2)
        assert sql_store.get(request.application_id).history[0].comment == "ok"

    def test_terminal_request_frozen(self, sql_store, student_claim, deterministic_clock, captured_logs):
        request = create_request(student_claim, "S-NPT-2025-IT-001", clock=deterministic_clock)
        sql_store.insert(request)
        rejected = apply_transition(request, S.REJECTED, ActorRole.COORDINATOR, clock=deterministic_clock)
        sql_store.update(rejected, expected_version=1)

        with pytest.raises(ImmutabilityViolationError):
            sql_store.update(replace(rejected, remarks="reopen", version=3), expected_version=2)
        with pytest.raises(ImmutabilityViolationError):
            sql_store.delete(request.application_id)

        assert sql_store.get(request.application_id) == rejected
        blocked = [r for r in captured_logs() if r["message"] == "immutability_violation_blocked"]
        assert {r["operation"] for r in blocked} == {"UPDATE", "DELETE"}

    def test_documents_replaced(self, sql_store, student_claim, deterministic_clock):
        request = create_request(student_claim, "S-NPT-2025-IT-001", clock=deterministic_clock)
        sql_store.insert(request)

        docs = (
            DocumentRef(filename="a.pdf", url="https://files.example.edu/a.pdf"),
            DocumentRef(filename="b.png", url="https://files.example.edu/b.png", mimetype="image/png"),
        )
        edited = replace(request, documents=docs, amount=Decimal("1750.50"), version=2)
        sql_store.update(edited, expected_version=1)

        loaded = sql_store.get(request.application_id)
        assert loaded.documents == docs
        assert loaded.amount == Decimal("1750.50")


class TestDeleteAndList:

    def test_delete_pending(self, sql_store, student_claim, deterministic_clock):
        request = create_request(student_claim, "S-NPT-2025-IT-001", clock=deterministic_clock)
        sql_store.insert(request)
        sql_store.delete(request.application_id)
        assert sql_store.get(request.application_id) is None

    def test_delete_unknown(self, sql_store):
        with pytest.raises(RequestNotFoundError):
            sql_store.delete("S-NPT-2025-IT-404")

    def test_list_by_status_newest_first(self, sql_store, deterministic_clock):
        first = create_request(make_claim(), "S-NPT-2025-IT-001", clock=deterministic_clock)
        deterministic_clock.advance(10)
        second = create_request(make_claim(), "S-NPT-2025-IT-002", clock=deterministic_clock)
        sql_store.insert(first)
        sql_store.insert(second)

        pending = sql_store.list_by_status([S.PENDING])
        assert [r.application_id for r in pending] == ["S-NPT-2025-IT-002", "S-NPT-2025-IT-001"]
        assert sql_store.list_by_status([S.APPROVED]) == []
        assert sql_store.list_by_status([]) == []

    def test_list_by_claimant(self, sql_store, deterministic_clock, faculty_claim):
        sql_store.insert(create_request(make_claim(), "S-NPT-2025-IT-001", clock=deterministic_clock))
        sql_store.insert(create_request(faculty_claim, "F-CNF-2025-CE-001", clock=deterministic_clock))
        assert [r.application_id for r in sql_store.list_by_claimant("faculty-007")] == [
            "F-CNF-2025-CE-001",
        ]


class TestServiceOverSql:

    def test_lifecycle(self, sql_service, student_claim):
        request = sql_service.create_request(student_claim)
        assert request.application_id == "S-NPT-2025-IT-001"

        for target, role in (
            (S.UNDER_COORDINATOR, ActorRole.COORDINATOR),
            (S.UNDER_HOD, ActorRole.COORDINATOR),
            (S.UNDER_PRINCIPAL, ActorRole.HOD),
            (S.APPROVED, ActorRole.PRINCIPAL),
            (S.DISBURSED, ActorRole.ACCOUNTS),
        ):
            sql_service.transition(request.application_id, target, role)

        final = sql_service.get(request.application_id)
        assert final.status is S.DISBURSED
        assert final.version == 6
        assert len(final.history) == 5
        assert sql_service.queue_for(ActorRole.ACCOUNTS) == []

    def test_sequence_continues(self, sql_service):
        ids = [sql_service.create_request(make_claim()).application_id for _ in range(3)]
        assert ids == ["S-NPT-2025-IT-001", "S-NPT-2025-IT-002", "S-NPT-2025-IT-003"]

    def test_owner_edit_and_delete(self, sql_service, student_claim):
        request = sql_service.create_request(student_claim)
        updated = sql_service.update_claim(
            request.application_id, "student-001", {"remarks": "Corrected exam date"},
        )
        assert sql_service.get(request.application_id) == updated
        assert updated.version == 2

        sql_service.delete_request(request.application_id, "student-001")
        assert sql_service.list_for_claimant("student-001") == []


class TestAmountsKeptExactly:

    @pytest.fixture(params=["memory_store", "sql_store"])
    def store(self, request):
        return request.getfixturevalue(request.param)

    @pytest.mark.parametrize(
        "amount", [Decimal("0.01"), Decimal("10.5"), Decimal("999999999999.99")],
    )
    def test_accepted_amount_round_trips(self, store, deterministic_clock, amount):
        service = RequestService(store, deterministic_clock)
        created = service.create_request(make_claim(amount=amount))
        assert store.get(created.application_id).amount == amount

    @pytest.mark.parametrize("amount", [Decimal("10.005"), Decimal("1234567890123")])
    def test_unstorable_amount_never_reaches_store(self, store, deterministic_clock, amount):
        service = RequestService(store, deterministic_clock)
        with pytest.raises(ClaimValidationError):
            service.create_request(make_claim(amount=amount))
        assert store.find_application_ids("S-NPT-2025-IT-") == []
