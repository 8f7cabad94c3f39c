"""Transfer deed drafting, finalization, ownership transfer and immutability."""

from uuid import uuid4

import pytest

from tests.support import APPROVER, CLERK
from transfer_kernel.exceptions import (
    DeedAlreadyExistsError,
    DeedAlreadyFinalizedError,
    DuplicateWitnessError,
    ImmutabilityViolationError,
    PersonNotFoundError,
    RecordNotFoundError,
)
from transfer_kernel.models.audit_log import AuditAction
from transfer_kernel.selectors.audit_selector import AuditSelector
from transfer_kernel.utils.hashing import hash_payload
from transfer_services.deed_service import DeedService
from transfer_services.ownership import SqlPlotOwnershipRegistry


@pytest.fixture
def approved_case(new_case, place_case_at):
    place_case_at(new_case, "APPROVED")
    return new_case


@pytest.fixture
def draft(orchestrator, approved_case, parties):
    return orchestrator.deeds.create_draft(
        approved_case.id, parties["witness1"].id, parties["witness2"].id, "Deed of transfer", CLERK,
    )


class TestDrafts:
    def test_create_draft(self, session, draft, approved_case):
        assert not draft.is_finalized
        assert draft.hash_sha256 is None
        details = [e.detail for e in AuditSelector(session).trail(approved_case.id)
                   .of_action(AuditAction.DEED_DRAFTED)]
        assert details == ["Transfer deed draft created"]

    def test_same_witness_twice(self, orchestrator, approved_case, parties):
        w = parties["witness1"].id
        with pytest.raises(DuplicateWitnessError):
            orchestrator.deeds.create_draft(approved_case.id, w, w, "Deed", CLERK)

    def test_unknown_witness(self, orchestrator, approved_case, parties):
        with pytest.raises(PersonNotFoundError, match="Witness not found"):
            orchestrator.deeds.create_draft(approved_case.id, parties["witness1"].id, uuid4(), "Deed", CLERK)

    def test_second_draft_rejected(self, orchestrator, draft, approved_case, parties):
        with pytest.raises(DeedAlreadyExistsError):
            orchestrator.deeds.create_draft(
                approved_case.id, parties["witness1"].id, parties["witness2"].id, "Again", CLERK,
            )

    def test_update_draft(self, session, orchestrator, draft, approved_case, create_person):
        replacement = create_person("Witness")
        updated = orchestrator.deeds.update_draft(
            approved_case.id, CLERK, witness2_id=replacement.id, deed_content="Revised",
        )
        assert updated.witness2_id == replacement.id
        assert updated.deed_content == "Revised"
        trail = AuditSelector(session).trail(approved_case.id)
        assert len(trail.of_action(AuditAction.DEED_DRAFT_UPDATED)) == 1

    def test_update_missing_draft(self, orchestrator, approved_case):
        with pytest.raises(RecordNotFoundError, match="Transfer deed not found"):
            orchestrator.deeds.update_draft(approved_case.id, CLERK, deed_content="x")


class TestFinalize:
    def test_finalize_completes_case(
        self, session, orchestrator, draft, approved_case, parties, ownership_registry,
        current_stage_code, deterministic_clock,
    ):
        outcome = orchestrator.deeds.finalize(
            approved_case.id, "sig-1", "sig-2", "https://files.example/deed.pdf", APPROVER,
        )

        deed = outcome.deed
        assert deed.is_finalized
        assert deed.finalized_at == deterministic_clock.now()
        assert len(deed.hash_sha256) == 64
        assert deed.hash_sha256 == hash_payload({
            "application_id": approved_case.id,
            "seller_id": parties["seller"].id,
            "buyer_id": parties["buyer"].id,
            "plot_id": parties["plot"].id,
            "witness1_id": parties["witness1"].id,
            "witness2_id": parties["witness2"].id,
            "deed_content": "Deed of transfer",
            "witness1_signature": "sig-1",
            "witness2_signature": "sig-2",
            "final_pdf_url": "https://files.example/deed.pdf",
            "finalized_at": deterministic_clock.now(),
        })

        assert ownership_registry.calls == [
            (parties["plot"].id, parties["seller"].id, parties["buyer"].id),
        ]
        assert outcome.auto_progression.final_stage_code == "COMPLETED"
        assert current_stage_code(approved_case.id) == "COMPLETED"

        trail = AuditSelector(session).trail(approved_case.id)
        assert trail.of_action(AuditAction.DEED_FINALIZED)[0].detail == (
            f"Transfer deed finalized with hash: {deed.hash_sha256}"
        )
        seller, buyer = parties["seller"].name, parties["buyer"].name
        assert trail.of_action(AuditAction.OWNERSHIP_TRANSFERRED)[0].detail == (
            f"Ownership transferred from {seller} to {buyer} for plot P-101"
        )

    def test_finalize_twice(self, orchestrator, draft, approved_case):
        orchestrator.deeds.finalize(approved_case.id, "a", "b", "url", APPROVER)
        with pytest.raises(DeedAlreadyFinalizedError):
            orchestrator.deeds.finalize(approved_case.id, "a", "b", "url", APPROVER)

    def test_finalized_draft_cannot_be_updated(self, orchestrator, draft, approved_case):
        orchestrator.deeds.finalize(approved_case.id, "a", "b", "url", APPROVER)
        with pytest.raises(DeedAlreadyFinalizedError):
            orchestrator.deeds.update_draft(approved_case.id, CLERK, deed_content="tampered")

    def test_finalized_row_rejects_direct_writes(self, session, orchestrator, draft, approved_case):
        outcome = orchestrator.deeds.finalize(approved_case.id, "a", "b", "url", APPROVER)
        outcome.deed.deed_content = "tampered"
        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_finalize_from_ready_for_approval_walks_to_completed(
        self, orchestrator, new_case, parties, place_case_at, ownership_registry,
        current_stage_code,
    ):
        place_case_at(new_case, "READY_FOR_APPROVAL")
        review = orchestrator.reviews.record_review(new_case.id, "APPROVER", "APPROVED", CLERK)
        assert not review.auto_progression.transitioned
        assert current_stage_code(new_case.id) == "READY_FOR_APPROVAL"
        orchestrator.deeds.create_draft(
            new_case.id, parties["witness1"].id, parties["witness2"].id, "Deed", CLERK,
        )

        outcome = orchestrator.deeds.finalize(new_case.id, "a", "b", "url", APPROVER)

        assert [r.to_stage_code for r in outcome.auto_progression.transitions] == [
            "APPROVED", "COMPLETED",
        ]
        assert current_stage_code(new_case.id) == "COMPLETED"
        assert ownership_registry.calls == [
            (parties["plot"].id, parties["seller"].id, parties["buyer"].id),
        ]

    def test_finalize_before_approval_does_not_complete(
        self, orchestrator, new_case, parties, place_case_at, current_stage_code,
    ):
        place_case_at(new_case, "READY_FOR_APPROVAL")
        orchestrator.deeds.create_draft(
            new_case.id, parties["witness1"].id, parties["witness2"].id, "Deed", CLERK,
        )
        outcome = orchestrator.deeds.finalize(new_case.id, "a", "b", "url", CLERK)
        assert not outcome.auto_progression.transitioned
        assert outcome.auto_progression.last_reason == "Only APPROVER can complete approval"
        assert current_stage_code(new_case.id) == "READY_FOR_APPROVAL"


class TestSqlOwnershipRegistry:
    def test_default_registry_rewrites_plot_owner(
        self, session, seeded_catalog, approved_case, draft, parties, deterministic_clock,
    ):
        service = DeedService(session, clock=deterministic_clock)
        service.finalize(approved_case.id, "a", "b", "url", APPROVER)
        assert parties["plot"].current_owner_id == parties["buyer"].id

    def test_owner_mismatch_is_logged(self, session, parties, captured_logs):
        registry = SqlPlotOwnershipRegistry(session)
        registry.transfer_ownership(parties["plot"].id, parties["buyer"].id, parties["witness1"].id)
        assert parties["plot"].current_owner_id == parties["witness1"].id
        assert any(r["message"] == "plot_owner_mismatch" for r in captured_logs())

    def test_unknown_plot(self, session, seeded_catalog):
        with pytest.raises(RecordNotFoundError, match="Plot not found"):
            SqlPlotOwnershipRegistry(session).transfer_ownership(uuid4(), uuid4(), uuid4())
