"""Clearance and review verdicts, and the auto-progression they trigger."""

import logging
from uuid import uuid4

import pytest
from sqlalchemy import select

from tests.support import APPROVER, BCA_OFFICER, HOUSING_OFFICER, OWO_OFFICER
from transfer_kernel.domain.workflow import SYSTEM_ACTOR
from transfer_kernel.exceptions import CaseNotFoundError
from transfer_kernel.models.audit_log import AuditAction
from transfer_kernel.models.clearance import Clearance
from transfer_kernel.selectors.audit_selector import AuditSelector
from transfer_services.auto_progression import STOP_DENIED


class TestClearanceService:
    def test_first_verdict_creates_row(self, session, orchestrator, new_case, deterministic_clock):
        outcome = orchestrator.clearances.record_clearance(
            new_case.id, "BCA", "CLEAR", BCA_OFFICER, remarks="No dues",
        )
        assert outcome.created
        assert outcome.clearance.status == "CLEAR"
        assert outcome.clearance.cleared_at == deterministic_clock.now()

        entries = AuditSelector(session).trail(new_case.id).of_action(AuditAction.CLEARANCE_CREATED)
        assert [e.detail for e in entries] == ["Clearance CLEAR for BCA section"]

    def test_second_verdict_updates_row(self, session, orchestrator, new_case):
        orchestrator.clearances.record_clearance(new_case.id, "HOUSING", "OBJECTION", HOUSING_OFFICER)
        outcome = orchestrator.clearances.record_clearance(
            new_case.id, "HOUSING", "CLEAR", HOUSING_OFFICER,
        )
        assert not outcome.created
        rows = session.execute(
            select(Clearance).where(Clearance.application_id == new_case.id)
        ).scalars().all()
        assert len(rows) == 1
        trail = AuditSelector(session).trail(new_case.id)
        assert [e.detail for e in trail.of_action(AuditAction.CLEARANCE_UPDATED)] == [
            "Clearance CLEAR for HOUSING section",
        ]

    def test_objection_clears_cleared_at(self, orchestrator, new_case):
        orchestrator.clearances.record_clearance(new_case.id, "BCA", "CLEAR", BCA_OFFICER)
        outcome = orchestrator.clearances.record_clearance(new_case.id, "BCA", "OBJECTION", BCA_OFFICER)
        assert outcome.clearance.cleared_at is None

    def test_unknown_case(self, orchestrator, seeded_catalog):
        with pytest.raises(CaseNotFoundError):
            orchestrator.clearances.record_clearance(uuid4(), "BCA", "CLEAR", BCA_OFFICER)

    def test_invalid_status(self, orchestrator, new_case):
        with pytest.raises(ValueError):
            orchestrator.clearances.record_clearance(new_case.id, "BCA", "MAYBE", BCA_OFFICER)

    def test_verdict_logged_at_info_and_relayed(
        self, orchestrator, new_case, place_case_at, captured_logs, current_stage_code,
    ):
        logging.getLogger("transfer_kernel").setLevel(logging.INFO)
        place_case_at(new_case, "BCA_PENDING")
        orchestrator.clearances.record_clearance(new_case.id, "HOUSING", "CLEAR", HOUSING_OFFICER)

        outcome = orchestrator.clearances.record_clearance(new_case.id, "BCA", "CLEAR", BCA_OFFICER)

        assert outcome.auto_progression.final_stage_code == "BCA_HOUSING_CLEAR"
        assert current_stage_code(new_case.id) == "BCA_HOUSING_CLEAR"
        recorded = [r for r in captured_logs() if r["message"] == "clearance_recorded"]
        assert [(r["section"], r["clearance_created"]) for r in recorded] == [
            ("HOUSING", True), ("BCA", True),
        ]

    def test_pending_verdict_triggers_nothing(self, orchestrator, new_case):
        outcome = orchestrator.clearances.record_clearance(new_case.id, "BCA", "PENDING", BCA_OFFICER)
        assert outcome.auto_progression is None

    def test_clear_relays_with_system_actor(
        self, session, orchestrator, new_case, place_case_at, current_stage_code,
    ):
        place_case_at(new_case, "BCA_PENDING")
        orchestrator.clearances.record_clearance(new_case.id, "HOUSING", "CLEAR", HOUSING_OFFICER)

        outcome = orchestrator.clearances.record_clearance(new_case.id, "BCA", "CLEAR", BCA_OFFICER)

        assert [r.to_stage_code for r in outcome.auto_progression.transitions] == [
            "HOUSING_PENDING", "BCA_HOUSING_CLEAR",
        ]
        assert current_stage_code(new_case.id) == "BCA_HOUSING_CLEAR"
        autos = AuditSelector(session).trail(new_case.id).of_action(AuditAction.AUTO_STAGE_TRANSITION)
        assert {e.actor_id for e in autos} == {SYSTEM_ACTOR.actor_id}

    def test_objection_then_resolution(
        self, orchestrator, new_case, place_case_at, current_stage_code,
    ):
        place_case_at(new_case, "BCA_PENDING")
        orchestrator.clearances.record_clearance(new_case.id, "BCA", "OBJECTION", BCA_OFFICER)
        assert current_stage_code(new_case.id) == "ON_HOLD_BCA"

        outcome = orchestrator.clearances.record_clearance(new_case.id, "BCA", "CLEAR", BCA_OFFICER)

        assert [r.to_stage_code for r in outcome.auto_progression.transitions] == [
            "BCA_PENDING", "HOUSING_PENDING",
        ]
        assert outcome.auto_progression.stopped_reason == STOP_DENIED
        assert outcome.auto_progression.last_reason == "Housing clearance not obtained"
        assert current_stage_code(new_case.id) == "HOUSING_PENDING"


class TestReviewService:
    def test_owo_approval_walks_to_bca_pending(
        self, session, orchestrator, new_case, place_case_at, current_stage_code, deterministic_clock,
    ):
        place_case_at(new_case, "UNDER_SCRUTINY")

        outcome = orchestrator.reviews.record_review(new_case.id, "OWO", "APPROVED", OWO_OFFICER)

        assert outcome.created
        assert outcome.review.reviewer_id == OWO_OFFICER.actor_id
        assert outcome.review.reviewed_at == deterministic_clock.now()
        assert current_stage_code(new_case.id) == "BCA_PENDING"

        trail = AuditSelector(session).trail(new_case.id)
        assert [e.detail for e in trail.of_action(AuditAction.REVIEW_CREATED)] == [
            "Review APPROVED for OWO section",
        ]
        autos = trail.of_action(AuditAction.AUTO_STAGE_TRANSITION)
        assert {e.actor_id for e in autos} == {OWO_OFFICER.actor_id}
        assert len(trail.of_action(AuditAction.CLEARANCE_CREATED)) == 2

    def test_pending_review_has_no_timestamp(self, orchestrator, new_case):
        outcome = orchestrator.reviews.record_review(new_case.id, "OWO", "PENDING", OWO_OFFICER)
        assert outcome.review.reviewed_at is None
        assert outcome.auto_progression is None

    def test_rejection_does_not_relay(self, orchestrator, new_case, place_case_at, current_stage_code):
        place_case_at(new_case, "READY_FOR_APPROVAL")
        outcome = orchestrator.reviews.record_review(new_case.id, "APPROVER", "REJECTED", APPROVER)
        assert outcome.auto_progression is None
        assert current_stage_code(new_case.id) == "READY_FOR_APPROVAL"

    def test_rejected_case_can_be_closed_manually(
        self, orchestrator, new_case, place_case_at, current_stage_code,
    ):
        place_case_at(new_case, "READY_FOR_APPROVAL")
        orchestrator.reviews.record_review(new_case.id, "APPROVER", "REJECTED", APPROVER)
        result = orchestrator.executor.attempt_transition_to(new_case.id, "REJECTED", APPROVER)
        assert result.success
        assert current_stage_code(new_case.id) == "REJECTED"

    def test_approver_approval_relays(self, orchestrator, new_case, place_case_at, current_stage_code):
        place_case_at(new_case, "READY_FOR_APPROVAL")
        outcome = orchestrator.reviews.record_review(new_case.id, "APPROVER", "APPROVED", APPROVER)
        assert outcome.auto_progression.final_stage_code == "APPROVED"
        assert current_stage_code(new_case.id) == "APPROVED"

    def test_second_review_updates(self, session, orchestrator, new_case):
        orchestrator.reviews.record_review(new_case.id, "OWO", "PENDING", OWO_OFFICER)
        outcome = orchestrator.reviews.record_review(new_case.id, "OWO", "REJECTED", OWO_OFFICER)
        assert not outcome.created
        trail = AuditSelector(session).trail(new_case.id)
        assert [e.detail for e in trail.of_action(AuditAction.REVIEW_UPDATED)] == [
            "Review REJECTED for OWO section",
        ]
