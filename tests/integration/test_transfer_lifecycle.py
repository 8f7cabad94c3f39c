"""
End-to-end plot transfer: intake to completed deed through the public
services, with one BCA objection along the way.
"""

from decimal import Decimal

from sqlalchemy import select

from tests.support import (
    ACCOUNTS_OFFICER,
    APPROVER,
    BCA_OFFICER,
    CLERK,
    HOUSING_OFFICER,
    OWO_OFFICER,
)
from transfer_kernel.models.audit_log import AuditAction
from transfer_kernel.models.clearance import Clearance
from transfer_kernel.models.workflow import WorkflowStage
from transfer_services.accounts_service import FeeSchedule


def _stage_codes(session) -> dict:
    return dict(session.execute(select(WorkflowStage.id, WorkflowStage.code)).all())


class TestTransferLifecycle:
    def test_full_transfer(
        self, session, orchestrator, parties, attach_documents, current_stage_code, ownership_registry,
    ):
        cases = orchestrator.cases
        case = cases.open_case(parties["seller"].id, parties["buyer"].id, parties["plot"].id, CLERK)
        attach_documents(case.id)

        # Intake is a manual step
        result = orchestrator.executor.attempt_transition_to(case.id, "UNDER_SCRUTINY", CLERK)
        assert result.success

        orchestrator.reviews.record_review(case.id, "OWO", "APPROVED", OWO_OFFICER)
        assert current_stage_code(case.id) == "BCA_PENDING"

        orchestrator.clearances.record_clearance(case.id, "HOUSING", "CLEAR", HOUSING_OFFICER)
        assert current_stage_code(case.id) == "BCA_PENDING"

        orchestrator.clearances.record_clearance(
            case.id, "BCA", "OBJECTION", BCA_OFFICER, remarks="Encroachment on lane",
        )
        assert current_stage_code(case.id) == "ON_HOLD_BCA"

        orchestrator.clearances.record_clearance(case.id, "BCA", "CLEAR", BCA_OFFICER)
        assert current_stage_code(case.id) == "BCA_HOUSING_CLEAR"

        # No relay entry leaves BCA_HOUSING_CLEAR
        previews = orchestrator.executor.available_transitions(case.id, CLERK)
        assert [(p.to_stage_code, p.can_transition) for p in previews] == [("SENT_TO_ACCOUNTS", True)]
        orchestrator.executor.attempt_transition_to(case.id, "SENT_TO_ACCOUNTS", CLERK)

        orchestrator.accounts.upsert_breakdown(
            case.id,
            FeeSchedule(transfer_fee="30000", attorney_fee="15000", water_charges="5000"),
            ACCOUNTS_OFFICER,
        )
        assert current_stage_code(case.id) == "PAYMENT_PENDING"

        orchestrator.accounts.verify_payment(case.id, "20000", ACCOUNTS_OFFICER)
        assert current_stage_code(case.id) == "PAYMENT_PENDING"
        orchestrator.accounts.verify_payment(case.id, Decimal("50000"), ACCOUNTS_OFFICER)
        assert current_stage_code(case.id) == "READY_FOR_APPROVAL"

        orchestrator.reviews.record_review(case.id, "APPROVER", "APPROVED", APPROVER)
        assert current_stage_code(case.id) == "APPROVED"

        orchestrator.deeds.create_draft(
            case.id, parties["witness1"].id, parties["witness2"].id, "Deed of transfer", CLERK,
        )
        outcome = orchestrator.deeds.finalize(case.id, "sig-1", "sig-2", "https://files.example/d.pdf", APPROVER)
        assert outcome.auto_progression.final_stage_code == "COMPLETED"
        assert current_stage_code(case.id) == "COMPLETED"
        assert orchestrator.executor.available_transitions(case.id, APPROVER) == ()

        assert ownership_registry.calls == [
            (parties["plot"].id, parties["seller"].id, parties["buyer"].id),
        ]

        clearances = dict(session.execute(
            select(Clearance.section, Clearance.status).where(Clearance.application_id == case.id)
        ).all())
        assert clearances == {"BCA": "CLEAR", "HOUSING": "CLEAR", "ACCOUNTS": "CLEAR"}

        trail = orchestrator.audit_service.trail(case.id)
        seqs = [e.seq for e in trail]
        assert seqs == sorted(seqs)

        codes = _stage_codes(session)
        moves = [
            (e.action, codes[e.to_stage_id])
            for e in trail
            if e.action in (AuditAction.STAGE_TRANSITION.value, AuditAction.AUTO_STAGE_TRANSITION.value)
        ]
        assert moves == [
            ("STAGE_TRANSITION", "UNDER_SCRUTINY"),
            ("AUTO_STAGE_TRANSITION", "SENT_TO_BCA_HOUSING"),
            ("AUTO_STAGE_TRANSITION", "BCA_PENDING"),
            ("AUTO_STAGE_TRANSITION", "ON_HOLD_BCA"),
            ("AUTO_STAGE_TRANSITION", "BCA_PENDING"),
            ("AUTO_STAGE_TRANSITION", "HOUSING_PENDING"),
            ("AUTO_STAGE_TRANSITION", "BCA_HOUSING_CLEAR"),
            ("STAGE_TRANSITION", "SENT_TO_ACCOUNTS"),
            ("AUTO_STAGE_TRANSITION", "PAYMENT_PENDING"),
            ("AUTO_STAGE_TRANSITION", "ACCOUNTS_CLEAR"),
            ("AUTO_STAGE_TRANSITION", "READY_FOR_APPROVAL"),
            ("AUTO_STAGE_TRANSITION", "APPROVED"),
            ("AUTO_STAGE_TRANSITION", "COMPLETED"),
        ]
        assert trail.actions()[0] == AuditAction.APPLICATION_CREATED.value
        assert len(trail.of_action(AuditAction.DEED_FINALIZED)) == 1

    def test_rejected_case_is_terminal(
        self, orchestrator, new_case, place_case_at, current_stage_code,
    ):
        place_case_at(new_case, "READY_FOR_APPROVAL")
        orchestrator.reviews.record_review(new_case.id, "APPROVER", "REJECTED", APPROVER)
        orchestrator.executor.attempt_transition_to(new_case.id, "REJECTED", APPROVER)

        assert current_stage_code(new_case.id) == "REJECTED"
        assert orchestrator.executor.available_transitions(new_case.id, APPROVER) == ()
