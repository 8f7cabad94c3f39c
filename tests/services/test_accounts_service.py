"""Fee breakdowns, payment verification and the accounts leg of the workflow."""

from decimal import Decimal

import pytest
from sqlalchemy import select

from tests.support import ACCOUNTS_OFFICER
from transfer_kernel.exceptions import (
    InvalidAmountError,
    PaymentExceedsTotalError,
    RecordNotFoundError,
)
from transfer_kernel.models.accounts import AccountsBreakdown
from transfer_kernel.models.audit_log import AuditAction
from transfer_kernel.models.clearance import Clearance
from transfer_kernel.selectors.audit_selector import AuditSelector
from transfer_services.accounts_service import FeeSchedule
from transfer_services.auto_progression import STOP_DENIED

FEES = FeeSchedule(transfer_fee="30000", attorney_fee="15000", water_charges="5000")


class TestFeeSchedule:
    def test_total_sums_components(self):
        assert FEES.total == Decimal("50000")

    def test_components_are_coerced_to_decimal(self):
        fees = FeeSchedule(arrears=100, surcharge="12.50")
        assert fees.arrears == Decimal("100")
        assert fees.surcharge == Decimal("12.50")
        assert fees.total == Decimal("112.50")

    def test_negative_component_rejected(self):
        with pytest.raises(InvalidAmountError):
            FeeSchedule(transfer_fee="-1")

    def test_non_numeric_component_rejected(self):
        with pytest.raises(InvalidAmountError):
            FeeSchedule(other_charges="lots")

    def test_from_mapping_ignores_unknown_and_null_keys(self):
        fees = FeeSchedule.from_mapping({"transfer_fee": "10", "stamp_duty": "99", "arrears": None})
        assert fees.total == Decimal("10")
        assert fees.as_dict()["arrears"] == Decimal("0")


@pytest.fixture
def accounts_case(new_case, place_case_at):
    """A case waiting in SENT_TO_ACCOUNTS with a PENDING accounts clearance."""
    place_case_at(new_case, "SENT_TO_ACCOUNTS")
    return new_case


class TestUpsertBreakdown:
    def test_breakdown_relays_to_payment_pending(
        self, session, orchestrator, accounts_case, current_stage_code,
    ):
        outcome = orchestrator.accounts.upsert_breakdown(
            accounts_case.id, FEES, ACCOUNTS_OFFICER, challan_no="CH-1",
        )

        breakdown = outcome.breakdown
        assert breakdown.total_amount == Decimal("50000")
        assert breakdown.remaining_amount == Decimal("50000")
        assert not breakdown.payment_verified
        assert breakdown.challan_no == "CH-1"
        assert outcome.auto_progression.final_stage_code == "PAYMENT_PENDING"
        assert current_stage_code(accounts_case.id) == "PAYMENT_PENDING"

        entries = AuditSelector(session).trail(accounts_case.id).of_action(AuditAction.ACCOUNTS_UPSERTED)
        assert [e.detail for e in entries] == [
            "Accounts breakdown upserted: Total: 50000, Remaining: 50000",
        ]

    def test_upsert_replaces_components(self, orchestrator, accounts_case):
        orchestrator.accounts.upsert_breakdown(accounts_case.id, FEES, ACCOUNTS_OFFICER)
        outcome = orchestrator.accounts.upsert_breakdown(
            accounts_case.id, FeeSchedule(transfer_fee="1000"), ACCOUNTS_OFFICER,
        )
        assert outcome.breakdown.total_amount == Decimal("1000")
        assert outcome.breakdown.attorney_fee == Decimal("0")

    def test_zero_total_does_not_advance(self, orchestrator, accounts_case, current_stage_code):
        outcome = orchestrator.accounts.upsert_breakdown(accounts_case.id, FeeSchedule(), ACCOUNTS_OFFICER)
        assert not outcome.breakdown.payment_verified
        assert outcome.breakdown.verified_at is None
        assert outcome.auto_progression.stopped_reason == STOP_DENIED
        assert outcome.auto_progression.last_reason == "Invalid total amount in accounts breakdown"
        assert current_stage_code(accounts_case.id) == "SENT_TO_ACCOUNTS"

    def test_requote_below_paid_amount_rejected(self, session, orchestrator, accounts_case):
        orchestrator.accounts.upsert_breakdown(accounts_case.id, FEES, ACCOUNTS_OFFICER)
        orchestrator.accounts.verify_payment(accounts_case.id, "40000", ACCOUNTS_OFFICER)

        with pytest.raises(PaymentExceedsTotalError):
            orchestrator.accounts.upsert_breakdown(
                accounts_case.id, FeeSchedule(transfer_fee="30000"), ACCOUNTS_OFFICER,
            )

        breakdown = session.execute(
            select(AccountsBreakdown).where(AccountsBreakdown.application_id == accounts_case.id)
        ).scalar_one()
        assert breakdown.total_amount == Decimal("50000")
        assert breakdown.remaining_amount == Decimal("10000")
        assert not breakdown.payment_verified

    def test_requote_settled_by_payment_clears_accounts(
        self, session, orchestrator, accounts_case, current_stage_code,
    ):
        orchestrator.accounts.upsert_breakdown(accounts_case.id, FEES, ACCOUNTS_OFFICER)
        orchestrator.accounts.verify_payment(accounts_case.id, "40000", ACCOUNTS_OFFICER)

        outcome = orchestrator.accounts.upsert_breakdown(
            accounts_case.id, FeeSchedule(transfer_fee="40000"), ACCOUNTS_OFFICER,
        )

        assert outcome.breakdown.payment_verified
        assert outcome.breakdown.remaining_amount == Decimal("0")
        assert [r.to_stage_code for r in outcome.auto_progression.transitions] == [
            "ACCOUNTS_CLEAR", "READY_FOR_APPROVAL",
        ]
        assert current_stage_code(accounts_case.id) == "READY_FOR_APPROVAL"
        clearance = session.execute(
            select(Clearance).where(
                Clearance.application_id == accounts_case.id, Clearance.section == "ACCOUNTS",
            )
        ).scalar_one()
        assert clearance.status == "CLEAR"


class TestVerifyPayment:
    def test_partial_payment_keeps_case_pending(
        self, session, orchestrator, accounts_case, current_stage_code,
    ):
        orchestrator.accounts.upsert_breakdown(accounts_case.id, FEES, ACCOUNTS_OFFICER)

        outcome = orchestrator.accounts.verify_payment(accounts_case.id, "20000", ACCOUNTS_OFFICER)

        assert outcome.breakdown.remaining_amount == Decimal("30000")
        assert not outcome.breakdown.payment_verified
        assert outcome.breakdown.verified_at is None
        assert outcome.auto_progression is None
        assert current_stage_code(accounts_case.id) == "PAYMENT_PENDING"
        entries = AuditSelector(session).trail(accounts_case.id).of_action(AuditAction.PAYMENT_VERIFIED)
        assert [e.detail for e in entries] == [
            "Payment recorded: Paid: 20000, Remaining: 30000.00, Verified: False",
        ]

    def test_full_payment_reaches_ready_for_approval(
        self, session, orchestrator, accounts_case, current_stage_code, deterministic_clock,
    ):
        orchestrator.accounts.upsert_breakdown(accounts_case.id, FEES, ACCOUNTS_OFFICER)

        outcome = orchestrator.accounts.verify_payment(accounts_case.id, Decimal("50000"), ACCOUNTS_OFFICER)

        assert outcome.breakdown.payment_verified
        assert outcome.breakdown.remaining_amount == Decimal("0")
        assert outcome.breakdown.verified_at == deterministic_clock.now()
        assert [r.to_stage_code for r in outcome.auto_progression.transitions] == [
            "ACCOUNTS_CLEAR", "READY_FOR_APPROVAL",
        ]
        assert current_stage_code(accounts_case.id) == "READY_FOR_APPROVAL"

        clearance = session.execute(
            select(Clearance).where(
                Clearance.application_id == accounts_case.id, Clearance.section == "ACCOUNTS",
            )
        ).scalar_one()
        assert clearance.status == "CLEAR"
        assert clearance.remarks == "Payment verified - Accounts cleared"

    def test_overpayment_rejected(self, orchestrator, accounts_case):
        orchestrator.accounts.upsert_breakdown(accounts_case.id, FEES, ACCOUNTS_OFFICER)
        with pytest.raises(PaymentExceedsTotalError, match="Paid amount exceeds total amount"):
            orchestrator.accounts.verify_payment(accounts_case.id, "50000.01", ACCOUNTS_OFFICER)

    def test_negative_payment_rejected(self, orchestrator, accounts_case):
        orchestrator.accounts.upsert_breakdown(accounts_case.id, FEES, ACCOUNTS_OFFICER)
        with pytest.raises(InvalidAmountError):
            orchestrator.accounts.verify_payment(accounts_case.id, "-5", ACCOUNTS_OFFICER)

    def test_payment_without_breakdown(self, orchestrator, accounts_case):
        with pytest.raises(RecordNotFoundError, match="Accounts breakdown not found"):
            orchestrator.accounts.verify_payment(accounts_case.id, "100", ACCOUNTS_OFFICER)
