"""
transfer_services.guard_registry -- Admission predicates for stage transitions.

Responsibility:
    Maps every ``GuardName`` to a predicate over a freshly loaded
    ``CaseSnapshot`` plus the ``GuardContext``, and executes guards by name
    for the transition executor (and for any dynamic caller, e.g. an admin
    preview endpoint).

Architecture position:
    Services layer.  Reads through ``transfer_kernel.selectors``; never
    writes.  Guards never call each other or the transition executor.

Invariants enforced:
    - Guards never raise across the registry boundary.  An unknown name,
      an invalid context, a snapshot load failure and an evaluator fault
      each become a denial with a stable reason.
    - Snapshots are loaded fresh for every evaluation (no caching), so
      evaluating an unchanged case twice yields identical results.
    - Provisioning guards are pure predicates.  Their downstream rows are
      created by ``transfer_services.provisioning`` after the transition
      commits.

Failure modes:
    - Evaluator exception  -> denial with the guard's "Error checking ..." reason.
    - Snapshot load error  -> denial "Guard execution failed: <message>".
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Iterable

from sqlalchemy.orm import Session

from transfer_kernel.domain.values import ClearanceStatus, ReviewStatus, Role, Section
from transfer_kernel.domain.workflow import (
    PROVISIONING_GUARDS,
    GuardContext,
    GuardName,
    GuardResult,
    validate_guard_context,
)
from transfer_kernel.logging_config import get_logger
from transfer_kernel.selectors.case_selector import CaseSelector, CaseSnapshot

logger = get_logger("services.guard_registry")

Evaluator = Callable[[CaseSnapshot, GuardContext], GuardResult]

DEFAULT_REQUIRED_DOCUMENTS: tuple[str, ...] = (
    "AllotmentLetter",
    "PrevTransferDeed",
    "CNIC_Seller",
    "CNIC_Buyer",
    "UtilityBill_Latest",
    "Photo_Seller",
    "Photo_Buyer",
)


@dataclass(frozen=True)
class GuardSpec:
    """A registered guard: predicate plus the reason used when it faults."""

    name: GuardName
    description: str
    evaluator: Evaluator
    fault_reason: str


# ---------------------------------------------------------------------------
# Predicates
# ---------------------------------------------------------------------------


def _intake_complete(required: tuple[str, ...]) -> Evaluator:
    def evaluate(snapshot: CaseSnapshot, ctx: GuardContext) -> GuardResult:
        uploaded = [a.doc_type for a in snapshot.attachments]
        missing = [d for d in required if d not in uploaded]
        if missing:
            return GuardResult.deny(
                f"Missing required documents: {', '.join(missing)}",
                missing_docs=missing,
            )

        not_seen = list(dict.fromkeys(
            a.doc_type for a in snapshot.attachments
            if a.doc_type in required and not a.is_original_seen
        ))
        if not_seen:
            return GuardResult.deny(
                f"Documents not marked as original seen: {', '.join(not_seen)}",
                not_seen_docs=not_seen,
            )

        return GuardResult.admit(
            "All required documents uploaded and verified",
            uploaded_docs=len(uploaded),
        )

    return evaluate


def _scrutiny_complete(snapshot: CaseSnapshot, ctx: GuardContext) -> GuardResult:
    if ctx.actor_role != Role.OWO.value:
        return GuardResult.deny("Only OWO can complete scrutiny")
    review = snapshot.reviews.get(Section.OWO.value)
    if review is None or review.status != ReviewStatus.APPROVED.value:
        return GuardResult.deny("OWO review not completed")
    return GuardResult.admit("OWO scrutiny completed", reviewer_id=review.reviewer_id)


def _sent_to_bca_housing(snapshot: CaseSnapshot, ctx: GuardContext) -> GuardResult:
    if snapshot.review_status(Section.OWO.value) != ReviewStatus.APPROVED.value:
        return GuardResult.deny("OWO review not completed")
    return GuardResult.admit(
        "Application sent to BCA & Housing",
        bca_exists=Section.BCA.value in snapshot.clearances,
        housing_exists=Section.HOUSING.value in snapshot.clearances,
    )


def _clearance_is(section: Section, status: ClearanceStatus, denied: str, admitted: str) -> Evaluator:
    def evaluate(snapshot: CaseSnapshot, ctx: GuardContext) -> GuardResult:
        view = snapshot.clearances.get(section.value)
        if view is None or view.status != status.value:
            return GuardResult.deny(denied)
        return GuardResult.admit(
            admitted,
            section=section.value,
            cleared_at=view.cleared_at.isoformat() if view.cleared_at else None,
        )

    return evaluate


def _both_clear(admitted: str) -> Evaluator:
    def evaluate(snapshot: CaseSnapshot, ctx: GuardContext) -> GuardResult:
        if snapshot.clearance_status(Section.BCA.value) != ClearanceStatus.CLEAR.value:
            return GuardResult.deny("BCA clearance not obtained")
        if snapshot.clearance_status(Section.HOUSING.value) != ClearanceStatus.CLEAR.value:
            return GuardResult.deny("Housing clearance not obtained")
        return GuardResult.admit(admitted)

    return evaluate


def _sent_to_accounts(snapshot: CaseSnapshot, ctx: GuardContext) -> GuardResult:
    result = _both_clear("Application sent to Accounts")(snapshot, ctx)
    if not result.can_transition:
        return result
    return GuardResult.admit(
        result.reason,
        accounts_exists=Section.ACCOUNTS.value in snapshot.clearances,
    )


def _accounts_calculated(snapshot: CaseSnapshot, ctx: GuardContext) -> GuardResult:
    accounts = snapshot.accounts
    if accounts is None:
        return GuardResult.deny("Accounts breakdown not calculated")
    if accounts.total_amount <= 0:
        return GuardResult.deny("Invalid total amount in accounts breakdown")
    return GuardResult.admit(
        "Accounts breakdown calculated",
        total_amount=str(accounts.total_amount),
    )


def _payment_checks(snapshot: CaseSnapshot) -> GuardResult | None:
    """Shared payment denials; None means payment is in order."""
    accounts = snapshot.accounts
    if accounts is None:
        return GuardResult.deny("Accounts breakdown not found")
    # Both checks run even though one should imply the other
    if not accounts.payment_verified:
        return GuardResult.deny("Payment not verified")
    if accounts.paid_amount < accounts.total_amount:
        return GuardResult.deny(
            "Insufficient payment amount",
            paid_amount=str(accounts.paid_amount),
            total_amount=str(accounts.total_amount),
        )
    return None


def _payment_verified(snapshot: CaseSnapshot, ctx: GuardContext) -> GuardResult:
    denial = _payment_checks(snapshot)
    if denial is not None:
        return denial
    return GuardResult.admit(
        "Payment verified",
        paid_amount=str(snapshot.accounts.paid_amount),
        total_amount=str(snapshot.accounts.total_amount),
    )


def _accounts_clear(snapshot: CaseSnapshot, ctx: GuardContext) -> GuardResult:
    if snapshot.clearance_status(Section.ACCOUNTS.value) != ClearanceStatus.CLEAR.value:
        return GuardResult.deny("Accounts clearance not obtained")
    denial = _payment_checks(snapshot)
    if denial is not None:
        return denial
    return GuardResult.admit("Accounts clearance obtained")


def _approval_complete(snapshot: CaseSnapshot, ctx: GuardContext) -> GuardResult:
    if ctx.actor_role != Role.APPROVER.value:
        return GuardResult.deny("Only APPROVER can complete approval")
    review = snapshot.reviews.get(Section.APPROVER.value)
    if review is None or review.status != ReviewStatus.APPROVED.value:
        return GuardResult.deny("Approver review not completed")
    return GuardResult.admit("Approval completed", reviewer_id=review.reviewer_id)


def _approval_rejected(snapshot: CaseSnapshot, ctx: GuardContext) -> GuardResult:
    if ctx.actor_role != Role.APPROVER.value:
        return GuardResult.deny("Only APPROVER can reject approval")
    review = snapshot.reviews.get(Section.APPROVER.value)
    if review is None or review.status != ReviewStatus.REJECTED.value:
        return GuardResult.deny("Approver rejection not found")
    return GuardResult.admit("Approval rejected", reviewer_id=review.reviewer_id)


def _deed_finalized(snapshot: CaseSnapshot, ctx: GuardContext) -> GuardResult:
    deed = snapshot.deed
    if deed is None:
        return GuardResult.deny("Transfer deed not created")
    if not deed.is_finalized:
        return GuardResult.deny("Transfer deed not finalized")
    if not deed.hash_sha256:
        return GuardResult.deny("Transfer deed hash not generated")
    return GuardResult.admit(
        "Transfer deed finalized",
        deed_id=str(deed.id),
        finalized_at=deed.finalized_at.isoformat() if deed.finalized_at else None,
    )


def default_guard_specs(required_documents: Iterable[str] | None = None) -> tuple[GuardSpec, ...]:
    """Every built-in guard, keyed by its ``GuardName``."""
    required = tuple(required_documents) if required_documents is not None else DEFAULT_REQUIRED_DOCUMENTS
    bca, housing = Section.BCA, Section.HOUSING
    clear, objection = ClearanceStatus.CLEAR, ClearanceStatus.OBJECTION
    return (
        GuardSpec(GuardName.INTAKE_COMPLETE, "All required documents uploaded and original seen",
                  _intake_complete(required), "Error checking intake completeness"),
        GuardSpec(GuardName.SCRUTINY_COMPLETE, "OWO has approved its scrutiny review",
                  _scrutiny_complete, "Error checking scrutiny completion"),
        GuardSpec(GuardName.SENT_TO_BCA_HOUSING, "Case may be dispatched to BCA and Housing",
                  _sent_to_bca_housing, "Error checking BCA & Housing dispatch"),
        GuardSpec(GuardName.BCA_CLEAR, "BCA clearance is CLEAR",
                  _clearance_is(bca, clear, "BCA clearance not obtained", "BCA clearance obtained"),
                  "Error checking BCA clearance"),
        GuardSpec(GuardName.BCA_OBJECTION, "BCA has raised an objection",
                  _clearance_is(bca, objection, "BCA objection not found", "BCA objection raised"),
                  "Error checking BCA objection"),
        GuardSpec(GuardName.BCA_RESOLVED, "BCA objection cycled back to CLEAR",
                  _clearance_is(bca, clear, "BCA objection not resolved", "BCA objection resolved"),
                  "Error checking BCA resolution"),
        GuardSpec(GuardName.HOUSING_CLEAR, "Housing clearance is CLEAR",
                  _clearance_is(housing, clear, "Housing clearance not obtained", "Housing clearance obtained"),
                  "Error checking Housing clearance"),
        GuardSpec(GuardName.HOUSING_OBJECTION, "Housing has raised an objection",
                  _clearance_is(housing, objection, "Housing objection not found", "Housing objection raised"),
                  "Error checking Housing objection"),
        GuardSpec(GuardName.HOUSING_RESOLVED, "Housing objection cycled back to CLEAR",
                  _clearance_is(housing, clear, "Housing objection not resolved", "Housing objection resolved"),
                  "Error checking Housing resolution"),
        GuardSpec(GuardName.CLEARANCES_COMPLETE, "BCA and Housing are both CLEAR",
                  _both_clear("Both BCA and Housing clearances obtained"),
                  "Error checking clearances completion"),
        GuardSpec(GuardName.SENT_TO_ACCOUNTS, "Case may be dispatched to Accounts",
                  _sent_to_accounts, "Error checking Accounts dispatch"),
        GuardSpec(GuardName.ACCOUNTS_CALCULATED, "Fee breakdown exists with a positive total",
                  _accounts_calculated, "Error checking accounts calculation"),
        GuardSpec(GuardName.PAYMENT_VERIFIED, "Payment verified and covers the total",
                  _payment_verified, "Error checking payment verification"),
        GuardSpec(GuardName.ACCOUNTS_CLEAR, "Accounts clearance is CLEAR and payment covers the total",
                  _accounts_clear, "Error checking Accounts clearance"),
        GuardSpec(GuardName.APPROVAL_COMPLETE, "Approver has approved the case",
                  _approval_complete, "Error checking approval completion"),
        GuardSpec(GuardName.APPROVAL_REJECTED, "Approver has rejected the case",
                  _approval_rejected, "Error checking approval rejection"),
        GuardSpec(GuardName.DEED_FINALIZED, "Transfer deed finalized with a content hash",
                  _deed_finalized, "Error checking deed finalization"),
    )


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


class GuardRegistry:
    """
    Executes guards by name.

    Contract:
        ``execute(name, context)`` always returns a ``GuardResult``.

    Guarantees:
        - Unknown names deny with "Unknown guard: <name>".
        - Invalid contexts deny with "Invalid guard context" before any
          guard runs, independent of which guard was requested.

    Non-goals:
        - Does NOT move stage pointers or provision rows.
    """

    def __init__(self, session: Session, specs: Iterable[GuardSpec] = ()):
        self._session = session
        self._selector = CaseSelector(session)
        self._specs: dict[GuardName, GuardSpec] = {}
        for spec in specs:
            self.register(spec)

    def register(self, spec: GuardSpec) -> None:
        """Register (or replace) the evaluator for a guard."""
        self._specs[spec.name] = spec

    def list_names(self) -> list[str]:
        return sorted(name.value for name in self._specs)

    def describe(self, name: GuardName | str) -> str | None:
        guard = GuardName.parse(name)
        spec = self._specs.get(guard) if guard is not None else None
        return spec.description if spec else None

    def is_mutating(self, name: GuardName | str) -> bool:
        return GuardName.parse(name) in PROVISIONING_GUARDS

    def execute(self, name: GuardName | str, context: GuardContext) -> GuardResult:
        """Evaluate a guard.  Never raises."""
        label = getattr(name, "value", name)
        guard = GuardName.parse(name)
        spec = self._specs.get(guard) if guard is not None else None
        if spec is None:
            logger.warning("guard_no_evaluator", extra={"guard_name": str(label)})
            return GuardResult.deny(f"Unknown guard: {label}")

        problems = validate_guard_context(context)
        if problems:
            logger.warning(
                "guard_context_invalid",
                extra={"guard_name": guard.value, "problems": problems},
            )
            return GuardResult.deny("Invalid guard context", problems=problems)

        try:
            snapshot = self._selector.load(context.case_id)
        except Exception as e:  # noqa: BLE001
            logger.error(
                "guard_execution_failed",
                extra={"guard_name": guard.value, "error": str(e)},
                exc_info=True,
            )
            return GuardResult.deny(f"Guard execution failed: {e}")

        if snapshot is None:
            return GuardResult.deny("Application not found")

        try:
            result = spec.evaluator(snapshot, context)
        except Exception as e:  # noqa: BLE001
            logger.warning(
                "guard_evaluation_error",
                extra={"guard_name": guard.value, "case_id": str(context.case_id), "error": str(e)},
            )
            return GuardResult.deny(spec.fault_reason, error=str(e))

        logger.debug(
            "guard_evaluated",
            extra={
                "guard_name": guard.value,
                "case_id": str(context.case_id),
                "can_transition": result.can_transition,
                "reason": result.reason,
            },
        )
        return result


def default_guard_registry(
    session: Session,
    required_documents: Iterable[str] | None = None,
) -> GuardRegistry:
    """Return a GuardRegistry with every built-in guard registered."""
    return GuardRegistry(session, default_guard_specs(required_documents))
