"""
transfer_services.accounts_service -- Fee breakdown and payment verification.

Responsibility:
    Maintains the one AccountsBreakdown row per case: itemized fee
    components, computed total, paid and remaining amounts and the derived
    ``payment_verified`` flag.  A verified payment also clears the ACCOUNTS
    section.

Architecture position:
    Services layer.  Flushes only; the caller owns the transaction.

Invariants enforced:
    - total_amount is the sum of the fee components.
    - remaining_amount = total_amount - paid_amount, never negative.
    - payment_verified is True exactly when total_amount > 0 and
      paid_amount >= total_amount.
    - No fee component and no payment may be negative.  Neither a payment
      nor a re-quoted total may leave paid_amount above total_amount.

Failure modes:
    - InvalidAmountError, PaymentExceedsTotalError, RecordNotFoundError
      ("Accounts breakdown not found"), CaseNotFoundError.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Mapping
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from transfer_kernel.domain.clock import Clock, SystemClock
from transfer_kernel.domain.relay import DomainEvent
from transfer_kernel.domain.values import ClearanceStatus, Section
from transfer_kernel.domain.workflow import ActorRef
from transfer_kernel.exceptions import (
    CaseNotFoundError,
    InvalidAmountError,
    PaymentExceedsTotalError,
    RecordNotFoundError,
)
from transfer_kernel.logging_config import get_logger
from transfer_kernel.models.accounts import AccountsBreakdown
from transfer_kernel.models.application import Application
from transfer_kernel.models.audit_log import AuditAction
from transfer_kernel.services.audit_service import AuditService
from transfer_kernel.services.base import BaseService
from transfer_services.clearance_service import ClearanceService

if TYPE_CHECKING:
    from transfer_services.auto_progression import (
        AutoProgressionCoordinator,
        AutoProgressionResult,
    )

logger = get_logger("services.accounts")

ZERO = Decimal("0")


def _to_decimal(field_name: str, value: Any) -> Decimal:
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except ArithmeticError as exc:
        raise InvalidAmountError(field_name, value) from exc
    if not amount.is_finite() or amount < ZERO:
        raise InvalidAmountError(field_name, value)
    return amount


def _is_settled(paid: Decimal, total: Decimal) -> bool:
    # A zero quote is not a settled bill.
    return total > ZERO and paid >= total


@dataclass(frozen=True)
class FeeSchedule:
    """Itemized fee components of a transfer.  All amounts are non-negative."""

    arrears: Decimal = ZERO
    surcharge: Decimal = ZERO
    non_user_charges: Decimal = ZERO
    transfer_fee: Decimal = ZERO
    attorney_fee: Decimal = ZERO
    water_charges: Decimal = ZERO
    other_charges: Decimal = ZERO

    def __post_init__(self) -> None:
        for f in fields(self):
            object.__setattr__(self, f.name, _to_decimal(f.name, getattr(self, f.name)))

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> FeeSchedule:
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known and v is not None})

    @property
    def total(self) -> Decimal:
        return sum((getattr(self, f.name) for f in fields(self)), ZERO)

    def as_dict(self) -> dict[str, Decimal]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


@dataclass(frozen=True)
class AccountsOutcome:
    breakdown: AccountsBreakdown
    auto_progression: AutoProgressionResult | None = None


class AccountsService(BaseService):
    """
    Writes the accounts breakdown and verifies payments.

    Contract:
        ``upsert_breakdown`` then checks ACCOUNTS_CALCULATED, or
        PAYMENT_VERIFIED when the re-quote is settled by the amount paid.
        ``verify_payment`` checks PAYMENT_VERIFIED only for a settling payment.

    Non-goals:
        - Does NOT render challans or receipts; ``challan_url`` is an
          opaque reference supplied by the caller.
    """

    def __init__(
        self,
        session: Session,
        coordinator: AutoProgressionCoordinator | None = None,
        audit_service: AuditService | None = None,
        clock: Clock | None = None,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._audit = audit_service or AuditService(session, self._clock)
        self._coordinator = coordinator
        self._clearances = ClearanceService(session, audit_service=self._audit, clock=self._clock)

    def _find(self, case_id: UUID) -> AccountsBreakdown | None:
        return self.session.execute(
            select(AccountsBreakdown).where(AccountsBreakdown.application_id == case_id)
        ).scalar_one_or_none()

    def _check(self, case_id: UUID, event: DomainEvent) -> AutoProgressionResult | None:
        if self._coordinator is None:
            return None
        return self._coordinator.check(case_id, event)

    def upsert_breakdown(
        self,
        case_id: UUID,
        fees: FeeSchedule,
        actor: ActorRef,
        challan_url: str | None = None,
        challan_no: str | None = None,
    ) -> AccountsOutcome:
        """
        Create or replace the fee breakdown and re-derive the totals.

        A re-quote below the amount already paid is rejected.  A re-quote
        that the paid amount now settles clears the ACCOUNTS section and
        relays PAYMENT_VERIFIED, exactly as a payment would.
        """
        if self.session.get(Application, case_id) is None:
            raise CaseNotFoundError(str(case_id))

        breakdown = self._find(case_id)
        total = fees.total
        paid = ZERO if breakdown is None else Decimal(breakdown.paid_amount or ZERO)
        if paid > total:
            raise PaymentExceedsTotalError(str(case_id), paid, total)
        was_verified = breakdown is not None and bool(breakdown.payment_verified)

        now = self._clock.now()
        if breakdown is None:
            breakdown = AccountsBreakdown(
                application_id=case_id,
                paid_amount=ZERO,
                created_by=actor.actor_id,
            )
            self.session.add(breakdown)
        else:
            breakdown.updated_at = now

        for name, amount in fees.as_dict().items():
            setattr(breakdown, name, amount)

        verified = _is_settled(paid, total)
        newly_verified = verified and not was_verified
        breakdown.total_amount = total
        breakdown.remaining_amount = total - paid
        breakdown.payment_verified = verified
        if newly_verified:
            breakdown.verified_at = now
        elif not verified:
            breakdown.verified_at = None
        if challan_url:
            breakdown.challan_url = challan_url
        if challan_no:
            breakdown.challan_no = challan_no
        self.session.flush()

        self._audit.record(
            case_id=case_id,
            actor_id=actor.actor_id,
            action=AuditAction.ACCOUNTS_UPSERTED,
            detail=(
                f"Accounts breakdown upserted: Total: {total}, "
                f"Remaining: {breakdown.remaining_amount}"
            ),
            payload={"fees": fees.as_dict(), "total_amount": total},
        )
        logger.info(
            "accounts_breakdown_upserted",
            extra={"case_id": str(case_id), "total_amount": total, "payment_verified": verified},
        )

        if newly_verified:
            self._clear_accounts(case_id, actor)
            return AccountsOutcome(breakdown, self._check(case_id, DomainEvent.PAYMENT_VERIFIED))
        return AccountsOutcome(breakdown, self._check(case_id, DomainEvent.ACCOUNTS_CALCULATED))

    def verify_payment(
        self,
        case_id: UUID,
        paid_amount: Decimal | int | str,
        actor: ActorRef,
    ) -> AccountsOutcome:
        """Record the paid amount; a full payment clears the ACCOUNTS section."""
        paid = _to_decimal("paid_amount", paid_amount)

        breakdown = self._find(case_id)
        if breakdown is None:
            raise RecordNotFoundError(
                "AccountsBreakdown", str(case_id), "Accounts breakdown not found",
            )

        total = Decimal(breakdown.total_amount)
        if paid > total:
            raise PaymentExceedsTotalError(str(case_id), paid, total)

        now = self._clock.now()
        verified = _is_settled(paid, total)
        breakdown.paid_amount = paid
        breakdown.remaining_amount = total - paid
        breakdown.payment_verified = verified
        breakdown.verified_at = now if verified else None
        breakdown.updated_at = now
        self.session.flush()

        if verified:
            self._clear_accounts(case_id, actor)

        self._audit.record(
            case_id=case_id,
            actor_id=actor.actor_id,
            action=AuditAction.PAYMENT_VERIFIED,
            detail=(
                f"Payment recorded: Paid: {paid}, "
                f"Remaining: {breakdown.remaining_amount}, Verified: {verified}"
            ),
            payload={"paid_amount": paid, "total_amount": total, "payment_verified": verified},
        )
        logger.info(
            "payment_verified" if verified else "payment_recorded",
            extra={"case_id": str(case_id), "paid_amount": paid, "total_amount": total},
        )
        if not verified:
            return AccountsOutcome(breakdown)
        return AccountsOutcome(breakdown, self._check(case_id, DomainEvent.PAYMENT_VERIFIED))

    def _clear_accounts(self, case_id: UUID, actor: ActorRef) -> None:
        self._clearances.record_clearance(
            case_id,
            Section.ACCOUNTS,
            ClearanceStatus.CLEAR,
            actor,
            remarks="Payment verified - Accounts cleared",
        )
