"""
transfer_services.deed_service -- Transfer deed drafting and finalization.

Responsibility:
    Drafts the deed (two distinct witnesses, content), finalizes it once
    with a SHA-256 hash of its canonical data, transfers plot ownership
    through the ``PlotOwnershipRegistry`` and relays DEED_FINALIZED into
    auto-progression.

Architecture position:
    Services layer.  Flushes only; the caller owns the transaction.

Invariants enforced:
    - At most one deed per case.
    - A deed is finalized exactly once; afterwards it is immutable
      (ORM listener in ``transfer_kernel.db.immutability``).
    - Ownership is transferred in the same transaction as finalization.

Failure modes:
    - DuplicateWitnessError, PersonNotFoundError (witness),
      DeedAlreadyExistsError, DeedAlreadyFinalizedError,
      RecordNotFoundError ("Transfer deed not found"), CaseNotFoundError.

Audit relevance:
    Finalization writes OWNERSHIP_TRANSFERRED then DEED_FINALIZED entries.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from transfer_kernel.domain.clock import Clock, SystemClock
from transfer_kernel.domain.relay import DomainEvent
from transfer_kernel.domain.workflow import ActorRef
from transfer_kernel.exceptions import (
    CaseNotFoundError,
    DeedAlreadyExistsError,
    DeedAlreadyFinalizedError,
    DuplicateWitnessError,
    PersonNotFoundError,
    RecordNotFoundError,
)
from transfer_kernel.logging_config import get_logger
from transfer_kernel.models.application import Application
from transfer_kernel.models.audit_log import AuditAction
from transfer_kernel.models.deed import TransferDeed
from transfer_kernel.models.party import Person, Plot
from transfer_kernel.services.audit_service import AuditService
from transfer_kernel.services.base import BaseService
from transfer_kernel.utils.hashing import hash_payload
from transfer_services.ownership import PlotOwnershipRegistry, SqlPlotOwnershipRegistry

if TYPE_CHECKING:
    from transfer_services.auto_progression import (
        AutoProgressionCoordinator,
        AutoProgressionResult,
    )

logger = get_logger("services.deed")


@dataclass(frozen=True)
class DeedOutcome:
    deed: TransferDeed
    auto_progression: AutoProgressionResult | None = None


class DeedService(BaseService):
    """
    Drafts and finalizes transfer deeds.

    Contract:
        ``finalize`` is the single path that sets ``is_finalized``.

    Non-goals:
        - Does NOT render the deed PDF; ``final_pdf_url`` is supplied by
          the caller.
    """

    def __init__(
        self,
        session: Session,
        coordinator: AutoProgressionCoordinator | None = None,
        ownership_registry: PlotOwnershipRegistry | None = None,
        audit_service: AuditService | None = None,
        clock: Clock | None = None,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._audit = audit_service or AuditService(session, self._clock)
        self._coordinator = coordinator
        self._ownership = ownership_registry or SqlPlotOwnershipRegistry(session)

    def _application(self, case_id: UUID) -> Application:
        application = self.session.get(Application, case_id)
        if application is None:
            raise CaseNotFoundError(str(case_id))
        return application

    def _deed(self, case_id: UUID) -> TransferDeed | None:
        return self.session.execute(
            select(TransferDeed).where(TransferDeed.application_id == case_id)
        ).scalar_one_or_none()

    def _require_draft(self, case_id: UUID) -> TransferDeed:
        deed = self._deed(case_id)
        if deed is None:
            raise RecordNotFoundError("TransferDeed", str(case_id), "Transfer deed not found")
        if deed.is_finalized:
            raise DeedAlreadyFinalizedError(str(case_id))
        return deed

    def _check_witnesses(self, witness1_id: UUID, witness2_id: UUID) -> None:
        if witness1_id == witness2_id:
            raise DuplicateWitnessError(str(witness1_id))
        for witness_id in (witness1_id, witness2_id):
            if self.session.get(Person, witness_id) is None:
                raise PersonNotFoundError(str(witness_id), role="witness")

    def create_draft(
        self,
        case_id: UUID,
        witness1_id: UUID,
        witness2_id: UUID,
        deed_content: str | None,
        actor: ActorRef,
    ) -> TransferDeed:
        self._application(case_id)
        self._check_witnesses(witness1_id, witness2_id)
        if self._deed(case_id) is not None:
            raise DeedAlreadyExistsError(str(case_id))

        deed = TransferDeed(
            application_id=case_id,
            witness1_id=witness1_id,
            witness2_id=witness2_id,
            deed_content=deed_content,
            is_finalized=False,
            created_by=actor.actor_id,
        )
        self.session.add(deed)
        self.session.flush()

        self._audit.record(
            case_id=case_id,
            actor_id=actor.actor_id,
            action=AuditAction.DEED_DRAFTED,
            detail="Transfer deed draft created",
            payload={"witness1_id": witness1_id, "witness2_id": witness2_id},
        )
        logger.info("deed_drafted", extra={"case_id": str(case_id), "deed_id": str(deed.id)})
        return deed

    def update_draft(
        self,
        case_id: UUID,
        actor: ActorRef,
        witness1_id: UUID | None = None,
        witness2_id: UUID | None = None,
        deed_content: str | None = None,
    ) -> TransferDeed:
        deed = self._require_draft(case_id)
        new_w1 = witness1_id or deed.witness1_id
        new_w2 = witness2_id or deed.witness2_id
        if witness1_id is not None or witness2_id is not None:
            self._check_witnesses(new_w1, new_w2)

        deed.witness1_id = new_w1
        deed.witness2_id = new_w2
        if deed_content is not None:
            deed.deed_content = deed_content
        deed.updated_at = self._clock.now()
        self.session.flush()

        self._audit.record(
            case_id=case_id,
            actor_id=actor.actor_id,
            action=AuditAction.DEED_DRAFT_UPDATED,
            detail="Transfer deed draft updated",
            payload={"witness1_id": new_w1, "witness2_id": new_w2},
        )
        return deed

    def finalize(
        self,
        case_id: UUID,
        witness1_signature: str,
        witness2_signature: str,
        final_pdf_url: str,
        actor: ActorRef,
    ) -> DeedOutcome:
        """Seal the deed, transfer ownership and relay DEED_FINALIZED."""
        application = self._application(case_id)
        deed = self._require_draft(case_id)

        seller = self.session.get(Person, application.seller_id)
        buyer = self.session.get(Person, application.buyer_id)
        plot = self.session.get(Plot, application.plot_id)

        finalized_at = self._clock.now()
        deed_hash = hash_payload({
            "application_id": application.id,
            "seller_id": application.seller_id,
            "buyer_id": application.buyer_id,
            "plot_id": application.plot_id,
            "witness1_id": deed.witness1_id,
            "witness2_id": deed.witness2_id,
            "deed_content": deed.deed_content,
            "witness1_signature": witness1_signature,
            "witness2_signature": witness2_signature,
            "final_pdf_url": final_pdf_url,
            "finalized_at": finalized_at,
        })

        deed.witness1_signature = witness1_signature
        deed.witness2_signature = witness2_signature
        deed.final_pdf_url = final_pdf_url
        deed.hash_sha256 = deed_hash
        deed.finalized_at = finalized_at
        deed.is_finalized = True
        deed.updated_at = finalized_at
        self.session.flush()

        self._ownership.transfer_ownership(
            application.plot_id, application.seller_id, application.buyer_id,
        )
        self._audit.record(
            case_id=case_id,
            actor_id=actor.actor_id,
            action=AuditAction.OWNERSHIP_TRANSFERRED,
            detail=(
                f"Ownership transferred from {seller.name if seller else application.seller_id} "
                f"to {buyer.name if buyer else application.buyer_id} "
                f"for plot {plot.plot_no if plot else application.plot_id}"
            ),
            payload={
                "plot_id": application.plot_id,
                "from_owner_id": application.seller_id,
                "to_owner_id": application.buyer_id,
            },
        )
        self._audit.record(
            case_id=case_id,
            actor_id=actor.actor_id,
            action=AuditAction.DEED_FINALIZED,
            detail=f"Transfer deed finalized with hash: {deed_hash}",
            payload={"deed_id": deed.id, "hash_sha256": deed_hash},
        )
        logger.info(
            "deed_finalized",
            extra={"case_id": str(case_id), "deed_id": str(deed.id), "hash_sha256": deed_hash},
        )

        auto = None
        if self._coordinator is not None:
            auto = self._coordinator.check(case_id, DomainEvent.DEED_FINALIZED, actor)
        return DeedOutcome(deed, auto)
