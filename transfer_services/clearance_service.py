"""
transfer_services.clearance_service -- Section clearances (BCA, Housing, Accounts).

Responsibility:
    Upserts a section's clearance verdict for a case, audits it, and asks
    the auto-progression coordinator whether the verdict unlocks the next
    stage.  Also offers the idempotent "pending clearance" primitive used
    by the provisioning hooks.

Architecture position:
    Services layer.  Flushes only; the caller owns the transaction.

Invariants enforced:
    - One clearance per (case, section): a second verdict updates the row.
    - ``cleared_at`` is set while status is CLEAR and cleared otherwise.
    - Auto-progression runs after the clearance and its audit entry are
      flushed, and its failure never undoes them.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from transfer_kernel.domain.clock import Clock, SystemClock
from transfer_kernel.domain.relay import DomainEvent
from transfer_kernel.domain.values import ClearanceStatus, Section
from transfer_kernel.domain.workflow import ActorRef
from transfer_kernel.exceptions import CaseNotFoundError
from transfer_kernel.logging_config import get_logger
from transfer_kernel.models.application import Application
from transfer_kernel.models.audit_log import AuditAction
from transfer_kernel.models.clearance import Clearance
from transfer_kernel.services.audit_service import AuditService
from transfer_kernel.services.base import BaseService

if TYPE_CHECKING:
    from transfer_services.auto_progression import (
        AutoProgressionCoordinator,
        AutoProgressionResult,
    )

logger = get_logger("services.clearance")

CLEARANCE_EVENTS: dict[tuple[Section, ClearanceStatus], DomainEvent] = {
    (Section.BCA, ClearanceStatus.CLEAR): DomainEvent.BCA_CLEARED,
    (Section.BCA, ClearanceStatus.OBJECTION): DomainEvent.BCA_OBJECTED,
    (Section.HOUSING, ClearanceStatus.CLEAR): DomainEvent.HOUSING_CLEARED,
    (Section.HOUSING, ClearanceStatus.OBJECTION): DomainEvent.HOUSING_OBJECTED,
    (Section.ACCOUNTS, ClearanceStatus.CLEAR): DomainEvent.ACCOUNTS_CLEARED,
}


@dataclass(frozen=True)
class ClearanceOutcome:
    clearance: Clearance
    created: bool
    auto_progression: AutoProgressionResult | None = None


class ClearanceService(BaseService):
    """
    Records clearance verdicts.

    Contract:
        ``record_clearance`` upserts and audits, then triggers the mapped
        domain event (if any).  ``ensure_pending_clearance`` creates a
        PENDING row only when none exists.

    Non-goals:
        - Does NOT move the stage pointer itself.
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

    def _find(self, case_id: UUID, section: Section) -> Clearance | None:
        return self.session.execute(
            select(Clearance).where(
                Clearance.application_id == case_id,
                Clearance.section == section.value,
            )
        ).scalar_one_or_none()

    def _require_case(self, case_id: UUID) -> None:
        if self.session.get(Application, case_id) is None:
            raise CaseNotFoundError(str(case_id))

    def ensure_pending_clearance(
        self,
        case_id: UUID,
        section: Section | str,
        actor_id: str,
        remarks: str | None = None,
    ) -> tuple[Clearance, bool]:
        """Return the section's clearance, creating it as PENDING if absent."""
        section = Section(section)
        existing = self._find(case_id, section)
        if existing is not None:
            return existing, False

        clearance = Clearance(
            application_id=case_id,
            section=section.value,
            status=ClearanceStatus.PENDING.value,
            remarks=remarks,
            created_by=actor_id,
        )
        self.session.add(clearance)
        self.session.flush()

        self._audit.record(
            case_id=case_id,
            actor_id=actor_id,
            action=AuditAction.CLEARANCE_CREATED,
            detail=f"Pending clearance created for {section.value} section",
            payload={"section": section.value, "status": ClearanceStatus.PENDING.value},
        )
        logger.info(
            "pending_clearance_created",
            extra={"case_id": str(case_id), "section": section.value},
        )
        return clearance, True

    def record_clearance(
        self,
        case_id: UUID,
        section: Section | str,
        status: ClearanceStatus | str,
        actor: ActorRef,
        remarks: str | None = None,
    ) -> ClearanceOutcome:
        """Upsert a clearance verdict, audit it and run auto-progression."""
        section = Section(section)
        status = ClearanceStatus(status)
        self._require_case(case_id)

        now = self._clock.now()
        cleared_at = now if status is ClearanceStatus.CLEAR else None

        clearance = self._find(case_id, section)
        created = clearance is None
        if created:
            clearance = Clearance(
                application_id=case_id,
                section=section.value,
                created_by=actor.actor_id,
            )
            self.session.add(clearance)
        else:
            clearance.updated_at = now
        clearance.status = status.value
        clearance.remarks = remarks
        clearance.cleared_at = cleared_at
        self.session.flush()

        self._audit.record(
            case_id=case_id,
            actor_id=actor.actor_id,
            action=AuditAction.CLEARANCE_CREATED if created else AuditAction.CLEARANCE_UPDATED,
            detail=f"Clearance {status.value} for {section.value} section",
            payload={"section": section.value, "status": status.value, "remarks": remarks},
        )
        logger.info(
            "clearance_recorded",
            extra={
                "case_id": str(case_id),
                "section": section.value,
                "status": status.value,
                "clearance_created": created,
            },
        )

        auto = None
        event = CLEARANCE_EVENTS.get((section, status))
        if event is not None and self._coordinator is not None:
            auto = self._coordinator.check(case_id, event)
        return ClearanceOutcome(clearance, created, auto)
