"""
transfer_services.review_service -- Section review verdicts (OWO, Approver).

Upserts one Review per (case, section), audits it, and relays approved
OWO / APPROVER reviews into auto-progression with the reviewing actor, so
role-gated guards see the real reviewer role.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from transfer_kernel.domain.clock import Clock, SystemClock
from transfer_kernel.domain.relay import DomainEvent
from transfer_kernel.domain.values import ReviewStatus, Section
from transfer_kernel.domain.workflow import ActorRef
from transfer_kernel.exceptions import CaseNotFoundError
from transfer_kernel.logging_config import get_logger
from transfer_kernel.models.application import Application
from transfer_kernel.models.audit_log import AuditAction
from transfer_kernel.models.clearance import Review
from transfer_kernel.services.audit_service import AuditService
from transfer_kernel.services.base import BaseService

if TYPE_CHECKING:
    from transfer_services.auto_progression import (
        AutoProgressionCoordinator,
        AutoProgressionResult,
    )

logger = get_logger("services.review")

REVIEW_EVENTS: dict[tuple[Section, ReviewStatus], DomainEvent] = {
    (Section.OWO, ReviewStatus.APPROVED): DomainEvent.OWO_REVIEW_APPROVED,
    (Section.APPROVER, ReviewStatus.APPROVED): DomainEvent.APPROVER_REVIEW_APPROVED,
}


@dataclass(frozen=True)
class ReviewOutcome:
    review: Review
    created: bool
    auto_progression: AutoProgressionResult | None = None


class ReviewService(BaseService):
    """Records review verdicts.  Flushes only."""

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

    def record_review(
        self,
        case_id: UUID,
        section: Section | str,
        status: ReviewStatus | str,
        actor: ActorRef,
        remarks: str | None = None,
    ) -> ReviewOutcome:
        section = Section(section)
        status = ReviewStatus(status)
        if self.session.get(Application, case_id) is None:
            raise CaseNotFoundError(str(case_id))

        now = self._clock.now()
        review = self.session.execute(
            select(Review).where(
                Review.application_id == case_id,
                Review.section == section.value,
            )
        ).scalar_one_or_none()
        created = review is None
        if created:
            review = Review(
                application_id=case_id,
                section=section.value,
                created_by=actor.actor_id,
            )
            self.session.add(review)
        else:
            review.updated_at = now
        review.reviewer_id = actor.actor_id
        review.status = status.value
        review.remarks = remarks
        review.reviewed_at = None if status is ReviewStatus.PENDING else now
        self.session.flush()

        self._audit.record(
            case_id=case_id,
            actor_id=actor.actor_id,
            action=AuditAction.REVIEW_CREATED if created else AuditAction.REVIEW_UPDATED,
            detail=f"Review {status.value} for {section.value} section",
            payload={"section": section.value, "status": status.value, "remarks": remarks},
        )
        logger.info(
            "review_recorded",
            extra={"case_id": str(case_id), "section": section.value, "status": status.value},
        )

        auto = None
        event = REVIEW_EVENTS.get((section, status))
        if event is not None and self._coordinator is not None:
            auto = self._coordinator.check(case_id, event, actor)
        return ReviewOutcome(review, created, auto)
