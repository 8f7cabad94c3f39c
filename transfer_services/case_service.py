"""
transfer_services.case_service -- Case intake: opening a case and recording
its documents.

Responsibility:
    Creates the Application at the catalog's initial stage, and records
    attachment metadata and "original seen" verification.  Document bytes
    live in an external store; only metadata is kept here.

Architecture position:
    Services layer.  Flushes only; the caller owns the transaction.  The
    initial stage pointer is written on INSERT; every later pointer change
    belongs to the TransitionExecutor.

Failure modes:
    - PersonNotFoundError (seller / buyer), RecordNotFoundError (plot,
      attachment), StageNotFoundError (initial stage not seeded),
      CaseNotFoundError.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from transfer_kernel.domain.clock import Clock, SystemClock
from transfer_kernel.domain.workflow import ActorRef
from transfer_kernel.exceptions import (
    CaseNotFoundError,
    PersonNotFoundError,
    RecordNotFoundError,
    StageNotFoundError,
)
from transfer_kernel.logging_config import get_logger
from transfer_kernel.models.application import Application, Attachment
from transfer_kernel.models.audit_log import AuditAction
from transfer_kernel.models.party import Person, Plot
from transfer_kernel.models.workflow import WorkflowStage
from transfer_kernel.services.audit_service import AuditService
from transfer_kernel.services.base import BaseService
from transfer_kernel.services.sequence_service import SequenceService

logger = get_logger("services.case")

DEFAULT_INITIAL_STAGE = "SUBMITTED"


class CaseService(BaseService):
    """
    Opens cases and records their documents.

    Contract:
        ``open_case`` returns a flushed Application positioned at the
        initial stage with an APPLICATION_CREATED audit entry.

    Non-goals:
        - Does NOT store files or validate their contents.
    """

    def __init__(
        self,
        session: Session,
        audit_service: AuditService | None = None,
        clock: Clock | None = None,
        initial_stage_code: str = DEFAULT_INITIAL_STAGE,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._audit = audit_service or AuditService(session, self._clock)
        self._initial_stage_code = initial_stage_code

    def _next_application_no(self) -> str:
        year = self._clock.year()
        serial = SequenceService(self.session).next_application_serial(year)
        return f"APP-{year}-{serial:06d}"

    def open_case(
        self,
        seller_id: UUID,
        buyer_id: UUID,
        plot_id: UUID,
        actor: ActorRef,
        application_no: str | None = None,
    ) -> Application:
        if self.session.get(Person, seller_id) is None:
            raise PersonNotFoundError(str(seller_id), role="seller")
        if self.session.get(Person, buyer_id) is None:
            raise PersonNotFoundError(str(buyer_id), role="buyer")
        if self.session.get(Plot, plot_id) is None:
            raise RecordNotFoundError("Plot", str(plot_id), "Plot not found")

        stage = self.session.execute(
            select(WorkflowStage).where(WorkflowStage.code == self._initial_stage_code)
        ).scalar_one_or_none()
        if stage is None:
            raise StageNotFoundError(self._initial_stage_code)

        application = Application(
            application_no=application_no or self._next_application_no(),
            seller_id=seller_id,
            buyer_id=buyer_id,
            plot_id=plot_id,
            current_stage_id=stage.id,
            previous_stage_id=None,
            created_by=actor.actor_id,
        )
        self.session.add(application)
        self.session.flush()

        self._audit.record(
            case_id=application.id,
            actor_id=actor.actor_id,
            action=AuditAction.APPLICATION_CREATED,
            detail=f"Application {application.application_no} created",
            to_stage_id=stage.id,
            payload={"seller_id": seller_id, "buyer_id": buyer_id, "plot_id": plot_id},
        )
        logger.info(
            "case_opened",
            extra={
                "case_id": str(application.id),
                "application_no": application.application_no,
                "stage": stage.code,
            },
        )
        return application

    def register_attachment(
        self,
        case_id: UUID,
        doc_type: str,
        actor: ActorRef,
        file_name: str | None = None,
        is_original_seen: bool = False,
    ) -> Attachment:
        if self.session.get(Application, case_id) is None:
            raise CaseNotFoundError(str(case_id))

        attachment = Attachment(
            application_id=case_id,
            doc_type=doc_type,
            file_name=file_name,
            is_original_seen=is_original_seen,
            verified_at=self._clock.now() if is_original_seen else None,
            created_by=actor.actor_id,
        )
        self.session.add(attachment)
        self.session.flush()

        self._audit.record(
            case_id=case_id,
            actor_id=actor.actor_id,
            action=AuditAction.DOCUMENT_ATTACHED,
            detail=f"Document attached: {doc_type}",
            payload={"attachment_id": attachment.id, "doc_type": doc_type,
                     "is_original_seen": is_original_seen},
        )
        return attachment

    def mark_original_seen(self, attachment_id: UUID, actor: ActorRef) -> Attachment:
        """Record that the physical original was inspected.  Repeat calls are no-ops."""
        attachment = self.session.get(Attachment, attachment_id)
        if attachment is None:
            raise RecordNotFoundError("Attachment", str(attachment_id))
        if attachment.is_original_seen:
            return attachment

        now = self._clock.now()
        attachment.is_original_seen = True
        attachment.verified_at = now
        attachment.updated_at = now
        self.session.flush()

        self._audit.record(
            case_id=attachment.application_id,
            actor_id=actor.actor_id,
            action=AuditAction.DOCUMENT_VERIFIED,
            detail=f"Document marked as original seen: {attachment.doc_type}",
            payload={"attachment_id": attachment.id, "doc_type": attachment.doc_type},
        )
        return attachment
