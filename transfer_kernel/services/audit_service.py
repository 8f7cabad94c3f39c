"""
AuditService -- append-only case audit trail.

Responsibility:
    Creates immutable ``AuditLogEntry`` rows for every stage transition and
    every significant domain mutation, applies the one sanctioned
    post-creation write (request-metadata backfill), and reads a case's
    trail back as frozen DTOs.

Architecture position:
    Kernel > Services -- imperative shell, called by the transition
    executor, provisioning hooks and every domain service.

Invariants enforced:
    - Sequence monotonicity via SequenceService.
    - Append-only: entries are never modified or deleted (ORM listener).
    - Two-phase append: core fields are written at INSERT; ip_address and
      user_agent are filled later, at most once each, idempotently.

Failure modes:
    - ImmutabilityViolationError when a backfill would overwrite a
      different, already-recorded request-metadata value.
    - RecordNotFoundError when a backfill names an unknown entry id.

Audit relevance:
    This IS the audit service.  Entries are flushed in the caller's
    transaction (or the executor's savepoint), so a rolled-back mutation
    never leaves an orphan entry behind.
"""

from typing import Any, Iterable
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from transfer_kernel.db.immutability import immutability_violation
from transfer_kernel.domain.clock import Clock, SystemClock
from transfer_kernel.exceptions import RecordNotFoundError
from transfer_kernel.logging_config import get_logger
from transfer_kernel.models.audit_log import AuditAction, AuditLogEntry
from transfer_kernel.selectors.audit_selector import AuditSelector, AuditTrail
from transfer_kernel.services.base import BaseService
from transfer_kernel.services.sequence_service import SequenceService
from transfer_kernel.utils.hashing import json_safe

logger = get_logger("services.audit")


class AuditService(BaseService):
    """
    Service for appending and reading case audit entries.

    Contract:
        ``record()`` is the single write path for new entries.
        ``attach_request_metadata()`` is the single write path for
        existing entries.

    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._sequence_service = SequenceService(session)

    def record(
        self,
        case_id: UUID,
        actor_id: str,
        action: AuditAction,
        detail: str,
        from_stage_id: UUID | None = None,
        to_stage_id: UUID | None = None,
        payload: dict[str, Any] | None = None,
    ) -> AuditLogEntry:
        """Append one entry and flush it.  Returns the persisted row."""
        seq = self._sequence_service.next_audit_seq()

        entry = AuditLogEntry(
            seq=seq,
            case_id=case_id,
            actor_id=actor_id,
            action=AuditAction(action).value,
            detail=detail,
            from_stage_id=from_stage_id,
            to_stage_id=to_stage_id,
            payload=json_safe(payload),
            occurred_at=self._clock.now(),
        )
        self.session.add(entry)
        self.session.flush()

        logger.info(
            "audit_entry_created",
            extra={
                "case_id": str(case_id),
                "action": entry.action,
                "seq": seq,
            },
        )
        return entry

    def attach_request_metadata(
        self,
        entry_ids: Iterable[UUID],
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> int:
        """
        Backfill request metadata onto already-written entries.

        Only NULL fields are filled.  Repeating a call with the same values
        is a no-op.  Supplying a different value for a field that is
        already set raises ImmutabilityViolationError before anything is
        written.

        Returns:
            Number of entries that actually changed.
        """
        ids = list(dict.fromkeys(entry_ids))
        if not ids or (ip_address is None and user_agent is None):
            return 0

        entries = self.session.execute(
            select(AuditLogEntry)
            .where(AuditLogEntry.id.in_(ids))
            .execution_options(populate_existing=True)
        ).scalars().all()

        found = {e.id for e in entries}
        missing = [i for i in ids if i not in found]
        if missing:
            raise RecordNotFoundError("AuditLogEntry", str(missing[0]))

        requested = {"ip_address": ip_address, "user_agent": user_agent}

        # Validate every entry first so a conflict leaves nothing half-patched
        for entry in entries:
            for field_name, value in requested.items():
                current = getattr(entry, field_name)
                if value is not None and current is not None and current != value:
                    raise immutability_violation(
                        "AuditLogEntry",
                        entry.id,
                        "UPDATE",
                        f"Request metadata field '{field_name}' is already set",
                        field=field_name,
                    )

        changed = 0
        for entry in entries:
            touched = False
            for field_name, value in requested.items():
                if value is not None and getattr(entry, field_name) is None:
                    setattr(entry, field_name, value)
                    touched = True
            changed += int(touched)

        if changed:
            self.session.flush()
        logger.info(
            "audit_request_metadata_attached",
            extra={"entry_count": len(entries), "changed": changed},
        )
        return changed

    def trail(self, case_id: UUID) -> AuditTrail:
        """Frozen, seq-ordered view of a case's audit entries."""
        return AuditSelector(self.session).trail(case_id)
