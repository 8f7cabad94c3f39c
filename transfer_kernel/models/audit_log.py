"""
Module: transfer_kernel.models.audit_log
Responsibility: ORM persistence for the append-only case audit trail.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Append-only: no UPDATE or DELETE, with one exception -- the request
      metadata fields (ip_address, user_agent) may be filled once from
      NULL by a later, idempotent patch (db/immutability.py).
    - seq is strictly increasing, allocated by SequenceService.

Failure modes:
    - ImmutabilityViolationError on any other UPDATE or any DELETE.

Audit relevance:
    AuditLogEntry IS the audit trail.  Every stage transition (manual or
    automatic) and every guarded mutation (clearance, review, accounts,
    deed, ownership) produces an entry consumed by reporting and the UI.
"""

from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import JSON, BigInteger, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from transfer_kernel.db.base import Base, UUIDString


class AuditAction(str, Enum):
    """Types of auditable actions on a case."""

    # Case lifecycle
    APPLICATION_CREATED = "APPLICATION_CREATED"
    DOCUMENT_ATTACHED = "DOCUMENT_ATTACHED"
    DOCUMENT_VERIFIED = "DOCUMENT_VERIFIED"

    # Stage changes
    STAGE_TRANSITION = "STAGE_TRANSITION"
    AUTO_STAGE_TRANSITION = "AUTO_STAGE_TRANSITION"

    # Sections
    CLEARANCE_CREATED = "CLEARANCE_CREATED"
    CLEARANCE_UPDATED = "CLEARANCE_UPDATED"
    REVIEW_CREATED = "REVIEW_CREATED"
    REVIEW_UPDATED = "REVIEW_UPDATED"

    # Accounts
    ACCOUNTS_UPSERTED = "ACCOUNTS_UPSERTED"
    PAYMENT_VERIFIED = "PAYMENT_VERIFIED"

    # Deed
    DEED_DRAFTED = "DEED_DRAFTED"
    DEED_DRAFT_UPDATED = "DEED_DRAFT_UPDATED"
    DEED_FINALIZED = "DEED_FINALIZED"
    OWNERSHIP_TRANSFERRED = "OWNERSHIP_TRANSFERRED"


# Fields that the two-phase request-metadata patch may fill from NULL.
AUDIT_LOG_BACKFILL_FIELDS = frozenset({"ip_address", "user_agent"})


class AuditLogEntry(Base):
    """
    One row per transition or significant mutation on a case.

    Contract:
        Core fields are written once at INSERT.  The request-metadata
        fields are written at most once each, from NULL to a value.

    Guarantees:
        - seq is globally unique and monotonically increasing.

    Non-goals:
        - No hash chain; tamper evidence for the deed lives on the deed.
    """

    __tablename__ = "audit_log_entries"

    __table_args__ = (
        Index("idx_audit_log_case", "case_id", "seq"),
        Index("idx_audit_log_action", "action"),
    )

    seq: Mapped[int] = mapped_column(BigInteger, nullable=False, unique=True)

    case_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    actor_id: Mapped[str] = mapped_column(String(100), nullable=False)

    action: Mapped[str] = mapped_column(String(50), nullable=False)

    from_stage_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    to_stage_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    detail: Mapped[str] = mapped_column(Text, nullable=False)

    payload: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    occurred_at: Mapped[datetime] = mapped_column(nullable=False)

    # Request metadata, backfilled by the calling layer.  active_history so the
    # immutability listener always sees the prior value.
    ip_address: Mapped[str | None] = mapped_column(
        String(64), nullable=True, active_history=True,
    )
    user_agent: Mapped[str | None] = mapped_column(
        String(500), nullable=True, active_history=True,
    )

    def __repr__(self) -> str:
        return f"<AuditLogEntry #{self.seq} {self.action} case={self.case_id}>"
