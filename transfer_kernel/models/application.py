"""
Module: transfer_kernel.models.application
Responsibility: ORM persistence for the transfer case (Application) and the
    metadata of documents attached to it.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Exactly one current stage per case (current_stage_id NOT NULL).
    - current_stage_id / previous_stage_id are written only by the
      transition executor (guarded by db/immutability.py).
    - application_no is unique.

Failure modes:
    - ImmutabilityViolationError when any other code path flushes a change
      to the stage pointer.

Audit relevance:
    Every change to the stage pointer is paired with a STAGE_TRANSITION or
    AUTO_STAGE_TRANSITION audit entry written in the same savepoint.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from transfer_kernel.db.base import TrackedBase, UUIDString


class Application(TrackedBase):
    """
    A single property-transfer case.

    Contract:
        Domain services own every column except the stage pointer.

    Guarantees:
        - ``previous_stage_id`` is the stage immediately prior to the last
          successful transition (None until the first transition).
    """

    __tablename__ = "applications"

    __table_args__ = (
        UniqueConstraint("application_no", name="uq_application_no"),
        Index("idx_application_stage", "current_stage_id"),
    )

    application_no: Mapped[str] = mapped_column(String(50), nullable=False)
    seller_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("persons.id"), nullable=False,
    )
    buyer_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("persons.id"), nullable=False,
    )
    plot_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("plots.id"), nullable=False,
    )
    current_stage_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("workflow_stages.id"), nullable=False,
    )
    previous_stage_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("workflow_stages.id"), nullable=True,
    )

    def __repr__(self) -> str:
        return f"<Application {self.application_no}>"


class Attachment(TrackedBase):
    """Metadata for a document attached to a case.  Storage lives elsewhere."""

    __tablename__ = "attachments"

    __table_args__ = (
        Index("idx_attachment_application", "application_id"),
    )

    application_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("applications.id"), nullable=False,
    )
    doc_type: Mapped[str] = mapped_column(String(50), nullable=False)
    file_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    is_original_seen: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    verified_at: Mapped[datetime | None] = mapped_column(nullable=True)

    def __repr__(self) -> str:
        return f"<Attachment {self.doc_type} seen={self.is_original_seen}>"
