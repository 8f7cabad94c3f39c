"""
Module: transfer_kernel.models.deed
Responsibility: ORM persistence for the transfer deed of a case.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - One deed per application (uq_deed_application).
    - Draft -> finalized happens exactly once; a finalized deed is
      immutable and cannot be deleted (db/immutability.py).

Audit relevance:
    ``hash_sha256`` is the SHA-256 of the canonical JSON of the deed data
    at finalization, so any later tampering is detectable.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from transfer_kernel.db.base import TrackedBase, UUIDString


class TransferDeed(TrackedBase):
    """Deed draft (witnesses, content) and, once finalized, signatures and hash."""

    __tablename__ = "transfer_deeds"

    __table_args__ = (
        UniqueConstraint("application_id", name="uq_deed_application"),
    )

    application_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("applications.id"), nullable=False,
    )
    witness1_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("persons.id"), nullable=False,
    )
    witness2_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("persons.id"), nullable=False,
    )
    deed_content: Mapped[str | None] = mapped_column(Text, nullable=True)

    witness1_signature: Mapped[str | None] = mapped_column(Text, nullable=True)
    witness2_signature: Mapped[str | None] = mapped_column(Text, nullable=True)
    final_pdf_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    hash_sha256: Mapped[str | None] = mapped_column(String(64), nullable=True)
    is_finalized: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    finalized_at: Mapped[datetime | None] = mapped_column(nullable=True)

    def __repr__(self) -> str:
        return f"<TransferDeed application={self.application_id} finalized={self.is_finalized}>"
