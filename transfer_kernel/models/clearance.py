"""
Module: transfer_kernel.models.clearance
Responsibility: ORM persistence for section clearances and section reviews.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - One Clearance row per (application, section) (uq_clearance_section).
    - One Review row per (application, section) (uq_review_section).
    - Clearance.cleared_at is set only while status is CLEAR.

Failure modes:
    - IntegrityError if a writer bypasses the upsert and inserts a duplicate.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import ForeignKey, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from transfer_kernel.db.base import TrackedBase, UUIDString
from transfer_kernel.domain.values import ClearanceStatus, ReviewStatus


class Clearance(TrackedBase):
    """A section's PENDING / CLEAR / OBJECTION verdict on a case."""

    __tablename__ = "clearances"

    __table_args__ = (
        UniqueConstraint("application_id", "section", name="uq_clearance_section"),
    )

    application_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("applications.id"), nullable=False,
    )
    section: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ClearanceStatus.PENDING.value,
    )
    remarks: Mapped[str | None] = mapped_column(Text, nullable=True)
    cleared_at: Mapped[datetime | None] = mapped_column(nullable=True)

    def __repr__(self) -> str:
        return f"<Clearance {self.section}={self.status}>"


class Review(TrackedBase):
    """A reviewer's PENDING / APPROVED / REJECTED verdict for one section."""

    __tablename__ = "reviews"

    __table_args__ = (
        UniqueConstraint("application_id", "section", name="uq_review_section"),
    )

    application_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("applications.id"), nullable=False,
    )
    section: Mapped[str] = mapped_column(String(20), nullable=False)
    reviewer_id: Mapped[str] = mapped_column(String(100), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ReviewStatus.PENDING.value,
    )
    remarks: Mapped[str | None] = mapped_column(Text, nullable=True)
    reviewed_at: Mapped[datetime | None] = mapped_column(nullable=True)

    def __repr__(self) -> str:
        return f"<Review {self.section}={self.status}>"
