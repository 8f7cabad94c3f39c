"""
Module: transfer_kernel.models.party
Responsibility: ORM persistence for the parties (sellers, buyers, witnesses)
    and the plots whose ownership a case transfers.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - CNIC is unique per person (uq_person_cnic).
    - Plot number is unique (uq_plot_no).

Audit relevance:
    ``Plot.current_owner_id`` is rewritten exactly once per completed case,
    by the ownership registry, when the transfer deed is finalized.
"""

from uuid import UUID

from sqlalchemy import ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from transfer_kernel.db.base import TrackedBase, UUIDString


class Person(TrackedBase):
    """A natural person who can act as seller, buyer or witness."""

    __tablename__ = "persons"

    __table_args__ = (
        UniqueConstraint("cnic", name="uq_person_cnic"),
    )

    cnic: Mapped[str] = mapped_column(String(20), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    father_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    address: Mapped[str | None] = mapped_column(String(500), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(30), nullable=True)

    def __repr__(self) -> str:
        return f"<Person {self.name} ({self.cnic})>"


class Plot(TrackedBase):
    """A land parcel; ``current_owner_id`` is the authoritative owner reference."""

    __tablename__ = "plots"

    __table_args__ = (
        UniqueConstraint("plot_no", name="uq_plot_no"),
    )

    plot_no: Mapped[str] = mapped_column(String(50), nullable=False)
    block_no: Mapped[str | None] = mapped_column(String(20), nullable=True)
    sector_no: Mapped[str | None] = mapped_column(String(20), nullable=True)
    area_sqyd: Mapped[int | None] = mapped_column(nullable=True)
    current_owner_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("persons.id"), nullable=True,
    )

    def __repr__(self) -> str:
        return f"<Plot {self.plot_no}>"
