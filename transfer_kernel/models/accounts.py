"""
Module: transfer_kernel.models.accounts
Responsibility: ORM persistence for the itemized fee breakdown of a case.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - One breakdown per application (uq_accounts_application).
    - remaining_amount = total_amount - paid_amount, never negative
      (maintained by AccountsService).
    - payment_verified is True exactly when paid_amount >= total_amount.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from transfer_kernel.db.base import TrackedBase, UUIDString


class AccountsBreakdown(TrackedBase):
    """Fee components, computed total, paid and remaining amounts for a case."""

    __tablename__ = "accounts_breakdowns"

    __table_args__ = (
        UniqueConstraint("application_id", name="uq_accounts_application"),
    )

    application_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("applications.id"), nullable=False,
    )

    arrears: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    surcharge: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    non_user_charges: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    transfer_fee: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    attorney_fee: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    water_charges: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    other_charges: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    total_amount: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    paid_amount: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    remaining_amount: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    payment_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    verified_at: Mapped[datetime | None] = mapped_column(nullable=True)
    challan_no: Mapped[str | None] = mapped_column(String(50), nullable=True)
    challan_url: Mapped[str | None] = mapped_column(String(500), nullable=True)

    def __repr__(self) -> str:
        return f"<AccountsBreakdown total={self.total_amount} paid={self.paid_amount}>"
