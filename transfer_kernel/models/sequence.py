"""
Module: transfer_kernel.models.sequence
Responsibility: Named counter rows backing SequenceService.

Each row represents a named sequence with its current value.  Row-level
locking (SELECT ... FOR UPDATE) ensures monotonicity under concurrency.
"""

from sqlalchemy import BigInteger, String
from sqlalchemy.orm import Mapped, mapped_column

from transfer_kernel.db.base import Base


class SequenceCounter(Base):
    """Sequence counter table."""

    __tablename__ = "sequence_counters"

    name: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    current_value: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
