"""
Module: transfer_kernel.models.workflow
Responsibility: ORM persistence for the stage catalog -- workflow stages and
    the guard-bound edges between them.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Stage code is unique (uq_workflow_stage_code).
    - At most one edge per (from_stage_id, to_stage_id) (uq_workflow_transition_pair).
    - Catalog rows are immutable once written (db/immutability.py).

Failure modes:
    - IntegrityError on duplicate stage code or duplicate edge pair.
    - ImmutabilityViolationError on UPDATE/DELETE of a catalog row.

Audit relevance:
    Audit entries reference stages by id; immutability of the catalog keeps
    historical from/to references meaningful.
"""

from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from transfer_kernel.db.base import Base, UUIDString


class WorkflowStage(Base):
    """
    A named position in the transfer workflow.

    Contract:
        Stages are data, not behavior.  ``code`` is the business key that
        catalogs, relay tables and callers use.
    """

    __tablename__ = "workflow_stages"

    __table_args__ = (
        UniqueConstraint("code", name="uq_workflow_stage_code"),
    )

    code: Mapped[str] = mapped_column(String(50), nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False)
    is_terminal: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    def __repr__(self) -> str:
        return f"<WorkflowStage {self.code}>"


class WorkflowTransition(Base):
    """
    Directed edge between two stages, bound to exactly one guard name.

    Contract:
        ``guard_name`` holds a GuardName value.  The catalog validator
        rejects unknown names before any row is written.
    """

    __tablename__ = "workflow_transitions"

    __table_args__ = (
        UniqueConstraint("from_stage_id", "to_stage_id", name="uq_workflow_transition_pair"),
        Index("idx_workflow_transition_from", "from_stage_id"),
    )

    from_stage_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("workflow_stages.id"), nullable=False,
    )
    to_stage_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("workflow_stages.id"), nullable=False,
    )
    guard_name: Mapped[str] = mapped_column(String(64), nullable=False)

    def __repr__(self) -> str:
        return f"<WorkflowTransition {self.from_stage_id} -> {self.to_stage_id} [{self.guard_name}]>"
