"""
Module: transfer_kernel.selectors.case_selector
Responsibility: Load a fresh, frozen aggregate snapshot of one case for guard
    evaluation, and the stage graph for the transition executor.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - No caching across calls: every ``load()`` re-reads the rows with
      ``populate_existing`` so a guard never sees stale state.
    - Returned DTOs are frozen; guards cannot mutate the case through them.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from types import MappingProxyType
from typing import Mapping
from uuid import UUID

from sqlalchemy import select

from transfer_kernel.domain.workflow import Edge, GuardName, Stage, StageGraph
from transfer_kernel.models.accounts import AccountsBreakdown
from transfer_kernel.models.application import Application, Attachment
from transfer_kernel.models.clearance import Clearance, Review
from transfer_kernel.models.deed import TransferDeed
from transfer_kernel.models.workflow import WorkflowStage, WorkflowTransition
from transfer_kernel.selectors.base import BaseSelector


@dataclass(frozen=True)
class AttachmentView:
    id: UUID
    doc_type: str
    is_original_seen: bool


@dataclass(frozen=True)
class ClearanceView:
    section: str
    status: str
    remarks: str | None
    cleared_at: datetime | None


@dataclass(frozen=True)
class ReviewView:
    section: str
    status: str
    reviewer_id: str
    reviewed_at: datetime | None


@dataclass(frozen=True)
class AccountsView:
    total_amount: Decimal
    paid_amount: Decimal
    remaining_amount: Decimal
    payment_verified: bool


@dataclass(frozen=True)
class DeedView:
    id: UUID
    is_finalized: bool
    hash_sha256: str | None
    finalized_at: datetime | None


@dataclass(frozen=True)
class CaseSnapshot:
    """Read-only aggregate of everything a guard may inspect."""

    case_id: UUID
    application_no: str
    current_stage_id: UUID
    current_stage_code: str
    previous_stage_id: UUID | None
    seller_id: UUID
    buyer_id: UUID
    plot_id: UUID
    attachments: tuple[AttachmentView, ...] = ()
    clearances: Mapping[str, ClearanceView] = field(default_factory=lambda: MappingProxyType({}))
    reviews: Mapping[str, ReviewView] = field(default_factory=lambda: MappingProxyType({}))
    accounts: AccountsView | None = None
    deed: DeedView | None = None

    def clearance_status(self, section: str) -> str | None:
        view = self.clearances.get(section)
        return view.status if view else None

    def review_status(self, section: str) -> str | None:
        view = self.reviews.get(section)
        return view.status if view else None


class CaseSelector(BaseSelector):
    """Builds ``CaseSnapshot`` DTOs."""

    def load(self, case_id: UUID) -> CaseSnapshot | None:
        """Return a fresh snapshot, or None if the case does not exist."""
        row = self.session.execute(
            select(Application, WorkflowStage.code)
            .join(WorkflowStage, WorkflowStage.id == Application.current_stage_id)
            .where(Application.id == case_id)
            .execution_options(populate_existing=True)
        ).one_or_none()
        if row is None:
            return None
        app, stage_code = row

        attachments = self.session.execute(
            select(Attachment)
            .where(Attachment.application_id == case_id)
            .order_by(Attachment.created_at, Attachment.doc_type)
            .execution_options(populate_existing=True)
        ).scalars().all()

        clearances = self.session.execute(
            select(Clearance)
            .where(Clearance.application_id == case_id)
            .execution_options(populate_existing=True)
        ).scalars().all()

        reviews = self.session.execute(
            select(Review)
            .where(Review.application_id == case_id)
            .execution_options(populate_existing=True)
        ).scalars().all()

        accounts = self.session.execute(
            select(AccountsBreakdown)
            .where(AccountsBreakdown.application_id == case_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

        deed = self.session.execute(
            select(TransferDeed)
            .where(TransferDeed.application_id == case_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

        return CaseSnapshot(
            case_id=app.id,
            application_no=app.application_no,
            current_stage_id=app.current_stage_id,
            current_stage_code=stage_code,
            previous_stage_id=app.previous_stage_id,
            seller_id=app.seller_id,
            buyer_id=app.buyer_id,
            plot_id=app.plot_id,
            attachments=tuple(
                AttachmentView(a.id, a.doc_type, bool(a.is_original_seen)) for a in attachments
            ),
            clearances=MappingProxyType({
                c.section: ClearanceView(c.section, c.status, c.remarks, c.cleared_at)
                for c in clearances
            }),
            reviews=MappingProxyType({
                r.section: ReviewView(r.section, r.status, r.reviewer_id, r.reviewed_at)
                for r in reviews
            }),
            accounts=AccountsView(
                total_amount=Decimal(accounts.total_amount),
                paid_amount=Decimal(accounts.paid_amount),
                remaining_amount=Decimal(accounts.remaining_amount),
                payment_verified=bool(accounts.payment_verified),
            ) if accounts is not None else None,
            deed=DeedView(
                id=deed.id,
                is_finalized=bool(deed.is_finalized),
                hash_sha256=deed.hash_sha256,
                finalized_at=deed.finalized_at,
            ) if deed is not None else None,
        )


class StageGraphSelector(BaseSelector):
    """Builds the in-memory ``StageGraph`` from the seeded catalog rows."""

    def load(self) -> StageGraph:
        stages = self.session.execute(
            select(WorkflowStage).order_by(WorkflowStage.sort_order)
        ).scalars().all()
        transitions = self.session.execute(select(WorkflowTransition)).scalars().all()
        return StageGraph(
            stages=[
                Stage(id=s.id, code=s.code, name=s.name, sort_order=s.sort_order,
                      is_terminal=bool(s.is_terminal))
                for s in stages
            ],
            edges=[
                Edge(id=t.id, from_stage_id=t.from_stage_id, to_stage_id=t.to_stage_id,
                     guard=GuardName(t.guard_name))
                for t in transitions
            ],
        )
