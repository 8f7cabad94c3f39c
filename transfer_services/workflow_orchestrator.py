"""
transfer_services.workflow_orchestrator -- DI container for the transfer workflow.

Responsibility:
    Creates every workflow service exactly once per session and wires them
    together: one AuditService, one GuardRegistry, one TransitionExecutor,
    one AutoProgressionCoordinator, and the domain services that share them.

Architecture position:
    Top of the services layer.  The only place where workflow services are
    constructed and composed.

Invariants enforced:
    - Single-instance lifecycle: every service shares the same session,
      clock and AuditService.
    - DI transparency: all wiring is visible in ``__init__``.

Usage:
    orchestrator = build_workflow_orchestrator(session)
    orchestrator.reviews.record_review(case_id, "OWO", "APPROVED", owo_actor)
    orchestrator.executor.available_transitions(case_id, actor)
"""

from __future__ import annotations

from pathlib import Path

from sqlalchemy.orm import Session

from transfer_config.compiler import CompiledCatalog
from transfer_kernel.domain.clock import Clock, SystemClock
from transfer_kernel.services.audit_service import AuditService
from transfer_services.accounts_service import AccountsService
from transfer_services.auto_progression import AutoProgressionCoordinator
from transfer_services.case_service import CaseService
from transfer_services.clearance_service import ClearanceService
from transfer_services.deed_service import DeedService
from transfer_services.guard_registry import GuardRegistry, default_guard_registry
from transfer_services.ownership import PlotOwnershipRegistry
from transfer_services.review_service import ReviewService
from transfer_services.transition_executor import TransitionExecutor


class WorkflowOrchestrator:
    """
    Holds the wired service graph for one session.

    Non-goals:
        - Does NOT seed the catalog (see ``transfer_config.bridges``).
        - Does NOT commit.
    """

    def __init__(
        self,
        session: Session,
        catalog: CompiledCatalog,
        clock: Clock | None = None,
        ownership_registry: PlotOwnershipRegistry | None = None,
        guard_registry: GuardRegistry | None = None,
    ):
        self.session = session
        self.catalog = catalog
        self.clock = clock or SystemClock()

        self.audit_service = AuditService(session, self.clock)
        self.guard_registry = guard_registry or default_guard_registry(
            session, catalog.required_documents,
        )
        self.executor = TransitionExecutor(
            session,
            guard_registry=self.guard_registry,
            clock=self.clock,
            audit_service=self.audit_service,
        )
        self.coordinator = AutoProgressionCoordinator(session, self.executor, catalog.relay)

        self.cases = CaseService(
            session,
            audit_service=self.audit_service,
            clock=self.clock,
            initial_stage_code=catalog.initial_stage,
        )
        self.clearances = ClearanceService(
            session, self.coordinator, audit_service=self.audit_service, clock=self.clock,
        )
        self.accounts = AccountsService(
            session, self.coordinator, audit_service=self.audit_service, clock=self.clock,
        )
        self.reviews = ReviewService(
            session, self.coordinator, audit_service=self.audit_service, clock=self.clock,
        )
        self.deeds = DeedService(
            session,
            self.coordinator,
            ownership_registry=ownership_registry,
            audit_service=self.audit_service,
            clock=self.clock,
        )


def build_workflow_orchestrator(
    session: Session,
    catalog_path: Path | None = None,
    clock: Clock | None = None,
    ownership_registry: PlotOwnershipRegistry | None = None,
) -> WorkflowOrchestrator:
    """Build a WorkflowOrchestrator from the active catalog (production entrypoint).

    Seeds the catalog rows first; seeding is idempotent.
    """
    from transfer_config import get_active_catalog
    from transfer_config.bridges import seed_stage_catalog

    catalog = get_active_catalog(catalog_path)
    seed_stage_catalog(session, catalog)
    return WorkflowOrchestrator(
        session,
        catalog,
        clock=clock,
        ownership_registry=ownership_registry,
    )
