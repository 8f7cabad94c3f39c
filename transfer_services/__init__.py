"""
transfer_services -- Workflow transition engine and domain services.

Guard registry, post-transition provisioning, transition executor,
auto-progression coordinator, and the case / clearance / accounts /
review / deed services, wired together by ``WorkflowOrchestrator``.
"""

from transfer_services.accounts_service import AccountsOutcome, AccountsService, FeeSchedule
from transfer_services.auto_progression import (
    AutoProgressionCoordinator,
    AutoProgressionResult,
)
from transfer_services.case_service import CaseService
from transfer_services.clearance_service import ClearanceOutcome, ClearanceService
from transfer_services.deed_service import DeedOutcome, DeedService
from transfer_services.guard_registry import (
    GuardRegistry,
    GuardSpec,
    default_guard_registry,
    default_guard_specs,
)
from transfer_services.ownership import PlotOwnershipRegistry, SqlPlotOwnershipRegistry
from transfer_services.review_service import ReviewOutcome, ReviewService
from transfer_services.transition_executor import TransitionExecutor
from transfer_services.workflow_orchestrator import (
    WorkflowOrchestrator,
    build_workflow_orchestrator,
)

__all__ = [
    "AccountsOutcome",
    "AccountsService",
    "AutoProgressionCoordinator",
    "AutoProgressionResult",
    "CaseService",
    "ClearanceOutcome",
    "ClearanceService",
    "DeedOutcome",
    "DeedService",
    "FeeSchedule",
    "GuardRegistry",
    "GuardSpec",
    "PlotOwnershipRegistry",
    "ReviewOutcome",
    "ReviewService",
    "SqlPlotOwnershipRegistry",
    "TransitionExecutor",
    "WorkflowOrchestrator",
    "build_workflow_orchestrator",
    "default_guard_registry",
    "default_guard_specs",
]
