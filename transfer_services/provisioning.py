"""
transfer_services.provisioning -- Post-transition provisioning hooks.

Responsibility:
    Creates the downstream PENDING clearances that the next stage's section
    work depends on, after a dispatch transition has been applied.

Architecture position:
    Services layer.  Invoked only by ``TransitionExecutor`` once the stage
    change and its audit entry are flushed inside the executor's savepoint.
    Hooks are keyed by the ``GuardName`` of the edge that was taken.

Invariants enforced:
    - A denied transition provisions nothing (hooks never run on denial).
    - Provisioning is idempotent: an existing clearance row for the section
      is reused, never duplicated.
    - Every created row gets its own CLEARANCE_CREATED audit entry.

Failure modes:
    - A hook exception rolls back the hook's own savepoint only; the
      executor logs ``provisioning_failed`` and keeps the applied transition.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Mapping
from uuid import UUID

from sqlalchemy.orm import Session

from transfer_kernel.domain.clock import Clock
from transfer_kernel.domain.values import Section
from transfer_kernel.domain.workflow import GuardName
from transfer_kernel.services.audit_service import AuditService
from transfer_services.clearance_service import ClearanceService


@dataclass(frozen=True)
class ProvisioningRequest:
    """Everything a hook needs to write follow-on rows for one transition."""

    session: Session
    case_id: UUID
    actor_id: str
    audit_service: AuditService
    clock: Clock


ProvisioningHook = Callable[[ProvisioningRequest], Mapping[str, Any]]

_SECTION_LABELS = {
    Section.BCA: "BCA",
    Section.HOUSING: "Housing",
    Section.ACCOUNTS: "Accounts",
}


def _provision_sections(request: ProvisioningRequest, sections: tuple[Section, ...]) -> dict[str, Any]:
    clearances = ClearanceService(
        request.session,
        audit_service=request.audit_service,
        clock=request.clock,
    )
    created: list[str] = []
    result: dict[str, Any] = {}
    for section in sections:
        _, was_created = clearances.ensure_pending_clearance(
            request.case_id,
            section,
            request.actor_id,
            remarks=f"Sent to {_SECTION_LABELS[section]} for clearance",
        )
        if was_created:
            created.append(section.value)
        result[f"{section.value.lower()}_exists"] = not was_created
    result["clearances_created"] = created
    return result


def provision_bca_housing(request: ProvisioningRequest) -> dict[str, Any]:
    """PENDING clearances for BCA and HOUSING."""
    return _provision_sections(request, (Section.BCA, Section.HOUSING))


def provision_accounts(request: ProvisioningRequest) -> dict[str, Any]:
    """PENDING clearance for ACCOUNTS."""
    return _provision_sections(request, (Section.ACCOUNTS,))


def default_provisioning_hooks() -> dict[GuardName, ProvisioningHook]:
    return {
        GuardName.SENT_TO_BCA_HOUSING: provision_bca_housing,
        GuardName.SENT_TO_ACCOUNTS: provision_accounts,
    }
