"""Pure domain layer: value objects, enums and the injectable clock.  ZERO I/O."""

from transfer_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from transfer_kernel.domain.relay import DomainEvent, RelayEntry, RelayTable
from transfer_kernel.domain.values import ClearanceStatus, ReviewStatus, Role, Section
from transfer_kernel.domain.workflow import (
    PROVISIONING_GUARDS,
    SYSTEM_ACTOR,
    ActorRef,
    Edge,
    GuardContext,
    GuardName,
    GuardResult,
    Stage,
    StageGraph,
    TransitionPreview,
    TransitionRecord,
    TransitionResult,
    validate_guard_context,
)

__all__ = [
    "Clock",
    "DeterministicClock",
    "SystemClock",
    "DomainEvent",
    "RelayEntry",
    "RelayTable",
    "ClearanceStatus",
    "ReviewStatus",
    "Role",
    "Section",
    "PROVISIONING_GUARDS",
    "SYSTEM_ACTOR",
    "ActorRef",
    "Edge",
    "GuardContext",
    "GuardName",
    "GuardResult",
    "Stage",
    "StageGraph",
    "TransitionPreview",
    "TransitionRecord",
    "TransitionResult",
    "validate_guard_context",
]
