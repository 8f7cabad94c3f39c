"""
Canonical workflow types (``transfer_kernel.domain.workflow``).

Responsibility
--------------
Pure value objects for the plot-transfer stage machine: typed guard
identifiers, stages, edges, the in-memory stage graph, guard context
and verdict, and the transition summary returned to callers.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports
from ``db/``, ``services/``, ``selectors/``, or outer layers.

Invariants enforced
-------------------
* A StageGraph holds at most one edge per ``(from_stage_id, to_stage_id)``.
* Every edge endpoint is a stage in the graph.
* Every edge is bound to exactly one ``GuardName``.
* A GuardContext is validated (all required fields non-empty) before any
  guard runs.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping
from uuid import UUID


class GuardName(str, Enum):
    """Closed catalog of transition guards.  Edges reference these, never raw strings."""

    INTAKE_COMPLETE = "GUARD_INTAKE_COMPLETE"
    SCRUTINY_COMPLETE = "GUARD_SCRUTINY_COMPLETE"
    SENT_TO_BCA_HOUSING = "GUARD_SENT_TO_BCA_HOUSING"
    BCA_CLEAR = "GUARD_BCA_CLEAR"
    BCA_OBJECTION = "GUARD_BCA_OBJECTION"
    BCA_RESOLVED = "GUARD_BCA_RESOLVED"
    HOUSING_CLEAR = "GUARD_HOUSING_CLEAR"
    HOUSING_OBJECTION = "GUARD_HOUSING_OBJECTION"
    HOUSING_RESOLVED = "GUARD_HOUSING_RESOLVED"
    CLEARANCES_COMPLETE = "GUARD_CLEARANCES_COMPLETE"
    SENT_TO_ACCOUNTS = "GUARD_SENT_TO_ACCOUNTS"
    ACCOUNTS_CALCULATED = "GUARD_ACCOUNTS_CALCULATED"
    PAYMENT_VERIFIED = "GUARD_PAYMENT_VERIFIED"
    ACCOUNTS_CLEAR = "GUARD_ACCOUNTS_CLEAR"
    APPROVAL_COMPLETE = "GUARD_APPROVAL_COMPLETE"
    APPROVAL_REJECTED = "GUARD_APPROVAL_REJECTED"
    DEED_FINALIZED = "GUARD_DEED_FINALIZED"

    @classmethod
    def parse(cls, value: str | GuardName) -> GuardName | None:
        """Resolve a runtime string to a guard name, or None if unknown."""
        if isinstance(value, GuardName):
            return value
        try:
            return cls(value)
        except ValueError:
            return None


# Guards whose admission is followed by a post-transition provisioning hook.
PROVISIONING_GUARDS: frozenset[GuardName] = frozenset({
    GuardName.SENT_TO_BCA_HOUSING,
    GuardName.SENT_TO_ACCOUNTS,
})


@dataclass(frozen=True)
class Stage:
    """A named position in the workflow graph.

    Contract: frozen catalog entry.  ``code`` is the unique business key.
    """

    id: UUID
    code: str
    name: str
    sort_order: int
    is_terminal: bool = False


@dataclass(frozen=True)
class Edge:
    """A directed, guard-gated transition between two stages."""

    id: UUID
    from_stage_id: UUID
    to_stage_id: UUID
    guard: GuardName


class StageGraph:
    """
    Read-only lookup structure over the seeded stage catalog.

    Contract:
        Built once from catalog rows; exposes ``edge()`` and ``stage()``
        lookups.  Returns None for anything not present.

    Guarantees:
        - At most one edge per ``(from, to)`` pair (ValueError otherwise).
        - Every edge endpoint is a known stage (ValueError otherwise).

    Non-goals:
        - Does NOT evaluate guards or touch the database.
    """

    def __init__(self, stages: tuple[Stage, ...] | list[Stage], edges: tuple[Edge, ...] | list[Edge]):
        self._stages_by_id: dict[UUID, Stage] = {}
        self._stages_by_code: dict[str, Stage] = {}
        for stage in stages:
            if stage.code in self._stages_by_code:
                raise ValueError(f"Duplicate stage code: {stage.code}")
            self._stages_by_id[stage.id] = stage
            self._stages_by_code[stage.code] = stage

        self._edges: dict[tuple[UUID, UUID], Edge] = {}
        self._outbound: dict[UUID, list[Edge]] = {}
        for e in edges:
            if e.from_stage_id not in self._stages_by_id or e.to_stage_id not in self._stages_by_id:
                raise ValueError(f"Edge {e.id} references an unknown stage")
            key = (e.from_stage_id, e.to_stage_id)
            if key in self._edges:
                raise ValueError(
                    f"Duplicate edge {self._stages_by_id[e.from_stage_id].code}"
                    f" -> {self._stages_by_id[e.to_stage_id].code}"
                )
            self._edges[key] = e
            self._outbound.setdefault(e.from_stage_id, []).append(e)

    def edge(self, from_stage_id: UUID, to_stage_id: UUID) -> Edge | None:
        return self._edges.get((from_stage_id, to_stage_id))

    def stage(self, code: str) -> Stage | None:
        return self._stages_by_code.get(code)

    def stage_by_id(self, stage_id: UUID) -> Stage | None:
        return self._stages_by_id.get(stage_id)

    def outbound(self, from_stage_id: UUID) -> tuple[Edge, ...]:
        """Outbound edges of a stage, ordered by target sort order."""
        edges = self._outbound.get(from_stage_id, [])
        return tuple(sorted(edges, key=lambda e: self._stages_by_id[e.to_stage_id].sort_order))

    @property
    def stages(self) -> tuple[Stage, ...]:
        return tuple(sorted(self._stages_by_id.values(), key=lambda s: s.sort_order))

    @property
    def edges(self) -> tuple[Edge, ...]:
        return tuple(self._edges.values())

    def __len__(self) -> int:
        return len(self._stages_by_id)


@dataclass(frozen=True)
class ActorRef:
    """Who is acting: an opaque identity-provider id and a role code."""

    actor_id: str
    role: str


# Placeholder actor for auto-progression triggered without a fresh human actor.
SYSTEM_ACTOR = ActorRef(actor_id="system", role="SYSTEM")


@dataclass(frozen=True)
class GuardContext:
    """Input handed to every guard evaluation."""

    case_id: UUID
    actor_id: str
    actor_role: str
    from_stage_id: UUID
    to_stage_id: UUID
    extra: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))


def validate_guard_context(ctx: GuardContext) -> list[str]:
    """Return a list of problems with ``ctx``; empty means valid."""
    problems: list[str] = []
    for name in ("case_id", "actor_id", "actor_role", "from_stage_id", "to_stage_id"):
        value = getattr(ctx, name)
        if value is None or not str(value).strip():
            problems.append(f"{name} is required")
    if ctx.extra is not None and not isinstance(ctx.extra, Mapping):
        problems.append("extra must be a mapping")
    return problems


@dataclass(frozen=True)
class GuardResult:
    """Admit/deny verdict with a stable, human-readable reason."""

    can_transition: bool
    reason: str
    metadata: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))

    @classmethod
    def admit(cls, reason: str, **metadata: Any) -> GuardResult:
        return cls(True, reason, MappingProxyType(dict(metadata)))

    @classmethod
    def deny(cls, reason: str, **metadata: Any) -> GuardResult:
        return cls(False, reason, MappingProxyType(dict(metadata)))


@dataclass(frozen=True)
class TransitionRecord:
    """Summary of a committed stage change."""

    case_id: UUID
    from_stage_code: str
    to_stage_code: str
    from_stage_id: UUID
    to_stage_id: UUID
    guard: GuardName
    reason: str
    metadata: Mapping[str, Any]
    actor_id: str
    automatic: bool
    occurred_at: datetime
    audit_entry_id: UUID | None = None
    provisioning: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))


@dataclass(frozen=True)
class TransitionResult:
    """Outcome of ``attempt_transition``: either a record, or a denial."""

    success: bool
    guard_result: GuardResult
    record: TransitionRecord | None = None

    @property
    def reason(self) -> str:
        return self.guard_result.reason

    @property
    def metadata(self) -> Mapping[str, Any]:
        return self.guard_result.metadata


@dataclass(frozen=True)
class TransitionPreview:
    """Dry-run verdict for one outbound edge, for "what can happen next" views."""

    to_stage_id: UUID
    to_stage_code: str
    to_stage_name: str
    guard: GuardName
    can_transition: bool
    reason: str
    metadata: Mapping[str, Any]
