"""
Auto-progression relay table (``transfer_kernel.domain.relay``).

Responsibility
--------------
Forward-only lookup ``(current stage code, domain event) -> (candidate
stage code, guard)`` consulted by the auto-progression coordinator after
a domain mutation.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  Built by
``transfer_config`` from the YAML catalog and validated there to be
acyclic per event.

Invariants enforced
-------------------
* At most one entry per ``(stage, event)`` key.
* ``max_steps`` bounds any chained walk at the number of catalog stages.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from transfer_kernel.domain.workflow import GuardName


class DomainEvent(str, Enum):
    """Domain mutations that may trigger an automatic stage advance."""

    OWO_REVIEW_APPROVED = "OWO_REVIEW_APPROVED"
    BCA_CLEARED = "BCA_CLEARED"
    BCA_OBJECTED = "BCA_OBJECTED"
    HOUSING_CLEARED = "HOUSING_CLEARED"
    HOUSING_OBJECTED = "HOUSING_OBJECTED"
    ACCOUNTS_CALCULATED = "ACCOUNTS_CALCULATED"
    PAYMENT_VERIFIED = "PAYMENT_VERIFIED"
    ACCOUNTS_CLEARED = "ACCOUNTS_CLEARED"
    APPROVER_REVIEW_APPROVED = "APPROVER_REVIEW_APPROVED"
    DEED_FINALIZED = "DEED_FINALIZED"


@dataclass(frozen=True)
class RelayEntry:
    from_stage: str
    event: DomainEvent
    to_stage: str
    guard: GuardName


class RelayTable:
    """
    Immutable ``(stage, event)`` relay.

    Contract:
        ``candidate(stage_code, event)`` returns the single matching entry
        or None.  Absence is not an error.

    Guarantees:
        - Duplicate ``(stage, event)`` keys are rejected at construction.
        - ``max_steps`` is at least 1.
    """

    def __init__(self, entries: tuple[RelayEntry, ...] | list[RelayEntry], max_steps: int):
        self._entries: dict[tuple[str, DomainEvent], RelayEntry] = {}
        for entry in entries:
            key = (entry.from_stage, entry.event)
            if key in self._entries:
                raise ValueError(
                    f"Duplicate relay entry for stage {entry.from_stage} on {entry.event.value}"
                )
            self._entries[key] = entry
        self.max_steps = max(1, int(max_steps))

    def candidate(self, stage_code: str, event: DomainEvent) -> RelayEntry | None:
        return self._entries.get((stage_code, event))

    @property
    def entries(self) -> tuple[RelayEntry, ...]:
        return tuple(self._entries.values())

    def __len__(self) -> int:
        return len(self._entries)
