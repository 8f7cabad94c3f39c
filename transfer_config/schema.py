"""
Catalog schema (``transfer_config.schema``).

Frozen dataclasses describing a workflow catalog as authored in YAML.
Guard and event identifiers are kept as raw strings here; the validator
checks them against ``GuardName`` / ``DomainEvent`` before compilation.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class StageDef:
    code: str
    name: str
    sort_order: int
    terminal: bool = False


@dataclass(frozen=True)
class TransitionDef:
    """One edge.  ``resolution`` edges may close an objection cycle."""

    from_stage: str
    to_stage: str
    guard: str
    resolution: bool = False


@dataclass(frozen=True)
class RelayDef:
    stage: str
    event: str
    to_stage: str
    guard: str


@dataclass(frozen=True)
class WorkflowCatalogDefinition:
    """A complete, unvalidated catalog."""

    name: str
    version: int
    initial_stage: str
    stages: tuple[StageDef, ...]
    transitions: tuple[TransitionDef, ...]
    relay: tuple[RelayDef, ...] = ()
    required_documents: tuple[str, ...] = ()
    checksum: str = ""
