"""
Catalog Compiler (``transfer_config.compiler``).

Responsibility
--------------
Turns a validated ``WorkflowCatalogDefinition`` into a ``CompiledCatalog``
-- the frozen runtime artifact.  Guard and event identifiers become
typed enums and the relay rows become a kernel ``RelayTable`` whose
iteration cap is the number of stages.

Failure modes
-------------
* ``CatalogValidationError`` when validation reports any error.
"""

from __future__ import annotations

from dataclasses import dataclass

from transfer_config.schema import StageDef, TransitionDef, WorkflowCatalogDefinition
from transfer_config.validator import validate_catalog
from transfer_kernel.domain.relay import DomainEvent, RelayEntry, RelayTable
from transfer_kernel.domain.workflow import GuardName
from transfer_kernel.exceptions import CatalogValidationError
from transfer_kernel.logging_config import get_logger

logger = get_logger("config.compiler")


@dataclass(frozen=True)
class CompiledTransition:
    from_stage: str
    to_stage: str
    guard: GuardName
    resolution: bool


@dataclass(frozen=True)
class CompiledCatalog:
    """Machine-validated, frozen runtime catalog.

    Attributes:
        name: Catalog identifier
        version: Catalog version
        checksum: SHA-256 of the source document
        initial_stage: Stage code new cases start in
        stages: Stage definitions ordered by sort_order
        transitions: Edges with typed guard names
        relay: Auto-progression relay table
        required_documents: Document types the intake guard requires
        warnings: Non-blocking validation findings
    """

    name: str
    version: int
    checksum: str
    initial_stage: str
    stages: tuple[StageDef, ...]
    transitions: tuple[CompiledTransition, ...]
    relay: RelayTable
    required_documents: tuple[str, ...]
    warnings: tuple[str, ...] = ()

    def stage_codes(self) -> tuple[str, ...]:
        return tuple(s.code for s in self.stages)


def _compile_transition(t: TransitionDef) -> CompiledTransition:
    return CompiledTransition(
        from_stage=t.from_stage,
        to_stage=t.to_stage,
        guard=GuardName(t.guard),
        resolution=t.resolution,
    )


def compile_catalog(catalog: WorkflowCatalogDefinition) -> CompiledCatalog:
    """
    Validate and compile a catalog.

    Raises:
        CatalogValidationError: if validation reports any error.
    """
    validation = validate_catalog(catalog)
    if not validation.is_valid:
        logger.error(
            "catalog_validation_failed",
            extra={"catalog": catalog.name, "errors": validation.errors},
        )
        raise CatalogValidationError(catalog.name, validation.errors)

    for warning in validation.warnings:
        logger.warning("catalog_validation_warning", extra={"catalog": catalog.name, "warning": warning})

    relay = RelayTable(
        entries=[
            RelayEntry(
                from_stage=r.stage,
                event=DomainEvent(r.event),
                to_stage=r.to_stage,
                guard=GuardName(r.guard),
            )
            for r in catalog.relay
        ],
        max_steps=len(catalog.stages),
    )

    return CompiledCatalog(
        name=catalog.name,
        version=catalog.version,
        checksum=catalog.checksum,
        initial_stage=catalog.initial_stage,
        stages=tuple(sorted(catalog.stages, key=lambda s: s.sort_order)),
        transitions=tuple(_compile_transition(t) for t in catalog.transitions),
        relay=relay,
        required_documents=catalog.required_documents,
        warnings=tuple(validation.warnings),
    )
