"""
Config -> Kernel Bridges.

Functions that turn a ``CompiledCatalog`` into kernel rows.  These live in
transfer_config (the producer) because the kernel must NEVER import
transfer_config.

Usage:
    from transfer_config import get_active_catalog
    from transfer_config.bridges import seed_stage_catalog

    catalog = get_active_catalog()
    with session_scope() as session:
        seed_stage_catalog(session, catalog)
"""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.orm import Session

from transfer_config.compiler import CompiledCatalog
from transfer_kernel.exceptions import CatalogValidationError
from transfer_kernel.logging_config import get_logger
from transfer_kernel.models.workflow import WorkflowStage, WorkflowTransition

logger = get_logger("config.bridges")


@dataclass(frozen=True)
class SeedReport:
    stages_created: int
    transitions_created: int


def seed_stage_catalog(session: Session, catalog: CompiledCatalog) -> SeedReport:
    """
    Idempotently insert the catalog's stages and transitions.

    Existing rows are matched by stage code and by ``(from, to)`` pair and
    left untouched (catalog rows are immutable).  An existing edge bound to
    a different guard is a drift error.

    Raises:
        CatalogValidationError: if an existing edge disagrees with the catalog.
    """
    existing_stages = {
        s.code: s for s in session.execute(select(WorkflowStage)).scalars().all()
    }
    stages_created = 0
    for stage_def in catalog.stages:
        if stage_def.code in existing_stages:
            continue
        stage = WorkflowStage(
            code=stage_def.code,
            name=stage_def.name,
            sort_order=stage_def.sort_order,
            is_terminal=stage_def.terminal,
        )
        session.add(stage)
        existing_stages[stage_def.code] = stage
        stages_created += 1
    session.flush()

    existing_edges = {
        (t.from_stage_id, t.to_stage_id): t
        for t in session.execute(select(WorkflowTransition)).scalars().all()
    }
    transitions_created = 0
    drift: list[str] = []
    for t in catalog.transitions:
        from_id = existing_stages[t.from_stage].id
        to_id = existing_stages[t.to_stage].id
        current = existing_edges.get((from_id, to_id))
        if current is not None:
            if current.guard_name != t.guard.value:
                drift.append(
                    f"Transition {t.from_stage} -> {t.to_stage} is bound to "
                    f"{current.guard_name}, catalog says {t.guard.value}"
                )
            continue
        session.add(WorkflowTransition(
            from_stage_id=from_id,
            to_stage_id=to_id,
            guard_name=t.guard.value,
        ))
        transitions_created += 1

    if drift:
        raise CatalogValidationError(catalog.name, drift)

    session.flush()
    logger.info(
        "stage_catalog_seeded",
        extra={
            "catalog": catalog.name,
            "catalog_version": catalog.version,
            "stages_created": stages_created,
            "transitions_created": transitions_created,
        },
    )
    return SeedReport(stages_created=stages_created, transitions_created=transitions_created)
