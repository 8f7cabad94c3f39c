"""
transfer_services.transition_executor -- Guarded, atomic stage transitions.

Responsibility:
    Moves a case's stage pointer along one edge of the stage graph after the
    edge's guard admits, appends the transition's audit entry, then runs the
    edge's provisioning hook.  Also offers side-effect-free previews
    (dry-run, available transitions) for "what can happen next" views.

Architecture position:
    Services layer.  The only code path that writes
    ``Application.current_stage_id`` / ``previous_stage_id`` (it does so
    inside ``stage_pointer_writer``; every other flush is rejected by the
    ORM listener in ``transfer_kernel.db.immutability``).

Invariants enforced:
    - The pointer moves only along an edge present in the StageGraph.
    - The pointer moves only after a successful guard evaluation.
    - Pointer change and its audit entry are flushed in one SAVEPOINT with
      the case row locked (SELECT ... FOR UPDATE).
    - Provisioning runs only after an applied transition, in its own
      SAVEPOINT; a denial provisions nothing.
    - Dry-run and preview paths take no lock and write nothing.

Failure modes:
    - CaseNotFoundError / StageNotFoundError: unknown case or target stage.
    - InvalidTransitionError: no edge for (current, target).  Guards are
      never consulted.
    - InvalidGuardContextError: actor fields missing.
    - Guard denial: returned as ``TransitionResult(success=False)``.

Audit relevance:
    Every applied transition produces exactly one STAGE_TRANSITION (or
    AUTO_STAGE_TRANSITION) audit entry and one ``workflow_transition``
    trace record.  Every other outcome produces a trace record only.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from datetime import UTC, datetime
from types import MappingProxyType
from typing import Any, Mapping
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from transfer_kernel.db.immutability import stage_pointer_writer
from transfer_kernel.domain.clock import Clock, SystemClock
from transfer_kernel.domain.workflow import (
    ActorRef,
    Edge,
    GuardContext,
    GuardResult,
    Stage,
    StageGraph,
    TransitionPreview,
    TransitionRecord,
    TransitionResult,
    validate_guard_context,
)
from transfer_kernel.exceptions import (
    CaseNotFoundError,
    InvalidGuardContextError,
    InvalidTransitionError,
    StageNotFoundError,
)
from transfer_kernel.logging_config import LogContext, get_logger
from transfer_kernel.models.application import Application
from transfer_kernel.models.audit_log import AuditAction
from transfer_kernel.selectors.case_selector import StageGraphSelector
from transfer_kernel.services.audit_service import AuditService
from transfer_services.guard_registry import GuardRegistry, default_guard_registry
from transfer_services.provisioning import (
    ProvisioningHook,
    ProvisioningRequest,
    default_provisioning_hooks,
)

logger = get_logger("services.transition_executor")

TRACE_TYPE_WORKFLOW_TRANSITION = "WORKFLOW_TRANSITION"
OUTCOME_APPLIED = "applied"
OUTCOME_DENIED = "denied"
OUTCOME_NO_EDGE = "no_edge"
OUTCOME_INVALID_CONTEXT = "invalid_context"
OUTCOME_STAGE_NOT_FOUND = "stage_not_found"
OUTCOME_CASE_NOT_FOUND = "case_not_found"


def _emit_workflow_trace(
    case_id: UUID,
    outcome: str,
    reason: str,
    duration_ms: float,
    from_stage: str | None = None,
    to_stage: str | None = None,
    guard: str | None = None,
    automatic: bool = False,
) -> None:
    """Emit a structured workflow transition record for traceability."""
    record: dict[str, Any] = {
        "trace_type": TRACE_TYPE_WORKFLOW_TRANSITION,
        "ts": datetime.now(UTC).isoformat(),
        "case_id": str(case_id),
        "from_stage": from_stage,
        "to_stage": to_stage,
        "guard_name": guard,
        "outcome": outcome,
        "reason": reason,
        "automatic": automatic,
        "duration_ms": round(duration_ms, 3),
    }
    context = LogContext.get_all()
    context.pop("case_id", None)
    record.update(context)
    logger.info("workflow_transition", extra=record)


@dataclass(frozen=True)
class _ResolvedEdge:
    """Steps 1-3 of a transition: the locked/loaded case and its edge."""

    application: Application
    from_stage: Stage
    to_stage: Stage
    edge: Edge
    context: GuardContext


class TransitionExecutor:
    """
    Applies guarded stage transitions to cases.

    Contract:
        ``attempt_transition`` either applies the transition (pointer,
        audit entry, provisioning) or returns the guard's denial.  Lookup
        failures raise typed exceptions.

    Guarantees:
        - Never calls ``session.commit()``; the caller owns the transaction.
        - A raised lookup failure or a denial leaves no rows written.

    Non-goals:
        - Does NOT pick the next stage on its own (see
          ``AutoProgressionCoordinator``).
    """

    def __init__(
        self,
        session: Session,
        guard_registry: GuardRegistry | None = None,
        clock: Clock | None = None,
        audit_service: AuditService | None = None,
        provisioning_hooks: Mapping[Any, ProvisioningHook] | None = None,
    ):
        self.session = session
        self._clock = clock or SystemClock()
        self._guards = guard_registry or default_guard_registry(session)
        self._audit = audit_service or AuditService(session, self._clock)
        self._hooks = dict(
            default_provisioning_hooks() if provisioning_hooks is None else provisioning_hooks
        )
        self._graph: StageGraph | None = None

    @property
    def clock(self) -> Clock:
        return self._clock

    @property
    def audit_service(self) -> AuditService:
        return self._audit

    def stage_graph(self) -> StageGraph:
        """The seeded StageGraph, loaded on first use and cached."""
        if self._graph is None:
            self._graph = StageGraphSelector(self.session).load()
            logger.debug("stage_graph_loaded", extra={"stage_count": len(self._graph)})
        return self._graph

    # ------------------------------------------------------------------
    # Resolution (steps 1-4 without the guard call)
    # ------------------------------------------------------------------

    def _load_case(self, case_id: UUID, lock: bool) -> Application:
        stmt = (
            select(Application)
            .where(Application.id == case_id)
            .execution_options(populate_existing=True)
        )
        if lock:
            stmt = stmt.with_for_update()
        application = self.session.execute(stmt).scalar_one_or_none()
        if application is None:
            raise CaseNotFoundError(str(case_id))
        return application

    def _build_context(
        self,
        case_id: UUID,
        from_stage: Stage,
        to_stage: Stage,
        actor: ActorRef,
        extra: Mapping[str, Any] | None,
    ) -> GuardContext:
        context = GuardContext(
            case_id=case_id,
            actor_id=actor.actor_id,
            actor_role=actor.role,
            from_stage_id=from_stage.id,
            to_stage_id=to_stage.id,
            extra=MappingProxyType(dict(extra or {})),
        )
        problems = validate_guard_context(context)
        if problems:
            raise InvalidGuardContextError(problems)
        return context

    def _resolve(
        self,
        case_id: UUID,
        target_stage_id: UUID,
        actor: ActorRef,
        extra: Mapping[str, Any] | None,
        lock: bool,
    ) -> _ResolvedEdge:
        graph = self.stage_graph()
        application = self._load_case(case_id, lock)

        to_stage = graph.stage_by_id(target_stage_id)
        if to_stage is None:
            raise StageNotFoundError(str(target_stage_id))

        from_stage = graph.stage_by_id(application.current_stage_id)
        edge = graph.edge(application.current_stage_id, to_stage.id)
        if from_stage is None or edge is None:
            from_code = from_stage.code if from_stage else str(application.current_stage_id)
            raise InvalidTransitionError(from_code, to_stage.code)

        context = self._build_context(case_id, from_stage, to_stage, actor, extra)
        return _ResolvedEdge(application, from_stage, to_stage, edge, context)

    # ------------------------------------------------------------------
    # Apply
    # ------------------------------------------------------------------

    def attempt_transition(
        self,
        case_id: UUID,
        target_stage_id: UUID,
        actor: ActorRef,
        extra: Mapping[str, Any] | None = None,
        *,
        automatic: bool = False,
    ) -> TransitionResult:
        """
        Move a case to ``target_stage_id`` if the bound guard admits.

        Raises:
            CaseNotFoundError, StageNotFoundError, InvalidTransitionError,
            InvalidGuardContextError.
        """
        t0 = time.monotonic()
        try:
            with self.session.begin_nested():
                resolved = self._resolve(case_id, target_stage_id, actor, extra, lock=True)
                guard_result = self._guards.execute(resolved.edge.guard, resolved.context)
                if not guard_result.can_transition:
                    return self._denied(resolved, guard_result, t0, automatic)
                entry = self._apply(resolved, guard_result, actor, automatic)
        except (CaseNotFoundError, StageNotFoundError, InvalidTransitionError,
                InvalidGuardContextError) as exc:
            self._trace_failure(case_id, target_stage_id, exc, t0, automatic)
            raise

        provisioning = self._run_provisioning(resolved, actor)

        record = TransitionRecord(
            case_id=case_id,
            from_stage_code=resolved.from_stage.code,
            to_stage_code=resolved.to_stage.code,
            from_stage_id=resolved.from_stage.id,
            to_stage_id=resolved.to_stage.id,
            guard=resolved.edge.guard,
            reason=guard_result.reason,
            metadata=guard_result.metadata,
            actor_id=actor.actor_id,
            automatic=automatic,
            occurred_at=entry.occurred_at,
            audit_entry_id=entry.id,
            provisioning=MappingProxyType(provisioning),
        )

        logger.info(
            "transition_applied",
            extra={
                "case_id": str(case_id),
                "from_stage": record.from_stage_code,
                "to_stage": record.to_stage_code,
                "guard_name": record.guard.value,
                "actor_id": actor.actor_id,
                "automatic": automatic,
            },
        )
        _emit_workflow_trace(
            case_id,
            OUTCOME_APPLIED,
            guard_result.reason,
            (time.monotonic() - t0) * 1000,
            from_stage=record.from_stage_code,
            to_stage=record.to_stage_code,
            guard=record.guard.value,
            automatic=automatic,
        )
        return TransitionResult(success=True, guard_result=guard_result, record=record)

    def attempt_transition_to(
        self,
        case_id: UUID,
        target_stage_code: str,
        actor: ActorRef,
        extra: Mapping[str, Any] | None = None,
        *,
        automatic: bool = False,
    ) -> TransitionResult:
        """``attempt_transition`` addressed by stage code."""
        stage = self.stage_graph().stage(target_stage_code)
        if stage is None:
            raise StageNotFoundError(target_stage_code)
        return self.attempt_transition(case_id, stage.id, actor, extra, automatic=automatic)

    def _apply(
        self,
        resolved: _ResolvedEdge,
        guard_result: GuardResult,
        actor: ActorRef,
        automatic: bool,
    ):
        application = resolved.application
        with stage_pointer_writer(self.session):
            application.previous_stage_id = application.current_stage_id
            application.current_stage_id = resolved.to_stage.id
            application.updated_at = self._clock.now()
            self.session.flush()

        return self._audit.record(
            case_id=application.id,
            actor_id=actor.actor_id,
            action=AuditAction.AUTO_STAGE_TRANSITION if automatic else AuditAction.STAGE_TRANSITION,
            detail=f"Stage changed from {resolved.from_stage.name} to {resolved.to_stage.name}",
            from_stage_id=resolved.from_stage.id,
            to_stage_id=resolved.to_stage.id,
            payload={
                "guard_name": resolved.edge.guard.value,
                "reason": guard_result.reason,
                "metadata": dict(guard_result.metadata),
            },
        )

    def _denied(
        self,
        resolved: _ResolvedEdge,
        guard_result: GuardResult,
        t0: float,
        automatic: bool,
    ) -> TransitionResult:
        logger.info(
            "guard_denied",
            extra={
                "case_id": str(resolved.application.id),
                "from_stage": resolved.from_stage.code,
                "to_stage": resolved.to_stage.code,
                "guard_name": resolved.edge.guard.value,
                "reason": guard_result.reason,
            },
        )
        _emit_workflow_trace(
            resolved.application.id,
            OUTCOME_DENIED,
            guard_result.reason,
            (time.monotonic() - t0) * 1000,
            from_stage=resolved.from_stage.code,
            to_stage=resolved.to_stage.code,
            guard=resolved.edge.guard.value,
            automatic=automatic,
        )
        return TransitionResult(success=False, guard_result=guard_result)

    def _trace_failure(
        self,
        case_id: UUID,
        target_stage_id: UUID,
        exc: Exception,
        t0: float,
        automatic: bool,
    ) -> None:
        if isinstance(exc, CaseNotFoundError):
            outcome = OUTCOME_CASE_NOT_FOUND
        elif isinstance(exc, StageNotFoundError):
            outcome = OUTCOME_STAGE_NOT_FOUND
        elif isinstance(exc, InvalidTransitionError):
            outcome = OUTCOME_NO_EDGE
        else:
            outcome = OUTCOME_INVALID_CONTEXT
        target = self.stage_graph().stage_by_id(target_stage_id)
        _emit_workflow_trace(
            case_id,
            outcome,
            str(exc),
            (time.monotonic() - t0) * 1000,
            from_stage=getattr(exc, "from_stage", None),
            to_stage=target.code if target else str(target_stage_id),
            automatic=automatic,
        )

    def _run_provisioning(self, resolved: _ResolvedEdge, actor: ActorRef) -> dict[str, Any]:
        hook = self._hooks.get(resolved.edge.guard)
        if hook is None:
            return {}

        request = ProvisioningRequest(
            session=self.session,
            case_id=resolved.application.id,
            actor_id=actor.actor_id,
            audit_service=self._audit,
            clock=self._clock,
        )
        try:
            with self.session.begin_nested():
                result = dict(hook(request))
        except Exception as e:  # noqa: BLE001
            logger.error(
                "provisioning_failed",
                extra={
                    "case_id": str(resolved.application.id),
                    "guard_name": resolved.edge.guard.value,
                    "error": str(e),
                },
                exc_info=True,
            )
            return {"error": str(e)}

        logger.info(
            "provisioning_completed",
            extra={
                "case_id": str(resolved.application.id),
                "guard_name": resolved.edge.guard.value,
                "clearances_created": result.get("clearances_created", []),
            },
        )
        return result

    # ------------------------------------------------------------------
    # Previews
    # ------------------------------------------------------------------

    def dry_run(
        self,
        case_id: UUID,
        target_stage_id: UUID,
        actor: ActorRef,
        extra: Mapping[str, Any] | None = None,
    ) -> GuardResult:
        """Evaluate the edge's guard without locking or writing anything."""
        resolved = self._resolve(case_id, target_stage_id, actor, extra, lock=False)
        result = self._guards.execute(resolved.edge.guard, resolved.context)
        logger.debug(
            "transition_dry_run",
            extra={
                "case_id": str(case_id),
                "to_stage": resolved.to_stage.code,
                "can_transition": result.can_transition,
            },
        )
        return result

    def available_transitions(
        self,
        case_id: UUID,
        actor: ActorRef,
        extra: Mapping[str, Any] | None = None,
    ) -> tuple[TransitionPreview, ...]:
        """Dry-run every outbound edge of the case's current stage."""
        graph = self.stage_graph()
        application = self._load_case(case_id, lock=False)
        from_stage = graph.stage_by_id(application.current_stage_id)
        if from_stage is None:
            return ()

        previews: list[TransitionPreview] = []
        for edge in graph.outbound(from_stage.id):
            to_stage = graph.stage_by_id(edge.to_stage_id)
            context = self._build_context(case_id, from_stage, to_stage, actor, extra)
            result = self._guards.execute(edge.guard, context)
            previews.append(TransitionPreview(
                to_stage_id=to_stage.id,
                to_stage_code=to_stage.code,
                to_stage_name=to_stage.name,
                guard=edge.guard,
                can_transition=result.can_transition,
                reason=result.reason,
                metadata=result.metadata,
            ))
        return tuple(previews)

    def is_transition_available(
        self,
        case_id: UUID,
        target_stage_code: str,
        actor: ActorRef,
    ) -> bool:
        """True iff an edge to ``target_stage_code`` exists and its guard admits now."""
        graph = self.stage_graph()
        target = graph.stage(target_stage_code)
        if target is None:
            return False
        application = self._load_case(case_id, lock=False)
        if graph.edge(application.current_stage_id, target.id) is None:
            return False
        return self.dry_run(case_id, target.id, actor).can_transition
