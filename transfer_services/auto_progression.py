"""
transfer_services.auto_progression -- Best-effort relay of domain events into
stage transitions.

Responsibility:
    After a domain service has written its own change, walk the relay
    table from the case's current stage under the triggering event and
    apply each candidate transition through the TransitionExecutor, until
    no candidate applies, a guard denies, or the iteration cap is reached.

Architecture position:
    Services layer.  Called by ClearanceService, AccountsService,
    ReviewService and DeedService.  Never called by guards.

Invariants enforced:
    - ``check()`` never raises.  Any failure is logged and reported as
      ``stopped_reason == "error"``; the triggering mutation stands.
    - At most ``relay_table.max_steps`` transitions per call, so a
      misconfigured relay cannot loop forever.
    - Every transition goes through ``TransitionExecutor.attempt_transition``
      with ``automatic=True`` (AUTO_STAGE_TRANSITION audit entries).
"""

from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from transfer_kernel.domain.relay import DomainEvent, RelayTable
from transfer_kernel.domain.workflow import SYSTEM_ACTOR, ActorRef, TransitionRecord
from transfer_kernel.logging_config import get_logger
from transfer_kernel.models.application import Application
from transfer_services.transition_executor import TransitionExecutor

logger = get_logger("services.auto_progression")

STOP_NO_CANDIDATE = "no_candidate"
STOP_DENIED = "denied"
STOP_ERROR = "error"
STOP_ITERATION_CAP = "iteration_cap"


@dataclass(frozen=True)
class AutoProgressionResult:
    """Transitions applied by one ``check()`` call and why the walk stopped."""

    transitions: tuple[TransitionRecord, ...]
    stopped_reason: str
    last_reason: str | None = None

    @property
    def transitioned(self) -> bool:
        return bool(self.transitions)

    @property
    def final_stage_code(self) -> str | None:
        return self.transitions[-1].to_stage_code if self.transitions else None


class AutoProgressionCoordinator:
    """
    Chains relay-table transitions for one domain event.

    Contract:
        ``check(case_id, event, actor=None)`` returns an
        ``AutoProgressionResult``; it never raises.

    Non-goals:
        - Does NOT retry denied guards or schedule later checks.  The next
          domain mutation triggers the next check.
    """

    def __init__(self, session: Session, executor: TransitionExecutor, relay_table: RelayTable):
        self.session = session
        self._executor = executor
        self._relay = relay_table

    @property
    def executor(self) -> TransitionExecutor:
        return self._executor

    def _current_stage_code(self, case_id: UUID) -> str | None:
        stage_id = self.session.execute(
            select(Application.current_stage_id).where(Application.id == case_id)
        ).scalar_one_or_none()
        if stage_id is None:
            return None
        stage = self._executor.stage_graph().stage_by_id(stage_id)
        return stage.code if stage else None

    def check(
        self,
        case_id: UUID,
        event: DomainEvent | str,
        actor: ActorRef | None = None,
    ) -> AutoProgressionResult:
        actor = actor or SYSTEM_ACTOR
        records: list[TransitionRecord] = []
        stopped, last_reason = STOP_NO_CANDIDATE, None

        try:
            event = DomainEvent(event)
            while True:
                stage_code = self._current_stage_code(case_id)
                if stage_code is None:
                    stopped, last_reason = STOP_ERROR, "Application not found"
                    break

                entry = self._relay.candidate(stage_code, event)
                if entry is None:
                    stopped = STOP_NO_CANDIDATE
                    break

                if len(records) >= self._relay.max_steps:
                    logger.warning(
                        "auto_progression_iteration_cap",
                        extra={
                            "case_id": str(case_id),
                            "event": event.value,
                            "max_steps": self._relay.max_steps,
                        },
                    )
                    stopped = STOP_ITERATION_CAP
                    break

                result = self._executor.attempt_transition_to(
                    case_id, entry.to_stage, actor, automatic=True,
                )
                if not result.success:
                    stopped, last_reason = STOP_DENIED, result.reason
                    break
                records.append(result.record)
        except Exception as e:  # noqa: BLE001
            logger.error(
                "auto_progression_failed",
                extra={
                    "case_id": str(case_id),
                    "event": getattr(event, "value", event),
                    "error": str(e),
                },
                exc_info=True,
            )
            stopped, last_reason = STOP_ERROR, str(e)

        logger.info(
            "auto_progression_stopped",
            extra={
                "case_id": str(case_id),
                "event": getattr(event, "value", event),
                "stopped_reason": stopped,
                "last_reason": last_reason,
                "transitions": [r.to_stage_code for r in records],
            },
        )
        return AutoProgressionResult(tuple(records), stopped, last_reason)
