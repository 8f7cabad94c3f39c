"""
SequenceService -- gap-free counters for audit ordering and case numbering.

Two families of counters live in ``sequence_counters``:

* ``audit_log`` orders every audit entry across all cases.
* ``application_no:<year>`` numbers the cases opened in a calendar year,
  restarting at 1 each January.

A counter row is read under ``SELECT ... FOR UPDATE`` and bumped in place,
so two sessions can never hand out the same value and a rolled-back
transaction gives its value back.  The service flushes and never commits.
"""

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from transfer_kernel.logging_config import get_logger
from transfer_kernel.models.sequence import SequenceCounter

logger = get_logger("services.sequence")


class SequenceService:
    AUDIT_LOG = "audit_log"
    APPLICATION_NO = "application_no"

    def __init__(self, session: Session):
        self._session = session

    def next_audit_seq(self) -> int:
        return self.next_value(self.AUDIT_LOG)

    def next_application_serial(self, year: int) -> int:
        """Serial for the next case opened in ``year``."""
        return self.next_value(f"{self.APPLICATION_NO}:{year}")

    def peek(self, name: str) -> int:
        """Last value handed out for ``name``; 0 if the counter was never used."""
        current = self._session.execute(
            select(SequenceCounter.current_value).where(SequenceCounter.name == name)
        ).scalar_one_or_none()
        return current or 0

    def _lock(self, name: str) -> SequenceCounter | None:
        return self._session.execute(
            select(SequenceCounter)
            .where(SequenceCounter.name == name)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def _create(self, name: str) -> SequenceCounter | None:
        # A concurrent first use can win the insert; the loser re-reads the
        # winner's row under lock.
        savepoint = self._session.begin_nested()
        try:
            counter = SequenceCounter(name=name, current_value=0)
            self._session.add(counter)
            self._session.flush()
        except IntegrityError:
            savepoint.rollback()
            logger.debug("sequence_counter_race", extra={"sequence_name": name})
            return self._lock(name)
        savepoint.commit()
        return counter

    def next_value(self, name: str) -> int:
        counter = self._lock(name) or self._create(name)
        if counter is None:
            raise RuntimeError(f"Sequence counter {name!r} could not be created")
        counter.current_value += 1
        self._session.flush()
        logger.debug(
            "sequence_allocated",
            extra={"sequence_name": name, "value": counter.current_value},
        )
        return counter.current_value
