"""
ORM-Level Immutability Enforcement.

===============================================================================
HOW IT WORKS
===============================================================================

SQLAlchemy fires events before UPDATE/DELETE operations reach the database.
We register listeners that intercept these events and check our invariants:

    session.flush()
         |
         v
    [before_update event] --> _check_*_immutability() --> ImmutabilityViolationError
         |                                                        ^
         v                                                        |
    [before_delete event] --> _check_*_delete() -----------------+
         |
         v
    SQL sent to database (only if checks pass)

If a check fails, we raise ImmutabilityViolationError and the flush is
aborted.  The database is never modified.

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity              | When Immutable                  | Exception
--------------------|---------------------------------|------------------------------
AuditLogEntry       | ALWAYS (from creation)          | ip_address / user_agent may
                    |                                 | be filled once from NULL
WorkflowStage       | ALWAYS                          | -
WorkflowTransition  | ALWAYS                          | -
TransferDeed        | After is_finalized = True       | updated_at
Application         | current_stage_id and            | writable inside
                    | previous_stage_id               | stage_pointer_writer()

===============================================================================
USAGE
===============================================================================

Called once at startup (init_engine_from_url does this):

    from transfer_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()

The transition executor wraps its pointer write and flush in:

    with stage_pointer_writer(session):
        application.current_stage_id = target.id
        session.flush()

To temporarily disable (TESTS ONLY):

    unregister_immutability_listeners()

===============================================================================
"""

from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import event, inspect
from sqlalchemy.orm import Session, object_session
from sqlalchemy.orm.attributes import get_history

from transfer_kernel.exceptions import ImmutabilityViolationError
from transfer_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

_POINTER_WRITER_KEY = "transfer_kernel.stage_pointer_writer"

STAGE_POINTER_FIELDS = ("current_stage_id", "previous_stage_id")

TRANSFER_DEED_MUTABLE_AFTER_FINALIZE = frozenset({"updated_at"})


def immutability_violation(
    entity_type: str, entity_id, operation: str, reason: str, **extra
) -> ImmutabilityViolationError:
    """Log the blocked write and build the exception for the caller to raise."""
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(entity_id),
            "operation": operation,
            **extra,
        },
    )
    return ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(entity_id),
        reason=reason,
    )


@contextmanager
def stage_pointer_writer(session: Session) -> Iterator[None]:
    """Authorize flushes that change an Application's stage pointer (re-entrant)."""
    depth = session.info.get(_POINTER_WRITER_KEY, 0)
    session.info[_POINTER_WRITER_KEY] = depth + 1
    try:
        yield
    finally:
        if depth:
            session.info[_POINTER_WRITER_KEY] = depth
        else:
            session.info.pop(_POINTER_WRITER_KEY, None)


def _check_application_stage_pointer(mapper, connection, target):
    """Only the transition executor may move a case's stage pointer."""
    from transfer_kernel.models.application import Application

    if not isinstance(target, Application):
        return

    changed = [f for f in STAGE_POINTER_FIELDS if get_history(target, f).has_changes()]
    if not changed:
        return

    session = object_session(target)
    if session is not None and session.info.get(_POINTER_WRITER_KEY):
        return

    raise immutability_violation(
        "Application",
        target.id,
        "UPDATE",
        f"Stage pointer field(s) {', '.join(changed)} may only change through the transition executor",
        fields=changed,
    )


def _check_audit_log_immutability(mapper, connection, target):
    """
    Audit log entries are append-only.

    The only sanctioned write after INSERT fills ip_address / user_agent
    from NULL.  Replacing a non-NULL value is a violation.
    """
    from transfer_kernel.models.audit_log import AUDIT_LOG_BACKFILL_FIELDS, AuditLogEntry

    if not isinstance(target, AuditLogEntry):
        return

    for attr in inspect(target).attrs:
        hist = attr.history
        if not hist.has_changes():
            continue
        if attr.key in AUDIT_LOG_BACKFILL_FIELDS:
            previous = hist.deleted[0] if hist.deleted else None
            if previous is None:
                continue
            raise immutability_violation(
                "AuditLogEntry",
                target.id,
                "UPDATE",
                f"Request metadata field '{attr.key}' is already set",
                field=attr.key,
            )
        raise immutability_violation(
            "AuditLogEntry",
            target.id,
            "UPDATE",
            "Audit log entries are append-only",
            field=attr.key,
        )


def _check_audit_log_delete(mapper, connection, target):
    raise immutability_violation(
        "AuditLogEntry",
        target.id,
        "DELETE",
        "Audit log entries cannot be deleted",
    )


def _check_catalog_immutability(mapper, connection, target):
    """Stage and edge rows never change once seeded."""
    raise immutability_violation(
        type(target).__name__,
        target.id,
        "UPDATE",
        "Workflow catalog rows are immutable",
    )


def _check_catalog_delete(mapper, connection, target):
    raise immutability_violation(
        type(target).__name__,
        target.id,
        "DELETE",
        "Workflow catalog rows cannot be deleted",
    )


def _check_transfer_deed_immutability(mapper, connection, target):
    """
    Prevent updates to finalized TransferDeed records.

    The finalize write itself (is_finalized False -> True) is allowed.
    Anything after that, other than updated_at, is blocked.
    """
    from transfer_kernel.models.deed import TransferDeed

    if not isinstance(target, TransferDeed):
        return

    finalized_history = get_history(target, "is_finalized")

    was_finalized_before = False
    if finalized_history.deleted:
        was_finalized_before = bool(finalized_history.deleted[0])
    elif not finalized_history.added:
        was_finalized_before = bool(target.is_finalized)

    if not was_finalized_before:
        return

    for attr in inspect(target).attrs:
        if attr.key in TRANSFER_DEED_MUTABLE_AFTER_FINALIZE:
            continue
        if attr.history.has_changes():
            raise immutability_violation(
                "TransferDeed",
                target.id,
                "UPDATE",
                f"Cannot modify field '{attr.key}' on finalized transfer deed",
                field=attr.key,
            )


def _check_transfer_deed_delete(mapper, connection, target):
    from transfer_kernel.models.deed import TransferDeed

    if not isinstance(target, TransferDeed):
        return

    if target.is_finalized:
        raise immutability_violation(
            "TransferDeed",
            target.id,
            "DELETE",
            "Finalized transfer deeds cannot be deleted",
        )


def _listener_table():
    from transfer_kernel.models.application import Application
    from transfer_kernel.models.audit_log import AuditLogEntry
    from transfer_kernel.models.deed import TransferDeed
    from transfer_kernel.models.workflow import WorkflowStage, WorkflowTransition

    return (
        (Application, "before_update", _check_application_stage_pointer),
        (AuditLogEntry, "before_update", _check_audit_log_immutability),
        (AuditLogEntry, "before_delete", _check_audit_log_delete),
        (WorkflowStage, "before_update", _check_catalog_immutability),
        (WorkflowStage, "before_delete", _check_catalog_delete),
        (WorkflowTransition, "before_update", _check_catalog_immutability),
        (WorkflowTransition, "before_delete", _check_catalog_delete),
        (TransferDeed, "before_update", _check_transfer_deed_immutability),
        (TransferDeed, "before_delete", _check_transfer_deed_delete),
    )


def register_immutability_listeners():
    """
    Register all immutability enforcement event listeners (idempotent).

    Call this after all models are imported but before any database
    operations begin.
    """
    for target, event_name, listener_fn in _listener_table():
        if not event.contains(target, event_name, listener_fn):
            event.listen(target, event_name, listener_fn)


def _safe_remove_listener(target, event_name, listener_fn):
    """Safely remove an event listener, ignoring if not registered."""
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests where you need to intentionally
    violate immutability rules to verify detection.
    """
    for target, event_name, listener_fn in _listener_table():
        _safe_remove_listener(target, event_name, listener_fn)
