"""
BaseService -- abstract base for all services that write case state.

Responsibility:
    Provides the common constructor and session-handling contract for
    every write service.  Concrete services receive a SQLAlchemy
    ``Session`` that they use via ``session.flush()`` -- never
    ``session.commit()``.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.  Extended by the
    kernel audit service and by every domain service in
    ``transfer_services``.

Invariants enforced:
    Transaction boundaries: services flush within the caller's transaction
    and never commit or rollback the outer transaction themselves.  Nested
    SAVEPOINTs (``session.begin_nested()``) are the only unit a service may
    open and close on its own.

Failure modes:
    - If a subclass calls ``session.commit()``, a domain write and its audit
      entries could land separately, breaking the audit pairing guarantee.
"""

from abc import ABC

from sqlalchemy.orm import Session


class BaseService(ABC):
    """
    Abstract base class for write services.

    Contract:
        Accepts a SQLAlchemy ``Session`` from the caller and uses
        ``session.flush()`` to persist changes within the active
        transaction.

    Non-goals:
        - Does NOT manage transaction lifecycle (commit/rollback).
        - Does NOT provide query-only (read) methods -- those belong
          in ``transfer_kernel/selectors/``.
    """

    def __init__(self, session: Session):
        self.session = session
