"""
Pytest fixtures for the plot-transfer workflow test suite.

Provides:
- A session-scoped engine (in-memory SQLite by default) with all tables
- Per-test sessions joined to an outer transaction that is rolled back
- The seeded stage catalog, a deterministic clock and a wired orchestrator
- Factories for parties, plots and cases at any stage

Environment Variables:
- DATABASE_URL: override the engine URL (e.g. a PostgreSQL test database).
"""

import json
import logging
import os
from io import StringIO
from typing import Generator
from uuid import UUID

import pytest
from sqlalchemy import select
from sqlalchemy.orm import Session

from transfer_config import get_active_catalog
from transfer_config.bridges import seed_stage_catalog
from transfer_kernel.db.engine import (
    create_tables,
    drop_tables,
    init_engine_from_url,
    reset_engine,
)
from transfer_kernel.db.immutability import stage_pointer_writer
from transfer_kernel.domain.clock import DeterministicClock
from transfer_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from transfer_kernel.models.application import Application
from transfer_kernel.models.party import Person, Plot
from transfer_kernel.models.workflow import WorkflowStage
from tests.support import CLERK, REQUIRED_DOCUMENTS, RecordingOwnershipRegistry
from transfer_services.workflow_orchestrator import WorkflowOrchestrator

DEFAULT_DATABASE_URL = "sqlite:///:memory:"


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture transfer_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, executor):
            executor.attempt_transition(...)
            logs = captured_logs()
            assert any(r["message"] == "workflow_transition" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("transfer_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Session-scoped DB infrastructure
# =============================================================================


def get_database_url() -> str:
    return os.environ.get("DATABASE_URL", DEFAULT_DATABASE_URL)


@pytest.fixture(scope="session")
def db_engine():
    """Single engine for the whole test session."""
    eng = init_engine_from_url(get_database_url(), echo=False)
    yield eng
    reset_engine()


@pytest.fixture(scope="session")
def db_tables(db_engine):
    """Create every table once per session."""
    create_tables(db_engine)
    yield
    drop_tables(db_engine)


@pytest.fixture(scope="function")
def session(db_tables, db_engine) -> Generator[Session, None, None]:
    """Provide a database session for testing.

    The session joins an outer transaction on a dedicated connection; any
    ``session.commit()`` inside a test only releases a savepoint.  The outer
    transaction is rolled back at teardown.
    """
    conn = db_engine.connect()
    trans = conn.begin()
    sess = Session(bind=conn, join_transaction_mode="create_savepoint", expire_on_commit=False)
    yield sess
    try:
        sess.close()
    finally:
        try:
            trans.rollback()
        finally:
            conn.close()


# =============================================================================
# Catalog, clock and services
# =============================================================================


@pytest.fixture(scope="session")
def catalog():
    """The bundled, compiled plot-transfer catalog."""
    return get_active_catalog()


@pytest.fixture
def seeded_catalog(session: Session, catalog):
    """Seed stage and transition rows into the test transaction."""
    seed_stage_catalog(session, catalog)
    return catalog


@pytest.fixture
def deterministic_clock():
    return DeterministicClock()


@pytest.fixture
def ownership_registry():
    return RecordingOwnershipRegistry()


@pytest.fixture
def orchestrator(session, seeded_catalog, deterministic_clock, ownership_registry):
    return WorkflowOrchestrator(
        session,
        seeded_catalog,
        clock=deterministic_clock,
        ownership_registry=ownership_registry,
    )


@pytest.fixture
def executor(orchestrator):
    return orchestrator.executor


@pytest.fixture
def coordinator(orchestrator):
    return orchestrator.coordinator


@pytest.fixture
def stage_id(session: Session, seeded_catalog):
    """Resolve a stage code to its seeded id."""

    def _stage_id(code: str) -> UUID:
        return session.execute(
            select(WorkflowStage.id).where(WorkflowStage.code == code)
        ).scalar_one()

    return _stage_id


# =============================================================================
# Party and case factories
# =============================================================================


@pytest.fixture
def create_person(session: Session):
    counter = {"n": 0}

    def _create_person(name: str = "Person") -> Person:
        counter["n"] += 1
        person = Person(
            cnic=f"35202-{counter['n']:07d}-1",
            name=f"{name} {counter['n']}",
            created_by=CLERK.actor_id,
        )
        session.add(person)
        session.flush()
        return person

    return _create_person


@pytest.fixture
def parties(session: Session, create_person):
    """Seller, buyer, two witnesses and a plot owned by the seller."""
    seller = create_person("Seller")
    buyer = create_person("Buyer")
    witness1 = create_person("Witness")
    witness2 = create_person("Witness")
    plot = Plot(
        plot_no="P-101",
        block_no="B",
        sector_no="G-9",
        area_sqyd=240,
        current_owner_id=seller.id,
        created_by=CLERK.actor_id,
    )
    session.add(plot)
    session.flush()
    return {
        "seller": seller,
        "buyer": buyer,
        "witness1": witness1,
        "witness2": witness2,
        "plot": plot,
    }


@pytest.fixture
def new_case(orchestrator, parties) -> Application:
    """A freshly opened case at SUBMITTED."""
    return orchestrator.cases.open_case(
        parties["seller"].id,
        parties["buyer"].id,
        parties["plot"].id,
        CLERK,
    )


@pytest.fixture
def attach_documents(orchestrator):
    """Attach the required documents to a case."""

    def _attach(case_id: UUID, seen: bool = True, skip: tuple[str, ...] = (), unseen: tuple[str, ...] = ()):
        attachments = []
        for doc_type in REQUIRED_DOCUMENTS:
            if doc_type in skip:
                continue
            attachments.append(orchestrator.cases.register_attachment(
                case_id,
                doc_type,
                CLERK,
                file_name=f"{doc_type}.pdf",
                is_original_seen=seen and doc_type not in unseen,
            ))
        return attachments

    return _attach


@pytest.fixture
def place_case_at(session: Session, stage_id):
    """Move a case's stage pointer directly, for setting up later-stage tests."""

    def _place(case: Application, code: str) -> Application:
        with stage_pointer_writer(session):
            case.previous_stage_id = case.current_stage_id
            case.current_stage_id = stage_id(code)
            session.flush()
        return case

    return _place


@pytest.fixture
def current_stage_code(session: Session):
    def _current(case_id: UUID) -> str:
        return session.execute(
            select(WorkflowStage.code)
            .join(Application, Application.current_stage_id == WorkflowStage.id)
            .where(Application.id == case_id)
        ).scalar_one()

    return _current
