"""
Engine and session management for the case database.

PostgreSQL is the production backend.  Sessions run at READ COMMITTED and
the transition executor takes ``SELECT ... FOR UPDATE`` on the case row,
so two officers acting on the same case serialize on that lock.

SQLite (usually ``:memory:``) backs the test suite.  The pysqlite driver
is switched to manual transaction control so that the SAVEPOINTs used by
the executor and the provisioning hooks behave as they do on PostgreSQL.

``session_scope()`` is the only place that commits: a domain write, the
stage move it triggers and their audit entries land together or not at
all.
"""

import atexit
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.engine.url import make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

from transfer_kernel.logging_config import configure_logging, get_logger

logger = get_logger("db.engine")

POSTGRES_POOL_DEFAULTS: dict[str, Any] = {
    "pool_size": 20,
    "max_overflow": 10,
    "pool_pre_ping": True,
    "pool_timeout": 30,
    "pool_recycle": 1800,
}

_engine: Engine | None = None
_session_factory: sessionmaker[Session] | None = None


def _enable_sqlite_savepoints(engine: Engine) -> None:
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


def build_engine(database_url: str, *, echo: bool = False, **pool_options: Any) -> Engine:
    """
    Create an engine for ``database_url`` without touching module state.

    ``pool_options`` override ``POSTGRES_POOL_DEFAULTS`` and are ignored for
    SQLite, which always shares one connection through ``StaticPool``.
    """
    url = make_url(database_url)
    if url.get_backend_name() == "sqlite":
        engine = create_engine(
            url,
            echo=echo,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
        _enable_sqlite_savepoints(engine)
        return engine

    return create_engine(
        url,
        echo=echo,
        poolclass=QueuePool,
        isolation_level="READ COMMITTED",
        **{**POSTGRES_POOL_DEFAULTS, **pool_options},
    )


def init_engine_from_url(database_url: str, *, echo: bool = False, **pool_options: Any) -> Engine:
    """
    Install the process-wide engine and session factory.

    Also registers the ORM immutability listeners and makes sure structured
    logging is configured.  Calling it again replaces the previous engine.
    """
    global _engine, _session_factory

    _engine = build_engine(database_url, echo=echo, **pool_options)
    _session_factory = sessionmaker(bind=_engine, expire_on_commit=False)

    from transfer_kernel.db.immutability import register_immutability_listeners

    register_immutability_listeners()
    configure_logging()
    logger.info(
        "engine_initialized",
        extra={
            "dialect": _engine.dialect.name,
            "pool_class": type(_engine.pool).__name__,
        },
    )
    return _engine


def _require_engine() -> Engine:
    if _engine is None or _session_factory is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _engine


def get_engine() -> Engine:
    return _require_engine()


def get_session() -> Session:
    _require_engine()
    return _session_factory()


@contextmanager
def session_scope() -> Iterator[Session]:
    """Commit on clean exit, roll back and re-raise on error, always close."""
    session = get_session()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        logger.warning("transaction_rolled_back", exc_info=True)
        raise
    finally:
        session.close()


def create_tables(engine: Engine | None = None) -> None:
    from transfer_kernel.db.base import Base
    import transfer_kernel.models  # noqa: F401

    Base.metadata.create_all(engine or get_engine())


def drop_tables(engine: Engine | None = None) -> None:
    from transfer_kernel.db.base import Base
    import transfer_kernel.models  # noqa: F401

    Base.metadata.drop_all(engine or get_engine())


def reset_engine() -> None:
    """Dispose the engine and forget the session factory.  Test teardown."""
    global _engine, _session_factory
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _session_factory = None


atexit.register(reset_engine)
