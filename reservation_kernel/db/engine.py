"""
Module: reservation_kernel.db.engine
Responsibility: SQLAlchemy engine initialization, session factory management
    and transactional scope utilities.  Single point of database connection
    configuration for the kernel, the maintenance job and the CLI.
Architecture position: Kernel > DB.  May import from db/base.py.
    create_tables/drop_tables import models lazily so that Base.metadata
    is complete.

Invariants enforced:
    - PostgreSQL is the production backend (row locks, advisory locks).
      SQLite URLs are accepted for tests and local runs; they get no pool
      sizing and no isolation-level override.
    - Workflow services never commit; session_scope() is the
      commit-or-rollback boundary.

Failure modes:
    - RuntimeError if get_engine/get_session/get_session_factory is called
      before init_engine_from_url().
"""

import atexit
from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker

from reservation_kernel.logging_config import configure_logging, get_logger

logger = get_logger("db.engine")

_engine: Engine | None = None
_SessionFactory: sessionmaker[Session] | None = None


def init_engine_from_url(
    database_url: str,
    echo: bool = False,
    pool_size: int = 10,
    max_overflow: int = 5,
    pool_pre_ping: bool = True,
    pool_recycle: int = 1800,
) -> Engine:
    """
    Initialize the module-level engine and session factory.

    A second call replaces the first.  Pool arguments are ignored for
    SQLite URLs.
    """
    global _engine, _SessionFactory

    url = make_url(database_url)
    if url.get_backend_name() == "sqlite":
        _engine = configure_sqlite(create_engine(url, echo=echo, connect_args={"timeout": 30}))
    else:
        _engine = create_engine(
            url,
            echo=echo,
            pool_size=pool_size,
            max_overflow=max_overflow,
            pool_pre_ping=pool_pre_ping,
            pool_recycle=pool_recycle,
            isolation_level="READ COMMITTED",
        )

    _SessionFactory = sessionmaker(bind=_engine, expire_on_commit=False)

    configure_logging()
    logger.info(
        "engine_initialized",
        extra={"dialect": _engine.dialect.name, "echo": echo},
    )
    return _engine


def configure_sqlite(engine: Engine) -> Engine:
    """Make pysqlite honour SAVEPOINT and foreign keys.

    The driver's own transaction handling defers BEGIN and breaks nested
    transactions, so BEGIN is emitted explicitly.
    """

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")

    return engine


def get_engine() -> Engine:
    if _engine is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _engine


def get_session() -> Session:
    if _SessionFactory is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _SessionFactory()


def get_session_factory() -> sessionmaker[Session]:
    """Session factory for callers that open one session per unit of work."""
    if _SessionFactory is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _SessionFactory


@contextmanager
def session_scope(
    factory: sessionmaker[Session] | None = None,
) -> Generator[Session, None, None]:
    """
    Provide a transactional scope around a series of operations.

    Commits on normal exit; rolls back and re-raises on exception.  Uses the
    module-level factory unless one is passed explicitly.

    Usage:
        with session_scope() as session:
            ReservationService(session, ...).approve_reservation(...)
    """
    session = factory() if factory is not None else get_session()
    logger.debug("transaction_started")
    try:
        yield session
        session.commit()
        logger.debug("transaction_committed")
    except Exception:
        session.rollback()
        logger.warning("transaction_rolled_back", exc_info=True)
        raise
    finally:
        session.close()


def _import_all_models() -> None:
    import reservation_kernel.models  # noqa: F401


def create_tables(engine: Engine | None = None) -> None:
    """Create all tables known to Base.metadata."""
    from reservation_kernel.db.base import Base

    _import_all_models()
    Base.metadata.create_all(engine or get_engine())


def drop_tables(engine: Engine | None = None) -> None:
    """Drop all tables. Use with caution - primarily for testing."""
    from reservation_kernel.db.base import Base

    _import_all_models()
    Base.metadata.drop_all(engine or get_engine())


def reset_engine() -> None:
    """Reset the engine and session factory (test cleanup)."""
    global _engine, _SessionFactory

    if _engine is not None:
        _engine.dispose()
        _engine = None
    _SessionFactory = None


def _atexit_dispose():
    if _engine is not None:
        _engine.dispose()


atexit.register(_atexit_dispose)


def is_postgres(engine: Engine | None = None) -> bool:
    target = engine or _engine
    if target is None:
        return False
    return target.dialect.name == "postgresql"
