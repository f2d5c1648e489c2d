"""
Module: marketplace_kernel.db.engine
Responsibility: the process-wide SQLAlchemy engine and the session factory
    that every LedgerStore is built on.
Architecture position: Kernel > DB.  Imports models only inside
    create_tables/drop_tables so Base.metadata is complete.

Backends:
    - PostgreSQL (psycopg2) in production: READ COMMITTED, a bounded
      QueuePool, pre-ping so a restarted database surfaces as a retryable
      StoreUnavailableError rather than a dead connection.
    - SQLite for local runs and the test suite.  pysqlite's implicit
      transaction handling is turned off so SQLAlchemy emits BEGIN itself
      and SAVEPOINTs nest correctly; foreign keys are switched on.

Failure modes:
    - RuntimeError if the engine is used before init_engine_from_url().
"""

import atexit

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from marketplace_kernel.logging_config import configure_logging, get_logger

logger = get_logger("db.engine")

_engine: Engine | None = None
_SessionFactory: sessionmaker[Session] | None = None

_NOT_INITIALIZED = "Engine not initialized. Call init_engine_from_url() first."


def _install_sqlite_hooks(engine: Engine) -> None:

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


def init_engine_from_url(
    database_url: str,
    echo: bool = False,
    pool_size: int = 20,
    max_overflow: int = 10,
    pool_timeout: int = 30,
    pool_recycle: int = 1800,
) -> Engine:
    """
    Create the engine and session factory, replacing any previous ones.

    Pool arguments apply to PostgreSQL only; the concurrency tests raise
    ``pool_size`` so every worker thread gets its own connection.

    Sessions are created with ``expire_on_commit=False`` so DTOs can be
    built from rows after their unit of work has committed.
    """
    global _engine, _SessionFactory

    if _engine is not None:
        _engine.dispose()

    if database_url.startswith("sqlite"):
        _engine = create_engine(
            database_url,
            echo=echo,
            connect_args={"check_same_thread": False},
        )
        _install_sqlite_hooks(_engine)
    else:
        _engine = create_engine(
            database_url,
            echo=echo,
            pool_size=pool_size,
            max_overflow=max_overflow,
            pool_pre_ping=True,
            pool_timeout=pool_timeout,
            pool_recycle=pool_recycle,
            isolation_level="READ COMMITTED",
        )

    _SessionFactory = sessionmaker(bind=_engine, expire_on_commit=False)

    configure_logging()
    logger.info(
        "engine_initialized",
        extra={"dialect": _engine.dialect.name, "pool_size": pool_size, "echo": echo},
    )
    return _engine


def get_engine() -> Engine:
    if _engine is None:
        raise RuntimeError(_NOT_INITIALIZED)
    return _engine


def get_session_factory() -> sessionmaker[Session]:
    """The factory each ``LedgerStore`` opens its units of work from."""
    if _SessionFactory is None:
        raise RuntimeError(_NOT_INITIALIZED)
    return _SessionFactory


def is_postgres() -> bool:
    return _engine is not None and _engine.dialect.name == "postgresql"


def create_tables() -> None:
    """Create every marketplace table, index and constraint that is missing."""
    from marketplace_kernel.db.base import Base
    import marketplace_kernel.models  # noqa: F401  (registers all tables)

    Base.metadata.create_all(get_engine())
    logger.info("tables_created", extra={"table_count": len(Base.metadata.tables)})


def drop_tables() -> None:
    """Drop every marketplace table.  Test suites and local resets only."""
    from marketplace_kernel.db.base import Base
    import marketplace_kernel.models  # noqa: F401

    Base.metadata.drop_all(get_engine())


def reset_engine() -> None:
    """Dispose the engine and forget the session factory."""
    global _engine, _SessionFactory

    if _engine is not None:
        _engine.dispose()
        _engine = None
    _SessionFactory = None


atexit.register(reset_engine)
