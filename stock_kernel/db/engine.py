"""
Module: stock_kernel.db.engine
Responsibility: SQLAlchemy engine construction for the local SQLite store
    and the transactional scope used by every unit of work.
Architecture position: Kernel > DB.  May import from db/base.py only.
    MUST NOT import from models/, services/, selectors/ or domain/.

Invariants enforced:
    - SQLite is the only supported backend.
    - PRAGMA foreign_keys=ON on every pooled connection (item deletion
      cascades to its transactions).
    - Transactional DDL: pysqlite's implicit transaction handling is turned
      off and BEGIN is emitted explicitly, so CREATE / DROP run inside the
      same transaction as the surrounding statements.  Schema migration
      relies on this.
    - In-memory URLs use StaticPool so every session sees the same database.

Failure modes:
    - OperationalError("database is locked") when another writer holds the
      SQLite lock past busy_timeout.  Classified as transient by the gateway.

The engine is owned by whoever builds it (StorageGateway); there is no
module-level engine.
"""

from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from stock_kernel.logging_config import get_logger

logger = get_logger("db.engine")


def is_memory_url(database_url: str) -> bool:
    """True for ``sqlite://`` and ``sqlite:///:memory:`` style URLs."""
    tail = database_url.split("://", 1)[-1]
    return tail in ("", "/", "/:memory:") or "mode=memory" in tail


def create_storage_engine(
    database_url: str,
    echo: bool = False,
    busy_timeout_seconds: float = 5.0,
    journal_mode: str | None = "wal",
) -> Engine:
    """
    Build the SQLite engine for the ledger.

    Args:
        database_url: SQLAlchemy URL, e.g. ``sqlite:///inventory.db``.
        echo: If True, log all SQL statements.
        busy_timeout_seconds: How long a connection waits on the writer lock.
        journal_mode: PRAGMA journal_mode for file databases (None = leave).

    Returns:
        SQLAlchemy Engine instance with the connection listeners installed.
    """
    if not database_url.startswith("sqlite"):
        raise ValueError(f"Unsupported database URL (SQLite only): {database_url}")

    in_memory = is_memory_url(database_url)
    if in_memory:
        engine = create_engine(
            database_url,
            echo=echo,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
    else:
        engine = create_engine(
            database_url,
            echo=echo,
            connect_args={
                "check_same_thread": False,
                "timeout": busy_timeout_seconds,
            },
        )

    pragma_journal = None if in_memory else journal_mode

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        # Hand transaction control to SQLAlchemy (see "begin" below)
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        try:
            cursor.execute("PRAGMA foreign_keys=ON")
            if pragma_journal:
                cursor.execute(f"PRAGMA journal_mode={pragma_journal}")
        finally:
            cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")

    logger.info(
        "engine_initialized",
        extra={
            "dialect": "sqlite",
            "in_memory": in_memory,
            "journal_mode": pragma_journal,
            "echo": echo,
        },
    )
    return engine


def create_session_factory(engine: Engine) -> sessionmaker[Session]:
    """Session factory bound to ``engine``; objects stay usable after commit."""
    return sessionmaker(bind=engine, expire_on_commit=False)


@contextmanager
def session_scope(
    session_factory: sessionmaker[Session],
) -> Generator[Session, None, None]:
    """
    Provide a transactional scope around a series of operations.

    Postconditions: On normal exit, session is committed and closed.
        On exception, session is rolled back and closed.  The exception
        is re-raised to the caller.

    Usage:
        with session_scope(factory) as session:
            session.add(entity)
            # Commits on successful exit, rolls back on exception
    """
    session = session_factory()
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
