"""
Module: stock_kernel.db.gateway
Responsibility: The only path from the ledger to the database.  Owns the
    engine, lazy single-flight initialization, bounded retry of transient
    failures and the in-process write lock.
Architecture position: Kernel > DB.  Imports db/engine.py and db/schema.py.

Invariants enforced:
    - Every unit of work is exactly one database transaction: commit on
      success, rollback on failure.  A retry re-runs the whole unit.
    - Write units are serialized in-process (one critical section from the
      stock check to the transaction insert).
    - On a single shared connection (StaticPool, i.e. in-memory databases)
      read units take the same lock.  One SQLite connection holds at most
      one open transaction.
    - Initialization runs at most once at a time; concurrent callers share
      its single outcome.  After a failure the next call starts over.
    - Only transient failures are retried, at most max_attempts times with
      linear backoff (base_delay * attempt).

Failure modes:
    - StorageFatalError: non-transient SQLAlchemy error, or retries exhausted.
    - MigrationError: schema migration failed during initialization.
    - Domain errors (StockKernelError) raised by the unit propagate unchanged
      and are never retried.

State machine:

    UNINITIALIZED --ensure_ready--> INITIALIZING --ok--> READY
                                         |
                                         +--error--> FAILED --ensure_ready--> INITIALIZING
"""

import threading
import time
from concurrent.futures import Future
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, TypeVar

from sqlalchemy import text
from sqlalchemy.engine import Engine, RowMapping
from sqlalchemy.exc import DBAPIError, SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool
from sqlalchemy.sql import Executable

from stock_kernel.db.engine import create_session_factory, session_scope
from stock_kernel.db.schema import SchemaManager
from stock_kernel.exceptions import (
    StockKernelError,
    StorageFatalError,
    StorageTransientError,
)
from stock_kernel.logging_config import get_logger

logger = get_logger("db.gateway")

T = TypeVar("T")

DEFAULT_TRANSIENT_MARKERS: tuple[str, ...] = (
    "database is locked",
    "database table is locked",
    "unable to open database file",
    "cannot operate on a closed database",
)


class InitState(str, Enum):
    """Lifecycle of the storage handle."""

    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    FAILED = "failed"


@dataclass(frozen=True)
class RetryPolicy:
    """
    Bounded linear-backoff retry for transient storage failures.

    Guarantees:
        - delay_for(attempt) == base_delay_seconds * attempt.
        - is_transient() only ever returns True for StorageTransientError or
          a DBAPIError whose connection was invalidated or whose driver
          message contains one of transient_markers (case-insensitive).
    """

    max_attempts: int = 3
    base_delay_seconds: float = 0.1
    transient_markers: tuple[str, ...] = DEFAULT_TRANSIENT_MARKERS

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.base_delay_seconds < 0:
            raise ValueError("base_delay_seconds cannot be negative")

    def delay_for(self, attempt: int) -> float:
        return self.base_delay_seconds * attempt

    def is_transient(self, exc: BaseException) -> bool:
        if isinstance(exc, StorageTransientError):
            return True
        if not isinstance(exc, DBAPIError):
            return False
        if exc.connection_invalidated:
            return True
        message = str(exc.orig if exc.orig is not None else exc).lower()
        return any(marker.lower() in message for marker in self.transient_markers)


class StorageGateway:
    """
    Lazily initialized, retrying access to the ledger database.

    Contract:
        Every public operation calls ensure_ready() first, so callers never
        initialize explicitly.  Units of work receive a Session and must not
        commit it; the gateway does.

    Non-goals:
        - No cross-process coordination beyond the SQLite writer lock.
        - No cancellation; the only bound is the retry count.
    """

    def __init__(
        self,
        engine: Engine,
        *,
        retry_policy: RetryPolicy | None = None,
        sleep: Callable[[float], None] = time.sleep,
        schema_manager: SchemaManager | None = None,
    ):
        self._engine = engine
        self._session_factory = create_session_factory(engine)
        self._retry_policy = retry_policy or RetryPolicy()
        self._sleep = sleep
        self._schema = schema_manager or SchemaManager(engine)

        self._state = InitState.UNINITIALIZED
        self._state_lock = threading.Lock()
        self._pending: Future | None = None
        self._write_lock = threading.Lock()
        self._shared_connection = isinstance(engine.pool, StaticPool)

    @property
    def engine(self) -> Engine:
        return self._engine

    @property
    def state(self) -> InitState:
        return self._state

    @property
    def retry_policy(self) -> RetryPolicy:
        return self._retry_policy

    def is_ready(self) -> bool:
        return self._state is InitState.READY

    # ------------------------------------------------------------------
    # Initialization
    # ------------------------------------------------------------------

    def ensure_ready(self) -> None:
        """
        Block until the database is usable.

        The first caller runs the initializer; callers arriving while it
        runs wait on the same future and get the same result or error.
        """
        with self._state_lock:
            if self._state is InitState.READY:
                return
            if self._pending is not None:
                future = self._pending
                owner = False
            else:
                future = Future()
                self._pending = future
                self._state = InitState.INITIALIZING
                owner = True

        if not owner:
            logger.debug("storage_init_waiting")
            future.result()
            return

        logger.info("storage_init_started")
        try:
            self._initialize()
        except BaseException as exc:
            with self._state_lock:
                self._state = InitState.FAILED
                self._pending = None
            future.set_exception(exc)
            logger.error(
                "storage_init_failed",
                extra={"error_type": type(exc).__name__},
            )
            raise

        with self._state_lock:
            self._state = InitState.READY
            self._pending = None
        future.set_result(None)
        logger.info("storage_init_completed")

    def _initialize(self) -> None:
        self._with_retry("probe_database", self._probe)
        self._with_retry("ensure_schema", self._schema.ensure_schema)

    def _probe(self) -> None:
        with self._engine.connect() as conn:
            conn.execute(text("SELECT 1"))

    # ------------------------------------------------------------------
    # Units of work
    # ------------------------------------------------------------------

    def execute_once(
        self,
        name: str,
        op: Callable[[Session], T],
        write: bool = False,
    ) -> T:
        """
        Run ``op(session)`` as one retried transactional unit.

        Args:
            name: Operation name for logs and errors.
            op: Unit of work.  Receives a fresh Session per attempt.
            write: Serialize against other write units.  Ignored when the
                engine has a single shared connection: every unit is
                serialized then.
        """
        self.ensure_ready()

        def attempt() -> T:
            if write or self._shared_connection:
                with self._write_lock:
                    return self._run_unit(op)
            return self._run_unit(op)

        return self._with_retry(name, attempt)

    def _run_unit(self, op: Callable[[Session], T]) -> T:
        with session_scope(self._session_factory) as session:
            return op(session)

    def _with_retry(self, name: str, fn: Callable[[], T]) -> T:
        policy = self._retry_policy
        last_exc: BaseException | None = None

        for attempt in range(1, policy.max_attempts + 1):
            try:
                return fn()
            except StorageTransientError as exc:
                last_exc = exc
            except StockKernelError:
                raise
            except SQLAlchemyError as exc:
                if not policy.is_transient(exc):
                    logger.error(
                        "storage_operation_failed",
                        extra={
                            "storage_operation": name,
                            "attempt": attempt,
                            "error_type": type(exc).__name__,
                        },
                    )
                    raise StorageFatalError(name, attempt, str(exc)) from exc
                last_exc = exc

            if attempt < policy.max_attempts:
                delay = policy.delay_for(attempt)
                logger.warning(
                    "storage_operation_retry",
                    extra={
                        "storage_operation": name,
                        "attempt": attempt,
                        "max_attempts": policy.max_attempts,
                        "delay_seconds": delay,
                        "error": str(last_exc),
                    },
                )
                self._sleep(delay)

        logger.error(
            "storage_retries_exhausted",
            extra={"storage_operation": name, "attempts": policy.max_attempts},
        )
        raise StorageFatalError(name, policy.max_attempts, str(last_exc)) from last_exc

    # ------------------------------------------------------------------
    # Primitives
    # ------------------------------------------------------------------

    @staticmethod
    def _statement(stmt: Executable | str) -> Executable:
        return text(stmt) if isinstance(stmt, str) else stmt

    def read_one(
        self,
        name: str,
        stmt: Executable | str,
        params: dict[str, Any] | None = None,
    ) -> RowMapping | None:
        statement = self._statement(stmt)
        return self.execute_once(
            name,
            lambda session: session.execute(statement, params or {}).mappings().first(),
        )

    def read_many(
        self,
        name: str,
        stmt: Executable | str,
        params: dict[str, Any] | None = None,
    ) -> list[RowMapping]:
        statement = self._statement(stmt)
        return self.execute_once(
            name,
            lambda session: list(session.execute(statement, params or {}).mappings().all()),
        )

    def execute(
        self,
        name: str,
        stmt: Executable | str,
        params: dict[str, Any] | None = None,
    ) -> int:
        """Run a write statement; returns the affected row count."""
        statement = self._statement(stmt)
        return self.execute_once(
            name,
            lambda session: session.execute(statement, params or {}).rowcount,
            write=True,
        )

    def run_in_transaction(self, name: str, fn: Callable[[Session], T]) -> T:
        """Run a multi-step write unit and return its result."""
        return self.execute_once(name, fn, write=True)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def reset(self) -> None:
        """Drop every table, then initialize again from scratch."""
        def drop() -> None:
            with self._write_lock:
                self._schema.drop_all()

        self._with_retry("reset_database", drop)
        with self._state_lock:
            self._state = InitState.UNINITIALIZED
            self._pending = None
        logger.warning("storage_reset")
        self.ensure_ready()

    def close(self) -> None:
        """Release pooled connections.  A later call re-initializes."""
        self._engine.dispose()
        with self._state_lock:
            self._state = InitState.UNINITIALIZED
            self._pending = None
        logger.info("storage_closed")
