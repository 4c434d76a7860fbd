"""
Shared fixtures: ledgers over a per-test SQLite file or an in-memory
database, a frozen clock, a recording low-stock listener and JSON log
capture.
"""

import json
import logging
import threading
from io import StringIO

import pytest

from stock_config import LedgerConfig, RetryConfig, StorageConfig
from stock_kernel.domain.clock import DeterministicClock
from stock_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from stock_kernel.services.stock_ledger import build_stock_ledger


# -- logging --------------------------------------------------------------


@pytest.fixture(autouse=True, scope="session")
def _kernel_logging():
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _isolated_log_context():
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """Reader of every stock_kernel log line emitted during the test, parsed."""
    buffer = StringIO()
    handler = logging.StreamHandler(buffer)
    handler.setFormatter(StructuredFormatter())
    kernel_logger = logging.getLogger("stock_kernel")
    level = kernel_logger.level
    kernel_logger.setLevel(logging.DEBUG)
    kernel_logger.addHandler(handler)

    yield lambda: [json.loads(line) for line in buffer.getvalue().splitlines() if line]

    kernel_logger.removeHandler(handler)
    kernel_logger.setLevel(level)


# -- time and listeners ---------------------------------------------------


@pytest.fixture
def deterministic_clock():
    return DeterministicClock()


class LowStockRecorder:
    """Zero-argument listener that counts calls and lets tests wait for one."""

    def __init__(self):
        self.calls = 0
        self._lock = threading.Lock()
        self._event = threading.Event()

    def __call__(self) -> None:
        with self._lock:
            self.calls += 1
        self._event.set()

    def wait(self, timeout: float = 5.0) -> bool:
        return self._event.wait(timeout)

    def reset(self) -> None:
        with self._lock:
            self.calls = 0
        self._event.clear()


@pytest.fixture
def low_stock_recorder():
    return LowStockRecorder()


# -- ledgers ---------------------------------------------------------------


def no_sleep(seconds: float) -> None:
    pass


@pytest.fixture
def database_url(tmp_path) -> str:
    return f"sqlite:///{tmp_path / 'inventory.db'}"


@pytest.fixture
def ledger_config(database_url) -> LedgerConfig:
    return LedgerConfig(
        storage=StorageConfig(database_url=database_url),
        retry=RetryConfig(base_delay_seconds=0.0),
    )


@pytest.fixture
def stock_ledger(ledger_config, deterministic_clock, low_stock_recorder):
    """Ledger over a fresh file database, with a recording listener."""
    ledger = build_stock_ledger(
        ledger_config,
        clock=deterministic_clock,
        listeners=[low_stock_recorder],
        sleep=no_sleep,
    )
    yield ledger
    ledger.close()


@pytest.fixture
def make_memory_ledger():
    """Factory for throwaway in-memory ledgers (one per hypothesis example)."""
    built = []

    def _make(clock=None):
        config = LedgerConfig(
            storage=StorageConfig(database_url="sqlite://"),
            retry=RetryConfig(base_delay_seconds=0.0),
        )
        ledger = build_stock_ledger(
            config, clock=clock or DeterministicClock(), sleep=no_sleep
        )
        built.append(ledger)
        return ledger

    yield _make

    for ledger in built:
        ledger.close()


@pytest.fixture
def widget(stock_ledger):
    """Widget: cost 10, sell 15, 100 on hand, minimum level 20."""
    return stock_ledger.add_item("Widget", 10, 15, 100, 20)
