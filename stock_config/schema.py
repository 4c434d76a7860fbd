"""
Ledger configuration schema.

Frozen dataclasses the loader builds from YAML.  Each section validates
itself in ``__post_init__`` and raises ValueError on a bad value, so a
``LedgerConfig`` that exists is a usable one.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime

VALID_JOURNAL_MODES = ("wal", "delete", "truncate", "persist", "memory", "off")
VALID_PROFIT_COST_BASES = ("snapshot", "current")

DEFAULT_TRANSIENT_MARKERS = (
    "database is locked",
    "database table is locked",
    "unable to open database file",
    "cannot operate on a closed database",
)

# ---------------------------------------------------------------------------
# Sections
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class StorageConfig:
    """Where the ledger lives and how connections behave."""

    database_url: str = "sqlite:///inventory.db"
    echo: bool = False
    busy_timeout_seconds: float = 5.0
    journal_mode: str | None = "wal"

    def __post_init__(self):
        if not self.database_url.startswith("sqlite"):
            raise ValueError(f"database_url must be a SQLite URL, got '{self.database_url}'")
        if self.busy_timeout_seconds < 0:
            raise ValueError("busy_timeout_seconds cannot be negative")
        if self.journal_mode is not None and self.journal_mode.lower() not in VALID_JOURNAL_MODES:
            raise ValueError(
                f"journal_mode must be one of {VALID_JOURNAL_MODES}, got '{self.journal_mode}'"
            )


@dataclass(frozen=True)
class RetryConfig:
    """Bounded retry of transient storage failures."""

    max_attempts: int = 3
    base_delay_seconds: float = 0.1
    transient_markers: tuple[str, ...] = DEFAULT_TRANSIENT_MARKERS

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.base_delay_seconds < 0:
            raise ValueError("base_delay_seconds cannot be negative")
        if not self.transient_markers:
            raise ValueError("transient_markers cannot be empty")


@dataclass(frozen=True)
class AnalyticsConfig:
    profit_cost_basis: str = "snapshot"
    all_time_cutoff: datetime = datetime(1970, 1, 1, tzinfo=UTC)

    def __post_init__(self):
        if self.profit_cost_basis not in VALID_PROFIT_COST_BASES:
            raise ValueError(
                f"profit_cost_basis must be one of {VALID_PROFIT_COST_BASES}, "
                f"got '{self.profit_cost_basis}'"
            )


@dataclass(frozen=True)
class NotificationConfig:
    low_stock_enabled: bool = True
    dispatch_workers: int = 1

    def __post_init__(self):
        if self.dispatch_workers < 1:
            raise ValueError("dispatch_workers must be at least 1")


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LedgerConfig:
    """Everything the composition root needs to build a StockLedger."""

    storage: StorageConfig = field(default_factory=StorageConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)
    analytics: AnalyticsConfig = field(default_factory=AnalyticsConfig)
    notifications: NotificationConfig = field(default_factory=NotificationConfig)
    checksum: str = ""
