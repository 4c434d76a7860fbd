"""
stock_config -- single public entrypoint for ledger configuration.

Responsibility:
    ``get_active_config()`` is the only way to obtain configuration at
    runtime.  It reads the packaged ``defaults.yaml`` (or a caller-supplied
    file), applies environment overrides and returns a frozen
    ``LedgerConfig``.

Architecture position:
    Configuration.  Consumed by the composition root
    (``stock_kernel.services.stock_ledger.build_stock_ledger``); nothing
    else in the kernel imports this package.

Environment overrides:
    STOCK_LEDGER_DATABASE_URL  -- replaces storage.database_url.

Every successful call logs ``ledger_config_loaded`` with the checksum of
the effective configuration.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from stock_config.loader import load_yaml_file, parse_ledger_config
from stock_config.schema import (
    AnalyticsConfig,
    LedgerConfig,
    NotificationConfig,
    RetryConfig,
    StorageConfig,
)

_logger = logging.getLogger("stock_kernel.config")

DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults.yaml"

DATABASE_URL_ENV = "STOCK_LEDGER_DATABASE_URL"

__all__ = [
    "AnalyticsConfig",
    "LedgerConfig",
    "NotificationConfig",
    "RetryConfig",
    "StorageConfig",
    "get_active_config",
]


def get_active_config(config_path: Path | str | None = None) -> LedgerConfig:
    """The ONLY public configuration entrypoint.

    Args:
        config_path: YAML file to load instead of the packaged defaults.

    Raises:
        FileNotFoundError: config_path does not exist.
        ValueError: unknown keys or invalid values.
    """
    path = Path(config_path) if config_path is not None else DEFAULT_CONFIG_PATH
    data = load_yaml_file(path)

    overrides: dict[str, dict] = {}
    env_url = os.environ.get(DATABASE_URL_ENV)
    if env_url:
        overrides["storage"] = {"database_url": env_url}

    config = parse_ledger_config(data, overrides)

    _logger.info(
        "ledger_config_loaded",
        extra={
            "config_path": str(path),
            "checksum": config.checksum,
            "database_url": config.storage.database_url,
            "env_override": bool(env_url),
        },
    )
    return config
