"""
Configuration Loader (``stock_config.loader``).

Parses the YAML configuration document into ``stock_config.schema``
dataclasses.  Runtime callers go through ``stock_config.get_active_config()``.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown section or key  -> ``ValueError``.
* Bad value  -> ``ValueError`` from the dataclass ``__post_init__``.
"""

from __future__ import annotations

import hashlib
import json
from datetime import UTC, date, datetime
from pathlib import Path
from typing import Any

import yaml

from stock_config.schema import (
    AnalyticsConfig,
    LedgerConfig,
    NotificationConfig,
    RetryConfig,
    StorageConfig,
)

_SECTIONS = {
    "storage": StorageConfig,
    "retry": RetryConfig,
    "analytics": AnalyticsConfig,
    "notifications": NotificationConfig,
}


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Configuration root must be a mapping: {path}")
    return data


def parse_datetime(value: Any) -> datetime:
    """Parse a UTC datetime from YAML (string, date or datetime)."""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    elif isinstance(value, str):
        parsed = datetime.fromisoformat(value)
    else:
        raise ValueError(f"Cannot parse datetime from {value!r}")
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


def _section(name: str, data: Any) -> dict[str, Any]:
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"Section '{name}' must be a mapping, got {type(data).__name__}")
    known = set(_SECTIONS[name].__dataclass_fields__)
    unknown = set(data) - known
    if unknown:
        raise ValueError(f"Unknown keys in section '{name}': {sorted(unknown)}")
    return dict(data)


def parse_ledger_config(
    data: dict[str, Any],
    overrides: dict[str, dict[str, Any]] | None = None,
) -> LedgerConfig:
    """
    Build a LedgerConfig from a parsed YAML mapping.

    ``overrides`` is merged over the YAML per section (used for
    environment overrides).
    """
    unknown = set(data) - set(_SECTIONS)
    if unknown:
        raise ValueError(f"Unknown configuration sections: {sorted(unknown)}")

    sections = {name: _section(name, data.get(name)) for name in _SECTIONS}
    for name, values in (overrides or {}).items():
        sections.setdefault(name, {}).update(values)

    retry = sections["retry"]
    if "transient_markers" in retry:
        retry["transient_markers"] = tuple(retry["transient_markers"])

    analytics = sections["analytics"]
    if "all_time_cutoff" in analytics:
        analytics["all_time_cutoff"] = parse_datetime(analytics["all_time_cutoff"])

    checksum = compute_checksum(sections)
    return LedgerConfig(
        storage=StorageConfig(**sections["storage"]),
        retry=RetryConfig(**retry),
        analytics=AnalyticsConfig(**analytics),
        notifications=NotificationConfig(**sections["notifications"]),
        checksum=checksum,
    )


def compute_checksum(data: dict[str, Any]) -> str:
    """Deterministic SHA-256 over the effective configuration."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
