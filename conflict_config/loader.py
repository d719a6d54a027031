"""
Configuration Loader (``conflict_config.loader``).

Responsibility
--------------
Loads the YAML policy file and parses it into the frozen
``conflict_config.schema`` dataclasses.  Runtime callers go through
``conflict_config.get_active_config()`` instead of calling this directly.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown keys or invalid values  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

import yaml

from conflict_config.schema import (
    AdjustmentPolicy,
    AppealPolicy,
    AuditPolicy,
    ConflictPolicy,
    LedgerPolicy,
    RateLimitPolicy,
)
from conflict_kernel.domain.scrutiny import ScrutinyThresholds

_SECTIONS = ("appeals", "adjustments", "scrutiny", "ledger", "audit", "rate_limit")


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a single YAML file and return its contents as a dict."""
    with open(path) as f:
        return yaml.safe_load(f) or {}


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def _section(data: dict[str, Any], name: str, cls: type) -> Any:
    raw = data.get(name) or {}
    if not isinstance(raw, dict):
        raise ValueError(f"{name} must be a mapping, got {type(raw).__name__}")
    try:
        return cls(**raw)
    except TypeError as exc:
        raise ValueError(f"{name}: {exc}") from exc


def parse_policy(data: dict[str, Any]) -> ConflictPolicy:
    """
    Parse a ``ConflictPolicy`` from a dict.

    Omitted sections and keys fall back to the dataclass defaults.

    Raises:
        ValueError: unknown top-level key, unknown section key or an
            invalid value.
    """
    unknown = set(data) - set(_SECTIONS) - {"config_id", "version"}
    if unknown:
        raise ValueError(f"Unknown configuration keys: {sorted(unknown)}")

    appeals_raw = dict(data.get("appeals") or {})
    if "categories" in appeals_raw:
        appeals_raw["categories"] = tuple(appeals_raw["categories"])

    return ConflictPolicy(
        config_id=str(data.get("config_id", "default")),
        version=int(data.get("version", 1)),
        appeals=_section({"appeals": appeals_raw}, "appeals", AppealPolicy),
        adjustments=_section(data, "adjustments", AdjustmentPolicy),
        scrutiny=_section(data, "scrutiny", ScrutinyThresholds),
        ledger=_section(data, "ledger", LedgerPolicy),
        audit=_section(data, "audit", AuditPolicy),
        rate_limit=_section(data, "rate_limit", RateLimitPolicy),
        checksum=compute_checksum(data),
    )
