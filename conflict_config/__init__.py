"""
conflict_config -- single public entrypoint for conflict engine configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  Services receive the returned
    ``ConflictPolicy`` (or the pieces of it they need) from their caller
    and never read files or environment variables themselves.

Architecture position:
    Configuration.  Sits above ``conflict_kernel`` and below
    ``conflict_modules`` / ``conflict_services``.  The kernel MUST NEVER
    import from ``conflict_config``.

Audit relevance:
    Every successful ``get_active_config()`` call emits a
    ``CONFLICT_CONFIG_TRACE`` log entry with the config id, version and
    checksum, tying each decision back to the policy that governed it.
"""

from __future__ import annotations

import logging
from pathlib import Path

from conflict_config.loader import load_yaml_file, parse_policy
from conflict_config.schema import (
    AdjustmentPolicy,
    AppealPolicy,
    AuditPolicy,
    ConflictPolicy,
    LedgerPolicy,
    RateLimitPolicy,
)

__all__ = [
    "AdjustmentPolicy",
    "AppealPolicy",
    "AuditPolicy",
    "ConflictPolicy",
    "LedgerPolicy",
    "RateLimitPolicy",
    "get_active_config",
]

_logger = logging.getLogger("conflict_kernel.config")

_DEFAULT_CONFIG_PATH = Path(__file__).parent / "sets" / "default.yaml"


def get_active_config(config_path: Path | str | None = None) -> ConflictPolicy:
    """The ONLY public configuration entrypoint.

    Args:
        config_path: Override path to a policy YAML file.  Defaults to
            ``conflict_config/sets/default.yaml``.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If the file fails validation.
    """
    path = Path(config_path) if config_path is not None else _DEFAULT_CONFIG_PATH
    policy = parse_policy(load_yaml_file(path))

    _logger.info(
        "CONFLICT_CONFIG_TRACE",
        extra={
            "trace_type": "CONFLICT_CONFIG_TRACE",
            "config_id": policy.config_id,
            "config_version": policy.version,
            "checksum": policy.checksum,
            "source": str(path),
        },
    )
    return policy
