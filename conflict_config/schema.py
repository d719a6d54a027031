"""
ConflictPolicy schema.

Frozen dataclasses the YAML policy file is parsed into.  Every section
validates itself in ``__post_init__`` and raises ``ValueError`` on a bad
value, so an invalid file never produces a policy object.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta

from conflict_kernel.domain.scrutiny import ScrutinyThresholds

DEFAULT_APPEAL_CATEGORIES: tuple[str, ...] = (
    "medical_emergency",
    "family_emergency",
    "natural_disaster",
    "property_issue",
    "transportation",
    "scheduling_error",
    "other",
)


def _require_positive(section: str, **values: int) -> None:
    for name, value in values.items():
        if value <= 0:
            raise ValueError(f"{section}.{name} must be positive, got {value!r}")


@dataclass(frozen=True)
class AppealPolicy:
    sla_hours: int = 48
    window_hours: int = 72
    categories: tuple[str, ...] = DEFAULT_APPEAL_CATEGORIES

    def __post_init__(self) -> None:
        _require_positive("appeals", sla_hours=self.sla_hours, window_hours=self.window_hours)
        if not self.categories:
            raise ValueError("appeals.categories must not be empty")

    @property
    def sla(self) -> timedelta:
        return timedelta(hours=self.sla_hours)

    @property
    def window(self) -> timedelta:
        return timedelta(hours=self.window_hours)


@dataclass(frozen=True)
class AdjustmentPolicy:
    response_hours: int = 24

    def __post_init__(self) -> None:
        _require_positive("adjustments", response_hours=self.response_hours)

    @property
    def response_window(self) -> timedelta:
        return timedelta(hours=self.response_hours)


@dataclass(frozen=True)
class LedgerPolicy:
    form_1099_threshold: int = 60000
    reconciliation_page_size: int = 100

    def __post_init__(self) -> None:
        _require_positive(
            "ledger",
            form_1099_threshold=self.form_1099_threshold,
            reconciliation_page_size=self.reconciliation_page_size,
        )


@dataclass(frozen=True)
class AuditPolicy:
    trail_limit: int = 200

    def __post_init__(self) -> None:
        _require_positive("audit", trail_limit=self.trail_limit)


@dataclass(frozen=True)
class RateLimitPolicy:
    max_actions: int = 10
    window_seconds: int = 60

    def __post_init__(self) -> None:
        _require_positive(
            "rate_limit",
            max_actions=self.max_actions,
            window_seconds=self.window_seconds,
        )


@dataclass(frozen=True)
class ConflictPolicy:
    """The runtime configuration artifact."""

    config_id: str = "default"
    version: int = 1
    appeals: AppealPolicy = field(default_factory=AppealPolicy)
    adjustments: AdjustmentPolicy = field(default_factory=AdjustmentPolicy)
    scrutiny: ScrutinyThresholds = field(default_factory=ScrutinyThresholds)
    ledger: LedgerPolicy = field(default_factory=LedgerPolicy)
    audit: AuditPolicy = field(default_factory=AuditPolicy)
    rate_limit: RateLimitPolicy = field(default_factory=RateLimitPolicy)
    checksum: str = ""

    def __post_init__(self) -> None:
        if not self.config_id:
            raise ValueError("config_id is required")
        if self.version < 1:
            raise ValueError(f"version must be >= 1, got {self.version!r}")
