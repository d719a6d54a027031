"""
Scrutiny profile derivation (``conflict_kernel.domain.scrutiny``).

Responsibility
--------------
Turns a user's appeal history into a risk tier plus descriptive stats.
The profile is a pure function of the history: recomputing it any number
of times over the same history yields the same profile, so there is no
incrementally mutated counter to drift.

Architecture position
---------------------
**Kernel domain layer** -- pure.  ``conflict_modules.appeals.scrutiny``
loads the history and persists the result through the UserStore port.
"""

from __future__ import annotations

import calendar
from collections import Counter
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from conflict_kernel.domain.values import ScrutinyLevel


class AppealOutcome(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    DENIED = "denied"


@dataclass(frozen=True)
class AppealHistoryItem:
    submitted_at: datetime
    category: str
    outcome: AppealOutcome


@dataclass(frozen=True)
class ScrutinyThresholds:
    window_months: int = 6
    high_risk_appeals: int = 5
    high_risk_denials: int = 3
    watch_appeals: int = 3
    watch_denials: int = 2

    def __post_init__(self) -> None:
        if self.window_months <= 0:
            raise ValueError("window_months must be positive")
        if self.watch_appeals > self.high_risk_appeals:
            raise ValueError("watch_appeals cannot exceed high_risk_appeals")
        if self.watch_denials > self.high_risk_denials:
            raise ValueError("watch_denials cannot exceed high_risk_denials")


@dataclass(frozen=True)
class AppealStats:
    total: int
    approved: int
    denied: int
    pending: int
    category_counts: Mapping[str, int]
    approval_rate: int | None
    avg_days_between_appeals: float | None


@dataclass(frozen=True)
class ScrutinyProfile:
    level: ScrutinyLevel
    reason: str | None
    recent_appeals: int
    recent_denials: int
    stats: AppealStats


def months_before(moment: datetime, months: int) -> datetime:
    """Calendar-month subtraction, clamping the day to the target month."""
    month_index = moment.year * 12 + (moment.month - 1) - months
    year, month = divmod(month_index, 12)
    month += 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def classify(
    recent_appeals: int,
    recent_denials: int,
    thresholds: ScrutinyThresholds,
) -> tuple[ScrutinyLevel, str | None]:
    if (
        recent_appeals >= thresholds.high_risk_appeals
        or recent_denials >= thresholds.high_risk_denials
    ):
        return (
            ScrutinyLevel.HIGH_RISK,
            f"{recent_appeals} appeals in {thresholds.window_months} months, "
            f"{recent_denials} denied",
        )
    if (
        recent_appeals >= thresholds.watch_appeals
        or recent_denials >= thresholds.watch_denials
    ):
        return (
            ScrutinyLevel.WATCH,
            f"{recent_appeals} appeals in {thresholds.window_months} months",
        )
    return ScrutinyLevel.NONE, None


def compute_stats(history: Iterable[AppealHistoryItem]) -> AppealStats:
    items = sorted(history, key=lambda h: h.submitted_at)
    total = len(items)
    outcomes = Counter(h.outcome for h in items)
    approved = outcomes[AppealOutcome.APPROVED]

    avg_days: float | None = None
    if total >= 2:
        gaps = [
            (b.submitted_at - a.submitted_at).total_seconds() / 86400
            for a, b in zip(items, items[1:])
        ]
        avg_days = round(sum(gaps) / len(gaps), 1)

    return AppealStats(
        total=total,
        approved=approved,
        denied=outcomes[AppealOutcome.DENIED],
        pending=outcomes[AppealOutcome.PENDING],
        category_counts=dict(Counter(h.category for h in items)),
        approval_rate=round(approved / total * 100) if total else None,
        avg_days_between_appeals=avg_days,
    )


def compute_scrutiny_profile(
    history: Iterable[AppealHistoryItem],
    now: datetime,
    thresholds: ScrutinyThresholds | None = None,
) -> ScrutinyProfile:
    """Derive the profile for one user from their full appeal history."""
    thresholds = thresholds or ScrutinyThresholds()
    items = list(history)
    window_start = months_before(now, thresholds.window_months)
    recent = [h for h in items if h.submitted_at >= window_start]
    recent_denials = sum(1 for h in recent if h.outcome is AppealOutcome.DENIED)
    level, reason = classify(len(recent), recent_denials, thresholds)
    return ScrutinyProfile(
        level=level,
        reason=reason,
        recent_appeals=len(recent),
        recent_denials=recent_denials,
        stats=compute_stats(items),
    )
