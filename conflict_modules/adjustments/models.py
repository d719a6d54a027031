"""
Home Size Adjustment Domain Models (``conflict_modules.adjustments.models``).

Responsibility
--------------
Frozen value objects for home-size adjustment requests: a cleaner reports
that the home is larger or smaller than booked, the homeowner accepts or
rejects the new price, and the owner settles rejected requests.

Architecture position
---------------------
**Modules layer** -- pure data definitions.  No I/O.

Invariants enforced
-------------------
* Terminal statuses are never left.
* Expiry is derived from ``expires_at`` and the clock; nothing writes
  ``expired`` as part of a transition.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from uuid import UUID


class AdjustmentStatus(str, Enum):
    PENDING_HOMEOWNER = "pending_homeowner"
    PENDING_OWNER = "pending_owner"
    APPROVED = "approved"
    DENIED = "denied"
    OWNER_APPROVED = "owner_approved"
    OWNER_DENIED = "owner_denied"
    EXPIRED = "expired"


PENDING_STATUSES: frozenset[AdjustmentStatus] = frozenset({
    AdjustmentStatus.PENDING_HOMEOWNER,
    AdjustmentStatus.PENDING_OWNER,
})

TERMINAL_STATUSES: frozenset[AdjustmentStatus] = frozenset({
    AdjustmentStatus.APPROVED,
    AdjustmentStatus.DENIED,
    AdjustmentStatus.OWNER_APPROVED,
    AdjustmentStatus.OWNER_DENIED,
    AdjustmentStatus.EXPIRED,
})

APPROVED_STATUSES: frozenset[AdjustmentStatus] = frozenset({
    AdjustmentStatus.APPROVED,
    AdjustmentStatus.OWNER_APPROVED,
})

# Queue filter vocabulary; values not listed here match a status literally.
STATUS_FILTERS: dict[str, frozenset[AdjustmentStatus]] = {
    "pending": PENDING_STATUSES,
    "approved": APPROVED_STATUSES,
    "denied": frozenset({AdjustmentStatus.DENIED, AdjustmentStatus.OWNER_DENIED}),
}

DEFAULT_DESCRIPTION = "Home size discrepancy reported"


def statuses_for_filter(value: str) -> frozenset[AdjustmentStatus]:
    """
    Expand a queue status filter into adjustment statuses.

    Unknown values yield an empty set, which matches nothing.
    """
    if value in STATUS_FILTERS:
        return STATUS_FILTERS[value]
    try:
        return frozenset({AdjustmentStatus(value)})
    except ValueError:
        return frozenset()


class AdjustmentDecision(str, Enum):
    APPROVE = "approve"
    DENY = "deny"

    @property
    def status(self) -> AdjustmentStatus:
        if self is AdjustmentDecision.APPROVE:
            return AdjustmentStatus.OWNER_APPROVED
        return AdjustmentStatus.OWNER_DENIED


@dataclass(frozen=True)
class HomeSize:
    beds: str
    baths: str

    def __str__(self) -> str:
        return f"{self.beds} bed / {self.baths} bath"


@dataclass(frozen=True)
class AdjustmentCase:
    id: UUID
    number: int
    case_number: str
    appointment_id: UUID
    cleaner_id: UUID
    homeowner_id: UUID
    original_size: HomeSize
    reported_size: HomeSize
    original_price: int
    new_price: int
    price_difference: int
    status: AdjustmentStatus
    expires_at: datetime
    opened_at: datetime
    assigned_to: UUID | None = None
    cleaner_note: str | None = None
    homeowner_response: str | None = None
    homeowner_responded_at: datetime | None = None
    owner_note: str | None = None
    owner_id: UUID | None = None
    owner_resolved_at: datetime | None = None
    notes: str | None = None

    @property
    def is_pending(self) -> bool:
        return self.status in PENDING_STATUSES

    def is_past_expiry(self, now: datetime) -> bool:
        return self.is_pending and now > self.expires_at

    def effective_status(self, now: datetime) -> AdjustmentStatus:
        """``expired`` for a homeowner-pending case past its deadline."""
        if self.status is AdjustmentStatus.PENDING_HOMEOWNER and now > self.expires_at:
            return AdjustmentStatus.EXPIRED
        return self.status


@dataclass(frozen=True)
class AdjustmentStats:
    pending: int
    past_expiry: int
    by_status: dict[str, int]
