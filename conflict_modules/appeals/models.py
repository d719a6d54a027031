"""
Appeal Domain Models (``conflict_modules.appeals.models``).

Responsibility
--------------
Frozen value objects for cancellation appeals: statuses, severities,
decisions, resolution actions, the ``Appeal`` snapshot and the read-side
summaries the workflow returns.

Architecture position
---------------------
**Modules layer** -- pure data definitions.  No I/O.  ``AppealModel`` in
``orm.py`` converts to ``Appeal`` via ``to_dto()``.

Invariants enforced
-------------------
* ``AppealStatus`` values align with ``workflows.APPEAL_WORKFLOW.states``.
* ``ResolutionActions`` rejects negative amounts at construction time.
* ``determine_priority`` is a pure table over (scrutiny level, severity).
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from conflict_kernel.domain.ports import UserSnapshot
from conflict_kernel.domain.scrutiny import ScrutinyProfile
from conflict_kernel.domain.values import ActorRole, Priority, ScrutinyLevel


class AppealStatus(str, Enum):
    """Appeal workflow states.  Must align with ``APPEAL_WORKFLOW.states``."""
    SUBMITTED = "submitted"
    UNDER_REVIEW = "under_review"
    AWAITING_DOCUMENTS = "awaiting_documents"
    ESCALATED = "escalated"
    APPROVED = "approved"
    PARTIALLY_APPROVED = "partially_approved"
    DENIED = "denied"


OPEN_STATUSES: frozenset[AppealStatus] = frozenset({
    AppealStatus.SUBMITTED,
    AppealStatus.UNDER_REVIEW,
    AppealStatus.AWAITING_DOCUMENTS,
    AppealStatus.ESCALATED,
})

CLOSED_STATUSES: frozenset[AppealStatus] = frozenset({
    AppealStatus.APPROVED,
    AppealStatus.PARTIALLY_APPROVED,
    AppealStatus.DENIED,
})

# Escalated appeals are excluded from SLA breach reporting.
SLA_TRACKED_STATUSES: frozenset[AppealStatus] = frozenset({
    AppealStatus.SUBMITTED,
    AppealStatus.UNDER_REVIEW,
    AppealStatus.AWAITING_DOCUMENTS,
})

# Statuses counted as reviewer workload for auto-assignment.
WORKLOAD_STATUSES: frozenset[AppealStatus] = frozenset({
    AppealStatus.UNDER_REVIEW,
    AppealStatus.AWAITING_DOCUMENTS,
})

APPEALER_ROLES: frozenset[ActorRole] = frozenset({ActorRole.HOMEOWNER, ActorRole.CLEANER})


class AppealSeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class AppealDecision(str, Enum):
    APPROVE = "approve"
    PARTIAL = "partial"
    DENY = "deny"

    @property
    def status(self) -> AppealStatus:
        return _DECISION_STATUS[self]


_DECISION_STATUS: dict[AppealDecision, AppealStatus] = {
    AppealDecision.APPROVE: AppealStatus.APPROVED,
    AppealDecision.PARTIAL: AppealStatus.PARTIALLY_APPROVED,
    AppealDecision.DENY: AppealStatus.DENIED,
}


def determine_priority(scrutiny_level: ScrutinyLevel, severity: AppealSeverity) -> Priority:
    """
    Queue priority for a new appeal.

    High-risk appellants are reviewed carefully but never jump to urgent;
    a critical severity does.
    """
    if scrutiny_level is ScrutinyLevel.HIGH_RISK:
        return Priority.HIGH
    if severity is AppealSeverity.CRITICAL:
        return Priority.URGENT
    if severity is AppealSeverity.HIGH or scrutiny_level is ScrutinyLevel.WATCH:
        return Priority.HIGH
    return Priority.NORMAL


@dataclass(frozen=True)
class ResolutionActions:
    """What an approving reviewer grants besides the status change."""

    refund_amount: int = 0
    fee_refunded: bool = False
    fee_amount: int = 0
    unfreeze_account: bool = False

    def __post_init__(self) -> None:
        if self.refund_amount < 0:
            raise ValueError("refund_amount cannot be negative")
        if self.fee_amount < 0:
            raise ValueError("fee_amount cannot be negative")

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any] | None) -> ResolutionActions:
        data = data or {}
        return cls(
            refund_amount=int(data.get("refund_amount", 0) or 0),
            fee_refunded=bool(data.get("fee_refunded", False)),
            fee_amount=int(data.get("fee_amount", 0) or 0),
            unfreeze_account=bool(data.get("unfreeze_account", False)),
        )

    @property
    def reverses_fee(self) -> bool:
        return self.fee_refunded and self.fee_amount > 0

    def as_dict(self) -> dict[str, Any]:
        return {
            "refund_amount": self.refund_amount,
            "fee_refunded": self.fee_refunded,
            "fee_amount": self.fee_amount,
            "unfreeze_account": self.unfreeze_account,
        }


class ResolutionActionType(str, Enum):
    REFUND = "refund"
    FEE_REVERSAL = "fee_reversal"
    UNFREEZE_ACCOUNT = "unfreeze_account"


@dataclass(frozen=True)
class ActionOutcome:
    action: ResolutionActionType
    succeeded: bool
    amount: int = 0
    external_ref: str | None = None
    error: str | None = None


@dataclass(frozen=True)
class Appeal:
    id: UUID
    number: int
    case_number: str
    appointment_id: UUID
    appealer_id: UUID
    appealer_type: ActorRole
    category: str
    severity: AppealSeverity
    description: str
    status: AppealStatus
    priority: Priority
    submitted_at: datetime
    sla_deadline: datetime
    contesting_items: dict[str, Any] = field(default_factory=dict)
    requested_relief: str | None = None
    original_penalty_amount: int = 0
    original_refund_withheld: int = 0
    supporting_documents: tuple[str, ...] = ()
    assigned_to: UUID | None = None
    assigned_at: datetime | None = None
    reviewed_by: UUID | None = None
    reviewed_at: datetime | None = None
    resolution: dict[str, Any] | None = None
    resolution_notes: str | None = None
    escalated_at: datetime | None = None
    escalation_reason: str | None = None
    closed_at: datetime | None = None
    notes: str | None = None

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_STATUSES

    def is_past_sla(self, now: datetime) -> bool:
        return self.status in SLA_TRACKED_STATUSES and now > self.sla_deadline


@dataclass(frozen=True)
class AppealResolution:
    appeal: Appeal
    outcomes: tuple[ActionOutcome, ...] = ()
    scrutiny: ScrutinyProfile | None = None

    @property
    def failed_actions(self) -> tuple[ActionOutcome, ...]:
        return tuple(o for o in self.outcomes if not o.succeeded)


@dataclass(frozen=True)
class AppealDashboardStats:
    total: int
    pending: int
    past_sla: int
    by_status: dict[str, int]
    by_priority: dict[str, int]


@dataclass(frozen=True)
class UserAppealHistory:
    user: UserSnapshot
    appeals: tuple[Appeal, ...]
    profile: ScrutinyProfile

    @property
    def total(self) -> int:
        return len(self.appeals)

    @property
    def approved(self) -> int:
        return sum(
            1 for a in self.appeals
            if a.status in (AppealStatus.APPROVED, AppealStatus.PARTIALLY_APPROVED)
        )

    @property
    def denied(self) -> int:
        return sum(1 for a in self.appeals if a.status is AppealStatus.DENIED)

    @property
    def pending(self) -> int:
        return sum(1 for a in self.appeals if a.is_open)
