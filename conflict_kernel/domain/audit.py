"""
Audit vocabulary and the pre-persistence audit record.

``AuditRecord`` is what workflows produce while a unit of work is open.
It is handed to ``AuditLog`` only after the unit of work commits (or, for
failure events, after it rolls back).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from conflict_kernel.domain.values import Actor


class AuditEventType(str, Enum):
    APPEAL_SUBMITTED = "appeal_submitted"
    APPEAL_ASSIGNED = "appeal_assigned"
    APPEAL_STATUS_CHANGED = "appeal_status_changed"
    APPEAL_RESOLVED = "appeal_resolved"
    APPEAL_DOCUMENTS_UPLOADED = "appeal_documents_uploaded"
    ADJUSTMENT_OPENED = "adjustment_opened"
    ADJUSTMENT_HOMEOWNER_RESPONDED = "adjustment_homeowner_responded"
    ADJUSTMENT_ASSIGNED = "adjustment_assigned"
    ADJUSTMENT_RESOLVED = "adjustment_resolved"
    REFUND_COMPLETED = "refund_completed"
    REFUND_FAILED = "refund_failed"
    PAYOUT_COMPLETED = "payout_completed"
    PAYOUT_FAILED = "payout_failed"
    FEE_REVERSAL_COMPLETED = "fee_reversal_completed"
    FEE_REVERSAL_FAILED = "fee_reversal_failed"
    ACCOUNT_UNFROZEN = "account_unfrozen"
    NOTE_ADDED = "note_added"


@dataclass(frozen=True)
class AuditRecord:
    event_type: AuditEventType
    occurred_at: datetime
    actor: Actor | None = None
    appointment_id: UUID | None = None
    appeal_id: UUID | None = None
    adjustment_id: UUID | None = None
    event_data: dict[str, Any] = field(default_factory=dict)
    previous_state: dict[str, Any] | None = None
    new_state: dict[str, Any] | None = None
    request_id: str | None = None
