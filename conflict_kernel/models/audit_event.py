"""
Module: conflict_kernel.models.audit_event
Responsibility: ORM persistence for the tamper-evident audit hash chain.
Architecture position: Kernel > Models.  May import from db/base.py and domain/.

Invariants enforced:
    - Audit records are write-once; no UPDATE or DELETE (ORM listener).
    - Hash chain integrity: hash = H(subject | event_type | payload_hash |
      prev_hash).  Validated by AuditLog.validate_chain().
    - seq is monotonically increasing, allocated by SequenceService.

Failure modes:
    - ImmutabilityViolationError on any UPDATE/DELETE attempt.
    - AuditChainBrokenError when chain validation detects a hash mismatch.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import JSON, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from conflict_kernel.db.base import Base


class AuditEvent(Base):
    """
    One immutable audit record.

    Subject columns (appointment, appeal, adjustment) are all nullable;
    every event carries at least one of them.  ``actor_id`` is null for
    system-initiated events.
    """

    __tablename__ = "audit_events"

    __table_args__ = (
        Index("idx_audit_appointment", "appointment_id"),
        Index("idx_audit_appeal", "appeal_id"),
        Index("idx_audit_adjustment", "adjustment_id"),
        Index("idx_audit_actor", "actor_id"),
        Index("idx_audit_type", "event_type"),
        Index("idx_audit_occurred", "occurred_at"),
    )

    seq: Mapped[int] = mapped_column(nullable=False, unique=True)

    event_type: Mapped[str] = mapped_column(String(50), nullable=False)

    appointment_id: Mapped[UUID | None] = mapped_column(nullable=True)
    appeal_id: Mapped[UUID | None] = mapped_column(nullable=True)
    adjustment_id: Mapped[UUID | None] = mapped_column(nullable=True)

    actor_id: Mapped[UUID | None] = mapped_column(nullable=True)
    actor_role: Mapped[str | None] = mapped_column(String(20), nullable=True)

    event_data: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    previous_state: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    new_state: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    occurred_at: Mapped[datetime] = mapped_column(nullable=False)
    request_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    payload_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    prev_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)
    hash: Mapped[str] = mapped_column(String(64), nullable=False)

    @property
    def subject(self) -> str:
        """Stable subject string used in the event hash."""
        return "|".join(
            str(v) if v is not None else "-"
            for v in (self.appointment_id, self.appeal_id, self.adjustment_id)
        )

    def __repr__(self) -> str:
        return f"<AuditEvent #{self.seq} {self.event_type}>"
