"""
Appeal ORM Models (``conflict_modules.appeals.orm``).

Responsibility
--------------
SQLAlchemy persistence for cancellation appeals.  Maps to the frozen
``Appeal`` dataclass in ``models.py``.

Architecture position
---------------------
**Modules layer** -- persistence.  Imports from ``conflict_kernel.db.base``
and sibling ``models.py``.  MUST NOT be imported by ``conflict_kernel``.

Invariants enforced
-------------------
* ``number`` is unique and feeds the external ``APL-000123`` case number.
* ``open_appointment_id`` carries the appointment id while the appeal is
  open and is cleared on close; its unique constraint allows at most one
  open appeal per appointment even under concurrent submission.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import JSON, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from conflict_kernel.db.base import TrackedBase
from conflict_kernel.domain.values import ActorRole, CaseType, Priority, format_case_number


class AppealModel(TrackedBase):
    """
    ORM model for cancellation appeals.

    Guarantees:
        - Enumerated fields are stored as their string values.
        - Monetary snapshots are integer minor units.
    """

    __tablename__ = "appeals"

    __table_args__ = (
        UniqueConstraint("number", name="uq_appeals_number"),
        UniqueConstraint("open_appointment_id", name="uq_appeals_open_appointment"),
        Index("idx_appeals_appointment", "appointment_id"),
        Index("idx_appeals_appealer", "appealer_id"),
        Index("idx_appeals_status", "status"),
        Index("idx_appeals_assigned", "assigned_to"),
        Index("idx_appeals_sla", "sla_deadline"),
    )

    number: Mapped[int] = mapped_column(nullable=False)
    appointment_id: Mapped[UUID] = mapped_column(nullable=False)
    open_appointment_id: Mapped[UUID | None] = mapped_column(nullable=True)

    appealer_id: Mapped[UUID] = mapped_column(nullable=False)
    appealer_type: Mapped[str] = mapped_column(String(20), nullable=False)

    category: Mapped[str] = mapped_column(String(50), nullable=False)
    severity: Mapped[str] = mapped_column(String(20), nullable=False, default="medium")
    description: Mapped[str] = mapped_column(Text, nullable=False)
    contesting_items: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    requested_relief: Mapped[str | None] = mapped_column(Text, nullable=True)
    supporting_documents: Mapped[list] = mapped_column(JSON, nullable=False, default=list)

    original_penalty_amount: Mapped[int] = mapped_column(nullable=False, default=0)
    original_refund_withheld: Mapped[int] = mapped_column(nullable=False, default=0)

    status: Mapped[str] = mapped_column(String(30), nullable=False, default="submitted")
    priority: Mapped[str] = mapped_column(String(10), nullable=False, default="normal")

    submitted_at: Mapped[datetime] = mapped_column(nullable=False)
    sla_deadline: Mapped[datetime] = mapped_column(nullable=False)
    last_activity_at: Mapped[datetime | None] = mapped_column(nullable=True)

    assigned_to: Mapped[UUID | None] = mapped_column(nullable=True)
    assigned_at: Mapped[datetime | None] = mapped_column(nullable=True)

    reviewed_by: Mapped[UUID | None] = mapped_column(nullable=True)
    reviewed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    resolution: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    resolution_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    escalated_at: Mapped[datetime | None] = mapped_column(nullable=True)
    escalation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    closed_at: Mapped[datetime | None] = mapped_column(nullable=True)

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    @property
    def case_number(self) -> str:
        return format_case_number(CaseType.APPEAL, self.number)

    def to_dto(self):
        """Convert ORM model to frozen dataclass."""
        from conflict_modules.appeals.models import Appeal, AppealSeverity, AppealStatus

        return Appeal(
            id=self.id,
            number=self.number,
            case_number=self.case_number,
            appointment_id=self.appointment_id,
            appealer_id=self.appealer_id,
            appealer_type=ActorRole(self.appealer_type),
            category=self.category,
            severity=AppealSeverity(self.severity),
            description=self.description,
            status=AppealStatus(self.status),
            priority=Priority(self.priority),
            submitted_at=self.submitted_at,
            sla_deadline=self.sla_deadline,
            contesting_items=dict(self.contesting_items or {}),
            requested_relief=self.requested_relief,
            original_penalty_amount=self.original_penalty_amount,
            original_refund_withheld=self.original_refund_withheld,
            supporting_documents=tuple(self.supporting_documents or ()),
            assigned_to=self.assigned_to,
            assigned_at=self.assigned_at,
            reviewed_by=self.reviewed_by,
            reviewed_at=self.reviewed_at,
            resolution=self.resolution,
            resolution_notes=self.resolution_notes,
            escalated_at=self.escalated_at,
            escalation_reason=self.escalation_reason,
            closed_at=self.closed_at,
            notes=self.notes,
        )

    def __repr__(self) -> str:
        return f"<AppealModel {self.case_number} {self.status}>"
