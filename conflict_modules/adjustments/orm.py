"""
Adjustment ORM Models (``conflict_modules.adjustments.orm``).

Responsibility
--------------
SQLAlchemy persistence for home-size adjustment requests.  Maps to the
frozen ``AdjustmentCase`` dataclass in ``models.py``.

Architecture position
---------------------
**Modules layer** -- persistence.  MUST NOT be imported by
``conflict_kernel``.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from conflict_kernel.db.base import TrackedBase
from conflict_kernel.domain.values import CaseType, format_case_number


class AdjustmentModel(TrackedBase):
    """ORM model for home-size adjustment requests."""

    __tablename__ = "adjustment_requests"

    __table_args__ = (
        UniqueConstraint("number", name="uq_adjustment_requests_number"),
        Index("idx_adjustments_appointment", "appointment_id"),
        Index("idx_adjustments_status", "status"),
        Index("idx_adjustments_expires", "expires_at"),
    )

    number: Mapped[int] = mapped_column(nullable=False)
    appointment_id: Mapped[UUID] = mapped_column(nullable=False)
    cleaner_id: Mapped[UUID] = mapped_column(nullable=False)
    homeowner_id: Mapped[UUID] = mapped_column(nullable=False)
    assigned_to: Mapped[UUID | None] = mapped_column(nullable=True)

    original_beds: Mapped[str] = mapped_column(String(10), nullable=False)
    original_baths: Mapped[str] = mapped_column(String(10), nullable=False)
    reported_beds: Mapped[str] = mapped_column(String(10), nullable=False)
    reported_baths: Mapped[str] = mapped_column(String(10), nullable=False)

    original_price: Mapped[int] = mapped_column(nullable=False)
    new_price: Mapped[int] = mapped_column(nullable=False)
    price_difference: Mapped[int] = mapped_column(nullable=False)

    status: Mapped[str] = mapped_column(String(30), nullable=False, default="pending_homeowner")
    opened_at: Mapped[datetime] = mapped_column(nullable=False)
    expires_at: Mapped[datetime] = mapped_column(nullable=False)

    cleaner_note: Mapped[str | None] = mapped_column(Text, nullable=True)
    homeowner_response: Mapped[str | None] = mapped_column(Text, nullable=True)
    homeowner_responded_at: Mapped[datetime | None] = mapped_column(nullable=True)

    owner_note: Mapped[str | None] = mapped_column(Text, nullable=True)
    owner_id: Mapped[UUID | None] = mapped_column(nullable=True)
    owner_resolved_at: Mapped[datetime | None] = mapped_column(nullable=True)

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    @property
    def case_number(self) -> str:
        return format_case_number(CaseType.ADJUSTMENT, self.number)

    def to_dto(self):
        """Convert ORM model to frozen dataclass."""
        from conflict_modules.adjustments.models import (
            AdjustmentCase,
            AdjustmentStatus,
            HomeSize,
        )

        return AdjustmentCase(
            id=self.id,
            number=self.number,
            case_number=self.case_number,
            appointment_id=self.appointment_id,
            cleaner_id=self.cleaner_id,
            homeowner_id=self.homeowner_id,
            original_size=HomeSize(self.original_beds, self.original_baths),
            reported_size=HomeSize(self.reported_beds, self.reported_baths),
            original_price=self.original_price,
            new_price=self.new_price,
            price_difference=self.price_difference,
            status=AdjustmentStatus(self.status),
            expires_at=self.expires_at,
            opened_at=self.opened_at,
            assigned_to=self.assigned_to,
            cleaner_note=self.cleaner_note,
            homeowner_response=self.homeowner_response,
            homeowner_responded_at=self.homeowner_responded_at,
            owner_note=self.owner_note,
            owner_id=self.owner_id,
            owner_resolved_at=self.owner_resolved_at,
            notes=self.notes,
        )

    def __repr__(self) -> str:
        return f"<AdjustmentModel {self.case_number} {self.status}>"
