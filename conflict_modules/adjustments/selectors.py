"""Read-only queries over ``AdjustmentModel``."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from conflict_kernel.selectors.base import BaseSelector
from conflict_modules.adjustments.models import (
    PENDING_STATUSES,
    AdjustmentCase,
    AdjustmentStatus,
)
from conflict_modules.adjustments.orm import AdjustmentModel


def _values(statuses: Iterable[AdjustmentStatus]) -> list[str]:
    return [s.value for s in statuses]


class AdjustmentSelector(BaseSelector[AdjustmentModel]):
    def __init__(self, session: Session):
        super().__init__(session)

    def get_model(self, case_id: UUID) -> AdjustmentModel | None:
        return self.session.get(AdjustmentModel, case_id)

    def get(self, case_id: UUID) -> AdjustmentCase | None:
        model = self.get_model(case_id)
        return model.to_dto() if model is not None else None

    def get_by_number(self, number: int) -> AdjustmentCase | None:
        model = self.session.execute(
            select(AdjustmentModel).where(AdjustmentModel.number == number)
        ).scalar_one_or_none()
        return model.to_dto() if model is not None else None

    def for_appointment(self, appointment_id: UUID) -> list[AdjustmentCase]:
        rows = self.session.execute(
            select(AdjustmentModel)
            .where(AdjustmentModel.appointment_id == appointment_id)
            .order_by(AdjustmentModel.opened_at, AdjustmentModel.number)
        ).scalars().all()
        return [r.to_dto() for r in rows]

    def list_cases(
        self,
        statuses: Iterable[AdjustmentStatus] | None = None,
        assigned_to: UUID | None = None,
    ) -> list[AdjustmentCase]:
        """Adjustments filtered by status set (default: pending) and assignee."""
        stmt = select(AdjustmentModel).where(
            AdjustmentModel.status.in_(
                _values(statuses if statuses is not None else PENDING_STATUSES)
            )
        )
        if assigned_to is not None:
            stmt = stmt.where(AdjustmentModel.assigned_to == assigned_to)
        stmt = stmt.order_by(AdjustmentModel.expires_at, AdjustmentModel.opened_at)
        return [r.to_dto() for r in self.session.execute(stmt).scalars().all()]

    def past_expiry(self, now: datetime) -> list[AdjustmentCase]:
        rows = self.session.execute(
            select(AdjustmentModel)
            .where(
                AdjustmentModel.status.in_(_values(PENDING_STATUSES)),
                AdjustmentModel.expires_at < now,
            )
            .order_by(AdjustmentModel.expires_at)
        ).scalars().all()
        return [r.to_dto() for r in rows]

    def count_by_status(self) -> dict[str, int]:
        rows = self.session.execute(
            select(AdjustmentModel.status, func.count(AdjustmentModel.id))
            .group_by(AdjustmentModel.status)
        ).all()
        return {status: count for status, count in rows}
