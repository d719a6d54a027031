"""
Appeal Selectors (``conflict_modules.appeals.selectors``).

Read-only queries over ``AppealModel``.  Returns ORM rows to the owning
service (which converts them) and DTOs to everyone else.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from conflict_kernel.domain.scrutiny import AppealHistoryItem, AppealOutcome
from conflict_kernel.selectors.base import BaseSelector
from conflict_modules.appeals.models import (
    OPEN_STATUSES,
    SLA_TRACKED_STATUSES,
    Appeal,
    AppealStatus,
)
from conflict_modules.appeals.orm import AppealModel

_OUTCOMES: dict[str, AppealOutcome] = {
    AppealStatus.APPROVED.value: AppealOutcome.APPROVED,
    AppealStatus.PARTIALLY_APPROVED.value: AppealOutcome.APPROVED,
    AppealStatus.DENIED.value: AppealOutcome.DENIED,
}


def _values(statuses: Iterable[AppealStatus]) -> list[str]:
    return [s.value for s in statuses]


class AppealSelector(BaseSelector[AppealModel]):
    def __init__(self, session: Session):
        super().__init__(session)

    def get_model(self, appeal_id: UUID) -> AppealModel | None:
        return self.session.get(AppealModel, appeal_id)

    def get(self, appeal_id: UUID) -> Appeal | None:
        model = self.get_model(appeal_id)
        return model.to_dto() if model is not None else None

    def get_by_number(self, number: int) -> Appeal | None:
        model = self.session.execute(
            select(AppealModel).where(AppealModel.number == number)
        ).scalar_one_or_none()
        return model.to_dto() if model is not None else None

    def open_for_appointment(self, appointment_id: UUID) -> AppealModel | None:
        return self.session.execute(
            select(AppealModel).where(
                AppealModel.appointment_id == appointment_id,
                AppealModel.status.in_(_values(OPEN_STATUSES)),
            )
        ).scalars().first()

    def for_appealer(self, appealer_id: UUID) -> list[Appeal]:
        """Newest first."""
        rows = self.session.execute(
            select(AppealModel)
            .where(AppealModel.appealer_id == appealer_id)
            .order_by(AppealModel.submitted_at.desc())
        ).scalars().all()
        return [r.to_dto() for r in rows]

    def history_for(self, appealer_id: UUID) -> list[AppealHistoryItem]:
        rows = self.session.execute(
            select(AppealModel.submitted_at, AppealModel.category, AppealModel.status)
            .where(AppealModel.appealer_id == appealer_id)
            .order_by(AppealModel.submitted_at)
        ).all()
        return [
            AppealHistoryItem(
                submitted_at=submitted_at,
                category=category,
                outcome=_OUTCOMES.get(status, AppealOutcome.PENDING),
            )
            for submitted_at, category, status in rows
        ]

    def list_cases(
        self,
        statuses: Iterable[AppealStatus] | None = None,
        priority: str | None = None,
        assigned_to: UUID | None = None,
    ) -> list[Appeal]:
        """Appeals filtered by status set (default: open), priority and assignee."""
        stmt = select(AppealModel).where(
            AppealModel.status.in_(_values(statuses if statuses is not None else OPEN_STATUSES))
        )
        if priority is not None:
            stmt = stmt.where(AppealModel.priority == priority)
        if assigned_to is not None:
            stmt = stmt.where(AppealModel.assigned_to == assigned_to)
        stmt = stmt.order_by(AppealModel.sla_deadline, AppealModel.submitted_at)
        return [r.to_dto() for r in self.session.execute(stmt).scalars().all()]

    def workload(self, assignee_id: UUID, statuses: Iterable[AppealStatus]) -> int:
        return self.session.execute(
            select(func.count(AppealModel.id)).where(
                AppealModel.assigned_to == assignee_id,
                AppealModel.status.in_(_values(statuses)),
            )
        ).scalar_one()

    def sla_breaches(self, now: datetime) -> list[Appeal]:
        rows = self.session.execute(
            select(AppealModel)
            .where(
                AppealModel.status.in_(_values(SLA_TRACKED_STATUSES)),
                AppealModel.sla_deadline < now,
            )
            .order_by(AppealModel.sla_deadline)
        ).scalars().all()
        return [r.to_dto() for r in rows]

    def count_by_status(self) -> dict[str, int]:
        rows = self.session.execute(
            select(AppealModel.status, func.count(AppealModel.id)).group_by(AppealModel.status)
        ).all()
        return {status: count for status, count in rows}

    def count_open_by_priority(self) -> dict[str, int]:
        rows = self.session.execute(
            select(AppealModel.priority, func.count(AppealModel.id))
            .where(AppealModel.status.in_(_values(OPEN_STATUSES)))
            .group_by(AppealModel.priority)
        ).all()
        return {priority: count for priority, count in rows}

    def count_resolved_since(self, since: datetime) -> int:
        return self.session.execute(
            select(func.count(AppealModel.id)).where(
                AppealModel.closed_at.is_not(None),
                AppealModel.closed_at >= since,
            )
        ).scalar_one()
