"""
Module: conflict_kernel.selectors.audit_selector
Responsibility: Read-only audit trail queries: the trail of one case or
    appointment and a filtered search across all events.
Architecture position: Kernel > Selectors.  May import from models/, domain/
    and selectors/base.py.

Invariants enforced:
    - Trails are ascending by occurrence (then sequence) and bounded.
    - Returned items are frozen DTOs; ORM rows never leave the selector.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import String, cast, func, or_, select
from sqlalchemy.orm import Session

from conflict_kernel.domain.audit import AuditEventType
from conflict_kernel.models.audit_event import AuditEvent
from conflict_kernel.selectors.base import BaseSelector

DEFAULT_TRAIL_LIMIT = 200


@dataclass(frozen=True)
class AuditTraceEntry:
    id: UUID
    seq: int
    event_type: str
    occurred_at: datetime
    actor_id: UUID | None
    actor_role: str | None
    appointment_id: UUID | None
    appeal_id: UUID | None
    adjustment_id: UUID | None
    event_data: dict[str, Any]
    previous_state: dict[str, Any] | None
    new_state: dict[str, Any] | None
    request_id: str | None

    @classmethod
    def from_event(cls, event: AuditEvent) -> AuditTraceEntry:
        return cls(
            id=event.id,
            seq=event.seq,
            event_type=event.event_type,
            occurred_at=event.occurred_at,
            actor_id=event.actor_id,
            actor_role=event.actor_role,
            appointment_id=event.appointment_id,
            appeal_id=event.appeal_id,
            adjustment_id=event.adjustment_id,
            event_data=dict(event.event_data or {}),
            previous_state=event.previous_state,
            new_state=event.new_state,
            request_id=event.request_id,
        )


class AuditSelector(BaseSelector[AuditEvent]):
    """Selector for audit events."""

    def __init__(self, session: Session):
        super().__init__(session)

    def trail(
        self,
        appointment_id: UUID | None = None,
        appeal_id: UUID | None = None,
        adjustment_id: UUID | None = None,
        limit: int = DEFAULT_TRAIL_LIMIT,
    ) -> list[AuditTraceEntry]:
        """
        Events for one subject, oldest first.

        At least one subject id is required.
        """
        if appointment_id is None and appeal_id is None and adjustment_id is None:
            raise ValueError("trail() needs an appointment, appeal or adjustment id")
        return self.search(
            appointment_id=appointment_id,
            appeal_id=appeal_id,
            adjustment_id=adjustment_id,
            limit=limit,
        )

    def search(
        self,
        appointment_id: UUID | None = None,
        appeal_id: UUID | None = None,
        adjustment_id: UUID | None = None,
        actor_id: UUID | None = None,
        event_types: tuple[AuditEventType, ...] = (),
        start: datetime | None = None,
        end: datetime | None = None,
        text: str | None = None,
        limit: int = DEFAULT_TRAIL_LIMIT,
        offset: int = 0,
    ) -> list[AuditTraceEntry]:
        """
        Filtered audit search.

        All filters combine with AND.  ``text`` matches case-insensitively
        against the event type and the serialized event data.
        """
        stmt = select(AuditEvent)
        if appointment_id is not None:
            stmt = stmt.where(AuditEvent.appointment_id == appointment_id)
        if appeal_id is not None:
            stmt = stmt.where(AuditEvent.appeal_id == appeal_id)
        if adjustment_id is not None:
            stmt = stmt.where(AuditEvent.adjustment_id == adjustment_id)
        if actor_id is not None:
            stmt = stmt.where(AuditEvent.actor_id == actor_id)
        if event_types:
            stmt = stmt.where(AuditEvent.event_type.in_([t.value for t in event_types]))
        if start is not None:
            stmt = stmt.where(AuditEvent.occurred_at >= start)
        if end is not None:
            stmt = stmt.where(AuditEvent.occurred_at <= end)
        if text:
            pattern = f"%{text.strip()}%"
            stmt = stmt.where(or_(
                AuditEvent.event_type.ilike(pattern),
                cast(AuditEvent.event_data, String).ilike(pattern),
            ))

        stmt = (
            stmt.order_by(AuditEvent.occurred_at, AuditEvent.seq)
            .limit(limit)
            .offset(offset)
        )
        events = self.session.execute(stmt).scalars().all()
        return [AuditTraceEntry.from_event(e) for e in events]

    def count(self) -> int:
        return self.session.execute(select(func.count(AuditEvent.id))).scalar_one()
