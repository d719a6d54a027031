"""
ConflictQueue -- the unified review queue over appeals and adjustments.

Responsibility:
    Normalize both case types into one ``QueueCase`` shape, filter, search,
    sort and paginate them, and aggregate dashboard stats.  Read-only.

Architecture position:
    Services layer.  Reads through the appeal and adjustment workflows,
    the UserStore port and the kernel AuditSelector.

Invariants enforced:
    - Sort order is priority rank, then past-SLA first, then ascending
      SLA deadline; cases without a deadline sort last.
    - Search runs over the full merged set before pagination.
    - A case-type filter reads only that source.
"""

from __future__ import annotations

import math
import re
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, assert_never
from uuid import UUID

from sqlalchemy.orm import Session

from conflict_config import ConflictPolicy
from conflict_kernel.domain.clock import Clock, SystemClock
from conflict_kernel.domain.ports import UserSnapshot, UserStore
from conflict_kernel.domain.values import (
    ActorRole,
    CaseType,
    Priority,
    parse_case_number,
)
from conflict_kernel.logging_config import get_logger
from conflict_kernel.selectors.audit_selector import AuditSelector, AuditTraceEntry
from conflict_modules.adjustments import AdjustmentCase, AdjustmentWorkflow
from conflict_modules.adjustments.models import (
    DEFAULT_DESCRIPTION,
    PENDING_STATUSES as ADJUSTMENT_PENDING,
    AdjustmentStatus,
    statuses_for_filter,
)
from conflict_modules.adjustments.selectors import AdjustmentSelector
from conflict_modules.appeals import Appeal, AppealStatus, AppealWorkflow
from conflict_modules.appeals.models import OPEN_STATUSES as APPEAL_OPEN
from conflict_modules.appeals.selectors import AppealSelector

logger = get_logger("services.conflict_queue")

Case = Appeal | AdjustmentCase

_FAR_FUTURE = datetime.max.replace(tzinfo=timezone.utc)
_NON_DIGITS = re.compile(r"\D")
MIN_PHONE_DIGITS = 4


@dataclass(frozen=True)
class QueueParty:
    id: UUID
    role: str
    name: str | None = None
    email: str | None = None
    phone: str | None = None


@dataclass(frozen=True)
class QueueCase:
    id: UUID
    case_type: CaseType
    case_number: str
    status: str
    priority: Priority
    sla_deadline: datetime | None
    is_past_sla: bool
    time_until_sla: int | None
    description: str
    appointment_id: UUID
    created_at: datetime
    assigned_to: UUID | None
    parties: tuple[QueueParty, ...]
    financial_impact: dict[str, int] = field(default_factory=dict)

    def sort_key(self) -> tuple[int, int, datetime]:
        return (
            self.priority.rank,
            0 if self.is_past_sla else 1,
            self.sla_deadline or _FAR_FUTURE,
        )


@dataclass(frozen=True)
class QueuePage:
    cases: tuple[QueueCase, ...]
    total: int
    limit: int
    offset: int


@dataclass(frozen=True)
class AppealQueueStats:
    pending: int
    past_sla: int
    urgent: int
    resolved_this_week: int


@dataclass(frozen=True)
class AdjustmentQueueStats:
    pending: int
    past_expiry: int


@dataclass(frozen=True)
class QueueStats:
    total_pending: int
    appeals: AppealQueueStats
    adjustments: AdjustmentQueueStats
    sla_breach_count: int
    total_overdue: int
    total_urgent: int


def _party(user_id: UUID, role: ActorRole, users: Callable[[UUID], UserSnapshot | None]) -> QueueParty:
    user = users(user_id)
    if user is None:
        return QueueParty(id=user_id, role=role.value)
    return QueueParty(
        id=user_id,
        role=role.value,
        name=user.full_name or None,
        email=user.email,
        phone=user.phone,
    )


def _seconds_until(deadline: datetime | None, now: datetime) -> int | None:
    if deadline is None:
        return None
    return max(0, math.floor((deadline - now).total_seconds()))


def normalize_case(
    case: Case,
    now: datetime,
    users: Callable[[UUID], UserSnapshot | None],
) -> QueueCase:
    """Project an appeal or adjustment onto the common queue shape."""
    match case:
        case Appeal():
            past_sla = case.is_open and now > case.sla_deadline
            return QueueCase(
                id=case.id,
                case_type=CaseType.APPEAL,
                case_number=case.case_number,
                status=case.status.value,
                priority=case.priority,
                sla_deadline=case.sla_deadline,
                is_past_sla=past_sla,
                time_until_sla=_seconds_until(case.sla_deadline, now),
                description=case.description,
                appointment_id=case.appointment_id,
                created_at=case.submitted_at,
                assigned_to=case.assigned_to,
                parties=(_party(case.appealer_id, case.appealer_type, users),),
                financial_impact={
                    "penalty_amount": case.original_penalty_amount,
                    "refund_withheld": case.original_refund_withheld,
                },
            )
        case AdjustmentCase():
            past_expiry = case.is_past_expiry(now)
            return QueueCase(
                id=case.id,
                case_type=CaseType.ADJUSTMENT,
                case_number=case.case_number,
                status=case.status.value,
                priority=Priority.URGENT if past_expiry else Priority.NORMAL,
                sla_deadline=case.expires_at,
                is_past_sla=past_expiry,
                time_until_sla=_seconds_until(case.expires_at, now),
                description=case.cleaner_note or DEFAULT_DESCRIPTION,
                appointment_id=case.appointment_id,
                created_at=case.opened_at,
                assigned_to=case.assigned_to,
                parties=(
                    _party(case.cleaner_id, ActorRole.CLEANER, users),
                    _party(case.homeowner_id, ActorRole.HOMEOWNER, users),
                ),
                financial_impact={
                    "original_price": case.original_price,
                    "new_price": case.new_price,
                    "price_difference": case.price_difference,
                },
            )
        case _:
            assert_never(case)


def matches_search(case: QueueCase, query: str) -> bool:
    """
    Case-insensitive match over case number, description and party
    name/email; phone by digits when the query has enough of them; party
    id exactly.
    """
    needle = query.strip().lower()
    if not needle:
        return True
    if needle in case.case_number.lower() or needle in case.description.lower():
        return True
    digits = _NON_DIGITS.sub("", needle)
    for party in case.parties:
        if str(party.id) == needle:
            return True
        if party.name and needle in party.name.lower():
            return True
        if party.email and needle in party.email.lower():
            return True
        if (
            party.phone
            and len(digits) >= MIN_PHONE_DIGITS
            and digits in _NON_DIGITS.sub("", party.phone)
        ):
            return True
    return False


class ConflictQueue:
    def __init__(
        self,
        session: Session,
        appeals: AppealWorkflow,
        adjustments: AdjustmentWorkflow,
        users: UserStore,
        clock: Clock | None = None,
        policy: ConflictPolicy | None = None,
    ):
        self._appeals = appeals
        self._adjustments = adjustments
        self._users = users
        self._clock = clock or SystemClock()
        self._policy = policy or ConflictPolicy()
        self._appeal_selector = AppealSelector(session)
        self._adjustment_selector = AdjustmentSelector(session)
        self._audit_selector = AuditSelector(session)

    def _user_lookup(self, cases: list[Case]) -> Callable[[UUID], UserSnapshot | None]:
        """One batched read for every party on the given cases."""
        ids: set[UUID] = set()
        for case in cases:
            if isinstance(case, Appeal):
                ids.add(case.appealer_id)
            else:
                ids.update((case.cleaner_id, case.homeowner_id))
        return self._users.get_many(sorted(ids, key=str)).get

    def _appeal_statuses(self, status: str | None, include_resolved: bool) -> list[AppealStatus]:
        if status is not None:
            try:
                return [AppealStatus(status)]
            except ValueError:
                return []
        return list(AppealStatus) if include_resolved else list(APPEAL_OPEN)

    def _adjustment_statuses(
        self, status: str | None, include_resolved: bool
    ) -> list[AdjustmentStatus]:
        if status is not None:
            return list(statuses_for_filter(status))
        return list(AdjustmentStatus) if include_resolved else list(ADJUSTMENT_PENDING)

    def _collect(
        self,
        case_type: CaseType | None,
        status: str | None,
        assigned_to: UUID | None,
        include_resolved: bool,
    ) -> list[Case]:
        cases: list[Case] = []
        if case_type in (None, CaseType.APPEAL):
            statuses = self._appeal_statuses(status, include_resolved)
            if statuses:
                cases.extend(self._appeal_selector.list_cases(statuses, assigned_to=assigned_to))
        if case_type in (None, CaseType.ADJUSTMENT):
            statuses = self._adjustment_statuses(status, include_resolved)
            if statuses:
                cases.extend(self._adjustment_selector.list_cases(statuses, assigned_to=assigned_to))
        return cases

    def get(
        self,
        case_type: CaseType | str | None = None,
        status: str | None = None,
        priority: Priority | str | None = None,
        assigned_to: UUID | None = None,
        search: str | None = None,
        include_resolved: bool = False,
        limit: int = 50,
        offset: int = 0,
    ) -> QueuePage:
        case_type = CaseType(case_type) if case_type is not None else None
        priority = Priority(priority) if priority is not None else None
        now = self._clock.now()
        cases = self._collect(case_type, status, assigned_to, include_resolved)
        users = self._user_lookup(cases)

        normalized = [normalize_case(c, now, users) for c in cases]
        if priority is not None:
            normalized = [c for c in normalized if c.priority is priority]
        if search:
            normalized = [c for c in normalized if matches_search(c, search)]
        normalized.sort(key=QueueCase.sort_key)

        page = tuple(normalized[offset:offset + limit])
        logger.debug(
            "conflict_queue_read",
            extra={
                "case_type": case_type.value if case_type else None,
                "total": len(normalized),
                "returned": len(page),
            },
        )
        return QueuePage(cases=page, total=len(normalized), limit=limit, offset=offset)

    def _load(self, case_type: CaseType, case_id: UUID) -> Case:
        if case_type is CaseType.APPEAL:
            return self._appeals.get(case_id)
        return self._adjustments.get(case_id)

    def get_case(self, case_type: CaseType | str, case_id: UUID) -> QueueCase:
        case = self._load(CaseType(case_type), case_id)
        return normalize_case(case, self._clock.now(), self._user_lookup([case]))

    def lookup_by_case_number(self, case_number: str) -> QueueCase:
        """
        Resolve ``APL-000123`` / ``ADJ-000045``.

        Raises:
            InvalidCaseNumberError: malformed input.
            AppealNotFoundError / AdjustmentNotFoundError: no such case.
        """
        case_type, number = parse_case_number(case_number)
        if case_type is CaseType.APPEAL:
            case: Case = self._appeals.get_by_number(number)
        else:
            case = self._adjustments.get_by_number(number)
        return normalize_case(case, self._clock.now(), self._user_lookup([case]))

    def get_audit_trail(self, case_type: CaseType | str, case_id: UUID) -> list[AuditTraceEntry]:
        case_type = CaseType(case_type)
        self._load(case_type, case_id)
        ids: dict[str, Any] = (
            {"appeal_id": case_id} if case_type is CaseType.APPEAL else {"adjustment_id": case_id}
        )
        return self._audit_selector.trail(limit=self._policy.audit.trail_limit, **ids)

    def get_stats(self) -> QueueStats:
        appeal_stats = self._appeals.get_stats()
        adjustment_stats = self._adjustments.get_stats()
        appeals = AppealQueueStats(
            pending=appeal_stats.pending,
            past_sla=appeal_stats.past_sla,
            urgent=appeal_stats.by_priority.get(Priority.URGENT.value, 0),
            resolved_this_week=self._appeals.resolved_since(days=7),
        )
        adjustments = AdjustmentQueueStats(
            pending=adjustment_stats.pending,
            past_expiry=adjustment_stats.past_expiry,
        )
        overdue = appeals.past_sla + adjustments.past_expiry
        return QueueStats(
            total_pending=appeals.pending + adjustments.pending,
            appeals=appeals,
            adjustments=adjustments,
            sla_breach_count=appeals.past_sla,
            total_overdue=overdue,
            total_urgent=appeals.urgent + adjustments.past_expiry,
        )
