"""
Adjustment Workflow Service (``conflict_modules.adjustments.service``).

Responsibility
--------------
Home-size adjustment requests: a cleaner opens one, the homeowner accepts
or rejects within the response window, and the owner settles rejected
(or unanswered) requests.  Approved price changes are recorded in the
ledger as an ``adjustment_charge`` or ``adjustment_refund``.

Architecture position
---------------------
**Modules layer**.  Composes the kernel ``Ledger``, ``SequenceService`` and
``UnitOfWork``.  Does not call the payment gateway; collecting or refunding
the difference belongs to the billing flow.

Invariants enforced
-------------------
* Terminal cases raise ``ClosedAdjustmentError`` on every mutation.
* The homeowner can no longer respond once the case has expired; the
  owner still can.
* One ``adjustment_resolved`` audit record per resolution, carrying the
  previous and new state.
"""

from __future__ import annotations

from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from conflict_config import ConflictPolicy
from conflict_kernel.domain.audit import AuditEventType, AuditRecord
from conflict_kernel.domain.clock import Clock, SystemClock
from conflict_kernel.domain.ports import AppointmentStore, NotificationHook, UserStore
from conflict_kernel.domain.values import STAFF_ROLES, Actor, CaseType
from conflict_kernel.exceptions import (
    AdjustmentExpiredError,
    AdjustmentNotFoundError,
    AppointmentNotFoundError,
    ClosedAdjustmentError,
    EmptyNoteError,
    InvalidAmountError,
    InvalidAssigneeError,
    InvalidDecisionError,
    InvalidTransitionError,
)
from conflict_kernel.logging_config import get_logger
from conflict_kernel.services.audit_log import AuditLog
from conflict_kernel.services.ledger_service import Ledger
from conflict_kernel.services.sequence_service import SequenceService
from conflict_kernel.services.unit_of_work import UnitOfWork
from conflict_modules.adjustments.models import (
    APPROVED_STATUSES,
    PENDING_STATUSES,
    AdjustmentCase,
    AdjustmentDecision,
    AdjustmentStats,
    AdjustmentStatus,
    HomeSize,
)
from conflict_modules.adjustments.orm import AdjustmentModel
from conflict_modules.adjustments.selectors import AdjustmentSelector
from conflict_modules.adjustments.workflows import ADJUSTMENT_WORKFLOW

logger = get_logger("modules.adjustments.service")


def _snapshot(model: AdjustmentModel) -> dict[str, Any]:
    return {
        "status": model.status,
        "assigned_to": str(model.assigned_to) if model.assigned_to else None,
    }


class AdjustmentWorkflow:
    """
    Orchestrates home-size adjustment requests.

    Mutating methods return the committed ``AdjustmentCase`` snapshot.
    """

    def __init__(
        self,
        session: Session,
        appointments: AppointmentStore,
        users: UserStore,
        audit_log: AuditLog,
        notifier: NotificationHook | None = None,
        clock: Clock | None = None,
        policy: ConflictPolicy | None = None,
    ):
        self._session = session
        self._appointments = appointments
        self._users = users
        self._audit_log = audit_log
        self._notifier = notifier
        self._clock = clock or SystemClock()
        self._policy = policy or ConflictPolicy()

        self._selector = AdjustmentSelector(session)
        self._sequences = SequenceService(session)
        self._ledger = Ledger(
            session, self._clock, self._policy.ledger.form_1099_threshold
        )

    def _unit_of_work(self) -> UnitOfWork:
        return UnitOfWork(self._session, self._audit_log, self._notifier)

    def _load(self, case_id: UUID) -> AdjustmentModel:
        model = self._selector.get_model(case_id)
        if model is None:
            raise AdjustmentNotFoundError(str(case_id))
        return model

    def _load_open(self, case_id: UUID) -> AdjustmentModel:
        model = self._load(case_id)
        if ADJUSTMENT_WORKFLOW.is_terminal(model.status):
            raise ClosedAdjustmentError(str(case_id), model.status)
        return model

    def _record(
        self,
        uow: UnitOfWork,
        event_type: AuditEventType,
        model: AdjustmentModel,
        actor: Actor | None,
        event_data: dict[str, Any] | None = None,
        previous_state: dict[str, Any] | None = None,
        new_state: dict[str, Any] | None = None,
        request_id: str | None = None,
    ) -> None:
        uow.record(AuditRecord(
            event_type=event_type,
            occurred_at=self._clock.now(),
            actor=actor,
            appointment_id=model.appointment_id,
            adjustment_id=model.id,
            event_data={
                "case_type": CaseType.ADJUSTMENT.value,
                "case_number": model.case_number,
                **(event_data or {}),
            },
            previous_state=previous_state,
            new_state=new_state,
            request_id=request_id,
        ))

    def _record_price_change(self, model: AdjustmentModel, actor: Actor) -> None:
        self._ledger.record_adjustment(
            appointment_id=model.appointment_id,
            adjustment_id=model.id,
            homeowner_id=model.homeowner_id,
            price_difference=model.price_difference,
            actor_id=actor.id,
        )

    # =========================================================================
    # Commands
    # =========================================================================

    def open(
        self,
        appointment_id: UUID,
        cleaner: Actor,
        homeowner_id: UUID,
        original_size: HomeSize,
        reported_size: HomeSize,
        original_price: int,
        new_price: int,
        cleaner_note: str | None = None,
        request_id: str | None = None,
    ) -> AdjustmentCase:
        """
        Open a request awaiting the homeowner's response.

        Raises:
            InvalidAmountError: negative price.
            AppointmentNotFoundError: unknown appointment.
        """
        for price in (original_price, new_price):
            if not isinstance(price, int) or price < 0:
                raise InvalidAmountError(price)

        now = self._clock.now()
        with self._unit_of_work() as uow:
            if self._appointments.get(appointment_id) is None:
                raise AppointmentNotFoundError(str(appointment_id))

            model = AdjustmentModel(
                number=self._sequences.next_value(SequenceService.ADJUSTMENT_CASE),
                appointment_id=appointment_id,
                cleaner_id=cleaner.id,
                homeowner_id=homeowner_id,
                original_beds=original_size.beds,
                original_baths=original_size.baths,
                reported_beds=reported_size.beds,
                reported_baths=reported_size.baths,
                original_price=original_price,
                new_price=new_price,
                price_difference=new_price - original_price,
                status=AdjustmentStatus.PENDING_HOMEOWNER.value,
                opened_at=now,
                expires_at=now + self._policy.adjustments.response_window,
                cleaner_note=cleaner_note,
                created_by_id=cleaner.id,
            )
            self._session.add(model)
            self._session.flush()

            self._record(
                uow,
                AuditEventType.ADJUSTMENT_OPENED,
                model,
                cleaner,
                event_data={
                    "original_size": str(original_size),
                    "reported_size": str(reported_size),
                    "price_difference": model.price_difference,
                },
                new_state=_snapshot(model),
                request_id=request_id,
            )
            uow.notify(homeowner_id, "adjustment_opened", {
                "adjustment_id": str(model.id),
                "case_number": model.case_number,
                "expires_at": model.expires_at.isoformat(),
            })
            case = model.to_dto()

        logger.info(
            "adjustment_opened",
            extra={
                "adjustment_id": case.id,
                "case_number": case.case_number,
                "price_difference": case.price_difference,
            },
        )
        return case

    def homeowner_respond(
        self,
        case_id: UUID,
        accept: bool,
        homeowner: Actor,
        response: str | None = None,
        request_id: str | None = None,
    ) -> AdjustmentCase:
        """
        Accept (``approved``) or reject (``pending_owner``) the new price.

        Raises:
            ClosedAdjustmentError: case already terminal.
            InvalidTransitionError: case is not waiting on the homeowner.
            AdjustmentExpiredError: response window has passed.
        """
        target = AdjustmentStatus.APPROVED if accept else AdjustmentStatus.PENDING_OWNER
        with self._unit_of_work() as uow:
            model = self._load_open(case_id)
            if model.status != AdjustmentStatus.PENDING_HOMEOWNER.value:
                raise InvalidTransitionError(
                    ADJUSTMENT_WORKFLOW.name, model.status, target.value
                )
            now = self._clock.now()
            if now > model.expires_at:
                raise AdjustmentExpiredError(str(case_id), model.expires_at)
            ADJUSTMENT_WORKFLOW.require(model.status, target.value)

            previous = _snapshot(model)
            model.status = target.value
            model.homeowner_response = response
            model.homeowner_responded_at = now
            model.updated_by_id = homeowner.id
            self._session.flush()
            if accept:
                self._record_price_change(model, homeowner)

            self._record(
                uow,
                AuditEventType.ADJUSTMENT_HOMEOWNER_RESPONDED,
                model,
                homeowner,
                event_data={"accepted": accept, "response": response},
                previous_state=previous,
                new_state=_snapshot(model),
                request_id=request_id,
            )
            uow.notify(model.cleaner_id, "adjustment_homeowner_responded", {
                "adjustment_id": str(model.id),
                "accepted": accept,
            })
            case = model.to_dto()

        logger.info(
            "adjustment_homeowner_responded",
            extra={"adjustment_id": case_id, "accepted": accept, "status": case.status.value},
        )
        return case

    def assign(
        self,
        case_id: UUID,
        assignee_id: UUID,
        assigner: Actor,
        request_id: str | None = None,
    ) -> AdjustmentCase:
        with self._unit_of_work() as uow:
            model = self._load_open(case_id)
            assignee = self._users.get(assignee_id)
            if assignee is None or assignee.role not in STAFF_ROLES:
                raise InvalidAssigneeError(
                    str(assignee_id), assignee.role.value if assignee else None
                )
            previous = _snapshot(model)
            model.assigned_to = assignee_id
            model.updated_by_id = assigner.id
            self._session.flush()
            self._record(
                uow,
                AuditEventType.ADJUSTMENT_ASSIGNED,
                model,
                assigner,
                event_data={"assignee_id": str(assignee_id), "assignee_name": assignee.full_name},
                previous_state=previous,
                new_state=_snapshot(model),
                request_id=request_id,
            )
            return model.to_dto()

    def resolve(
        self,
        case_id: UUID,
        decision: AdjustmentDecision | str,
        owner: Actor,
        notes: str | None = None,
        request_id: str | None = None,
    ) -> AdjustmentCase:
        """
        Owner decision: ``owner_approved`` or ``owner_denied``.

        Allowed from either pending status, including past expiry.

        Raises:
            InvalidDecisionError, AdjustmentNotFoundError, ClosedAdjustmentError.
        """
        try:
            decision_enum = AdjustmentDecision(decision)
        except ValueError:
            raise InvalidDecisionError(
                str(decision), tuple(d.value for d in AdjustmentDecision)
            ) from None
        target = decision_enum.status

        with self._unit_of_work() as uow:
            model = self._load_open(case_id)
            ADJUSTMENT_WORKFLOW.require(model.status, target.value)

            previous = _snapshot(model)
            now = self._clock.now()
            model.status = target.value
            model.owner_note = notes
            model.owner_id = owner.id
            model.owner_resolved_at = now
            model.updated_by_id = owner.id
            self._session.flush()
            if target in APPROVED_STATUSES:
                self._record_price_change(model, owner)

            self._record(
                uow,
                AuditEventType.ADJUSTMENT_RESOLVED,
                model,
                owner,
                event_data={"decision": decision_enum.value, "notes": notes},
                previous_state=previous,
                new_state=_snapshot(model),
                request_id=request_id,
            )
            for party in (model.cleaner_id, model.homeowner_id):
                uow.notify(party, "adjustment_resolved", {
                    "adjustment_id": str(model.id),
                    "case_number": model.case_number,
                    "decision": decision_enum.value,
                })
            case = model.to_dto()

        logger.info(
            "adjustment_resolved",
            extra={
                "adjustment_id": case_id,
                "from_status": previous["status"],
                "to_status": target.value,
            },
        )
        return case

    def add_note(
        self,
        case_id: UUID,
        note: str,
        actor: Actor,
        request_id: str | None = None,
    ) -> AdjustmentCase:
        """Append a timestamped internal note."""
        if not note or not note.strip():
            raise EmptyNoteError()
        with self._unit_of_work() as uow:
            model = self._load(case_id)
            now = self._clock.now()
            line = f"[{now:%Y-%m-%d %H:%M}] {note.strip()}"
            model.notes = f"{model.notes}\n{line}" if model.notes else line
            model.updated_by_id = actor.id
            self._session.flush()
            self._record(
                uow,
                AuditEventType.NOTE_ADDED,
                model,
                actor,
                event_data={"note": note.strip()},
                request_id=request_id,
            )
            return model.to_dto()

    # =========================================================================
    # Reads
    # =========================================================================

    def get(self, case_id: UUID) -> AdjustmentCase:
        case = self._selector.get(case_id)
        if case is None:
            raise AdjustmentNotFoundError(str(case_id))
        return case

    def get_by_number(self, number: int) -> AdjustmentCase:
        case = self._selector.get_by_number(number)
        if case is None:
            raise AdjustmentNotFoundError(str(number))
        return case

    def for_appointment(self, appointment_id: UUID) -> list[AdjustmentCase]:
        """Every adjustment opened on the appointment, oldest first."""
        return self._selector.for_appointment(appointment_id)

    def effective_status(self, case_id: UUID) -> AdjustmentStatus:
        return self.get(case_id).effective_status(self._clock.now())

    def get_stats(self) -> AdjustmentStats:
        by_status = self._selector.count_by_status()
        return AdjustmentStats(
            pending=sum(by_status.get(s.value, 0) for s in PENDING_STATUSES),
            past_expiry=len(self._selector.past_expiry(self._clock.now())),
            by_status=by_status,
        )
