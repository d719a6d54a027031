"""
Appeal Workflow Service (``conflict_modules.appeals.service``).

Responsibility
--------------
Drives cancellation appeals through their lifecycle: submission with
window, duplicate and priority checks; reviewer assignment (manual or by
workload); status changes validated by ``APPEAL_WORKFLOW``; resolution
with refund, fee reversal and account unfreeze actions; scrutiny
recomputation of the appellant.

Architecture position
---------------------
**Modules layer**.  ``AppealWorkflow`` is the sole public entry point for
appeal mutations.  It composes the kernel ``Ledger``, ``SequenceService``,
``UnitOfWork`` and the ports for appointments, users, the payment gateway
and notifications.

Invariants enforced
-------------------
* Each public mutating method owns the transaction boundary through a
  ``UnitOfWork``: commit on success, rollback on any exception.
* Every transition is checked against ``APPEAL_WORKFLOW``.  Only
  ``resolve`` moves money; ``update_status`` into a terminal state just
  closes the appeal.
* At most one open appeal per appointment (read check plus the
  ``uq_appeals_open_appointment`` constraint).
* One audit record per submit / assign / status change / resolve,
  dispatched only after commit.

Failure modes
-------------
* Validation, not-found and state errors are raised before any write.
* Gateway failures during ``resolve`` do not abort the resolution: the
  status change commits and each failed monetary action is recorded as a
  ``*_failed`` audit event for manual follow-up.
* Within ``resolve`` every database step that can fail runs before the
  first gateway call, so a refund is never issued for a resolution that
  then rolls back.

Usage::

    workflow = AppealWorkflow(
        session, appointments, users, audit_log,
        gateway=gateway, notifier=notifier, clock=clock,
    )
    appeal = workflow.submit(appointment_id, actor, "medical_emergency", "...")
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import timedelta
from typing import Any
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from conflict_config import ConflictPolicy
from conflict_kernel.domain.audit import AuditEventType, AuditRecord
from conflict_kernel.domain.clock import Clock, SystemClock
from conflict_kernel.domain.ledger import PartyType
from conflict_kernel.domain.ports import (
    AppointmentSnapshot,
    AppointmentStore,
    NotificationHook,
    PaymentGateway,
    UserStore,
)
from conflict_kernel.domain.values import (
    STAFF_ROLES,
    Actor,
    ActorRole,
    CaseType,
    ScrutinyLevel,
)
from conflict_kernel.exceptions import (
    AppealNotFoundError,
    AppealWindowExpiredError,
    AppointmentNotFoundError,
    ClosedAppealError,
    DuplicateOpenAppealError,
    EmptyNoteError,
    ExternalGatewayError,
    InvalidAppealerError,
    InvalidAssigneeError,
    InvalidCategoryError,
    InvalidDecisionError,
    InvalidSeverityError,
    InvalidTransitionError,
    MissingPaymentReferenceError,
    MissingReasonError,
    NotCancelledError,
    RefundCeilingExceededError,
    UserNotFoundError,
)
from conflict_kernel.logging_config import get_logger
from conflict_kernel.services.audit_log import AuditLog
from conflict_kernel.services.gateway import call_gateway
from conflict_kernel.services.ledger_service import Ledger
from conflict_kernel.services.sequence_service import SequenceService
from conflict_kernel.services.unit_of_work import UnitOfWork
from conflict_kernel.utils.idempotency import generate_idempotency_key
from conflict_modules.appeals.models import (
    APPEALER_ROLES,
    CLOSED_STATUSES,
    OPEN_STATUSES,
    WORKLOAD_STATUSES,
    ActionOutcome,
    Appeal,
    AppealDashboardStats,
    AppealDecision,
    AppealResolution,
    AppealSeverity,
    AppealStatus,
    ResolutionActions,
    ResolutionActionType,
    UserAppealHistory,
    determine_priority,
)
from conflict_modules.appeals.orm import AppealModel
from conflict_modules.appeals.scrutiny import ScrutinyEngine
from conflict_modules.appeals.selectors import AppealSelector
from conflict_modules.appeals.workflows import APPEAL_WORKFLOW

logger = get_logger("modules.appeals.service")

SYSTEM_ACTOR = Actor(id=UUID(int=0), role=ActorRole.SYSTEM)


def _snapshot(model: AppealModel) -> dict[str, Any]:
    return {
        "status": model.status,
        "priority": model.priority,
        "assigned_to": str(model.assigned_to) if model.assigned_to else None,
    }


class AppealWorkflow:
    """
    Orchestrates cancellation appeals.

    Contract
    --------
    * Mutating methods return the committed ``Appeal`` snapshot (or an
      ``AppealResolution`` for ``resolve``).
    * Read methods never write.

    Guarantees
    ----------
    * ``sla_deadline`` is fixed at submission (submitted_at + SLA hours).
    * Clock is injectable for deterministic testing.
    """

    def __init__(
        self,
        session: Session,
        appointments: AppointmentStore,
        users: UserStore,
        audit_log: AuditLog,
        gateway: PaymentGateway | None = None,
        notifier: NotificationHook | None = None,
        clock: Clock | None = None,
        policy: ConflictPolicy | None = None,
    ):
        self._session = session
        self._appointments = appointments
        self._users = users
        self._audit_log = audit_log
        self._gateway = gateway
        self._notifier = notifier
        self._clock = clock or SystemClock()
        self._policy = policy or ConflictPolicy()

        self._selector = AppealSelector(session)
        self._sequences = SequenceService(session)
        self._ledger = Ledger(
            session, self._clock, self._policy.ledger.form_1099_threshold
        )
        self._scrutiny = ScrutinyEngine(
            session, users, self._clock, self._policy.scrutiny
        )

    def _unit_of_work(self) -> UnitOfWork:
        return UnitOfWork(self._session, self._audit_log, self._notifier)

    def _load(self, appeal_id: UUID) -> AppealModel:
        model = self._selector.get_model(appeal_id)
        if model is None:
            raise AppealNotFoundError(str(appeal_id))
        return model

    def _load_open(self, appeal_id: UUID, to_state: str | None = None) -> AppealModel:
        model = self._load(appeal_id)
        if AppealStatus(model.status) in CLOSED_STATUSES:
            raise ClosedAppealError(str(appeal_id), model.status, to_state)
        return model

    def _record(
        self,
        uow: UnitOfWork,
        event_type: AuditEventType,
        model: AppealModel,
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
            appeal_id=model.id,
            event_data={"case_number": model.case_number, **(event_data or {})},
            previous_state=previous_state,
            new_state=new_state,
            request_id=request_id,
        ))

    def _close(
        self,
        model: AppealModel,
        target: AppealStatus,
        reviewer: Actor,
        resolution: dict[str, Any],
        notes: str | None,
    ) -> None:
        now = self._clock.now()
        model.status = target.value
        model.reviewed_by = reviewer.id
        model.reviewed_at = now
        model.resolution = resolution
        model.resolution_notes = notes
        model.closed_at = now
        model.last_activity_at = now
        model.open_appointment_id = None
        model.updated_by_id = reviewer.id
        self._session.flush()
        self._appointments.set_active_appeal(model.appointment_id, None)

    # =========================================================================
    # Submission
    # =========================================================================

    def submit(
        self,
        appointment_id: UUID,
        appealer: Actor,
        category: str,
        description: str,
        severity: str = AppealSeverity.MEDIUM.value,
        contesting_items: Mapping[str, Any] | None = None,
        requested_relief: str | None = None,
        request_id: str | None = None,
    ) -> Appeal:
        """
        File an appeal against a cancellation.

        Raises:
            InvalidAppealerError, InvalidCategoryError, InvalidSeverityError,
            MissingReasonError: bad input.
            AppointmentNotFoundError: unknown appointment.
            NotCancelledError: the appointment was not cancelled.
            AppealWindowExpiredError: now is past the appeal deadline.
            DuplicateOpenAppealError: an open appeal already exists.
        """
        if appealer.role not in APPEALER_ROLES:
            raise InvalidAppealerError(appealer.role.value)
        categories = self._policy.appeals.categories
        if category not in categories:
            raise InvalidCategoryError(category, categories)
        try:
            severity_enum = AppealSeverity(severity)
        except ValueError:
            raise InvalidSeverityError(
                severity, tuple(s.value for s in AppealSeverity)
            ) from None
        if not description or not description.strip():
            raise MissingReasonError("description")

        now = self._clock.now()
        logger.info(
            "appeal_submit_started",
            extra={
                "appointment_id": appointment_id,
                "appealer_id": appealer.id,
                "category": category,
                "severity": severity_enum.value,
            },
        )

        with self._unit_of_work() as uow:
            appointment = self._appointments.get(appointment_id)
            if appointment is None:
                raise AppointmentNotFoundError(str(appointment_id))
            if not appointment.is_cancelled:
                raise NotCancelledError(str(appointment_id))
            deadline = appointment.appeal_deadline(self._policy.appeals.window)
            if deadline is not None and now > deadline:
                raise AppealWindowExpiredError(str(appointment_id), deadline)

            existing = self._selector.open_for_appointment(appointment_id)
            if existing is not None:
                raise DuplicateOpenAppealError(str(appointment_id), str(existing.id))

            appealer_snapshot = self._users.get(appealer.id)
            scrutiny_level = (
                appealer_snapshot.scrutiny_level if appealer_snapshot else ScrutinyLevel.NONE
            )
            priority = determine_priority(scrutiny_level, severity_enum)

            model = AppealModel(
                number=self._sequences.next_value(SequenceService.APPEAL_CASE),
                appointment_id=appointment_id,
                open_appointment_id=appointment_id,
                appealer_id=appealer.id,
                appealer_type=appealer.role.value,
                category=category,
                severity=severity_enum.value,
                description=description.strip(),
                contesting_items=dict(contesting_items or {}),
                requested_relief=requested_relief,
                supporting_documents=[],
                original_penalty_amount=appointment.cancellation_fee,
                original_refund_withheld=appointment.refund_withheld,
                status=AppealStatus.SUBMITTED.value,
                priority=priority.value,
                submitted_at=now,
                sla_deadline=now + self._policy.appeals.sla,
                last_activity_at=now,
                created_by_id=appealer.id,
            )
            self._session.add(model)
            try:
                self._session.flush()
            except IntegrityError as exc:
                raise DuplicateOpenAppealError(str(appointment_id)) from exc

            self._appointments.set_active_appeal(appointment_id, model.id)

            self._record(
                uow,
                AuditEventType.APPEAL_SUBMITTED,
                model,
                appealer,
                event_data={
                    "appealer_type": appealer.role.value,
                    "category": category,
                    "severity": severity_enum.value,
                    "priority": priority.value,
                    "scrutiny_level": scrutiny_level.value,
                    "contesting_items": model.contesting_items,
                },
                new_state=_snapshot(model),
                request_id=request_id,
            )
            uow.notify(appealer.id, "appeal_submitted", {
                "appeal_id": str(model.id),
                "case_number": model.case_number,
                "sla_deadline": model.sla_deadline.isoformat(),
            })
            appeal = model.to_dto()

        logger.info(
            "appeal_submitted",
            extra={
                "appeal_id": appeal.id,
                "case_number": appeal.case_number,
                "priority": appeal.priority.value,
                "sla_deadline": appeal.sla_deadline,
            },
        )
        return appeal

    # =========================================================================
    # Assignment
    # =========================================================================

    def assign(
        self,
        appeal_id: UUID,
        assignee_id: UUID,
        assigner: Actor,
        request_id: str | None = None,
    ) -> Appeal:
        """
        Assign a reviewer.  A ``submitted`` appeal moves to ``under_review``.

        Raises:
            AppealNotFoundError, ClosedAppealError, InvalidAssigneeError.
        """
        with self._unit_of_work() as uow:
            model = self._load_open(appeal_id)
            assignee = self._users.get(assignee_id)
            if assignee is None or assignee.role not in STAFF_ROLES:
                raise InvalidAssigneeError(
                    str(assignee_id), assignee.role.value if assignee else None
                )

            previous = _snapshot(model)
            now = self._clock.now()
            if model.status == AppealStatus.SUBMITTED.value:
                APPEAL_WORKFLOW.require(model.status, AppealStatus.UNDER_REVIEW.value)
                model.status = AppealStatus.UNDER_REVIEW.value
            model.assigned_to = assignee_id
            model.assigned_at = now
            model.last_activity_at = now
            model.updated_by_id = assigner.id
            self._session.flush()

            self._record(
                uow,
                AuditEventType.APPEAL_ASSIGNED,
                model,
                assigner,
                event_data={"assignee_id": str(assignee_id), "assignee_name": assignee.full_name},
                previous_state=previous,
                new_state=_snapshot(model),
                request_id=request_id,
            )
            appeal = model.to_dto()

        logger.info(
            "appeal_assigned",
            extra={"appeal_id": appeal.id, "assignee_id": assignee_id, "status": appeal.status.value},
        )
        return appeal

    def auto_assign(self, appeal_id: UUID, assigner: Actor | None = None) -> Appeal | None:
        """
        Assign to the HR reviewer with the fewest appeals in review.

        Returns None when there are no HR users.
        """
        reviewers = self._users.list_by_role(ActorRole.HR)
        if not reviewers:
            logger.warning("appeal_auto_assign_no_reviewers", extra={"appeal_id": appeal_id})
            return None
        workloads = [
            (self._selector.workload(r.id, WORKLOAD_STATUSES), index, r)
            for index, r in enumerate(reviewers)
        ]
        _, _, chosen = min(workloads, key=lambda w: (w[0], w[1]))
        return self.assign(appeal_id, chosen.id, assigner or SYSTEM_ACTOR)

    # =========================================================================
    # Status changes
    # =========================================================================

    def update_status(
        self,
        appeal_id: UUID,
        new_status: AppealStatus | str,
        actor: Actor,
        notes: str | None = None,
        request_id: str | None = None,
    ) -> Appeal:
        """
        Move an appeal along any pair of the transition table.

        A terminal target closes the appeal without moving money; use
        ``resolve`` to apply refunds, fee reversals or an unfreeze.

        Raises:
            InvalidTransitionError: pair not in the transition table or
                unknown status.  ``ClosedAppealError`` (a subclass) when
                the appeal is already terminal.
        """
        with self._unit_of_work() as uow:
            model = self._load_open(appeal_id, str(new_status))
            try:
                target = AppealStatus(new_status)
            except ValueError:
                raise InvalidTransitionError(
                    APPEAL_WORKFLOW.name, model.status, str(new_status)
                ) from None
            APPEAL_WORKFLOW.require(model.status, target.value)

            previous = _snapshot(model)
            if target in CLOSED_STATUSES:
                self._close(model, target, actor, {}, notes)
                self._scrutiny.recompute(model.appealer_id)
            else:
                now = self._clock.now()
                model.status = target.value
                model.last_activity_at = now
                model.updated_by_id = actor.id
                if target is AppealStatus.ESCALATED:
                    model.escalated_at = now
                    model.escalation_reason = notes
                self._session.flush()

            self._record(
                uow,
                AuditEventType.APPEAL_STATUS_CHANGED,
                model,
                actor,
                event_data={"notes": notes},
                previous_state=previous,
                new_state=_snapshot(model),
                request_id=request_id,
            )
            appeal = model.to_dto()

        logger.info(
            "appeal_status_changed",
            extra={
                "appeal_id": appeal.id,
                "from_status": previous["status"],
                "to_status": appeal.status.value,
            },
        )
        return appeal

    def add_documents(
        self,
        appeal_id: UUID,
        documents: list[str],
        actor: Actor,
        request_id: str | None = None,
    ) -> Appeal:
        """
        Attach supporting documents.  An appeal awaiting documents returns
        to ``under_review``.
        """
        if not documents:
            raise MissingReasonError("documents")
        with self._unit_of_work() as uow:
            model = self._load_open(appeal_id)
            previous = _snapshot(model)
            model.supporting_documents = [*(model.supporting_documents or []), *documents]
            if model.status == AppealStatus.AWAITING_DOCUMENTS.value:
                APPEAL_WORKFLOW.require(model.status, AppealStatus.UNDER_REVIEW.value)
                model.status = AppealStatus.UNDER_REVIEW.value
            model.last_activity_at = self._clock.now()
            model.updated_by_id = actor.id
            self._session.flush()

            self._record(
                uow,
                AuditEventType.APPEAL_DOCUMENTS_UPLOADED,
                model,
                actor,
                event_data={"documents": list(documents)},
                previous_state=previous,
                new_state=_snapshot(model),
                request_id=request_id,
            )
            return model.to_dto()

    def add_note(
        self,
        appeal_id: UUID,
        note: str,
        actor: Actor,
        request_id: str | None = None,
    ) -> Appeal:
        """Append a timestamped internal note."""
        if not note or not note.strip():
            raise EmptyNoteError()
        with self._unit_of_work() as uow:
            model = self._load(appeal_id)
            now = self._clock.now()
            line = f"[{now:%Y-%m-%d %H:%M}] {note.strip()}"
            model.notes = f"{model.notes}\n{line}" if model.notes else line
            model.last_activity_at = now
            model.updated_by_id = actor.id
            self._session.flush()
            self._record(
                uow,
                AuditEventType.NOTE_ADDED,
                model,
                actor,
                event_data={"case_type": CaseType.APPEAL.value, "note": note.strip()},
                request_id=request_id,
            )
            return model.to_dto()

    # =========================================================================
    # Resolution
    # =========================================================================

    def resolve(
        self,
        appeal_id: UUID,
        decision: AppealDecision | str,
        reviewer: Actor,
        actions: ResolutionActions | Mapping[str, Any] | None = None,
        notes: str | None = None,
        request_id: str | None = None,
    ) -> AppealResolution:
        """
        Close an appeal with a decision.

        On approve/partial the resolution actions are applied in the same
        unit of work.  A failed gateway call never blocks the resolution:
        it is reported in ``AppealResolution.outcomes`` and recorded as a
        ``*_failed`` audit event.

        Raises:
            InvalidDecisionError, AppealNotFoundError, ClosedAppealError,
            InvalidTransitionError, RefundCeilingExceededError.
        """
        try:
            decision_enum = AppealDecision(decision)
        except ValueError:
            raise InvalidDecisionError(
                str(decision), tuple(d.value for d in AppealDecision)
            ) from None
        if not isinstance(actions, ResolutionActions):
            actions = ResolutionActions.from_mapping(actions)
        target = decision_enum.status
        grants = target is not AppealStatus.DENIED

        logger.info(
            "appeal_resolve_started",
            extra={"appeal_id": appeal_id, "decision": decision_enum.value},
        )

        with self._unit_of_work() as uow:
            model = self._load_open(appeal_id, target.value)
            APPEAL_WORKFLOW.require(model.status, target.value)

            appointment = self._appointments.get(model.appointment_id)
            if appointment is None:
                raise AppointmentNotFoundError(str(model.appointment_id))
            if grants and actions.refund_amount > appointment.max_refundable:
                raise RefundCeilingExceededError(
                    actions.refund_amount, appointment.max_refundable
                )

            previous = _snapshot(model)
            self._close(model, target, reviewer, actions.as_dict() if grants else {}, notes)
            profile = self._scrutiny.recompute(model.appealer_id)

            # Gateway calls go last, after every guard and the scrutiny write.
            outcomes: tuple[ActionOutcome, ...] = ()
            if grants:
                outcomes = self._apply_actions(uow, model, appointment, actions, reviewer)

            self._record(
                uow,
                AuditEventType.APPEAL_RESOLVED,
                model,
                reviewer,
                event_data={
                    "decision": decision_enum.value,
                    "actions": actions.as_dict() if grants else {},
                    "notes": notes,
                    "failed_actions": [o.action.value for o in outcomes if not o.succeeded],
                },
                previous_state=previous,
                new_state=_snapshot(model),
                request_id=request_id,
            )
            uow.notify(model.appealer_id, "appeal_resolved", {
                "appeal_id": str(model.id),
                "case_number": model.case_number,
                "decision": decision_enum.value,
            })
            resolution = AppealResolution(
                appeal=model.to_dto(), outcomes=outcomes, scrutiny=profile
            )

        logger.info(
            "appeal_resolved",
            extra={
                "appeal_id": appeal_id,
                "status": target.value,
                "failed_action_count": len(resolution.failed_actions),
            },
        )
        return resolution

    def _apply_actions(
        self,
        uow: UnitOfWork,
        model: AppealModel,
        appointment: AppointmentSnapshot,
        actions: ResolutionActions,
        reviewer: Actor,
    ) -> tuple[ActionOutcome, ...]:
        outcomes: list[ActionOutcome] = []
        if actions.refund_amount > 0:
            outcomes.append(self._refund(uow, model, appointment, actions.refund_amount, reviewer))
        if actions.reverses_fee:
            outcomes.append(self._reverse_fee(uow, model, appointment, actions.fee_amount, reviewer))
        if actions.unfreeze_account:
            outcomes.append(self._unfreeze(uow, model, reviewer))
        return tuple(outcomes)

    def _require_gateway(self, operation: str) -> PaymentGateway:
        if self._gateway is None:
            raise ExternalGatewayError(operation, "No payment gateway configured")
        return self._gateway

    def _refund(
        self,
        uow: UnitOfWork,
        model: AppealModel,
        appointment: AppointmentSnapshot,
        amount: int,
        reviewer: Actor,
    ) -> ActionOutcome:
        event_data = {"amount": amount, "source": "appeal_resolution"}
        try:
            if not appointment.payment_ref:
                raise MissingPaymentReferenceError(str(appointment.id))
            gateway = self._require_gateway("refund")
            key = generate_idempotency_key(
                CaseType.APPEAL.value, model.id, "refund", appointment.refund_total
            )
            refund = call_gateway(
                "refund",
                gateway.refund,
                appointment.payment_ref,
                amount,
                "requested_by_customer",
                idempotency_key=key,
            )
        except (ExternalGatewayError, MissingPaymentReferenceError) as exc:
            self._record(
                uow, AuditEventType.REFUND_FAILED, model, reviewer,
                event_data={**event_data, "error": str(exc)},
            )
            return ActionOutcome(ResolutionActionType.REFUND, False, amount, error=str(exc))

        self._appointments.add_refund(appointment.id, amount, self._clock.now())
        self._ledger.record_appeal_refund(
            appointment_id=appointment.id,
            appeal_id=model.id,
            homeowner_id=appointment.homeowner_id,
            amount=amount,
            refund_ref=refund.external_id,
            actor_id=reviewer.id,
        )
        self._record(
            uow, AuditEventType.REFUND_COMPLETED, model, reviewer,
            event_data={**event_data, "refund_id": refund.external_id},
        )
        return ActionOutcome(ResolutionActionType.REFUND, True, amount, refund.external_id)

    def _reverse_fee(
        self,
        uow: UnitOfWork,
        model: AppealModel,
        appointment: AppointmentSnapshot,
        amount: int,
        reviewer: Actor,
    ) -> ActionOutcome:
        """Refund a separately charged fee, or take it off the balance owed."""
        refund_ref: str | None = None
        if appointment.fee_charge_ref:
            try:
                gateway = self._require_gateway("fee_reversal")
                key = generate_idempotency_key(CaseType.APPEAL.value, model.id, "fee_reversal")
                refund = call_gateway(
                    "fee_reversal",
                    gateway.refund,
                    appointment.fee_charge_ref,
                    amount,
                    "cancellation_fee_reversal",
                    idempotency_key=key,
                )
            except ExternalGatewayError as exc:
                self._record(
                    uow, AuditEventType.FEE_REVERSAL_FAILED, model, reviewer,
                    event_data={"amount": amount, "error": str(exc)},
                )
                return ActionOutcome(
                    ResolutionActionType.FEE_REVERSAL, False, amount, error=str(exc)
                )
            refund_ref = refund.external_id
        else:
            self._users.reduce_outstanding_balance(appointment.homeowner_id, amount)

        self._ledger.record_appeal_fee_reversal(
            appointment_id=appointment.id,
            appeal_id=model.id,
            party_type=PartyType.HOMEOWNER,
            party_id=appointment.homeowner_id,
            amount=amount,
            refund_ref=refund_ref,
            actor_id=reviewer.id,
        )
        self._record(
            uow, AuditEventType.FEE_REVERSAL_COMPLETED, model, reviewer,
            event_data={"amount": amount, "refund_id": refund_ref},
        )
        return ActionOutcome(ResolutionActionType.FEE_REVERSAL, True, amount, refund_ref)

    def _unfreeze(self, uow: UnitOfWork, model: AppealModel, reviewer: Actor) -> ActionOutcome:
        was_frozen = self._users.unfreeze(model.appealer_id)
        if was_frozen:
            self._record(
                uow, AuditEventType.ACCOUNT_UNFROZEN, model, reviewer,
                event_data={"user_id": str(model.appealer_id)},
            )
        return ActionOutcome(ResolutionActionType.UNFREEZE_ACCOUNT, True)

    # =========================================================================
    # Reads
    # =========================================================================

    def get(self, appeal_id: UUID) -> Appeal:
        appeal = self._selector.get(appeal_id)
        if appeal is None:
            raise AppealNotFoundError(str(appeal_id))
        return appeal

    def get_by_number(self, number: int) -> Appeal:
        appeal = self._selector.get_by_number(number)
        if appeal is None:
            raise AppealNotFoundError(str(number))
        return appeal

    def get_user_history(self, user_id: UUID) -> UserAppealHistory:
        user = self._users.get(user_id)
        if user is None:
            raise UserNotFoundError(str(user_id))
        return UserAppealHistory(
            user=user,
            appeals=tuple(self._selector.for_appealer(user_id)),
            profile=self._scrutiny.profile(user_id),
        )

    def get_stats(self) -> AppealDashboardStats:
        by_status = self._selector.count_by_status()
        return AppealDashboardStats(
            total=sum(by_status.values()),
            pending=sum(by_status.get(s.value, 0) for s in OPEN_STATUSES),
            past_sla=len(self._selector.sla_breaches(self._clock.now())),
            by_status=by_status,
            by_priority=self._selector.count_open_by_priority(),
        )

    def get_sla_breaches(self) -> list[Appeal]:
        return self._selector.sla_breaches(self._clock.now())

    def resolved_since(self, days: int = 7) -> int:
        return self._selector.count_resolved_since(self._clock.now() - timedelta(days=days))
