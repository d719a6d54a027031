"""
MoneyMovement -- staff-initiated refunds and payouts on a conflict case.

Responsibility:
    Refund a homeowner or pay a cleaner against an appeal or adjustment
    case, recording the gateway reference in the ledger and the audit log.
    Also hosts the case-type dispatching helpers of the conflict screen:
    refund info with quick amounts, notes and assignment.

Architecture position:
    Services layer.  Composes the appeal and adjustment workflows, the
    kernel Ledger and the PaymentGateway port.

Invariants enforced:
    - Amount, reason and rate limit are checked before any gateway call.
    - Refunds never exceed ``price - refund_total`` for the appointment.
    - Each gateway call carries an idempotency key derived from the case,
      the action and the number of prior actions of that kind.
    - Appointment refund total, ledger entry and ``*_completed`` audit
      record commit together.  A gateway failure commits nothing and
      leaves a ``*_failed`` audit record.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from conflict_config import ConflictPolicy
from conflict_kernel.domain.audit import AuditEventType, AuditRecord
from conflict_kernel.domain.clock import Clock, SystemClock
from conflict_kernel.domain.ledger import EntryType
from conflict_kernel.domain.ports import (
    AppointmentStore,
    NotificationHook,
    PaymentGateway,
    UserStore,
)
from conflict_kernel.domain.values import Actor, ActorRole, CaseType
from conflict_kernel.exceptions import (
    AppointmentNotFoundError,
    ExternalGatewayError,
    InvalidAmountError,
    MissingPaymentReferenceError,
    MissingPayoutDestinationError,
    MissingReasonError,
    RefundCeilingExceededError,
    UserNotFoundError,
)
from conflict_kernel.logging_config import get_logger
from conflict_kernel.selectors.ledger_selector import LedgerSelector
from conflict_kernel.services.audit_log import AuditLog
from conflict_kernel.services.gateway import call_gateway
from conflict_kernel.services.ledger_service import Ledger
from conflict_kernel.services.unit_of_work import UnitOfWork
from conflict_kernel.utils.idempotency import generate_idempotency_key
from conflict_modules.adjustments import AdjustmentWorkflow
from conflict_modules.appeals import AppealWorkflow
from conflict_modules.appeals.models import Appeal
from conflict_services.rate_limit import RateLimiter

logger = get_logger("services.money_movement")

REFUND_REASON = "requested_by_customer"


@dataclass(frozen=True)
class CaseRef:
    """The money-relevant facts of an appeal or adjustment case."""

    case_type: CaseType
    case_id: UUID
    case_number: str
    appointment_id: UUID
    cleaner_id: UUID | None

    @property
    def appeal_id(self) -> UUID | None:
        return self.case_id if self.case_type is CaseType.APPEAL else None

    @property
    def adjustment_id(self) -> UUID | None:
        return self.case_id if self.case_type is CaseType.ADJUSTMENT else None


@dataclass(frozen=True)
class MovementResult:
    case_number: str
    amount: int
    external_ref: str
    ledger_entry_id: UUID
    refund_total: int | None = None


@dataclass(frozen=True)
class RefundInfo:
    original_amount: int
    already_refunded: int
    max_refundable: int
    quick_amounts: dict[str, int]


def quick_amounts(max_refundable: int) -> dict[str, int]:
    """Quarter steps of the refundable amount, floored to whole minor units."""
    return {
        "quarter": max_refundable // 4,
        "half": max_refundable // 2,
        "threeQuarter": max_refundable * 3 // 4,
        "full": max_refundable,
    }


def _validate(amount: Any, reason: str | None) -> None:
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise InvalidAmountError(amount)
    if not reason or not reason.strip():
        raise MissingReasonError("reason")


class MoneyMovement:
    def __init__(
        self,
        session: Session,
        appeals: AppealWorkflow,
        adjustments: AdjustmentWorkflow,
        appointments: AppointmentStore,
        users: UserStore,
        audit_log: AuditLog,
        gateway: PaymentGateway,
        rate_limiter: RateLimiter | None = None,
        notifier: NotificationHook | None = None,
        clock: Clock | None = None,
        policy: ConflictPolicy | None = None,
    ):
        self._session = session
        self._appeals = appeals
        self._adjustments = adjustments
        self._appointments = appointments
        self._users = users
        self._audit_log = audit_log
        self._gateway = gateway
        self._notifier = notifier
        self._clock = clock or SystemClock()
        self._policy = policy or ConflictPolicy()
        self._rate_limiter = rate_limiter or RateLimiter(
            policy=self._policy.rate_limit, clock=self._clock
        )
        self._ledger = Ledger(
            session, self._clock, self._policy.ledger.form_1099_threshold
        )
        self._ledger_selector = LedgerSelector(session)

    # =========================================================================
    # Case resolution
    # =========================================================================

    def case_ref(self, case_type: CaseType | str, case_id: UUID) -> CaseRef:
        case_type = CaseType(case_type)
        if case_type is CaseType.APPEAL:
            appeal = self._appeals.get(case_id)
            return CaseRef(
                case_type, appeal.id, appeal.case_number, appeal.appointment_id,
                self._appeal_cleaner(appeal),
            )
        adjustment = self._adjustments.get(case_id)
        return CaseRef(
            case_type, adjustment.id, adjustment.case_number,
            adjustment.appointment_id, adjustment.cleaner_id,
        )

    def _appeal_cleaner(self, appeal: Appeal) -> UUID | None:
        if appeal.appealer_type is ActorRole.CLEANER:
            return appeal.appealer_id
        appointment = self._appointments.get(appeal.appointment_id)
        if appointment is None or not appointment.cleaner_ids:
            return None
        return appointment.cleaner_ids[0]

    def _record(
        self,
        event_type: AuditEventType,
        ref: CaseRef,
        actor: Actor,
        event_data: dict[str, Any],
        request_id: str | None,
    ) -> AuditRecord:
        return AuditRecord(
            event_type=event_type,
            occurred_at=self._clock.now(),
            actor=actor,
            appointment_id=ref.appointment_id,
            appeal_id=ref.appeal_id,
            adjustment_id=ref.adjustment_id,
            event_data={
                "case_type": ref.case_type.value,
                "case_id": str(ref.case_id),
                "case_number": ref.case_number,
                **event_data,
            },
            request_id=request_id,
        )

    # =========================================================================
    # Refunds
    # =========================================================================

    def refund_info(self, case_type: CaseType | str, case_id: UUID) -> RefundInfo:
        ref = self.case_ref(case_type, case_id)
        appointment = self._appointments.get(ref.appointment_id)
        if appointment is None:
            raise AppointmentNotFoundError(str(ref.appointment_id))
        return RefundInfo(
            original_amount=appointment.price,
            already_refunded=appointment.refund_total,
            max_refundable=appointment.max_refundable,
            quick_amounts=quick_amounts(appointment.max_refundable),
        )

    def refund(
        self,
        case_type: CaseType | str,
        case_id: UUID,
        amount: int,
        reason: str,
        reviewer: Actor,
        request_id: str | None = None,
    ) -> MovementResult:
        """
        Refund the homeowner's payment for the case's appointment.

        Raises:
            InvalidAmountError, MissingReasonError: bad input, no side effects.
            RateLimitExceededError: too many refunds by this reviewer.
            MissingPaymentReferenceError: appointment has no payment on file.
            RefundCeilingExceededError: amount above price minus prior refunds.
            ExternalGatewayError: gateway refused; nothing was committed.
        """
        _validate(amount, reason)
        self._rate_limiter.hit(reviewer.id, "refund")
        ref = self.case_ref(case_type, case_id)
        event_data = {"amount": amount, "reason": reason}

        logger.info(
            "conflict_refund_started",
            extra={"case_number": ref.case_number, "amount": amount},
        )
        try:
            with UnitOfWork(self._session, self._audit_log, self._notifier) as uow:
                appointment = self._appointments.get(ref.appointment_id)
                if appointment is None:
                    raise AppointmentNotFoundError(str(ref.appointment_id))
                if not appointment.payment_ref:
                    raise MissingPaymentReferenceError(str(appointment.id))
                if amount > appointment.max_refundable:
                    raise RefundCeilingExceededError(amount, appointment.max_refundable)

                key = generate_idempotency_key(
                    ref.case_type.value, ref.case_id, "refund", appointment.refund_total
                )
                refund = call_gateway(
                    "refund",
                    self._gateway.refund,
                    appointment.payment_ref,
                    amount,
                    REFUND_REASON,
                    idempotency_key=key,
                )
                refund_total = self._appointments.add_refund(
                    appointment.id, amount, self._clock.now()
                )
                entry = self._ledger.record_conflict_refund(
                    appointment_id=appointment.id,
                    homeowner_id=appointment.homeowner_id,
                    amount=amount,
                    refund_ref=refund.external_id,
                    reason=reason,
                    appeal_id=ref.appeal_id,
                    adjustment_id=ref.adjustment_id,
                    actor_id=reviewer.id,
                )
                uow.record(self._record(
                    AuditEventType.REFUND_COMPLETED, ref, reviewer,
                    {**event_data, "refund_id": refund.external_id, "refund_total": refund_total},
                    request_id,
                ))
                uow.notify(appointment.homeowner_id, "refund_issued", {
                    "case_number": ref.case_number,
                    "amount": amount,
                })
                result = MovementResult(
                    case_number=ref.case_number,
                    amount=amount,
                    external_ref=refund.external_id,
                    ledger_entry_id=entry.id,
                    refund_total=refund_total,
                )
        except ExternalGatewayError as exc:
            self._audit_log.log(self._record(
                AuditEventType.REFUND_FAILED, ref, reviewer,
                {**event_data, "error": str(exc)}, request_id,
            ))
            logger.warning(
                "conflict_refund_failed",
                extra={"case_number": ref.case_number, "amount": amount, "error": str(exc)},
            )
            raise

        logger.info(
            "conflict_refund_completed",
            extra={
                "case_number": ref.case_number,
                "amount": amount,
                "refund_id": result.external_ref,
            },
        )
        return result

    # =========================================================================
    # Payouts
    # =========================================================================

    def _prior_payouts(self, ref: CaseRef) -> int:
        if ref.case_type is CaseType.APPEAL:
            entries = self._ledger_selector.entries_for_appeal(ref.case_id)
        else:
            entries = self._ledger_selector.entries_for_adjustment(ref.case_id)
        return sum(1 for e in entries if e.entry_type == EntryType.CONFLICT_PAYOUT.value)

    def payout(
        self,
        case_type: CaseType | str,
        case_id: UUID,
        amount: int,
        reason: str,
        reviewer: Actor,
        request_id: str | None = None,
    ) -> MovementResult:
        """
        Transfer ``amount`` to the case's cleaner.

        Raises:
            InvalidAmountError, MissingReasonError, RateLimitExceededError.
            UserNotFoundError: the case has no cleaner.
            MissingPayoutDestinationError: cleaner has no payout account.
            ExternalGatewayError: gateway refused; nothing was committed.
        """
        _validate(amount, reason)
        self._rate_limiter.hit(reviewer.id, "payout")
        ref = self.case_ref(case_type, case_id)
        event_data = {"amount": amount, "reason": reason}

        if ref.cleaner_id is None:
            raise UserNotFoundError(f"cleaner for {ref.case_number}")
        cleaner = self._users.get(ref.cleaner_id)
        if cleaner is None:
            raise UserNotFoundError(str(ref.cleaner_id))
        if not cleaner.payout_destination:
            raise MissingPayoutDestinationError(str(cleaner.id))
        event_data["cleaner_id"] = str(cleaner.id)

        logger.info(
            "conflict_payout_started",
            extra={"case_number": ref.case_number, "amount": amount, "cleaner_id": cleaner.id},
        )
        try:
            with UnitOfWork(self._session, self._audit_log, self._notifier) as uow:
                key = generate_idempotency_key(
                    ref.case_type.value, ref.case_id, "payout", self._prior_payouts(ref)
                )
                transfer = call_gateway(
                    "payout",
                    self._gateway.transfer,
                    cleaner.payout_destination,
                    amount,
                    idempotency_key=key,
                )
                entry = self._ledger.record_conflict_payout(
                    appointment_id=ref.appointment_id,
                    cleaner_id=cleaner.id,
                    amount=amount,
                    transfer_ref=transfer.external_id,
                    reason=reason,
                    appeal_id=ref.appeal_id,
                    adjustment_id=ref.adjustment_id,
                    actor_id=reviewer.id,
                )
                uow.record(self._record(
                    AuditEventType.PAYOUT_COMPLETED, ref, reviewer,
                    {**event_data, "transfer_id": transfer.external_id},
                    request_id,
                ))
                uow.notify(cleaner.id, "payout_issued", {
                    "case_number": ref.case_number,
                    "amount": amount,
                })
                result = MovementResult(
                    case_number=ref.case_number,
                    amount=amount,
                    external_ref=transfer.external_id,
                    ledger_entry_id=entry.id,
                )
        except ExternalGatewayError as exc:
            self._audit_log.log(self._record(
                AuditEventType.PAYOUT_FAILED, ref, reviewer,
                {**event_data, "error": str(exc)}, request_id,
            ))
            logger.warning(
                "conflict_payout_failed",
                extra={"case_number": ref.case_number, "amount": amount, "error": str(exc)},
            )
            raise

        logger.info(
            "conflict_payout_completed",
            extra={
                "case_number": ref.case_number,
                "amount": amount,
                "transfer_id": result.external_ref,
            },
        )
        return result

    # =========================================================================
    # Case-type dispatch
    # =========================================================================

    def add_note(
        self,
        case_type: CaseType | str,
        case_id: UUID,
        note: str,
        actor: Actor,
        request_id: str | None = None,
    ):
        if CaseType(case_type) is CaseType.APPEAL:
            return self._appeals.add_note(case_id, note, actor, request_id=request_id)
        return self._adjustments.add_note(case_id, note, actor, request_id=request_id)

    def assign(
        self,
        case_type: CaseType | str,
        case_id: UUID,
        assignee_id: UUID,
        assigner: Actor,
        request_id: str | None = None,
    ):
        if CaseType(case_type) is CaseType.APPEAL:
            return self._appeals.assign(case_id, assignee_id, assigner, request_id=request_id)
        return self._adjustments.assign(case_id, assignee_id, assigner, request_id=request_id)
