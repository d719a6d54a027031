"""
Typed exception hierarchy for the conflict resolution kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Dispute handling moves real money. Callers (the thin API layer, batch jobs,
tests) must react to the exact precondition that failed without parsing
message strings:

  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Exceptions carry structured DATA (not just a message string)

Example:
    try:
        workflow.submit(...)
    except AppealWindowExpiredError as e:
        api_response(code=e.code, deadline=e.deadline)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    ConflictKernelError (base)
    |
    +-- ValidationError                  bad input, rejected before side effects
    |   +-- InvalidAmountError
    |   +-- MissingReasonError
    |   +-- InvalidCategoryError
    |   +-- InvalidDecisionError
    |   +-- InvalidSeverityError
    |   +-- InvalidAppealerError
    |   +-- EmptyNoteError
    |   +-- RefundCeilingExceededError
    |   +-- InvalidCaseNumberError
    |
    +-- NotFoundError
    |   +-- AppealNotFoundError
    |   +-- AdjustmentNotFoundError
    |   +-- AppointmentNotFoundError
    |   +-- UserNotFoundError
    |
    +-- StateError                       precondition on current state failed
    |   +-- InvalidTransitionError
    |   |   +-- ClosedAppealError       any move out of a terminal appeal
    |   |   +-- ClosedAdjustmentError
    |   +-- NotCancelledError
    |   +-- AppealWindowExpiredError
    |   +-- DuplicateOpenAppealError
    |   +-- AdjustmentExpiredError
    |   +-- InvalidAssigneeError
    |   +-- MissingPaymentReferenceError
    |   +-- MissingPayoutDestinationError
    |   +-- RateLimitExceededError
    |
    +-- ExternalGatewayError             payment processor call failed
    |
    +-- ImmutabilityError
    |   +-- ImmutabilityViolationError
    |
    +-- AuditError
        +-- AuditChainBrokenError

ReconciliationDiscrepancy is deliberately NOT an exception: a mismatch
between the ledger and the gateway is a recorded data condition on the
ledger entry itself.
"""

from datetime import datetime


class ConflictKernelError(Exception):
    """
    Base exception for all conflict kernel errors.

    All subclasses carry a ``code`` class attribute for machine-readable
    error identification.
    """

    code: str = "CONFLICT_KERNEL_ERROR"


# Validation errors


class ValidationError(ConflictKernelError):
    """Input rejected before any side effect."""

    code: str = "VALIDATION_ERROR"


class InvalidAmountError(ValidationError):
    """Monetary amount must be a positive integer of minor units."""

    code: str = "INVALID_AMOUNT"

    def __init__(self, amount: object):
        self.amount = amount
        super().__init__("Amount must be greater than 0")


class MissingReasonError(ValidationError):
    """A reason (or description) is required."""

    code: str = "MISSING_REASON"

    def __init__(self, field: str = "reason"):
        self.field = field
        super().__init__(f"{field.capitalize()} is required")


class InvalidCategoryError(ValidationError):
    """Appeal category is not part of the closed category set."""

    code: str = "INVALID_CATEGORY"

    def __init__(self, category: str, allowed: tuple[str, ...]):
        self.category = category
        self.allowed = allowed
        super().__init__(
            f"Invalid category. Must be one of: {', '.join(allowed)}"
        )


class InvalidDecisionError(ValidationError):
    """Resolution decision is not valid for the case type."""

    code: str = "INVALID_DECISION"

    def __init__(self, decision: str, allowed: tuple[str, ...]):
        self.decision = decision
        self.allowed = allowed
        super().__init__(
            f"Invalid decision '{decision}'. Must be one of: {', '.join(allowed)}"
        )


class InvalidSeverityError(ValidationError):
    """Appeal severity is not one of low, medium, high, critical."""

    code: str = "INVALID_SEVERITY"

    def __init__(self, severity: str, allowed: tuple[str, ...]):
        self.severity = severity
        self.allowed = allowed
        super().__init__(
            f"Invalid severity. Must be one of: {', '.join(allowed)}"
        )


class InvalidAppealerError(ValidationError):
    """Only homeowners and cleaners can file appeals."""

    code: str = "INVALID_APPEALER"

    def __init__(self, role: str):
        self.role = role
        super().__init__("Only homeowners and cleaners can submit appeals")


class EmptyNoteError(ValidationError):
    """Case notes must contain text."""

    code: str = "EMPTY_NOTE"

    def __init__(self):
        super().__init__("Note is required")


class RefundCeilingExceededError(ValidationError):
    """Requested refund exceeds what remains refundable on the appointment."""

    code: str = "REFUND_CEILING_EXCEEDED"

    def __init__(self, requested: int, max_refundable: int):
        self.requested = requested
        self.max_refundable = max_refundable
        super().__init__(
            f"Refund of {requested} exceeds maximum refundable amount {max_refundable}"
        )


class InvalidCaseNumberError(ValidationError):
    """External case number is not of the form PREFIX-NNNNNN."""

    code: str = "INVALID_CASE_NUMBER"

    def __init__(self, case_number: str):
        self.case_number = case_number
        super().__init__(f"Invalid case number: {case_number}")


# Not-found errors


class NotFoundError(ConflictKernelError):
    """Referenced record does not exist."""

    code: str = "NOT_FOUND"


class AppealNotFoundError(NotFoundError):
    code: str = "APPEAL_NOT_FOUND"

    def __init__(self, appeal_id: str):
        self.appeal_id = appeal_id
        super().__init__(f"Appeal not found: {appeal_id}")


class AdjustmentNotFoundError(NotFoundError):
    code: str = "ADJUSTMENT_NOT_FOUND"

    def __init__(self, case_id: str):
        self.case_id = case_id
        super().__init__(f"Adjustment request not found: {case_id}")


class AppointmentNotFoundError(NotFoundError):
    code: str = "APPOINTMENT_NOT_FOUND"

    def __init__(self, appointment_id: str):
        self.appointment_id = appointment_id
        super().__init__(f"Appointment not found: {appointment_id}")


class UserNotFoundError(NotFoundError):
    code: str = "USER_NOT_FOUND"

    def __init__(self, user_id: str):
        self.user_id = user_id
        super().__init__(f"User not found: {user_id}")


# State errors


class StateError(ConflictKernelError):
    """Operation not permitted in the record's current state."""

    code: str = "STATE_ERROR"


class InvalidTransitionError(StateError):
    """Status change not present in the workflow's transition table."""

    code: str = "INVALID_TRANSITION"

    def __init__(
        self,
        workflow: str,
        from_state: str,
        to_state: str | None,
        message: str | None = None,
    ):
        self.workflow = workflow
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(
            message or f"Invalid {workflow} transition: {from_state} -> {to_state}"
        )


class NotCancelledError(StateError):
    """Appeals may only be filed against cancelled appointments."""

    code: str = "NOT_CANCELLED"

    def __init__(self, appointment_id: str):
        self.appointment_id = appointment_id
        super().__init__("Can only appeal cancelled appointments")


class AppealWindowExpiredError(StateError):
    code: str = "APPEAL_WINDOW_EXPIRED"

    def __init__(self, appointment_id: str, deadline: datetime | None):
        self.appointment_id = appointment_id
        self.deadline = deadline
        super().__init__("Appeal window has expired")


class DuplicateOpenAppealError(StateError):
    code: str = "DUPLICATE_OPEN_APPEAL"

    def __init__(self, appointment_id: str, existing_appeal_id: str | None = None):
        self.appointment_id = appointment_id
        self.existing_appeal_id = existing_appeal_id
        super().__init__("An appeal is already pending for this appointment")


class ClosedAppealError(InvalidTransitionError):
    """Terminal appeals are immutable; no pair leaves a terminal state."""

    code: str = "CLOSED_APPEAL"

    def __init__(self, appeal_id: str, status: str, to_state: str | None = None):
        self.appeal_id = appeal_id
        self.status = status
        super().__init__(
            "appeal", status, to_state, message=f"Appeal {appeal_id} is closed ({status})"
        )


class ClosedAdjustmentError(InvalidTransitionError):
    """Terminal adjustment cases are immutable."""

    code: str = "CLOSED_ADJUSTMENT"

    def __init__(self, case_id: str, status: str, to_state: str | None = None):
        self.case_id = case_id
        self.status = status
        super().__init__(
            "adjustment",
            status,
            to_state,
            message=f"Adjustment request {case_id} is closed ({status})",
        )


class AdjustmentExpiredError(StateError):
    """Homeowner response window has passed."""

    code: str = "ADJUSTMENT_EXPIRED"

    def __init__(self, case_id: str, expires_at: datetime):
        self.case_id = case_id
        self.expires_at = expires_at
        super().__init__("This adjustment request has expired")


class InvalidAssigneeError(StateError):
    """Cases may only be assigned to HR staff or owners."""

    code: str = "INVALID_ASSIGNEE"

    def __init__(self, assignee_id: str, role: str | None):
        self.assignee_id = assignee_id
        self.role = role
        super().__init__("Assignee must be an HR staff member or owner")


class MissingPaymentReferenceError(StateError):
    code: str = "MISSING_PAYMENT_REFERENCE"

    def __init__(self, appointment_id: str):
        self.appointment_id = appointment_id
        super().__init__("No payment found for this appointment")


class MissingPayoutDestinationError(StateError):
    code: str = "MISSING_PAYOUT_DESTINATION"

    def __init__(self, cleaner_id: str):
        self.cleaner_id = cleaner_id
        super().__init__("Cleaner does not have a payout account on file")


class RateLimitExceededError(StateError):
    """Too many sensitive actions by one actor inside the limit window."""

    code: str = "RATE_LIMIT_EXCEEDED"

    def __init__(self, actor_id: str, action: str, retry_after_seconds: int):
        self.actor_id = actor_id
        self.action = action
        self.retry_after_seconds = retry_after_seconds
        super().__init__(
            f"Too many {action} requests. Try again in {retry_after_seconds} seconds."
        )


# Gateway errors


class ExternalGatewayError(ConflictKernelError):
    """
    The payment processor rejected or failed a call.

    Surfaces to callers of refund/payout; never raised out of audit logging.
    """

    code: str = "EXTERNAL_GATEWAY_ERROR"

    def __init__(self, operation: str, message: str, gateway_code: str | None = None):
        self.operation = operation
        self.gateway_code = gateway_code
        super().__init__(f"Payment gateway {operation} failed: {message}")


# Immutability errors


class ImmutabilityError(ConflictKernelError):
    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """Attempted to modify or delete an append-only record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )


# Audit errors


class AuditError(ConflictKernelError):
    code: str = "AUDIT_ERROR"


class AuditChainBrokenError(AuditError):
    """Audit hash chain validation failed."""

    code: str = "AUDIT_CHAIN_BROKEN"

    def __init__(self, audit_event_id: str, expected_hash: str, actual_hash: str):
        self.audit_event_id = audit_event_id
        self.expected_hash = expected_hash
        self.actual_hash = actual_hash
        super().__init__(
            f"Audit chain broken at {audit_event_id}: "
            f"expected {expected_hash}, found {actual_hash}"
        )
