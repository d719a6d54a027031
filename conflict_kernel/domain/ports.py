"""
Ports to external collaborators (``conflict_kernel.domain.ports``).

Responsibility
--------------
Typed boundaries for everything the engine consumes but does not own: the
payment processor, the appointment and user records, and notification
delivery.  Services depend on these protocols; concrete adapters live in
``conflict_services.stores`` (SQLAlchemy) or in the host application.

Failure modes
-------------
* ``PaymentGateway`` implementations raise ``ExternalGatewayError`` for any
  processor failure.  Other exceptions are wrapped by the caller.
* ``NotificationHook`` errors are swallowed by the dispatcher.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Protocol, runtime_checkable
from uuid import UUID

from conflict_kernel.domain.ledger import GatewayObjectType
from conflict_kernel.domain.scrutiny import ScrutinyProfile
from conflict_kernel.domain.values import ActorRole, ScrutinyLevel


# ---------------------------------------------------------------------------
# Payment gateway
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class GatewayRefund:
    external_id: str
    status: str


@dataclass(frozen=True)
class GatewayTransfer:
    external_id: str


@dataclass(frozen=True)
class GatewayObject:
    object_id: str
    amount: int


@runtime_checkable
class PaymentGateway(Protocol):
    def refund(
        self,
        payment_ref: str,
        amount: int,
        reason: str,
        idempotency_key: str | None = None,
    ) -> GatewayRefund: ...

    def transfer(
        self,
        destination_ref: str,
        amount: int,
        idempotency_key: str | None = None,
    ) -> GatewayTransfer: ...

    def retrieve(self, object_type: GatewayObjectType, object_id: str) -> GatewayObject | None: ...


# ---------------------------------------------------------------------------
# Appointment store
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AppointmentSnapshot:
    id: UUID
    homeowner_id: UUID
    cleaner_ids: tuple[UUID, ...]
    price: int
    is_cancelled: bool
    cancelled_at: datetime | None = None
    appeal_window_expires_at: datetime | None = None
    payment_ref: str | None = None
    cancellation_fee: int = 0
    fee_charge_ref: str | None = None
    refund_withheld: int = 0
    refund_total: int = 0
    has_active_appeal: bool = False
    active_appeal_id: UUID | None = None

    @property
    def max_refundable(self) -> int:
        return max(self.price - self.refund_total, 0)

    def appeal_deadline(self, window: timedelta) -> datetime | None:
        """Explicit deadline if recorded, else cancellation time plus window."""
        if self.appeal_window_expires_at is not None:
            return self.appeal_window_expires_at
        if self.cancelled_at is not None:
            return self.cancelled_at + window
        return None


class AppointmentStore(Protocol):
    def get(self, appointment_id: UUID) -> AppointmentSnapshot | None: ...

    def add_refund(self, appointment_id: UUID, amount: int, refunded_at: datetime) -> int:
        """Increase the running refund total; return the new total."""
        ...

    def set_active_appeal(self, appointment_id: UUID, appeal_id: UUID | None) -> None:
        """Set (or clear, with None) the open-appeal flag."""
        ...


# ---------------------------------------------------------------------------
# User store
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class UserSnapshot:
    id: UUID
    role: ActorRole
    first_name: str = ""
    last_name: str = ""
    email: str | None = None
    phone: str | None = None
    payout_destination: str | None = None
    account_frozen: bool = False
    warning_count: int = 0
    outstanding_balance: int = 0
    scrutiny_level: ScrutinyLevel = ScrutinyLevel.NONE

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class UserStore(Protocol):
    def get(self, user_id: UUID) -> UserSnapshot | None: ...

    def get_many(self, user_ids: list[UUID]) -> dict[UUID, UserSnapshot]:
        """Snapshots keyed by id; unknown ids are left out."""
        ...

    def list_by_role(self, role: ActorRole) -> list[UserSnapshot]: ...

    def save_scrutiny(self, user_id: UUID, profile: ScrutinyProfile, at: datetime) -> None:
        """Persist the profile; an unknown user is skipped."""
        ...

    def unfreeze(self, user_id: UUID) -> bool:
        """Clear the frozen flag; return whether the account was frozen (False when unknown)."""
        ...

    def reduce_outstanding_balance(self, user_id: UUID, amount: int) -> int:
        """Reduce the balance owed, floored at zero; return the amount applied (0 when unknown)."""
        ...


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------


class NotificationHook(Protocol):
    def notify(self, user_id: UUID, event: str, payload: dict) -> None: ...
