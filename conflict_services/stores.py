"""
SQLAlchemy-backed store adapters (``conflict_services.stores``).

Responsibility
--------------
Implement the ``AppointmentStore`` and ``UserStore`` ports over the local
``appointments`` and ``users`` projections.  Both adapters work inside the
caller's session so their writes join the workflow's unit of work.

Invariants enforced
-------------------
* Adapters flush, never commit.
* ``add_refund`` only ever increases the running refund total.
* ``reduce_outstanding_balance`` never drives the balance below zero.
* User writes for an id with no row are skipped, not raised: appeals may
  come from users the local projection has not synced yet.
"""

from __future__ import annotations

from dataclasses import asdict
from datetime import datetime
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from conflict_kernel.domain.ports import AppointmentSnapshot, UserSnapshot
from conflict_kernel.domain.scrutiny import ScrutinyProfile
from conflict_kernel.domain.values import ActorRole, ScrutinyLevel
from conflict_kernel.exceptions import (
    AppointmentNotFoundError,
    InvalidAmountError,
)
from conflict_kernel.logging_config import get_logger
from conflict_kernel.models.marketplace import AppointmentModel, UserModel

logger = get_logger("services.stores")


def appointment_snapshot(row: AppointmentModel) -> AppointmentSnapshot:
    return AppointmentSnapshot(
        id=row.id,
        homeowner_id=row.homeowner_id,
        cleaner_ids=tuple(UUID(str(c)) for c in (row.cleaner_ids or ())),
        price=row.price,
        is_cancelled=row.was_cancelled,
        cancelled_at=row.cancelled_at,
        appeal_window_expires_at=row.appeal_window_expires_at,
        payment_ref=row.payment_intent_ref,
        cancellation_fee=row.cancellation_fee_charged,
        fee_charge_ref=row.fee_charge_ref,
        refund_withheld=row.refund_withheld,
        refund_total=row.refund_total,
        has_active_appeal=row.has_active_appeal,
        active_appeal_id=row.active_appeal_id,
    )


def user_snapshot(row: UserModel) -> UserSnapshot:
    return UserSnapshot(
        id=row.id,
        role=ActorRole(row.role),
        first_name=row.first_name,
        last_name=row.last_name,
        email=row.email,
        phone=row.phone,
        payout_destination=row.payout_account_ref,
        account_frozen=row.account_frozen,
        warning_count=row.warning_count,
        outstanding_balance=row.outstanding_balance,
        scrutiny_level=ScrutinyLevel(row.scrutiny_level),
    )


class SqlAppointmentStore:
    def __init__(self, session: Session):
        self._session = session

    def _row(self, appointment_id: UUID) -> AppointmentModel:
        row = self._session.get(AppointmentModel, appointment_id)
        if row is None:
            raise AppointmentNotFoundError(str(appointment_id))
        return row

    def get(self, appointment_id: UUID) -> AppointmentSnapshot | None:
        row = self._session.get(AppointmentModel, appointment_id)
        return appointment_snapshot(row) if row is not None else None

    def add_refund(self, appointment_id: UUID, amount: int, refunded_at: datetime) -> int:
        if amount <= 0:
            raise InvalidAmountError(amount)
        row = self._row(appointment_id)
        row.refund_total = (row.refund_total or 0) + amount
        row.last_refund_at = refunded_at
        self._session.flush()
        logger.info(
            "appointment_refund_total_updated",
            extra={"appointment_id": appointment_id, "amount": amount, "refund_total": row.refund_total},
        )
        return row.refund_total

    def set_active_appeal(self, appointment_id: UUID, appeal_id: UUID | None) -> None:
        row = self._row(appointment_id)
        row.has_active_appeal = appeal_id is not None
        row.active_appeal_id = appeal_id
        self._session.flush()


class SqlUserStore:
    def __init__(self, session: Session):
        self._session = session

    def _row(self, user_id: UUID, write: str) -> UserModel | None:
        row = self._session.get(UserModel, user_id)
        if row is None:
            logger.warning("user_write_skipped", extra={"user_id": user_id, "write": write})
        return row

    def get(self, user_id: UUID) -> UserSnapshot | None:
        row = self._session.get(UserModel, user_id)
        return user_snapshot(row) if row is not None else None

    def get_many(self, user_ids: list[UUID]) -> dict[UUID, UserSnapshot]:
        if not user_ids:
            return {}
        rows = self._session.execute(
            select(UserModel).where(UserModel.id.in_(user_ids))
        ).scalars().all()
        return {row.id: user_snapshot(row) for row in rows}

    def list_by_role(self, role: ActorRole) -> list[UserSnapshot]:
        rows = self._session.execute(
            select(UserModel).where(UserModel.role == role.value).order_by(UserModel.id)
        ).scalars().all()
        return [user_snapshot(r) for r in rows]

    def save_scrutiny(self, user_id: UUID, profile: ScrutinyProfile, at: datetime) -> None:
        row = self._row(user_id, "save_scrutiny")
        if row is None:
            return
        stats = asdict(profile.stats)
        stats["category_counts"] = dict(profile.stats.category_counts)
        row.scrutiny_level = profile.level.value
        row.scrutiny_reason = profile.reason
        row.scrutiny_set_at = at if profile.level is not ScrutinyLevel.NONE else None
        row.appeal_stats = stats
        row.appeal_patterns = {
            "recent_appeals": profile.recent_appeals,
            "recent_denials": profile.recent_denials,
        }
        self._session.flush()

    def unfreeze(self, user_id: UUID) -> bool:
        row = self._row(user_id, "unfreeze")
        if row is None:
            return False
        was_frozen = bool(row.account_frozen)
        row.account_frozen = False
        row.account_frozen_at = None
        row.account_frozen_reason = None
        self._session.flush()
        return was_frozen

    def reduce_outstanding_balance(self, user_id: UUID, amount: int) -> int:
        row = self._row(user_id, "reduce_outstanding_balance")
        if row is None:
            return 0
        applied = min(max(amount, 0), row.outstanding_balance or 0)
        row.outstanding_balance = (row.outstanding_balance or 0) - applied
        self._session.flush()
        return applied
