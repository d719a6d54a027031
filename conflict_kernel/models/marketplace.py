"""
Module: conflict_kernel.models.marketplace
Responsibility: Local projection of the marketplace records the engine reads
    and updates through the AppointmentStore and UserStore ports.
Architecture position: Kernel > Models.  Only the columns the dispute engine
    consumes are modelled; generic account management lives elsewhere.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import JSON, Boolean, String
from sqlalchemy.orm import Mapped, mapped_column

from conflict_kernel.db.base import Base


class AppointmentModel(Base):
    __tablename__ = "appointments"

    homeowner_id: Mapped[UUID] = mapped_column(nullable=False)
    # UUID strings of every cleaner on the job
    cleaner_ids: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    price: Mapped[int] = mapped_column(nullable=False)

    was_cancelled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    cancelled_at: Mapped[datetime | None] = mapped_column(nullable=True)
    appeal_window_expires_at: Mapped[datetime | None] = mapped_column(nullable=True)
    cancellation_fee_charged: Mapped[int] = mapped_column(nullable=False, default=0)
    fee_charge_ref: Mapped[str | None] = mapped_column(String(255), nullable=True)
    refund_withheld: Mapped[int] = mapped_column(nullable=False, default=0)

    payment_intent_ref: Mapped[str | None] = mapped_column(String(255), nullable=True)
    refund_total: Mapped[int] = mapped_column(nullable=False, default=0)
    last_refund_at: Mapped[datetime | None] = mapped_column(nullable=True)

    has_active_appeal: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    active_appeal_id: Mapped[UUID | None] = mapped_column(nullable=True)


class UserModel(Base):
    __tablename__ = "users"

    role: Mapped[str] = mapped_column(String(20), nullable=False)
    first_name: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    last_name: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(40), nullable=True)
    payout_account_ref: Mapped[str | None] = mapped_column(String(255), nullable=True)

    account_frozen: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    account_frozen_at: Mapped[datetime | None] = mapped_column(nullable=True)
    account_frozen_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)
    warning_count: Mapped[int] = mapped_column(nullable=False, default=0)
    outstanding_balance: Mapped[int] = mapped_column(nullable=False, default=0)

    scrutiny_level: Mapped[str] = mapped_column(String(20), nullable=False, default="none")
    scrutiny_reason: Mapped[str | None] = mapped_column(String(255), nullable=True)
    scrutiny_set_at: Mapped[datetime | None] = mapped_column(nullable=True)
    appeal_stats: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    appeal_patterns: Mapped[dict | None] = mapped_column(JSON, nullable=True)
