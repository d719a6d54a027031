"""
Module: conflict_kernel.models.ledger_entry
Responsibility: ORM persistence for job ledger entries.
Architecture position: Kernel > Models.  May import from db/base.py and domain/.

Invariants enforced:
    - Append-only: financial fields are frozen from creation.  Only the
      reconciliation fields listed in LEDGER_RECONCILIATION_FIELDS may change
      afterwards (ORM listener in db/immutability.py).
    - amount is an unsigned BigInteger of minor currency units; the sign
      lives in ``direction``.
    - tax_year/tax_quarter are derived from effective_date at record time.

Audit relevance:
    Every monetary fact of a job (booking, cancellation, appeal refund,
    conflict refund/payout, processor fee) is one row here.  Reconciliation
    stamps each row with the batch that verified it against the gateway.
"""

from datetime import date, datetime
from uuid import UUID

from sqlalchemy import Boolean, CheckConstraint, Date, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from conflict_kernel.db.base import TrackedBase
from conflict_kernel.domain.ledger import GatewayObjectType

LEDGER_RECONCILIATION_FIELDS = frozenset({
    "reconciled",
    "reconciled_at",
    "reconciliation_batch",
    "discrepancy_amount",
    "discrepancy_notes",
    "updated_at",
    "updated_by_id",
})


class LedgerEntry(TrackedBase):
    """One double-entry accounting fact tied to a job."""

    __tablename__ = "ledger_entries"

    __table_args__ = (
        CheckConstraint("amount >= 0", name="ck_ledger_amount_unsigned"),
        Index("idx_ledger_appointment", "appointment_id"),
        Index("idx_ledger_party", "party_type", "party_id"),
        Index("idx_ledger_tax", "tax_year", "tax_quarter"),
        Index("idx_ledger_unreconciled", "reconciled", "external_ref"),
        Index("idx_ledger_effective", "effective_date"),
    )

    appointment_id: Mapped[UUID | None] = mapped_column(nullable=True)
    appeal_id: Mapped[UUID | None] = mapped_column(nullable=True)
    adjustment_id: Mapped[UUID | None] = mapped_column(nullable=True)

    entry_type: Mapped[str] = mapped_column(String(50), nullable=False)
    amount: Mapped[int] = mapped_column(nullable=False)
    direction: Mapped[str] = mapped_column(String(10), nullable=False)
    account_type: Mapped[str] = mapped_column(String(30), nullable=False)
    party_type: Mapped[str] = mapped_column(String(20), nullable=False)
    party_id: Mapped[UUID | None] = mapped_column(nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    external_ref: Mapped[str | None] = mapped_column(String(255), nullable=True)
    external_object_type: Mapped[str | None] = mapped_column(String(30), nullable=True)

    effective_date: Mapped[date] = mapped_column(Date, nullable=False)
    posted_at: Mapped[datetime] = mapped_column(nullable=False)
    tax_year: Mapped[int] = mapped_column(nullable=False)
    tax_quarter: Mapped[int] = mapped_column(nullable=False)
    tax_category: Mapped[str] = mapped_column(String(20), nullable=False)
    form_1099_eligible: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Reconciliation fields (mutable after creation)
    reconciled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    reconciled_at: Mapped[datetime | None] = mapped_column(nullable=True)
    reconciliation_batch: Mapped[str | None] = mapped_column(String(40), nullable=True)
    discrepancy_amount: Mapped[int | None] = mapped_column(nullable=True)
    discrepancy_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    @property
    def external_object_type_enum(self) -> GatewayObjectType | None:
        if self.external_object_type is None:
            return None
        return GatewayObjectType(self.external_object_type)

    def __repr__(self) -> str:
        return f"<LedgerEntry {self.entry_type} {self.direction} {self.amount}>"
