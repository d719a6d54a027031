"""
Ledger -- append-only job ledger writes and gateway reconciliation.

Responsibility:
    Records every monetary fact of a job as an immutable ``LedgerEntry``:
    bookings, cancellations (refund, fee revenue, cleaner payouts, platform
    fees, processor fees), appeal refunds and fee reversals, conflict
    refunds and payouts, home-size adjustments.  Reconciles recorded
    entries against the payment gateway's own objects.

Architecture position:
    Kernel > Services.  Called by the appeal and adjustment workflows, by
    MoneyMovement, and by the reconciliation batch job.

Invariants enforced:
    - Append-only: entries are inserted once; reconciliation only touches
      the fields in LEDGER_RECONCILIATION_FIELDS (ORM listener backed).
    - tax_year/tax_quarter are derived from the effective date, tax_category
      from the entry type, form_1099_eligible from party type and amount.
    - Multi-entry recordings (cancellation, booking) are added together and
      flushed once, so a failed insert invalidates the caller's transaction
      as a whole and nothing from the set survives.

Failure modes:
    - IntegrityError / ImmutabilityViolationError propagate to the caller,
      which rolls back its unit of work.
    - Gateway errors during reconciliation are isolated per entry and
      recorded as discrepancy notes; they never abort the page.

Non-goals:
    - Does NOT commit.  The owning workflow or batch job does.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import and_, or_, select
from sqlalchemy.orm import Session

from conflict_kernel.db.base import SYSTEM_ACTOR_ID
from conflict_kernel.domain.clock import Clock, SystemClock
from conflict_kernel.domain.ledger import (
    ADDON_ENTRY_TYPES,
    FORM_1099_THRESHOLD,
    AccountType,
    BookingDetails,
    CancellationDetails,
    Direction,
    EntryType,
    GatewayObjectType,
    LedgerEntrySpec,
    PartyType,
    is_form_1099_eligible,
    tax_category_for,
    tax_period,
)
from conflict_kernel.domain.ports import PaymentGateway
from conflict_kernel.logging_config import get_logger
from conflict_kernel.models.ledger_entry import LedgerEntry

logger = get_logger("services.ledger")


@dataclass(frozen=True)
class ReconciliationDiscrepancy:
    """A recorded data condition: ledger and gateway disagree."""

    entry_id: UUID
    external_ref: str
    stored_amount: int
    external_amount: int | None
    note: str


@dataclass(frozen=True)
class ReconciliationResult:
    batch: str
    matched: int
    mismatched: int
    errors: int
    discrepancies: tuple[ReconciliationDiscrepancy, ...] = ()

    @property
    def processed(self) -> int:
        return self.matched + self.mismatched + self.errors


def default_batch_id(clock: Clock) -> str:
    return f"RECON-{clock.now():%Y%m%d-%H%M%S}"


class Ledger:
    """
    Job ledger writer.

    Contract:
        ``record*`` methods add and flush ``LedgerEntry`` rows in the
        caller's session and return them.  ``reconcile`` processes one page
        of unreconciled entries.

    Guarantees:
        - ``amount`` is stored unsigned (absolute value of the input).
        - Clock is injectable for deterministic effective dates.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        form_1099_threshold: int = FORM_1099_THRESHOLD,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._form_1099_threshold = form_1099_threshold

    # =========================================================================
    # Recording
    # =========================================================================

    def _build(self, spec: LedgerEntrySpec, actor_id: UUID | None) -> LedgerEntry:
        now = self._clock.now()
        effective_date = spec.effective_date or now.date()
        tax_year, tax_quarter = tax_period(effective_date)
        amount = abs(spec.amount)
        return LedgerEntry(
            appointment_id=spec.appointment_id,
            appeal_id=spec.appeal_id,
            adjustment_id=spec.adjustment_id,
            entry_type=spec.entry_type.value,
            amount=amount,
            direction=spec.direction.value,
            account_type=spec.account_type.value,
            party_type=spec.party_type.value,
            party_id=spec.party_id,
            description=spec.description,
            external_ref=spec.external_ref,
            external_object_type=(
                spec.external_object_type.value if spec.external_object_type else None
            ),
            effective_date=effective_date,
            posted_at=now,
            tax_year=tax_year,
            tax_quarter=tax_quarter,
            tax_category=tax_category_for(spec.entry_type).value,
            form_1099_eligible=is_form_1099_eligible(
                spec.party_type, amount, self._form_1099_threshold
            ),
            reconciled=False,
            created_by_id=actor_id or SYSTEM_ACTOR_ID,
        )

    def record(self, spec: LedgerEntrySpec, actor_id: UUID | None = None) -> LedgerEntry:
        """Record a single entry."""
        return self.record_many([spec], actor_id)[0]

    def record_many(
        self,
        specs: Sequence[LedgerEntrySpec],
        actor_id: UUID | None = None,
    ) -> list[LedgerEntry]:
        """Add all entries and flush once."""
        entries = [self._build(spec, actor_id) for spec in specs]
        self._session.add_all(entries)
        self._session.flush()
        for entry in entries:
            logger.info(
                "ledger_entry_recorded",
                extra={
                    "entry_id": str(entry.id),
                    "entry_type": entry.entry_type,
                    "direction": entry.direction,
                    "amount": entry.amount,
                    "appointment_id": entry.appointment_id,
                },
            )
        return entries

    def record_cancellation(
        self,
        appointment_id: UUID,
        details: CancellationDetails,
        actor_id: UUID | None = None,
    ) -> list[LedgerEntry]:
        """
        Record every monetary consequence of a cancellation as one set.

        Produces, when the corresponding amount is positive: the homeowner
        refund (``cancellation_refund`` when the whole original amount is
        returned, ``cancellation_partial_refund`` otherwise), the
        cancellation fee revenue, a payout plus platform fee per cleaner,
        and the processor fee.
        """
        effective = details.effective_date
        specs: list[LedgerEntrySpec] = []

        if details.refund_amount > 0:
            is_full = details.refund_amount >= details.original_amount
            specs.append(LedgerEntrySpec(
                entry_type=(
                    EntryType.CANCELLATION_REFUND if is_full
                    else EntryType.CANCELLATION_PARTIAL_REFUND
                ),
                amount=details.refund_amount,
                direction=Direction.DEBIT,
                account_type=AccountType.REFUNDS_PAYABLE,
                party_type=PartyType.HOMEOWNER,
                party_id=details.homeowner_id,
                appointment_id=appointment_id,
                description="Full refund on cancellation" if is_full else "Partial refund on cancellation",
                external_ref=details.refund_ref,
                external_object_type=GatewayObjectType.REFUND if details.refund_ref else None,
                effective_date=effective,
            ))

        if details.cancellation_fee > 0:
            specs.append(LedgerEntrySpec(
                entry_type=EntryType.CANCELLATION_FEE_REVENUE,
                amount=details.cancellation_fee,
                direction=Direction.CREDIT,
                account_type=AccountType.PLATFORM_REVENUE,
                party_type=PartyType.HOMEOWNER,
                party_id=details.homeowner_id,
                appointment_id=appointment_id,
                description="Cancellation fee",
                external_ref=details.fee_charge_ref,
                external_object_type=GatewayObjectType.CHARGE if details.fee_charge_ref else None,
                effective_date=effective,
            ))

        for share in details.cleaner_payouts:
            if share.net_amount <= 0:
                continue
            specs.append(LedgerEntrySpec(
                entry_type=EntryType.CLEANER_PAYOUT_CANCELLATION,
                amount=share.net_amount,
                direction=Direction.DEBIT,
                account_type=AccountType.PAYOUTS_PAYABLE,
                party_type=PartyType.CLEANER,
                party_id=share.cleaner_id,
                appointment_id=appointment_id,
                description="Cleaner compensation for cancelled job",
                external_ref=share.transfer_ref,
                external_object_type=GatewayObjectType.TRANSFER if share.transfer_ref else None,
                effective_date=effective,
            ))
            if share.platform_fee > 0:
                specs.append(LedgerEntrySpec(
                    entry_type=EntryType.PLATFORM_FEE_STANDARD,
                    amount=share.platform_fee,
                    direction=Direction.CREDIT,
                    account_type=AccountType.PLATFORM_REVENUE,
                    party_type=PartyType.PLATFORM,
                    appointment_id=appointment_id,
                    description="Platform fee on cancellation payout",
                    effective_date=effective,
                ))

        if details.processor_fee > 0:
            specs.append(LedgerEntrySpec(
                entry_type=EntryType.STRIPE_FEE,
                amount=details.processor_fee,
                direction=Direction.DEBIT,
                account_type=AccountType.STRIPE_FEES,
                party_type=PartyType.STRIPE,
                appointment_id=appointment_id,
                description="Payment processing fee",
                external_ref=details.processor_fee_ref,
                external_object_type=GatewayObjectType.CHARGE if details.processor_fee_ref else None,
                effective_date=effective,
            ))

        if not specs:
            return []
        entries = self.record_many(specs, actor_id)
        logger.info(
            "cancellation_recorded",
            extra={"appointment_id": appointment_id, "entry_count": len(entries)},
        )
        return entries

    def record_booking(
        self,
        appointment_id: UUID,
        details: BookingDetails,
        actor_id: UUID | None = None,
    ) -> list[LedgerEntry]:
        """Base booking revenue plus one entry per priced add-on."""
        specs = [LedgerEntrySpec(
            entry_type=EntryType.BOOKING_REVENUE,
            amount=details.base_price,
            direction=Direction.CREDIT,
            account_type=AccountType.REVENUE,
            party_type=PartyType.HOMEOWNER,
            party_id=details.homeowner_id,
            appointment_id=appointment_id,
            description="Cleaning service booking",
            external_ref=details.payment_ref,
            external_object_type=GatewayObjectType.PAYMENT_INTENT if details.payment_ref else None,
            effective_date=details.effective_date,
        )]
        for addon, price in details.addons.items():
            if price <= 0:
                continue
            specs.append(LedgerEntrySpec(
                entry_type=ADDON_ENTRY_TYPES[addon],
                amount=price,
                direction=Direction.CREDIT,
                account_type=AccountType.REVENUE,
                party_type=PartyType.HOMEOWNER,
                party_id=details.homeowner_id,
                appointment_id=appointment_id,
                description=f"Add-on: {addon.value}",
                effective_date=details.effective_date,
            ))
        return self.record_many(specs, actor_id)

    def record_appeal_refund(
        self,
        appointment_id: UUID,
        appeal_id: UUID,
        homeowner_id: UUID,
        amount: int,
        refund_ref: str | None,
        actor_id: UUID | None = None,
    ) -> LedgerEntry:
        return self.record(LedgerEntrySpec(
            entry_type=EntryType.APPEAL_REFUND,
            amount=amount,
            direction=Direction.DEBIT,
            account_type=AccountType.REFUNDS_PAYABLE,
            party_type=PartyType.HOMEOWNER,
            party_id=homeowner_id,
            appointment_id=appointment_id,
            appeal_id=appeal_id,
            description="Refund granted on appeal",
            external_ref=refund_ref,
            external_object_type=GatewayObjectType.REFUND if refund_ref else None,
        ), actor_id)

    def record_appeal_fee_reversal(
        self,
        appointment_id: UUID,
        appeal_id: UUID,
        party_type: PartyType,
        party_id: UUID,
        amount: int,
        refund_ref: str | None,
        actor_id: UUID | None = None,
    ) -> LedgerEntry:
        return self.record(LedgerEntrySpec(
            entry_type=EntryType.APPEAL_FEE_REVERSAL,
            amount=amount,
            direction=Direction.DEBIT,
            account_type=AccountType.PLATFORM_REVENUE,
            party_type=party_type,
            party_id=party_id,
            appointment_id=appointment_id,
            appeal_id=appeal_id,
            description="Cancellation fee reversed on appeal",
            external_ref=refund_ref,
            external_object_type=GatewayObjectType.REFUND if refund_ref else None,
        ), actor_id)

    def record_conflict_refund(
        self,
        appointment_id: UUID,
        homeowner_id: UUID,
        amount: int,
        refund_ref: str,
        reason: str,
        appeal_id: UUID | None = None,
        adjustment_id: UUID | None = None,
        actor_id: UUID | None = None,
    ) -> LedgerEntry:
        return self.record(LedgerEntrySpec(
            entry_type=EntryType.CONFLICT_REFUND,
            amount=amount,
            direction=Direction.DEBIT,
            account_type=AccountType.REFUNDS_PAYABLE,
            party_type=PartyType.HOMEOWNER,
            party_id=homeowner_id,
            appointment_id=appointment_id,
            appeal_id=appeal_id,
            adjustment_id=adjustment_id,
            description=f"Conflict refund: {reason}",
            external_ref=refund_ref,
            external_object_type=GatewayObjectType.REFUND,
        ), actor_id)

    def record_conflict_payout(
        self,
        appointment_id: UUID,
        cleaner_id: UUID,
        amount: int,
        transfer_ref: str,
        reason: str,
        appeal_id: UUID | None = None,
        adjustment_id: UUID | None = None,
        actor_id: UUID | None = None,
    ) -> LedgerEntry:
        return self.record(LedgerEntrySpec(
            entry_type=EntryType.CONFLICT_PAYOUT,
            amount=amount,
            direction=Direction.DEBIT,
            account_type=AccountType.PAYOUTS_PAYABLE,
            party_type=PartyType.CLEANER,
            party_id=cleaner_id,
            appointment_id=appointment_id,
            appeal_id=appeal_id,
            adjustment_id=adjustment_id,
            description=f"Conflict payout: {reason}",
            external_ref=transfer_ref,
            external_object_type=GatewayObjectType.TRANSFER,
        ), actor_id)

    def record_adjustment(
        self,
        appointment_id: UUID,
        adjustment_id: UUID,
        homeowner_id: UUID,
        price_difference: int,
        actor_id: UUID | None = None,
    ) -> LedgerEntry | None:
        """Positive deltas are charged to the homeowner, negative ones refunded."""
        if price_difference == 0:
            return None
        if price_difference > 0:
            spec = LedgerEntrySpec(
                entry_type=EntryType.ADJUSTMENT_CHARGE,
                amount=price_difference,
                direction=Direction.CREDIT,
                account_type=AccountType.REVENUE,
                party_type=PartyType.HOMEOWNER,
                party_id=homeowner_id,
                appointment_id=appointment_id,
                adjustment_id=adjustment_id,
                description="Home size adjustment charge",
            )
        else:
            spec = LedgerEntrySpec(
                entry_type=EntryType.ADJUSTMENT_REFUND,
                amount=-price_difference,
                direction=Direction.DEBIT,
                account_type=AccountType.REFUNDS_PAYABLE,
                party_type=PartyType.HOMEOWNER,
                party_id=homeowner_id,
                appointment_id=appointment_id,
                adjustment_id=adjustment_id,
                description="Home size adjustment refund",
            )
        return self.record(spec, actor_id)

    # =========================================================================
    # Reconciliation
    # =========================================================================

    def unreconciled_page(
        self,
        limit: int,
        after: LedgerEntry | None = None,
    ) -> list[LedgerEntry]:
        """Unreconciled entries holding an external reference, keyset-paged."""
        stmt = select(LedgerEntry).where(
            LedgerEntry.reconciled.is_(False),
            LedgerEntry.external_ref.is_not(None),
        )
        if after is not None:
            stmt = stmt.where(or_(
                LedgerEntry.posted_at > after.posted_at,
                and_(LedgerEntry.posted_at == after.posted_at, LedgerEntry.id > after.id),
            ))
        stmt = stmt.order_by(LedgerEntry.posted_at, LedgerEntry.id).limit(limit)
        return list(self._session.execute(stmt).scalars().all())

    def reconcile(
        self,
        gateway: PaymentGateway,
        batch: str | None = None,
        limit: int = 100,
        entries: Sequence[LedgerEntry] | None = None,
    ) -> ReconciliationResult:
        """
        Compare one page of entries against the gateway.

        Exact match: reconciled, discrepancy cleared.  Mismatch or missing
        gateway object: left unreconciled with ``discrepancy_amount`` set.
        Fetch error: left unreconciled with an ``Error:`` note, counted in
        ``errors``.  Only reconciliation fields are written.
        """
        batch = batch or default_batch_id(self._clock)
        page = list(entries) if entries is not None else self.unreconciled_page(limit)
        matched = mismatched = errors = 0
        discrepancies: list[ReconciliationDiscrepancy] = []

        for entry in page:
            object_type = entry.external_object_type_enum or GatewayObjectType.PAYMENT_INTENT
            entry.reconciliation_batch = batch
            try:
                external = gateway.retrieve(object_type, entry.external_ref)
            except Exception as exc:
                errors += 1
                entry.reconciled = False
                entry.discrepancy_notes = f"Error: {exc}"
                discrepancies.append(ReconciliationDiscrepancy(
                    entry.id, entry.external_ref, entry.amount, None, entry.discrepancy_notes
                ))
                logger.warning(
                    "reconciliation_fetch_failed",
                    extra={"entry_id": str(entry.id), "external_ref": entry.external_ref, "error": str(exc)},
                )
                continue

            if external is not None and external.amount == entry.amount:
                matched += 1
                entry.reconciled = True
                entry.reconciled_at = self._clock.now()
                entry.discrepancy_amount = 0
                entry.discrepancy_notes = None
                continue

            mismatched += 1
            entry.reconciled = False
            if external is None:
                entry.discrepancy_amount = entry.amount
                entry.discrepancy_notes = "Stripe amount: not found"
            else:
                entry.discrepancy_amount = abs(entry.amount - external.amount)
                entry.discrepancy_notes = f"Stripe amount: {external.amount}"
            discrepancies.append(ReconciliationDiscrepancy(
                entry.id,
                entry.external_ref,
                entry.amount,
                external.amount if external is not None else None,
                entry.discrepancy_notes,
            ))
            logger.warning(
                "reconciliation_discrepancy",
                extra={
                    "entry_id": str(entry.id),
                    "external_ref": entry.external_ref,
                    "discrepancy_amount": entry.discrepancy_amount,
                },
            )

        self._session.flush()
        return ReconciliationResult(
            batch=batch,
            matched=matched,
            mismatched=mismatched,
            errors=errors,
            discrepancies=tuple(discrepancies),
        )
