"""
Ledger domain rules (``conflict_kernel.domain.ledger``).

Responsibility
--------------
The closed vocabularies of the job ledger (entry types, directions, account
types, parties, tax categories) and the pure functions over them: tax
period and category derivation, 1099 eligibility, balance and summary
roll-ups.

Architecture position
---------------------
**Kernel domain layer** -- pure.  ``conflict_kernel.services.ledger_service``
persists what these rules describe; selectors and reports reuse the same
roll-ups so numbers never disagree between write and read paths.

Invariants enforced
-------------------
* Amounts are unsigned integers in minor currency units; the sign lives in
  ``Direction``.
* ``TAX_CATEGORY_BY_ENTRY_TYPE`` is total over ``EntryType``.  An entry
  type without a tax category fails at import time, not at posting time.
* ``calculate_balance`` is credits minus debits.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Protocol
from uuid import UUID

FORM_1099_THRESHOLD = 60000  # $600.00 in cents


class EntryType(str, Enum):
    BOOKING_REVENUE = "booking_revenue"
    ADDON_LINENS = "addon_linens"
    ADDON_TIME_WINDOW = "addon_time_window"
    ADDON_HIGH_VOLUME = "addon_high_volume"
    ADDON_LAST_MINUTE = "addon_last_minute"
    CANCELLATION_REFUND = "cancellation_refund"
    CANCELLATION_PARTIAL_REFUND = "cancellation_partial_refund"
    CANCELLATION_FEE_REVENUE = "cancellation_fee_revenue"
    CLEANER_PAYOUT_CANCELLATION = "cleaner_payout_cancellation"
    CLEANER_PAYOUT_STANDARD = "cleaner_payout_standard"
    PLATFORM_FEE_STANDARD = "platform_fee_standard"
    STRIPE_FEE = "stripe_fee"
    APPEAL_REFUND = "appeal_refund"
    APPEAL_FEE_REVERSAL = "appeal_fee_reversal"
    CONFLICT_REFUND = "conflict_refund"
    CONFLICT_PAYOUT = "conflict_payout"
    ADJUSTMENT_CHARGE = "adjustment_charge"
    ADJUSTMENT_REFUND = "adjustment_refund"


class Direction(str, Enum):
    CREDIT = "credit"
    DEBIT = "debit"


class AccountType(str, Enum):
    REVENUE = "revenue"
    PLATFORM_REVENUE = "platform_revenue"
    REFUNDS_PAYABLE = "refunds_payable"
    PAYOUTS_PAYABLE = "payouts_payable"
    STRIPE_FEES = "stripe_fees"


class PartyType(str, Enum):
    HOMEOWNER = "homeowner"
    CLEANER = "cleaner"
    PLATFORM = "platform"
    STRIPE = "stripe"


class TaxCategory(str, Enum):
    INCOME = "income"
    REFUND = "refund"
    PAYOUT = "payout"
    EXPENSE = "expense"
    OTHER = "other"


class GatewayObjectType(str, Enum):
    PAYMENT_INTENT = "payment_intent"
    CHARGE = "charge"
    REFUND = "refund"
    TRANSFER = "transfer"


class AddonType(str, Enum):
    LINENS = "linens"
    TIME_WINDOW = "time_window"
    HIGH_VOLUME = "high_volume"
    LAST_MINUTE = "last_minute"


TAX_CATEGORY_BY_ENTRY_TYPE: Mapping[EntryType, TaxCategory] = {
    EntryType.BOOKING_REVENUE: TaxCategory.INCOME,
    EntryType.ADDON_LINENS: TaxCategory.OTHER,
    EntryType.ADDON_TIME_WINDOW: TaxCategory.OTHER,
    EntryType.ADDON_HIGH_VOLUME: TaxCategory.OTHER,
    EntryType.ADDON_LAST_MINUTE: TaxCategory.OTHER,
    EntryType.CANCELLATION_REFUND: TaxCategory.REFUND,
    EntryType.CANCELLATION_PARTIAL_REFUND: TaxCategory.REFUND,
    EntryType.CANCELLATION_FEE_REVENUE: TaxCategory.INCOME,
    EntryType.CLEANER_PAYOUT_CANCELLATION: TaxCategory.PAYOUT,
    EntryType.CLEANER_PAYOUT_STANDARD: TaxCategory.PAYOUT,
    EntryType.PLATFORM_FEE_STANDARD: TaxCategory.INCOME,
    EntryType.STRIPE_FEE: TaxCategory.EXPENSE,
    EntryType.APPEAL_REFUND: TaxCategory.REFUND,
    EntryType.APPEAL_FEE_REVERSAL: TaxCategory.REFUND,
    EntryType.CONFLICT_REFUND: TaxCategory.REFUND,
    EntryType.CONFLICT_PAYOUT: TaxCategory.PAYOUT,
    EntryType.ADJUSTMENT_CHARGE: TaxCategory.INCOME,
    EntryType.ADJUSTMENT_REFUND: TaxCategory.REFUND,
}

ADDON_ENTRY_TYPES: Mapping[AddonType, EntryType] = {
    AddonType.LINENS: EntryType.ADDON_LINENS,
    AddonType.TIME_WINDOW: EntryType.ADDON_TIME_WINDOW,
    AddonType.HIGH_VOLUME: EntryType.ADDON_HIGH_VOLUME,
    AddonType.LAST_MINUTE: EntryType.ADDON_LAST_MINUTE,
}

REFUND_ENTRY_TYPES: frozenset[EntryType] = frozenset({
    EntryType.CANCELLATION_REFUND,
    EntryType.CANCELLATION_PARTIAL_REFUND,
    EntryType.APPEAL_REFUND,
    EntryType.CONFLICT_REFUND,
    EntryType.ADJUSTMENT_REFUND,
})

REVENUE_ACCOUNTS: frozenset[AccountType] = frozenset({
    AccountType.REVENUE,
    AccountType.PLATFORM_REVENUE,
})

for _table_name, _table, _domain in (
    ("TAX_CATEGORY_BY_ENTRY_TYPE", TAX_CATEGORY_BY_ENTRY_TYPE, EntryType),
    ("ADDON_ENTRY_TYPES", ADDON_ENTRY_TYPES, AddonType),
):
    _missing = set(_domain) - set(_table)
    if _missing:
        raise RuntimeError(
            f"{_table_name} is missing {sorted(m.value for m in _missing)}"
        )


class LedgerFact(Protocol):
    """Anything the roll-ups can read: ORM rows and specs alike."""

    amount: int
    direction: Direction
    entry_type: EntryType
    account_type: AccountType
    party_type: PartyType


@dataclass(frozen=True)
class LedgerEntrySpec:
    """An entry to be recorded.  ``amount`` is normalized to its absolute value."""

    entry_type: EntryType
    amount: int
    direction: Direction
    account_type: AccountType
    party_type: PartyType
    appointment_id: UUID | None = None
    party_id: UUID | None = None
    description: str | None = None
    external_ref: str | None = None
    external_object_type: GatewayObjectType | None = None
    effective_date: date | None = None
    appeal_id: UUID | None = None
    adjustment_id: UUID | None = None


@dataclass(frozen=True)
class CleanerPayoutShare:
    """One cleaner's cut of a cancelled multi-cleaner job."""

    cleaner_id: UUID
    net_amount: int
    platform_fee: int = 0
    transfer_ref: str | None = None


@dataclass(frozen=True)
class CancellationDetails:
    """Monetary facts of a cancellation, as settled with the gateway."""

    homeowner_id: UUID
    original_amount: int
    refund_amount: int = 0
    refund_ref: str | None = None
    cancellation_fee: int = 0
    fee_charge_ref: str | None = None
    cleaner_payouts: tuple[CleanerPayoutShare, ...] = ()
    processor_fee: int = 0
    processor_fee_ref: str | None = None
    effective_date: date | None = None


@dataclass(frozen=True)
class BookingDetails:
    homeowner_id: UUID
    base_price: int
    payment_ref: str | None = None
    addons: Mapping[AddonType, int] = field(default_factory=dict)
    effective_date: date | None = None


@dataclass(frozen=True)
class EntryTypeTotals:
    count: int
    total: int


@dataclass(frozen=True)
class LedgerSummary:
    entry_count: int
    total_revenue: int
    total_refunds: int
    total_payouts: int
    net_platform_revenue: int
    by_entry_type: Mapping[EntryType, EntryTypeTotals]


def tax_category_for(entry_type: EntryType) -> TaxCategory:
    return TAX_CATEGORY_BY_ENTRY_TYPE[EntryType(entry_type)]


def tax_period(effective_date: date) -> tuple[int, int]:
    """(tax_year, tax_quarter) for an effective date."""
    return effective_date.year, (effective_date.month - 1) // 3 + 1


def is_form_1099_eligible(
    party_type: PartyType,
    amount: int,
    threshold: int = FORM_1099_THRESHOLD,
) -> bool:
    return PartyType(party_type) is PartyType.CLEANER and abs(amount) >= threshold


def calculate_balance(entries: Iterable[LedgerFact]) -> int:
    """Sum of credits minus sum of debits."""
    balance = 0
    for entry in entries:
        if Direction(entry.direction) is Direction.CREDIT:
            balance += entry.amount
        else:
            balance -= entry.amount
    return balance


def calculate_summary(entries: Iterable[LedgerFact]) -> LedgerSummary:
    """Bucket entries by type and roll up revenue, refunds, payouts."""
    counts: dict[EntryType, list[int]] = {}
    entry_count = 0
    total_revenue = 0
    total_refunds = 0
    total_payouts = 0
    net_platform_revenue = 0

    for entry in entries:
        entry_type = EntryType(entry.entry_type)
        direction = Direction(entry.direction)
        account = AccountType(entry.account_type)
        entry_count += 1

        bucket = counts.setdefault(entry_type, [0, 0])
        bucket[0] += 1
        bucket[1] += entry.amount

        if direction is Direction.CREDIT and account in REVENUE_ACCOUNTS:
            total_revenue += entry.amount
        if entry_type in REFUND_ENTRY_TYPES:
            total_refunds += entry.amount
        if PartyType(entry.party_type) is PartyType.CLEANER:
            total_payouts += entry.amount
        if account is AccountType.PLATFORM_REVENUE:
            if direction is Direction.CREDIT:
                net_platform_revenue += entry.amount
            else:
                net_platform_revenue -= entry.amount

    return LedgerSummary(
        entry_count=entry_count,
        total_revenue=total_revenue,
        total_refunds=total_refunds,
        total_payouts=total_payouts,
        net_platform_revenue=net_platform_revenue,
        by_entry_type={
            k: EntryTypeTotals(count=v[0], total=v[1]) for k, v in counts.items()
        },
    )
