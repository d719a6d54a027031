"""
Module: conflict_kernel.selectors.ledger_selector
Responsibility: Read-only ledger queries: per-appointment and per-case entry
    lists, period reports grouped by day/week/month/entry type, the cleaner
    1099 report and the unreconciled backlog.
Architecture position: Kernel > Selectors.  May import from models/, domain/
    and selectors/base.py.

Invariants enforced:
    - No stored balances.  Every total is computed from LedgerEntry rows at
      query time with ``calculate_balance`` / ``calculate_summary``.
    - Results are ordered by effective date, then posting time.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from enum import Enum
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from conflict_kernel.domain.ledger import (
    FORM_1099_THRESHOLD,
    Direction,
    LedgerSummary,
    PartyType,
    calculate_balance,
    calculate_summary,
)
from conflict_kernel.models.ledger_entry import LedgerEntry
from conflict_kernel.selectors.base import BaseSelector


class ReportGrouping(str, Enum):
    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    ENTRY_TYPE = "entry_type"


@dataclass(frozen=True)
class GroupTotals:
    count: int
    credits: int
    debits: int

    @property
    def balance(self) -> int:
        return self.credits - self.debits


@dataclass(frozen=True)
class LedgerReport:
    """Aggregated view of the ledger over a date range or tax period."""

    start_date: date | None
    end_date: date | None
    tax_year: int | None
    tax_quarter: int | None
    total_entries: int
    credits: int
    debits: int
    balance: int
    summary: LedgerSummary
    grouped: dict[str, GroupTotals]


@dataclass(frozen=True)
class Form1099Line:
    effective_date: date
    entry_type: str
    amount: int
    appointment_id: UUID | None


@dataclass(frozen=True)
class Form1099Report:
    cleaner_id: UUID
    tax_year: int
    total_payments: int
    form_1099_required: bool
    entries: tuple[Form1099Line, ...]

    @property
    def total_payments_formatted(self) -> str:
        return f"${self.total_payments / 100:.2f}"


def _group_key(entry: LedgerEntry, grouping: ReportGrouping) -> str:
    if grouping is ReportGrouping.ENTRY_TYPE:
        return entry.entry_type
    effective = entry.effective_date
    if grouping is ReportGrouping.DAY:
        return effective.isoformat()
    if grouping is ReportGrouping.WEEK:
        year, week, _ = effective.isocalendar()
        return f"{year}-W{week:02d}"
    return f"{effective.year}-{effective.month:02d}"


class LedgerSelector(BaseSelector[LedgerEntry]):
    """
    Selector for job ledger queries.

    Non-goals:
        - Does not reconcile; see ``Ledger.reconcile``.
    """

    def __init__(self, session: Session):
        super().__init__(session)

    def _ordered(self, stmt) -> list[LedgerEntry]:
        stmt = stmt.order_by(LedgerEntry.effective_date, LedgerEntry.posted_at)
        return list(self.session.execute(stmt).scalars().all())

    def entries_for_appointment(self, appointment_id: UUID) -> list[LedgerEntry]:
        return self._ordered(
            select(LedgerEntry).where(LedgerEntry.appointment_id == appointment_id)
        )

    def entries_for_appeal(self, appeal_id: UUID) -> list[LedgerEntry]:
        return self._ordered(select(LedgerEntry).where(LedgerEntry.appeal_id == appeal_id))

    def entries_for_adjustment(self, adjustment_id: UUID) -> list[LedgerEntry]:
        return self._ordered(
            select(LedgerEntry).where(LedgerEntry.adjustment_id == adjustment_id)
        )

    def appointment_balance(self, appointment_id: UUID) -> int:
        """Credits minus debits for one job."""
        return calculate_balance(self.entries_for_appointment(appointment_id))

    def report(
        self,
        start_date: date | None = None,
        end_date: date | None = None,
        group_by: ReportGrouping = ReportGrouping.ENTRY_TYPE,
        tax_year: int | None = None,
        tax_quarter: int | None = None,
    ) -> LedgerReport:
        """
        Aggregate entries in a period.

        ``start_date``/``end_date`` bound the effective date inclusively;
        either may be omitted.  ``tax_year``/``tax_quarter`` narrow further.
        """
        stmt = select(LedgerEntry)
        if start_date is not None:
            stmt = stmt.where(LedgerEntry.effective_date >= start_date)
        if end_date is not None:
            stmt = stmt.where(LedgerEntry.effective_date <= end_date)
        if tax_year is not None:
            stmt = stmt.where(LedgerEntry.tax_year == tax_year)
        if tax_quarter is not None:
            stmt = stmt.where(LedgerEntry.tax_quarter == tax_quarter)
        entries = self._ordered(stmt)

        buckets: dict[str, list[int]] = {}
        credits = debits = 0
        for entry in entries:
            bucket = buckets.setdefault(_group_key(entry, group_by), [0, 0, 0])
            bucket[0] += 1
            if entry.direction == Direction.CREDIT.value:
                bucket[1] += entry.amount
                credits += entry.amount
            else:
                bucket[2] += entry.amount
                debits += entry.amount

        return LedgerReport(
            start_date=start_date,
            end_date=end_date,
            tax_year=tax_year,
            tax_quarter=tax_quarter,
            total_entries=len(entries),
            credits=credits,
            debits=debits,
            balance=credits - debits,
            summary=calculate_summary(entries),
            grouped={
                key: GroupTotals(count=c, credits=cr, debits=db)
                for key, (c, cr, db) in buckets.items()
            },
        )

    def form_1099_report(
        self,
        cleaner_id: UUID,
        tax_year: int,
        threshold: int = FORM_1099_THRESHOLD,
    ) -> Form1099Report:
        entries = self._ordered(
            select(LedgerEntry).where(
                LedgerEntry.party_id == cleaner_id,
                LedgerEntry.party_type == PartyType.CLEANER.value,
                LedgerEntry.tax_year == tax_year,
            )
        )
        total = sum(e.amount for e in entries)
        return Form1099Report(
            cleaner_id=cleaner_id,
            tax_year=tax_year,
            total_payments=total,
            form_1099_required=total >= threshold,
            entries=tuple(
                Form1099Line(e.effective_date, e.entry_type, e.amount, e.appointment_id)
                for e in entries
            ),
        )

    def unreconciled(self, limit: int | None = None) -> list[LedgerEntry]:
        """Entries with an external reference still awaiting a clean match."""
        stmt = (
            select(LedgerEntry)
            .where(
                LedgerEntry.reconciled.is_(False),
                LedgerEntry.external_ref.is_not(None),
            )
            .order_by(LedgerEntry.posted_at, LedgerEntry.id)
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        return list(self.session.execute(stmt).scalars().all())

    def discrepancies(self, batch: str | None = None) -> list[LedgerEntry]:
        """Entries a reconciliation run flagged, optionally for one batch."""
        stmt = select(LedgerEntry).where(
            LedgerEntry.reconciled.is_(False),
            LedgerEntry.discrepancy_notes.is_not(None),
        )
        if batch is not None:
            stmt = stmt.where(LedgerEntry.reconciliation_batch == batch)
        return self._ordered(stmt)

