"""Pure ledger roll-ups: balance, summary, tax period and 1099 eligibility."""

from datetime import date

import pytest
from hypothesis import given
from hypothesis import strategies as st

from conflict_kernel.domain.ledger import (
    FORM_1099_THRESHOLD,
    AccountType,
    Direction,
    EntryType,
    LedgerEntrySpec,
    PartyType,
    TaxCategory,
    calculate_balance,
    calculate_summary,
    is_form_1099_eligible,
    tax_category_for,
    tax_period,
)


def _spec(entry_type, amount, direction, account, party=PartyType.HOMEOWNER):
    return LedgerEntrySpec(
        entry_type=entry_type,
        amount=amount,
        direction=direction,
        account_type=account,
        party_type=party,
    )


BOOKING = _spec(EntryType.BOOKING_REVENUE, 15000, Direction.CREDIT, AccountType.REVENUE)
REFUND = _spec(EntryType.CANCELLATION_PARTIAL_REFUND, 7500, Direction.DEBIT, AccountType.REFUNDS_PAYABLE)
FEE = _spec(EntryType.CANCELLATION_FEE_REVENUE, 2500, Direction.CREDIT, AccountType.PLATFORM_REVENUE)
PAYOUT = _spec(
    EntryType.CLEANER_PAYOUT_CANCELLATION, 2000, Direction.DEBIT,
    AccountType.PAYOUTS_PAYABLE, PartyType.CLEANER,
)
FEE_REVERSAL = _spec(EntryType.APPEAL_FEE_REVERSAL, 1000, Direction.DEBIT, AccountType.PLATFORM_REVENUE)


class TestBalance:

    def test_credits_minus_debits(self):
        # 15000 + 2500 - 7500 = 10000
        assert calculate_balance([BOOKING, REFUND, FEE]) == 10000

    def test_empty(self):
        assert calculate_balance([]) == 0

    @given(st.lists(st.tuples(st.integers(0, 10**7), st.sampled_from(list(Direction))), max_size=30))
    def test_balance_is_signed_sum(self, rows):
        specs = [
            _spec(EntryType.BOOKING_REVENUE, amount, direction, AccountType.REVENUE)
            for amount, direction in rows
        ]
        expected = sum(a if d is Direction.CREDIT else -a for a, d in rows)
        assert calculate_balance(specs) == expected


class TestSummary:

    def test_rollups(self):
        summary = calculate_summary([BOOKING, REFUND, FEE, PAYOUT, FEE_REVERSAL])
        assert summary.entry_count == 5
        assert summary.total_revenue == 17500
        assert summary.total_refunds == 7500
        assert summary.total_payouts == 2000
        assert summary.net_platform_revenue == 1500

    def test_by_entry_type(self):
        summary = calculate_summary([BOOKING, BOOKING, REFUND])
        assert summary.by_entry_type[EntryType.BOOKING_REVENUE].count == 2
        assert summary.by_entry_type[EntryType.BOOKING_REVENUE].total == 30000
        assert summary.by_entry_type[EntryType.CANCELLATION_PARTIAL_REFUND].count == 1


class TestTaxPeriod:

    @pytest.mark.parametrize("day,expected", [
        (date(2026, 1, 1), (2026, 1)),
        (date(2026, 3, 31), (2026, 1)),
        (date(2026, 4, 1), (2026, 2)),
        (date(2026, 9, 30), (2026, 3)),
        (date(2026, 12, 31), (2026, 4)),
    ])
    def test_quarter_boundaries(self, day, expected):
        assert tax_period(day) == expected

    @given(st.dates())
    def test_quarter_covers_month(self, day):
        year, quarter = tax_period(day)
        assert year == day.year
        assert 3 * (quarter - 1) < day.month <= 3 * quarter

    def test_every_entry_type_has_a_category(self):
        for entry_type in EntryType:
            assert isinstance(tax_category_for(entry_type), TaxCategory)
        assert tax_category_for(EntryType.STRIPE_FEE) is TaxCategory.EXPENSE


class TestForm1099Eligibility:

    def test_threshold_is_six_hundred_dollars(self):
        assert FORM_1099_THRESHOLD == 60000

    @pytest.mark.parametrize("amount,eligible", [(59999, False), (60000, True), (250000, True)])
    def test_cleaner_threshold(self, amount, eligible):
        assert is_form_1099_eligible(PartyType.CLEANER, amount) is eligible

    @pytest.mark.parametrize("party", [PartyType.HOMEOWNER, PartyType.PLATFORM, PartyType.STRIPE])
    def test_only_cleaners_are_eligible(self, party):
        assert not is_form_1099_eligible(party, 10**7)

    def test_custom_threshold(self):
        assert is_form_1099_eligible(PartyType.CLEANER, 500, threshold=500)
