"""
MoneyMovement: refunds and payouts against appeal and adjustment cases.
"""

import pytest

from conflict_config import ConflictPolicy, RateLimitPolicy
from conflict_kernel.domain.values import ActorRole
from conflict_kernel.exceptions import (
    ExternalGatewayError,
    InvalidAmountError,
    MissingPaymentReferenceError,
    MissingPayoutDestinationError,
    MissingReasonError,
    RateLimitExceededError,
    RefundCeilingExceededError,
)
from conflict_modules.adjustments import HomeSize
from conflict_services.money_movement import quick_amounts


def _trail(engine, appeal_id) -> list[str]:
    return [t.event_type for t in engine.audit.trail(appeal_id=appeal_id)]


class TestRefund:

    def test_refund(self, engine, submitted_appeal, hr, gateway, notifier, homeowner):
        result = engine.money.refund("appeal", submitted_appeal.id, 5000, "Goodwill", hr)

        assert result.external_ref == "re_1"
        assert result.refund_total == 5000
        assert result.case_number == submitted_appeal.case_number
        assert gateway.refunds[0]["payment_ref"] == "pi_123"
        assert gateway.refunds[0]["idempotency_key"] == f"appeal:{submitted_appeal.id}:refund:0"

        [entry] = engine.ledger.entries_for_appeal(submitted_appeal.id)
        assert (entry.entry_type, entry.amount, entry.external_ref) == ("conflict_refund", 5000, "re_1")
        assert entry.id == result.ledger_entry_id
        assert "refund_completed" in _trail(engine, submitted_appeal.id)
        assert (homeowner.id, "refund_issued") in [(u, e) for u, e, _ in notifier.sent]

    def test_second_refund_gets_a_new_key(self, engine, submitted_appeal, hr, gateway):
        engine.money.refund("appeal", submitted_appeal.id, 5000, "First", hr)
        result = engine.money.refund("appeal", submitted_appeal.id, 2000, "Second", hr)

        assert result.refund_total == 7000
        assert gateway.refunds[1]["idempotency_key"] == f"appeal:{submitted_appeal.id}:refund:5000"

    def test_ceiling(self, engine, submitted_appeal, hr, gateway):
        engine.money.refund("appeal", submitted_appeal.id, 10000, "Most of it", hr)
        with pytest.raises(RefundCeilingExceededError) as exc_info:
            engine.money.refund("appeal", submitted_appeal.id, 5001, "Too much", hr)

        assert exc_info.value.max_refundable == 5000
        assert len(gateway.refunds) == 1

    def test_gateway_failure_commits_nothing(
        self, engine, submitted_appeal, hr, gateway, appointment_id
    ):
        gateway.fail_with = RuntimeError("card_declined")
        with pytest.raises(ExternalGatewayError):
            engine.money.refund("appeal", submitted_appeal.id, 5000, "Goodwill", hr)

        assert engine.appointments.get(appointment_id).refund_total == 0
        assert engine.ledger.entries_for_appeal(submitted_appeal.id) == []
        failed = [
            t for t in engine.audit.trail(appeal_id=submitted_appeal.id)
            if t.event_type == "refund_failed"
        ]
        assert "card_declined" in failed[0].event_data["error"]

    def test_missing_payment_reference(self, engine, make_appointment, homeowner, hr):
        appeal = engine.appeals.submit(
            make_appointment(payment_intent_ref=None), homeowner, "other", "No card on file"
        )
        with pytest.raises(MissingPaymentReferenceError):
            engine.money.refund("appeal", appeal.id, 100, "Goodwill", hr)

    def test_adjustment_refund(self, engine, appointment_id, cleaner, homeowner, hr, gateway):
        case = engine.adjustments.open(
            appointment_id, cleaner, homeowner.id,
            HomeSize("3", "2"), HomeSize("2", "1"), 15000, 12000,
        )
        engine.money.refund("adjustment", case.id, 3000, "Smaller home", hr)

        assert gateway.refunds[0]["idempotency_key"] == f"adjustment:{case.id}:refund:0"
        assert [e.entry_type for e in engine.ledger.entries_for_adjustment(case.id)] == [
            "conflict_refund",
        ]


class TestPayout:

    def test_payout_to_appointment_cleaner(self, engine, submitted_appeal, hr, gateway, cleaner):
        result = engine.money.payout("appeal", submitted_appeal.id, 2500, "Travel time", hr)

        assert result.external_ref == "tr_1"
        assert gateway.transfers[0]["destination"] == "acct_cleaner_1"
        assert gateway.transfers[0]["idempotency_key"] == f"appeal:{submitted_appeal.id}:payout:0"
        [entry] = engine.ledger.entries_for_appeal(submitted_appeal.id)
        assert (entry.entry_type, entry.party_id) == ("conflict_payout", cleaner.id)

    def test_repeated_payouts_count_prior_transfers(self, engine, submitted_appeal, hr, gateway):
        engine.money.payout("appeal", submitted_appeal.id, 1000, "First", hr)
        engine.money.payout("appeal", submitted_appeal.id, 1000, "Second", hr)
        assert gateway.transfers[1]["idempotency_key"].endswith(":payout:1")

    def test_missing_destination(self, engine, make_user, make_appointment, homeowner, hr, gateway):
        unpaid = make_user(ActorRole.CLEANER, first_name="Nora")
        appeal = engine.appeals.submit(
            make_appointment(cleaner_ids=[str(unpaid.id)]), homeowner, "other", "Late"
        )
        with pytest.raises(MissingPayoutDestinationError):
            engine.money.payout("appeal", appeal.id, 1000, "Travel", hr)
        assert gateway.transfers == []

    def test_gateway_failure(self, engine, submitted_appeal, hr, gateway):
        gateway.fail_with = ExternalGatewayError("transfer", "insufficient_funds", "balance_insufficient")
        with pytest.raises(ExternalGatewayError):
            engine.money.payout("appeal", submitted_appeal.id, 1000, "Travel", hr)
        assert "payout_failed" in _trail(engine, submitted_appeal.id)
        assert engine.ledger.entries_for_appeal(submitted_appeal.id) == []


class TestValidation:

    @pytest.mark.parametrize("amount", [0, -5, 10.5, True, "100"])
    def test_invalid_amount(self, engine, submitted_appeal, hr, gateway, amount):
        with pytest.raises(InvalidAmountError):
            engine.money.refund("appeal", submitted_appeal.id, amount, "Goodwill", hr)
        assert gateway.refunds == []

    @pytest.mark.parametrize("reason", ["", "   ", None])
    def test_missing_reason(self, engine, submitted_appeal, hr, gateway, reason):
        with pytest.raises(MissingReasonError):
            engine.money.payout("appeal", submitted_appeal.id, 100, reason, hr)
        assert gateway.transfers == []


class TestRateLimit:

    @pytest.fixture
    def policy(self):
        return ConflictPolicy(rate_limit=RateLimitPolicy(max_actions=2, window_seconds=60))

    def test_limit_per_reviewer(self, engine, submitted_appeal, hr, owner, gateway, clock):
        for _ in range(2):
            engine.money.refund("appeal", submitted_appeal.id, 100, "Goodwill", hr)
        with pytest.raises(RateLimitExceededError) as exc_info:
            engine.money.refund("appeal", submitted_appeal.id, 100, "Goodwill", hr)

        assert exc_info.value.retry_after_seconds == 60
        assert len(gateway.refunds) == 2

        engine.money.refund("appeal", submitted_appeal.id, 100, "Goodwill", owner)
        clock.advance(61)
        engine.money.refund("appeal", submitted_appeal.id, 100, "Goodwill", hr)
        assert len(gateway.refunds) == 4


class TestRefundInfo:

    def test_after_partial_refund(self, engine, submitted_appeal, hr):
        engine.money.refund("appeal", submitted_appeal.id, 5000, "Goodwill", hr)
        info = engine.money.refund_info("appeal", submitted_appeal.id)

        assert info.original_amount == 15000
        assert info.already_refunded == 5000
        assert info.max_refundable == 10000
        assert info.quick_amounts == {
            "quarter": 2500, "half": 5000, "threeQuarter": 7500, "full": 10000,
        }

    def test_quick_amounts_floor(self):
        assert quick_amounts(10001) == {
            "quarter": 2500, "half": 5000, "threeQuarter": 7500, "full": 10001,
        }


class TestCaseDispatch:

    def test_note_and_assign_by_case_type(self, engine, submitted_appeal, hr, owner):
        appeal = engine.money.add_note("appeal", submitted_appeal.id, "Called homeowner", hr)
        assert appeal.notes.endswith("Called homeowner")

        appeal = engine.money.assign("appeal", submitted_appeal.id, hr.id, owner)
        assert appeal.assigned_to == hr.id
