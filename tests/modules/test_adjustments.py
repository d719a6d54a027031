"""
AdjustmentWorkflow: opening, homeowner response, owner resolution, expiry.
"""

from datetime import timedelta
from uuid import uuid4

import pytest

from conflict_kernel.exceptions import (
    AdjustmentExpiredError,
    AdjustmentNotFoundError,
    AppointmentNotFoundError,
    ClosedAdjustmentError,
    EmptyNoteError,
    InvalidAmountError,
    InvalidAssigneeError,
    InvalidDecisionError,
    InvalidTransitionError,
)
from conflict_modules.adjustments import (
    ADJUSTMENT_WORKFLOW,
    AdjustmentStatus,
    HomeSize,
)
from conflict_modules.adjustments.models import statuses_for_filter


@pytest.fixture
def open_case(engine, appointment_id, cleaner, homeowner):
    return engine.adjustments.open(
        appointment_id,
        cleaner,
        homeowner.id,
        original_size=HomeSize("2", "1"),
        reported_size=HomeSize("3", "2"),
        original_price=15000,
        new_price=18000,
        cleaner_note="Listing says 2 bed, home has 3",
    )


def _events(engine, case_id) -> list[str]:
    return [t.event_type for t in engine.audit.trail(adjustment_id=case_id)]


class TestOpen:

    def test_open(self, engine, open_case, clock, notifier, homeowner):
        assert open_case.case_number == "ADJ-000001"
        assert open_case.status is AdjustmentStatus.PENDING_HOMEOWNER
        assert open_case.price_difference == 3000
        assert open_case.opened_at == clock.now()
        assert open_case.expires_at == clock.now() + timedelta(hours=24)
        assert str(open_case.reported_size) == "3 bed / 2 bath"
        assert _events(engine, open_case.id) == ["adjustment_opened"]
        assert notifier.sent[0][0] == homeowner.id

    @pytest.mark.parametrize("prices", [(-1, 100), (100, -5), (100, 99.5)])
    def test_invalid_prices(self, engine, appointment_id, cleaner, homeowner, prices):
        with pytest.raises(InvalidAmountError):
            engine.adjustments.open(
                appointment_id, cleaner, homeowner.id,
                HomeSize("2", "1"), HomeSize("3", "2"), *prices,
            )

    def test_unknown_appointment(self, engine, cleaner, homeowner):
        with pytest.raises(AppointmentNotFoundError):
            engine.adjustments.open(
                uuid4(), cleaner, homeowner.id,
                HomeSize("2", "1"), HomeSize("3", "2"), 100, 200,
            )


class TestHomeownerResponse:

    def test_accept_records_charge(self, engine, open_case, homeowner):
        case = engine.adjustments.homeowner_respond(open_case.id, True, homeowner, "Fair enough")
        assert case.status is AdjustmentStatus.APPROVED
        assert case.homeowner_response == "Fair enough"

        entries = engine.ledger.entries_for_adjustment(open_case.id)
        assert [(e.entry_type, e.amount, e.direction) for e in entries] == [
            ("adjustment_charge", 3000, "credit"),
        ]

    def test_reject_goes_to_owner(self, engine, open_case, homeowner, notifier, cleaner):
        case = engine.adjustments.homeowner_respond(open_case.id, False, homeowner, "It is 2 bed")
        assert case.status is AdjustmentStatus.PENDING_OWNER
        assert engine.ledger.entries_for_adjustment(open_case.id) == []
        assert notifier.sent[-1][:2] == (cleaner.id, "adjustment_homeowner_responded")

    def test_response_after_expiry(self, engine, open_case, homeowner, clock):
        clock.advance(hours=25)
        with pytest.raises(AdjustmentExpiredError):
            engine.adjustments.homeowner_respond(open_case.id, True, homeowner)
        assert engine.adjustments.effective_status(open_case.id) is AdjustmentStatus.EXPIRED
        assert engine.adjustments.get(open_case.id).status is AdjustmentStatus.PENDING_HOMEOWNER

    def test_second_response_rejected(self, engine, open_case, homeowner):
        engine.adjustments.homeowner_respond(open_case.id, False, homeowner)
        with pytest.raises(InvalidTransitionError):
            engine.adjustments.homeowner_respond(open_case.id, True, homeowner)

    def test_terminal_case_is_closed(self, engine, open_case, homeowner):
        engine.adjustments.homeowner_respond(open_case.id, True, homeowner)
        with pytest.raises(ClosedAdjustmentError):
            engine.adjustments.homeowner_respond(open_case.id, True, homeowner)


class TestOwnerResolution:

    def test_approve_after_rejection(self, engine, open_case, homeowner, owner, notifier):
        engine.adjustments.homeowner_respond(open_case.id, False, homeowner)
        case = engine.adjustments.resolve(open_case.id, "approve", owner, notes="Photos confirm 3 bed")

        assert case.status is AdjustmentStatus.OWNER_APPROVED
        assert case.owner_note == "Photos confirm 3 bed"
        assert case.owner_id == owner.id
        assert [e.entry_type for e in engine.ledger.entries_for_adjustment(open_case.id)] == [
            "adjustment_charge",
        ]
        assert notifier.events().count("adjustment_resolved") == 2

    def test_owner_may_resolve_expired_case(self, engine, open_case, owner, clock):
        clock.advance(days=3)
        case = engine.adjustments.resolve(open_case.id, "deny", owner)
        assert case.status is AdjustmentStatus.OWNER_DENIED
        assert engine.ledger.entries_for_adjustment(open_case.id) == []

    def test_price_decrease_records_refund(self, engine, appointment_id, cleaner, homeowner, owner):
        case = engine.adjustments.open(
            appointment_id, cleaner, homeowner.id,
            HomeSize("4", "3"), HomeSize("3", "2"), 20000, 17000,
        )
        engine.adjustments.resolve(case.id, "approve", owner)
        [entry] = engine.ledger.entries_for_adjustment(case.id)
        assert (entry.entry_type, entry.amount, entry.direction) == ("adjustment_refund", 3000, "debit")

    def test_resolved_case_is_closed(self, engine, open_case, owner):
        engine.adjustments.resolve(open_case.id, "deny", owner)
        with pytest.raises(ClosedAdjustmentError):
            engine.adjustments.resolve(open_case.id, "approve", owner)

    def test_invalid_decision(self, engine, open_case, owner):
        with pytest.raises(InvalidDecisionError):
            engine.adjustments.resolve(open_case.id, "partial", owner)

    def test_audit_trail(self, engine, open_case, homeowner, owner, hr):
        engine.adjustments.assign(open_case.id, hr.id, owner)
        engine.adjustments.homeowner_respond(open_case.id, False, homeowner)
        engine.adjustments.resolve(open_case.id, "deny", owner)
        assert _events(engine, open_case.id) == [
            "adjustment_opened",
            "adjustment_assigned",
            "adjustment_homeowner_responded",
            "adjustment_resolved",
        ]


class TestMisc:

    def test_assign_requires_staff(self, engine, open_case, homeowner, owner):
        with pytest.raises(InvalidAssigneeError):
            engine.adjustments.assign(open_case.id, homeowner.id, owner)

    def test_notes(self, engine, open_case, hr):
        case = engine.adjustments.add_note(open_case.id, "Asked for photos", hr)
        assert case.notes == "[2026-03-02 12:00] Asked for photos"
        with pytest.raises(EmptyNoteError):
            engine.adjustments.add_note(open_case.id, "", hr)

    def test_lookup(self, engine, open_case):
        assert engine.adjustments.get_by_number(1).id == open_case.id
        with pytest.raises(AdjustmentNotFoundError):
            engine.adjustments.get_by_number(99)

    def test_for_appointment(self, engine, open_case, appointment_id, cleaner, homeowner):
        second = engine.adjustments.open(
            appointment_id, cleaner, homeowner.id,
            HomeSize("3", "2"), HomeSize("4", "2"), 18000, 21000,
        )
        cases = engine.adjustments.for_appointment(appointment_id)
        assert [c.id for c in cases] == [open_case.id, second.id]
        assert engine.adjustments.for_appointment(uuid4()) == []

    def test_stats(self, engine, open_case, appointment_id, cleaner, homeowner, clock):
        second = engine.adjustments.open(
            appointment_id, cleaner, homeowner.id,
            HomeSize("1", "1"), HomeSize("2", "1"), 9000, 11000,
        )
        engine.adjustments.homeowner_respond(second.id, False, homeowner)
        clock.advance(hours=30)

        stats = engine.adjustments.get_stats()
        assert stats.pending == 2
        assert stats.past_expiry == 2
        assert stats.by_status == {"pending_homeowner": 1, "pending_owner": 1}

    @pytest.mark.parametrize("value,expected", [
        ("pending", {AdjustmentStatus.PENDING_HOMEOWNER, AdjustmentStatus.PENDING_OWNER}),
        ("denied", {AdjustmentStatus.DENIED, AdjustmentStatus.OWNER_DENIED}),
        ("owner_approved", {AdjustmentStatus.OWNER_APPROVED}),
        ("nonsense", set()),
    ])
    def test_status_filters(self, value, expected):
        assert statuses_for_filter(value) == expected

    def test_expired_is_terminal_without_inbound_transitions(self):
        assert ADJUSTMENT_WORKFLOW.is_terminal("expired")
        assert all(t.to_state != "expired" for t in ADJUSTMENT_WORKFLOW.transitions)
