"""Appeal value objects: priority table, decisions and the transition matrix."""

from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest

from conflict_kernel.domain.values import ActorRole, Priority, ScrutinyLevel
from conflict_kernel.exceptions import InvalidTransitionError
from conflict_modules.appeals import (
    APPEAL_WORKFLOW,
    Appeal,
    AppealDecision,
    AppealSeverity,
    AppealStatus,
    ResolutionActions,
    determine_priority,
)
from conflict_modules.appeals.models import CLOSED_STATUSES, OPEN_STATUSES

NOW = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)


class TestDeterminePriority:

    @pytest.mark.parametrize("scrutiny,severity,expected", [
        (ScrutinyLevel.HIGH_RISK, AppealSeverity.CRITICAL, Priority.HIGH),
        (ScrutinyLevel.HIGH_RISK, AppealSeverity.LOW, Priority.HIGH),
        (ScrutinyLevel.NONE, AppealSeverity.CRITICAL, Priority.URGENT),
        (ScrutinyLevel.WATCH, AppealSeverity.CRITICAL, Priority.URGENT),
        (ScrutinyLevel.NONE, AppealSeverity.HIGH, Priority.HIGH),
        (ScrutinyLevel.WATCH, AppealSeverity.LOW, Priority.HIGH),
        (ScrutinyLevel.NONE, AppealSeverity.MEDIUM, Priority.NORMAL),
        (ScrutinyLevel.NONE, AppealSeverity.LOW, Priority.NORMAL),
    ])
    def test_table(self, scrutiny, severity, expected):
        assert determine_priority(scrutiny, severity) is expected


class TestDecision:

    @pytest.mark.parametrize("decision,status", [
        (AppealDecision.APPROVE, AppealStatus.APPROVED),
        (AppealDecision.PARTIAL, AppealStatus.PARTIALLY_APPROVED),
        (AppealDecision.DENY, AppealStatus.DENIED),
    ])
    def test_decision_maps_to_terminal_status(self, decision, status):
        assert decision.status is status
        assert status in CLOSED_STATUSES


class TestResolutionActions:

    def test_from_mapping(self):
        actions = ResolutionActions.from_mapping({
            "refund_amount": 5000, "fee_refunded": True, "fee_amount": 2500,
        })
        assert actions.refund_amount == 5000
        assert actions.reverses_fee
        assert not actions.unfreeze_account

    def test_fee_reversal_needs_an_amount(self):
        assert not ResolutionActions(fee_refunded=True, fee_amount=0).reverses_fee

    def test_negative_amounts_rejected(self):
        with pytest.raises(ValueError):
            ResolutionActions(refund_amount=-1)


class TestTransitionMatrix:

    ALLOWED = {
        ("submitted", "under_review"),
        ("submitted", "awaiting_documents"),
        ("submitted", "escalated"),
        ("submitted", "denied"),
        ("under_review", "awaiting_documents"),
        ("under_review", "escalated"),
        ("under_review", "approved"),
        ("under_review", "partially_approved"),
        ("under_review", "denied"),
        ("awaiting_documents", "under_review"),
        ("awaiting_documents", "escalated"),
        ("awaiting_documents", "approved"),
        ("awaiting_documents", "partially_approved"),
        ("awaiting_documents", "denied"),
        ("escalated", "under_review"),
        ("escalated", "approved"),
        ("escalated", "partially_approved"),
        ("escalated", "denied"),
    }

    def test_states_match_enum(self):
        assert set(APPEAL_WORKFLOW.states) == {s.value for s in AppealStatus}

    @pytest.mark.parametrize("from_state", [s.value for s in AppealStatus])
    @pytest.mark.parametrize("to_state", [s.value for s in AppealStatus])
    def test_pair(self, from_state, to_state):
        if (from_state, to_state) in self.ALLOWED:
            assert APPEAL_WORKFLOW.require(from_state, to_state)
        else:
            with pytest.raises(InvalidTransitionError):
                APPEAL_WORKFLOW.require(from_state, to_state)

    def test_money_moves_only_on_approval(self):
        for t in APPEAL_WORKFLOW.transitions:
            assert t.moves_money == (t.to_state in ("approved", "partially_approved"))


def _appeal(status: AppealStatus, sla_deadline: datetime) -> Appeal:
    return Appeal(
        id=uuid4(),
        number=1,
        case_number="APL-000001",
        appointment_id=uuid4(),
        appealer_id=uuid4(),
        appealer_type=ActorRole.HOMEOWNER,
        category="other",
        severity=AppealSeverity.MEDIUM,
        description="d",
        status=status,
        priority=Priority.NORMAL,
        submitted_at=sla_deadline - timedelta(hours=48),
        sla_deadline=sla_deadline,
    )


class TestSla:

    def test_open_past_deadline(self):
        assert _appeal(AppealStatus.UNDER_REVIEW, NOW - timedelta(minutes=1)).is_past_sla(NOW)

    def test_escalated_is_not_tracked(self):
        assert not _appeal(AppealStatus.ESCALATED, NOW - timedelta(days=1)).is_past_sla(NOW)

    def test_closed_is_never_past_sla(self):
        appeal = _appeal(AppealStatus.DENIED, NOW - timedelta(days=1))
        assert not appeal.is_past_sla(NOW)
        assert not appeal.is_open

    def test_open_statuses(self):
        assert OPEN_STATUSES | CLOSED_STATUSES == set(AppealStatus)
