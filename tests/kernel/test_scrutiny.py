"""Scrutiny profile derivation from appeal history."""

from datetime import datetime, timedelta, timezone

import pytest
from hypothesis import given
from hypothesis import strategies as st

from conflict_kernel.domain.scrutiny import (
    AppealHistoryItem,
    AppealOutcome,
    ScrutinyThresholds,
    classify,
    compute_scrutiny_profile,
    compute_stats,
    months_before,
)
from conflict_kernel.domain.values import ScrutinyLevel

NOW = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)


def _history(*specs: tuple[int, AppealOutcome], category: str = "other") -> list[AppealHistoryItem]:
    """(days_ago, outcome) pairs."""
    return [
        AppealHistoryItem(NOW - timedelta(days=days_ago), category, outcome)
        for days_ago, outcome in specs
    ]


class TestClassify:

    @pytest.mark.parametrize("appeals,denials,level", [
        (0, 0, ScrutinyLevel.NONE),
        (2, 1, ScrutinyLevel.NONE),
        (3, 0, ScrutinyLevel.WATCH),
        (1, 2, ScrutinyLevel.WATCH),
        (5, 0, ScrutinyLevel.HIGH_RISK),
        (3, 3, ScrutinyLevel.HIGH_RISK),
    ])
    def test_levels(self, appeals, denials, level):
        assert classify(appeals, denials, ScrutinyThresholds())[0] is level

    def test_reason_mentions_window(self):
        _, reason = classify(5, 1, ScrutinyThresholds())
        assert reason == "5 appeals in 6 months, 1 denied"
        assert classify(0, 0, ScrutinyThresholds())[1] is None

    def test_thresholds_are_validated(self):
        with pytest.raises(ValueError):
            ScrutinyThresholds(watch_appeals=6, high_risk_appeals=5)
        with pytest.raises(ValueError):
            ScrutinyThresholds(window_months=0)


class TestMonthsBefore:

    def test_clamps_day(self):
        moment = datetime(2026, 8, 31, tzinfo=timezone.utc)
        assert months_before(moment, 6) == datetime(2026, 2, 28, tzinfo=timezone.utc)

    def test_crosses_year(self):
        moment = datetime(2026, 3, 2, tzinfo=timezone.utc)
        assert months_before(moment, 6) == datetime(2025, 9, 2, tzinfo=timezone.utc)


class TestProfile:

    def test_only_recent_appeals_count(self):
        history = _history(
            (10, AppealOutcome.DENIED),
            (20, AppealOutcome.DENIED),
            (400, AppealOutcome.DENIED),
            (500, AppealOutcome.DENIED),
        )
        profile = compute_scrutiny_profile(history, NOW)
        assert profile.recent_appeals == 2
        assert profile.recent_denials == 2
        assert profile.level is ScrutinyLevel.WATCH
        assert profile.stats.total == 4

    def test_five_recent_appeals_is_high_risk(self):
        history = _history(*[(d, AppealOutcome.APPROVED) for d in (1, 5, 9, 30, 60)])
        assert compute_scrutiny_profile(history, NOW).level is ScrutinyLevel.HIGH_RISK

    def test_empty_history(self):
        profile = compute_scrutiny_profile([], NOW)
        assert profile.level is ScrutinyLevel.NONE
        assert profile.stats.approval_rate is None
        assert profile.stats.avg_days_between_appeals is None

    @given(st.lists(
        st.tuples(st.integers(0, 720), st.sampled_from(list(AppealOutcome))),
        max_size=12,
    ))
    def test_profile_is_a_pure_function_of_history(self, specs):
        history = _history(*specs)
        first = compute_scrutiny_profile(history, NOW)
        again = compute_scrutiny_profile(list(reversed(history)), NOW)
        assert first == again


class TestStats:

    def test_rates_and_gaps(self):
        history = _history(
            (30, AppealOutcome.APPROVED),
            (20, AppealOutcome.DENIED),
            (10, AppealOutcome.PENDING),
            (0, AppealOutcome.APPROVED),
        )
        stats = compute_stats(history)
        assert stats.approved == 2
        assert stats.denied == 1
        assert stats.pending == 1
        assert stats.approval_rate == 50
        assert stats.avg_days_between_appeals == 10.0
        assert stats.category_counts == {"other": 4}
