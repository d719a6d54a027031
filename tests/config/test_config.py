"""Tests for policy loading (conflict_config)."""

import pytest
import yaml

from conflict_config import ConflictPolicy, get_active_config
from conflict_config.loader import compute_checksum, parse_policy
from conflict_kernel.domain.scrutiny import ScrutinyThresholds


class TestDefaults:

    def test_shipped_policy_matches_dataclass_defaults(self):
        policy = get_active_config()
        defaults = ConflictPolicy()
        assert policy.config_id == "default"
        assert policy.appeals == defaults.appeals
        assert policy.adjustments == defaults.adjustments
        assert policy.scrutiny == defaults.scrutiny
        assert policy.ledger == defaults.ledger
        assert policy.rate_limit == defaults.rate_limit

    def test_default_windows(self):
        policy = ConflictPolicy()
        assert policy.appeals.sla.total_seconds() == 48 * 3600
        assert policy.appeals.window.total_seconds() == 72 * 3600
        assert policy.adjustments.response_window.total_seconds() == 24 * 3600
        assert policy.ledger.form_1099_threshold == 60000

    def test_empty_document_uses_defaults(self):
        policy = parse_policy({})
        assert policy.appeals.sla_hours == 48
        assert policy.scrutiny == ScrutinyThresholds()


class TestOverrides:

    def test_partial_section_override(self):
        policy = parse_policy({"appeals": {"sla_hours": 24}})
        assert policy.appeals.sla_hours == 24
        assert policy.appeals.window_hours == 72

    def test_categories_become_tuple(self):
        policy = parse_policy({"appeals": {"categories": ["other", "transportation"]}})
        assert policy.appeals.categories == ("other", "transportation")

    def test_load_from_file(self, tmp_path):
        path = tmp_path / "strict.yaml"
        path.write_text(yaml.safe_dump({
            "config_id": "strict",
            "version": 3,
            "scrutiny": {"watch_appeals": 2, "high_risk_appeals": 3},
        }))
        policy = get_active_config(path)
        assert policy.config_id == "strict"
        assert policy.version == 3
        assert policy.scrutiny.high_risk_appeals == 3


class TestValidation:

    def test_unknown_top_level_key(self):
        with pytest.raises(ValueError, match="Unknown configuration keys"):
            parse_policy({"apeals": {}})

    def test_unknown_section_key(self):
        with pytest.raises(ValueError, match="ledger"):
            parse_policy({"ledger": {"threshold": 1}})

    @pytest.mark.parametrize("section,values", [
        ("appeals", {"sla_hours": 0}),
        ("adjustments", {"response_hours": -1}),
        ("audit", {"trail_limit": 0}),
        ("rate_limit", {"max_actions": 0}),
        ("scrutiny", {"watch_appeals": 6}),
    ])
    def test_invalid_values_rejected(self, section, values):
        with pytest.raises(ValueError):
            parse_policy({section: values})

    def test_section_must_be_mapping(self):
        with pytest.raises(ValueError, match="must be a mapping"):
            parse_policy({"audit": [1, 2]})

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            get_active_config(tmp_path / "missing.yaml")


class TestTraceability:

    def test_checksum_is_stable_and_order_independent(self):
        a = {"version": 1, "appeals": {"sla_hours": 48, "window_hours": 72}}
        b = {"appeals": {"window_hours": 72, "sla_hours": 48}, "version": 1}
        assert compute_checksum(a) == compute_checksum(b)
        assert compute_checksum(a) != compute_checksum({"version": 2})

    def test_policy_carries_checksum(self):
        assert len(parse_policy({}).checksum) == 64

    def test_trace_log_emitted(self, captured_logs):
        policy = get_active_config()
        traces = [r for r in captured_logs() if r["message"] == "CONFLICT_CONFIG_TRACE"]
        assert len(traces) == 1
        assert traces[0]["checksum"] == policy.checksum
        assert traces[0]["config_id"] == "default"
