"""Unit tests for the declarative configuration decoder."""

from datetime import timedelta
from typing import Any, Dict

import pytest

from bucketrepl.decode import (
    Severity,
    decode_configuration,
    decode_rules,
    diff_rule,
    encode_rule,
    encode_state,
)
from bucketrepl.exceptions import ValidationError
from bucketrepl.models import PathStyle


def _rule(**overrides: Any) -> Dict[str, Any]:
    target = {
        "bucket": "destination",
        "host": "minio-2.example.net:9000",
        "access_key": "replicator",
        "secret_key": "replicator-secret",
    }
    target.update(overrides.pop("target", {}))
    rule: Dict[str, Any] = {"target": [target]}
    rule.update(overrides)
    return rule


class TestDecodeRules:
    """Test decode_rules."""

    def test_defaults(self) -> None:
        """Test documented defaults are applied."""
        rules, diagnostics = decode_rules([_rule()])
        assert diagnostics == []
        rule = rules[0]
        assert rule.id == ""
        assert rule.enabled is True
        assert rule.prefix == ""
        assert rule.tags == {}
        assert rule.delete_replication is False
        assert rule.target.path_style == PathStyle.AUTO
        assert rule.target.secure is True
        assert rule.target.health_check_period == timedelta(seconds=30)
        assert rule.target.bandwidth_limit == 0

    def test_empty(self) -> None:
        """Test no rules decode to an empty list."""
        assert decode_rules(None) == ([], [])
        assert decode_rules([]) == ([], [])

    def test_synthetic_priorities(self) -> None:
        """Test omitted priorities become -(index+1)."""
        rules, _ = decode_rules([_rule(), _rule(priority=10), _rule(priority=0), _rule(priority=-7)])
        assert [rule.priority for rule in rules] == [-1, 10, -3, -4]

    def test_duplicate_priority(self) -> None:
        """Test positive priorities must be unique."""
        rules, diagnostics = decode_rules([_rule(priority=5), _rule(priority=5)])
        assert len(rules) == 1
        assert diagnostics[0].path == "rule[1].priority"
        assert "rule[0]" in diagnostics[0].message

    def test_priority_taken_by_position(self) -> None:
        """Test an explicit priority may not equal the one a rule gets from its position."""
        rules, diagnostics = decode_rules([_rule(), _rule(priority=1)])
        assert len(rules) == 1
        [error] = diagnostics
        assert error.path == "rule[1].priority"
        assert "rule[0]" in error.message

    def test_priority_taken_by_later_position(self) -> None:
        """Test the check also covers rules declared after the explicit one."""
        _, diagnostics = decode_rules([_rule(priority=2), _rule()])
        assert [d.path for d in diagnostics] == ["rule[0].priority"]

    def test_priority_clear_of_positions(self) -> None:
        """Test priorities no position implies are accepted."""
        rules, diagnostics = decode_rules([_rule(), _rule(priority=3), _rule(priority=2)])
        assert diagnostics == []
        assert [rule.priority for rule in rules] == [-1, 3, 2]

    def test_units(self) -> None:
        """Test bandwidth and health check text is parsed."""
        rules, diagnostics = decode_rules(
            [_rule(target={"bandwidth_limit": "1G", "health_check_period": "2m"})]
        )
        assert diagnostics == []
        assert rules[0].target.bandwidth_limit == 1_000_000_000
        assert rules[0].target.health_check_period == timedelta(minutes=2)

    def test_bandwidth_below_minimum(self) -> None:
        """Test a bandwidth limit below 100 MB is an error."""
        rules, diagnostics = decode_rules([_rule(target={"bandwidth_limit": "10M"})])
        assert rules == []
        assert diagnostics[0].path == "rule[0].target.bandwidth_limit"
        assert diagnostics[0].severity == Severity.ERROR

    def test_bandwidth_unparsable(self) -> None:
        """Test an unparsable bandwidth limit is an error."""
        _, diagnostics = decode_rules([_rule(target={"bandwidth_limit": "fast"})])
        assert [d.path for d in diagnostics] == ["rule[0].target.bandwidth_limit"]

    def test_health_check_invalid(self) -> None:
        """Test an unparsable health check period is an error."""
        _, diagnostics = decode_rules([_rule(target={"health_check_period": "1d"})])
        assert [d.path for d in diagnostics] == ["rule[0].target.health_check_period"]

    def test_missing_required_target_fields(self) -> None:
        """Test bucket, host and access key are required."""
        rules, diagnostics = decode_rules([{"target": [{"secret_key": "x"}]}])
        assert rules == []
        assert sorted(d.path for d in diagnostics) == [
            "rule[0].target.access_key",
            "rule[0].target.bucket",
            "rule[0].target.host",
        ]

    def test_secret_optional(self) -> None:
        """Test an omitted secret means no desired change."""
        raw = _rule()
        del raw["target"][0]["secret_key"]
        rules, diagnostics = decode_rules([raw])
        assert diagnostics == []
        assert rules[0].target.secret_key is None

    def test_exactly_one_target(self) -> None:
        """Test a rule needs exactly one target block."""
        _, diagnostics = decode_rules([{"target": []}, {"target": "nope"}])
        assert [d.path for d in diagnostics] == ["rule[0].target", "rule[1].target"]

    def test_target_mapping_accepted(self) -> None:
        """Test a bare target mapping is accepted."""
        raw = _rule()
        raw["target"] = raw["target"][0]
        rules, diagnostics = decode_rules([raw])
        assert diagnostics == []
        assert rules[0].target.bucket == "destination"

    def test_insecure_warning(self) -> None:
        """Test plain HTTP targets decode with a warning."""
        rules, diagnostics = decode_rules([_rule(target={"secure": False})])
        assert len(rules) == 1
        assert rules[0].target.secure is False
        assert diagnostics[0].severity == Severity.WARNING
        assert diagnostics[0].path == "rule[0].target.secure"

    def test_path_style(self) -> None:
        """Test path style values and fallback."""
        rules, diagnostics = decode_rules(
            [_rule(target={"path_style": "On"}), _rule(target={"path_style": "sideways"})]
        )
        assert rules[0].target.path_style == PathStyle.ON
        assert rules[1].target.path_style == PathStyle.AUTO
        assert [d.severity for d in diagnostics] == [Severity.WARNING]

    def test_tags(self) -> None:
        """Test tag validation."""
        rules, diagnostics = decode_rules([_rule(tags={"team": "data", "env": "prod"})])
        assert diagnostics == []
        assert rules[0].tags == {"team": "data", "env": "prod"}

        _, diagnostics = decode_rules([_rule(tags={"bad&key": "x", "ok": 3, "empty": ""})])
        assert len(diagnostics) == 3

    def test_wrong_types(self) -> None:
        """Test loosely typed values are reported by field path."""
        _, diagnostics = decode_rules([_rule(enabled="yes", priority="high", prefix=3)])
        assert sorted(d.path for d in diagnostics) == [
            "rule[0].enabled",
            "rule[0].prefix",
            "rule[0].priority",
        ]

    def test_not_a_mapping(self) -> None:
        """Test non-mapping rules are reported."""
        rules, diagnostics = decode_rules(["rule", _rule()])
        assert len(rules) == 1
        assert diagnostics[0].path == "rule[0]"


class TestDecodeConfiguration:
    """Test decode_configuration."""

    def test_valid(self, source_tree: Dict[str, Any]) -> None:
        """Test a valid tree decodes into a state."""
        state = decode_configuration(source_tree)
        assert state.bucket == "source"
        assert len(state.rules) == 1
        assert state.rules[0].priority == -1

    def test_errors_raise(self, source_tree: Dict[str, Any]) -> None:
        """Test every error is carried by the raised ValidationError."""
        source_tree["rule"][0]["target"][0]["bandwidth_limit"] = "1M"
        source_tree["rule"][0]["target"][0]["host"] = ""
        with pytest.raises(ValidationError) as exc_info:
            decode_configuration(source_tree)
        assert {e.path for e in exc_info.value.errors} == {
            "rule[0].target.bandwidth_limit",
            "rule[0].target.host",
        }

    def test_missing_bucket(self) -> None:
        """Test the source bucket is required."""
        with pytest.raises(ValidationError) as exc_info:
            decode_configuration({"rule": []})
        assert exc_info.value.errors[0].path == "configuration.bucket"

    def test_warnings_do_not_raise(self, source_tree: Dict[str, Any]) -> None:
        """Test warnings are logged, not raised."""
        source_tree["rule"][0]["target"][0]["secure"] = False
        state = decode_configuration(source_tree)
        assert state.rules[0].target.secure is False


class TestEncode:
    """Test rendering rules back into the tree shape."""

    def test_encode_rule(self, source_tree: Dict[str, Any]) -> None:
        """Test units are rendered as text."""
        state = decode_configuration(source_tree)
        encoded = encode_rule(state.rules[0])
        target = encoded["target"][0]
        assert target["bandwidth_limit"] == "100M"
        assert target["health_check_period"] == "30s"
        assert target["path_style"] == "auto"
        assert target["secret_key"] == "replicator-secret"
        assert encoded["priority"] == -1
        assert encoded["tags"] == {}

    def test_encoded_state_decodes_back(self, source_tree: Dict[str, Any]) -> None:
        """Test an encoded state decodes to the same rules."""
        state = decode_configuration(source_tree)
        assert decode_configuration(encode_state(state)) == state

    def test_secret_omitted_when_unknown(self, source_tree: Dict[str, Any]) -> None:
        """Test an unknown secret is not rendered as empty."""
        del source_tree["rule"][0]["target"][0]["secret_key"]
        encoded = encode_rule(decode_configuration(source_tree).rules[0])
        assert "secret_key" not in encoded["target"][0]


class TestDiffRule:
    """Test change detection between stored and declared rules."""

    def test_equivalent_text_is_unchanged(self, source_tree: Dict[str, Any]) -> None:
        """Test units compare by value and an omitted priority matches an automatic one."""
        stored = encode_rule(decode_configuration(source_tree).rules[0])
        declared = _rule(target={"bandwidth_limit": "100 MB", "health_check_period": "30s"})
        assert diff_rule(stored, declared) == []

    def test_changed_fields(self, source_tree: Dict[str, Any]) -> None:
        """Test each differing field is reported once by path."""
        stored = encode_rule(decode_configuration(source_tree).rules[0])
        declared = _rule(
            priority=10,
            prefix="logs/",
            delete_replication=True,
            target={"bandwidth_limit": "200M", "health_check_period": "1m", "path_style": "on"},
        )
        assert diff_rule(stored, declared) == [
            "priority",
            "prefix",
            "delete_replication",
            "target.path_style",
            "target.bandwidth_limit",
            "target.health_check_period",
        ]

    def test_secret_only_compared_when_declared(self, source_tree: Dict[str, Any]) -> None:
        """Test an omitted secret is no change and a new one is."""
        stored = encode_rule(decode_configuration(source_tree).rules[0])
        declared = _rule(target={"bandwidth_limit": "100M"})
        del declared["target"][0]["secret_key"]
        assert diff_rule(stored, declared) == []
        declared["target"][0]["secret_key"] = "rotated"
        assert diff_rule(stored, declared) == ["target.secret_key"]

    def test_explicit_stored_priority(self) -> None:
        """Test a stored explicit priority differs from an omitted one."""
        assert diff_rule({"priority": 10}, {}) == ["priority"]
        assert diff_rule({"priority": -2}, {}) == []
