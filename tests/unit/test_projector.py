"""Unit tests for state projection."""

from datetime import timedelta
from typing import Any, Callable, List, Optional

import pytest

from bucketrepl.exceptions import ConsistencyError
from bucketrepl.matcher import RuleMatch
from bucketrepl.models import (
    AndFilter,
    Credentials,
    Destination,
    PathStyle,
    RemoteRule,
    RemoteTarget,
    ReplicationRule,
    RuleFilter,
    RuleStatus,
    Tag,
)
from bucketrepl.projector import StateProjector


def _target(arn: str, target_bucket: str = "destination") -> RemoteTarget:
    return RemoteTarget(
        arn=arn,
        endpoint="minio-2.example.net:9000",
        target_bucket=target_bucket,
        credentials=Credentials(access_key="replicator"),
        secure=True,
        path_style=PathStyle.OFF,
        region="eu-west-1",
        bandwidth_limit=100_000_000,
        replication_sync=True,
        health_check_duration=timedelta(seconds=60),
    )


def _match(
    arn: str,
    priority: int = 1,
    index: int = 0,
    declared: Optional[ReplicationRule] = None,
    **kwargs: Any,
) -> RuleMatch:
    rule = RemoteRule(id=f"id-{index}", priority=priority, destination=Destination(bucket=arn), **kwargs)
    return RuleMatch(rule=rule, index=index, declared=declared)


class TestStateProjector:
    """Test StateProjector.project."""

    def test_target_fields(self) -> None:
        """Test the remote target is projected into the declared shape."""
        [rule] = StateProjector().project(
            "source", [_match("arn:a")], [_target("arn:a", "site/a/destination")]
        )

        assert rule.id == "id-0"
        assert rule.arn == "arn:a"
        assert rule.target.bucket == "destination"
        assert rule.target.path == "site/a"
        assert rule.target.host == "minio-2.example.net:9000"
        assert rule.target.secure is True
        assert rule.target.path_style == PathStyle.OFF
        assert rule.target.synchronous is True
        assert rule.target.health_check_period == timedelta(minutes=1)
        assert rule.target.bandwidth_limit == 100_000_000
        assert rule.target.region == "eu-west-1"
        assert rule.target.access_key == "replicator"
        assert rule.target.secret_key is None

    def test_rule_fields(self) -> None:
        """Test statuses, prefix and tags are projected."""
        match = _match(
            "arn:a",
            status=RuleStatus.DISABLED,
            delete_replication=RuleStatus.ENABLED,
            delete_marker_replication=RuleStatus.ENABLED,
            existing_object_replication=RuleStatus.ENABLED,
            replica_modifications=RuleStatus.ENABLED,
            filter=RuleFilter(and_=AndFilter(prefix="logs/", tags=[Tag(key="a", value="1")])),
        )
        [rule] = StateProjector().project("source", [match], [_target("arn:a")])

        assert rule.enabled is False
        assert rule.delete_replication is True
        assert rule.delete_marker_replication is True
        assert rule.existing_object_replication is True
        assert rule.metadata_sync is True
        assert rule.prefix == "logs/"
        assert rule.tags == {"a": "1"}

    def test_single_tag_and_empty_filter(self) -> None:
        """Test the single-tag filter and the empty filter."""
        tagged = _match("arn:a", filter=RuleFilter(tag=Tag(key="k", value="v")))
        plain = _match("arn:b", priority=2, index=1)
        rules = StateProjector().project("source", [tagged, plain], [_target("arn:b"), _target("arn:a")])
        assert rules[0].tags == {"k": "v"}
        assert rules[1].tags == {}

    def test_synthetic_priority_negated(self, make_rule: Callable[..., ReplicationRule]) -> None:
        """Test a priority recorded as synthetic is reported with its sign."""
        declared = make_rule("destination", priority=-1, secret_key="kept")
        [rule] = StateProjector().project("source", [_match("arn:a", 1, 0, declared)], [_target("arn:a")])
        assert rule.priority == -1
        assert rule.target.secret_key == "kept"

    def test_unset_priority_negated(self, make_rule: Callable[..., ReplicationRule]) -> None:
        """Test a last-known rule without priority reads back as -(index+1)."""
        declared = make_rule("destination", priority=0)
        [rule] = StateProjector().project(
            "source", [_match("arn:a", 2, 1, declared)], [_target("arn:a")]
        )
        assert rule.priority == -2

    def test_explicit_priority_kept(self, make_rule: Callable[..., ReplicationRule]) -> None:
        """Test a user priority stays positive."""
        declared = make_rule("destination", priority=10)
        [rule] = StateProjector().project("source", [_match("arn:a", 10, 0, declared)], [_target("arn:a")])
        assert rule.priority == 10

    def test_count_mismatch(self) -> None:
        """Test rule and target counts must agree."""
        with pytest.raises(ConsistencyError, match=r"\(2 != 1\)"):
            StateProjector().project("source", [_match("arn:a")], [_target("arn:a"), _target("arn:b")])

    def test_orphaned_reference(self) -> None:
        """Test a target no rule references is a consistency error."""
        with pytest.raises(ConsistencyError, match="arn:b"):
            StateProjector().project("source", [_match("arn:a")], [_target("arn:b")])

    def test_empty(self) -> None:
        """Test nothing projects to nothing."""
        rules: List[ReplicationRule] = StateProjector().project("source", [], [])
        assert rules == []
