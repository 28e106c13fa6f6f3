"""Shared fixtures: an in-memory storage cluster and rule builders."""

from typing import Any, Callable, Dict, List, Optional, Tuple

import pytest

from bucketrepl.backend import ReplicationBackend
from bucketrepl.client import BucketReplicationClient
from bucketrepl.context import Context
from bucketrepl.exceptions import RemoteRejectedError
from bucketrepl.models import (
    Credentials,
    RemoteConfig,
    RemoteTarget,
    ReplicationRule,
    ReplicationTarget,
    TargetDescriptor,
)


class FakeBackend(ReplicationBackend):
    """In-memory storage cluster.

    Remote targets are upserted by (endpoint, target bucket) and get ARNs of
    the form ``arn:minio:replication::<n>:<bucket>``. Secrets are stored but
    never returned, and a target still referenced by a rule cannot be removed.
    """

    def __init__(self) -> None:
        self.configs: Dict[str, RemoteConfig] = {}
        self.targets: Dict[str, List[RemoteTarget]] = {}
        self.secrets: Dict[str, Optional[str]] = {}
        self.calls: List[Tuple[Any, ...]] = []
        self.failures: Dict[str, Tuple[int, Exception]] = {}
        self.closed = False
        self._next_arn = 0

    def _record(self, name: str, *args: Any) -> None:
        self.calls.append((name,) + args)
        if name in self.failures:
            after, error = self.failures[name]
            if after == 0:
                del self.failures[name]
                raise error
            self.failures[name] = (after - 1, error)

    def fail(self, name: str, error: Exception, after: int = 0) -> None:
        """Make the call ``name`` raise ``error`` once ``after`` calls succeeded."""
        self.failures[name] = (after, error)

    def call_names(self) -> List[str]:
        return [call[0] for call in self.calls]

    def get_replication_config(self, ctx: Context, bucket: str) -> RemoteConfig:
        ctx.check()
        self._record("get_replication_config", bucket)
        return self.configs.get(bucket, RemoteConfig()).model_copy(deep=True)

    def set_replication_config(self, ctx: Context, bucket: str, config: RemoteConfig) -> None:
        ctx.check()
        self._record("set_replication_config", bucket)
        self.configs[bucket] = config.model_copy(deep=True)

    def list_remote_targets(self, ctx: Context, bucket: str, service: str = "") -> List[RemoteTarget]:
        ctx.check()
        self._record("list_remote_targets", bucket, service)
        return [
            target.model_copy(deep=True)
            for target in self.targets.get(bucket, [])
            if not service or target.type == service
        ]

    def upsert_remote_target(self, ctx: Context, bucket: str, target: TargetDescriptor) -> str:
        ctx.check()
        self._record("upsert_remote_target", bucket, target.target_bucket)
        fields = dict(
            endpoint=target.endpoint,
            target_bucket=target.target_bucket,
            credentials=Credentials(access_key=target.credentials.access_key),
            secure=target.secure,
            path_style=target.path_style,
            region=target.region,
            bandwidth_limit=target.bandwidth_limit,
            replication_sync=target.replication_sync,
            health_check_duration=target.health_check_duration,
            type=target.type,
        )

        targets = self.targets.setdefault(bucket, [])
        for idx, existing in enumerate(targets):
            if existing.endpoint == target.endpoint and existing.target_bucket == target.target_bucket:
                targets[idx] = RemoteTarget(arn=existing.arn, **fields)
                if target.credentials.secret_key is not None:
                    self.secrets[existing.arn] = target.credentials.secret_key
                return existing.arn

        self._next_arn += 1
        name = target.target_bucket.rsplit("/", 1)[-1]
        arn = f"arn:minio:replication::{self._next_arn:04d}:{name}"
        targets.append(RemoteTarget(arn=arn, **fields))
        self.secrets[arn] = target.credentials.secret_key
        return arn

    def remove_remote_target(self, ctx: Context, bucket: str, arn: str) -> None:
        ctx.check()
        self._record("remove_remote_target", bucket, arn)
        config = self.configs.get(bucket)
        if config is not None and any(rule.destination.bucket == arn for rule in config.rules):
            raise RemoteRejectedError(
                "Replication configuration exists with this ARN", bucket=bucket, status_code=400
            )
        targets = self.targets.get(bucket, [])
        remaining = [target for target in targets if target.arn != arn]
        if len(remaining) == len(targets):
            raise RemoteRejectedError("Remote target not found", bucket=bucket, status_code=404)
        self.targets[bucket] = remaining

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def backend() -> FakeBackend:
    """In-memory storage cluster."""
    return FakeBackend()


@pytest.fixture
def client(backend: FakeBackend) -> BucketReplicationClient:
    """Client bound to the in-memory storage cluster."""
    return BucketReplicationClient(backend=backend)


@pytest.fixture
def make_rule() -> Callable[..., ReplicationRule]:
    """Build a declared rule replicating to ``bucket`` on a second cluster."""

    def _make_rule(
        bucket: str, priority: int = 0, secret_key: Optional[str] = "secret", **kwargs: Any
    ) -> ReplicationRule:
        target_fields = {
            key[len("target_"):]: kwargs.pop(key) for key in list(kwargs) if key.startswith("target_")
        }
        target = ReplicationTarget(
            bucket=bucket,
            host="minio-2.example.net:9000",
            access_key="replicator",
            secret_key=secret_key,
            **target_fields,
        )
        return ReplicationRule(priority=priority, target=target, **kwargs)

    return _make_rule


@pytest.fixture
def source_tree() -> Dict[str, Any]:
    """Declarative configuration with one rule and no priority."""
    return {
        "bucket": "source",
        "rule": [
            {
                "target": [
                    {
                        "bucket": "destination",
                        "host": "minio-2.example.net:9000",
                        "access_key": "replicator",
                        "secret_key": "replicator-secret",
                        "bandwidth_limit": "100M",
                    }
                ]
            }
        ],
    }
