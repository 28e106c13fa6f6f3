"""Bucket replication reconciliation.

Converges the replication rules and remote targets of a bucket to a declared,
ordered rule list while keeping rule identities and target secrets stable
across passes.
"""

from bucketrepl.backend import ReplicationBackend
from bucketrepl.client import BucketReplicationClient
from bucketrepl.context import Context, background
from bucketrepl.decode import (
    FieldError,
    Severity,
    decode_configuration,
    decode_rules,
    diff_rule,
    encode_rule,
    encode_state,
)
from bucketrepl.exceptions import (
    AuthenticationError,
    CancelledError,
    ConnectionError,
    ConsistencyError,
    InvalidBucketNameError,
    InvalidFormatError,
    RemoteRejectedError,
    ReplicationError,
    TimeoutError,
    ValidationError,
)
from bucketrepl.models import (
    REPLICATION_SERVICE,
    Credentials,
    PathStyle,
    RemoteConfig,
    RemoteRule,
    RemoteTarget,
    ReplicationRule,
    ReplicationState,
    ReplicationTarget,
    RuleOptions,
    RuleStatus,
    TargetDescriptor,
)
from bucketrepl.rest_client import RestClient

__version__ = "0.1.0"
__all__ = [
    "AuthenticationError",
    "BucketReplicationClient",
    "CancelledError",
    "ConnectionError",
    "ConsistencyError",
    "Context",
    "Credentials",
    "FieldError",
    "InvalidBucketNameError",
    "InvalidFormatError",
    "PathStyle",
    "REPLICATION_SERVICE",
    "RemoteConfig",
    "RemoteRejectedError",
    "RemoteRule",
    "RemoteTarget",
    "ReplicationBackend",
    "ReplicationError",
    "ReplicationRule",
    "ReplicationState",
    "ReplicationTarget",
    "RestClient",
    "RuleOptions",
    "RuleStatus",
    "Severity",
    "TargetDescriptor",
    "TimeoutError",
    "ValidationError",
    "background",
    "decode_configuration",
    "decode_rules",
    "diff_rule",
    "encode_rule",
    "encode_state",
]
