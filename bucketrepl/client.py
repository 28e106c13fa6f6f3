"""Bucket replication client: apply, read back and delete declared rules."""

import logging
from typing import Optional, Sequence

from bucketrepl.backend import ReplicationBackend
from bucketrepl.context import Context, background
from bucketrepl.exceptions import ConsistencyError, RemoteRejectedError
from bucketrepl.matcher import IdentityMatcher
from bucketrepl.models import RemoteConfig, RemoteTarget, ReplicationRule, ReplicationState
from bucketrepl.paths import check_bucket_name
from bucketrepl.projector import StateProjector
from bucketrepl.reconciler import RuleReconciler
from bucketrepl.rest_client import RestClient

logger = logging.getLogger(__name__)


class BucketReplicationClient:
    """Keeps the replication rules of a bucket in line with declared rules.

    Passes are synchronous and issue their remote calls one at a time in
    declared-rule order. Nothing is rolled back on failure: re-running the
    same pass converges.

    Example:
        client = BucketReplicationClient(base_url="http://localhost:9000")

        with client:
            state = decode_configuration(tree)
            applied = client.put(state.bucket, state.rules)
            current = client.read(state.bucket, applied.rules)
            client.delete(state.bucket, current.rules)
    """

    def __init__(
        self,
        backend: Optional[ReplicationBackend] = None,
        base_url: Optional[str] = None,
        api_version: str = "v1",
        timeout: int = 30,
        max_retries: int = 3,
        access_key: Optional[str] = None,
        secret_key: Optional[str] = None,
    ) -> None:
        """Initialize the client.

        Args:
            backend: Storage cluster backend; a RestClient is built when omitted
            base_url: Base URL for the REST backend (e.g., "http://localhost:9000")
            api_version: API version for the REST backend
            timeout: Request timeout in seconds
            max_retries: Maximum number of attempts on transport errors
            access_key: Admin access key for the REST backend
            secret_key: Admin secret key for the REST backend
        """
        if backend is None:
            backend = RestClient(
                base_url=base_url or "http://localhost:9000",
                api_version=api_version,
                timeout=timeout,
                max_retries=max_retries,
                access_key=access_key,
                secret_key=secret_key,
            )
        self.backend = backend
        self.reconciler = RuleReconciler(backend)
        self.matcher = IdentityMatcher()
        self.projector = StateProjector()

    def _get_config(self, ctx: Context, bucket: str) -> RemoteConfig:
        ctx.check()
        try:
            return self.backend.get_replication_config(ctx, bucket)
        except RemoteRejectedError as e:
            logger.warning("Unable to fetch bucket replication config for %r: %s", bucket, e)
            raise

    def _list_targets(self, ctx: Context, bucket: str) -> Sequence[RemoteTarget]:
        ctx.check()
        try:
            return self.backend.list_remote_targets(ctx, bucket, "")
        except RemoteRejectedError as e:
            logger.warning("Unable to fetch existing remote target config for %r: %s", bucket, e)
            raise

    def put(
        self, bucket: str, rules: Sequence[ReplicationRule], ctx: Optional[Context] = None
    ) -> ReplicationState:
        """Create or update the replication rules of a bucket.

        Remote rules whose identity is no longer declared are dropped, and
        remote targets no rule references any more are removed.

        Args:
            bucket: Source bucket
            rules: Declared rules, in order
            ctx: Cancellation context

        Returns:
            The declared rules with identity, ARN and priority filled in

        Raises:
            ValidationError: If a declared rule is rejected locally, before any
                remote call is made
        """
        ctx = ctx or background()
        check_bucket_name(bucket)
        self.reconciler.validate(rules)
        logger.debug("S3 bucket: %s, put replication configuration for %d rule(s)", bucket, len(rules))

        config = self._get_config(ctx, bucket)
        existing_targets = self._list_targets(ctx, bucket)

        declared_ids = {rule.id for rule in rules if rule.id.strip()}
        kept = [remote for remote in config.rules if remote.id in declared_ids]
        for remote in config.rules:
            if remote.id not in declared_ids:
                logger.debug("Dropping undeclared rule %s from %r", remote.id, bucket)
        config.rules = kept

        result = self.reconciler.apply(ctx, bucket, rules, config, existing_targets)
        logger.debug(
            "S3 bucket: %s, %d rule(s) added, %d edited, %d remote target(s) removed",
            bucket,
            len(result.added),
            len(result.edited),
            len(result.removed_targets),
        )
        return ReplicationState(bucket=bucket, rules=result.rules)

    def read(
        self,
        bucket: str,
        known_rules: Sequence[ReplicationRule] = (),
        ctx: Optional[Context] = None,
    ) -> ReplicationState:
        """Read the replication rules of a bucket back in declared shape.

        Args:
            bucket: Source bucket
            known_rules: Last-known declared rules, used for ordering and secrets
            ctx: Cancellation context

        Raises:
            ConsistencyError: If remote rules and remote targets disagree
        """
        ctx = ctx or background()
        logger.debug("S3 bucket replication, read for bucket: %s", bucket)

        config = self._get_config(ctx, bucket)
        matches = self.matcher.match(bucket, config.rules, known_rules)
        targets = self._list_targets(ctx, bucket)
        rules = self.projector.project(bucket, matches, targets)
        return ReplicationState(bucket=bucket, rules=rules)

    def delete(
        self,
        bucket: str,
        known_rules: Sequence[ReplicationRule] = (),
        ctx: Optional[Context] = None,
    ) -> None:
        """Remove every replication rule of a bucket and the targets they used.

        Raises:
            ConsistencyError: If remote targets remain afterwards
        """
        ctx = ctx or background()

        config = self._get_config(ctx, bucket)
        arns = {rule.destination.bucket for rule in config.rules}
        arns.update(rule.arn for rule in known_rules if rule.arn)

        logger.debug("S3 bucket: %s, disabling replication", bucket)
        config.rules = []
        ctx.check()
        try:
            self.backend.set_replication_config(ctx, bucket, config)
        except RemoteRejectedError as e:
            logger.warning("Unable to set an empty replication config for %r: %s", bucket, e)
            raise

        for target in self._list_targets(ctx, bucket):
            if target.arn not in arns:
                continue
            ctx.check()
            logger.debug("Removing remote target %s from %r", target.arn, bucket)
            try:
                self.backend.remove_remote_target(ctx, bucket, target.arn)
            except RemoteRejectedError as e:
                logger.warning("Unable to remove remote target %s from %r: %s", target.arn, bucket, e)
                raise

        remaining = self._list_targets(ctx, bucket)
        if remaining:
            raise ConsistencyError(
                f"{len(remaining)} remote targets are still present on the bucket {bucket} "
                "while none are expected"
            )

    def close(self) -> None:
        """Close the underlying backend."""
        self.backend.close()

    def __enter__(self) -> "BucketReplicationClient":
        """Context manager entry."""
        return self

    def __exit__(self, *args: object) -> None:
        """Context manager exit."""
        self.close()
