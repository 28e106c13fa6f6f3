"""Remote target resolution for declared rules."""

import logging
from typing import Optional, Sequence

from bucketrepl.backend import ReplicationBackend
from bucketrepl.context import Context
from bucketrepl.exceptions import RemoteRejectedError
from bucketrepl.models import (
    Credentials,
    RemoteTarget,
    ReplicationRule,
    ReplicationTarget,
    TargetDescriptor,
)
from bucketrepl.paths import check_bucket_name, compose
from bucketrepl.units import validate_bandwidth_limit

logger = logging.getLogger(__name__)


def build_target_descriptor(target: ReplicationTarget) -> TargetDescriptor:
    """Build the remote target descriptor for a declared target.

    Raises:
        InvalidBucketNameError: If the target bucket name is malformed
        ValidationError: If the bandwidth limit is out of range
    """
    check_bucket_name(target.bucket)
    validate_bandwidth_limit(target.bandwidth_limit)

    target_bucket = compose(target.bucket, target.path)
    logger.debug("Full path to target bucket is %s", target_bucket)

    return TargetDescriptor(
        target_bucket=target_bucket,
        endpoint=target.host,
        credentials=Credentials(access_key=target.access_key, secret_key=target.secret_key),
        secure=target.secure,
        path_style=target.path_style,
        region=target.region,
        bandwidth_limit=target.bandwidth_limit,
        replication_sync=target.synchronous,
        health_check_duration=target.health_check_period,
    )


class TargetResolver:
    """Finds or creates the remote target of each declared rule.

    The target is upserted on every pass; the storage cluster assigns the
    destination reference and returns the existing one when the target
    already exists.
    """

    def __init__(self, backend: ReplicationBackend) -> None:
        self.backend = backend

    def resolve(
        self,
        ctx: Context,
        bucket: str,
        rule: ReplicationRule,
        existing: Optional[Sequence[RemoteTarget]] = None,
    ) -> str:
        """Upsert the remote target of ``rule`` and return its destination reference.

        Args:
            ctx: Cancellation context
            bucket: Source bucket
            rule: Declared rule
            existing: Remote targets read at the start of the pass

        Returns:
            Destination reference (ARN) assigned by the storage cluster

        Raises:
            InvalidBucketNameError: Before any remote call, on a bad bucket name
            RemoteRejectedError: If the storage cluster refuses the target
        """
        descriptor = build_target_descriptor(rule.target)
        if existing:
            logger.debug("Existing remote targets for %r: %s", bucket, [t.arn for t in existing])

        ctx.check()
        logger.debug("Adding remote target %r for %r", descriptor, bucket)
        try:
            arn = self.backend.upsert_remote_target(ctx, bucket, descriptor)
        except RemoteRejectedError as e:
            logger.warning(
                "Unable to configure remote target %s for %r: %s", descriptor.target_bucket, bucket, e
            )
            raise

        if not arn:
            raise RemoteRejectedError(
                f"no destination reference returned for target {descriptor.target_bucket}",
                bucket=bucket,
            )
        return arn
