"""Declared rules to remote calls."""

import logging
import uuid
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence

from bucketrepl.backend import ReplicationBackend
from bucketrepl.context import Context
from bucketrepl.exceptions import RemoteRejectedError, ValidationError
from bucketrepl.matcher import effective_priority
from bucketrepl.models import RemoteConfig, RemoteTarget, ReplicationRule, RuleOptions
from bucketrepl.resolver import TargetResolver, build_target_descriptor

logger = logging.getLogger(__name__)


def new_rule_id() -> str:
    return uuid.uuid4().hex


def rule_options(rule: ReplicationRule, index: int, arn: str) -> RuleOptions:
    """Serialize a declared rule into the wire option set.

    Synthetic negative priorities are submitted as their absolute value.
    """
    tag_string = "&".join(f"{key}={value}" for key, value in sorted(rule.tags.items()))
    return RuleOptions(
        id=rule.id,
        priority=abs(effective_priority(rule, index)),
        dest_bucket=arn,
        prefix=rule.prefix,
        tag_string=tag_string,
        storage_class=rule.target.storage_class,
        enabled=rule.enabled,
        replicate_delete_markers=rule.delete_marker_replication,
        replicate_deletes=rule.delete_replication,
        replica_sync=rule.metadata_sync,
        existing_object_replicate=rule.existing_object_replication,
    )


@dataclass
class ApplyResult:
    """Outcome of one apply pass."""

    config: RemoteConfig
    rules: List[ReplicationRule] = field(default_factory=list)
    used_references: List[str] = field(default_factory=list)
    added: List[str] = field(default_factory=list)
    edited: List[str] = field(default_factory=list)
    removed_targets: List[str] = field(default_factory=list)


class RuleReconciler:
    """Converges the remote rule set of one bucket to the declared rules.

    Rules are resolved and written in declared order. The first failing call
    aborts the pass; calls already issued are not rolled back.
    """

    def __init__(
        self,
        backend: ReplicationBackend,
        resolver: Optional[TargetResolver] = None,
        id_factory: Callable[[], str] = new_rule_id,
    ) -> None:
        self.backend = backend
        self.resolver = resolver or TargetResolver(backend)
        self.id_factory = id_factory

    def validate(self, declared: Sequence[ReplicationRule]) -> None:
        """Check every declared rule locally, before any remote call is made.

        Raises:
            InvalidBucketNameError: If a target bucket name is malformed
            ValidationError: If a bandwidth limit is out of range, or two rules
                share an identity or a server-side priority
        """
        seen_ids: Dict[str, int] = {}
        seen_priorities: Dict[int, int] = {}
        for idx, rule in enumerate(declared):
            build_target_descriptor(rule.target)

            priority = abs(effective_priority(rule, idx))
            if priority in seen_priorities:
                raise ValidationError(
                    f"rule#{idx}: priority must be unique: {priority} is already used by "
                    f"rule#{seen_priorities[priority]}"
                )
            seen_priorities[priority] = idx

            rule_id = rule.id.strip()
            if rule_id in seen_ids:
                raise ValidationError(
                    f"rule#{idx}: a rule exists with this ID: {rule_id} (rule#{seen_ids[rule_id]})"
                )
            if rule_id:
                seen_ids[rule_id] = idx

    def apply(
        self,
        ctx: Context,
        bucket: str,
        declared: Sequence[ReplicationRule],
        config: RemoteConfig,
        existing_targets: Sequence[RemoteTarget],
    ) -> ApplyResult:
        """Apply ``declared`` on top of ``config`` and drop unreferenced targets.

        Args:
            ctx: Cancellation context
            bucket: Source bucket
            declared: Declared rules, in order
            config: Remote configuration read at the start of the pass, mutated in place
            existing_targets: Remote targets read at the start of the pass

        Returns:
            ApplyResult whose ``rules`` carry their identity, ARN and priority
        """
        self.validate(declared)
        result = ApplyResult(config=config)

        for idx, rule in enumerate(declared):
            arn = self.resolver.resolve(ctx, bucket, rule, existing_targets)
            rule = rule.model_copy(
                update={"arn": arn, "priority": effective_priority(rule, idx)}
            )

            known_ids = {remote.id for remote in config.rules}
            if not rule.id.strip():
                rule = rule.model_copy(update={"id": self.id_factory()})
                opts = rule_options(rule, idx, arn)
                logger.debug("Adding replication option for rule#%d: %r", idx, opts)
                config.add_rule(opts)
                result.added.append(rule.id)
            elif rule.id not in known_ids:
                opts = rule_options(rule, idx, arn)
                logger.warning(
                    "Rule %s is missing from the replication config of %r, adding it back",
                    rule.id,
                    bucket,
                )
                config.add_rule(opts)
                result.added.append(rule.id)
            else:
                opts = rule_options(rule, idx, arn)
                logger.debug("Editing replication option for rule#%d: %r", idx, opts)
                config.edit_rule(opts)
                result.edited.append(rule.id)

            result.rules.append(rule)
            result.used_references.append(arn)

        ctx.check()
        logger.debug("S3 bucket: %s, put replication configuration: %r", bucket, config)
        try:
            self.backend.set_replication_config(ctx, bucket, config)
        except RemoteRejectedError as e:
            logger.warning("Unable to put replication config for %r: %s", bucket, e)
            raise

        used = set(result.used_references)
        for target in existing_targets:
            if target.arn in used:
                continue
            ctx.check()
            logger.debug("Removing unused remote target %s from %r", target.arn, bucket)
            try:
                self.backend.remove_remote_target(ctx, bucket, target.arn)
            except RemoteRejectedError as e:
                logger.warning("Unable to remove remote target %s from %r: %s", target.arn, bucket, e)
                raise
            result.removed_targets.append(target.arn)

        return result
