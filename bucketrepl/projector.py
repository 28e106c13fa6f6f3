"""Remote state to declared rule list."""

import logging
from typing import Dict, List, Sequence

from bucketrepl.exceptions import ConsistencyError
from bucketrepl.matcher import RuleMatch, effective_priority
from bucketrepl.models import (
    RemoteTarget,
    ReplicationRule,
    ReplicationTarget,
    RuleStatus,
)
from bucketrepl.paths import decompose

logger = logging.getLogger(__name__)


class StateProjector:
    """Rebuilds declared-shape rules from remote rules and remote targets.

    The storage cluster never returns a target's secret key, so secrets are
    carried over from the last-known declared rule at the same position.
    """

    def project(
        self, bucket: str, matches: Sequence[RuleMatch], targets: Sequence[RemoteTarget]
    ) -> List[ReplicationRule]:
        """Project matched remote rules and their targets, in declared order.

        Raises:
            ConsistencyError: If the number of targets differs from the number
                of rules, or a target is not referenced by any rule
        """
        if len(targets) != len(matches):
            raise ConsistencyError(
                "inconsistent number of remote target and bucket replication rules "
                f"({len(targets)} != {len(matches)})"
            )

        by_arn: Dict[str, RuleMatch] = {match.arn: match for match in matches}
        targets_by_arn: Dict[str, RemoteTarget] = {}
        for target in targets:
            if target.arn not in by_arn:
                raise ConsistencyError(
                    f"unable to find the remote target configuration for ARN {target.arn!r} on {bucket}"
                )
            targets_by_arn[target.arn] = target

        return [self._project_rule(match, targets_by_arn[match.arn]) for match in matches]

    def _project_rule(self, match: RuleMatch, target: RemoteTarget) -> ReplicationRule:
        rule = match.rule
        priority = rule.priority
        if match.declared is not None and priority == -effective_priority(match.declared, match.index):
            priority = -priority

        logger.debug("Rule data for rule#%d is: %r", match.index, rule)
        logger.debug("absolute remote target path is %s", target.target_bucket)

        target_bucket, sub_path = decompose(target.target_bucket)
        projected_target = ReplicationTarget(
            bucket=target_bucket,
            path=sub_path,
            host=target.endpoint,
            secure=target.secure,
            path_style=target.path_style,
            synchronous=target.replication_sync,
            health_check_period=target.health_check_duration,
            bandwidth_limit=target.bandwidth_limit,
            region=target.region,
            storage_class=rule.destination.storage_class,
            access_key=target.credentials.access_key,
            secret_key=match.declared.target.secret_key if match.declared is not None else None,
        )

        return ReplicationRule(
            id=rule.id,
            arn=rule.destination.bucket,
            enabled=rule.status == RuleStatus.ENABLED,
            priority=priority,
            prefix=rule.prefix(),
            tags=rule.tags(),
            delete_replication=rule.delete_replication == RuleStatus.ENABLED,
            delete_marker_replication=rule.delete_marker_replication == RuleStatus.ENABLED,
            existing_object_replication=rule.existing_object_replication == RuleStatus.ENABLED,
            metadata_sync=rule.replica_modifications == RuleStatus.ENABLED,
            target=projected_target,
        )
