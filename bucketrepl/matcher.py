"""Re-association of remote rules with declared rules."""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

from bucketrepl.exceptions import ConsistencyError
from bucketrepl.models import RemoteRule, ReplicationRule

logger = logging.getLogger(__name__)


def effective_priority(rule: ReplicationRule, index: int) -> int:
    """Return the declared priority, or ``-(index+1)`` when none was assigned."""
    if rule.priority > 0:
        return rule.priority
    return -index - 1


def priority_index(declared: Sequence[ReplicationRule]) -> Dict[int, int]:
    """Map each declared priority to the index of its rule."""
    return {effective_priority(rule, idx): idx for idx, rule in enumerate(declared)}


@dataclass
class RuleMatch:
    """A remote rule and the declared position it was matched to."""

    rule: RemoteRule
    index: int
    declared: Optional[ReplicationRule] = None

    @property
    def arn(self) -> str:
        return self.rule.destination.bucket


class IdentityMatcher:
    """Maps remote rules back to declared rules.

    The server-side priority is the primary key: a declared rule with priority
    ``p`` (or synthetic ``-(i+1)``) is submitted with ``abs(p)``. Remote rules
    with no declared counterpart keep their remote position. The destination
    reference is the secondary key and must be unique across remote rules.
    """

    def match(
        self, bucket: str, remote: Sequence[RemoteRule], declared: Sequence[ReplicationRule]
    ) -> List[RuleMatch]:
        """Return matches ordered by declared position.

        Raises:
            ConsistencyError: If two remote rules point at the same destination
        """
        seen_arns = set()
        for rule in remote:
            arn = rule.destination.bucket
            if arn in seen_arns:
                logger.warning(
                    "Conflict detected between two rules containing the same ARN for %r: %r",
                    bucket,
                    arn,
                )
                raise ConsistencyError(
                    f"conflict detected between two rules containing the same ARN for {bucket!r}: {arn!r}"
                )
            seen_arns.add(arn)

        by_priority = priority_index(declared)
        indexes: Dict[int, int] = {}
        for position, rule in enumerate(remote):
            for key in (rule.priority, -rule.priority):
                index = by_priority.get(key)
                if index is not None and index not in indexes.values():
                    indexes[position] = index
                    break

        # Unmatched rules keep their remote position when it is still free.
        claimed = set(indexes.values())
        for position in range(len(remote)):
            if position in indexes:
                continue
            index = position
            while index in claimed:
                index += 1
            indexes[position] = index
            claimed.add(index)

        matches = []
        for position, rule in enumerate(remote):
            index = indexes[position]
            logger.debug("Remote rule %s (priority %d) matched to rule#%d", rule.id, rule.priority, index)
            matches.append(
                RuleMatch(
                    rule=rule,
                    index=index,
                    declared=declared[index] if index < len(declared) else None,
                )
            )

        matches.sort(key=lambda m: m.index)
        return matches


def same_priority(stored: int, declared: int) -> bool:
    """Whether a declared priority leaves the stored one unchanged.

    An omitted declared priority (0) matches any synthetic stored priority.
    """
    return (stored < 0 and declared == 0) or stored == declared
