"""Declarative configuration tree to typed rules, and back.

The tree is the loosely typed shape a configuration front end produces::

    {
        "bucket": "source",
        "rule": [
            {
                "priority": 10,
                "prefix": "logs/",
                "tags": {"team": "data"},
                "delete_replication": True,
                "target": [{
                    "bucket": "destination",
                    "host": "minio.example.net:9000",
                    "bandwidth_limit": "100M",
                    "access_key": "replicator",
                    "secret_key": "...",
                }],
            },
        ],
    }
"""

import logging
import re
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple

from pydantic import BaseModel, Field

from bucketrepl.exceptions import InvalidFormatError, ValidationError
from bucketrepl.matcher import effective_priority, same_priority
from bucketrepl.models import PathStyle, ReplicationRule, ReplicationState, ReplicationTarget
from bucketrepl.units import (
    format_byte_size,
    format_duration,
    parse_byte_size,
    parse_duration,
    same_byte_size,
    same_duration,
    validate_bandwidth_limit,
)

logger = logging.getLogger(__name__)

_TAG_PATTERN = re.compile(r"^[a-zA-Z0-9+\-._:/@ ]+$")

_RULE_TOGGLES = (
    "delete_replication",
    "delete_marker_replication",
    "existing_object_replication",
    "metadata_sync",
)


class Severity(str, Enum):
    """Severity of a decode diagnostic."""

    ERROR = "error"
    WARNING = "warning"


class FieldError(BaseModel):
    """A problem found at one field of the configuration tree."""

    path: str = Field(..., description="Field path, e.g. rule[0].target.bucket")
    message: str = Field(..., description="What is wrong")
    severity: Severity = Field(Severity.ERROR, description="Error or warning")

    def __str__(self) -> str:
        return f"{self.path}: {self.message}"


class _Collector:
    def __init__(self) -> None:
        self.diagnostics: List[FieldError] = []

    def error(self, path: str, message: str) -> None:
        self.diagnostics.append(FieldError(path=path, message=message))

    def warning(self, path: str, message: str) -> None:
        self.diagnostics.append(FieldError(path=path, message=message, severity=Severity.WARNING))

    def count(self) -> int:
        return sum(1 for d in self.diagnostics if d.severity == Severity.ERROR)

    def string(self, data: Mapping[str, Any], key: str, path: str, default: str = "") -> str:
        value = data.get(key)
        if value is None:
            return default
        if not isinstance(value, str):
            self.error(f"{path}.{key}", f"must be a string, not a {type(value).__name__}")
            return default
        return value

    def required(self, data: Mapping[str, Any], key: str, path: str) -> str:
        value = data.get(key)
        if not isinstance(value, str) or not value.strip():
            self.error(f"{path}.{key}", "cannot be omitted")
            return ""
        return value

    def boolean(self, data: Mapping[str, Any], key: str, path: str, default: bool) -> bool:
        value = data.get(key)
        if value is None:
            return default
        if not isinstance(value, bool):
            self.error(f"{path}.{key}", f"must be a boolean, not a {type(value).__name__}")
            return default
        return value


def decode_rules(tree: Any) -> Tuple[List[ReplicationRule], List[FieldError]]:
    """Decode a list of rule mappings.

    Returns:
        The rules that decoded without errors, and every diagnostic found.
        Rules with non-positive priority get the synthetic priority
        ``-(index+1)``.
    """
    collector = _Collector()
    rules: List[ReplicationRule] = []
    if not tree:
        return rules, collector.diagnostics
    if not isinstance(tree, (list, tuple)):
        collector.error("rule", f"must be a list, not a {type(tree).__name__}")
        return rules, collector.diagnostics

    seen_priorities: Dict[int, int] = {}
    automatic = {idx + 1: idx for idx, raw in enumerate(tree) if _explicit_priority(raw) <= 0}
    for idx, raw in enumerate(tree):
        path = f"rule[{idx}]"
        errors_before = collector.count()
        if not isinstance(raw, Mapping):
            collector.error(path, "unable to extract the rule")
            continue
        logger.debug("%s contains %r", path, {k: v for k, v in raw.items() if k != "target"})

        priority = raw.get("priority")
        if priority is None:
            priority = 0
        elif isinstance(priority, bool) or not isinstance(priority, int):
            collector.error(f"{path}.priority", "must be an integer")
            priority = 0
        if priority > 0:
            if priority in seen_priorities:
                collector.error(
                    f"{path}.priority",
                    f"priority {priority} is already used by rule[{seen_priorities[priority]}]",
                )
            elif priority in automatic:
                collector.error(
                    f"{path}.priority",
                    f"priority {priority} is already used by rule[{automatic[priority]}], "
                    "whose priority defaults to its position",
                )
            seen_priorities[priority] = idx
        else:
            logger.debug("%s.priority omitted. Defaulting to index (%d)", path, idx + 1)

        tags = _decode_tags(collector, raw.get("tags"), f"{path}.tags")
        target = _decode_target(collector, raw.get("target"), f"{path}.target")

        fields: Dict[str, Any] = {
            "id": collector.string(raw, "id", path),
            "arn": collector.string(raw, "arn", path),
            "enabled": collector.boolean(raw, "enabled", path, True),
            "prefix": collector.string(raw, "prefix", path),
        }
        for toggle in _RULE_TOGGLES:
            fields[toggle] = collector.boolean(raw, toggle, path, False)

        if collector.count() > errors_before or target is None:
            continue

        rule = ReplicationRule(priority=priority, tags=tags, target=target, **fields)
        rules.append(rule.model_copy(update={"priority": effective_priority(rule, idx)}))

    return rules, collector.diagnostics


def _explicit_priority(raw: Any) -> int:
    priority = raw.get("priority") if isinstance(raw, Mapping) else None
    if isinstance(priority, bool) or not isinstance(priority, int):
        return 0
    return priority


def _decode_tags(collector: _Collector, raw: Any, path: str) -> Dict[str, str]:
    if raw is None:
        return {}
    if not isinstance(raw, Mapping):
        collector.error(path, f"must be a map, not a {type(raw).__name__}")
        return {}

    tags: Dict[str, str] = {}
    for key, value in raw.items():
        if not isinstance(value, str):
            collector.error(f"{path}[{key}]", f"value must be a string, not a {type(value).__name__}")
            continue
        if not 1 <= len(key) <= 128 or not _TAG_PATTERN.match(key):
            collector.error(f"{path}[{key}]", "tag keys must be 1 to 128 characters of [a-zA-Z0-9-+._:/@ ]")
            continue
        if not 1 <= len(value) <= 256 or not _TAG_PATTERN.match(value):
            collector.error(f"{path}[{key}]", "tag values must be 1 to 256 characters of [a-zA-Z0-9-+._:/@ ]")
            continue
        tags[key] = value
    return tags


def _decode_target(collector: _Collector, raw: Any, path: str) -> Optional[ReplicationTarget]:
    if isinstance(raw, (list, tuple)):
        if len(raw) != 1:
            collector.error(path, "exactly one target configuration is expected")
            return None
        raw = raw[0]
    if not isinstance(raw, Mapping):
        collector.error(path, "exactly one target configuration is expected")
        return None

    errors_before = collector.count()
    bucket = collector.required(raw, "bucket", path)
    host = collector.required(raw, "host", path)
    access_key = collector.required(raw, "access_key", path)

    secret_key = raw.get("secret_key")
    if secret_key is not None and (not isinstance(secret_key, str) or not secret_key):
        collector.error(f"{path}.secret_key", "must be a non-empty string when set")
        secret_key = None

    secure = collector.boolean(raw, "secure", path, True)
    if not secure:
        collector.warning(
            f"{path}.secure", "secure is false. It is unsafe to use bucket replication over HTTP"
        )

    path_style = PathStyle.AUTO
    style = collector.string(raw, "path_style", path, "auto").strip().lower()
    if style in (PathStyle.ON.value, PathStyle.OFF.value):
        path_style = PathStyle(style)
    elif style not in ("auto", ""):
        collector.warning(f"{path}.path_style", 'must be "on", "off" or "auto". Defaulting to "auto"')

    bandwidth_limit = 0
    bandwidth_text = raw.get("bandwidth_limit", "0")
    if isinstance(bandwidth_text, int) and not isinstance(bandwidth_text, bool):
        bandwidth_text = str(bandwidth_text)
    if bandwidth_text is not None and not isinstance(bandwidth_text, str):
        collector.error(f"{path}.bandwidth_limit", "must be a string")
    elif bandwidth_text:
        try:
            bandwidth_limit = parse_byte_size(bandwidth_text)
            validate_bandwidth_limit(bandwidth_limit)
        except InvalidFormatError:
            logger.warning("invalid bandwidth value %r", bandwidth_text)
            collector.error(
                f"{path}.bandwidth_limit", "is invalid. Make sure to use k, m, g as suffix only"
            )
        except ValidationError as e:
            collector.error(f"{path}.bandwidth_limit", e.message)

    health_check_period = None
    health_text = raw.get("health_check_period", "30s")
    if health_text is not None and not isinstance(health_text, str):
        collector.error(f"{path}.health_check_period", "must be a string")
    elif health_text:
        try:
            health_check_period = parse_duration(health_text)
        except InvalidFormatError:
            logger.warning("invalid healthcheck value %r", health_text)
            collector.error(
                f"{path}.health_check_period", "is invalid. Use an integer followed by s, m or h"
            )

    fields: Dict[str, Any] = {
        "storage_class": collector.string(raw, "storage_class", path),
        "path": collector.string(raw, "path", path),
        "region": collector.string(raw, "region", path),
        "synchronous": collector.boolean(raw, "synchronous", path, False),
    }
    if health_check_period is not None:
        fields["health_check_period"] = health_check_period

    if collector.count() > errors_before:
        return None

    return ReplicationTarget(
        bucket=bucket,
        host=host,
        access_key=access_key,
        secret_key=secret_key,
        secure=secure,
        path_style=path_style,
        bandwidth_limit=bandwidth_limit,
        **fields,
    )


def decode_configuration(tree: Mapping[str, Any]) -> ReplicationState:
    """Decode a whole bucket replication configuration.

    Raises:
        ValidationError: Carrying every error-severity diagnostic
    """
    collector = _Collector()
    bucket = collector.required(tree, "bucket", "configuration")
    rules, diagnostics = decode_rules(tree.get("rule"))
    diagnostics = collector.diagnostics + diagnostics

    for diagnostic in diagnostics:
        if diagnostic.severity == Severity.WARNING:
            logger.warning("%s", diagnostic)

    errors = [d for d in diagnostics if d.severity == Severity.ERROR]
    if errors:
        raise ValidationError(
            "invalid bucket replication configuration: " + "; ".join(str(e) for e in errors),
            errors=errors,
        )
    return ReplicationState(bucket=bucket, rules=rules)


def encode_rule(rule: ReplicationRule) -> Dict[str, Any]:
    """Render a rule back into the configuration tree shape."""
    target = rule.target
    encoded_target: Dict[str, Any] = {
        "bucket": target.bucket,
        "host": target.host,
        "region": target.region,
        "storage_class": target.storage_class,
        "path": target.path,
        "secure": target.secure,
        "path_style": target.path_style.value,
        "synchronous": target.synchronous,
        "health_check_period": format_duration(target.health_check_period),
        "bandwidth_limit": format_byte_size(target.bandwidth_limit),
        "access_key": target.access_key,
    }
    if target.secret_key is not None:
        encoded_target["secret_key"] = target.secret_key

    encoded: Dict[str, Any] = {
        "id": rule.id,
        "arn": rule.arn,
        "enabled": rule.enabled,
        "priority": rule.priority,
        "prefix": rule.prefix,
        "tags": dict(rule.tags),
    }
    for toggle in _RULE_TOGGLES:
        encoded[toggle] = getattr(rule, toggle)
    encoded["target"] = [encoded_target]
    return encoded


def encode_state(state: ReplicationState) -> Dict[str, Any]:
    return {"bucket": state.bucket, "rule": [encode_rule(rule) for rule in state.rules]}


_TARGET_DEFAULTS: Dict[str, Any] = {
    "region": "",
    "storage_class": "",
    "path": "",
    "secure": True,
    "path_style": PathStyle.AUTO.value,
    "synchronous": False,
}


def _first_target(rule: Mapping[str, Any]) -> Mapping[str, Any]:
    target = rule.get("target")
    if isinstance(target, (list, tuple)):
        target = target[0] if target else None
    return target if isinstance(target, Mapping) else {}


def diff_rule(stored: Mapping[str, Any], declared: Mapping[str, Any]) -> List[str]:
    """List the fields of a declared rule that differ from the stored rule.

    Both rules are in the configuration tree shape, ``stored`` as rendered by
    :func:`encode_rule`. Byte sizes and durations are compared by value, so
    ``"100 MB"`` matches a stored ``"100M"``, and an omitted priority matches
    any automatic one. Identity and destination reference are assigned by the
    engine and never reported.

    Returns:
        Field paths such as ``"prefix"`` or ``"target.bandwidth_limit"``
    """
    changes: List[str] = []
    if not same_priority(stored.get("priority") or 0, declared.get("priority") or 0):
        changes.append("priority")
    if stored.get("enabled", True) != declared.get("enabled", True):
        changes.append("enabled")
    if (stored.get("prefix") or "") != (declared.get("prefix") or ""):
        changes.append("prefix")
    if dict(stored.get("tags") or {}) != dict(declared.get("tags") or {}):
        changes.append("tags")
    for toggle in _RULE_TOGGLES:
        if stored.get(toggle, False) != declared.get(toggle, False):
            changes.append(toggle)

    stored_target = _first_target(stored)
    declared_target = _first_target(declared)
    for key in ("bucket", "host", "access_key"):
        if stored_target.get(key) != declared_target.get(key):
            changes.append(f"target.{key}")
    for key, default in _TARGET_DEFAULTS.items():
        stored_value = stored_target.get(key, default)
        declared_value = declared_target.get(key, default)
        if key == "path_style":
            stored_value = (stored_value or default).lower()
            declared_value = (declared_value or default).lower()
        if stored_value != declared_value:
            changes.append(f"target.{key}")

    bandwidth = str(declared_target.get("bandwidth_limit", "0"))
    if not same_byte_size(stored_target.get("bandwidth_limit", "0"), bandwidth):
        changes.append("target.bandwidth_limit")
    health_check = declared_target.get("health_check_period", "30s")
    if not same_duration(stored_target.get("health_check_period", "30s"), health_check):
        changes.append("target.health_check_period")
    secret_key = declared_target.get("secret_key")
    if secret_key is not None and secret_key != stored_target.get("secret_key"):
        changes.append("target.secret_key")

    return changes
