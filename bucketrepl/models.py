"""Data models for bucket replication."""

from datetime import timedelta
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from bucketrepl.exceptions import ValidationError

REPLICATION_SERVICE = "replication"


class PathStyle(str, Enum):
    """Bucket addressing style used when talking to the target."""

    ON = "on"
    OFF = "off"
    AUTO = "auto"


class RuleStatus(str, Enum):
    """Wire status of a rule or of one of its replication toggles."""

    ENABLED = "Enabled"
    DISABLED = "Disabled"

    @classmethod
    def of(cls, enabled: bool) -> "RuleStatus":
        return cls.ENABLED if enabled else cls.DISABLED


def _coerce_path_style(value: Any) -> Any:
    if value is None or value == "":
        return PathStyle.AUTO
    if isinstance(value, str):
        return value.strip().lower()
    return value


class ReplicationTarget(BaseModel):
    """Declared replication target of a rule."""

    model_config = ConfigDict(populate_by_name=True)

    bucket: str = Field(..., description="Target bucket name")
    host: str = Field(..., description="Target endpoint (host[:port])")
    region: str = Field("", description="Target region")
    storage_class: str = Field("", description="Storage class of replicated objects")
    path: str = Field("", description="Sub-path prefix of the bucket on the target")
    secure: bool = Field(True, description="Whether the target is reached over TLS")
    path_style: PathStyle = Field(PathStyle.AUTO, description="Bucket addressing style")
    synchronous: bool = Field(False, description="Whether replication is synchronous")
    health_check_period: timedelta = Field(
        timedelta(seconds=30), description="Target health check period"
    )
    bandwidth_limit: int = Field(0, ge=0, description="Bandwidth limit in bytes, 0 is unlimited")
    access_key: str = Field(..., description="Access key on the target")
    secret_key: Optional[str] = Field(
        None, repr=False, description="Secret key on the target, never returned by reads"
    )

    @field_validator("path_style", mode="before")
    @classmethod
    def normalize_path_style(cls, value: Any) -> Any:
        return _coerce_path_style(value)


class ReplicationRule(BaseModel):
    """Declared replication rule."""

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field("", description="Rule identity, assigned on first apply")
    arn: str = Field("", description="Destination reference of the rule's remote target")
    priority: int = Field(0, description="Rule priority, non-positive means auto-assigned")
    enabled: bool = Field(True, description="Whether the rule is enabled")
    prefix: str = Field("", description="Object key prefix filter")
    tags: Dict[str, str] = Field(default_factory=dict, description="Object tag filter (AND)")
    delete_marker_replication: bool = Field(False, description="Replicate delete markers")
    delete_replication: bool = Field(False, description="Replicate versioned deletes")
    existing_object_replication: bool = Field(False, description="Replicate existing objects")
    metadata_sync: bool = Field(False, description="Sync replica metadata modifications")
    target: ReplicationTarget = Field(..., description="Replication target")


class ReplicationState(BaseModel):
    """Declared or projected replication configuration of one bucket."""

    model_config = ConfigDict(populate_by_name=True)

    bucket: str = Field(..., description="Source bucket, also the resource identifier")
    rules: List[ReplicationRule] = Field(default_factory=list, description="Ordered rules")


class Credentials(BaseModel):
    """Credentials of a remote target."""

    model_config = ConfigDict(populate_by_name=True)

    access_key: str = Field("", description="Access key")
    secret_key: Optional[str] = Field(None, repr=False, description="Secret key (write-only)")


class TargetDescriptor(BaseModel):
    """Remote target as submitted to the storage cluster."""

    model_config = ConfigDict(populate_by_name=True)

    target_bucket: str = Field(..., description="Composite target path")
    endpoint: str = Field(..., description="Target endpoint")
    credentials: Credentials = Field(..., description="Target credentials")
    secure: bool = Field(True, description="Whether the target is reached over TLS")
    path_style: PathStyle = Field(PathStyle.AUTO, description="Bucket addressing style")
    api: str = Field("s3v4", description="Signature API")
    type: str = Field(REPLICATION_SERVICE, description="Remote target service type")
    region: str = Field("", description="Target region")
    bandwidth_limit: int = Field(0, ge=0, description="Bandwidth limit in bytes")
    replication_sync: bool = Field(False, description="Synchronous replication")
    health_check_duration: timedelta = Field(
        timedelta(seconds=30), description="Health check period"
    )
    disable_proxy: bool = Field(False, description="Disable proxying to the target")


class RemoteTarget(BaseModel):
    """Remote target as returned by the storage cluster."""

    model_config = ConfigDict(populate_by_name=True)

    arn: str = Field(..., description="Destination reference")
    endpoint: str = Field("", description="Target endpoint")
    target_bucket: str = Field("", description="Composite target path")
    credentials: Credentials = Field(default_factory=Credentials, description="Access key only")
    secure: bool = Field(False, description="Whether the target is reached over TLS")
    path_style: PathStyle = Field(PathStyle.AUTO, description="Bucket addressing style")
    region: str = Field("", description="Target region")
    bandwidth_limit: int = Field(0, ge=0, description="Bandwidth limit in bytes")
    replication_sync: bool = Field(False, description="Synchronous replication")
    health_check_duration: timedelta = Field(timedelta(0), description="Health check period")
    type: str = Field(REPLICATION_SERVICE, description="Remote target service type")

    @field_validator("path_style", mode="before")
    @classmethod
    def normalize_path_style(cls, value: Any) -> Any:
        return _coerce_path_style(value)


class Tag(BaseModel):
    """Object tag used in rule filters."""

    key: str = ""
    value: str = ""

    def is_empty(self) -> bool:
        return self.key == ""


class AndFilter(BaseModel):
    """Combined prefix and tags filter."""

    prefix: str = ""
    tags: List[Tag] = Field(default_factory=list)


class RuleFilter(BaseModel):
    """Rule filter, in either the single-tag or the combined form."""

    model_config = ConfigDict(populate_by_name=True)

    prefix: str = ""
    tag: Optional[Tag] = None
    and_: Optional[AndFilter] = Field(None, alias="and")


class Destination(BaseModel):
    """Rule destination."""

    bucket: str = Field(..., description="Destination reference (ARN)")
    storage_class: str = ""


class RemoteRule(BaseModel):
    """Replication rule as held by the storage cluster."""

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(..., description="Rule identity")
    status: RuleStatus = Field(RuleStatus.ENABLED, description="Rule status")
    priority: int = Field(0, ge=0, description="Server-side priority")
    filter: RuleFilter = Field(default_factory=RuleFilter, description="Rule filter")
    destination: Destination = Field(..., description="Rule destination")
    delete_marker_replication: RuleStatus = RuleStatus.DISABLED
    delete_replication: RuleStatus = RuleStatus.DISABLED
    existing_object_replication: RuleStatus = RuleStatus.DISABLED
    replica_modifications: RuleStatus = RuleStatus.DISABLED

    def prefix(self) -> str:
        if self.filter.and_ is not None and self.filter.and_.prefix:
            return self.filter.and_.prefix
        return self.filter.prefix

    def tags(self) -> Dict[str, str]:
        """Return the tag filter, read from whichever filter form is populated."""
        if self.filter.and_ is not None and (self.filter.and_.tags or self.filter.and_.prefix):
            return {tag.key: tag.value for tag in self.filter.and_.tags if not tag.is_empty()}
        if self.filter.tag is not None and not self.filter.tag.is_empty():
            return {self.filter.tag.key: self.filter.tag.value}
        return {}


class RuleOptions(BaseModel):
    """Wire option set used to add or edit one rule."""

    id: str
    priority: int = Field(..., ge=0)
    dest_bucket: str
    prefix: str = ""
    tag_string: str = ""
    storage_class: str = ""
    enabled: bool = True
    replicate_delete_markers: bool = False
    replicate_deletes: bool = False
    replica_sync: bool = False
    existing_object_replicate: bool = False

    @property
    def is_tag_set(self) -> bool:
        return self.tag_string != ""

    def parsed_tags(self) -> List[Tag]:
        tags = []
        for pair in self.tag_string.split("&") if self.tag_string else []:
            key, _, value = pair.partition("=")
            tags.append(Tag(key=key, value=value))
        return tags

    def to_rule(self) -> RemoteRule:
        tags = self.parsed_tags()
        if len(tags) > 1 or (tags and self.prefix):
            rule_filter = RuleFilter(and_=AndFilter(prefix=self.prefix, tags=tags))
        elif tags:
            rule_filter = RuleFilter(tag=tags[0])
        else:
            rule_filter = RuleFilter(prefix=self.prefix)

        return RemoteRule(
            id=self.id,
            status=RuleStatus.of(self.enabled),
            priority=self.priority,
            filter=rule_filter,
            destination=Destination(bucket=self.dest_bucket, storage_class=self.storage_class),
            delete_marker_replication=RuleStatus.of(self.replicate_delete_markers),
            delete_replication=RuleStatus.of(self.replicate_deletes),
            existing_object_replication=RuleStatus.of(self.existing_object_replicate),
            replica_modifications=RuleStatus.of(self.replica_sync),
        )


class RemoteConfig(BaseModel):
    """Replication configuration of a bucket as held by the storage cluster."""

    model_config = ConfigDict(populate_by_name=True)

    role: str = Field("", description="Replication role")
    rules: List[RemoteRule] = Field(default_factory=list, description="Rules in server order")

    def add_rule(self, opts: RuleOptions) -> None:
        """Append a new rule.

        Raises:
            ValidationError: If the id or the priority is already used
        """
        if not opts.dest_bucket:
            raise ValidationError("destination bucket needs to be in ARN format")
        for rule in self.rules:
            if rule.id == opts.id:
                raise ValidationError(f"a rule exists with this ID: {opts.id}")
            if rule.priority == opts.priority:
                raise ValidationError(f"priority must be unique: {opts.priority} is already in use")
        self.rules.append(opts.to_rule())

    def edit_rule(self, opts: RuleOptions) -> None:
        """Replace the rule with the same id in place.

        Raises:
            ValidationError: If no rule has the id or the priority collides
                with another rule
        """
        if not opts.dest_bucket:
            raise ValidationError("destination bucket needs to be in ARN format")
        position = None
        for idx, rule in enumerate(self.rules):
            if rule.id == opts.id:
                position = idx
            elif rule.priority == opts.priority:
                raise ValidationError(f"priority must be unique: {opts.priority} is already in use")
        if position is None:
            raise ValidationError(f"rule with ID {opts.id} not found in replication configuration")
        self.rules[position] = opts.to_rule()
