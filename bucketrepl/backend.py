"""Contract of the storage cluster as seen by the reconciliation engine."""

from abc import ABC, abstractmethod
from typing import List

from bucketrepl.context import Context
from bucketrepl.models import RemoteConfig, RemoteTarget, TargetDescriptor


class ReplicationBackend(ABC):
    """Remote calls the engine issues against one storage cluster.

    Implementations call ``ctx.check()`` before issuing a request and raise
    ``RemoteRejectedError`` when the cluster refuses one.
    """

    @abstractmethod
    def get_replication_config(self, ctx: Context, bucket: str) -> RemoteConfig:
        """Read the current replication rules of ``bucket``."""

    @abstractmethod
    def set_replication_config(self, ctx: Context, bucket: str, config: RemoteConfig) -> None:
        """Replace the full rule set of ``bucket``."""

    @abstractmethod
    def list_remote_targets(
        self, ctx: Context, bucket: str, service: str = ""
    ) -> List[RemoteTarget]:
        """List the remote targets of ``bucket``, optionally filtered by service type."""

    @abstractmethod
    def upsert_remote_target(self, ctx: Context, bucket: str, target: TargetDescriptor) -> str:
        """Create or update a remote target and return its destination reference."""

    @abstractmethod
    def remove_remote_target(self, ctx: Context, bucket: str, arn: str) -> None:
        """Remove the remote target identified by ``arn``."""

    def close(self) -> None:
        """Release transport resources."""

    def __enter__(self) -> "ReplicationBackend":
        return self

    def __exit__(self, *args: object) -> None:
        self.close()
