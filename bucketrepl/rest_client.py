"""REST transport for the storage cluster's replication admin API."""

import logging
from typing import Any, List, Optional

import requests
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from bucketrepl.backend import ReplicationBackend
from bucketrepl.context import Context
from bucketrepl.exceptions import (
    AuthenticationError,
    ConnectionError,
    RemoteRejectedError,
    TimeoutError,
)
from bucketrepl.models import RemoteConfig, RemoteTarget, TargetDescriptor

logger = logging.getLogger(__name__)


class RestClient(ReplicationBackend):
    """REST client for bucket replication rules and remote targets."""

    def __init__(
        self,
        base_url: str = "http://localhost:9000",
        api_version: str = "v1",
        timeout: int = 30,
        max_retries: int = 3,
        access_key: Optional[str] = None,
        secret_key: Optional[str] = None,
    ) -> None:
        """Initialize REST client.

        Args:
            base_url: Base URL of the storage cluster admin API
            api_version: API version to use
            timeout: Request timeout in seconds
            max_retries: Maximum number of attempts on transport errors
            access_key: Admin access key, sent as basic auth
            secret_key: Admin secret key
        """
        self.base_url = base_url.rstrip("/")
        self.api_version = api_version
        self.timeout = timeout
        self.max_retries = max_retries
        self.session = requests.Session()
        if access_key is not None:
            self.session.auth = (access_key, secret_key or "")

    def _url(self, path: str) -> str:
        """Construct full URL from path.

        Args:
            path: API path

        Returns:
            Full URL
        """
        path = path.lstrip("/")
        if self.api_version and not path.startswith(self.api_version):
            return f"{self.base_url}/api/{self.api_version}/{path}"
        return f"{self.base_url}/{path}"

    def _handle_error(self, response: requests.Response, bucket: str) -> None:
        """Handle HTTP error responses.

        Args:
            response: HTTP response
            bucket: Bucket the request was issued against

        Raises:
            RemoteRejectedError: With the server's reason, unmodified
        """
        try:
            data = response.json()
        except ValueError:
            data = None
        reason = data.get("message") if isinstance(data, dict) else None
        reason = reason or response.text or f"HTTP {response.status_code}"

        if response.status_code in (401, 403):
            raise AuthenticationError(reason, bucket=bucket)
        raise RemoteRejectedError(reason, bucket=bucket, status_code=response.status_code)

    def _send(self, ctx: Context, method: str, path: str, **kwargs: Any) -> requests.Response:
        """Issue a request, retrying transport failures only.

        A cancelled context stops further attempts; server refusals are never
        retried.
        """
        retrying = Retrying(
            retry=retry_if_exception_type((ConnectionError, TimeoutError)),
            stop=stop_after_attempt(max(self.max_retries, 1)),
            wait=wait_exponential(multiplier=1, min=1, max=10),
            reraise=True,
        )
        return retrying(self._request, ctx, method, self._url(path), **kwargs)

    def _request(self, ctx: Context, method: str, url: str, **kwargs: Any) -> requests.Response:
        ctx.check()
        logger.debug("%s %s", method, url)
        try:
            return self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.exceptions.Timeout:
            raise TimeoutError("Request timed out")
        except requests.exceptions.ConnectionError as e:
            raise ConnectionError(f"Connection failed: {str(e)}")

    def get_replication_config(self, ctx: Context, bucket: str) -> RemoteConfig:
        """Read the replication configuration of a bucket.

        A bucket without replication configuration reads as an empty one.

        Raises:
            RemoteRejectedError: On failure
        """
        response = self._send(ctx, "GET", f"buckets/{bucket}/replication")

        if response.status_code == 200:
            return RemoteConfig(**response.json().get("config", {}))
        if response.status_code == 404:
            return RemoteConfig()

        self._handle_error(response, bucket)
        return RemoteConfig()

    def set_replication_config(self, ctx: Context, bucket: str, config: RemoteConfig) -> None:
        """Replace the replication configuration of a bucket.

        Raises:
            RemoteRejectedError: On failure
        """
        response = self._send(
            ctx,
            "PUT",
            f"buckets/{bucket}/replication",
            json=config.model_dump(mode="json", by_alias=True, exclude_none=True),
            headers={"Content-Type": "application/json"},
        )

        if response.status_code not in (200, 204):
            self._handle_error(response, bucket)

    def list_remote_targets(self, ctx: Context, bucket: str, service: str = "") -> List[RemoteTarget]:
        """List the remote targets of a bucket.

        Args:
            ctx: Cancellation context
            bucket: Source bucket
            service: Service type filter, empty for all

        Raises:
            RemoteRejectedError: On failure
        """
        response = self._send(
            ctx, "GET", f"buckets/{bucket}/remote-targets", params={"type": service}
        )

        if response.status_code == 200:
            return [RemoteTarget(**target) for target in response.json().get("targets") or []]

        self._handle_error(response, bucket)
        return []

    def upsert_remote_target(self, ctx: Context, bucket: str, target: TargetDescriptor) -> str:
        """Create or update a remote target.

        Returns:
            Destination reference assigned by the server

        Raises:
            RemoteRejectedError: On failure
        """
        response = self._send(
            ctx,
            "PUT",
            f"buckets/{bucket}/remote-targets",
            json=target.model_dump(mode="json", by_alias=True, exclude_none=True),
            headers={"Content-Type": "application/json"},
        )

        if response.status_code in (200, 201):
            return response.json().get("arn", "")

        self._handle_error(response, bucket)
        return ""

    def remove_remote_target(self, ctx: Context, bucket: str, arn: str) -> None:
        """Remove a remote target.

        Raises:
            RemoteRejectedError: On failure
        """
        response = self._send(
            ctx, "DELETE", f"buckets/{bucket}/remote-targets", params={"arn": arn}
        )

        if response.status_code not in (200, 204):
            self._handle_error(response, bucket)

    def close(self) -> None:
        """Close the HTTP session."""
        self.session.close()
