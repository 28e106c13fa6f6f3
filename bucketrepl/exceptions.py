"""Exceptions for the bucket replication engine."""

from typing import TYPE_CHECKING, List, Optional

if TYPE_CHECKING:
    from bucketrepl.decode import FieldError


class ReplicationError(Exception):
    """Base exception for all bucket replication errors."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        """Initialize ReplicationError.

        Args:
            message: Error message
            status_code: HTTP status code if applicable
        """
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class InvalidFormatError(ReplicationError):
    """Raised when a byte-size or duration string cannot be parsed."""

    def __init__(self, value: str, kind: str) -> None:
        """Initialize InvalidFormatError.

        Args:
            value: Offending text
            kind: What the text was expected to be (e.g. "byte size")
        """
        super().__init__(f"invalid {kind}: {value!r}")
        self.value = value
        self.kind = kind


class ValidationError(ReplicationError):
    """Raised when declared configuration is rejected before any remote call."""

    def __init__(self, message: str, errors: Optional[List["FieldError"]] = None) -> None:
        """Initialize ValidationError.

        Args:
            message: Error message
            errors: Structured field errors, when raised by the decoder
        """
        super().__init__(message, status_code=400)
        self.errors = list(errors or [])


class InvalidBucketNameError(ValidationError):
    """Raised when a target bucket name is malformed."""

    def __init__(self, bucket: str, reason: str) -> None:
        super().__init__(f"invalid bucket name {bucket!r}: {reason}")
        self.bucket = bucket
        self.reason = reason


class RemoteRejectedError(ReplicationError):
    """Raised when the storage cluster refuses a call."""

    def __init__(
        self,
        reason: str,
        bucket: Optional[str] = None,
        status_code: Optional[int] = None,
    ) -> None:
        """Initialize RemoteRejectedError.

        Args:
            reason: Reason returned by the server, unmodified
            bucket: Bucket the call was issued against
            status_code: HTTP status code if applicable
        """
        message = f"{bucket}: {reason}" if bucket else reason
        super().__init__(message, status_code=status_code)
        self.reason = reason
        self.bucket = bucket


class AuthenticationError(RemoteRejectedError):
    """Raised when the storage cluster refuses the credentials."""

    def __init__(self, reason: str = "Authentication failed", bucket: Optional[str] = None) -> None:
        super().__init__(reason, bucket=bucket, status_code=401)


class ConsistencyError(ReplicationError):
    """Raised when remote rules and remote targets cannot be reconciled.

    This indicates interference from outside the engine (or a bug) and is
    never corrected automatically.
    """

    pass


class ConnectionError(ReplicationError):
    """Raised when connection to the server fails."""

    pass


class TimeoutError(ReplicationError):
    """Raised when a request times out."""

    pass


class CancelledError(ReplicationError):
    """Raised when a call is skipped because its context was cancelled."""

    def __init__(self, message: str = "operation cancelled") -> None:
        super().__init__(message)
