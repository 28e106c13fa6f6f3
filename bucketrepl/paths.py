"""Composite target paths and bucket name checks.

The storage cluster addresses a replication target bucket with a single
path string: the optional sub-path followed by the bucket name.
"""

import posixpath
import re
from typing import Tuple

from bucketrepl.exceptions import InvalidBucketNameError

_VALID_BUCKET_NAME = re.compile(r"^[A-Za-z0-9][A-Za-z0-9\.\-_:]{1,61}[A-Za-z0-9]$")
_IP_ADDRESS = re.compile(r"^(\d+\.){3}\d+$")


def check_bucket_name(bucket: str) -> None:
    """Validate a bucket name before it is sent anywhere.

    Raises:
        InvalidBucketNameError: If the name is empty, too short or long, an
            IP address, or contains invalid characters
    """
    if not bucket or not bucket.strip():
        raise InvalidBucketNameError(bucket, "bucket name cannot be empty")
    if len(bucket) < 3:
        raise InvalidBucketNameError(bucket, "bucket name cannot be shorter than 3 characters")
    if len(bucket) > 63:
        raise InvalidBucketNameError(bucket, "bucket name cannot be longer than 63 characters")
    if _IP_ADDRESS.match(bucket):
        raise InvalidBucketNameError(bucket, "bucket name cannot be an ip address")
    if ".." in bucket or ".-" in bucket or "-." in bucket:
        raise InvalidBucketNameError(bucket, "bucket name contains invalid characters")
    if not _VALID_BUCKET_NAME.match(bucket):
        raise InvalidBucketNameError(bucket, "bucket name contains invalid characters")


def compose(bucket: str, sub_path: str = "") -> str:
    """Join a target bucket with its sub-path into the remote target path."""
    if not sub_path:
        return bucket
    return posixpath.normpath("./" + sub_path + "/" + bucket)


def decompose(path: str) -> Tuple[str, str]:
    """Split a remote target path back into ``(bucket, sub_path)``."""
    sub_path, _, bucket = path.rpartition("/")
    return bucket, sub_path
