#!/usr/bin/env python3
"""
Bucket replication example.

Applies a declarative replication configuration to a bucket, reads it back
and finally removes it again.
"""

import logging
import os

from bucketrepl import BucketReplicationClient, decode_configuration, encode_state

CONFIGURATION = {
    "bucket": "photos",
    "rule": [
        {
            "prefix": "raw/",
            "delete_marker_replication": True,
            "target": [
                {
                    "bucket": "photos-archive",
                    "host": "minio-2.example.net:9000",
                    "path": "site-a",
                    "access_key": "replicator",
                    "secret_key": os.getenv("REPLICATOR_SECRET_KEY", "change-me"),
                    "bandwidth_limit": "1G",
                    "health_check_period": "1m",
                }
            ],
        },
        {
            "priority": 10,
            "tags": {"retention": "long"},
            "target": [
                {
                    "bucket": "photos-cold",
                    "host": "minio-3.example.net:9000",
                    "storage_class": "GLACIER",
                    "access_key": "replicator",
                    "secret_key": os.getenv("REPLICATOR_SECRET_KEY", "change-me"),
                }
            ],
        },
    ],
}


def main():
    logging.basicConfig(level=logging.DEBUG)

    client = BucketReplicationClient(
        base_url=os.getenv("BUCKETREPL_REST_URL", "http://localhost:9000"),
        access_key=os.getenv("BUCKETREPL_ACCESS_KEY"),
        secret_key=os.getenv("BUCKETREPL_SECRET_KEY"),
    )

    with client:
        state = decode_configuration(CONFIGURATION)

        print("Applying replication rules...")
        applied = client.put(state.bucket, state.rules)
        for rule in applied.rules:
            print(f"  rule {rule.id} -> {rule.arn} (priority {rule.priority})")

        print("Reading replication rules back...")
        current = client.read(state.bucket, applied.rules)
        print(encode_state(current))

        print("Removing replication rules...")
        client.delete(state.bucket, current.rules)


if __name__ == "__main__":
    main()
