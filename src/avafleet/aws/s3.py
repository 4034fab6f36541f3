# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/avafleet/aws/s3.py

from __future__ import annotations

import logging
from pathlib import Path
from typing import List

from avafleet.aws.errors import AWS_ERRORS, error_code

from avafleet.errors import ProvisioningError

log = logging.getLogger("avafleet")

_MISSING = {"404", "NoSuchKey", "NotFound", "NoSuchBucket"}


class ObjectStore:
    """Bucket operations used by the provisioner, the agent and the mailbox."""

    def __init__(self, client, region: str):
        self.client = client
        self.region = region

    def create_bucket(self, bucket: str) -> None:
        log.info("creating bucket %s in %s", bucket, self.region)
        kw = {"Bucket": bucket}
        # us-east-1 rejects an explicit location constraint
        if self.region != "us-east-1":
            kw["CreateBucketConfiguration"] = {"LocationConstraint": self.region}
        try:
            self.client.create_bucket(**kw)
        except AWS_ERRORS as e:
            code = error_code(e)
            if code == "BucketAlreadyOwnedByYou":
                log.info("bucket %s already exists", bucket)
                return
            raise ProvisioningError(f"create_bucket failed: {e}", resource=bucket) from e

        try:
            self.client.put_public_access_block(
                Bucket=bucket,
                PublicAccessBlockConfiguration={
                    "BlockPublicAcls": True,
                    "IgnorePublicAcls": True,
                    "BlockPublicPolicy": True,
                    "RestrictPublicBuckets": True,
                },
            )
        except AWS_ERRORS as e:
            raise ProvisioningError(f"put_public_access_block failed: {e}", resource=bucket) from e

    def delete_bucket(self, bucket: str) -> None:
        """Delete every object, then the bucket. A missing bucket is fine."""
        log.info("deleting bucket %s", bucket)
        try:
            for key in self.list_keys(bucket, ""):
                self.client.delete_object(Bucket=bucket, Key=key)
            self.client.delete_bucket(Bucket=bucket)
        except AWS_ERRORS as e:
            if error_code(e) in _MISSING:
                return
            raise ProvisioningError(f"delete_bucket failed: {e}", resource=bucket) from e

    def put_bytes(self, bucket: str, key: str, data: bytes) -> None:
        try:
            self.client.put_object(Bucket=bucket, Key=key, Body=data)
        except AWS_ERRORS as e:
            raise ProvisioningError(f"put_object failed: {e}", resource=f"s3://{bucket}/{key}") from e

    def get_bytes(self, bucket: str, key: str) -> bytes:
        try:
            resp = self.client.get_object(Bucket=bucket, Key=key)
        except AWS_ERRORS as e:
            raise ProvisioningError(f"get_object failed: {e}", resource=f"s3://{bucket}/{key}") from e
        return resp["Body"].read()

    def put_file(self, bucket: str, key: str, path: str | Path) -> None:
        log.info("uploading %s -> s3://%s/%s", path, bucket, key)
        self.put_bytes(bucket, key, Path(path).read_bytes())

    def get_file(self, bucket: str, key: str, path: str | Path) -> Path:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(self.get_bytes(bucket, key))
        return path

    def exists(self, bucket: str, key: str) -> bool:
        try:
            self.client.head_object(Bucket=bucket, Key=key)
            return True
        except AWS_ERRORS as e:
            if error_code(e) in _MISSING:
                return False
            raise ProvisioningError(f"head_object failed: {e}", resource=f"s3://{bucket}/{key}") from e

    def list_keys(self, bucket: str, prefix: str) -> List[str]:
        keys: List[str] = []
        try:
            paginator = self.client.get_paginator("list_objects_v2")
            for page in paginator.paginate(Bucket=bucket, Prefix=prefix):
                keys.extend(obj["Key"] for obj in page.get("Contents", []))
        except AWS_ERRORS as e:
            raise ProvisioningError(f"list_objects failed: {e}", resource=f"s3://{bucket}/{prefix}") from e
        return keys
