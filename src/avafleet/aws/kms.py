# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/avafleet/aws/kms.py

from __future__ import annotations

import logging
from typing import Tuple

from avafleet.aws.errors import AWS_ERRORS, error_code

from avafleet.errors import ProvisioningError

log = logging.getLogger("avafleet")


class KmsClient:
    def __init__(self, client):
        self.client = client

    def create_key(self, description: str) -> Tuple[str, str]:
        """Create a symmetric master key. Returns (key id, key arn)."""
        try:
            resp = self.client.create_key(
                Description=description,
                KeyUsage="ENCRYPT_DECRYPT",
                KeySpec="SYMMETRIC_DEFAULT",
                Tags=[{"TagKey": "Name", "TagValue": description}],
            )
        except AWS_ERRORS as e:
            raise ProvisioningError(f"create_key failed: {e}", resource=description) from e
        meta = resp["KeyMetadata"]
        log.info("created KMS key %s (%s)", meta["KeyId"], description)
        return meta["KeyId"], meta["Arn"]

    def generate_data_key(self, key_id: str) -> Tuple[bytes, bytes]:
        """Returns (wrapped data key, plaintext data key)."""
        try:
            resp = self.client.generate_data_key(KeyId=key_id, KeySpec="AES_256")
        except AWS_ERRORS as e:
            raise ProvisioningError(f"generate_data_key failed: {e}", resource=key_id) from e
        return resp["CiphertextBlob"], resp["Plaintext"]

    def decrypt_data_key(self, wrapped: bytes) -> bytes:
        try:
            resp = self.client.decrypt(CiphertextBlob=wrapped)
        except AWS_ERRORS as e:
            raise ProvisioningError(f"decrypt failed: {e}") from e
        return resp["Plaintext"]

    def schedule_key_deletion(self, key_id: str, pending_days: int) -> None:
        log.info("scheduling deletion of KMS key %s in %d days", key_id, pending_days)
        try:
            self.client.schedule_key_deletion(KeyId=key_id, PendingWindowInDays=pending_days)
        except AWS_ERRORS as e:
            code = error_code(e)
            if code in ("NotFoundException", "KMSInvalidStateException"):
                log.warning("KMS key %s already gone or pending deletion", key_id)
                return
            raise ProvisioningError(f"schedule_key_deletion failed: {e}", resource=key_id) from e
