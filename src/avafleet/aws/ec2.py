# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/avafleet/aws/ec2.py

from __future__ import annotations

import logging
from typing import Dict

from avafleet.aws.errors import AWS_ERRORS, error_code

from avafleet.errors import ProvisioningError

log = logging.getLogger("avafleet")


class Ec2Client:
    def __init__(self, client):
        self.client = client

    def create_key_pair(self, name: str) -> str:
        """Create an SSH key pair and return the private key material."""
        try:
            resp = self.client.create_key_pair(KeyName=name)
        except AWS_ERRORS as e:
            raise ProvisioningError(f"create_key_pair failed: {e}", resource=name) from e
        log.info("created key pair %s", name)
        return resp["KeyMaterial"]

    def delete_key_pair(self, name: str) -> None:
        log.info("deleting key pair %s", name)
        try:
            self.client.delete_key_pair(KeyName=name)
        except AWS_ERRORS as e:
            if error_code(e) == "InvalidKeyPair.NotFound":
                return
            raise ProvisioningError(f"delete_key_pair failed: {e}", resource=name) from e

    def instance_tags(self, instance_id: str) -> Dict[str, str]:
        try:
            resp = self.client.describe_tags(
                Filters=[{"Name": "resource-id", "Values": [instance_id]}]
            )
        except AWS_ERRORS as e:
            raise ProvisioningError(f"describe_tags failed: {e}", resource=instance_id) from e
        return {t["Key"]: t["Value"] for t in resp.get("Tags", [])}
