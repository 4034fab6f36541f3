# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/avafleet/aws/sts.py

from __future__ import annotations

from avafleet.aws.errors import AWS_ERRORS

from avafleet.config.models import Identity
from avafleet.errors import ProvisioningError


class StsClient:
    def __init__(self, client):
        self.client = client

    def get_identity(self) -> Identity:
        try:
            resp = self.client.get_caller_identity()
        except AWS_ERRORS as e:
            raise ProvisioningError(f"get_caller_identity failed: {e}") from e
        return Identity(account=resp["Account"], arn=resp["Arn"], user_id=resp["UserId"])
