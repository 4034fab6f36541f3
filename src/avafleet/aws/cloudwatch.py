# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/avafleet/aws/cloudwatch.py

from __future__ import annotations

import logging

from avafleet.aws.errors import AWS_ERRORS, error_code

from avafleet.errors import ProvisioningError

log = logging.getLogger("avafleet")


class LogsClient:
    def __init__(self, client):
        self.client = client

    def delete_log_group(self, name: str) -> None:
        log.info("deleting log group %s", name)
        try:
            self.client.delete_log_group(logGroupName=name)
        except AWS_ERRORS as e:
            if error_code(e) == "ResourceNotFoundException":
                return
            raise ProvisioningError(f"delete_log_group failed: {e}", resource=name) from e
