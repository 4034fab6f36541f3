# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/avafleet/aws/errors.py

from __future__ import annotations

from typing import Optional

from botocore.exceptions import BotoCoreError, ClientError

# service errors and transport/credential errors both become ProvisioningError
AWS_ERRORS = (ClientError, BotoCoreError)


def error_code(e: Exception) -> Optional[str]:
    """The service error code of a ClientError; None for botocore-side errors."""
    if isinstance(e, ClientError):
        return e.response.get("Error", {}).get("Code")
    return None
