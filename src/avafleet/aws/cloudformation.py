# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/avafleet/aws/cloudformation.py

"""
Create, poll and delete CloudFormation stacks.

Polling is fixed-interval: sleep, describe, repeat, until the stack reaches
the desired status, reaches a terminal failure, or the timeout elapses.
``sleep`` and ``clock`` are injectable so tests never wait.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Sequence

from avafleet.aws.errors import AWS_ERRORS, error_code

from avafleet.config import defaults
from avafleet.errors import (
    MissingStackOutputError,
    ProvisioningError,
    StackFailedError,
    StackTimeoutError,
)

log = logging.getLogger("avafleet")

CREATE_COMPLETE = "CREATE_COMPLETE"
DELETE_COMPLETE = "DELETE_COMPLETE"

FAILED_STATUSES = {
    "CREATE_FAILED",
    "DELETE_FAILED",
    "ROLLBACK_FAILED",
    "ROLLBACK_COMPLETE",
    "UPDATE_ROLLBACK_FAILED",
    "UPDATE_ROLLBACK_COMPLETE",
    "IMPORT_ROLLBACK_FAILED",
    "IMPORT_ROLLBACK_COMPLETE",
}


def wait_budget(
    count: int,
    *,
    base: int = defaults.GROUP_WAIT_BASE,
    per_instance: int = defaults.GROUP_WAIT_PER_INSTANCE,
    cap: int = defaults.MAX_WAIT_SECONDS,
) -> int:
    """Seconds to wait for a group of ``count`` instances."""
    return min(base + per_instance * max(count, 0), cap)


def require_outputs(outputs: Mapping[str, str], keys: Iterable[str], stack_name: str) -> None:
    missing = [k for k in keys if not outputs.get(k)]
    if missing:
        raise MissingStackOutputError(stack_name, missing)


def _is_missing_stack(e: Exception) -> bool:
    return error_code(e) == "ValidationError" and "does not exist" in str(e)


class StackManager:
    def __init__(
        self,
        client,
        *,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.time,
        on_status: Optional[Callable[[str, str], None]] = None,
    ):
        self.client = client
        self.sleep = sleep
        self.clock = clock
        self.on_status = on_status

    def create_stack(
        self,
        name: str,
        template_body: str,
        *,
        parameters: Mapping[str, str],
        tags: Optional[Mapping[str, str]] = None,
        capabilities: Sequence[str] = (),
        on_failure: str = "DELETE",
    ) -> str:
        log.info("creating stack %s", name)
        log.debug("stack %s parameters: %s", name, dict(parameters))
        try:
            resp = self.client.create_stack(
                StackName=name,
                TemplateBody=template_body,
                Parameters=[
                    {"ParameterKey": k, "ParameterValue": str(v)} for k, v in parameters.items()
                ],
                Tags=[{"Key": k, "Value": v} for k, v in (tags or {}).items()],
                Capabilities=list(capabilities),
                OnFailure=on_failure,
            )
        except AWS_ERRORS as e:
            raise ProvisioningError(f"create_stack failed: {e}", resource=name) from e
        return resp["StackId"]

    def delete_stack(self, name: str) -> None:
        log.info("deleting stack %s", name)
        try:
            self.client.delete_stack(StackName=name)
        except AWS_ERRORS as e:
            if _is_missing_stack(e):
                return
            raise ProvisioningError(f"delete_stack failed: {e}", resource=name) from e

    def describe(self, name: str) -> Optional[dict]:
        """Current stack description, or None once the stack is gone."""
        try:
            resp = self.client.describe_stacks(StackName=name)
        except AWS_ERRORS as e:
            if _is_missing_stack(e):
                return None
            raise ProvisioningError(f"describe_stacks failed: {e}", resource=name) from e
        stacks: List[dict] = resp.get("Stacks", [])
        return stacks[0] if stacks else None

    def poll_stack(
        self,
        name: str,
        desired_status: str,
        *,
        timeout: float,
        interval: float = defaults.STACK_POLL_INTERVAL,
    ) -> Dict[str, str]:
        """
        Block until ``name`` reaches ``desired_status`` and return its outputs.

        A stack that no longer exists counts as DELETE_COMPLETE.
        """
        deadline = self.clock() + timeout
        last_status: Optional[str] = None

        while True:
            self.sleep(interval)
            stack = self.describe(name)
            status = stack["StackStatus"] if stack else DELETE_COMPLETE

            if status != last_status:
                log.info("stack %s: %s", name, status)
                if self.on_status:
                    self.on_status(name, status)
            last_status = status

            if status == desired_status:
                outputs = (stack or {}).get("Outputs", [])
                return {o["OutputKey"]: o["OutputValue"] for o in outputs}

            if desired_status == DELETE_COMPLETE:
                failed = status == "DELETE_FAILED"
            else:
                failed = status in FAILED_STATUSES or status == DELETE_COMPLETE
            if failed:
                reason = (stack or {}).get("StackStatusReason")
                raise StackFailedError(name, status, reason)

            if self.clock() >= deadline:
                raise StackTimeoutError(name, desired_status, timeout, last_status)
