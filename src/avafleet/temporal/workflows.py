# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/avafleet/temporal/workflows.py

from __future__ import annotations

from datetime import timedelta

from temporalio import workflow
from temporalio.common import RetryPolicy

from .models import ApplyRequest, ApplyStatus, PhaseRequest

# activities are imported via workflow.unsafe.imports_passed_through
# to avoid workflow sandbox issues
with workflow.unsafe.imports_passed_through():
    from .activities import activity_run_phase
    from avafleet.provision.phases import PHASE_NAMES


# Stack and rendezvous phases can wait up to the group wait cap.
GROUP_PHASES = {"anchor-group", "anchors-ready", "non-anchor-group", "non-anchors-ready"}


def phase_timeout(req: ApplyRequest, name: str) -> timedelta:
    seconds = req.group_phase_timeout_s if name in GROUP_PHASES else req.phase_timeout_s
    return timedelta(seconds=seconds)


@workflow.defn
class FleetApplyWorkflow:
    def __init__(self) -> None:
        self._status = ApplyStatus(
            phase="PENDING",
            message="Waiting to start",
            current_stage=None,
            completed_stages=[],
        )

    @workflow.query
    def status(self) -> ApplyStatus:
        return self._status

    @workflow.run
    async def run(self, req: ApplyRequest) -> ApplyStatus:
        self._status.phase = "RUNNING"
        self._status.message = "Apply started"

        # phases are resumable, so a retried activity skips finished work
        retry = RetryPolicy(
            initial_interval=timedelta(seconds=5),
            maximum_interval=timedelta(minutes=5),
            maximum_attempts=3,
            non_retryable_error_types=[
                "IdentityMismatchError",
                "SpecValidationError",
                "MissingStackOutputError",
            ],
        )

        for name in PHASE_NAMES:
            self._status.current_stage = name
            self._status.message = f"Running phase: {name}"
            try:
                await workflow.execute_activity(
                    activity_run_phase,
                    PhaseRequest(apply=req, phase=name),
                    start_to_close_timeout=phase_timeout(req, name),
                    retry_policy=retry,
                )
            except Exception as e:
                self._status.phase = "FAILED"
                self._status.error = f"{e}"
                self._status.message = f"Phase failed: {name}"
                raise
            self._status.completed_stages = (self._status.completed_stages or []) + [name]

        self._status.phase = "SUCCEEDED"
        self._status.current_stage = None
        self._status.message = "Apply completed"
        return self._status
