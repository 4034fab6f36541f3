# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/avafleet/temporal/start.py

from __future__ import annotations

import dataclasses

from .models import ApplyRequest
from .settings import connect, load_temporal_settings


async def start_apply_workflow(req: ApplyRequest, cluster_id: str) -> str:
    from .workflows import FleetApplyWorkflow

    settings = load_temporal_settings()
    client = await connect(settings)

    # workflow code cannot read the environment, so timeouts travel with the request
    req = dataclasses.replace(
        req,
        phase_timeout_s=settings.phase_timeout_s,
        group_phase_timeout_s=settings.group_phase_timeout_s,
    )
    handle = await client.start_workflow(
        FleetApplyWorkflow.run,
        req,
        id=f"avafleet-apply:{cluster_id}",
        task_queue=settings.task_queue,
    )

    return f"{handle.id} / {handle.run_id}"
