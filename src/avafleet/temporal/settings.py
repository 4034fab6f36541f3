# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/avafleet/temporal/settings.py

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

from temporalio.client import Client

from avafleet.config import defaults


@dataclass(frozen=True)
class TemporalSettings:
    address: str
    namespace: str
    task_queue: str
    phase_timeout_s: float          # start-to-close for a single phase activity
    group_phase_timeout_s: float    # node group creation and rendezvous phases


def load_temporal_settings() -> TemporalSettings:
    return TemporalSettings(
        address=os.getenv("TEMPORAL_ADDRESS", "localhost:7233"),
        namespace=os.getenv("TEMPORAL_NAMESPACE", "default"),
        task_queue=os.getenv("AVAFLEET_TASK_QUEUE", "avafleet.apply"),
        phase_timeout_s=float(os.getenv("AVAFLEET_PHASE_TIMEOUT", "1200")),
        group_phase_timeout_s=float(
            os.getenv("AVAFLEET_GROUP_PHASE_TIMEOUT", str(defaults.MAX_WAIT_SECONDS + 600))
        ),
    )


async def connect(settings: Optional[TemporalSettings] = None) -> Client:
    s = settings or load_temporal_settings()
    return await Client.connect(s.address, namespace=s.namespace)
