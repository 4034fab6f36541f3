# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/avafleet/observers/events.py

from __future__ import annotations
from dataclasses import dataclass, asdict
from typing import List, Dict, Any, Optional
from datetime import datetime, timezone
import uuid

@dataclass(frozen=True)
class BaseEvent:
    ts: str                 # ISO timestamp
    run_id: str             # correlates all events in a single apply/delete invocation
    cluster_id: str
    phase: Optional[str]

    def dict(self) -> Dict[str, Any]:
        return asdict(self)


def new_ctx(cluster_id: str, phase: Optional[str] = None, run_id: Optional[str] = None) -> Dict[str, Any]:
    return {
        "ts": datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
        "run_id": run_id or str(uuid.uuid4()),
        "cluster_id": cluster_id,
        "phase": phase,
    }


# ----- Phases -----

@dataclass(frozen=True)
class PhaseStarted(BaseEvent):
    pass

@dataclass(frozen=True)
class PhaseSkipped(BaseEvent):
    reason: str

@dataclass(frozen=True)
class PhaseSucceeded(BaseEvent):
    duration_ms: int

@dataclass(frozen=True)
class PhaseFailed(BaseEvent):
    error: str


# ----- Stacks -----

@dataclass(frozen=True)
class StackStatusUpdate(BaseEvent):
    stack_name: str
    status: str

@dataclass(frozen=True)
class StackReady(BaseEvent):
    stack_name: str
    outputs: Dict[str, str]

@dataclass(frozen=True)
class StackTimedOut(BaseEvent):
    stack_name: str
    timeout_s: float
    last_status: Optional[str] = None


# ----- Rendezvous / health -----

@dataclass(frozen=True)
class RendezvousProgress(BaseEvent):
    kind: str
    observed: int
    expected: int

@dataclass(frozen=True)
class HealthProbe(BaseEvent):
    endpoint: str
    attempt: int
    healthy: bool
    error: Optional[str] = None


# ----- Teardown & Summary -----

@dataclass(frozen=True)
class TeardownStep(BaseEvent):
    step: str
    resource: Optional[str] = None

@dataclass(frozen=True)
class ApplySummary(BaseEvent):
    completed: List[str]
    skipped: List[str]
    endpoints: List[str]
