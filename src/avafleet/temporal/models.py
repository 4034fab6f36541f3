# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/avafleet/temporal/models.py

from __future__ import annotations
from dataclasses import dataclass
from typing import Optional, List

@dataclass
class ApplyRequest:
    # the spec file is the checkpoint; every activity reloads it
    spec_path: str
    region: Optional[str] = None
    rendezvous_timeout: Optional[float] = None
    debug: bool = False
    phase_timeout_s: float = 1200
    group_phase_timeout_s: float = 3600

@dataclass
class PhaseRequest:
    apply: ApplyRequest
    phase: str

@dataclass
class ApplyStatus:
    phase: str
    message: str = ""
    current_stage: Optional[str] = None
    completed_stages: Optional[List[str]] = None
    error: Optional[str] = None
