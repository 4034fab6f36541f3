# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/avafleet/provision/provisioner.py

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import List, Optional

from avafleet.config.loader import persist_spec
from avafleet.config.models import Spec
from avafleet.observers.events import (
    ApplySummary,
    PhaseFailed,
    PhaseSkipped,
    PhaseStarted,
    PhaseSucceeded,
)
from avafleet.provision.phases import PHASES, ApplyContext, Phase, get_phase, verify_identity

log = logging.getLogger("avafleet")


@dataclass
class ApplyReport:
    completed: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)

    def summary(self) -> str:
        return f"COMPLETED={len(self.completed)} SKIPPED={len(self.skipped)}"


def save(spec: Spec, ctx: ApplyContext) -> None:
    """Persist locally, and mirror to the bucket once it holds the artifacts."""
    mirror = None
    if spec.resources.artifacts_uploaded:
        mirror = (ctx.clients.s3, spec.resources.bucket)
    persist_spec(spec, ctx.spec_path, mirror=mirror)


def run_phase(spec: Spec, ctx: ApplyContext, phase: Phase, report: Optional[ApplyReport] = None) -> Spec:
    """Run one phase if it applies and is not done yet, then persist."""
    ctx.phase = phase.name
    report = report if report is not None else ApplyReport()

    if not phase.applies(spec):
        ctx.emit(PhaseSkipped, cluster_id=spec.id, reason="not applicable")
        report.skipped.append(phase.name)
        return spec
    if phase.done(spec):
        log.info("phase %s: already done, skipping", phase.name)
        ctx.emit(PhaseSkipped, cluster_id=spec.id, reason="already done")
        report.skipped.append(phase.name)
        return spec

    log.info("phase %s: starting", phase.name)
    ctx.emit(PhaseStarted, cluster_id=spec.id)
    start = time.time()
    try:
        spec = phase.run(spec, ctx)
    except Exception as e:
        log.error("phase %s failed: %s", phase.name, e)
        ctx.emit(PhaseFailed, cluster_id=spec.id, error=str(e))
        raise

    save(spec, ctx)
    ctx.emit(PhaseSucceeded, cluster_id=spec.id, duration_ms=int((time.time() - start) * 1000))
    report.completed.append(phase.name)
    return spec


def run_named_phase(spec: Spec, ctx: ApplyContext, name: str) -> Spec:
    verify_identity(spec, ctx)
    return run_phase(spec, ctx, get_phase(name))


def apply_spec(spec: Spec, ctx: ApplyContext) -> Spec:
    """
    Drive every phase in order and return the final spec.

    The caller identity is checked before anything is created; phases whose
    resources are already recorded are skipped, so a failed apply can simply
    be rerun.
    """
    verify_identity(spec, ctx)

    report = ApplyReport()
    for phase in PHASES:
        spec = run_phase(spec, ctx, phase, report)

    ctx.phase = None
    ctx.emit(
        ApplySummary,
        cluster_id=spec.id,
        completed=list(report.completed),
        skipped=list(report.skipped),
        endpoints=list(spec.resources.healthy_endpoints or []),
    )
    log.info("apply finished: %s", report.summary())
    return spec
