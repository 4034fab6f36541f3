# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/avafleet/temporal/activities.py

from __future__ import annotations

import logging
from pathlib import Path

from temporalio import activity

from avafleet.aws.session import CloudClients, load_aws_settings
from avafleet.config.loader import load_spec
from avafleet.observers.dispatcher import EventBus
from avafleet.observers.logger import LoggerObserver
from avafleet.provision.phases import ApplyContext
from avafleet.provision.provisioner import run_named_phase

from .models import PhaseRequest

log = logging.getLogger("avafleet")


@activity.defn
def activity_run_phase(req: PhaseRequest) -> str:
    """Load the spec, run one phase and persist. Returns the phase name."""
    spec_path = Path(req.apply.spec_path)
    spec = load_spec(spec_path)
    clients = CloudClients(load_aws_settings(req.apply.region or spec.resources.region))
    ctx = ApplyContext(
        clients=clients,
        spec_path=spec_path,
        bus=EventBus(observers=[LoggerObserver(log)]),
        run_id=activity.info().workflow_run_id,
        rendezvous_timeout=req.apply.rendezvous_timeout,
    )
    run_named_phase(spec, ctx, req.phase)
    return req.phase
