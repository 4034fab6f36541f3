# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/avafleet/provision/teardown.py

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from avafleet.aws.cloudformation import DELETE_COMPLETE, wait_budget
from avafleet.config import defaults
from avafleet.config.models import Spec
from avafleet.errors import ProvisioningError
from avafleet.naming.keys import StackKind, encode_stack_name
from avafleet.observers.events import TeardownStep
from avafleet.provision.phases import ApplyContext, access_key_path, verify_identity

log = logging.getLogger("avafleet")


def _step(ctx: ApplyContext, spec: Spec, step: str, resource: Optional[str] = None) -> None:
    log.info("teardown: %s %s", step, resource or "")
    ctx.emit(TeardownStep, cluster_id=spec.id, step=step, resource=resource)


def _remove_local_key_files(path: Path) -> None:
    for p in (path, Path(f"{path}.zstd"), Path(f"{path}.zstd.encrypted")):
        if p.exists():
            p.unlink()
            log.info("removed %s", p)


def delete_spec(spec: Spec, ctx: ApplyContext, *, delete_all: bool = False) -> None:
    """
    Tear the fleet down in reverse dependency order.

    Stack deletes are triggered before they are confirmed so independent
    stacks come down in parallel. Deletes are idempotent: a resource that is
    already gone is not an error. The backup bucket is always kept.
    """
    ctx.phase = "delete"
    res = spec.resources
    if res.identity is None:
        raise ProvisioningError("spec has no recorded identity; refusing to delete", phase="delete")
    verify_identity(spec, ctx)

    clients = ctx.clients
    stacks = clients.stacks

    if res.access_key_name:
        _step(ctx, spec, "delete-access-key", res.access_key_name)
        _remove_local_key_files(Path(res.access_key_path or access_key_path(ctx.spec_path)))
        clients.ec2.delete_key_pair(res.access_key_name)

    if res.kms_key_id:
        _step(ctx, spec, "schedule-kms-deletion", res.kms_key_id)
        clients.kms.schedule_key_deletion(res.kms_key_id, defaults.KMS_DELETION_WINDOW_DAYS)

    role = res.role_stack_name or encode_stack_name(spec.id, StackKind.ROLE)
    network = res.network_stack_name or encode_stack_name(spec.id, StackKind.NETWORK)
    anchors = res.anchor_stack_name or encode_stack_name(spec.id, StackKind.ANCHOR_GROUP)
    non_anchors = res.non_anchor_stack_name or encode_stack_name(spec.id, StackKind.NON_ANCHOR_GROUP)

    _step(ctx, spec, "delete-stack", role)
    stacks.delete_stack(role)

    _step(ctx, spec, "delete-stack", non_anchors)
    stacks.delete_stack(non_anchors)
    _step(ctx, spec, "delete-stack", anchors)
    stacks.delete_stack(anchors)

    _step(ctx, spec, "confirm-stack-deleted", non_anchors)
    stacks.poll_stack(
        non_anchors,
        DELETE_COMPLETE,
        timeout=wait_budget(spec.machine.non_anchor_nodes),
        interval=ctx.stack_interval,
    )
    _step(ctx, spec, "confirm-stack-deleted", anchors)
    stacks.poll_stack(
        anchors,
        DELETE_COMPLETE,
        timeout=wait_budget(spec.machine.anchor_nodes),
        interval=ctx.stack_interval,
    )

    # The network stack holds the subnets the groups ran in.
    _step(ctx, spec, "delete-stack", network)
    stacks.delete_stack(network)
    stacks.poll_stack(
        network,
        DELETE_COMPLETE,
        timeout=defaults.NETWORK_DELETE_TIMEOUT,
        interval=ctx.stack_interval,
    )

    _step(ctx, spec, "confirm-stack-deleted", role)
    stacks.poll_stack(
        role,
        DELETE_COMPLETE,
        timeout=defaults.ROLE_STACK_TIMEOUT,
        interval=ctx.stack_interval,
    )

    if delete_all:
        _step(ctx, spec, "delete-log-group", spec.id)
        clients.logs.delete_log_group(spec.id)
        if res.bucket:
            _step(ctx, spec, "delete-bucket", res.bucket)
            clients.s3.delete_bucket(res.bucket)
        if res.backup_bucket:
            log.info("keeping backup bucket %s", res.backup_bucket)

    log.info("teardown of %s finished", spec.id)
