# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/avafleet/provision/phases.py

"""
The ordered apply phases.

Each phase takes the current spec and returns an updated copy with the
resources it created recorded. A phase is skipped when its gating resource
field is already set, which is what makes ``apply`` resumable: rerunning
after a failure picks up at the first unset phase.
"""

from __future__ import annotations

import logging
import os
import tempfile
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional

from avafleet.aws.cloudformation import CREATE_COMPLETE, require_outputs, wait_budget
from avafleet.config import defaults
from avafleet.config.loader import persist_spec
from avafleet.config.models import Spec
from avafleet.crypto.compress import compress_file
from avafleet.crypto.envelope import Envelope
from avafleet.errors import IdentityMismatchError, ProvisioningError, StackTimeoutError
from avafleet.naming.keys import (
    KeyKind,
    NodeKind,
    StackKind,
    access_key_file_name,
    encode_key,
    encode_stack_name,
    kms_key_alias,
)
from avafleet.observers.dispatcher import EventBus
from avafleet.observers.events import (
    HealthProbe,
    RendezvousProgress,
    StackReady,
    StackStatusUpdate,
    StackTimedOut,
    new_ctx,
)
from avafleet.provision.health import check_health
from avafleet.rendezvous.mailbox import Mailbox

log = logging.getLogger("avafleet")

STACK_TAGS = {"KIND": "avafleet"}
TEMPLATES_DIR = Path(__file__).resolve().parent / "templates"


@dataclass
class ApplyContext:
    """Everything a phase needs besides the spec."""
    clients: object                       # CloudClients or a test double
    spec_path: Path
    bus: EventBus = field(default_factory=EventBus)
    run_id: str = ""
    rendezvous_timeout: Optional[float] = None
    rendezvous_interval: float = defaults.RENDEZVOUS_POLL_INTERVAL
    stack_interval: float = defaults.STACK_POLL_INTERVAL
    health_interval: float = defaults.HEALTH_INTERVAL
    http_session: object = None
    sleep: Callable[[float], None] = time.sleep
    clock: Callable[[], float] = time.time
    phase: Optional[str] = None

    def emit(self, event_cls, **data) -> None:
        cluster_id = data.pop("cluster_id")
        self.bus.emit(event_cls(**new_ctx(cluster_id, self.phase, self.run_id), **data))


def _template(name: str) -> str:
    return (TEMPLATES_DIR / name).read_text()


def _create_and_wait(
    spec: Spec,
    ctx: ApplyContext,
    *,
    kind: StackKind,
    template: str,
    parameters: Dict[str, str],
    timeout: float,
    capabilities: tuple = (),
) -> Dict[str, str]:
    """
    Create ``kind``'s stack unless it already exists, then poll it to
    CREATE_COMPLETE and return its outputs.
    """
    stacks = ctx.clients.stacks
    name = encode_stack_name(spec.id, kind)

    def _status(stack_name: str, status: str) -> None:
        ctx.emit(StackStatusUpdate, cluster_id=spec.id, stack_name=stack_name, status=status)

    existing = stacks.describe(name)
    if existing is None:
        stacks.create_stack(
            name,
            _template(template),
            parameters=parameters,
            tags=STACK_TAGS,
            capabilities=capabilities,
            on_failure="DELETE",
        )
    else:
        log.info("stack %s already exists (%s), waiting on it", name, existing["StackStatus"])

    previous = stacks.on_status
    stacks.on_status = _status
    try:
        outputs = stacks.poll_stack(name, CREATE_COMPLETE, timeout=timeout, interval=ctx.stack_interval)
    except StackTimeoutError as e:
        ctx.emit(
            StackTimedOut,
            cluster_id=spec.id,
            stack_name=name,
            timeout_s=e.timeout_s,
            last_status=e.last_status,
        )
        raise
    finally:
        stacks.on_status = previous

    ctx.emit(StackReady, cluster_id=spec.id, stack_name=name, outputs=outputs)
    return outputs


# ------------------------------------------------------------------------------
# Identity
# ------------------------------------------------------------------------------

def verify_identity(spec: Spec, ctx: ApplyContext):
    """Raise IdentityMismatchError if the caller is not who created the spec."""
    current = ctx.clients.sts.get_identity()
    recorded = spec.resources.identity
    if recorded is not None and recorded.arn != current.arn:
        raise IdentityMismatchError(recorded.arn, current.arn)
    return current


def resolve_identity(spec: Spec, ctx: ApplyContext) -> Spec:
    current = verify_identity(spec, ctx)
    log.info("caller identity: %s (account %s)", current.arn, current.account)
    return spec.with_resources(identity=current)


# ------------------------------------------------------------------------------
# Bucket + install artifacts
# ------------------------------------------------------------------------------

def upload_artifacts(spec: Spec, ctx: ApplyContext) -> Spec:
    s3 = ctx.clients.s3
    res = spec.resources
    artifacts = spec.install_artifacts

    s3.create_bucket(res.bucket)
    if res.backup_bucket:
        s3.create_bucket(res.backup_bucket)

    s3.put_file(res.bucket, encode_key(spec.id, KeyKind.AGENT_BIN), artifacts.agent_bin)

    with tempfile.TemporaryDirectory(prefix="avafleet-") as tmp:
        tmp = Path(tmp)
        node_zst = compress_file(artifacts.node_bin, tmp / "node.zstd")
        s3.put_file(res.bucket, encode_key(spec.id, KeyKind.NODE_BIN), node_zst)

        if artifacts.plugins_dir:
            for plugin in sorted(Path(artifacts.plugins_dir).iterdir()):
                if not plugin.is_file():
                    continue
                zst = compress_file(plugin, tmp / f"{plugin.name}.zstd")
                s3.put_file(res.bucket, encode_key(spec.id, KeyKind.PLUGIN, plugin.name), zst)

    if artifacts.genesis_file:
        s3.put_file(res.bucket, encode_key(spec.id, KeyKind.GENESIS), artifacts.genesis_file)

    return spec.with_resources(artifacts_uploaded=True)


# ------------------------------------------------------------------------------
# Keys
# ------------------------------------------------------------------------------

def create_master_key(spec: Spec, ctx: ApplyContext) -> Spec:
    key_id, key_arn = ctx.clients.kms.create_key(kms_key_alias(spec.id))
    return spec.with_resources(kms_key_id=key_id, kms_key_arn=key_arn)


def access_key_path(spec_path: Path) -> Path:
    return spec_path.with_name(access_key_file_name(spec_path.stem))


def _write_private_key(path: Path, material: str) -> None:
    # never exists with a mode wider than 0600
    path.unlink(missing_ok=True)
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
    with os.fdopen(fd, "w") as f:
        f.write(material)


def seal_access_key(spec: Spec, ctx: ApplyContext) -> Spec:
    """
    Create the fleet SSH key pair, keep the private key next to the spec
    file, and upload a sealed copy to the bucket.

    The key pair name is persisted as soon as the pair exists. A rerun that
    finds it recorded reseals the local key file; if that file is gone the
    pair is replaced, since EC2 hands out the private key only at creation.
    """
    res = spec.resources
    ec2 = ctx.clients.ec2
    name = f"{spec.id}-ec2-key"
    path = access_key_path(ctx.spec_path)

    if res.access_key_name is None or not path.exists():
        if res.access_key_name is not None:
            log.warning("key pair %s has no local private key, replacing it", name)
            ec2.delete_key_pair(name)
        _write_private_key(path, ec2.create_key_pair(name))
        spec = spec.with_resources(access_key_name=name)
        persist_spec(spec, ctx.spec_path, mirror=(ctx.clients.s3, res.bucket))
    else:
        log.info("resealing %s for key pair %s", path, name)

    envelope = Envelope(ctx.clients.kms, res.kms_key_arn)
    sealed = envelope.seal_file(path, Path(f"{path}.zstd.encrypted"))
    ctx.clients.s3.put_file(res.bucket, encode_key(spec.id, KeyKind.ACCESS_KEY), sealed)

    return spec.with_resources(access_key_path=str(path))

# ------------------------------------------------------------------------------
# Stacks
# ------------------------------------------------------------------------------

def create_role(spec: Spec, ctx: ApplyContext) -> Spec:
    res = spec.resources
    params = {
        "Id": spec.id,
        "KmsCmkArn": res.kms_key_arn,
        "S3BucketName": res.bucket,
    }
    if res.backup_bucket:
        params["S3BucketDbBackupName"] = res.backup_bucket

    outputs = _create_and_wait(
        spec,
        ctx,
        kind=StackKind.ROLE,
        template="ec2_instance_role.yaml",
        parameters=params,
        timeout=defaults.ROLE_STACK_TIMEOUT,
        capabilities=("CAPABILITY_NAMED_IAM",),
    )
    name = encode_stack_name(spec.id, StackKind.ROLE)
    require_outputs(outputs, ["InstanceProfileArn"], name)
    return spec.with_resources(
        role_stack_name=name,
        instance_profile_arn=outputs["InstanceProfileArn"],
    )


def create_network(spec: Spec, ctx: ApplyContext) -> Spec:
    params = {
        "Id": spec.id,
        "VpcCidr": defaults.VPC_CIDR,
        "PublicSubnetCidr1": defaults.PUBLIC_SUBNET_CIDRS[0],
        "PublicSubnetCidr2": defaults.PUBLIC_SUBNET_CIDRS[1],
        "PublicSubnetCidr3": defaults.PUBLIC_SUBNET_CIDRS[2],
        "IngressIpv4Range": defaults.INGRESS_IPV4_RANGE,
        "HttpPort": str(spec.network.http_port),
        "StakingPort": str(spec.network.staking_port),
    }
    outputs = _create_and_wait(
        spec,
        ctx,
        kind=StackKind.NETWORK,
        template="vpc.yaml",
        parameters=params,
        timeout=defaults.NETWORK_STACK_TIMEOUT,
    )
    name = encode_stack_name(spec.id, StackKind.NETWORK)
    require_outputs(outputs, ["VpcId", "SecurityGroupId", "PublicSubnetIds"], name)
    return spec.with_resources(
        network_stack_name=name,
        vpc_id=outputs["VpcId"],
        security_group_id=outputs["SecurityGroupId"],
        public_subnet_ids=[s for s in outputs["PublicSubnetIds"].split(",") if s],
    )


def _group_parameters(spec: Spec, kind: NodeKind, capacity: int) -> Dict[str, str]:
    res = spec.resources
    machine = spec.machine
    return {
        "Id": spec.id,
        "NetworkId": str(spec.network.network_id),
        "NodeKind": kind.encode(),
        "KmsCmkArn": res.kms_key_arn,
        "S3BucketName": res.bucket,
        "Ec2KeyPairName": res.access_key_name,
        "InstanceProfileArn": res.instance_profile_arn,
        "PublicSubnetIds": ",".join(res.public_subnet_ids or []),
        "SecurityGroupId": res.security_group_id,
        "NlbVpcId": res.vpc_id,
        "NlbHttpPort": str(spec.network.http_port),
        "ArchType": machine.arch_type,
        "OsType": machine.os_type,
        "InstanceTypes": ",".join(machine.instance_types),
        "InstanceTypesCount": str(len(machine.instance_types)),
        "AsgDesiredCapacity": str(capacity),
    }


NLB_OUTPUTS = ["NlbArn", "NlbTargetGroupArn", "NlbDnsName"]


def _nlb_fields(outputs: Dict[str, str]) -> Dict[str, str]:
    return {
        "nlb_arn": outputs["NlbArn"],
        "nlb_target_group_arn": outputs["NlbTargetGroupArn"],
        "nlb_dns_name": outputs["NlbDnsName"],
    }


def create_anchor_group(spec: Spec, ctx: ApplyContext) -> Spec:
    count = spec.machine.anchor_nodes
    outputs = _create_and_wait(
        spec,
        ctx,
        kind=StackKind.ANCHOR_GROUP,
        template="asg_ubuntu.yaml",
        parameters=_group_parameters(spec, NodeKind.ANCHOR, count),
        timeout=wait_budget(count),
    )
    name = encode_stack_name(spec.id, StackKind.ANCHOR_GROUP)
    require_outputs(outputs, ["AsgLogicalId", *NLB_OUTPUTS], name)
    return spec.with_resources(
        anchor_stack_name=name,
        anchor_asg_logical_id=outputs["AsgLogicalId"],
        **_nlb_fields(outputs),
    )


def create_non_anchor_group(spec: Spec, ctx: ApplyContext) -> Spec:
    count = spec.machine.non_anchor_nodes
    params = _group_parameters(spec, NodeKind.NON_ANCHOR, count)
    # Join the anchor group's load balancer when there is one.
    shared_nlb = spec.resources.nlb_target_group_arn
    if shared_nlb:
        params["NlbTargetGroupArn"] = shared_nlb

    outputs = _create_and_wait(
        spec,
        ctx,
        kind=StackKind.NON_ANCHOR_GROUP,
        template="asg_ubuntu.yaml",
        parameters=params,
        timeout=wait_budget(count),
    )
    name = encode_stack_name(spec.id, StackKind.NON_ANCHOR_GROUP)
    required = ["AsgLogicalId"] if shared_nlb else ["AsgLogicalId", *NLB_OUTPUTS]
    require_outputs(outputs, required, name)

    fields = {
        "non_anchor_stack_name": name,
        "non_anchor_asg_logical_id": outputs["AsgLogicalId"],
    }
    if not shared_nlb:
        fields.update(_nlb_fields(outputs))
    return spec.with_resources(**fields)


# ------------------------------------------------------------------------------
# Rendezvous + health
# ------------------------------------------------------------------------------

def _await_nodes(spec: Spec, ctx: ApplyContext, kind: NodeKind, count: int):
    mailbox = Mailbox(
        ctx.clients.s3, spec.resources.bucket, spec.id, sleep=ctx.sleep, clock=ctx.clock
    )
    timeout = ctx.rendezvous_timeout if ctx.rendezvous_timeout is not None else wait_budget(count)

    def _progress(observed: int, expected: int) -> None:
        ctx.emit(
            RendezvousProgress,
            cluster_id=spec.id,
            kind=kind.value,
            observed=observed,
            expected=expected,
        )

    return mailbox.await_ready(
        kind,
        count,
        poll_interval=ctx.rendezvous_interval,
        timeout=timeout,
        on_progress=_progress,
    )


def await_anchors(spec: Spec, ctx: ApplyContext) -> Spec:
    nodes = _await_nodes(spec, ctx, NodeKind.ANCHOR, spec.machine.anchor_nodes)
    return spec.with_resources(anchor_nodes=nodes)


def await_non_anchors(spec: Spec, ctx: ApplyContext) -> Spec:
    nodes = _await_nodes(spec, ctx, NodeKind.NON_ANCHOR, spec.machine.non_anchor_nodes)
    return spec.with_resources(non_anchor_nodes=nodes)


def verify_health(spec: Spec, ctx: ApplyContext) -> Spec:
    endpoints: List[str] = []
    for node in spec.resources.all_nodes():
        endpoint = node.endpoint(spec.network.http_port)

        def _probe(attempt: int, healthy: bool, error: Optional[str], endpoint=endpoint) -> None:
            ctx.emit(
                HealthProbe,
                cluster_id=spec.id,
                endpoint=endpoint,
                attempt=attempt,
                healthy=healthy,
                error=error,
            )

        check_health(
            endpoint,
            session=ctx.http_session,
            interval=ctx.health_interval,
            sleep=ctx.sleep,
            on_probe=_probe,
        )
        endpoints.append(endpoint)
    return spec.with_resources(healthy_endpoints=endpoints)


# ------------------------------------------------------------------------------
# Phase table
# ------------------------------------------------------------------------------

def _has_anchors(spec: Spec) -> bool:
    return not spec.is_mainnet() and spec.machine.anchor_nodes > 0


def _always(spec: Spec) -> bool:
    return True


@dataclass(frozen=True)
class Phase:
    name: str
    run: Callable[[Spec, ApplyContext], Spec]
    done: Callable[[Spec], bool]
    applies: Callable[[Spec], bool] = _always


PHASES: List[Phase] = [
    Phase("identity", resolve_identity, lambda s: s.resources.identity is not None),
    Phase("artifacts", upload_artifacts, lambda s: bool(s.resources.artifacts_uploaded)),
    Phase("master-key", create_master_key, lambda s: s.resources.kms_key_arn is not None),
    Phase("access-key", seal_access_key, lambda s: s.resources.access_key_path is not None),
    Phase("role", create_role, lambda s: s.resources.instance_profile_arn is not None),
    Phase("network", create_network, lambda s: s.resources.vpc_id is not None),
    Phase(
        "anchor-group",
        create_anchor_group,
        lambda s: s.resources.anchor_asg_logical_id is not None,
        _has_anchors,
    ),
    Phase(
        "anchors-ready",
        await_anchors,
        lambda s: s.resources.anchor_nodes is not None,
        _has_anchors,
    ),
    Phase(
        "non-anchor-group",
        create_non_anchor_group,
        lambda s: s.resources.non_anchor_asg_logical_id is not None,
    ),
    Phase(
        "non-anchors-ready",
        await_non_anchors,
        lambda s: s.resources.non_anchor_nodes is not None,
    ),
    Phase("health", verify_health, lambda s: s.resources.healthy_endpoints is not None),
]

PHASE_NAMES = [p.name for p in PHASES]


def get_phase(name: str) -> Phase:
    for p in PHASES:
        if p.name == name:
            return p
    raise ProvisioningError(f"unknown phase {name!r}")
