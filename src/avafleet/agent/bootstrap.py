# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/avafleet/agent/bootstrap.py

"""
Per-node bootstrap agent.

Runs on every instance of a node group. It walks a fixed sequence of
states, each of which is safe to re-run: files already on disk are left
alone, so restarting the agent after a crash resumes instead of starting
over. Once the node service is installed the agent publishes the node's
readiness marker; anchors keep re-publishing for as long as they run.
"""

from __future__ import annotations

import logging
import os
import tempfile
import threading
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List, Optional, Tuple

import zstandard

from avafleet.agent.metadata import InstanceMetadata
from avafleet.agent.service import LaunchOptions, build_launch_command, install_service
from avafleet.agent.tags import AgentTags, parse_tags
from avafleet.config.loader import load_spec
from avafleet.config.models import Node, Spec
from avafleet.crypto import cert as certs
from avafleet.crypto.compress import decompress_file
from avafleet.crypto.envelope import Envelope
from avafleet.errors import AgentError, ArtifactError, FleetError, UnknownKindError
from avafleet.execution.runner import CommandRunner
from avafleet.naming.keys import KeyKind, NodeKind, decode_key, encode_key, mailbox_prefix
from avafleet.rendezvous.mailbox import Mailbox, ReadinessPublisher

log = logging.getLogger("avafleet")


class AgentState(str, Enum):
    METADATA_FETCHED = "metadata-fetched"
    TAGS_FETCHED = "tags-fetched"
    IDENTITY_ENSURED = "identity-ensured"
    CONFIG_FETCHED = "config-fetched"
    BINARY_ENSURED = "binary-ensured"
    PLUGINS_ENSURED = "plugins-ensured"
    GENESIS_ENSURED = "genesis-ensured"
    PEERS_RESOLVED = "peers-resolved"
    SERVICE_INSTALLED = "service-installed"
    STEADY_STATE = "steady-state"


@dataclass
class AgentOptions:
    node_bin: Path = Path("/usr/local/bin/avalanchego")
    tls_key_file: Path = Path("/etc/pki/tls/certs/avalanched.pki.key")
    tls_cert_file: Path = Path("/etc/pki/tls/certs/avalanched.pki.crt")
    genesis_file: Path = Path("/etc/genesis.json")
    db_dir: str = "/avalanche-data"
    unit_path: Path = Path("/etc/systemd/system/avalanche.service")
    publish_interval: float = 10.0
    cert_key_size: int = certs.KEY_SIZE

    @property
    def plugins_dir(self) -> Path:
        return self.node_bin.parent / "plugins"


@dataclass
class AgentRun:
    """What the agent learned, filled in state by state."""
    metadata: Optional[InstanceMetadata] = None
    tags: Optional[AgentTags] = None
    node_id: Optional[str] = None
    spec: Optional[Spec] = None
    bootstrap_ips: List[str] = field(default_factory=list)
    bootstrap_ids: List[str] = field(default_factory=list)
    command: List[str] = field(default_factory=list)
    states: List[AgentState] = field(default_factory=list)


class BootstrapAgent:
    def __init__(
        self,
        *,
        metadata,
        ec2,
        store,
        kms,
        options: Optional[AgentOptions] = None,
        runner: Optional[CommandRunner] = None,
        instance: Optional[InstanceMetadata] = None,
    ):
        self.metadata_client = metadata
        self.ec2 = ec2
        self.store = store
        self.kms = kms
        self.options = options or AgentOptions()
        self.runner = runner or CommandRunner(label="systemctl")
        self.run_state = AgentRun(metadata=instance)

    # -------------------------------------------------------------------------
    # helpers
    # -------------------------------------------------------------------------

    def _mark(self, state: AgentState) -> None:
        self.run_state.states.append(state)
        log.info("agent state: %s", state.value)

    @property
    def _tags(self) -> AgentTags:
        if self.run_state.tags is None:
            raise AgentError("instance tags have not been fetched yet")
        return self.run_state.tags

    def _download(self, key: str, dst: Path) -> Path:
        try:
            return self.store.get_file(self._tags.bucket, key, dst)
        except FleetError as e:
            raise ArtifactError(f"download of {key} failed: {e}") from e

    def _download_decompressed(self, key: str, dst: Path) -> Path:
        dst.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=str(dst.parent), suffix=".zstd")
        os.close(fd)
        partial = dst.with_name(f".{dst.name}.partial")
        try:
            self._download(key, Path(tmp))
            try:
                decompress_file(tmp, partial)
            except (zstandard.ZstdError, OSError) as e:
                raise ArtifactError(f"decompress of {key} failed: {e}") from e
            # dst only appears once fully decompressed
            os.replace(partial, dst)
        finally:
            for p in (tmp, partial):
                if os.path.exists(p):
                    os.unlink(p)
        return dst

    def _mailbox(self) -> Mailbox:
        return Mailbox(self.store, self._tags.bucket, self._tags.cluster_id)

    # -------------------------------------------------------------------------
    # states
    # -------------------------------------------------------------------------

    def fetch_metadata(self) -> InstanceMetadata:
        if self.run_state.metadata is None:
            self.run_state.metadata = self.metadata_client.fetch()
        self._mark(AgentState.METADATA_FETCHED)
        return self.run_state.metadata

    def fetch_tags(self) -> AgentTags:
        raw = self.ec2.instance_tags(self.run_state.metadata.instance_id)
        self.run_state.tags = parse_tags(raw)
        log.info(
            "cluster %s, node kind %s",
            self.run_state.tags.cluster_id, self.run_state.tags.node_kind.value,
        )
        self._mark(AgentState.TAGS_FETCHED)
        return self.run_state.tags

    def ensure_identity(self) -> str:
        """
        Generate the staking certificate on first boot and upload a sealed
        copy of its private key. The node id is derived from the certificate.
        """
        opts = self.options
        tags = self._tags
        if not (opts.tls_key_file.exists() and opts.tls_cert_file.exists()):
            certs.generate_cert(opts.tls_key_file, opts.tls_cert_file, key_size=opts.cert_key_size)
        else:
            log.info("staking certificate already present: %s", opts.tls_cert_file)

        key = encode_key(tags.cluster_id, KeyKind.PKI_KEY, self.run_state.metadata.instance_id)
        if not self.store.exists(tags.bucket, key):
            envelope = Envelope(self.kms, tags.kms_key_arn)
            with tempfile.TemporaryDirectory(prefix="avafleet-") as tmp:
                sealed = envelope.seal_file(opts.tls_key_file, Path(tmp) / "key.zstd.encrypted")
                self.store.put_file(tags.bucket, key, sealed)

        self.run_state.node_id = certs.node_id_from_cert(opts.tls_cert_file)
        log.info("node id: %s", self.run_state.node_id)
        self._mark(AgentState.IDENTITY_ENSURED)
        return self.run_state.node_id

    def fetch_config(self) -> Spec:
        tags = self._tags
        with tempfile.TemporaryDirectory(prefix="avafleet-") as tmp:
            path = self._download(encode_key(tags.cluster_id, KeyKind.CONFIG), Path(tmp) / "spec.yaml")
            self.run_state.spec = load_spec(path)
        self._mark(AgentState.CONFIG_FETCHED)
        return self.run_state.spec

    def ensure_binary(self) -> Path:
        dst = self.options.node_bin
        if dst.exists():
            log.info("node binary already present: %s", dst)
        else:
            self._download_decompressed(encode_key(self._tags.cluster_id, KeyKind.NODE_BIN), dst)
            dst.chmod(0o755)
        self._mark(AgentState.BINARY_ENSURED)
        return dst

    def ensure_plugins(self) -> List[Path]:
        tags = self._tags
        plugins_dir = self.options.plugins_dir
        installed: List[Path] = []
        prefix = mailbox_prefix(tags.cluster_id, KeyKind.PLUGIN)
        for key in self.store.list_keys(tags.bucket, prefix):
            try:
                name = decode_key(key).name
            except UnknownKindError:
                log.warning("ignoring %s: not a compressed plugin", key)
                continue
            dst = plugins_dir / name
            if not dst.exists():
                self._download_decompressed(key, dst)
                dst.chmod(0o755)
            installed.append(dst)
        self._mark(AgentState.PLUGINS_ENSURED)
        return installed

    def ensure_genesis(self) -> Optional[Path]:
        spec = self.run_state.spec
        dst = self.options.genesis_file
        if spec.is_mainnet():
            self._mark(AgentState.GENESIS_ENSURED)
            return None
        if not dst.exists():
            self._download(encode_key(self._tags.cluster_id, KeyKind.GENESIS), dst)
        self._mark(AgentState.GENESIS_ENSURED)
        return dst

    def resolve_peers(self) -> Tuple[List[str], List[str]]:
        """Non-anchor nodes on custom networks bootstrap from the anchors."""
        spec = self.run_state.spec
        if spec.is_mainnet() or self._tags.node_kind is not NodeKind.NON_ANCHOR:
            self._mark(AgentState.PEERS_RESOLVED)
            return [], []

        ready = self._mailbox().list_ready(NodeKind.ANCHOR)
        # ips and ids are positional pairs
        anchors = [n for n in ready if n.node_id]
        if len(anchors) < len(ready):
            log.warning("skipping %d anchors without a node id", len(ready) - len(anchors))
        port = spec.network.staking_port
        ips = [f"{n.ip}:{port}" for n in anchors]
        ids = [n.node_id for n in anchors]
        log.info("found %d anchor nodes to bootstrap from", len(anchors))
        self.run_state.bootstrap_ips, self.run_state.bootstrap_ids = ips, ids
        self._mark(AgentState.PEERS_RESOLVED)
        return ips, ids

    def install(self) -> List[str]:
        opts = self.options
        spec = self.run_state.spec
        command = build_launch_command(
            LaunchOptions(
                node_bin=str(opts.node_bin),
                network=spec.network,
                genesis_file=None if spec.is_mainnet() else str(opts.genesis_file),
                db_dir=opts.db_dir,
                public_ip=self.run_state.metadata.public_ipv4,
                tls_key_file=str(opts.tls_key_file),
                tls_cert_file=str(opts.tls_cert_file),
                bootstrap_ips=self.run_state.bootstrap_ips,
                bootstrap_ids=self.run_state.bootstrap_ids,
            )
        )
        install_service(command, self.runner, unit_path=opts.unit_path)
        self.run_state.command = command
        self._mark(AgentState.SERVICE_INSTALLED)
        return command

    def node(self) -> Node:
        return Node(
            instance_id=self.run_state.metadata.instance_id,
            ip=self.run_state.metadata.public_ipv4,
            kind=self._tags.node_kind,
            node_id=self.run_state.node_id,
        )

    def steady_state(self, stop: threading.Event, max_iterations: Optional[int] = None) -> ReadinessPublisher:
        self._mark(AgentState.STEADY_STATE)
        publisher = ReadinessPublisher(
            self._mailbox(),
            self.node(),
            interval=self.options.publish_interval,
            repeat=self._tags.node_kind is NodeKind.ANCHOR,
        )
        publisher.run(stop, max_iterations=max_iterations)
        return publisher

    # -------------------------------------------------------------------------

    def run(self, stop: Optional[threading.Event] = None, max_iterations: Optional[int] = None) -> AgentRun:
        self.fetch_metadata()
        self.fetch_tags()
        self.ensure_identity()
        self.fetch_config()
        self.ensure_binary()
        self.ensure_plugins()
        self.ensure_genesis()
        self.resolve_peers()
        self.install()
        self.steady_state(stop or threading.Event(), max_iterations=max_iterations)
        return self.run_state
