# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/avafleet/agent/service.py

from __future__ import annotations

import logging
import shlex
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Sequence

from avafleet.config.models import NetworkConfig
from avafleet.execution.runner import CommandRunner
from avafleet.utils.template_renderer import TemplateRenderer

log = logging.getLogger("avafleet")

TEMPLATES_DIR = Path(__file__).resolve().parent / "templates"
SERVICE_NAME = "avalanche.service"
UNIT_PATH = Path("/etc/systemd/system") / SERVICE_NAME


@dataclass
class LaunchOptions:
    node_bin: str
    network: NetworkConfig
    genesis_file: Optional[str]
    db_dir: str
    public_ip: str
    tls_key_file: str
    tls_cert_file: str
    bootstrap_ips: List[str] = field(default_factory=list)
    bootstrap_ids: List[str] = field(default_factory=list)


def build_launch_command(opts: LaunchOptions) -> List[str]:
    net = opts.network
    cmd = [
        opts.node_bin,
        f"--network-id={net.network_id}",
    ]
    if opts.genesis_file:
        cmd.append(f"--genesis={opts.genesis_file}")
    cmd += [
        f"--db-dir={opts.db_dir}",
        f"--public-ip={opts.public_ip}",
        "--staking-enabled=true",
        f"--staking-tls-key-file={opts.tls_key_file}",
        f"--staking-tls-cert-file={opts.tls_cert_file}",
        f"--snow-sample-size={net.snow_sample_size}",
        f"--snow-quorum-size={net.snow_quorum_size}",
        f"--http-port={net.http_port}",
        f"--staking-port={net.staking_port}",
        f"--log-level={net.log_level}",
    ]
    if opts.bootstrap_ips:
        cmd.append(f"--bootstrap-ips={','.join(opts.bootstrap_ips)}")
        cmd.append(f"--bootstrap-ids={','.join(opts.bootstrap_ids)}")
    return cmd


def _unit_context(command: Sequence[str], description: str) -> dict:
    return {"description": description, "exec_start": shlex.join(command)}


def render_unit(command: Sequence[str], description: str = "avalanche node") -> str:
    return TemplateRenderer(TEMPLATES_DIR).render("node.service.j2", _unit_context(command, description))


def install_service(
    command: Sequence[str],
    runner: CommandRunner,
    *,
    unit_path: Path = UNIT_PATH,
    description: str = "avalanche node",
) -> Path:
    """Write the unit file, then reload, enable and restart it."""
    TemplateRenderer(TEMPLATES_DIR).render_to(
        "node.service.j2", _unit_context(command, description), unit_path
    )
    log.info("wrote %s", unit_path)

    name = unit_path.name
    runner.run(["systemctl", "daemon-reload"])
    runner.run(["systemctl", "enable", name])
    runner.run(["systemctl", "restart", name])
    return unit_path
