# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/avafleet/cli/agent_app.py
from __future__ import annotations

import signal
import threading
from pathlib import Path

import typer

from avafleet.agent.bootstrap import AgentOptions, BootstrapAgent
from avafleet.agent.metadata import MetadataClient
from avafleet.aws.session import CloudClients, load_aws_settings
from avafleet.errors import FleetError
from avafleet.execution.runner import CommandRunner
from avafleet.logging.log import init_logging

app = typer.Typer(help="avafleet node bootstrap agent")


@app.callback()
def main() -> None:
    pass


@app.command()
def run(
    node_bin: Path = typer.Option(Path("/usr/local/bin/avalanchego"), "--node-bin"),
    publish_interval: float = typer.Option(10.0, "--publish-interval"),
    log_dir: Path = typer.Option(Path("/var/log/avafleet"), "--log-dir"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Log systemctl calls instead of running them"),
    debug: bool = typer.Option(False, "--debug"),
):
    """Bootstrap this instance as a fleet node and keep it announced."""
    logger, _, _ = init_logging(base_dir=log_dir, command="agent", verbose=debug)

    stop = threading.Event()
    signal.signal(signal.SIGTERM, lambda *_: stop.set())
    signal.signal(signal.SIGINT, lambda *_: stop.set())

    metadata = MetadataClient()
    try:
        md = metadata.fetch()
        clients = CloudClients(load_aws_settings(md.region))
        agent = BootstrapAgent(
            metadata=metadata,
            ec2=clients.ec2,
            store=clients.s3,
            kms=clients.kms,
            options=AgentOptions(node_bin=node_bin, publish_interval=publish_interval),
            runner=CommandRunner(logger=logger, dry_run=dry_run, label="systemctl"),
            instance=md,
        )
        agent.run(stop)
    except FleetError as e:
        typer.secho(f"[avafleet-agent] failed: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(1)


if __name__ == "__main__":
    app()
