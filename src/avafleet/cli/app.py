# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/avafleet/cli/app.py
from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Optional

import typer

from avafleet.aws.session import CloudClients, load_aws_settings
from avafleet.config import defaults
from avafleet.config.loader import default_spec, load_spec, persist_spec, validate_spec
from avafleet.errors import FleetError
from avafleet.logging.log import init_logging
from avafleet.observers.console import ConsoleObserver
from avafleet.observers.dispatcher import EventBus
from avafleet.observers.jsonfile import JsonFileObserver
from avafleet.observers.logger import LoggerObserver
from avafleet.provision.phases import ApplyContext
from avafleet.provision.provisioner import apply_spec
from avafleet.provision.teardown import delete_spec


# ------------------------------------------------------------------------------
# CLI setup
# ------------------------------------------------------------------------------

app = typer.Typer(help="avafleet: provision and tear down validator fleets on AWS")


def _build_context(spec, spec_file: Path, *, command: str, debug: bool,
                   rendezvous_timeout: Optional[float] = None) -> ApplyContext:
    logger, run_id, log_path = init_logging(command=command, cluster_id=spec.id, verbose=debug)
    observers = [
        ConsoleObserver(),
        LoggerObserver(logger),
        JsonFileObserver(log_path.with_suffix(".events.jsonl")),
    ]
    return ApplyContext(
        clients=CloudClients(load_aws_settings(spec.resources.region)),
        spec_path=spec_file,
        bus=EventBus(observers=observers),
        run_id=run_id,
        rendezvous_timeout=rendezvous_timeout,
    )


def _fail(e: Exception, ctx: Optional[ApplyContext] = None) -> None:
    where = f" (phase: {ctx.phase})" if ctx is not None and ctx.phase else ""
    typer.secho(f"\n[avafleet] failed{where}: {e}", fg=typer.colors.RED, err=True)
    raise typer.Exit(1)


# ------------------------------------------------------------------------------
# Commands
# ------------------------------------------------------------------------------

@app.command("default-spec")
def default_spec_cmd(
    spec_file: Path = typer.Option(..., "--spec-file", help="Where to write the spec"),
    agent_bin: Path = typer.Option(..., "--agent-bin"),
    node_bin: Path = typer.Option(..., "--node-bin"),
    plugins_dir: Optional[Path] = typer.Option(None, "--plugins-dir"),
    genesis_file: Optional[Path] = typer.Option(None, "--genesis-file"),
    network_name: str = typer.Option(defaults.CUSTOM, "--network-name"),
    region: str = typer.Option(defaults.DEFAULT_REGION, "--region"),
    keys_to_generate: int = typer.Option(defaults.DEFAULT_KEYS_TO_GENERATE, "--keys-to-generate"),
    anchor_nodes: Optional[int] = typer.Option(None, "--anchor-nodes"),
    non_anchor_nodes: Optional[int] = typer.Option(None, "--non-anchor-nodes"),
):
    """Write a fresh spec file with defaults filled in."""
    try:
        spec = default_spec(
            spec_path=spec_file,
            agent_bin=str(agent_bin),
            node_bin=str(node_bin),
            plugins_dir=str(plugins_dir) if plugins_dir else None,
            genesis_file=str(genesis_file) if genesis_file else None,
            network_name=network_name,
            region=region,
            keys_to_generate=keys_to_generate,
            anchor_nodes=anchor_nodes,
            non_anchor_nodes=non_anchor_nodes,
        )
        validate_spec(spec)
        persist_spec(spec, spec_file)
    except FleetError as e:
        _fail(e)

    typer.echo(f"wrote {spec_file} (id={spec.id})")
    typer.echo(f"\nnext: avafleet apply --spec-file {spec_file}")


@app.command()
def apply(
    spec_file: Path = typer.Option(..., "--spec-file"),
    skip_prompt: bool = typer.Option(False, "--skip-prompt"),
    temporal: bool = typer.Option(False, "--temporal", help="Run as a Temporal workflow"),
    rendezvous_timeout: Optional[float] = typer.Option(
        None, "--rendezvous-timeout", help="Seconds to wait for nodes to report ready"
    ),
    debug: bool = typer.Option(False, "--debug"),
):
    """Create (or resume creating) every resource in the spec."""
    try:
        spec = load_spec(spec_file)
        validate_spec(spec)
    except FleetError as e:
        _fail(e)

    typer.echo(f"cluster {spec.id}: {spec.machine.anchor_nodes} anchor, "
               f"{spec.machine.non_anchor_nodes} non-anchor nodes in {spec.resources.region}")
    if not skip_prompt and not typer.confirm("Create resources?", default=False):
        raise typer.Exit(0)

    # ------------------------------------------------------------------
    # TEMPORAL PATH (early exit)
    # ------------------------------------------------------------------
    if temporal:
        from avafleet.temporal.models import ApplyRequest
        from avafleet.temporal.start import start_apply_workflow

        req = ApplyRequest(
            spec_path=str(spec_file.resolve()),
            region=spec.resources.region,
            rendezvous_timeout=rendezvous_timeout,
            debug=debug,
        )
        workflow_id = asyncio.run(start_apply_workflow(req, spec.id))
        typer.echo(f"[temporal] apply workflow started: {workflow_id}")
        raise typer.Exit(0)

    ctx = _build_context(spec, spec_file, command="apply", debug=debug, rendezvous_timeout=rendezvous_timeout)
    try:
        spec = apply_spec(spec, ctx)
    except FleetError as e:
        _fail(e, ctx)

    res = spec.resources
    typer.echo("\napply complete")
    if res.access_key_path:
        typer.echo(f"  ssh key: {res.access_key_path} (chmod 400)")
    if res.nlb_dns_name:
        typer.echo(f"  load balancer: http://{res.nlb_dns_name}")
    for endpoint in res.healthy_endpoints or []:
        typer.echo(f"  node: {endpoint}")


@app.command()
def delete(
    spec_file: Path = typer.Option(..., "--spec-file"),
    skip_prompt: bool = typer.Option(False, "--skip-prompt"),
    delete_all: bool = typer.Option(False, "--delete-all", help="Also delete logs and the bucket"),
    debug: bool = typer.Option(False, "--debug"),
):
    """Tear down every resource recorded in the spec."""
    try:
        spec = load_spec(spec_file)
    except FleetError as e:
        _fail(e)

    if not skip_prompt and not typer.confirm(f"Delete cluster {spec.id}?", default=False):
        raise typer.Exit(0)

    ctx = _build_context(spec, spec_file, command="delete", debug=debug)
    try:
        delete_spec(spec, ctx, delete_all=delete_all)
    except FleetError as e:
        _fail(e, ctx)
    typer.echo(f"deleted cluster {spec.id}")


@app.command()
def worker():
    """Run a Temporal worker for `apply --temporal`."""
    from avafleet.temporal.worker import main

    asyncio.run(main())


if __name__ == "__main__":
    app()
