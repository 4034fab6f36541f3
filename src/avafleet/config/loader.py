# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/avafleet/config/loader.py

import json
import logging
import os
import random
import string
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Tuple

import yaml
from pydantic import ValidationError

from avafleet.config import defaults
from avafleet.config.models import (
    GeneratedKey,
    InstallArtifacts,
    Machine,
    NetworkConfig,
    Resources,
    Spec,
)
from avafleet.crypto.keys import generate_keys
from avafleet.errors import SpecDecodeError, SpecNotFoundError, SpecValidationError
from avafleet.naming.keys import KeyKind, encode_key

log = logging.getLogger("avafleet")


def _load_yaml(path: Path) -> dict:
    """Load a YAML file, expanding ${ENV_VAR} references."""
    raw = path.read_text()
    expanded = os.path.expandvars(raw)
    return yaml.safe_load(expanded) or {}


def load_spec(path: str | Path) -> Spec:
    """
    Load a spec file written by ``default_spec`` / ``persist_spec``.

    ``${ENV}`` references are expanded before parsing so artifact paths can
    point at per-user locations.
    """
    path = Path(path)
    if not path.is_file():
        raise SpecNotFoundError(f"spec file not found: {path}")

    try:
        data = _load_yaml(path)
    except yaml.YAMLError as e:
        raise SpecDecodeError(f"invalid YAML in {path}: {e}") from e

    if not isinstance(data, dict):
        raise SpecDecodeError(f"{path}: top level must be a mapping")

    try:
        return Spec.model_validate(data)
    except ValidationError as e:
        raise SpecDecodeError(f"{path}: {e}") from e


def validate_spec(spec: Spec, *, check_paths: bool = True) -> None:
    """Raise SpecValidationError on the first structural problem found."""
    if not spec.id:
        raise SpecValidationError("empty id")

    if not spec.resources.region:
        raise SpecValidationError("empty region")

    name = spec.network_name
    if not name:
        raise SpecValidationError("empty network name")
    if name in defaults.UNSUPPORTED_NETWORKS:
        raise SpecValidationError(f"network {name!r} is not supported")

    artifacts = spec.install_artifacts
    machine = spec.machine

    if spec.is_mainnet():
        if artifacts.genesis_file:
            raise SpecValidationError("mainnet does not take a genesis file")
        if machine.anchor_nodes > 0:
            raise SpecValidationError(
                f"mainnet cannot run anchor nodes (got {machine.anchor_nodes})"
            )
    else:
        if not artifacts.genesis_file:
            raise SpecValidationError(f"custom network {name!r} requires a genesis file")
        if not defaults.MIN_ANCHOR_NODES <= machine.anchor_nodes <= defaults.MAX_ANCHOR_NODES:
            raise SpecValidationError(
                f"anchor_nodes must be within [{defaults.MIN_ANCHOR_NODES}, "
                f"{defaults.MAX_ANCHOR_NODES}] (got {machine.anchor_nodes})"
            )

    if not defaults.MIN_NON_ANCHOR_NODES <= machine.non_anchor_nodes <= defaults.MAX_NON_ANCHOR_NODES:
        raise SpecValidationError(
            f"non_anchor_nodes must be within [{defaults.MIN_NON_ANCHOR_NODES}, "
            f"{defaults.MAX_NON_ANCHOR_NODES}] (got {machine.non_anchor_nodes})"
        )

    if not machine.instance_types:
        raise SpecValidationError("instance_types is empty")

    if check_paths:
        paths = [artifacts.agent_bin, artifacts.node_bin]
        if artifacts.plugins_dir:
            paths.append(artifacts.plugins_dir)
        if artifacts.genesis_file:
            paths.append(artifacts.genesis_file)
        for p in paths:
            if not Path(p).exists():
                raise SpecValidationError(f"artifact not found: {p}")


def dump_spec(spec: Spec) -> str:
    return yaml.safe_dump(spec.to_yaml_dict(), sort_keys=False)


def persist_spec(spec: Spec, path: str | Path, *, mirror: Optional[Tuple[object, str]] = None) -> None:
    """
    Write the spec atomically. With ``mirror=(store, bucket)`` the same bytes
    are uploaded to the cluster's config key.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    body = dump_spec(spec)

    fd, tmp = tempfile.mkstemp(dir=str(path.parent), prefix=f".{path.name}.")
    try:
        with os.fdopen(fd, "w") as f:
            f.write(body)
        os.replace(tmp, path)
    except BaseException:
        if os.path.exists(tmp):
            os.unlink(tmp)
        raise
    log.debug("spec persisted to %s", path)

    if mirror is not None:
        store, bucket = mirror
        key = encode_key(spec.id, KeyKind.CONFIG)
        store.put_bytes(bucket, key, body.encode())
        log.debug("spec mirrored to s3://%s/%s", bucket, key)


def generate_id(prefix: str = "avafleet") -> str:
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=6))
    return f"{prefix}-{datetime.now(timezone.utc).strftime('%Y%m%d')}-{suffix}"


def write_genesis_draft(path: Path, network_id: int, keys: List[GeneratedKey] = ()) -> Path:
    """
    Write a starting genesis for a custom network.

    Each generated key gets an allocation entry carrying its public key;
    the chain addresses are left for the operator to fill in.
    """
    draft = {
        "networkID": network_id,
        "allocations": [
            {
                "secp256k1PublicKey": k.public_key_hex,
                "avaxAddr": "",
                "ethAddr": "",
                "initialAmount": defaults.GENESIS_ALLOCATION,
                "unlockSchedule": [],
            }
            for k in keys
        ],
        "initialStakedFunds": [],
        "initialStakers": [],
        "message": "avafleet genesis draft",
    }
    path.write_text(json.dumps(draft, indent=2))
    return path


def default_spec(
    *,
    spec_path: str | Path,
    agent_bin: str,
    node_bin: str,
    plugins_dir: Optional[str] = None,
    genesis_file: Optional[str] = None,
    network_name: str = defaults.CUSTOM,
    region: str = defaults.DEFAULT_REGION,
    keys_to_generate: int = defaults.DEFAULT_KEYS_TO_GENERATE,
    anchor_nodes: Optional[int] = None,
    non_anchor_nodes: Optional[int] = None,
    cluster_id: Optional[str] = None,
) -> Spec:
    """
    Build a fresh spec with defaults filled in.

    Custom networks get three anchors and a genesis draft next to the spec
    file when no genesis was supplied; mainnet gets no anchors.
    """
    spec_path = Path(spec_path)
    cluster_id = cluster_id or generate_id()
    mainnet = network_name == defaults.MAINNET

    if anchor_nodes is None:
        anchor_nodes = 0 if mainnet else defaults.DEFAULT_ANCHOR_NODES
    if non_anchor_nodes is None:
        non_anchor_nodes = defaults.DEFAULT_NON_ANCHOR_NODES

    network_id = defaults.NETWORK_IDS.get(network_name, defaults.DEFAULT_CUSTOM_NETWORK_ID)

    keys = generate_keys(keys_to_generate) if not mainnet else []

    if not mainnet and not genesis_file:
        draft = spec_path.with_name(f"{spec_path.stem}.genesis.json")
        spec_path.parent.mkdir(parents=True, exist_ok=True)
        genesis_file = str(write_genesis_draft(draft, network_id, keys))
        log.info("wrote genesis draft to %s", draft)

    return Spec(
        id=cluster_id,
        network_name=network_name,
        network=NetworkConfig(network_id=network_id),
        install_artifacts=InstallArtifacts(
            agent_bin=agent_bin,
            node_bin=node_bin,
            plugins_dir=plugins_dir,
            genesis_file=genesis_file,
        ),
        machine=Machine(anchor_nodes=anchor_nodes, non_anchor_nodes=non_anchor_nodes),
        generated_keys=keys,
        resources=Resources(
            region=region,
            bucket=f"{cluster_id}-{region}",
            backup_bucket=f"{cluster_id}-db-backup-{region}",
        ),
    )
