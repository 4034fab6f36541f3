# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/avafleet/naming/keys.py

"""
Deterministic names for stacks and object-storage keys.

Every name is derived from the cluster id alone, so two clusters can share a
bucket or an account without colliding, and every name can be decoded back
into (cluster id, kind).
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

from avafleet.errors import UnknownKindError


class NodeKind(str, Enum):
    ANCHOR = "anchor"
    NON_ANCHOR = "non-anchor"

    def encode(self) -> str:
        return self.value

    @classmethod
    def decode(cls, raw: str) -> "NodeKind":
        value = (raw or "").strip().lower()
        if value in ("non_anchor", "nonanchor"):
            value = cls.NON_ANCHOR.value
        try:
            return cls(value)
        except ValueError:
            raise UnknownKindError(f"unknown node kind: {raw!r}") from None


class StackKind(str, Enum):
    ROLE = "role"
    NETWORK = "network"
    ANCHOR_GROUP = "anchor-group"
    NON_ANCHOR_GROUP = "non-anchor-group"


_STACK_SUFFIX = {
    StackKind.ROLE: "ec2-instance-role",
    StackKind.NETWORK: "vpc",
    StackKind.ANCHOR_GROUP: "asg-anchor-nodes",
    StackKind.NON_ANCHOR_GROUP: "asg-non-anchor-nodes",
}


def encode_stack_name(cluster_id: str, kind: StackKind) -> str:
    return f"{cluster_id}-{_STACK_SUFFIX[kind]}"


def decode_stack_name(name: str) -> Tuple[str, StackKind]:
    # Longest suffix first: "asg-non-anchor-nodes" also ends with "anchor-nodes".
    for kind, suffix in sorted(_STACK_SUFFIX.items(), key=lambda kv: -len(kv[1])):
        tail = f"-{suffix}"
        if name.endswith(tail) and len(name) > len(tail):
            return name[: -len(tail)], kind
    raise UnknownKindError(f"not a fleet stack name: {name!r}")


class KeyKind(str, Enum):
    CONFIG = "config"
    PKI_KEY = "pki-key"
    READY_ANCHOR = "ready-anchor"
    READY_NON_ANCHOR = "ready-non-anchor"
    AGENT_BIN = "agent-bin"
    NODE_BIN = "node-bin"
    PLUGIN = "plugin"
    GENESIS = "genesis"
    ACCESS_KEY = "access-key"


# Kinds whose keys carry a per-object name after the prefix.
_DIRECTORY_KINDS = {
    KeyKind.PKI_KEY: "pki/",
    KeyKind.READY_ANCHOR: "discover/ready/anchor/",
    KeyKind.READY_NON_ANCHOR: "discover/ready/non-anchor/",
    KeyKind.PLUGIN: "install/plugins/",
}

_FILE_KINDS = {
    KeyKind.CONFIG: "config.yaml",
    KeyKind.AGENT_BIN: "install/avalanched",
    KeyKind.NODE_BIN: "install/avalanchego.zstd",
    KeyKind.GENESIS: "genesis.json",
    KeyKind.ACCESS_KEY: "ec2-access-key.zstd.encrypted",
}

PKI_KEY_SUFFIX = ".key.zstd.encrypted"
PLUGIN_SUFFIX = ".zstd"


@dataclass(frozen=True)
class ParsedKey:
    cluster_id: str
    kind: KeyKind
    name: Optional[str] = None


def ready_kind(node_kind: NodeKind) -> KeyKind:
    return KeyKind.READY_ANCHOR if node_kind is NodeKind.ANCHOR else KeyKind.READY_NON_ANCHOR


def mailbox_prefix(cluster_id: str, kind: KeyKind) -> str:
    """Listing prefix for a directory kind. Always ends with '/'."""
    if kind not in _DIRECTORY_KINDS:
        raise UnknownKindError(f"{kind.value} is not a directory kind")
    return f"{cluster_id}/{_DIRECTORY_KINDS[kind]}"


def encode_key(cluster_id: str, kind: KeyKind, name: Optional[str] = None) -> str:
    if kind in _FILE_KINDS:
        return f"{cluster_id}/{_FILE_KINDS[kind]}"

    if not name:
        raise ValueError(f"{kind.value} keys need a name")
    if "/" in name:
        raise ValueError(f"object name may not contain '/': {name!r}")

    prefix = mailbox_prefix(cluster_id, kind)
    if kind is KeyKind.PKI_KEY:
        return f"{prefix}{name}{PKI_KEY_SUFFIX}"
    if kind is KeyKind.PLUGIN:
        return f"{prefix}{name}{PLUGIN_SUFFIX}"
    return f"{prefix}{name}"


def decode_key(key: str) -> ParsedKey:
    cluster_id, sep, rest = key.partition("/")
    if not sep or not cluster_id or not rest:
        raise UnknownKindError(f"not a fleet object key: {key!r}")

    for kind, path in _FILE_KINDS.items():
        if rest == path:
            return ParsedKey(cluster_id, kind)

    for kind, path in _DIRECTORY_KINDS.items():
        if not rest.startswith(path):
            continue
        name = rest[len(path):]
        if not name or "/" in name:
            break
        if kind is KeyKind.PKI_KEY:
            if not name.endswith(PKI_KEY_SUFFIX):
                break
            name = name[: -len(PKI_KEY_SUFFIX)]
        elif kind is KeyKind.PLUGIN:
            if not name.endswith(PLUGIN_SUFFIX):
                break
            name = name[: -len(PLUGIN_SUFFIX)]
        return ParsedKey(cluster_id, kind, name)

    raise UnknownKindError(f"not a fleet object key: {key!r}")


def access_key_file_name(spec_stem: str) -> str:
    return f"{spec_stem}-ec2-access.key"


def kms_key_alias(cluster_id: str) -> str:
    return f"{cluster_id}-cmk"
