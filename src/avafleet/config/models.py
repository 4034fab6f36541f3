# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/avafleet/config/models.py

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from avafleet.config import defaults
from avafleet.errors import ResourceConflictError
from avafleet.naming.keys import NodeKind


class NetworkConfig(BaseModel):
    network_id: int = defaults.DEFAULT_CUSTOM_NETWORK_ID
    snow_sample_size: int = defaults.SNOW_SAMPLE_SIZE
    snow_quorum_size: int = defaults.SNOW_QUORUM_SIZE
    http_port: int = defaults.HTTP_PORT
    staking_port: int = defaults.STAKING_PORT
    log_level: str = "INFO"


class InstallArtifacts(BaseModel):
    agent_bin: str                      # local path of the bootstrap agent binary
    node_bin: str                       # local path of the node binary
    plugins_dir: Optional[str] = None
    genesis_file: Optional[str] = None  # required for custom networks


class Machine(BaseModel):
    anchor_nodes: int = 0
    non_anchor_nodes: int = defaults.DEFAULT_NON_ANCHOR_NODES
    instance_types: List[str] = Field(
        default_factory=lambda: list(defaults.DEFAULT_INSTANCE_TYPES)
    )
    arch_type: str = "amd64"
    os_type: str = "ubuntu"


class GeneratedKey(BaseModel):
    """A secp256k1 key generated for test funding on custom networks."""
    private_key_hex: str
    public_key_hex: str


class Identity(BaseModel):
    model_config = ConfigDict(frozen=True)

    account: str
    arn: str
    user_id: str


class Node(BaseModel):
    """A booted instance, as announced through the readiness mailbox."""
    model_config = ConfigDict(frozen=True)

    instance_id: str
    ip: str
    kind: NodeKind
    node_id: Optional[str] = None

    def endpoint(self, http_port: int) -> str:
        return f"http://{self.ip}:{http_port}"


class Resources(BaseModel):
    """
    Cloud resources created so far.

    Every field starts unset and is written exactly once, by the phase that
    creates the resource. ``set_once`` enforces that; assign through it
    rather than mutating the model.
    """
    model_config = ConfigDict(frozen=True)

    region: Optional[str] = None
    bucket: Optional[str] = None
    backup_bucket: Optional[str] = None

    identity: Optional[Identity] = None
    artifacts_uploaded: Optional[bool] = None

    kms_key_id: Optional[str] = None
    kms_key_arn: Optional[str] = None

    access_key_name: Optional[str] = None
    access_key_path: Optional[str] = None

    role_stack_name: Optional[str] = None
    instance_profile_arn: Optional[str] = None

    network_stack_name: Optional[str] = None
    vpc_id: Optional[str] = None
    security_group_id: Optional[str] = None
    public_subnet_ids: Optional[List[str]] = None

    anchor_stack_name: Optional[str] = None
    anchor_asg_logical_id: Optional[str] = None
    nlb_arn: Optional[str] = None
    nlb_target_group_arn: Optional[str] = None
    nlb_dns_name: Optional[str] = None

    non_anchor_stack_name: Optional[str] = None
    non_anchor_asg_logical_id: Optional[str] = None

    anchor_nodes: Optional[List[Node]] = None
    non_anchor_nodes: Optional[List[Node]] = None

    healthy_endpoints: Optional[List[str]] = None

    def set_once(self, **fields: Any) -> "Resources":
        for name, value in fields.items():
            if name not in type(self).model_fields:
                raise AttributeError(f"Resources has no field {name!r}")
            current = getattr(self, name)
            if current is not None and current != value:
                raise ResourceConflictError(
                    f"{name} is already set to {current!r}", resource=name
                )
        return self.model_copy(update=fields)

    def all_nodes(self) -> List[Node]:
        return list(self.anchor_nodes or []) + list(self.non_anchor_nodes or [])


class Spec(BaseModel):
    id: str
    network_name: str
    network: NetworkConfig = Field(default_factory=NetworkConfig)
    install_artifacts: InstallArtifacts
    machine: Machine = Field(default_factory=Machine)
    generated_keys: List[GeneratedKey] = Field(default_factory=list)
    resources: Resources = Field(default_factory=Resources)

    def is_mainnet(self) -> bool:
        return self.network_name == defaults.MAINNET

    def with_resources(self, **fields: Any) -> "Spec":
        """Return a copy with the given resource fields set (once)."""
        return self.model_copy(update={"resources": self.resources.set_once(**fields)})

    def to_yaml_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)
