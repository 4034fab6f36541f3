# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/avafleet/agent/tags.py

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping

from avafleet.errors import MissingTagsError
from avafleet.naming.keys import NodeKind

REQUIRED_TAGS = (
    "ID",
    "NODE_KIND",
    "ARCH_TYPE",
    "OS_TYPE",
    "KMS_CMK_ARN",
    "S3_BUCKET_NAME",
)


@dataclass(frozen=True)
class AgentTags:
    """The instance tags the node group stamps on every instance."""
    cluster_id: str
    node_kind: NodeKind
    arch_type: str
    os_type: str
    kms_key_arn: str
    bucket: str


def parse_tags(tags: Mapping[str, str]) -> AgentTags:
    """
    Build AgentTags from an instance's tag map.

    Every missing or empty tag is reported in one MissingTagsError.
    """
    missing = [k for k in REQUIRED_TAGS if not tags.get(k)]
    if missing:
        raise MissingTagsError(missing)

    return AgentTags(
        cluster_id=tags["ID"],
        node_kind=NodeKind.decode(tags["NODE_KIND"]),
        arch_type=tags["ARCH_TYPE"],
        os_type=tags["OS_TYPE"],
        kms_key_arn=tags["KMS_CMK_ARN"],
        bucket=tags["S3_BUCKET_NAME"],
    )
