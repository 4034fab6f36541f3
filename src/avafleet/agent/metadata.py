# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/avafleet/agent/metadata.py

from __future__ import annotations

import logging
from dataclasses import dataclass

import requests

from avafleet.errors import MetadataError

log = logging.getLogger("avafleet")

IMDS_URL = "http://169.254.169.254/latest"
TOKEN_TTL_SECONDS = "21600"


@dataclass(frozen=True)
class InstanceMetadata:
    instance_id: str
    region: str
    availability_zone: str
    public_ipv4: str


class MetadataClient:
    """Instance metadata service (IMDSv2) reader."""

    def __init__(self, session=None, base_url: str = IMDS_URL, timeout: float = 2.0):
        self.session = session or requests.Session()
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._token = None

    def _token_header(self) -> dict:
        if self._token is None:
            resp = self.session.put(
                f"{self.base_url}/api/token",
                headers={"X-aws-ec2-metadata-token-ttl-seconds": TOKEN_TTL_SECONDS},
                timeout=self.timeout,
            )
            resp.raise_for_status()
            self._token = resp.text
        return {"X-aws-ec2-metadata-token": self._token}

    def get(self, path: str) -> str:
        try:
            resp = self.session.get(
                f"{self.base_url}/meta-data/{path}",
                headers=self._token_header(),
                timeout=self.timeout,
            )
            resp.raise_for_status()
        except requests.RequestException as e:
            raise MetadataError(f"metadata {path}: {e}") from e
        return resp.text.strip()

    def fetch(self) -> InstanceMetadata:
        md = InstanceMetadata(
            instance_id=self.get("instance-id"),
            region=self.get("placement/region"),
            availability_zone=self.get("placement/availability-zone"),
            public_ipv4=self.get("public-ipv4"),
        )
        log.info(
            "instance %s in %s (%s), public ip %s",
            md.instance_id, md.region, md.availability_zone, md.public_ipv4,
        )
        return md
