# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/avafleet/aws/session.py

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

import boto3

from avafleet.aws.cloudformation import StackManager
from avafleet.aws.cloudwatch import LogsClient
from avafleet.aws.ec2 import Ec2Client
from avafleet.aws.kms import KmsClient
from avafleet.aws.s3 import ObjectStore
from avafleet.aws.sts import StsClient
from avafleet.config import defaults


@dataclass(frozen=True)
class AwsSettings:
    region: str
    profile: Optional[str] = None


def load_aws_settings(region: Optional[str] = None) -> AwsSettings:
    # override via env
    return AwsSettings(
        region=region or os.getenv("AWS_REGION", defaults.DEFAULT_REGION),
        profile=os.getenv("AVAFLEET_AWS_PROFILE") or None,
    )


class CloudClients:
    """
    Factory for the thin service wrappers, all bound to one session.

    Phases take this object and never build boto3 clients themselves, so
    tests can hand in fakes with the same attribute names.
    """

    def __init__(self, settings: AwsSettings):
        self.settings = settings
        session = boto3.session.Session(
            profile_name=settings.profile, region_name=settings.region
        )
        self.region = settings.region
        self.s3 = ObjectStore(session.client("s3"), region=settings.region)
        self.kms = KmsClient(session.client("kms"))
        self.ec2 = Ec2Client(session.client("ec2"))
        self.sts = StsClient(session.client("sts"))
        self.logs = LogsClient(session.client("logs"))
        self.stacks = StackManager(session.client("cloudformation"))
