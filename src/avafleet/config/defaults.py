# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/avafleet/config/defaults.py

DEFAULT_REGION = "us-west-2"

DEFAULT_INSTANCE_TYPES = ["m5.large", "c5.large", "r5.large", "t3.large"]

SNOW_SAMPLE_SIZE = 20
SNOW_QUORUM_SIZE = 15
HTTP_PORT = 9650
STAKING_PORT = 9651

MIN_ANCHOR_NODES = 1
MAX_ANCHOR_NODES = 10
DEFAULT_ANCHOR_NODES = 3

MIN_NON_ANCHOR_NODES = 1
MAX_NON_ANCHOR_NODES = 20
DEFAULT_NON_ANCHOR_NODES = 2

MAINNET = "mainnet"
CUSTOM = "custom"

NETWORK_IDS = {
    "mainnet": 1,
    "fuji": 5,
    "local": 12345,
}
DEFAULT_CUSTOM_NETWORK_ID = 1337

# Public networks the provisioner refuses to join.
UNSUPPORTED_NETWORKS = {
    "cascade",
    "denali",
    "everest",
    "fuji",
    "testnet",
    "testing",
    "local",
}

DEFAULT_KEYS_TO_GENERATE = 5
# Balance given to each generated key in the genesis draft, in nAVAX.
GENESIS_ALLOCATION = 300_000_000_000_000_000

# Waits (seconds)
STACK_POLL_INTERVAL = 30
ROLE_STACK_TIMEOUT = 500
NETWORK_STACK_TIMEOUT = 300
NETWORK_DELETE_TIMEOUT = 500
GROUP_WAIT_BASE = 300
GROUP_WAIT_PER_INSTANCE = 60
MAX_WAIT_SECONDS = 50 * 60

RENDEZVOUS_POLL_INTERVAL = 30

HEALTH_ATTEMPTS = 10
HEALTH_INTERVAL = 10

VPC_CIDR = "10.0.0.0/16"
PUBLIC_SUBNET_CIDRS = ["10.0.64.0/19", "10.0.128.0/19", "10.0.192.0/19"]
INGRESS_IPV4_RANGE = "0.0.0.0/0"

KMS_DELETION_WINDOW_DAYS = 7
