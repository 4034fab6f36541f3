# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/avafleet/crypto/keys.py

from __future__ import annotations

from typing import List

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec

from avafleet.config.models import GeneratedKey


def generate_key() -> GeneratedKey:
    key = ec.generate_private_key(ec.SECP256K1())
    priv = key.private_numbers().private_value.to_bytes(32, "big")
    pub = key.public_key().public_bytes(
        serialization.Encoding.X962,
        serialization.PublicFormat.CompressedPoint,
    )
    return GeneratedKey(private_key_hex=priv.hex(), public_key_hex=pub.hex())


def generate_keys(count: int) -> List[GeneratedKey]:
    if count < 0:
        raise ValueError("key count must be >= 0")
    return [generate_key() for _ in range(count)]
