# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/avafleet/crypto/cert.py

"""
Staking TLS certificate for a node, and the node id derived from it.

The node id is ``NodeID-`` followed by the CB58 encoding (base58 with a
4-byte sha256 checksum) of ripemd160(sha256(cert DER)).
"""

from __future__ import annotations

import datetime
import hashlib
import logging
from pathlib import Path
from typing import Tuple

import base58
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import NameOID

from avafleet.errors import AgentError

log = logging.getLogger("avafleet")

NODE_ID_PREFIX = "NodeID-"
CHECKSUM_LENGTH = 4
KEY_SIZE = 4096


def generate_cert(
    key_path: str | Path,
    cert_path: str | Path,
    *,
    common_name: str = "avafleet",
    key_size: int = KEY_SIZE,
    days: int = 365 * 100,
) -> Tuple[Path, Path]:
    """Write a self-signed certificate and its PEM private key."""
    key_path, cert_path = Path(key_path), Path(cert_path)

    key = rsa.generate_private_key(public_exponent=65537, key_size=key_size)
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])
    now = datetime.datetime.now(datetime.timezone.utc)
    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - datetime.timedelta(minutes=5))
        .not_valid_after(now + datetime.timedelta(days=days))
        .sign(key, hashes.SHA256())
    )

    key_path.parent.mkdir(parents=True, exist_ok=True)
    cert_path.parent.mkdir(parents=True, exist_ok=True)
    key_path.write_bytes(
        key.private_bytes(
            serialization.Encoding.PEM,
            serialization.PrivateFormat.TraditionalOpenSSL,
            serialization.NoEncryption(),
        )
    )
    key_path.chmod(0o600)
    cert_path.write_bytes(cert.public_bytes(serialization.Encoding.PEM))
    log.info("generated staking certificate %s", cert_path)
    return key_path, cert_path


def encode_cb58(data: bytes) -> str:
    checksum = hashlib.sha256(data).digest()[-CHECKSUM_LENGTH:]
    return base58.b58encode(data + checksum).decode()


def decode_cb58(text: str) -> bytes:
    raw = base58.b58decode(text)
    if len(raw) < CHECKSUM_LENGTH:
        raise ValueError("cb58 payload too short")
    data, checksum = raw[:-CHECKSUM_LENGTH], raw[-CHECKSUM_LENGTH:]
    if hashlib.sha256(data).digest()[-CHECKSUM_LENGTH:] != checksum:
        raise ValueError("invalid cb58 checksum")
    return data


def short_id(der: bytes) -> bytes:
    try:
        ripemd = hashlib.new("ripemd160")
    except ValueError as e:
        # some OpenSSL 3 builds ship without the legacy provider
        raise AgentError("ripemd160 is not available in this Python build") from e
    ripemd.update(hashlib.sha256(der).digest())
    return ripemd.digest()


def node_id_from_cert(cert_path: str | Path) -> str:
    cert = x509.load_pem_x509_certificate(Path(cert_path).read_bytes())
    der = cert.public_bytes(serialization.Encoding.DER)
    return NODE_ID_PREFIX + encode_cb58(short_id(der))
