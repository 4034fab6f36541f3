# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/avafleet/crypto/envelope.py

"""
Envelope encryption for private keys stored in the cluster bucket.

A fresh 256-bit data key is requested from KMS for every blob. The blob is
encrypted locally with AES-GCM under the plaintext data key, and the
KMS-wrapped copy of the data key travels in the blob header. Only a caller
allowed to ``kms:Decrypt`` under the cluster master key can open it.

Blob layout::

    b"AFENV1" | u32 len(wrapped key) | wrapped key | 12-byte nonce | ciphertext+tag
"""

from __future__ import annotations

import logging
import os
import struct
from pathlib import Path

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from avafleet.crypto.compress import compress_bytes, decompress_bytes
from avafleet.errors import EnvelopeError

log = logging.getLogger("avafleet")

MAGIC = b"AFENV1"
NONCE_SIZE = 12


class Envelope:
    def __init__(self, kms, key_id: str):
        self.kms = kms
        self.key_id = key_id

    def seal(self, plaintext: bytes) -> bytes:
        wrapped, data_key = self.kms.generate_data_key(self.key_id)
        nonce = os.urandom(NONCE_SIZE)
        ct = AESGCM(data_key).encrypt(nonce, plaintext, MAGIC)
        return MAGIC + struct.pack(">I", len(wrapped)) + wrapped + nonce + ct

    def open(self, blob: bytes) -> bytes:
        if not blob.startswith(MAGIC):
            raise EnvelopeError("not a sealed envelope")
        off = len(MAGIC)
        if len(blob) < off + 4:
            raise EnvelopeError("truncated envelope header")
        (wlen,) = struct.unpack(">I", blob[off : off + 4])
        off += 4
        wrapped = blob[off : off + wlen]
        off += wlen
        nonce = blob[off : off + NONCE_SIZE]
        off += NONCE_SIZE
        if len(wrapped) != wlen or len(nonce) != NONCE_SIZE:
            raise EnvelopeError("truncated envelope header")

        data_key = self.kms.decrypt_data_key(wrapped)
        try:
            return AESGCM(data_key).decrypt(nonce, blob[off:], MAGIC)
        except InvalidTag as e:
            raise EnvelopeError("envelope failed authentication") from e

    def seal_file(self, src: str | Path, dst: str | Path) -> Path:
        """Compress ``src`` with zstd, then seal it into ``dst``."""
        dst = Path(dst)
        data = Path(src).read_bytes()
        dst.write_bytes(self.seal(compress_bytes(data)))
        log.debug("sealed %s -> %s (%d bytes)", src, dst, len(data))
        return dst

    def open_file(self, src: str | Path, dst: str | Path) -> Path:
        """Inverse of ``seal_file``."""
        dst = Path(dst)
        dst.write_bytes(decompress_bytes(self.open(Path(src).read_bytes())))
        return dst
