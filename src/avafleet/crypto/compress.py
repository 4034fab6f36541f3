# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/avafleet/crypto/compress.py

from __future__ import annotations

from pathlib import Path

import zstandard

LEVEL = 3


def compress_bytes(data: bytes, level: int = LEVEL) -> bytes:
    return zstandard.ZstdCompressor(level=level).compress(data)


def decompress_bytes(data: bytes) -> bytes:
    # Frames written by the streaming API carry no content size.
    dctx = zstandard.ZstdDecompressor()
    with dctx.stream_reader(data) as reader:
        return reader.read()


def compress_file(src: str | Path, dst: str | Path, level: int = LEVEL) -> Path:
    dst = Path(dst)
    cctx = zstandard.ZstdCompressor(level=level)
    with open(src, "rb") as fin, open(dst, "wb") as fout:
        cctx.copy_stream(fin, fout)
    return dst


def decompress_file(src: str | Path, dst: str | Path) -> Path:
    dst = Path(dst)
    dctx = zstandard.ZstdDecompressor()
    with open(src, "rb") as fin, open(dst, "wb") as fout:
        dctx.copy_stream(fin, fout)
    return dst
