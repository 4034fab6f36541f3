# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/avafleet/logging/log.py

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

# chatty below WARNING on every AWS call
_NOISY = ("botocore", "boto3", "urllib3", "s3transfer")


def init_logging(
    *,
    base_dir: Path | None = None,
    name: str = "avafleet",
    command: str = "run",
    cluster_id: Optional[str] = None,
    verbose: bool = False,
    console: bool = True,
) -> tuple[logging.Logger, str, Path]:
    """
    Set up the "avafleet" logger for one CLI or agent invocation.

    Everything down to DEBUG goes to ``<base_dir>/<command>-<ts>-<run>.log``;
    the console gets INFO, or DEBUG with --debug. Returns the logger, the
    run id observers stamp on events, and the log file path.
    """
    run_id = str(uuid.uuid4())

    if base_dir is None:
        base_dir = Path.home() / ".avafleet" / "logs"
    base_dir.mkdir(parents=True, exist_ok=True)

    ts = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")
    log_path = base_dir / f"{command}-{ts}-{run_id[:8]}.log"

    logger = logging.getLogger(name)
    logger.setLevel(logging.DEBUG)
    for h in list(logger.handlers):
        h.close()
    logger.handlers.clear()
    logger.propagate = False

    formatter = logging.Formatter(
        "%(asctime)s | %(levelname)-7s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    fh = logging.FileHandler(log_path)
    fh.setLevel(logging.DEBUG)
    fh.setFormatter(formatter)
    logger.addHandler(fh)

    if console:
        ch = logging.StreamHandler()
        ch.setLevel(logging.DEBUG if verbose else logging.INFO)
        ch.setFormatter(formatter)
        logger.addHandler(ch)

    for noisy in _NOISY:
        logging.getLogger(noisy).setLevel(logging.INFO if verbose else logging.WARNING)

    logger.info("=== avafleet %s started ===", command)
    logger.info("run_id=%s", run_id)
    if cluster_id:
        logger.info("cluster_id=%s", cluster_id)
    logger.info("log_file=%s", log_path)

    return logger, run_id, log_path
