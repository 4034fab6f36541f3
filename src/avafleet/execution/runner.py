# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/avafleet/execution/runner.py

from __future__ import annotations

import logging
import os
import subprocess
import time
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Union

Cmd = Sequence[Union[str, "os.PathLike[str]"]]


@dataclass
class CommandRunner:
    logger: logging.Logger = field(default_factory=lambda: logging.getLogger("avafleet"))
    dry_run: bool = False
    label: Optional[str] = None
    history: List[List[str]] = field(default_factory=list)

    def run(
        self,
        cmd: Cmd,
        *,
        check: bool = True,
        text: bool = True,
        cwd: str | None = None,
        env: dict[str, str] | None = None,
    ) -> subprocess.CompletedProcess:
        label = self.label or "cmd"
        argv = [str(c) for c in cmd]
        self.history.append(argv)

        self.logger.info(f"[{label}] $ {' '.join(argv)}")

        if self.dry_run:
            self.logger.info(f"[{label}] dry-run: skipped execution")
            return subprocess.CompletedProcess(args=argv, returncode=0, stdout="", stderr="")

        start = time.time()

        try:
            result = subprocess.run(
                argv,
                capture_output=True,
                check=check,
                text=text,
                cwd=cwd,
                env=env,
            )
        except subprocess.CalledProcessError as e:
            self.logger.error(f"[{label}][exit {e.returncode}]")
            if e.stdout:
                self.logger.error(f"[{label}][stdout]\n{e.stdout.rstrip()}")
            if e.stderr:
                self.logger.error(f"[{label}][stderr]\n{e.stderr.rstrip()}")
            raise

        duration = time.time() - start

        if result.stdout:
            self.logger.debug(f"[{label}][stdout]\n{result.stdout.rstrip()}")
        if result.stderr:
            self.logger.debug(f"[{label}][stderr]\n{result.stderr.rstrip()}")
        self.logger.debug(f"[{label}][exit {result.returncode}] ({duration:.2f}s)")

        return result
