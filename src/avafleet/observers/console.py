# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/avafleet/observers/console.py
from __future__ import annotations

import typer

from .events import BaseEvent

_SKIP = ("ts", "run_id", "cluster_id", "phase")


class ConsoleObserver:
    def notify(self, event: BaseEvent) -> None:
        d = event.dict()
        kind = event.__class__.__name__
        data = ", ".join(f"{k}={v}" for k, v in d.items() if k not in _SKIP)
        phase = f" [{d['phase']}]" if d.get("phase") else ""
        typer.echo(f"[{d['ts']}] {kind}{phase} {data}".rstrip())
