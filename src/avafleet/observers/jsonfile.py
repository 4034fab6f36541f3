# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/avafleet/observers/jsonfile.py
from __future__ import annotations

import json
from pathlib import Path

from .events import BaseEvent


class JsonFileObserver:
    """
    Appends one JSON object per event (JSON Lines) next to the run log.

    Records carry a ``seq`` in emit order, since several events can share a
    one-second timestamp.
    """

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._seq = 0

    def notify(self, event: BaseEvent) -> None:
        self._seq += 1
        record = {"seq": self._seq, "type": event.__class__.__name__, **event.dict()}
        with self.path.open("a") as f:
            f.write(json.dumps(record, default=str) + "\n")
