# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/avafleet/observers/logger.py
from __future__ import annotations

import logging

from .events import (
    BaseEvent,
    HealthProbe,
    PhaseFailed,
    RendezvousProgress,
    StackStatusUpdate,
    StackTimedOut,
)

# per-poll events only matter in the full trace
_DEBUG_EVENTS = (StackStatusUpdate, RendezvousProgress, HealthProbe)


class LoggerObserver:
    def __init__(self, logger: logging.Logger):
        self.logger = logger

    def notify(self, event: BaseEvent) -> None:
        if isinstance(event, (PhaseFailed, StackTimedOut)):
            level = logging.ERROR
        elif isinstance(event, _DEBUG_EVENTS):
            level = logging.DEBUG
        else:
            level = logging.INFO

        d = event.dict()
        fields = ", ".join(f"{k}={v}" for k, v in d.items() if k not in ("ts", "run_id"))
        self.logger.log(level, "[EVENT] %s: %s", event.__class__.__name__, fields)
