# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/avafleet/provision/health.py

from __future__ import annotations

import logging
import time
from typing import Callable, Optional

import requests

from avafleet.config import defaults
from avafleet.errors import HealthCheckError
from avafleet.utils.retry import RetryError, retry

log = logging.getLogger("avafleet")

LIVENESS_PATH = "/ext/health/liveness"


class NotHealthy(Exception):
    pass


def probe_liveness(session, endpoint: str, timeout: float = 5.0) -> None:
    """One liveness probe. Raises NotHealthy unless the node reports healthy."""
    url = endpoint.rstrip("/") + LIVENESS_PATH
    try:
        resp = session.get(url, timeout=timeout)
        resp.raise_for_status()
        body = resp.json()
    except (requests.RequestException, ValueError) as e:
        raise NotHealthy(str(e)) from e
    if not body.get("healthy"):
        raise NotHealthy(f"{url} reported healthy={body.get('healthy')}")


def check_health(
    endpoint: str,
    *,
    session=None,
    attempts: int = defaults.HEALTH_ATTEMPTS,
    interval: float = defaults.HEALTH_INTERVAL,
    sleep: Callable[[float], None] = time.sleep,
    on_probe: Optional[Callable[[int, bool, Optional[str]], None]] = None,
) -> None:
    """Probe ``endpoint`` up to ``attempts`` times, raising HealthCheckError on exhaustion."""
    session = session or requests.Session()

    def _failed(attempt: int, exc: Exception) -> None:
        log.info("health %s attempt %d/%d: %s", endpoint, attempt, attempts, exc)
        if on_probe:
            on_probe(attempt, False, str(exc))

    @retry(retries=attempts, delay=interval, retry_on=(NotHealthy,), on_retry=_failed, sleep=sleep)
    def _probe() -> None:
        probe_liveness(session, endpoint)

    try:
        _probe()
    except RetryError as e:
        raise HealthCheckError(endpoint, attempts) from e

    log.info("health %s: healthy", endpoint)
    if on_probe:
        on_probe(0, True, None)
