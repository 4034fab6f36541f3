# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/avafleet/rendezvous/mailbox.py

"""
Readiness rendezvous over the cluster bucket.

Agents write one marker per instance under a per-kind prefix; the
orchestrator lists that prefix until enough distinct instances have
announced themselves. Markers are idempotent: re-publishing overwrites the
same key, so the count of distinct instances never double-counts.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Dict, List, Optional

import yaml
from pydantic import ValidationError

from avafleet.config import defaults
from avafleet.config.models import Node
from avafleet.errors import FleetError, RendezvousIncompleteError, UnknownKindError
from avafleet.naming.keys import NodeKind, decode_key, encode_key, mailbox_prefix, ready_kind

log = logging.getLogger("avafleet")


class Mailbox:
    def __init__(
        self,
        store,
        bucket: str,
        cluster_id: str,
        *,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.bucket = bucket
        self.cluster_id = cluster_id
        self.sleep = sleep
        self.clock = clock

    def marker_key(self, node: Node) -> str:
        return encode_key(self.cluster_id, ready_kind(node.kind), node.instance_id)

    def publish(self, node: Node) -> str:
        key = self.marker_key(node)
        body = yaml.safe_dump(node.model_dump(mode="json", exclude_none=True), sort_keys=False)
        self.store.put_bytes(self.bucket, key, body.encode())
        log.debug("published readiness marker s3://%s/%s", self.bucket, key)
        return key

    def list_ready(self, kind: NodeKind) -> List[Node]:
        """Distinct nodes that have published under ``kind``, in key order."""
        prefix = mailbox_prefix(self.cluster_id, ready_kind(kind))
        nodes: Dict[str, Node] = {}
        for key in sorted(self.store.list_keys(self.bucket, prefix)):
            try:
                parsed = decode_key(key)
            except UnknownKindError:
                log.warning("ignoring unexpected object under mailbox: %s", key)
                continue
            if parsed.name in nodes:
                continue
            raw = self.store.get_bytes(self.bucket, key)
            try:
                node = Node.model_validate(yaml.safe_load(raw) or {})
            except (yaml.YAMLError, ValidationError) as e:
                log.warning("ignoring unreadable readiness marker %s: %s", key, e)
                continue
            nodes[parsed.name] = node
        return list(nodes.values())

    def await_ready(
        self,
        kind: NodeKind,
        target_count: int,
        *,
        poll_interval: float = defaults.RENDEZVOUS_POLL_INTERVAL,
        timeout: float,
        cancel: Optional[threading.Event] = None,
        on_progress: Optional[Callable[[int, int], None]] = None,
    ) -> List[Node]:
        """
        Poll until at least ``target_count`` distinct nodes of ``kind`` are ready.

        Raises RendezvousIncompleteError when ``timeout`` elapses or ``cancel``
        is set first.
        """
        deadline = self.clock() + timeout
        observed = 0

        while True:
            nodes = self.list_ready(kind)
            observed = len(nodes)
            log.info("%s nodes ready: %d/%d", kind.value, observed, target_count)
            if on_progress:
                on_progress(observed, target_count)

            if observed >= target_count:
                return nodes

            if cancel is not None and cancel.is_set():
                raise RendezvousIncompleteError(kind.value, observed, target_count)
            if self.clock() + poll_interval > deadline:
                raise RendezvousIncompleteError(kind.value, observed, target_count)
            self.sleep(poll_interval)


class ReadinessPublisher:
    """
    Agent-side publisher.

    Publishes once, then keeps re-publishing every ``interval`` seconds when
    ``repeat`` is set. A failed publish is logged and retried on the next
    period; it never stops the loop.
    """

    def __init__(self, mailbox: Mailbox, node: Node, *, interval: float, repeat: bool):
        self.mailbox = mailbox
        self.node = node
        self.interval = interval
        self.repeat = repeat
        self.published = 0
        self.failures = 0

    def publish_once(self) -> bool:
        try:
            self.mailbox.publish(self.node)
        except FleetError as e:
            self.failures += 1
            log.warning("readiness publish failed (will retry): %s", e)
            return False
        self.published += 1
        return True

    def run(self, stop: threading.Event, max_iterations: Optional[int] = None) -> None:
        iterations = 0
        while not stop.is_set():
            ok = self.publish_once()
            iterations += 1
            if ok and not self.repeat:
                return
            if max_iterations is not None and iterations >= max_iterations:
                return
            stop.wait(self.interval)
