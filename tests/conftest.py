# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

from pathlib import Path

import pytest

from avafleet.config.loader import default_spec
from avafleet.observers.dispatcher import EventBus
from avafleet.provision.phases import ApplyContext

from fakes import FakeClients, FakeHttp


class Capture:
    def __init__(self): self.events = []
    def notify(self, ev): self.events.append(ev)

    def kinds(self):
        return [e.__class__.__name__ for e in self.events]


@pytest.fixture
def artifacts(tmp_path: Path) -> dict:
    d = tmp_path / "artifacts"
    (d / "plugins").mkdir(parents=True)
    (d / "avalanched").write_bytes(b"#!/bin/sh\necho agent\n")
    (d / "avalanchego").write_bytes(b"\x7fELF node binary" * 64)
    (d / "plugins" / "evm").write_bytes(b"\x7fELF evm plugin" * 32)
    return {
        "agent_bin": str(d / "avalanched"),
        "node_bin": str(d / "avalanchego"),
        "plugins_dir": str(d / "plugins"),
    }


@pytest.fixture
def spec_path(tmp_path: Path) -> Path:
    return tmp_path / "fleet" / "spec.yaml"


@pytest.fixture
def custom_spec(spec_path, artifacts):
    return default_spec(
        spec_path=spec_path,
        keys_to_generate=2,
        cluster_id="avafleet-test",
        **artifacts,
    )


@pytest.fixture
def clients():
    return FakeClients()


@pytest.fixture
def capture():
    return Capture()


@pytest.fixture
def make_ctx(clients, spec_path, capture):
    def _make(**kw) -> ApplyContext:
        opts = dict(
            clients=clients,
            spec_path=spec_path,
            bus=EventBus(observers=[capture]),
            run_id="run-1",
            http_session=FakeHttp(),
            sleep=clients.clock.sleep,
            clock=clients.clock,
        )
        opts.update(kw)
        return ApplyContext(**opts)
    return _make
