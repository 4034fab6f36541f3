import hashlib
import stat
import threading

import pytest

from avafleet.agent.bootstrap import AgentOptions, AgentState, BootstrapAgent
from avafleet.agent.metadata import InstanceMetadata
from avafleet.config.loader import default_spec, persist_spec
from avafleet.config.models import Node
from avafleet.crypto import cert as certs
from avafleet.crypto.compress import compress_bytes
from avafleet.crypto.envelope import Envelope
from avafleet.errors import AgentError, ArtifactError, MissingTagsError
from avafleet.execution.runner import CommandRunner
from avafleet.naming.keys import NodeKind
from avafleet.rendezvous.mailbox import Mailbox

from fakes import FakeEc2, FakeKms, FakeObjectStore

CLUSTER = "avafleet-test"
BUCKET = "avafleet-test-us-west-2"
NODE_BIN = b"\x7fELF node" * 100
PLUGIN_BIN = b"\x7fELF plugin" * 50


@pytest.fixture(autouse=True)
def _short_id(monkeypatch):
    # some OpenSSL builds ship without ripemd160
    try:
        hashlib.new("ripemd160")
    except ValueError:
        monkeypatch.setattr(certs, "short_id", lambda der: hashlib.sha256(der).digest()[:20])


class FakeMetadata:
    def __init__(self, instance_id="i-0abc", ip="54.1.2.3"):
        self.md = InstanceMetadata(instance_id, "us-west-2", "us-west-2a", ip)

    def fetch(self):
        return self.md


def _tags(kind="anchor", **over):
    tags = {
        "ID": CLUSTER,
        "NODE_KIND": kind,
        "ARCH_TYPE": "amd64",
        "OS_TYPE": "ubuntu",
        "KMS_CMK_ARN": "arn:aws:kms:us-west-2:123456789012:key/key-1",
        "S3_BUCKET_NAME": BUCKET,
    }
    tags.update(over)
    return tags


def _seed(store, spec, tmp_path):
    persist_spec(spec, tmp_path / "seed" / "spec.yaml", mirror=(store, BUCKET))
    store.put_bytes(BUCKET, f"{CLUSTER}/install/avalanchego.zstd", compress_bytes(NODE_BIN))
    store.put_bytes(BUCKET, f"{CLUSTER}/install/plugins/evm.zstd", compress_bytes(PLUGIN_BIN))
    store.put_bytes(BUCKET, f"{CLUSTER}/genesis.json", b'{"networkID": 1337}')


@pytest.fixture
def store(custom_spec, tmp_path):
    store = FakeObjectStore()
    _seed(store, custom_spec, tmp_path)
    return store


@pytest.fixture
def kms():
    return FakeKms()


@pytest.fixture
def options(tmp_path):
    root = tmp_path / "node"
    return AgentOptions(
        node_bin=root / "bin" / "avalanchego",
        tls_key_file=root / "pki" / "staking.key",
        tls_cert_file=root / "pki" / "staking.crt",
        genesis_file=root / "etc" / "genesis.json",
        db_dir=str(root / "data"),
        unit_path=root / "systemd" / "avalanche.service",
        publish_interval=0,
        cert_key_size=2048,
    )


def _agent(store, kms, options, kind="anchor", metadata=None, **tags):
    return BootstrapAgent(
        metadata=metadata or FakeMetadata(),
        ec2=FakeEc2(_tags(kind, **tags)),
        store=store,
        kms=kms,
        options=options,
        runner=CommandRunner(dry_run=True, label="systemctl"),
    )


def test_anchor_bootstrap(store, kms, options):
    agent = _agent(store, kms, options)
    run = agent.run(threading.Event(), max_iterations=3)

    assert run.states == list(AgentState)
    assert run.node_id.startswith("NodeID-")

    assert options.node_bin.read_bytes() == NODE_BIN
    assert stat.S_IMODE(options.node_bin.stat().st_mode) == 0o755
    assert (options.plugins_dir / "evm").read_bytes() == PLUGIN_BIN
    assert options.genesis_file.read_text() == '{"networkID": 1337}'

    sealed = store.objects[(BUCKET, f"{CLUSTER}/pki/i-0abc.key.zstd.encrypted")]
    assert b"PRIVATE KEY" not in sealed

    unit = options.unit_path.read_text()
    assert "--network-id=1337" in unit
    assert f"--genesis={options.genesis_file}" in unit
    assert "--public-ip=54.1.2.3" in unit
    assert "--bootstrap-ips" not in unit
    assert agent.runner.history == [
        ["systemctl", "daemon-reload"],
        ["systemctl", "enable", "avalanche.service"],
        ["systemctl", "restart", "avalanche.service"],
    ]

    ready = Mailbox(store, BUCKET, CLUSTER).list_ready(NodeKind.ANCHOR)
    assert ready == [Node(instance_id="i-0abc", ip="54.1.2.3", kind=NodeKind.ANCHOR, node_id=run.node_id)]


def test_sealed_staking_key_round_trips(store, kms, options, tmp_path):
    _agent(store, kms, options).run(threading.Event(), max_iterations=1)
    sealed = tmp_path / "sealed"
    sealed.write_bytes(store.objects[(BUCKET, f"{CLUSTER}/pki/i-0abc.key.zstd.encrypted")])
    restored = Envelope(kms, "arn").open_file(sealed, tmp_path / "restored")
    assert restored.read_bytes() == options.tls_key_file.read_bytes()


def test_rerun_skips_finished_work(store, kms, options):
    first = _agent(store, kms, options).run(threading.Event(), max_iterations=1)
    pki_puts = sum(1 for c in store.calls if c.op == "put" and "/pki/" in c.args[1])
    gets = store.get_count

    second = _agent(store, kms, options).run(threading.Event(), max_iterations=1)

    assert second.node_id == first.node_id
    assert sum(1 for c in store.calls if c.op == "put" and "/pki/" in c.args[1]) == pki_puts
    # only the config is fetched again
    assert store.get_count - gets == 1


def test_non_anchor_bootstraps_from_anchors(store, kms, options):
    mailbox = Mailbox(store, BUCKET, CLUSTER)
    mailbox.publish(Node(instance_id="i-a1", ip="10.0.0.1", kind=NodeKind.ANCHOR, node_id="NodeID-a1"))
    mailbox.publish(Node(instance_id="i-a2", ip="10.0.0.2", kind=NodeKind.ANCHOR, node_id="NodeID-a2"))

    run = _agent(store, kms, options, kind="non-anchor").run(threading.Event())

    assert run.bootstrap_ips == ["10.0.0.1:9651", "10.0.0.2:9651"]
    assert "--bootstrap-ips=10.0.0.1:9651,10.0.0.2:9651" in run.command
    assert "--bootstrap-ids=NodeID-a1,NodeID-a2" in run.command
    assert [n.instance_id for n in mailbox.list_ready(NodeKind.NON_ANCHOR)] == ["i-0abc"]


def test_mainnet_node_skips_genesis_and_peers(tmp_path, artifacts, kms, options):
    spec = default_spec(
        spec_path=tmp_path / "main" / "spec.yaml",
        network_name="mainnet",
        cluster_id=CLUSTER,
        **artifacts,
    )
    store = FakeObjectStore()
    _seed(store, spec, tmp_path)

    run = _agent(store, kms, options, kind="non-anchor").run(threading.Event())

    assert not options.genesis_file.exists()
    assert "--network-id=1" in run.command
    assert not any(arg.startswith("--genesis") for arg in run.command)
    assert run.bootstrap_ips == []


def test_missing_tags_fail_before_downloads(store, kms, options):
    agent = _agent(store, kms, options, KMS_CMK_ARN="", S3_BUCKET_NAME="")
    with pytest.raises(MissingTagsError) as ei:
        agent.run(threading.Event())
    assert ei.value.missing == ["KMS_CMK_ARN", "S3_BUCKET_NAME"]
    assert store.get_count == 0


def test_missing_binary_is_an_artifact_error(store, kms, options):
    del store.objects[(BUCKET, f"{CLUSTER}/install/avalanchego.zstd")]
    with pytest.raises(ArtifactError):
        _agent(store, kms, options).run(threading.Event())
    assert not options.node_bin.exists()


def test_corrupt_binary_is_an_artifact_error(store, kms, options):
    store.objects[(BUCKET, f"{CLUSTER}/install/avalanchego.zstd")] = b"not zstd at all"
    with pytest.raises(ArtifactError):
        _agent(store, kms, options).run(threading.Event())
    assert not options.node_bin.exists()
    assert not list(options.node_bin.parent.glob("*.zstd"))


def test_failed_publish_is_retried(store, kms, options):
    agent = _agent(store, kms, options, kind="non-anchor")
    agent.fetch_metadata()
    agent.fetch_tags()
    agent.ensure_identity()
    agent.fetch_config()

    store.fail_puts = 1
    publisher = agent.steady_state(threading.Event(), max_iterations=5)
    assert (publisher.failures, publisher.published) == (1, 1)


def test_anchors_without_node_id_are_skipped(store, kms, options):
    mailbox = Mailbox(store, BUCKET, CLUSTER)
    mailbox.publish(Node(instance_id="i-a1", ip="10.0.0.1", kind=NodeKind.ANCHOR, node_id="NodeID-a1"))
    mailbox.publish(Node(instance_id="i-a2", ip="10.0.0.2", kind=NodeKind.ANCHOR))

    run = _agent(store, kms, options, kind="non-anchor").run(threading.Event())

    assert run.bootstrap_ips == ["10.0.0.1:9651"]
    assert run.bootstrap_ids == ["NodeID-a1"]
    assert "--bootstrap-ids=NodeID-a1" in run.command


def test_stray_plugin_objects_are_ignored(store, kms, options):
    store.put_bytes(BUCKET, f"{CLUSTER}/install/plugins/README", b"notes")
    store.put_bytes(BUCKET, f"{CLUSTER}/install/plugins/old/evm.zstd", compress_bytes(PLUGIN_BIN))

    agent = _agent(store, kms, options)
    agent.fetch_metadata()
    agent.fetch_tags()
    installed = agent.ensure_plugins()

    assert installed == [options.plugins_dir / "evm"]
    assert not (options.plugins_dir / "README").exists()


def test_tagged_steps_need_tags_first(store, kms, options):
    agent = _agent(store, kms, options)
    agent.fetch_metadata()
    with pytest.raises(AgentError, match="tags have not been fetched"):
        agent.ensure_binary()
    assert store.get_count == 0


class CountingMetadata(FakeMetadata):
    def __init__(self):
        super().__init__()
        self.fetches = 0

    def fetch(self):
        self.fetches += 1
        return super().fetch()


def test_prefetched_metadata_is_not_fetched_again(store, kms, options):
    metadata = CountingMetadata()
    agent = BootstrapAgent(
        metadata=metadata,
        ec2=FakeEc2(_tags()),
        store=store,
        kms=kms,
        options=options,
        runner=CommandRunner(dry_run=True, label="systemctl"),
        instance=metadata.md,
    )
    run = agent.run(threading.Event(), max_iterations=1)

    assert metadata.fetches == 0
    assert run.metadata.instance_id == "i-0abc"
    assert run.states[0] is AgentState.METADATA_FETCHED
