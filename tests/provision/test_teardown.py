import pytest

from avafleet.config.models import Node
from avafleet.errors import IdentityMismatchError, ProvisioningError
from avafleet.naming.keys import NodeKind
from avafleet.observers.events import TeardownStep
from avafleet.provision.provisioner import apply_spec
from avafleet.provision.teardown import delete_spec
from avafleet.rendezvous.mailbox import Mailbox

from fakes import FakeClients

STACKS = [
    "avafleet-test-ec2-instance-role",
    "avafleet-test-asg-non-anchor-nodes",
    "avafleet-test-asg-anchor-nodes",
    "avafleet-test-vpc",
]


@pytest.fixture
def applied(custom_spec, clients, make_ctx):
    mailbox = Mailbox(clients.s3, custom_spec.resources.bucket, custom_spec.id)
    for i, kind in enumerate([NodeKind.ANCHOR] * 3 + [NodeKind.NON_ANCHOR] * 2):
        mailbox.publish(Node(instance_id=f"i-{i}", ip=f"10.0.0.{i + 1}", kind=kind))
    return apply_spec(custom_spec, make_ctx())


def test_delete_tears_down_in_order(applied, clients, make_ctx, capture, spec_path):
    capture.events.clear()
    delete_spec(applied, make_ctx())

    assert clients.cfn.deleted() == STACKS
    assert clients.cfn.stacks == {}
    assert clients.ec2.deleted_key_pairs == ["avafleet-test-ec2-key"]
    assert clients.kms.scheduled == [("key-1", 7)]
    assert not spec_path.with_name("spec-ec2-access.key").exists()
    assert not spec_path.with_name("spec-ec2-access.key.zstd.encrypted").exists()

    # without --delete-all the bucket and logs stay
    assert clients.s3.deleted_buckets == []
    assert clients.logs.deleted == []

    steps = [(e.step, e.resource) for e in capture.events if isinstance(e, TeardownStep)]
    assert steps[0] == ("delete-access-key", "avafleet-test-ec2-key")
    assert steps[1] == ("schedule-kms-deletion", "key-1")
    # the network goes only after both groups are confirmed gone
    confirm_groups = max(
        steps.index(("confirm-stack-deleted", "avafleet-test-asg-anchor-nodes")),
        steps.index(("confirm-stack-deleted", "avafleet-test-asg-non-anchor-nodes")),
    )
    assert steps.index(("delete-stack", "avafleet-test-vpc")) > confirm_groups


def test_delete_all_keeps_backup_bucket(applied, clients, make_ctx):
    delete_spec(applied, make_ctx(), delete_all=True)
    assert clients.logs.deleted == ["avafleet-test"]
    assert clients.s3.deleted_buckets == ["avafleet-test-us-west-2"]
    assert "avafleet-test-db-backup-us-west-2" not in clients.s3.deleted_buckets


def test_delete_is_idempotent(applied, clients, make_ctx):
    delete_spec(applied, make_ctx())
    delete_spec(applied, make_ctx())
    assert clients.cfn.stacks == {}


def test_delete_partial_spec_uses_canonical_names(custom_spec, clients, make_ctx):
    spec = custom_spec.with_resources(identity=clients.sts.get_identity())
    clients.cfn.add_complete("avafleet-test-vpc")

    delete_spec(spec, make_ctx())
    assert clients.cfn.deleted() == STACKS
    assert clients.cfn.stacks == {}
    assert clients.ec2.deleted_key_pairs == []
    assert clients.kms.scheduled == []


def test_delete_requires_recorded_identity(custom_spec, clients, make_ctx):
    with pytest.raises(ProvisioningError):
        delete_spec(custom_spec, make_ctx())
    assert clients.cfn.calls == []


def test_delete_refuses_other_identity(applied, make_ctx):
    other = FakeClients(arn="arn:aws:iam::123456789012:user/intruder")
    with pytest.raises(IdentityMismatchError):
        delete_spec(applied, make_ctx(clients=other))
    assert other.cfn.calls == []
    assert other.ec2.deleted_key_pairs == []
