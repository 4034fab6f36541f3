import hashlib
import stat

import pytest

from avafleet.crypto.cert import (
    NODE_ID_PREFIX,
    decode_cb58,
    encode_cb58,
    generate_cert,
    node_id_from_cert,
)


def _has_ripemd160() -> bool:
    try:
        hashlib.new("ripemd160")
    except ValueError:
        return False
    return True


needs_ripemd160 = pytest.mark.skipif(
    not _has_ripemd160(), reason="OpenSSL build without ripemd160"
)


def test_cb58_checksum():
    data = bytes(range(20))
    text = encode_cb58(data)
    assert decode_cb58(text) == data

    corrupted = ("2" if text[0] != "2" else "3") + text[1:]
    with pytest.raises(ValueError):
        decode_cb58(corrupted)


def test_generate_cert_writes_private_key(tmp_path):
    key, cert = generate_cert(tmp_path / "pki" / "n.key", tmp_path / "pki" / "n.crt", key_size=2048)
    assert b"PRIVATE KEY" in key.read_bytes()
    assert b"BEGIN CERTIFICATE" in cert.read_bytes()
    assert stat.S_IMODE(key.stat().st_mode) == 0o600


@needs_ripemd160
def test_node_id_from_cert(tmp_path):
    _, cert = generate_cert(tmp_path / "n.key", tmp_path / "n.crt", key_size=2048)
    node_id = node_id_from_cert(cert)
    assert node_id.startswith(NODE_ID_PREFIX)
    assert len(decode_cb58(node_id[len(NODE_ID_PREFIX):])) == 20
    # stable for the same certificate
    assert node_id_from_cert(cert) == node_id


@needs_ripemd160
def test_distinct_certs_give_distinct_node_ids(tmp_path):
    _, a = generate_cert(tmp_path / "a.key", tmp_path / "a.crt", key_size=2048)
    _, b = generate_cert(tmp_path / "b.key", tmp_path / "b.crt", key_size=2048)
    assert node_id_from_cert(a) != node_id_from_cert(b)
