import os
import stat

import pytest
from cryptography.hazmat.primitives.asymmetric import ec, ed25519

from teep_work.lib.es256_keygen import (SigningIdentity, generate, key_id, load_or_create_identity,
                                        private_key_path, public_key_path, save_public_key, provision)
from teep_work.lib.trust_store import TrustStore, install_trusted_key, load_trusted_key


def test_provisioning_is_idempotent(tmp_path):

    first = load_or_create_identity(tmp_path, "agent")
    second = provision(tmp_path, "agent")
    assert first.kid == second.kid
    assert public_key_path(tmp_path, "agent").exists()


@pytest.mark.skipif(os.name != "posix", reason="file modes")
def test_private_key_is_owner_only(tmp_path):

    load_or_create_identity(tmp_path, "tam")
    mode = stat.S_IMODE(os.stat(private_key_path(tmp_path, "tam")).st_mode)
    assert mode == 0o600


def test_missing_public_key_is_rewritten(tmp_path):

    identity = load_or_create_identity(tmp_path, "tam")
    public_key_path(tmp_path, "tam").unlink()
    load_or_create_identity(tmp_path, "tam")
    assert key_id(load_trusted_key(public_key_path(tmp_path, "tam"))) == identity.kid


def test_only_p256_identities():

    with pytest.raises(ValueError):
        SigningIdentity(ec.generate_private_key(ec.SECP384R1()))
    with pytest.raises(ValueError):
        SigningIdentity(ed25519.Ed25519PrivateKey.generate())


def test_save_public_key_into_directory(tmp_path):

    identity = generate("agent")
    path = save_public_key(identity, tmp_path)
    assert path == public_key_path(tmp_path, "agent")
    assert key_id(load_trusted_key(path)) == identity.kid


def test_trust_directory(tmp_path):

    tam_dir = tmp_path / "tam"
    agent = load_or_create_identity(tmp_path / "agent", "agent")
    installed = install_trusted_key(public_key_path(tmp_path / "agent", "agent"), tam_dir / "trusted")
    assert installed.name == "agent-public.pem"

    store = TrustStore.from_directory(tam_dir / "trusted")
    assert store.labels() == ["agent-public"]
    assert "agent-public" in store
    assert store.get("agent-public").kid == agent.kid


def test_missing_trust_directory_is_empty(tmp_path):

    assert len(TrustStore.from_directory(tmp_path / "nope")) == 0


def test_install_rejects_non_p256(tmp_path):

    from cryptography.hazmat.primitives import serialization

    key = ec.generate_private_key(ec.SECP384R1()).public_key()
    pem = tmp_path / "p384.pem"
    pem.write_bytes(key.public_bytes(serialization.Encoding.PEM,
                                     serialization.PublicFormat.SubjectPublicKeyInfo))
    with pytest.raises(ValueError):
        install_trusted_key(pem, tmp_path / "trusted")


def test_candidates_narrowed_by_kid():

    a, b = generate("a"), generate("b")
    store = TrustStore()
    store.trust(a.public_key, "a")
    store.trust(b.public_key, "b")

    assert [k.label for k in store.candidates(b.kid)] == ["b"]
    assert len(store.candidates(b"unknown kid")) == 2
    assert len(store.candidates()) == 2
