import pytest

from teep_work.lib import cose_sign1_es256, cose_verify1_es256
from teep_work.lib.errors import AuthenticationError, DecodeError
from teep_work.lib.es256_keygen import generate
from teep_work.lib.teep_message import QueryRequest
from teep_work.lib.trust_store import TrustStore


@pytest.fixture
def signer():
    return generate("tam")


@pytest.fixture
def store(signer):
    store = TrustStore()
    store.trust(signer.public_key, "tam")
    return store


def test_verify_returns_payload_and_signer(signer, store):

    signed = cose_sign1_es256.sign(b"payload", signer)
    assert cose_verify1_es256.verify(signed, store) == (b"payload", "tam")


def test_open_decodes(signer, store):

    message = QueryRequest(0, 0, token=b"12345678")
    assert cose_verify1_es256.open_envelope(cose_sign1_es256.seal(message, signer), store) == message


def test_untrusted_signer(store):

    signed = cose_sign1_es256.sign(b"payload", generate("intruder"))
    with pytest.raises(AuthenticationError):
        cose_verify1_es256.verify(signed, store)


def test_tampered_payload(signer, store):

    signed = bytearray(cose_sign1_es256.sign(b"payload", signer))
    index = signed.index(b"payload")
    signed[index] ^= 0x01
    with pytest.raises(AuthenticationError):
        cose_verify1_es256.verify(bytes(signed), store)


@pytest.mark.parametrize("data", [b"", b"hello", b"\x84\x40\xa0\xf6\x40"])
def test_not_an_envelope(store, data):

    with pytest.raises(AuthenticationError):
        cose_verify1_es256.verify(data, store)


def test_empty_trust_store(signer):

    with pytest.raises(AuthenticationError):
        cose_verify1_es256.verify(cose_sign1_es256.sign(b"x", signer), TrustStore())


def test_kid_is_only_a_hint(signer, store):

    # A second trusted key under another label still verifies its own messages.
    other = generate("other")
    store.trust(other.public_key, "other")
    assert cose_verify1_es256.verify(cose_sign1_es256.sign(b"x", other), store)[1] == "other"


def test_pinned_signer(signer, store):

    other = generate("other")
    store.trust(other.public_key, "other")
    signed = cose_sign1_es256.sign(b"x", other)
    with pytest.raises(AuthenticationError):
        cose_verify1_es256.verify(signed, store, signer="tam")


def test_authenticated_garbage_is_a_decode_error(signer, store):

    with pytest.raises(DecodeError):
        cose_verify1_es256.open_envelope(cose_sign1_es256.sign(b"hello", signer), store)


def test_builtin_open_not_shadowed():

    assert "open" not in vars(cose_verify1_es256)
