import uuid

import pytest

from conftest import DEFAULT_TA_ID, DEFAULT_TAM_URI
from teep_work.lib import cose_sign1_es256
from teep_work.lib.cose_sign1_es256 import TEEP_CBOR_MEDIA_TYPE
from teep_work.lib.errors import ErrorCode
from teep_work.lib.teep_message import QueryResponse, Success, Update


def test_unrequest_not_installed(tam, agent, counter):

    before = counter.value
    result = agent.unrequest_application(DEFAULT_TA_ID, DEFAULT_TAM_URI)
    assert result == ErrorCode.SUCCESS

    # QueryRequest, QueryResponse.
    assert counter.value == before + 2


def test_request(tam, agent, counter):

    before = counter.value
    result = agent.request_application(DEFAULT_TA_ID, DEFAULT_TAM_URI)
    assert result == ErrorCode.SUCCESS

    # QueryRequest, QueryResponse, Update, Success.
    assert counter.value == before + 4
    assert uuid.UUID(DEFAULT_TA_ID) in agent.installed
    assert tam.inventory["agent-public"] == {uuid.UUID(DEFAULT_TA_ID)}


def test_unrequest_installed(tam, agent, counter):

    agent.request_application(DEFAULT_TA_ID, DEFAULT_TAM_URI)

    before = counter.value
    result = agent.unrequest_application(DEFAULT_TA_ID, DEFAULT_TAM_URI)
    assert result == ErrorCode.SUCCESS
    assert counter.value == before + 4
    assert agent.installed == set()


def test_policy_check_no_change(tam, agent, counter):

    before = counter.value
    result = agent.request_policy_check(DEFAULT_TAM_URI)
    assert result == ErrorCode.SUCCESS

    # QueryRequest, QueryResponse, Update, Success.
    assert counter.value == before + 4
    assert agent.installed == set()


def test_policy_check_with_required_app(data_dirs, link, counter):

    from teep.agent import TeepAgent
    from teep.tam import Tam

    tam_dir, agent_dir = data_dirs
    agent_end, tam_end = link
    tam = Tam.start(tam_dir, tam_end, counter, required_apps=[DEFAULT_TA_ID])
    tam_end.attach(tam)
    agent = TeepAgent.start(agent_dir, agent_end, counter)

    assert agent.request_policy_check(DEFAULT_TAM_URI) == ErrorCode.SUCCESS
    assert uuid.UUID(DEFAULT_TA_ID) in agent.installed


def test_request_unavailable_app(data_dirs, link, counter):

    from teep.agent import TeepAgent
    from teep.tam import Tam

    tam_dir, agent_dir = data_dirs
    agent_end, tam_end = link
    tam = Tam.start(tam_dir, tam_end, counter, available_apps=[])
    tam_end.attach(tam)
    agent = TeepAgent.start(agent_dir, agent_end, counter)

    before = counter.value
    assert agent.request_application(DEFAULT_TA_ID, DEFAULT_TAM_URI) == ErrorCode.SUCCESS
    assert counter.value == before + 2
    assert agent.installed == set()


def test_unexpected_process_error(tam, agent, counter):

    before = counter.value
    assert agent.process_error(None) == ErrorCode.TEMPORARY_ERROR
    assert counter.value == before


def test_process_error_retires_session(tam, agent, counter):

    session = agent.open_session(DEFAULT_TAM_URI)
    assert agent.process_error(session) == ErrorCode.TEMPORARY_ERROR
    assert session.closed
    assert agent.sessions.get(DEFAULT_TAM_URI) is None


@pytest.mark.parametrize("step", [1, 2, 3])
def test_policy_check_transport_errors(tam, agent, counter, link, step):

    agent_end, _ = link

    # Connect, QueryRequest, QueryResponse.
    before = counter.value
    agent_end.faults.schedule(step)
    result = agent.request_policy_check(DEFAULT_TAM_URI)
    assert result == ErrorCode.TEMPORARY_ERROR
    assert counter.value == before + step - 1

    # The next conversation starts clean.
    before = counter.value
    assert agent.request_policy_check(DEFAULT_TAM_URI) == ErrorCode.SUCCESS
    assert counter.value == before + 4


def test_agent_bad_media_type(agent, counter):

    before = counter.value
    result = agent.process_incoming(None, "mediaType", b"hello")
    assert result == ErrorCode.PERMANENT_ERROR
    assert counter.value == before


def test_agent_bad_cose(agent, counter):

    before = counter.value
    result = agent.process_incoming(None, TEEP_CBOR_MEDIA_TYPE, b"hello")
    assert result == ErrorCode.PERMANENT_ERROR
    assert counter.value == before


def test_agent_signed_garbage(tam, agent, counter):

    before = counter.value
    signed = cose_sign1_es256.sign(b"hello", tam.identity)
    result = agent.process_incoming(None, TEEP_CBOR_MEDIA_TYPE, signed)
    assert result == ErrorCode.PERMANENT_ERROR

    # Error.
    assert counter.value == before + 1


def test_agent_untrusted_signer(agent, counter):

    from teep_work.lib.es256_keygen import generate
    from teep_work.lib.teep_message import QueryRequest

    before = counter.value
    signed = cose_sign1_es256.seal(QueryRequest(0, 0), generate("intruder"))
    result = agent.process_incoming(None, TEEP_CBOR_MEDIA_TYPE, signed)
    assert result == ErrorCode.PERMANENT_ERROR
    assert counter.value == before


def test_agent_rejects_success(tam, agent, counter):

    before = counter.value
    signed = tam.seal(Success())
    result = agent.process_incoming(None, TEEP_CBOR_MEDIA_TYPE, signed)
    assert result == ErrorCode.PERMANENT_ERROR
    assert counter.value == before + 1


def test_agent_update_before_negotiation(tam, agent, counter):

    before = counter.value
    signed = tam.seal(Update([DEFAULT_TA_ID]))
    result = agent.process_incoming(None, TEEP_CBOR_MEDIA_TYPE, signed)
    assert result == ErrorCode.PERMANENT_ERROR
    assert counter.value == before + 1
    assert agent.installed == set()


def agent_receives_query_request(tam, agent, counter, min_version, max_version):

    # The TAM composes the request for the agent's address, as if it had
    # opened the conversation itself.
    session = tam.open_session("agent")
    request = tam.compose_query_request(session, min_version, max_version)
    signed = tam.seal(request)

    before = counter.value
    result = agent.process_incoming(None, TEEP_CBOR_MEDIA_TYPE, signed)
    return result, counter.value - before


def test_agent_receives_query_request_supported_version(tam, agent, counter):

    # QueryResponse, Update, Success.
    assert agent_receives_query_request(tam, agent, counter, 0, 0) == (ErrorCode.SUCCESS, 3)


def test_agent_receives_query_request_overlapping_versions(tam, agent, counter):

    assert agent_receives_query_request(tam, agent, counter, 0, 1) == (ErrorCode.SUCCESS, 3)


def test_agent_receives_query_request_unsupported_version(tam, agent, counter):

    # Error.
    result = agent_receives_query_request(tam, agent, counter, 1, 1)
    assert result == (ErrorCode.UNSUPPORTED_MSG_VERSION, 1)


@pytest.mark.parametrize("version, expected", [
    (0, ErrorCode.SUCCESS),
    (1, ErrorCode.UNSUPPORTED_MSG_VERSION),
])
def test_tam_receives_query_response_version(tam, agent, counter, version, expected):

    signed = agent.seal(QueryResponse(selected_version=version))

    before = counter.value
    result = tam.process_incoming(None, TEEP_CBOR_MEDIA_TYPE, signed)
    assert result == expected
    assert counter.value == before


def test_tam_rejects_untrusted_query_response(tam, counter):

    from teep_work.lib.es256_keygen import generate

    before = counter.value
    signed = cose_sign1_es256.seal(QueryResponse(), generate("intruder"))
    assert tam.process_incoming(None, TEEP_CBOR_MEDIA_TYPE, signed) == ErrorCode.PERMANENT_ERROR
    assert counter.value == before


def test_tam_signed_garbage(tam, agent, counter):

    before = counter.value
    signed = cose_sign1_es256.sign(b"\x83\x01\xa0", agent.identity)
    assert tam.process_incoming(None, TEEP_CBOR_MEDIA_TYPE, signed) == ErrorCode.PERMANENT_ERROR
    assert counter.value == before + 1


def test_session_bound_to_first_signer(tam, agent, counter):

    from teep_work.lib.es256_keygen import generate

    # A second trusted TAM key cannot take over an open conversation.
    other = generate("other-tam")
    agent.trust_store.trust(other.public_key, "other-tam")

    session = tam.open_session("agent")
    signed = tam.seal(tam.compose_query_request(session))
    session_at_agent = agent.open_session(DEFAULT_TAM_URI)
    agent._process(session_at_agent, TEEP_CBOR_MEDIA_TYPE, signed)
    assert session_at_agent.peer_label == "tam-public"

    before = counter.value
    forged = cose_sign1_es256.seal(Update(), other)
    result = agent._process(session_at_agent, TEEP_CBOR_MEDIA_TYPE, forged)
    assert result == ErrorCode.PERMANENT_ERROR
    assert counter.value == before


def test_request_without_tam_trusting_agent(tmp_path, link, counter):

    from teep.agent import TeepAgent
    from teep.tam import Tam
    from teep_work.lib.es256_keygen import load_or_create_identity, public_key_path
    from teep_work.lib.trust_store import install_trusted_key

    # Only half of the out-of-band key exchange: the TAM trusts no agent.
    tam_dir, agent_dir = tmp_path / "tam", tmp_path / "agent"
    load_or_create_identity(tam_dir, "tam")
    install_trusted_key(public_key_path(tam_dir, "tam"), agent_dir / "trusted")

    agent_end, tam_end = link
    tam = Tam.start(tam_dir, tam_end, counter)
    tam_end.attach(tam)
    agent = TeepAgent.start(agent_dir, agent_end, counter)

    before = counter.value
    result = agent.request_application(DEFAULT_TA_ID, DEFAULT_TAM_URI)
    assert result != ErrorCode.SUCCESS
    assert result == ErrorCode.TEMPORARY_ERROR

    # QueryRequest, QueryResponse; the TAM drops the response.
    assert counter.value == before + 2
    assert agent.installed == set()
    assert tam.inventory == {}


def test_loopback_reports_silent_drop():

    from teep.transport import LoopbackTransport
    from teep_work.lib.errors import TransportError

    class Rejecting:

        def open_session(self, peer_address):
            return None

        def process_incoming(self, session, media_type, data):
            return ErrorCode.PERMANENT_ERROR

    agent_end, tam_end = LoopbackTransport.pair()
    tam_end.attach(Rejecting())
    agent_end.send(b"message", TEEP_CBOR_MEDIA_TYPE)
    with pytest.raises(TransportError):
        agent_end.receive()


def test_tam_rejects_wide_version_range(data_dirs, link):

    from teep.tam import Tam

    tam_dir, _ = data_dirs
    with pytest.raises(ValueError):
        Tam.start(tam_dir, link[1], min_version=0, max_version=10 ** 8)
