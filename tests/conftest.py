import pytest

from teep.agent import TeepAgent
from teep.tam import Tam
from teep.transport import LoopbackTransport
from teep_work.lib.es256_keygen import load_or_create_identity, public_key_path
from teep_work.lib.outbound_counter import OutboundCounter
from teep_work.lib.trust_store import install_trusted_key

DEFAULT_TA_ID = "38b08738-227d-4f6a-b1f0-b208bc02a781"
DEFAULT_TAM_URI = "http://example.com/tam"


@pytest.fixture
def data_dirs(tmp_path):
    """Provision both roles and hand each one the other's public key."""

    tam_dir = tmp_path / "tam"
    agent_dir = tmp_path / "agent"

    load_or_create_identity(tam_dir, "tam")
    load_or_create_identity(agent_dir, "agent")

    install_trusted_key(public_key_path(agent_dir, "agent"), tam_dir / "trusted")
    install_trusted_key(public_key_path(tam_dir, "tam"), agent_dir / "trusted")

    return tam_dir, agent_dir


@pytest.fixture
def counter():
    return OutboundCounter()


@pytest.fixture
def link():
    return LoopbackTransport.pair(agent_address="agent", tam_address=DEFAULT_TAM_URI)


@pytest.fixture
def tam(data_dirs, link, counter):
    tam_dir, _ = data_dirs
    agent_end, tam_end = link
    tam = Tam.start(tam_dir, tam_end, counter)
    tam_end.attach(tam)
    return tam


@pytest.fixture
def agent(data_dirs, link, counter):
    _, agent_dir = data_dirs
    agent_end, tam_end = link
    return TeepAgent.start(agent_dir, agent_end, counter, default_tam_uri=DEFAULT_TAM_URI)
