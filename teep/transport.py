"""
transport.py — Delivery of signed TEEP messages between Agent and TAM.

Brokers see three failable steps: connect(peer), send(data, media_type) and
receive(). receive() returns (data, media_type), or None once the peer has
nothing more to say in this conversation. Any failure raises TransportError.
"""
import collections

import requests

from teep_work.lib.cose_sign1_es256 import TEEP_CBOR_MEDIA_TYPE
from teep_work.lib.errors import ErrorCode, TransportError

from .log import log, log_err

ROLE = "NET"


class Transport:
    peer_address = None

    def connect(self, peer_address):
        raise NotImplementedError

    def send(self, data, media_type):
        raise NotImplementedError

    def receive(self):
        raise NotImplementedError


# ============================================================================
# HTTP (Agent side)
# The Agent POSTs to the TAM URI; each response body is the TAM's next message.
# ============================================================================

class HttpTransport(Transport):

    def __init__(self, timeout=5, verify=True, http=None):
        self.timeout = timeout
        self.verify = verify
        self.http = http or requests.Session()
        self._inbox = collections.deque()

    def connect(self, peer_address):
        self.peer_address = peer_address
        self._inbox.clear()
        log(ROLE, f"CONNECT {peer_address}")
        self._post(b"", None)

    def send(self, data, media_type):
        if self.peer_address is None:
            raise TransportError("send before connect")
        self._post(data, media_type)

    def receive(self):
        return self._inbox.popleft() if self._inbox else None

    def _post(self, body, media_type):
        headers = {"Accept": TEEP_CBOR_MEDIA_TYPE}
        if media_type:
            headers["Content-Type"] = media_type
        try:
            response = self.http.post(self.peer_address, data=body, headers=headers,
                                      timeout=self.timeout, verify=self.verify)
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            log_err(ROLE, f"POST {self.peer_address} failed: {e}")
            raise TransportError(f"POST {self.peer_address} failed: {e}") from e
        if response.content:
            content_type = response.headers.get("Content-Type", "")
            self._inbox.append((response.content, content_type.split(";")[0].strip()))


# ============================================================================
# Loopback (both roles in one process)
# ============================================================================

class FaultSchedule:
    """Fails the n-th connect/receive step from the time it is scheduled."""

    def __init__(self):
        self._countdown = 0
        self.steps = 0

    def schedule(self, step):
        self._countdown = step

    def check(self, what):
        self.steps += 1
        if self._countdown > 0:
            self._countdown -= 1
            if self._countdown == 0:
                raise TransportError(f"injected {what} failure")


class LoopbackTransport(Transport):
    """
    One end of an in-process Agent/TAM link.

    The TAM end has its broker attached; the Agent end drives. Messages queue
    on the receiving end until the Agent asks for its next message, at which
    point the TAM processes whatever the Agent has sent so far. That mirrors
    an HTTP exchange where each response carries the TAM's reply.
    """

    def __init__(self, address, faults=None):
        self.address = address
        self.faults = faults or FaultSchedule()
        self.peer = None
        self.broker = None
        self.inbox = collections.deque()

    @classmethod
    def pair(cls, agent_address="agent", tam_address="tam", faults=None):
        faults = faults or FaultSchedule()
        agent_end = cls(agent_address, faults)
        tam_end = cls(tam_address, faults)
        agent_end.peer, tam_end.peer = tam_end, agent_end
        agent_end.peer_address, tam_end.peer_address = tam_address, agent_address
        return agent_end, tam_end

    def attach(self, broker):
        self.broker = broker

    def connect(self, peer_address):
        self.faults.check("connect")
        self.peer_address = peer_address
        self.inbox.clear()
        self.peer.inbox.clear()
        if self.peer.broker is not None:
            self.peer.broker.process_connect(self.address)

    def send(self, data, media_type):
        if self.peer is None:
            raise TransportError("loopback end is not paired")
        self.peer.inbox.append((bytes(data), media_type))

    def receive(self):
        self.faults.check("receive")
        if not self.inbox:
            self.peer.pump()
        return self.inbox.popleft() if self.inbox else None

    def pump(self):
        """
        Let the attached broker process everything queued for it.

        A message the broker rejects without answering fails the step, the way
        an HTTP error status does; otherwise the sender would read the silence
        as the end of a successful conversation.
        """
        if self.broker is None:
            return
        while self.inbox:
            data, media_type = self.inbox.popleft()
            session = self.broker.open_session(self.peer.address)
            answered = len(self.peer.inbox)
            code = self.broker.process_incoming(session, media_type, data)
            if code != ErrorCode.SUCCESS and len(self.peer.inbox) == answered:
                log_err(ROLE, f"{self.address} dropped message ({ErrorCode(code).name})")
                raise TransportError(f"{self.address} rejected message: {ErrorCode(code).name}")
