"""
session.py — Per-peer conversation state.

A Session belongs to exactly one conversation. It is opened when a broker
starts or first accepts a conversation with a peer and retired when that
conversation ends; nothing in it carries over to the next one.
"""
import collections
import enum
import threading

from teep_work.lib.errors import ProtocolError


class Role(enum.Enum):
    AGENT = "agent"
    TAM = "tam"


class Session:

    def __init__(self, peer_address, role):
        self.peer_address = peer_address
        self.role = role
        self.negotiated_version = None
        self.pending_outbound = collections.deque()
        # Trust store label of the signer this conversation is bound to.
        self.peer_label = None
        # Token of the QueryRequest or Update we are waiting on (TAM side).
        self.token = None
        # Update awaiting the Agent's Success (TAM side).
        self.update = None
        # Agent intent for this conversation.
        self.requested = set()
        self.unneeded = set()
        self.closed = False

    def negotiate(self, version):
        if self.negotiated_version is not None and self.negotiated_version != version:
            raise ProtocolError(
                f"version already negotiated as {self.negotiated_version}, peer now selects {version}")
        self.negotiated_version = version

    def bind(self, label):
        self.peer_label = label

    def close(self):
        self.closed = True
        self.pending_outbound.clear()

    def __repr__(self):
        return (f"Session({self.peer_address!r}, {self.role.value}, "
                f"version={self.negotiated_version}, closed={self.closed})")


class SessionTable:
    """Open sessions of one broker, keyed by peer address."""

    def __init__(self, role):
        self.role = role
        self._sessions = {}
        self._lock = threading.Lock()

    def open(self, peer_address):
        with self._lock:
            session = self._sessions.get(peer_address)
            if session is None or session.closed:
                session = Session(peer_address, self.role)
                self._sessions[peer_address] = session
            return session

    def get(self, peer_address):
        return self._sessions.get(peer_address)

    def retire(self, session):
        session.close()
        with self._lock:
            if self._sessions.get(session.peer_address) is session:
                del self._sessions[session.peer_address]

    def __len__(self):
        return len(self._sessions)
