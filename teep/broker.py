"""
broker.py — Receive pipeline and send path shared by the Agent and the TAM.

Every inbound delivery goes through the same stages, in order:

  media type -> COSE_Sign1 verification -> CBOR decode -> role dispatch

Nothing is decoded before the signature checks out against a trusted key.
Failures are classified once, here: silent drop, or one signed Error back to
the now authenticated peer.
"""
from teep_work.lib import cose_sign1_es256, cose_verify1_es256, teep_decode_cbor
from teep_work.lib.classify_error import classify
from teep_work.lib.cose_sign1_es256 import TEEP_CBOR_MEDIA_TYPE
from teep_work.lib.errors import AuthenticationError, ErrorCode, TeepError, TransportError
from teep_work.lib.outbound_counter import OUTBOUND_MESSAGES
from teep_work.lib.teep_message import Error, kind_name

from .log import log, log_err
from .session import SessionTable


class Broker:
    role = None
    tag = "BRK"

    def __init__(self, identity, trust_store, transport, counter=None):
        self.identity = identity
        self.trust_store = trust_store
        self.transport = transport
        self.counter = counter if counter is not None else OUTBOUND_MESSAGES
        self.sessions = SessionTable(self.role)

    def open_session(self, peer_address):
        return self.sessions.open(peer_address)

    def default_session(self):
        raise NotImplementedError

    def dispatch(self, session, message):
        raise NotImplementedError

    # ------------------------------------------------------------------
    # Receive
    # ------------------------------------------------------------------

    def process_incoming(self, session, media_type, data):
        """Process one inbound message; returns an ErrorCode."""
        if session is None:
            session = self.default_session()
        return self._process(session, media_type, data)

    def _process(self, session, media_type, data):
        try:
            message = self._authenticate(session, media_type, data)
            log(self.tag, f"{kind_name(message)} received from {session.peer_address}")
            return self.dispatch(session, message)
        except TeepError as exc:
            return self.fail(session, exc)

    def _authenticate(self, session, media_type, data):
        if media_type != TEEP_CBOR_MEDIA_TYPE:
            raise AuthenticationError(f"Unrecognized media type {media_type!r}")
        payload, label = cose_verify1_es256.verify(data, self.trust_store, session.peer_label)
        session.bind(label)
        return teep_decode_cbor.decode(payload)

    def fail(self, session, exc):
        """Apply the receive policy to a failure and end the conversation."""
        verdict = classify(exc)
        if verdict.respond:
            log_err(self.tag, f"{exc}; reporting {verdict.code.name} to {session.peer_address}")
            try:
                self.send(session, Error(verdict.code, str(exc)))
            except TransportError as send_exc:
                log_err(self.tag, f"could not deliver Error: {send_exc}")
        else:
            log_err(self.tag, f"{exc}; dropped ({verdict.code.name})")
        self.sessions.retire(session)
        return verdict.code

    def finish(self, session):
        log(self.tag, f"conversation with {session.peer_address} complete")
        self.sessions.retire(session)
        return ErrorCode.SUCCESS

    # ------------------------------------------------------------------
    # Send
    # ------------------------------------------------------------------

    def seal(self, message):
        return cose_sign1_es256.seal(message, self.identity)

    def send(self, session, message):
        session.pending_outbound.append(self.seal(message))
        log(self.tag, f"{kind_name(message)} -> {session.peer_address}")
        self.flush(session)

    def flush(self, session):
        while session.pending_outbound:
            data = session.pending_outbound[0]
            self.transport.send(data, TEEP_CBOR_MEDIA_TYPE)
            session.pending_outbound.popleft()
            self.counter.increment()
