"""
agent.py — TEEP Agent state machine.

The Agent asks a TAM for a conversation (connect), then answers what the TAM
sends until the TAM has nothing more:

    TAM                         Agent
     | ------ QueryRequest ----> |   negotiate version
     | <----- QueryResponse ---- |   installed / requested / unneeded apps
     | ------ Update ----------> |   (only when the TAM has a change to make)
     | <----- Success ---------- |

An empty version overlap ends the conversation with one signed Error.
"""
import pathlib

from teep_work.lib.errors import ContextError, ErrorCode, ProtocolError, TeepError, fold
from teep_work.lib.es256_keygen import load_or_create_identity, public_key_path
from teep_work.lib.negotiate_version import select_version
from teep_work.lib.teep_message import (Error, QueryRequest, QueryResponse, Success, Update,
                                        kind_name, parse_app_id)
from teep_work.lib.trust_store import TrustStore

from .broker import Broker
from .log import log, log_err
from .session import Role

LABEL = "agent"


class TeepAgent(Broker):
    role = Role.AGENT
    tag = "AGT"

    def __init__(self, identity, trust_store, transport, counter=None,
                 supported_versions=(0, 0), default_tam_uri=None, installed=()):
        super().__init__(identity, trust_store, transport, counter)
        if supported_versions[0] > supported_versions[1]:
            raise ValueError(f"bad supported version range {supported_versions}")
        self.supported_versions = tuple(supported_versions)
        self.default_tam_uri = default_tam_uri
        self.installed = {parse_app_id(a) for a in installed}

    @classmethod
    def start(cls, data_dir, transport, counter=None, **kwargs):
        """Provision (or reload) the Agent key in data_dir and load data_dir/trusted."""
        data_dir = pathlib.Path(data_dir)
        identity = load_or_create_identity(data_dir, LABEL)
        trust_store = TrustStore.from_directory(data_dir / "trusted")
        log(cls.tag, f"started with key {public_key_path(data_dir, LABEL)}, "
                     f"{len(trust_store)} trusted TAM key(s)")
        return cls(identity, trust_store, transport, counter, **kwargs)

    def default_session(self):
        return self.open_session(self.default_tam_uri)

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def request_application(self, app_id, tam_uri):
        session = self.open_session(tam_uri)
        session.requested.add(parse_app_id(app_id))
        return self._run(session)

    def unrequest_application(self, app_id, tam_uri):
        session = self.open_session(tam_uri)
        session.unneeded.add(parse_app_id(app_id))
        return self._run(session)

    def request_policy_check(self, tam_uri):
        return self._run(self.open_session(tam_uri))

    def process_error(self, context=None):
        """A local failure with no authenticated peer to tell: nothing is sent."""
        exc = ContextError("no active session" if context is None else f"abnormal state in {context!r}")
        log_err(self.tag, str(exc))
        if context is not None and not context.closed:
            self.sessions.retire(context)
        return exc.code

    def process_incoming(self, session, media_type, data):
        """Handle one message, then carry the conversation on to its end."""
        if session is None:
            session = self.default_session()
        code = self._process(session, media_type, data)
        if code != ErrorCode.SUCCESS or session.closed:
            return code
        return self._converse(session)

    def _run(self, session):
        try:
            self.transport.connect(session.peer_address)
        except TeepError as exc:
            return self.fail(session, exc)
        return self._converse(session)

    def _converse(self, session):
        while True:
            try:
                inbound = self.transport.receive()
            except TeepError as exc:
                return self.fail(session, exc)
            if inbound is None:
                return self.finish(session)
            data, media_type = inbound
            code = self._process(session, media_type, data)
            if code != ErrorCode.SUCCESS or session.closed:
                return code

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def dispatch(self, session, message):
        handler = {
            QueryRequest: self._on_query_request,
            Update: self._on_update,
            Error: self._on_error,
        }.get(type(message))
        if handler is None:
            raise ProtocolError(f"Agent does not accept {kind_name(message)} messages")
        return handler(session, message)

    def _on_query_request(self, session, request):
        version = select_version(self.supported_versions, request.min_version, request.max_version)
        if version is None:
            raise ProtocolError(
                f"No supported version in [{request.min_version}, {request.max_version}], "
                f"agent supports {list(self.supported_versions)}",
                code=ErrorCode.UNSUPPORTED_MSG_VERSION)
        session.negotiate(version)
        response = QueryResponse(selected_version=version,
                                 challenge=request.challenge,
                                 token=request.token,
                                 tc_list=self.installed,
                                 requested=session.requested,
                                 unneeded=session.unneeded)
        self.send(session, response)
        return ErrorCode.SUCCESS

    def _on_update(self, session, update):
        if session.negotiated_version is None:
            raise ProtocolError("Update received before version negotiation")
        # Installing or removing the application itself happens elsewhere;
        # the Agent records the resulting state.
        self.installed |= update.requested_additions
        self.installed -= update.requested_removals
        session.requested -= update.requested_additions
        session.unneeded -= update.requested_removals
        log(self.tag, f"applied update: +{len(update.requested_additions)} "
                      f"-{len(update.requested_removals)}, {len(self.installed)} installed")
        self.send(session, Success(token=update.token))
        return ErrorCode.SUCCESS

    def _on_error(self, session, error):
        log_err(self.tag, f"TAM reported {error.code.name}: {error.message or ''}")
        self.sessions.retire(session)
        return fold(error.code)
