"""
tam.py — Trusted Application Manager state machine.

The TAM opens every conversation with a QueryRequest, decides from the
Agent's QueryResponse whether an Update is due, and closes the conversation
on the Agent's Success or Error.
"""
import os
import pathlib

from teep_work.lib.common import ct_eq
from teep_work.lib.errors import ErrorCode, ProtocolError, TeepError, fold
from teep_work.lib.es256_keygen import load_or_create_identity, public_key_path
from teep_work.lib.negotiate_version import in_range
from teep_work.lib.teep_message import (Error, QueryResponse, QueryRequest, Success, Update,
                                        MAX_VERSION_SPAN, kind_name, parse_app_id)
from teep_work.lib.trust_store import TrustStore

from .broker import Broker
from .log import log, log_err
from .session import Role

LABEL = "tam"
TOKEN_SIZE = 8


def default_update_policy(response, update):
    """
    Send the Update when it changes something, or when the Agent asked for
    nothing in particular: a policy check always gets a (possibly empty)
    Update, while an explicit request that needs no change ends after the
    QueryResponse.
    """
    if update.requested_additions or update.requested_removals:
        return True
    return not (response.requested or response.unneeded)


def _token_matches(expected, received):
    return expected is not None and received is not None and ct_eq(expected, received)


class Tam(Broker):
    role = Role.TAM
    tag = "TAM"

    def __init__(self, identity, trust_store, transport, counter=None, min_version=0,
                 max_version=0, required_apps=(), available_apps=None, update_policy=None):
        super().__init__(identity, trust_store, transport, counter)
        if min_version > max_version:
            raise ValueError(f"min_version {min_version} > max_version {max_version}")
        if max_version - min_version >= MAX_VERSION_SPAN:
            raise ValueError(f"version range [{min_version}, {max_version}] is too wide to offer")
        self.supported_versions = (min_version, max_version)
        self.required_apps = frozenset(parse_app_id(a) for a in required_apps)
        # None: anything an Agent asks for can be provided.
        self.available_apps = (None if available_apps is None
                               else frozenset(parse_app_id(a) for a in available_apps))
        self.update_policy = update_policy or default_update_policy
        # Agent trust label -> installed apps as last reported or confirmed.
        self.inventory = {}

    @classmethod
    def start(cls, data_dir, transport, counter=None, **kwargs):
        """Provision (or reload) the TAM key in data_dir and load data_dir/trusted."""
        data_dir = pathlib.Path(data_dir)
        identity = load_or_create_identity(data_dir, LABEL)
        trust_store = TrustStore.from_directory(data_dir / "trusted")
        log(cls.tag, f"started with key {public_key_path(data_dir, LABEL)}, "
                     f"{len(trust_store)} trusted agent key(s)")
        return cls(identity, trust_store, transport, counter, **kwargs)

    def default_session(self):
        return self.open_session(None)

    # ------------------------------------------------------------------
    # Conversation start
    # ------------------------------------------------------------------

    def compose_query_request(self, session, min_version=None, max_version=None):
        lo = self.supported_versions[0] if min_version is None else min_version
        hi = self.supported_versions[1] if max_version is None else max_version
        session.token = os.urandom(TOKEN_SIZE)
        return QueryRequest(lo, hi, token=session.token)

    def process_connect(self, peer_address):
        """An Agent opened a connection: start a fresh conversation with a QueryRequest."""
        stale = self.sessions.get(peer_address)
        if stale is not None:
            self.sessions.retire(stale)
        session = self.open_session(peer_address)
        try:
            self.send(session, self.compose_query_request(session))
        except TeepError as exc:
            return self.fail(session, exc)
        return ErrorCode.SUCCESS

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def dispatch(self, session, message):
        handler = {
            QueryResponse: self._on_query_response,
            Success: self._on_success,
            Error: self._on_error,
        }.get(type(message))
        if handler is None:
            raise ProtocolError(f"TAM does not accept {kind_name(message)} messages")
        return handler(session, message)

    def _on_query_response(self, session, response):
        if not in_range(self.supported_versions, response.selected_version):
            # The negotiation is closed; no retry on this call.
            raise ProtocolError(
                f"Agent selected version {response.selected_version}, "
                f"TAM supports {list(self.supported_versions)}",
                code=ErrorCode.UNSUPPORTED_MSG_VERSION, respond=False)
        session.negotiate(response.selected_version)
        self.inventory[session.peer_label] = set(response.tc_list)

        if not _token_matches(session.token, response.token):
            log(self.tag, f"unsolicited QueryResponse from {session.peer_label}, "
                          f"version {response.selected_version} recorded")
            return ErrorCode.SUCCESS

        update = self.compose_update(response)
        if not self.update_policy(response, update):
            return self.finish(session)
        session.token = update.token
        session.update = update
        self.send(session, update)
        return ErrorCode.SUCCESS

    def compose_update(self, response):
        requested = response.requested
        if self.available_apps is not None:
            unavailable = requested - self.available_apps
            if unavailable:
                log_err(self.tag, f"cannot provide {sorted(str(a) for a in unavailable)}")
            requested = requested & self.available_apps
        additions = (requested | self.required_apps) - response.tc_list
        removals = response.unneeded & response.tc_list
        return Update(additions, removals, token=os.urandom(TOKEN_SIZE))

    def _on_success(self, session, success):
        if not _token_matches(session.token, success.token):
            raise ProtocolError("Success does not answer an outstanding Update")
        if session.update is not None:
            installed = self.inventory.setdefault(session.peer_label, set())
            installed |= session.update.requested_additions
            installed -= session.update.requested_removals
        log(self.tag, f"{session.peer_label} confirmed update")
        return self.finish(session)

    def _on_error(self, session, error):
        log_err(self.tag, f"{session.peer_label} reported {error.code.name}: {error.message or ''}")
        self.sessions.retire(session)
        return fold(error.code)
