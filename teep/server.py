"""
server.py — HTTP front end for the TAM.

An Agent conversation is a series of POSTs to one URI:

    empty body              new conversation, answered with the QueryRequest
    application/teep+cbor   the Agent's next message, answered with the TAM's
                            reply, or 204 when the TAM has nothing more to say

A message the TAM drops without answering gets 400, so the Agent sees its
step fail instead of a quiet end of conversation. Conversations are told
apart by the cookie set on connect.
"""
import secrets

import uvicorn
from fastapi import FastAPI, Request, Response

from teep_work.lib.errors import ErrorCode, TransportError

from .log import log, log_err
from .tam import Tam
from .transport import Transport

ROLE = "NET"
COOKIE = "teep-conversation"
MAX_BODY_SIZE_BYTES = 64 * 1024


class ResponseTransport(Transport):
    """Collects what the TAM sends while it handles one HTTP request."""

    def __init__(self):
        self._outbox = None

    def begin(self):
        self._outbox = []

    def send(self, data, media_type):
        if self._outbox is None:
            raise TransportError("no HTTP request in progress")
        self._outbox.append((bytes(data), media_type))

    def collect(self):
        outbox, self._outbox = self._outbox or [], None
        return outbox


def build_tam(tam_cfg, transport, counter=None):
    """A Tam set up from the `tam` configuration section."""
    return Tam.start(tam_cfg.data_dir, transport, counter,
                     min_version=tam_cfg.min_version,
                     max_version=tam_cfg.max_version,
                     required_apps=tam_cfg.required_apps,
                     available_apps=tam_cfg.available_apps)


def create_app(tam, transport, path="/tam"):
    app = FastAPI(title="TEEP TAM", version="0.1.0")

    # No await between begin() and collect(): one request owns the outbox.
    @app.post(path)
    async def teep(request: Request) -> Response:
        body = await request.body()
        if len(body) > MAX_BODY_SIZE_BYTES:
            return Response(status_code=413)
        media_type = request.headers.get("content-type", "").split(";")[0].strip()
        conversation = request.cookies.get(COOKIE)

        transport.begin()
        if not body:
            conversation = secrets.token_urlsafe(16)
            log(ROLE, f"ACCEPT conversation {conversation}")
            code = tam.process_connect(conversation)
        else:
            code = tam.process_incoming(tam.open_session(conversation), media_type, body)
        outbox = transport.collect()

        if outbox:
            data, reply_type = outbox[0]
            response = Response(content=data, media_type=reply_type)
        elif code == ErrorCode.SUCCESS:
            response = Response(status_code=204)
        else:
            log_err(ROLE, f"dropped message in conversation {conversation} ({ErrorCode(code).name})")
            response = Response(status_code=400)
        if not body:
            response.set_cookie(COOKIE, conversation, httponly=True)
        return response

    return app


def serve(tam_cfg, counter=None):
    transport = ResponseTransport()
    tam = build_tam(tam_cfg, transport, counter)
    log(ROLE, f"TAM listening on http://{tam_cfg.host}:{tam_cfg.port}{tam_cfg.path}")
    uvicorn.run(create_app(tam, transport, tam_cfg.path),
                host=tam_cfg.host, port=tam_cfg.port, log_level="warning")
