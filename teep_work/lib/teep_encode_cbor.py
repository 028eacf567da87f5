#!/usr/bin/env python3
"""Encodes a TEEP message as deterministic CBOR."""
import sys
import cbor2
from .common import read_json_stdin, write_json, b64d, b64u
from .errors import ErrorCode
from .teep_message import (
    QueryRequest, QueryResponse, Update, Success, Error, parse_app_id,
    LABEL_CHALLENGE, LABEL_VERSIONS, LABEL_SELECTED_VERSION, LABEL_TC_LIST,
    LABEL_MANIFEST_LIST, LABEL_MSG, LABEL_ERR_MSG, LABEL_REQUESTED_TC_LIST,
    LABEL_UNNEEDED_TC_LIST, LABEL_TOKEN,
)


def _id_list(app_ids) -> list:
    # Sorted so the same set always encodes to the same bytes.
    return sorted(a.bytes for a in app_ids)


def _put(options: dict, label: int, value) -> None:
    if value is not None:
        options[label] = value


def _query_request(m: QueryRequest) -> list:
    options = {LABEL_VERSIONS: list(range(m.min_version, m.max_version + 1))}
    _put(options, LABEL_TOKEN, m.token)
    _put(options, LABEL_CHALLENGE, m.challenge)
    suites = [list(s) for s in m.cipher_suites]
    return [m.TYPE, options, suites, m.data_item_requested]


def _query_response(m: QueryResponse) -> list:
    options = {LABEL_SELECTED_VERSION: m.selected_version}
    _put(options, LABEL_TOKEN, m.token)
    _put(options, LABEL_CHALLENGE, m.challenge)
    if m.tc_list:
        options[LABEL_TC_LIST] = _id_list(m.tc_list)
    if m.requested:
        options[LABEL_REQUESTED_TC_LIST] = _id_list(m.requested)
    if m.unneeded:
        options[LABEL_UNNEEDED_TC_LIST] = _id_list(m.unneeded)
    return [m.TYPE, options]


def _update(m: Update) -> list:
    options = {}
    _put(options, LABEL_TOKEN, m.token)
    if m.requested_additions:
        options[LABEL_MANIFEST_LIST] = _id_list(m.requested_additions)
    if m.requested_removals:
        options[LABEL_UNNEEDED_TC_LIST] = _id_list(m.requested_removals)
    return [m.TYPE, options]


def _success(m: Success) -> list:
    options = {}
    _put(options, LABEL_TOKEN, m.token)
    _put(options, LABEL_MSG, m.message)
    return [m.TYPE, options]


def _error(m: Error) -> list:
    options = {}
    _put(options, LABEL_TOKEN, m.token)
    _put(options, LABEL_ERR_MSG, m.message)
    return [m.TYPE, options, int(m.code)]


_ENCODERS = {
    QueryRequest: _query_request,
    QueryResponse: _query_response,
    Update: _update,
    Success: _success,
    Error: _error,
}


def to_cbor(message) -> list:
    try:
        encoder = _ENCODERS[type(message)]
    except KeyError:
        raise TypeError(f"not a TEEP message: {type(message).__name__}") from None
    return encoder(message)


def encode(message) -> bytes:
    return cbor2.dumps(to_cbor(message), canonical=True)


# ---------- JSON front end ----------
def from_json(d: dict):
    """Build a message from the JSON shape produced by teep_message.describe."""
    kind = d["type"]
    token = b64d(d["token"]) if "token" in d else None
    if kind == "QueryRequest":
        challenge = b64d(d["challenge"]) if "challenge" in d else None
        return QueryRequest(d.get("min_version", 0), d.get("max_version", 0),
                            challenge=challenge, token=token)
    if kind == "QueryResponse":
        challenge = b64d(d["challenge"]) if "challenge" in d else None
        return QueryResponse(d.get("selected_version", 0), challenge=challenge, token=token,
                             tc_list=[parse_app_id(a) for a in d.get("tc_list", [])],
                             requested=[parse_app_id(a) for a in d.get("requested", [])],
                             unneeded=[parse_app_id(a) for a in d.get("unneeded", [])])
    if kind == "Update":
        return Update([parse_app_id(a) for a in d.get("requested_additions", [])],
                      [parse_app_id(a) for a in d.get("requested_removals", [])],
                      token=token)
    if kind == "Success":
        return Success(token=token, message=d.get("message"))
    if kind == "Error":
        return Error(ErrorCode[d.get("code", "PERMANENT_ERROR")], d.get("message"), token=token)
    raise ValueError(f"unknown message type {kind!r}")


if __name__ == "__main__":
    try:
        write_json({"teep_cbor_b64url": b64u(encode(from_json(read_json_stdin())))})
    except Exception as e:
        print(f"error: {e}", file=sys.stderr)
        sys.exit(1)
