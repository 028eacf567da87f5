#!/usr/bin/env python3
"""
teep_decode_cbor.py — Decodes and shape-checks a CBOR TEEP message.

Any input that is not exactly one of the five message kinds raises
DecodeError; a field of the wrong CBOR type names both the expected and the
actual category, e.g. "Invalid options type text string, expected map".
"""
import io
import sys
import cbor2
from .common import read_json_stdin, write_json, b64d
from .errors import DecodeError, ErrorCode
from .teep_message import (
    QueryRequest, QueryResponse, Update, Success, Error, describe,
    QUERY_REQUEST, QUERY_RESPONSE, UPDATE, SUCCESS, ERROR, APP_ID_SIZE,
    LABEL_CHALLENGE, LABEL_VERSIONS, LABEL_SELECTED_VERSION, LABEL_TC_LIST,
    LABEL_MANIFEST_LIST, LABEL_MSG, LABEL_ERR_MSG, LABEL_REQUESTED_TC_LIST,
    LABEL_UNNEEDED_TC_LIST, LABEL_TOKEN, MAX_VERSION_SPAN, parse_app_id,
)

INTEGER = "integer"
ARRAY = "array"
MAP = "map"
BSTR = "byte string"
TSTR = "text string"


def category(value) -> str:
    if isinstance(value, bool):
        return "simple value"
    if isinstance(value, int):
        return INTEGER
    if isinstance(value, list):
        return ARRAY
    if isinstance(value, dict):
        return MAP
    if isinstance(value, bytes):
        return BSTR
    if isinstance(value, str):
        return TSTR
    if isinstance(value, cbor2.CBORTag):
        return f"tag {value.tag}"
    return type(value).__name__


def expect(value, expected: str, what: str):
    actual = category(value)
    if actual != expected:
        raise DecodeError(f"Invalid {what} type {actual}, expected {expected}",
                          expected=expected, actual=actual)
    return value


def _loads(data: bytes):
    fp = io.BytesIO(data)
    try:
        item = cbor2.CBORDecoder(fp).decode()
    except cbor2.CBORDecodeError as e:
        raise DecodeError(f"Malformed CBOR: {e}") from e
    if fp.read(1):
        raise DecodeError("Trailing bytes after TEEP message")
    return item


# ---------- Option fields ----------
def _uint(options: dict, label: int, what: str, default=None):
    if label not in options:
        return default
    value = expect(options[label], INTEGER, what)
    if value < 0:
        raise DecodeError(f"Invalid {what} value {value}")
    return value


def _bstr(options: dict, label: int, what: str):
    if label not in options:
        return None
    return expect(options[label], BSTR, what)


def _tstr(options: dict, label: int, what: str):
    if label not in options:
        return None
    return expect(options[label], TSTR, what)


def _app_ids(options: dict, label: int, what: str) -> frozenset:
    if label not in options:
        return frozenset()
    ids = set()
    for entry in expect(options[label], ARRAY, what):
        expect(entry, BSTR, f"{what} entry")
        if len(entry) != APP_ID_SIZE:
            raise DecodeError(f"Invalid {what} entry length {len(entry)}, expected {APP_ID_SIZE}")
        ids.add(parse_app_id(entry))
    return frozenset(ids)


def _versions(options: dict):
    if LABEL_VERSIONS not in options:
        return 0, 0
    versions = expect(options[LABEL_VERSIONS], ARRAY, "versions")
    if not versions:
        raise DecodeError("Empty versions array")
    for v in versions:
        expect(v, INTEGER, "version")
        if v < 0:
            raise DecodeError(f"Invalid version value {v}")
    lo, hi = min(versions), max(versions)
    if hi - lo >= MAX_VERSION_SPAN:
        raise DecodeError(f"Version range [{lo}, {hi}] spans more than {MAX_VERSION_SPAN} versions")
    return lo, hi


# ---------- Message kinds ----------
def _query_request(item: list) -> QueryRequest:
    options = expect(item[1], MAP, "options")
    suites = []
    for suite in expect(item[2], ARRAY, "supported-cipher-suites"):
        expect(suite, ARRAY, "cipher suite")
        suites.append(tuple(expect(v, INTEGER, "cipher suite entry") for v in suite))
    data_item_requested = expect(item[3], INTEGER, "data-item-requested")
    if data_item_requested < 0:
        raise DecodeError(f"Invalid data-item-requested value {data_item_requested}")
    lo, hi = _versions(options)
    return QueryRequest(lo, hi,
                        challenge=_bstr(options, LABEL_CHALLENGE, "challenge"),
                        token=_bstr(options, LABEL_TOKEN, "token"),
                        cipher_suites=tuple(suites),
                        data_item_requested=data_item_requested)


def _query_response(item: list) -> QueryResponse:
    options = expect(item[1], MAP, "options")
    return QueryResponse(
        _uint(options, LABEL_SELECTED_VERSION, "selected-version", default=0),
        challenge=_bstr(options, LABEL_CHALLENGE, "challenge"),
        token=_bstr(options, LABEL_TOKEN, "token"),
        tc_list=_app_ids(options, LABEL_TC_LIST, "tc-list"),
        requested=_app_ids(options, LABEL_REQUESTED_TC_LIST, "requested-tc-list"),
        unneeded=_app_ids(options, LABEL_UNNEEDED_TC_LIST, "unneeded-tc-list"))


def _update(item: list) -> Update:
    options = expect(item[1], MAP, "options")
    return Update(_app_ids(options, LABEL_MANIFEST_LIST, "manifest-list"),
                  _app_ids(options, LABEL_UNNEEDED_TC_LIST, "unneeded-tc-list"),
                  token=_bstr(options, LABEL_TOKEN, "token"))


def _success(item: list) -> Success:
    options = expect(item[1], MAP, "options")
    return Success(token=_bstr(options, LABEL_TOKEN, "token"),
                   message=_tstr(options, LABEL_MSG, "msg"))


def _error(item: list) -> Error:
    options = expect(item[1], MAP, "options")
    raw_code = expect(item[2], INTEGER, "err-code")
    try:
        code = ErrorCode(raw_code)
    except ValueError:
        raise DecodeError(f"Unknown err-code {raw_code}") from None
    return Error(code, _tstr(options, LABEL_ERR_MSG, "err-msg"),
                 token=_bstr(options, LABEL_TOKEN, "token"))


# TYPE -> (array length, decoder)
_DECODERS = {
    QUERY_REQUEST: (4, _query_request),
    QUERY_RESPONSE: (2, _query_response),
    UPDATE: (2, _update),
    SUCCESS: (2, _success),
    ERROR: (3, _error),
}


def decode(data: bytes):
    item = expect(_loads(bytes(data)), ARRAY, "message")
    if not item:
        raise DecodeError("Empty message array")
    kind = expect(item[0], INTEGER, "TYPE")
    if kind not in _DECODERS:
        raise DecodeError(f"Unknown TEEP message type {kind}")
    arity, decoder = _DECODERS[kind]
    if len(item) != arity:
        raise DecodeError(f"Invalid TEEP message type {kind} length {len(item)}, expected {arity}")
    return decoder(item)


if __name__ == "__main__":
    try:
        write_json({"message": describe(decode(b64d(read_json_stdin()["teep_cbor_b64url"])))})
    except Exception as e:
        print(f"error: teep decode failed: {e}", file=sys.stderr)
        sys.exit(1)
