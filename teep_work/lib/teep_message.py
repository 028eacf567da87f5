"""
teep_message.py — The five TEEP message kinds.

Message is a closed union of frozen dataclasses. Each class carries its wire
TYPE; the codec dispatches on it and nothing else.

Wire layout (see teep_encode_cbor.py):
  QueryRequest  [1, options, supported-cipher-suites, data-item-requested]
  QueryResponse [2, options]
  Update        [3, options]
  Success       [5, options]
  Error         [6, options, err-code]
"""
from __future__ import annotations
import uuid
from dataclasses import dataclass, field
from typing import ClassVar, FrozenSet, Optional, Tuple, Union

from .common import b64u
from .errors import ErrorCode

# ---------- Message TYPE values ----------
QUERY_REQUEST = 1
QUERY_RESPONSE = 2
UPDATE = 3
SUCCESS = 5
ERROR = 6

# ---------- Option map labels ----------
LABEL_CHALLENGE = 2
LABEL_VERSIONS = 3
LABEL_SELECTED_VERSION = 6
LABEL_TC_LIST = 8
LABEL_MANIFEST_LIST = 10
LABEL_MSG = 11
LABEL_ERR_MSG = 12
LABEL_REQUESTED_TC_LIST = 14
LABEL_UNNEEDED_TC_LIST = 15
LABEL_TOKEN = 20

# COSE_Sign1 (tag 18) with ES256 (-7)
COSE_SIGN1_TAG = 18
COSE_ALG_ES256 = -7
ES256_SIGN1 = (COSE_SIGN1_TAG, COSE_ALG_ES256)

# data-item-requested bits
DATA_ATTESTATION = 1
DATA_TRUSTED_COMPONENTS = 2
DATA_EXTENSIONS = 4
DATA_SUIT_REPORTS = 8

APP_ID_SIZE = 16

# Versions travel as the full list [min..max]; keep that list short.
MAX_VERSION_SPAN = 64


def parse_app_id(value) -> uuid.UUID:
    """Accept a UUID, its 16 raw bytes, or its string form."""
    if isinstance(value, uuid.UUID):
        return value
    if isinstance(value, (bytes, bytearray)):
        return uuid.UUID(bytes=bytes(value))
    return uuid.UUID(str(value))


def _app_ids(values) -> FrozenSet[uuid.UUID]:
    return frozenset(parse_app_id(v) for v in values)


@dataclass(frozen=True)
class QueryRequest:
    min_version: int = 0
    max_version: int = 0
    challenge: Optional[bytes] = None
    token: Optional[bytes] = None
    cipher_suites: Tuple[Tuple[int, int], ...] = (ES256_SIGN1,)
    data_item_requested: int = DATA_TRUSTED_COMPONENTS

    TYPE: ClassVar[int] = QUERY_REQUEST

    def __post_init__(self):
        if self.min_version < 0 or self.max_version < 0:
            raise ValueError("versions must be non-negative")
        if self.min_version > self.max_version:
            raise ValueError(f"min_version {self.min_version} > max_version {self.max_version}")
        if self.max_version - self.min_version >= MAX_VERSION_SPAN:
            raise ValueError(f"version range [{self.min_version}, {self.max_version}] "
                             f"spans more than {MAX_VERSION_SPAN} versions")
        object.__setattr__(self, "cipher_suites", tuple(tuple(s) for s in self.cipher_suites))


@dataclass(frozen=True)
class QueryResponse:
    selected_version: int = 0
    challenge: Optional[bytes] = None
    token: Optional[bytes] = None
    tc_list: FrozenSet[uuid.UUID] = field(default_factory=frozenset)
    requested: FrozenSet[uuid.UUID] = field(default_factory=frozenset)
    unneeded: FrozenSet[uuid.UUID] = field(default_factory=frozenset)

    TYPE: ClassVar[int] = QUERY_RESPONSE

    def __post_init__(self):
        if self.selected_version < 0:
            raise ValueError("selected_version must be non-negative")
        for name in ("tc_list", "requested", "unneeded"):
            object.__setattr__(self, name, _app_ids(getattr(self, name)))


@dataclass(frozen=True)
class Update:
    requested_additions: FrozenSet[uuid.UUID] = field(default_factory=frozenset)
    requested_removals: FrozenSet[uuid.UUID] = field(default_factory=frozenset)
    token: Optional[bytes] = None

    TYPE: ClassVar[int] = UPDATE

    def __post_init__(self):
        object.__setattr__(self, "requested_additions", _app_ids(self.requested_additions))
        object.__setattr__(self, "requested_removals", _app_ids(self.requested_removals))


@dataclass(frozen=True)
class Success:
    token: Optional[bytes] = None
    message: Optional[str] = None

    TYPE: ClassVar[int] = SUCCESS


@dataclass(frozen=True)
class Error:
    code: ErrorCode = ErrorCode.PERMANENT_ERROR
    message: Optional[str] = None
    token: Optional[bytes] = None

    TYPE: ClassVar[int] = ERROR

    def __post_init__(self):
        object.__setattr__(self, "code", ErrorCode(self.code))


Message = Union[QueryRequest, QueryResponse, Update, Success, Error]

MESSAGE_KINDS = (QueryRequest, QueryResponse, Update, Success, Error)


def kind_name(message) -> str:
    return type(message).__name__


def describe(message: Message) -> dict:
    """JSON-friendly view of a message, for logs and the debug CLIs."""
    out = {"type": kind_name(message)}
    for name, value in vars(message).items():
        if value is None:
            continue
        if isinstance(value, bytes):
            value = b64u(value)
        elif isinstance(value, frozenset):
            value = sorted(str(v) for v in value)
        elif isinstance(value, ErrorCode):
            value = value.name
        elif isinstance(value, tuple):
            value = [list(v) for v in value]
        out[name] = value
    return out
