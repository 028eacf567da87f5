"""
errors.py — TEEP error codes and the exceptions raised by the library.

Every exception carries the ErrorCode it maps to; classify_error.py decides
what a broker does with it.
"""
from __future__ import annotations
import enum


class ErrorCode(enum.IntEnum):
    """TEEP error codes, numbered as they appear in an Error message."""

    SUCCESS = 0
    PERMANENT_ERROR = 1
    UNSUPPORTED_EXTENSION = 2
    UNSUPPORTED_FRESHNESS_MECHANISMS = 3
    UNSUPPORTED_MSG_VERSION = 4
    UNSUPPORTED_CIPHER_SUITES = 5
    BAD_CERTIFICATE = 6
    CERTIFICATE_EXPIRED = 9
    TEMPORARY_ERROR = 10
    MANIFEST_PROCESSING_FAILED = 17


# Codes a public broker operation may return.
OUTCOMES = (
    ErrorCode.SUCCESS,
    ErrorCode.TEMPORARY_ERROR,
    ErrorCode.PERMANENT_ERROR,
    ErrorCode.UNSUPPORTED_MSG_VERSION,
)


def fold(code: ErrorCode) -> ErrorCode:
    """Outcome of a conversation the peer ended with an Error carrying `code`."""
    if code in (ErrorCode.TEMPORARY_ERROR, ErrorCode.UNSUPPORTED_MSG_VERSION):
        return code
    return ErrorCode.PERMANENT_ERROR


class TeepError(Exception):
    """Base exception for all TEEP broker errors."""

    code = ErrorCode.PERMANENT_ERROR

    def __init__(self, message: str, code: ErrorCode = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code


class TransportError(TeepError):
    """A connect, send or receive step failed."""

    code = ErrorCode.TEMPORARY_ERROR


class ContextError(TeepError):
    """A locally detected condition with no peer to report it to."""

    code = ErrorCode.TEMPORARY_ERROR


class AuthenticationError(TeepError):
    """Bytes that could not be attributed to a trusted signer."""


class DecodeError(TeepError):
    """Authenticated bytes that are not a well-formed TEEP message."""

    def __init__(self, message: str, expected: str = None, actual: str = None):
        super().__init__(message)
        self.expected = expected
        self.actual = actual


class ProtocolError(TeepError):
    """A well-formed message that breaks the protocol rules."""

    def __init__(self, message: str, code: ErrorCode = ErrorCode.PERMANENT_ERROR,
                 respond: bool = True):
        super().__init__(message, code)
        self.respond = respond
