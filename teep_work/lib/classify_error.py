"""
classify_error.py — Receive policy: which outcome code, and whether to reply.

Checked in this order:
  1. transport failures and local context errors: TEMPORARY_ERROR, silent
  2. unauthenticated input: PERMANENT_ERROR, silent drop
  3. authenticated but invalid content: PERMANENT_ERROR or the protocol
     error's own code, answered with one signed Error message
"""
from __future__ import annotations
from collections import namedtuple

from .errors import (AuthenticationError, ContextError, DecodeError, ErrorCode,
                     ProtocolError, TeepError, TransportError)

Verdict = namedtuple("Verdict", ["code", "respond"])


def classify(exc: TeepError) -> Verdict:
    if isinstance(exc, (TransportError, ContextError)):
        return Verdict(ErrorCode.TEMPORARY_ERROR, False)
    if isinstance(exc, AuthenticationError):
        return Verdict(ErrorCode.PERMANENT_ERROR, False)
    if isinstance(exc, DecodeError):
        return Verdict(ErrorCode.PERMANENT_ERROR, True)
    if isinstance(exc, ProtocolError):
        return Verdict(exc.code, exc.respond)
    return Verdict(ErrorCode.PERMANENT_ERROR, False)
