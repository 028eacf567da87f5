#!/usr/bin/env python3
"""
cose_verify1_es256.py — Verifies a COSE_Sign1 (ES256) TEEP envelope.

verify() only ever hands back payload bytes whose signature checked out
against a key in the trust store; open_envelope() additionally decodes them. Failures
before that point are AuthenticationError, failures after it DecodeError.
"""
import pathlib
import sys
import cbor2
from pycose.exceptions import CoseException
from pycose.messages import Sign1Message
from pycose.headers import Algorithm, KID
from pycose.algorithms import Es256
from .common import read_json_stdin, write_json, b64d, b64u
from .errors import AuthenticationError
from .teep_decode_cbor import decode
from .teep_message import describe
from .trust_store import TrustStore, load_trusted_key

# Raised by the COSE and CBOR layers on hostile input.
_PARSE_ERRORS = (cbor2.CBORDecodeError, CoseException, ValueError, TypeError,
                 KeyError, IndexError, AttributeError)


def _algorithm_id(alg):
    return getattr(alg, "identifier", alg)


def verify(data: bytes, trust_store: TrustStore, signer: str = None):
    """Return (payload, signer label) for a correctly signed envelope."""
    try:
        msg = Sign1Message.decode(bytes(data))
    except _PARSE_ERRORS as e:
        raise AuthenticationError(f"Not a COSE_Sign1 message: {e}") from e
    if not isinstance(msg, Sign1Message):
        raise AuthenticationError(f"Expected COSE_Sign1, got {type(msg).__name__}")

    if _algorithm_id(msg.phdr.get(Algorithm)) != Es256.identifier:
        raise AuthenticationError("Unsupported or missing signature algorithm")
    if msg.payload is None:
        raise AuthenticationError("Detached payload not supported")

    if signer is not None:
        trusted = trust_store.get(signer)
        candidates = [trusted] if trusted is not None else []
    else:
        kid = msg.phdr.get(KID)
        candidates = trust_store.candidates(kid if isinstance(kid, bytes) else None)
    if not candidates:
        raise AuthenticationError("No trusted verification key available")

    for trusted in candidates:
        msg.key = trusted.cose_key
        try:
            valid = msg.verify_signature()
        except _PARSE_ERRORS:
            valid = False
        if valid:
            return msg.payload, trusted.label
    raise AuthenticationError("Signature does not verify against any trusted key")


def open_envelope(data: bytes, trust_store: TrustStore, signer: str = None):
    payload, _ = verify(data, trust_store, signer)
    return decode(payload)


if __name__ == "__main__":
    try:
        d = read_json_stdin()
        store = TrustStore()
        store.trust(load_trusted_key(d["pubkey_pem_path"]), pathlib.Path(d["pubkey_pem_path"]).stem)
        payload, label = verify(b64d(d["cose_sign1_b64url"]), store)
        write_json({"valid": True, "signer": label, "payload_b64url": b64u(payload),
                    "message": describe(decode(payload))})
    except AuthenticationError as e:
        write_json({"valid": False, "error": str(e)})
        sys.exit(1)
    except Exception as e:
        print(f"error: {e}", file=sys.stderr)
        sys.exit(1)
