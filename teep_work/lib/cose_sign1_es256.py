#!/usr/bin/env python3
"""Signs a payload (or a TEEP message) as COSE_Sign1 (ES256)."""
import sys
from cryptography.hazmat.primitives import serialization
from pycose.messages import Sign1Message
from pycose.headers import Algorithm, KID
from pycose.algorithms import Es256
from .common import read_json_stdin, write_json, b64d, b64u
from .es256_keygen import SigningIdentity
from .teep_encode_cbor import encode

TEEP_CBOR_MEDIA_TYPE = "application/teep+cbor"


def sign(payload: bytes, identity: SigningIdentity) -> bytes:
    # The kid is a hint for the verifier's key lookup, never a trust anchor.
    protected_header = {Algorithm: Es256, KID: identity.kid}
    msg = Sign1Message(phdr=protected_header, uhdr={}, payload=payload)
    msg.key = identity.cose_key
    return msg.encode()


def seal(message, identity: SigningIdentity) -> bytes:
    """Encode a TEEP message and sign the encoded bytes."""
    return sign(encode(message), identity)


if __name__ == "__main__":
    try:
        d = read_json_stdin()
        key = serialization.load_pem_private_key(d["privkey_pem"].encode("ascii"), password=None)
        write_json({"cose_sign1_b64url": b64u(sign(b64d(d["payload_b64url"]), SigningIdentity(key)))})
    except Exception as e:
        print(f"error: {e}", file=sys.stderr)
        sys.exit(1)
