#!/usr/bin/env python3
"""
es256_keygen.py — ES256 (P-256) signing identities and their PEM files.

A data directory holds exactly one identity per role:
  <dir>/<label>-private.pem   PKCS#8, unencrypted, mode 0600
  <dir>/<label>-public.pem    SubjectPublicKeyInfo, handed to peers out of band
"""
import hashlib
import pathlib
import sys
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec
from pycose.keys import EC2Key
from .common import write_json, b64u, write_bytes_atomic

COORD_SIZE = 32


def key_id(public_key) -> bytes:
    """SHA-256 of the DER SubjectPublicKeyInfo."""
    der = public_key.public_bytes(serialization.Encoding.DER,
                                  serialization.PublicFormat.SubjectPublicKeyInfo)
    return hashlib.sha256(der).digest()


def cose_key(public_key, private_key=None) -> EC2Key:
    numbers = public_key.public_numbers()
    params = {
        1: 2,   # kty: EC2
        -1: 1,  # crv: P-256
        -2: numbers.x.to_bytes(COORD_SIZE, "big"),
        -3: numbers.y.to_bytes(COORD_SIZE, "big"),
    }
    if private_key is not None:
        params[-4] = private_key.private_numbers().private_value.to_bytes(COORD_SIZE, "big")
    return EC2Key.from_dict(params)


class SigningIdentity:
    """The one key pair a broker signs with."""

    def __init__(self, private_key, label: str = "teep"):
        if not isinstance(private_key, ec.EllipticCurvePrivateKey) \
                or not isinstance(private_key.curve, ec.SECP256R1):
            raise ValueError("signing identity must be a P-256 private key")
        self.label = label
        self.private_key = private_key
        self.public_key = private_key.public_key()
        self.kid = key_id(self.public_key)
        self.cose_key = cose_key(self.public_key, private_key)

    def public_pem(self) -> bytes:
        return self.public_key.public_bytes(serialization.Encoding.PEM,
                                            serialization.PublicFormat.SubjectPublicKeyInfo)

    def private_pem(self) -> bytes:
        return self.private_key.private_bytes(serialization.Encoding.PEM,
                                              serialization.PrivateFormat.PKCS8,
                                              serialization.NoEncryption())

    def __repr__(self):
        return f"SigningIdentity({self.label!r}, kid={self.kid[:8].hex()})"


def generate(label: str = "teep") -> SigningIdentity:
    return SigningIdentity(ec.generate_private_key(ec.SECP256R1()), label)


def private_key_path(storage_location, label: str) -> pathlib.Path:
    return pathlib.Path(storage_location) / f"{label}-private.pem"


def public_key_path(storage_location, label: str) -> pathlib.Path:
    return pathlib.Path(storage_location) / f"{label}-public.pem"


def save_public_key(identity: SigningIdentity, destination) -> pathlib.Path:
    """Write the public PEM to a file, or into a directory as <label>-public.pem."""
    dest = pathlib.Path(destination)
    if dest.is_dir():
        dest = public_key_path(dest, identity.label)
    return write_bytes_atomic(dest, identity.public_pem())


def load_identity(storage_location, label: str) -> SigningIdentity:
    pem = private_key_path(storage_location, label).read_bytes()
    return SigningIdentity(serialization.load_pem_private_key(pem, password=None), label)


def load_or_create_identity(storage_location, label: str = "teep") -> SigningIdentity:
    """Load the identity kept in `storage_location`, creating it on first run."""
    priv_p = private_key_path(storage_location, label)
    if priv_p.exists():
        identity = load_identity(storage_location, label)
        if not public_key_path(storage_location, label).exists():
            save_public_key(identity, public_key_path(storage_location, label))
        return identity
    identity = generate(label)
    write_bytes_atomic(priv_p, identity.private_pem(), mode=0o600)
    save_public_key(identity, public_key_path(storage_location, label))
    return identity


provision = load_or_create_identity


if __name__ == "__main__":
    identity = generate()
    write_json({
        "privkey_pem": identity.private_pem().decode("ascii"),
        "pubkey_pem": identity.public_pem().decode("ascii"),
        "kid_b64url": b64u(identity.kid),
    })
