"""
trust_store.py — The set of peer public keys a broker accepts signatures from.

Keys enter only through trust() (or loading a trust directory), an
administrative step taken before any signed exchange. Nothing received over
the protocol adds a key.
"""
from __future__ import annotations
import pathlib
import shutil
import threading
from collections import namedtuple

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec

from .common import ct_eq
from .es256_keygen import cose_key, key_id

TrustedKey = namedtuple("TrustedKey", ["label", "public_key", "kid", "cose_key"])


def load_trusted_key(source):
    """Read a PEM public key; only P-256 keys are accepted."""
    public_key = serialization.load_pem_public_key(pathlib.Path(source).read_bytes())
    if not isinstance(public_key, ec.EllipticCurvePublicKey) \
            or not isinstance(public_key.curve, ec.SECP256R1):
        raise ValueError(f"{source}: not a P-256 public key")
    return public_key


def install_trusted_key(key_file, trust_dir) -> pathlib.Path:
    """Copy a peer's public key file into a trust directory."""
    src = pathlib.Path(key_file)
    load_trusted_key(src)
    dest_dir = pathlib.Path(trust_dir)
    dest_dir.mkdir(parents=True, exist_ok=True)
    return pathlib.Path(shutil.copyfile(src, dest_dir / src.name))


class TrustStore:

    def __init__(self):
        self._keys = {}
        self._lock = threading.Lock()

    @classmethod
    def from_directory(cls, path) -> "TrustStore":
        store = cls()
        trust_dir = pathlib.Path(path)
        if trust_dir.is_dir():
            for pem in sorted(trust_dir.glob("*.pem")):
                store.trust(load_trusted_key(pem), pem.stem)
        return store

    def trust(self, public_key, label: str) -> TrustedKey:
        entry = TrustedKey(label, public_key, key_id(public_key), cose_key(public_key))
        with self._lock:
            # Copy on write so readers iterate a stable snapshot.
            keys = dict(self._keys)
            keys[label] = entry
            self._keys = keys
        return entry

    def get(self, label: str):
        return self._keys.get(label)

    def labels(self) -> list:
        return sorted(self._keys)

    def candidates(self, kid: bytes = None) -> list:
        """Keys to try for a signature; a kid naming a trusted key narrows it to that key."""
        keys = list(self._keys.values())
        if kid:
            matching = [k for k in keys if ct_eq(k.kid, kid)]
            if matching:
                return matching
        return keys

    def __contains__(self, label):
        return label in self._keys

    def __len__(self):
        return len(self._keys)
