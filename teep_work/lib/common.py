#!/usr/bin/env python3
"""
common.py — Shared helpers for the TEEP broker library modules.

Modules that double as debugging CLIs follow the same contract:
- Read a single JSON object from STDIN.
- Write a single JSON object to STDOUT.
- Fail with a non-zero exit on any error, printing a short message to STDERR.

Binary values crossing the JSON boundary are *unpadded* base64url.
"""
from __future__ import annotations
import sys, json, base64, hmac, os, pathlib

# ---------- Base64url (unpadded) ----------
def b64u(b: bytes) -> str:
    return base64.urlsafe_b64encode(b).rstrip(b"=").decode("ascii")

def b64d(s: str) -> bytes:
    pad = "=" * (-len(s) % 4)
    return base64.urlsafe_b64decode(s + pad)

# ---------- JSON IO ----------
def read_json_stdin() -> dict:
    try:
        return json.load(sys.stdin)
    except ValueError as e:
        print(f"error: invalid JSON on stdin: {e}", file=sys.stderr)
        sys.exit(2)

def write_json(obj: dict) -> None:
    json.dump(obj, sys.stdout, separators=(",",":"))
    sys.stdout.write("\n")

# ---------- Comparison ----------
def ct_eq(a: bytes, b: bytes) -> bool:
    # constant-time compare for tokens and key ids
    return hmac.compare_digest(a, b)

# ---------- Files ----------
def write_bytes_atomic(path, data: bytes, mode: int = 0o644) -> pathlib.Path:
    """Write to a temp file beside `path`, then rename over it."""
    p = pathlib.Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    tmp_p = p.with_suffix(p.suffix + ".tmp")
    tmp_p.write_bytes(data)
    os.chmod(tmp_p, mode)
    tmp_p.replace(p)
    return p
