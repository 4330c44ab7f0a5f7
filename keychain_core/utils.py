"""
keychain_core.utils
-------------------
Small helpers shared by the core and the software provider: base64 for
diagnostic renderings, timestamps for provider-populated creation dates,
and the SHA-1 fingerprint used as a key's application label.
"""

from __future__ import annotations
import base64, hashlib, time

def b64e(b: bytes) -> str:
    return base64.b64encode(b).decode("ascii")

def b64d(s: str) -> bytes:
    return base64.b64decode(s.encode("ascii"))

def now_ts() -> str:
    # RFC3339 / ISO 8601 in UTC, second precision
    return time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())

def sha1(data: bytes) -> bytes:
    # application label convention: SHA-1 over the public key's external representation
    return hashlib.sha1(data).digest()
