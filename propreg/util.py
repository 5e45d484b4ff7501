"""
Shared helpers: canonical JSON, digests, base64, time and nonces.
"""

import base64
import hashlib
import json
import secrets
import time
from typing import Any, Union


def canonicalize(obj: Any) -> bytes:
    """
    Canonical JSON bytes: sorted keys, no insignificant whitespace, UTF-8.

    Used for event payloads, payload digests and request signing, so
    two equal values always hash the same.
    """
    return json.dumps(
        obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False
    ).encode("utf-8")


def sha256_hex(data: Union[bytes, str]) -> str:
    if isinstance(data, str):
        data = data.encode("utf-8")
    return hashlib.sha256(data).hexdigest()


def now_epoch() -> int:
    return int(time.time())


def b64e(raw: bytes) -> str:
    return base64.b64encode(raw).decode("ascii")


def b64d(text: str) -> bytes:
    return base64.b64decode(text.encode("ascii"))


def generate_nonce(num_bytes: int = 16) -> str:
    """Random hex nonce, two characters per byte."""
    return secrets.token_hex(num_bytes)


def mask_identity(value: str, visible_chars: int = 8) -> str:
    """Shorten an identity for log lines, keeping the leading characters."""
    if not isinstance(value, str):
        return repr(value)
    if len(value) <= visible_chars:
        return value
    return f"{value[:visible_chars]}..."
