"""
Input checks for the HTTP adapter.

The registry core accepts any non-empty identity string. Over HTTP an
identity must be a hex Ed25519 public key, and the signed-request headers
must be well formed before the signature is even looked at. Everything
here raises ValidationError, which the adapter turns into a 400 (or a
401 for authentication headers).
"""

import base64
import binascii
import re
from typing import Any, Mapping, Optional

IDENTITY_PATTERN = re.compile(r'^[0-9a-f]{64}$')
NONCE_PATTERN = re.compile(r'^[A-Za-z0-9_-]{16,128}$')
SIGNATURE_PATTERN = re.compile(r'^[A-Za-z0-9+/]+={0,2}$')


class ValidationError(Exception):
    """Raised when a request field is malformed."""
    def __init__(self, field: str, message: str):
        self.field = field
        self.message = message
        super().__init__(f"{field}: {message}")


def _require_text(value: Any, field: str) -> str:
    if not isinstance(value, str):
        raise ValidationError(field, "must be a string")
    value = value.strip()
    if not value:
        raise ValidationError(field, "cannot be empty")
    return value


def validate_identity(value: Any, field: str = "identity") -> str:
    """
    Normalize an identity to lowercase hex and check it is a 32-byte
    public key.

    Returns:
        The lowercased identity
    """
    value = _require_text(value, field).lower()
    if not IDENTITY_PATTERN.match(value):
        raise ValidationError(field, "must be a 64-character hex public key")
    return value


def validate_base64(value: Any, field: str) -> str:
    value = _require_text(value, field)
    if not SIGNATURE_PATTERN.match(value):
        raise ValidationError(field, "must be valid base64")
    try:
        base64.b64decode(value, validate=True)
    except binascii.Error:
        raise ValidationError(field, "must be valid base64")
    return value


def validate_nonce(value: Any) -> str:
    if not isinstance(value, str) or not NONCE_PATTERN.match(value):
        raise ValidationError("nonce", "must be 16-128 url-safe characters")
    return value


def validate_timestamp(value: Any, field: str = "timestamp") -> int:
    """Parse a positive integer Unix timestamp."""
    try:
        ts = int(value)
    except (TypeError, ValueError):
        raise ValidationError(field, "must be an integer timestamp")
    if ts <= 0:
        raise ValidationError(field, "must be positive")
    return ts


def extract_client_id(headers: Mapping[str, str], peer: Optional[str] = None) -> str:
    """
    Rate-limit key for unauthenticated endpoints: the first forwarded
    address, else the peer address, else a shared anonymous bucket.
    """
    forwarded = headers.get("x-forwarded-for", "")
    if forwarded:
        return f"ip:{forwarded.split(',')[0].strip()}"
    if peer:
        return f"ip:{peer}"
    return "anonymous"
