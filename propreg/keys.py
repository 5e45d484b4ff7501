"""
Identity key module for the property registry.

A caller identity is the hex-encoded Ed25519 public key of the caller.
Requests to the HTTP adapter are signed with the matching private key,
which is what makes the caller identity unforgeable.
"""

import json
import os
from typing import Dict, Optional

from nacl.signing import SigningKey, VerifyKey
from nacl.exceptions import BadSignatureError

from .util import b64d, b64e, canonicalize, generate_nonce, now_epoch, sha256_hex

IDENTITY_HEADER = "X-Identity"
NONCE_HEADER = "X-Nonce"
TIMESTAMP_HEADER = "X-Timestamp"
SIGNATURE_HEADER = "X-Signature"


def request_signing_payload(
    method: str,
    target: str,
    body: bytes,
    nonce: str,
    timestamp: int
) -> bytes:
    """
    Build the canonical bytes a request signature covers.

    Args:
        method: HTTP method
        target: Request path including any query string
        body: Raw request body
        nonce: Single-use request nonce
        timestamp: Unix timestamp the client signed at
    """
    return canonicalize({
        "method": method.upper(),
        "target": target,
        "body_sha256": sha256_hex(body),
        "nonce": nonce,
        "timestamp": timestamp,
    })


class IdentityKey:
    """
    Ed25519 key pair representing one registry identity.
    """

    def __init__(self, signing_key: SigningKey):
        self._sk = signing_key

    @classmethod
    def generate(cls) -> "IdentityKey":
        return cls(SigningKey.generate())

    @classmethod
    def from_file(cls, path: str) -> "IdentityKey":
        with open(path, "r", encoding="utf-8") as f:
            raw = json.load(f)
        return cls(SigningKey(b64d(raw["private_key_b64"])))

    def save(self, path: str) -> None:
        parent = os.path.dirname(path)
        if parent:
            os.makedirs(parent, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump({
                "identity": self.identity,
                "private_key_b64": b64e(bytes(self._sk)),
            }, f, indent=2)

    @property
    def identity(self) -> str:
        """Hex-encoded public key."""
        return bytes(self._sk.verify_key).hex()

    def sign(self, payload: bytes) -> str:
        return b64e(self._sk.sign(payload).signature)

    def sign_request(
        self,
        method: str,
        target: str,
        body: bytes = b"",
        nonce: Optional[str] = None,
        timestamp: Optional[int] = None
    ) -> Dict[str, str]:
        """
        Produce the authentication headers for one request.
        """
        nonce = nonce or generate_nonce(16)
        timestamp = now_epoch() if timestamp is None else timestamp
        payload = request_signing_payload(method, target, body, nonce, timestamp)
        return {
            IDENTITY_HEADER: self.identity,
            NONCE_HEADER: nonce,
            TIMESTAMP_HEADER: str(timestamp),
            SIGNATURE_HEADER: self.sign(payload),
        }


def verify_ed25519(signature_b64: str, payload: bytes, identity_hex: str) -> bool:
    """
    Verify an Ed25519 signature.

    Args:
        signature_b64: Base64-encoded signature
        payload: The signed data
        identity_hex: Hex-encoded public key

    Returns:
        True if signature is valid, False otherwise
    """
    try:
        vk = VerifyKey(bytes.fromhex(identity_hex))
        vk.verify(payload, b64d(signature_b64))
        return True
    except (BadSignatureError, ValueError, TypeError):
        return False
