import pytest

from propreg.keys import IdentityKey, request_signing_payload, verify_ed25519
from propreg.security import ValidationError, validate_identity, validate_nonce


def test_identity_is_hex_public_key():
    key = IdentityKey.generate()
    assert len(key.identity) == 64
    assert validate_identity(key.identity.upper()) == key.identity


def test_signature_verifies_only_for_signer():
    alice, bob = IdentityKey.generate(), IdentityKey.generate()
    payload = request_signing_payload("post", "/records", b"{}", "n" * 32, 1700000000)
    sig = alice.sign(payload)

    assert verify_ed25519(sig, payload, alice.identity)
    assert not verify_ed25519(sig, payload, bob.identity)
    assert not verify_ed25519(sig, payload + b" ", alice.identity)
    assert not verify_ed25519("not-base64!", payload, alice.identity)


def test_signing_payload_covers_target_and_body():
    base = request_signing_payload("GET", "/events", b"", "n" * 32, 1)
    assert base != request_signing_payload("GET", "/events?record_id=1", b"", "n" * 32, 1)
    assert base != request_signing_payload("GET", "/events", b"x", "n" * 32, 1)
    assert base == request_signing_payload("get", "/events", b"", "n" * 32, 1)


def test_key_file_roundtrip(tmp_path):
    key = IdentityKey.generate()
    path = str(tmp_path / "keys" / "alice.json")
    key.save(path)
    assert IdentityKey.from_file(path).identity == key.identity


def test_sign_request_headers():
    key = IdentityKey.generate()
    headers = key.sign_request("POST", "/records", b"{}", nonce="a" * 20, timestamp=42)
    assert headers["X-Identity"] == key.identity
    assert headers["X-Nonce"] == "a" * 20
    assert headers["X-Timestamp"] == "42"
    payload = request_signing_payload("POST", "/records", b"{}", "a" * 20, 42)
    assert verify_ed25519(headers["X-Signature"], payload, key.identity)


@pytest.mark.parametrize("value", ["", "short", "x" * 129, "bad nonce with spaces!!"])
def test_invalid_nonces(value):
    with pytest.raises(ValidationError):
        validate_nonce(value)
