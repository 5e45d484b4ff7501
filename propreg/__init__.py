"""
Property Registry

A permissioned registry for property records. A holder registers a
record, modifies or deletes it, transfers it to another holder, and
grants or revokes per-record read access. Authenticators appointed by a
fixed administrator attest that a record is legitimate.

Usage:
    from propreg import FailureKind, ManualClock, PropertyRegistry, RegistryError

    registry = PropertyRegistry(administrator=admin, clock=ManualClock())
    record_id = registry.register(alice, "Lot 7", 500, "Riverside plot", ["land"])

    registry.authorize_authenticator(admin, notary)
    registry.attest(notary, record_id, "deed verified")

    try:
        registry.read(mallory, record_id)
    except RegistryError as e:
        assert e.kind is FailureKind.READ_FORBIDDEN
"""

__version__ = "1.0.0"

from .clock import Clock, ManualClock, SystemClock
from .errors import ConfigurationError, FailureKind, RegistryError
from .events import chain_entry_hash, verify_event_chain
from .keys import IdentityKey, request_signing_payload, verify_ed25519
from .records import (
    AccessGrant,
    Attestation,
    AuthenticatorEntry,
    EventType,
    Record,
    RegistryStats,
)
from .registry import PropertyRegistry
from .validation import (
    categories_valid,
    check_record_fields,
    name_valid,
    summary_valid,
    volume_valid,
)

__all__ = [
    "Clock",
    "ManualClock",
    "SystemClock",
    "ConfigurationError",
    "FailureKind",
    "RegistryError",
    "chain_entry_hash",
    "verify_event_chain",
    "IdentityKey",
    "request_signing_payload",
    "verify_ed25519",
    "AccessGrant",
    "Attestation",
    "AuthenticatorEntry",
    "EventType",
    "Record",
    "RegistryStats",
    "PropertyRegistry",
    "categories_valid",
    "check_record_fields",
    "name_valid",
    "summary_valid",
    "volume_valid",
]
