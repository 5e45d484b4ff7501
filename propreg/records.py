"""
Domain types for the property registry.

The record payload and each satellite relation (access grants,
attestations, authenticator entries) are separate types backed by
separate tables; a Record never embeds its grants or attestation.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class EventType(str, Enum):
    """Committed state changes recorded in the event log."""
    RECORD_REGISTERED = "RECORD_REGISTERED"
    RECORD_MODIFIED = "RECORD_MODIFIED"
    HOLDER_REASSIGNED = "HOLDER_REASSIGNED"
    RECORD_DELETED = "RECORD_DELETED"
    ACCESS_GRANTED = "ACCESS_GRANTED"
    ACCESS_REVOKED = "ACCESS_REVOKED"
    RECORD_ATTESTED = "RECORD_ATTESTED"
    AUTHENTICATOR_AUTHORIZED = "AUTHENTICATOR_AUTHORIZED"
    AUTHENTICATOR_REVOKED = "AUTHENTICATOR_REVOKED"


@dataclass
class Record:
    """
    A property record.

    record_id and registered_at never change after creation; the other
    fields are replaced only by the current holder.
    """
    record_id: int
    name: str
    holder: str
    volume: int
    registered_at: int
    summary: str
    categories: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "record_id": self.record_id,
            "name": self.name,
            "holder": self.holder,
            "volume": self.volume,
            "registered_at": self.registered_at,
            "summary": self.summary,
            "categories": list(self.categories),
        }


@dataclass
class AccessGrant:
    """Explicit read permission for one identity on one record."""
    record_id: int
    accessor: str
    can_access: bool = True


@dataclass
class Attestation:
    """Third-party legitimacy check recorded against a record."""
    record_id: int
    authenticated: bool
    attestor: str
    attested_at: int
    notes: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "record_id": self.record_id,
            "authenticated": self.authenticated,
            "attestor": self.attestor,
            "attested_at": self.attested_at,
            "notes": self.notes,
        }


@dataclass
class AuthenticatorEntry:
    identity: str
    authorized: bool


@dataclass
class RegistryStats:
    """Read-only snapshot of the registry counter and clock."""
    record_count: int
    current_clock: int
    active_records: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        d = {
            "record_count": self.record_count,
            "current_clock": self.current_clock,
        }
        if self.active_records is not None:
            d["active_records"] = self.active_records
        return d
