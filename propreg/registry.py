"""
Property Registry Service

The only component with business logic. It exposes the public
operations, enforces the guards (holder, administrator, authenticator,
payload validation) and composes the record store, the access grant
table, the attestation table and the authenticator registry.

Every public operation runs inside exactly one database transaction.
A guard failure raises RegistryError, which rolls the transaction back,
so an operation either fully commits or leaves no trace.

Per-record lifecycle:
    nonexistent -> active (register)
    active -> active (modify | reassign_holder)
    active -> deleted (delete, terminal; the id is never reissued)

Usage:
    registry = PropertyRegistry(administrator=admin_id, clock=ManualClock())

    record_id = registry.register(alice, "Lot 7", 500, "Riverside plot", ["land"])
    registry.grant_access(alice, record_id, bob)
    record = registry.read(bob, record_id)
"""

from contextlib import contextmanager
from typing import List, Optional, Sequence

from . import db
from .clock import Clock, SystemClock
from .errors import ConfigurationError, FailureKind, RegistryError
from .events import record_event
from .logging_config import audit_log
from .records import Attestation, EventType, Record, RegistryStats
from .util import canonicalize, sha256_hex
from .validation import check_record_fields


def _payload_digest(name: str, volume: int, summary: str, categories: Sequence[str]) -> str:
    # Events carry this digest, never the payload itself
    return sha256_hex(canonicalize({
        "name": name,
        "volume": volume,
        "summary": summary,
        "categories": list(categories),
    }))


class PropertyRegistry:
    """
    Registry of property records with holder-based access control.

    The administrator identity is fixed when the registry is first
    initialized against a database and cannot be changed afterwards.
    """

    def __init__(self, administrator: str, clock: Optional[Clock] = None):
        if not isinstance(administrator, str) or not administrator:
            raise ConfigurationError("an administrator identity is required")

        self.clock = clock or SystemClock()

        db.init_db()
        with db.transaction() as conn:
            bound = db.get_meta(conn, db.ADMIN_KEY)
            if bound is None:
                db.set_meta(conn, db.ADMIN_KEY, administrator)
            elif bound != administrator:
                raise ConfigurationError(
                    "database is bound to a different administrator identity"
                )
        self._administrator = administrator

    @property
    def administrator(self) -> str:
        return self._administrator

    # ============================================================
    # Guards
    # ============================================================

    @contextmanager
    def _operation(self, name: str, caller: str, record_id: Optional[int] = None):
        """Run one operation as a transaction; log and re-raise guard failures."""
        try:
            with db.transaction() as conn:
                yield conn
        except RegistryError as e:
            audit_log.operation_rejected(name, caller, e.kind.value, record_id)
            raise

    @staticmethod
    def _existing_record(conn, record_id: int) -> Record:
        record = db.get_record(conn, record_id)
        if record is None:
            raise RegistryError(FailureKind.NOT_FOUND, f"record {record_id} does not exist", record_id)
        return record

    def _held_record(self, conn, caller: str, record_id: int) -> Record:
        record = self._existing_record(conn, record_id)
        if record.holder != caller:
            raise RegistryError(FailureKind.UNAUTHORIZED, "caller is not the record holder", record_id)
        return record

    def _require_admin(self, caller: str) -> None:
        if caller != self._administrator:
            raise RegistryError(FailureKind.ADMIN_RESTRICTED, "administrator only")

    @staticmethod
    def _require_identity(identity: str, role: str) -> None:
        if not isinstance(identity, str) or not identity:
            raise RegistryError(FailureKind.FORBIDDEN, f"{role} must be a non-empty identity")

    @staticmethod
    def _can_read(conn, record: Record, identity: str) -> bool:
        # Strict: a grant only counts while its can_access flag is set
        if record.holder == identity:
            return True
        grant = db.get_grant(conn, record.record_id, identity)
        return grant is not None and grant.can_access

    # ============================================================
    # Record lifecycle
    # ============================================================

    def register(
        self,
        caller: str,
        name: str,
        volume: int,
        summary: str,
        categories: Sequence[str]
    ) -> int:
        """
        Register a new record held by the caller.

        Returns:
            The new record id (previous counter + 1)

        Raises:
            RegistryError: INVALID_NAME, INVALID_VOLUME or
                INVALID_CATEGORY_FORMAT on the first bad field
        """
        with self._operation("register", caller) as conn:
            check_record_fields(name, volume, summary, categories)
            now = self.clock.now()
            record_id = db.get_counter(conn) + 1
            db.insert_record(conn, Record(
                record_id=record_id,
                name=name,
                holder=caller,
                volume=volume,
                registered_at=now,
                summary=summary,
                categories=list(categories),
            ))
            db.set_counter(conn, record_id)
            db.upsert_grant(conn, record_id, caller)
            record_event(conn, EventType.RECORD_REGISTERED, caller, now, record_id,
                         payload_sha256=_payload_digest(name, volume, summary, categories))

        audit_log.operation_committed("register", caller, record_id)
        return record_id

    def modify(
        self,
        caller: str,
        record_id: int,
        name: str,
        volume: int,
        summary: str,
        categories: Sequence[str]
    ) -> None:
        """
        Replace the payload of a record. Holder only.

        Existence and holder checks run before payload validation.
        """
        with self._operation("modify", caller, record_id) as conn:
            self._held_record(conn, caller, record_id)
            check_record_fields(name, volume, summary, categories)
            db.update_record_fields(conn, record_id, name, volume, summary, list(categories))
            record_event(conn, EventType.RECORD_MODIFIED, caller, self.clock.now(), record_id,
                         payload_sha256=_payload_digest(name, volume, summary, categories))

        audit_log.operation_committed("modify", caller, record_id)

    def reassign_holder(self, caller: str, record_id: int, new_holder: str) -> None:
        """
        Transfer a record to a new holder.

        Grants and attestations are keyed by record id and stay as they
        are; the previous holder keeps only whatever explicit grant it has.
        """
        with self._operation("reassign_holder", caller, record_id) as conn:
            self._held_record(conn, caller, record_id)
            self._require_identity(new_holder, "new holder")
            db.set_holder(conn, record_id, new_holder)
            record_event(conn, EventType.HOLDER_REASSIGNED, caller, self.clock.now(), record_id,
                         previous_holder=caller, new_holder=new_holder)

        audit_log.operation_committed("reassign_holder", caller, record_id)

    def delete(self, caller: str, record_id: int) -> None:
        """
        Delete a record. Holder only.

        The record's access grants and attestation are removed in the
        same transaction.
        """
        with self._operation("delete", caller, record_id) as conn:
            self._held_record(conn, caller, record_id)
            db.delete_record(conn, record_id)
            grants_removed = db.delete_grants_for_record(conn, record_id)
            attestation_removed = db.delete_attestation(conn, record_id)
            record_event(conn, EventType.RECORD_DELETED, caller, self.clock.now(), record_id,
                         grants_removed=grants_removed, attestation_removed=attestation_removed)

        audit_log.operation_committed("delete", caller, record_id)

    # ============================================================
    # Access control
    # ============================================================

    def grant_access(self, caller: str, record_id: int, accessor: str) -> None:
        """Grant read access to accessor. Holder only; idempotent."""
        with self._operation("grant_access", caller, record_id) as conn:
            self._held_record(conn, caller, record_id)
            self._require_identity(accessor, "accessor")
            existing = db.get_grant(conn, record_id, accessor)
            changed = existing is None or not existing.can_access
            if changed:
                db.upsert_grant(conn, record_id, accessor, True)
                record_event(conn, EventType.ACCESS_GRANTED, caller, self.clock.now(), record_id,
                             accessor=accessor)

        audit_log.operation_committed("grant_access", caller, record_id, changed=changed)

    def revoke_access(self, caller: str, record_id: int, accessor: str) -> None:
        """
        Remove accessor's grant. Holder only.

        The holder cannot revoke its own access through this path. A
        missing grant is not an error.
        """
        with self._operation("revoke_access", caller, record_id) as conn:
            self._held_record(conn, caller, record_id)
            if accessor == caller:
                raise RegistryError(FailureKind.FORBIDDEN, "holder cannot revoke its own access", record_id)
            removed = db.delete_grant(conn, record_id, accessor)
            if removed:
                record_event(conn, EventType.ACCESS_REVOKED, caller, self.clock.now(), record_id,
                             accessor=accessor)

        audit_log.operation_committed("revoke_access", caller, record_id, changed=removed)

    def read(self, caller: str, record_id: int) -> Record:
        """
        Read a record.

        Allowed for the current holder and for identities holding a grant
        with can_access set.

        Raises:
            RegistryError: NOT_FOUND, READ_FORBIDDEN
        """
        with self._operation("read", caller, record_id) as conn:
            record = self._existing_record(conn, record_id)
            if not self._can_read(conn, record, caller):
                raise RegistryError(FailureKind.READ_FORBIDDEN, "caller has no read access", record_id)
        return record

    def has_access(self, identity: str, record_id: int) -> bool:
        """Whether identity may read the record; False for unknown records."""
        with db.transaction() as conn:
            record = db.get_record(conn, record_id)
            return record is not None and self._can_read(conn, record, identity)

    # ============================================================
    # Attestation
    # ============================================================

    def attest(self, caller: str, record_id: int, notes: str) -> None:
        """
        Record (or overwrite) an attestation for a record.

        Only identities in the authenticator registry with authorized
        set may attest. The administrator is not an authenticator unless
        it has authorized itself.
        """
        with self._operation("attest", caller, record_id) as conn:
            self._existing_record(conn, record_id)
            entry = db.get_authenticator(conn, caller)
            if entry is None or not entry.authorized:
                raise RegistryError(FailureKind.UNAUTHORIZED, "caller is not an authorized authenticator", record_id)
            if not isinstance(notes, str):
                raise RegistryError(FailureKind.FORBIDDEN, "notes must be text", record_id)
            now = self.clock.now()
            db.upsert_attestation(conn, Attestation(
                record_id=record_id,
                authenticated=True,
                attestor=caller,
                attested_at=now,
                notes=notes,
            ))
            record_event(conn, EventType.RECORD_ATTESTED, caller, now, record_id,
                         notes_sha256=sha256_hex(notes))

        audit_log.operation_committed("attest", caller, record_id)

    def get_attestation(self, caller: str, record_id: int) -> Optional[Attestation]:
        """Attestation for a record, under the same guard as read."""
        with self._operation("get_attestation", caller, record_id) as conn:
            record = self._existing_record(conn, record_id)
            if not self._can_read(conn, record, caller):
                raise RegistryError(FailureKind.READ_FORBIDDEN, "caller has no read access", record_id)
            return db.get_attestation(conn, record_id)

    def check_authenticator_status(self, identity: str) -> bool:
        """True only for an authenticator entry that is present and authorized."""
        with db.transaction() as conn:
            entry = db.get_authenticator(conn, identity)
        return entry is not None and entry.authorized

    # ============================================================
    # Administration
    # ============================================================

    def authorize_authenticator(self, caller: str, identity: str) -> None:
        with self._operation("authorize_authenticator", caller) as conn:
            self._require_admin(caller)
            self._require_identity(identity, "authenticator")
            existing = db.get_authenticator(conn, identity)
            if existing is None or not existing.authorized:
                db.upsert_authenticator(conn, identity, True)
                record_event(conn, EventType.AUTHENTICATOR_AUTHORIZED, caller, self.clock.now(),
                             identity=identity)

        audit_log.authenticator_changed(identity, True, caller)

    def revoke_authenticator(self, caller: str, identity: str) -> None:
        """Remove an authenticator entry. Revoking an unknown identity is a no-op."""
        with self._operation("revoke_authenticator", caller) as conn:
            self._require_admin(caller)
            if db.delete_authenticator(conn, identity):
                record_event(conn, EventType.AUTHENTICATOR_REVOKED, caller, self.clock.now(),
                             identity=identity)

        audit_log.authenticator_changed(identity, False, caller)

    def list_authenticators(self, caller: str) -> List[str]:
        """Identities currently authorized to attest. Administrator only."""
        with self._operation("list_authenticators", caller) as conn:
            self._require_admin(caller)
            entries = db.list_authenticators(conn)
        return [e.identity for e in entries if e.authorized]

    def stats(self) -> RegistryStats:
        with db.transaction() as conn:
            record_count = db.get_counter(conn)
            active = db.count_records(conn)
        return RegistryStats(
            record_count=record_count,
            current_clock=self.clock.now(),
            active_records=active,
        )
