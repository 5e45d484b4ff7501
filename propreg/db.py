"""
Database module for the property registry.

Provides SQLite-based storage for records, access grants, attestations,
authenticators, request nonces and the hash-chained event log. Each
relation is its own table keyed by record id or identity; none of them is
embedded in the record row.

Table functions take the connection of an open transaction so that a
registry operation composes several of them into one atomic unit.
"""

import json
import sqlite3
import threading
from typing import Optional, List, Dict, Any
from pathlib import Path
from contextlib import contextmanager

from . import config
from .records import Record, AccessGrant, Attestation, AuthenticatorEntry

DB_PATH = Path(config.DB_PATH)

# One connection per thread, reopened when DB_PATH changes
_local = threading.local()

COUNTER_KEY = "record_counter"
ADMIN_KEY = "administrator"


def set_db_path(path) -> None:
    """Point the module at a different database file."""
    global DB_PATH
    close_connection()
    DB_PATH = Path(path)


def _get_connection() -> sqlite3.Connection:
    """
    Connection for the current thread, reopened when the configured
    path changes.
    """
    path = str(DB_PATH)
    conn = getattr(_local, 'conn', None)
    if conn is None or getattr(_local, 'path', None) != path:
        if conn is not None:
            conn.close()
        DB_PATH.parent.mkdir(parents=True, exist_ok=True)
        # isolation_level=None: transactions are opened explicitly below
        conn = sqlite3.connect(path, check_same_thread=False, isolation_level=None, timeout=30)
        conn.execute("PRAGMA journal_mode=WAL;")
        conn.execute("PRAGMA synchronous=NORMAL;")
        conn.execute("PRAGMA temp_store=MEMORY;")
        conn.row_factory = sqlite3.Row
        _local.conn = conn
        _local.path = path
    return conn


@contextmanager
def transaction():
    """
    Context manager for one registry operation.

    Takes the database write lock up front (BEGIN IMMEDIATE) so that a
    read-then-write sequence such as the counter bump in register cannot
    interleave with another writer. Commits on success, rolls back on
    any exception and re-raises it.
    """
    conn = _get_connection()
    conn.execute("BEGIN IMMEDIATE")
    try:
        yield conn
        conn.execute("COMMIT")
    except Exception:
        conn.execute("ROLLBACK")
        raise


def init_db() -> None:
    """
    Create the registry tables and indexes if they are missing.
    """
    with transaction() as conn:
        conn.execute("""
        CREATE TABLE IF NOT EXISTS registry_meta (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL
        );""")

        conn.execute("""
        CREATE TABLE IF NOT EXISTS records (
            record_id INTEGER PRIMARY KEY,
            name TEXT NOT NULL,
            holder TEXT NOT NULL,
            volume INTEGER NOT NULL,
            registered_at INTEGER NOT NULL,
            summary TEXT NOT NULL,
            categories_json TEXT NOT NULL
        );""")
        conn.execute("""
        CREATE INDEX IF NOT EXISTS idx_records_holder
        ON records(holder);""")

        conn.execute("""
        CREATE TABLE IF NOT EXISTS access_grants (
            record_id INTEGER NOT NULL,
            accessor TEXT NOT NULL,
            can_access INTEGER NOT NULL DEFAULT 1,
            PRIMARY KEY (record_id, accessor)
        );""")

        conn.execute("""
        CREATE TABLE IF NOT EXISTS attestations (
            record_id INTEGER PRIMARY KEY,
            authenticated INTEGER NOT NULL,
            attestor TEXT NOT NULL,
            attested_at INTEGER NOT NULL,
            notes TEXT NOT NULL
        );""")

        conn.execute("""
        CREATE TABLE IF NOT EXISTS authenticators (
            identity TEXT PRIMARY KEY,
            authorized INTEGER NOT NULL
        );""")

        # Nonces for signed-request replay protection
        conn.execute("""
        CREATE TABLE IF NOT EXISTS nonces (
            nonce TEXT PRIMARY KEY,
            expires_at INTEGER NOT NULL
        );""")
        conn.execute("""
        CREATE INDEX IF NOT EXISTS idx_nonces_expires
        ON nonces(expires_at);""")

        conn.execute("""
        CREATE TABLE IF NOT EXISTS event_log (
            seq INTEGER PRIMARY KEY AUTOINCREMENT,
            event_type TEXT NOT NULL,
            record_id INTEGER,
            actor TEXT NOT NULL,
            clock INTEGER NOT NULL,
            payload_hash TEXT NOT NULL,
            prev_entry_hash TEXT,
            entry_hash TEXT NOT NULL,
            payload_json TEXT NOT NULL
        );""")
        conn.execute("""
        CREATE INDEX IF NOT EXISTS idx_event_log_record
        ON event_log(record_id);""")


# ============================================================
# Registry metadata: counter and administrator
# ============================================================

def get_meta(conn: sqlite3.Connection, key: str) -> Optional[str]:
    cur = conn.execute("SELECT value FROM registry_meta WHERE key=?", (key,))
    row = cur.fetchone()
    return row['value'] if row else None


def set_meta(conn: sqlite3.Connection, key: str, value: str) -> None:
    conn.execute(
        "INSERT INTO registry_meta(key, value) VALUES(?,?) "
        "ON CONFLICT(key) DO UPDATE SET value=excluded.value",
        (key, value)
    )


def get_counter(conn: sqlite3.Connection) -> int:
    """Current record counter (0 before the first registration)."""
    value = get_meta(conn, COUNTER_KEY)
    return int(value) if value is not None else 0


def set_counter(conn: sqlite3.Connection, value: int) -> None:
    set_meta(conn, COUNTER_KEY, str(value))


# ============================================================
# Record store
# ============================================================

def _row_to_record(row: sqlite3.Row) -> Record:
    return Record(
        record_id=row['record_id'],
        name=row['name'],
        holder=row['holder'],
        volume=row['volume'],
        registered_at=row['registered_at'],
        summary=row['summary'],
        categories=json.loads(row['categories_json']),
    )


def get_record(conn: sqlite3.Connection, record_id: int) -> Optional[Record]:
    cur = conn.execute(
        "SELECT record_id, name, holder, volume, registered_at, summary, categories_json "
        "FROM records WHERE record_id=?",
        (record_id,)
    )
    row = cur.fetchone()
    return _row_to_record(row) if row else None


def insert_record(conn: sqlite3.Connection, record: Record) -> None:
    conn.execute(
        "INSERT INTO records(record_id, name, holder, volume, registered_at, summary, categories_json) "
        "VALUES(?,?,?,?,?,?,?)",
        (record.record_id, record.name, record.holder, record.volume,
         record.registered_at, record.summary, json.dumps(list(record.categories)))
    )


def update_record_fields(
    conn: sqlite3.Connection,
    record_id: int,
    name: str,
    volume: int,
    summary: str,
    categories: List[str]
) -> None:
    """Replace the mutable payload fields; id, holder and registered_at are untouched."""
    conn.execute(
        "UPDATE records SET name=?, volume=?, summary=?, categories_json=? WHERE record_id=?",
        (name, volume, summary, json.dumps(list(categories)), record_id)
    )


def set_holder(conn: sqlite3.Connection, record_id: int, holder: str) -> None:
    conn.execute("UPDATE records SET holder=? WHERE record_id=?", (holder, record_id))


def delete_record(conn: sqlite3.Connection, record_id: int) -> bool:
    cur = conn.execute("DELETE FROM records WHERE record_id=?", (record_id,))
    return cur.rowcount == 1


def count_records(conn: sqlite3.Connection) -> int:
    cur = conn.execute("SELECT COUNT(*) AS cnt FROM records")
    return cur.fetchone()['cnt']


# ============================================================
# Access grant table
# ============================================================

def get_grant(conn: sqlite3.Connection, record_id: int, accessor: str) -> Optional[AccessGrant]:
    cur = conn.execute(
        "SELECT record_id, accessor, can_access FROM access_grants WHERE record_id=? AND accessor=?",
        (record_id, accessor)
    )
    row = cur.fetchone()
    if not row:
        return None
    return AccessGrant(row['record_id'], row['accessor'], bool(row['can_access']))


def upsert_grant(conn: sqlite3.Connection, record_id: int, accessor: str, can_access: bool = True) -> None:
    conn.execute(
        "INSERT INTO access_grants(record_id, accessor, can_access) VALUES(?,?,?) "
        "ON CONFLICT(record_id, accessor) DO UPDATE SET can_access=excluded.can_access",
        (record_id, accessor, int(can_access))
    )


def delete_grant(conn: sqlite3.Connection, record_id: int, accessor: str) -> bool:
    """Remove a grant. Returns True if an entry existed."""
    cur = conn.execute(
        "DELETE FROM access_grants WHERE record_id=? AND accessor=?",
        (record_id, accessor)
    )
    return cur.rowcount == 1


def list_grants(conn: sqlite3.Connection, record_id: int) -> List[AccessGrant]:
    cur = conn.execute(
        "SELECT record_id, accessor, can_access FROM access_grants WHERE record_id=? ORDER BY accessor",
        (record_id,)
    )
    return [AccessGrant(r['record_id'], r['accessor'], bool(r['can_access'])) for r in cur.fetchall()]


def delete_grants_for_record(conn: sqlite3.Connection, record_id: int) -> int:
    cur = conn.execute("DELETE FROM access_grants WHERE record_id=?", (record_id,))
    return cur.rowcount


# ============================================================
# Attestation table
# ============================================================

def get_attestation(conn: sqlite3.Connection, record_id: int) -> Optional[Attestation]:
    cur = conn.execute(
        "SELECT record_id, authenticated, attestor, attested_at, notes FROM attestations WHERE record_id=?",
        (record_id,)
    )
    row = cur.fetchone()
    if not row:
        return None
    return Attestation(
        record_id=row['record_id'],
        authenticated=bool(row['authenticated']),
        attestor=row['attestor'],
        attested_at=row['attested_at'],
        notes=row['notes'],
    )


def upsert_attestation(conn: sqlite3.Connection, attestation: Attestation) -> None:
    conn.execute(
        "INSERT INTO attestations(record_id, authenticated, attestor, attested_at, notes) VALUES(?,?,?,?,?) "
        "ON CONFLICT(record_id) DO UPDATE SET authenticated=excluded.authenticated, "
        "attestor=excluded.attestor, attested_at=excluded.attested_at, notes=excluded.notes",
        (attestation.record_id, int(attestation.authenticated), attestation.attestor,
         attestation.attested_at, attestation.notes)
    )


def delete_attestation(conn: sqlite3.Connection, record_id: int) -> bool:
    cur = conn.execute("DELETE FROM attestations WHERE record_id=?", (record_id,))
    return cur.rowcount == 1


# ============================================================
# Authenticator registry
# ============================================================

def get_authenticator(conn: sqlite3.Connection, identity: str) -> Optional[AuthenticatorEntry]:
    cur = conn.execute("SELECT identity, authorized FROM authenticators WHERE identity=?", (identity,))
    row = cur.fetchone()
    return AuthenticatorEntry(row['identity'], bool(row['authorized'])) if row else None


def upsert_authenticator(conn: sqlite3.Connection, identity: str, authorized: bool = True) -> None:
    conn.execute(
        "INSERT INTO authenticators(identity, authorized) VALUES(?,?) "
        "ON CONFLICT(identity) DO UPDATE SET authorized=excluded.authorized",
        (identity, int(authorized))
    )


def delete_authenticator(conn: sqlite3.Connection, identity: str) -> bool:
    cur = conn.execute("DELETE FROM authenticators WHERE identity=?", (identity,))
    return cur.rowcount == 1


def list_authenticators(conn: sqlite3.Connection) -> List[AuthenticatorEntry]:
    cur = conn.execute("SELECT identity, authorized FROM authenticators ORDER BY identity")
    return [AuthenticatorEntry(r['identity'], bool(r['authorized'])) for r in cur.fetchall()]


# ============================================================
# Request nonces
# ============================================================

def insert_nonce(nonce: str, expires_at: int, now: int) -> bool:
    """
    Record a request nonce. Returns False when the nonce was already seen.
    Expired nonces are purged in the same transaction.
    """
    try:
        with transaction() as conn:
            conn.execute("DELETE FROM nonces WHERE expires_at < ?", (now,))
            conn.execute("INSERT INTO nonces(nonce, expires_at) VALUES(?,?)", (nonce, expires_at))
        return True
    except sqlite3.IntegrityError:
        return False


# ============================================================
# Event log
# ============================================================

def latest_entry_hash(conn: sqlite3.Connection) -> Optional[str]:
    """entry_hash of the newest event, or None for an empty log."""
    cur = conn.execute("SELECT entry_hash FROM event_log ORDER BY seq DESC LIMIT 1")
    row = cur.fetchone()
    return row['entry_hash'] if row else None


def append_event(
    conn: sqlite3.Connection,
    event_type: str,
    record_id: Optional[int],
    actor: str,
    clock: int,
    payload_hash: str,
    prev_entry_hash: Optional[str],
    entry_hash: str,
    payload_json: str
) -> None:
    conn.execute(
        "INSERT INTO event_log(event_type, record_id, actor, clock, payload_hash, "
        "prev_entry_hash, entry_hash, payload_json) VALUES(?,?,?,?,?,?,?,?)",
        (event_type, record_id, actor, clock, payload_hash, prev_entry_hash, entry_hash, payload_json)
    )


def export_event_log(record_id: Optional[int] = None) -> List[Dict[str, Any]]:
    """Export the event log, optionally filtered to one record."""
    conn = _get_connection()
    query = (
        "SELECT seq, event_type, record_id, actor, clock, payload_hash, "
        "prev_entry_hash, entry_hash, payload_json FROM event_log"
    )
    if record_id is None:
        cur = conn.execute(query + " ORDER BY seq ASC")
    else:
        cur = conn.execute(query + " WHERE record_id=? ORDER BY seq ASC", (record_id,))
    return [dict(row) for row in cur.fetchall()]


# ============================================================
# Table statistics
# ============================================================

def get_db_stats() -> Dict[str, int]:
    """Row counts per table, keyed `<table>_count`."""
    conn = _get_connection()
    stats = {}
    for table in ['records', 'access_grants', 'attestations', 'authenticators', 'nonces', 'event_log']:
        cur = conn.execute(f"SELECT COUNT(*) as cnt FROM {table}")
        stats[f"{table}_count"] = cur.fetchone()['cnt']
    return stats


# ============================================================
# Reset
# ============================================================

def reset_db() -> None:
    """
    Delete every row, including the counter and the administrator binding.
    The schema is kept.
    """
    with transaction() as conn:
        for table in ['registry_meta', 'records', 'access_grants', 'attestations',
                      'authenticators', 'nonces', 'event_log']:
            conn.execute(f"DELETE FROM {table}")
        conn.execute("DELETE FROM sqlite_sequence WHERE name='event_log'")


def close_connection() -> None:
    """Close this thread's connection, if any."""
    if getattr(_local, 'conn', None) is not None:
        _local.conn.close()
        _local.conn = None
        _local.path = None
