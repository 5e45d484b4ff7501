"""
Hash-chained event log.

Every committed registry operation appends one entry whose hash links to
the previous entry, so any later edit or deletion of history is
detectable by replaying the chain.
"""

import json
import sqlite3
from typing import Any, Dict, Iterable, Optional

from . import db
from .records import EventType
from .util import canonicalize, sha256_hex


def chain_entry_hash(prev_entry_hash: Optional[str], payload_hash: str) -> str:
    """
    Compute the hash chain entry hash.

    Args:
        prev_entry_hash: Hash of the previous entry (or None for first)
        payload_hash: Hash of the current payload

    Returns:
        SHA-256 hash of the concatenated hashes
    """
    data = (prev_entry_hash or "").encode("utf-8") + payload_hash.encode("utf-8")
    return sha256_hex(data)


def record_event(
    conn: sqlite3.Connection,
    event_type: EventType,
    actor: str,
    clock: int,
    record_id: Optional[int] = None,
    **details: Any
) -> str:
    """
    Append an event inside the caller's transaction.

    Returns:
        The new entry hash
    """
    payload = {
        "event_type": event_type.value,
        "record_id": record_id,
        "actor": actor,
        "clock": clock,
        "details": details,
    }
    payload_bytes = canonicalize(payload)
    payload_hash = sha256_hex(payload_bytes)
    prev = db.latest_entry_hash(conn)
    entry_hash = chain_entry_hash(prev, payload_hash)
    db.append_event(
        conn,
        event_type.value,
        record_id,
        actor,
        clock,
        payload_hash,
        prev,
        entry_hash,
        payload_bytes.decode("utf-8"),
    )
    return entry_hash


def verify_event_chain(entries: Iterable[Dict[str, Any]]) -> bool:
    """
    Verify an exported event log.

    Checks that each payload hashes to its payload_hash and that each
    entry links to the one before it. Entries must be the complete log
    in seq order; a per-record export is not a contiguous chain.
    """
    prev = None
    for entry in entries:
        payload = json.loads(entry["payload_json"])
        if sha256_hex(canonicalize(payload)) != entry["payload_hash"]:
            return False
        if entry.get("prev_entry_hash") != prev:
            return False
        if chain_entry_hash(prev, entry["payload_hash"]) != entry["entry_hash"]:
            return False
        prev = entry["entry_hash"]
    return True
