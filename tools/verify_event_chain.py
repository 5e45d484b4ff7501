
"""Verify the hash-chain integrity of the event log exported from /events."""
import json, sys
from propreg.events import verify_event_chain

def main(path):
    with open(path, "r", encoding="utf-8") as f:
        log = json.load(f)
    entries = log["entries"] if isinstance(log, dict) else log
    if not verify_event_chain(entries):
        print("FAIL: event log chain broken")
        sys.exit(1)
    print(f"PASS: event log chain valid ({len(entries)} entries)")

if __name__ == "__main__":
    if len(sys.argv) != 2:
        print("Usage: python tools/verify_event_chain.py <events_export.json>")
        raise SystemExit(2)
    main(sys.argv[1])
