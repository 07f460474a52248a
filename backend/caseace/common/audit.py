"""
Tamper-evident audit trail.

Every mutating request on cases, tasks, time entries, invoices, payments,
documents and users appends one row to ``audit_log``. Rows are never
updated or deleted; each carries a SHA-256 hash over its own fields and
the hash of the row before it, so editing or removing a row breaks the
chain from that point on.
"""

import hashlib
from typing import Optional

# Severity mapping
ACTION_SEVERITY = {
    "login": "info",
    "login_failed": "medium",
    "logout": "info",
    "register": "info",
    "create": "info",
    "update": "low",
    "delete": "medium",
    "role_change": "high",
    "assign": "low",
    "close": "low",
    "status_change": "low",
    "send": "info",
    "payment": "medium",
    "consolidate": "medium",
    "bulk_draft": "medium",
}


def compute_integrity_hash(
    event_id: str,
    timestamp: str,
    user_id: Optional[str],
    action: str,
    entity_type: str,
    entity_id: str,
    changes_json: Optional[str],
    previous_hash: Optional[str],
) -> str:
    """Compute SHA-256 hash chain entry for nonrepudiation."""
    payload = (
        f"{event_id}|{timestamp}|{user_id or ''}|{action}"
        f"|{entity_type}|{entity_id}"
        f"|{changes_json or ''}|{previous_hash or ''}"
    )
    return hashlib.sha256(payload.encode()).hexdigest()


def verify_chain(entries: list) -> Optional[str]:
    """Walk audit rows oldest-first; return the id of the first broken link, or None."""
    previous_hash = None
    for entry in entries:
        if entry.previous_hash != previous_hash:
            return str(entry.id)
        expected = compute_integrity_hash(
            str(entry.id),
            entry.hashed_at,
            str(entry.user_id) if entry.user_id else None,
            entry.action,
            entry.entity_type,
            entry.entity_id,
            entry.changes_json,
            entry.previous_hash,
        )
        if expected != entry.integrity_hash:
            return str(entry.id)
        previous_hash = entry.integrity_hash
    return None
