"""
Audit logging service for tracking privileged actions.

Entries are append-only; nothing in the application edits or removes them
except the local backend's size cap.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from incident_backend.app.models.enums import AuditAction
from incident_backend.app.schemas.admin import AuditLogEntry
from incident_backend.app.schemas.record import Record
from incident_backend.app.storage.base import StorageBackend

logger = logging.getLogger(__name__)


def record_snapshot(record: Record) -> Dict[str, Any]:
    """JSON-safe copy of a record, without inline image payloads."""
    snapshot = record.model_dump(mode="json", by_alias=True)
    snapshot["screenshots"] = [s if not s.startswith("data:") else "<inline image>" for s in record.screenshots]
    return snapshot


async def log_event(
    backend: StorageBackend,
    action: AuditAction,
    performed_by: str,
    details: str = "",
    target_user: Optional[str] = None,
    target_record: Optional[Record] = None,
) -> AuditLogEntry:
    """
    Append one event to the audit log.

    Args:
        backend: Storage backend holding the log
        action: Kind of action performed
        performed_by: Username of the actor
        details: Human-readable description
        target_user: Username acted upon (account actions)
        target_record: Record acted upon; stored as a snapshot

    Returns:
        The stored entry
    """
    entry = AuditLogEntry(
        id=str(uuid.uuid4()),
        action=action,
        performed_by=performed_by,
        target_user=target_user,
        target_record=record_snapshot(target_record) if target_record else None,
        details=details,
        timestamp=datetime.now(timezone.utc),
    )
    await backend.append_audit_entry(entry)
    logger.info("Audit: %s by %s (%s)", action.value, performed_by, details)
    return entry


async def get_audit_trail(
    backend: StorageBackend,
    action: Optional[AuditAction] = None,
    performed_by: Optional[str] = None,
    limit: int = 100,
) -> List[AuditLogEntry]:
    """Audit entries newest first, optionally filtered."""
    if action is None and performed_by is None:
        return await backend.list_audit_entries(limit=limit)

    entries = await backend.list_audit_entries()
    if action is not None:
        entries = [e for e in entries if e.action == action]
    if performed_by is not None:
        entries = [e for e in entries if e.performed_by == performed_by]
    return entries[:limit]
