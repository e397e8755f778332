"""
Schema translation between the canonical record shape and backend shapes.

The local backend stores camelCase JSON entries, possibly written by an
earlier schema version. The remote backend stores one snake_case column per
field. Callers only ever see `Record`.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Optional

from incident_backend.app.schemas.admin import AuditLogEntry
from incident_backend.app.schemas.auth import UserAccount
from incident_backend.app.schemas.record import CURRENT_SCHEMA_VERSION, Record

logger = logging.getLogger(__name__)

# camelCase alias -> snake_case column, e.g. "individualName" -> "individual_name"
RECORD_ALIAS_TO_COLUMN: Dict[str, str] = {
    field.alias or name: name for name, field in Record.model_fields.items()
}
RECORD_COLUMNS = tuple(Record.model_fields.keys())

# Columns the update path may touch
MUTABLE_RECORD_COLUMNS = frozenset(RECORD_COLUMNS) - {"id", "created_by", "created_at", "schema_version"}


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes; treat them as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def upgrade_legacy_entry(entry: Dict[str, Any]) -> Dict[str, Any]:
    """
    Bring a stored camelCase entry up to the current schema.

    Version 1 entries carried a single `articles` string and the secondary
    identifier under `fixedId`.
    """
    version = entry.get("schemaVersion", 1)
    if version >= CURRENT_SCHEMA_VERSION:
        return entry

    upgraded = dict(entry)
    if "externalId" not in upgraded and upgraded.get("fixedId"):
        upgraded["externalId"] = upgraded["fixedId"]
    upgraded.pop("fixedId", None)

    articles = upgraded.get("articles")
    if isinstance(articles, str):
        upgraded["articles"] = [articles] if articles.strip() else []
    elif articles is None:
        upgraded["articles"] = []

    if upgraded.get("screenshots") is None:
        upgraded["screenshots"] = []

    upgraded["schemaVersion"] = CURRENT_SCHEMA_VERSION
    logger.debug("Upgraded record %s from schema v%s", upgraded.get("id"), version)
    return upgraded


def entry_to_record(entry: Dict[str, Any]) -> Record:
    return Record.model_validate(upgrade_legacy_entry(entry))


def record_to_entry(record: Record) -> Dict[str, Any]:
    return record.model_dump(mode="json", by_alias=True)


def row_to_record(row: Any) -> Record:
    values = {column: getattr(row, column) for column in RECORD_COLUMNS}
    for column in ("date_time", "created_at", "edited_at"):
        values[column] = as_utc(values[column])
    values["articles"] = values["articles"] or []
    values["screenshots"] = values["screenshots"] or []
    return Record.model_validate(values)


def record_to_columns(record: Record) -> Dict[str, Any]:
    return {column: getattr(record, column) for column in RECORD_COLUMNS}


def changes_to_columns(changes: Dict[str, Any]) -> Dict[str, Any]:
    """
    Map a partial update (snake_case fields or camelCase aliases) onto
    mutable columns. Unknown and immutable keys are dropped.
    """
    columns = {}
    for key, value in changes.items():
        column = RECORD_ALIAS_TO_COLUMN.get(key, key)
        if column in MUTABLE_RECORD_COLUMNS:
            columns[column] = value
    return columns


def row_to_account(row: Any) -> UserAccount:
    return UserAccount(
        id=row.id,
        username=row.username,
        password_hash=row.password_hash,
        role=row.role,
        is_owner=row.is_owner,
        created_at=as_utc(row.created_at),
        last_activity=as_utc(row.last_activity),
    )


def row_to_audit_entry(row: Any) -> AuditLogEntry:
    return AuditLogEntry(
        id=row.id,
        action=row.action,
        performed_by=row.performed_by,
        target_user=row.target_user,
        target_record=row.target_record,
        details=row.details or "",
        timestamp=as_utc(row.timestamp),
    )


def sort_newest_first(records: Iterable[Record]) -> list:
    return sorted(records, key=lambda r: (as_utc(r.date_time), as_utc(r.created_at)), reverse=True)
