"""
Local single-blob backend on Redis.

Each collection (records, users, audit log, settings) lives under one key as a
JSON document that is read whole, mutated in memory and written back with a
single SET. Writes are checked against the configured capacity before they
happen, so a rejected write leaves the previous value in place.

Writers in the same process are serialized by an asyncio.Lock. Two processes
sharing the same Redis keys can still lose each other's updates.
"""

import asyncio
import json
import logging
from typing import Any, Dict, List, Optional

from redis.exceptions import RedisError, ResponseError

from incident_backend.app.core.exceptions import BackendUnavailableError, QuotaExceededError
from incident_backend.app.schemas.admin import AppSettings, AuditLogEntry
from incident_backend.app.schemas.auth import UserAccount
from incident_backend.app.schemas.record import Record
from incident_backend.app.storage.base import StorageBackend
from incident_backend.app.storage.translation import (
    changes_to_columns,
    entry_to_record,
    record_to_entry,
    sort_newest_first,
)

logger = logging.getLogger(__name__)

RECORDS_KEY = "records"
SETTINGS_KEY = "settings"
AUDIT_KEY = "audit_logs"
USERS_KEY = "users"

ENTRY_NAMES = (RECORDS_KEY, SETTINGS_KEY, AUDIT_KEY, USERS_KEY)


def _dumps(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, separators=(",", ":"))


def entry_size(key: str, payload: Optional[str]) -> int:
    if payload is None:
        return 0
    return len(key.encode("utf-8")) + len(payload.encode("utf-8"))


class LocalBackend(StorageBackend):
    """Storage backend keeping every collection as one Redis value."""

    name = "local"

    def __init__(self, redis, key_prefix: str, quota_bytes: int, audit_max_entries: int = 500):
        self.redis = redis
        self.key_prefix = key_prefix
        self.quota_bytes = quota_bytes
        self.audit_max_entries = audit_max_entries
        self._lock = asyncio.Lock()

    def _key(self, name: str) -> str:
        return f"{self.key_prefix}{name}"

    # Raw access

    async def _get_raw(self, name: str) -> Optional[str]:
        try:
            raw = await self.redis.get(self._key(name))
        except RedisError as exc:
            logger.error("Local store read failed for %s: %s", name, exc)
            raise BackendUnavailableError(f"Could not read '{name}' from local store", operation="read")
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        return raw

    async def _load(self, name: str, default: Any) -> Any:
        raw = await self._get_raw(name)
        if raw is None:
            return default
        try:
            return json.loads(raw)
        except json.JSONDecodeError as exc:
            logger.error("Local store entry %s is not valid JSON: %s", name, exc)
            raise BackendUnavailableError(f"Local store entry '{name}' is corrupt", operation="read")

    async def _write(self, name: str, value: Any) -> None:
        """Replace one entry, refusing the write if it would exceed capacity."""
        key = self._key(name)
        payload = _dumps(value)

        projected = await self.usage_bytes(exclude=name) + entry_size(key, payload)
        if projected > self.quota_bytes:
            logger.warning(
                "Local store write of %s rejected: %d bytes projected, capacity %d",
                name, projected, self.quota_bytes,
            )
            raise QuotaExceededError(used_bytes=projected, capacity_bytes=self.quota_bytes)

        try:
            await self.redis.set(key, payload)
        except ResponseError as exc:
            if str(exc).startswith("OOM"):
                logger.warning("Local store refused write of %s: %s", name, exc)
                raise QuotaExceededError(used_bytes=projected, capacity_bytes=self.quota_bytes)
            logger.error("Local store write failed for %s: %s", name, exc)
            raise BackendUnavailableError(f"Could not write '{name}' to local store", operation="write")
        except RedisError as exc:
            logger.error("Local store write failed for %s: %s", name, exc)
            raise BackendUnavailableError(f"Could not write '{name}' to local store", operation="write")

    # Records

    async def _load_records(self) -> List[Record]:
        entries = await self._load(RECORDS_KEY, [])
        return [entry_to_record(entry) for entry in entries]

    async def _save_records(self, records: List[Record]) -> None:
        await self._write(RECORDS_KEY, [record_to_entry(r) for r in records])

    async def list_records(self) -> List[Record]:
        return sort_newest_first(await self._load_records())

    async def get_record(self, record_id: str) -> Optional[Record]:
        for record in await self._load_records():
            if record.id == record_id:
                return record
        return None

    async def create_record(self, record: Record) -> Record:
        async with self._lock:
            records = await self._load_records()
            records.insert(0, record)
            await self._save_records(records)
        logger.info("Stored record %s locally", record.id)
        return record

    async def update_record(self, record_id: str, changes: Dict[str, Any]) -> Optional[Record]:
        async with self._lock:
            records = await self._load_records()
            for index, record in enumerate(records):
                if record.id == record_id:
                    merged = record.model_dump()
                    merged.update(changes_to_columns(changes))
                    records[index] = Record.model_validate(merged)
                    await self._save_records(records)
                    return records[index]
        logger.warning("Update of unknown record %s ignored", record_id)
        return None

    async def delete_record(self, record_id: str) -> Optional[Record]:
        async with self._lock:
            records = await self._load_records()
            remaining = [r for r in records if r.id != record_id]
            if len(remaining) == len(records):
                return None
            removed = next(r for r in records if r.id == record_id)
            await self._save_records(remaining)
        return removed

    async def clear_all(self) -> int:
        async with self._lock:
            records = await self._load_records()
            await self._save_records([])
        return len(records)

    async def list_by_individual(self, name: str) -> List[Record]:
        wanted = name.strip().lower()
        return [r for r in await self.list_records() if r.individual_name.strip().lower() == wanted]

    # Accounts

    async def _load_users(self) -> List[UserAccount]:
        return [UserAccount.model_validate(entry) for entry in await self._load(USERS_KEY, [])]

    async def _save_users(self, users: List[UserAccount]) -> None:
        await self._write(USERS_KEY, [u.model_dump(mode="json", by_alias=True) for u in users])

    async def list_users(self) -> List[UserAccount]:
        return await self._load_users()

    async def get_user(self, user_id: str) -> Optional[UserAccount]:
        return next((u for u in await self._load_users() if u.id == user_id), None)

    async def get_user_by_username(self, username: str) -> Optional[UserAccount]:
        return next((u for u in await self._load_users() if u.username == username), None)

    async def create_user(self, account: UserAccount) -> UserAccount:
        async with self._lock:
            users = await self._load_users()
            users.append(account)
            await self._save_users(users)
        return account

    async def update_user(self, user_id: str, changes: Dict[str, Any]) -> Optional[UserAccount]:
        async with self._lock:
            users = await self._load_users()
            for index, user in enumerate(users):
                if user.id == user_id:
                    merged = user.model_dump()
                    merged.update({k: v for k, v in changes.items() if k in UserAccount.model_fields and k != "id"})
                    users[index] = UserAccount.model_validate(merged)
                    await self._save_users(users)
                    return users[index]
        return None

    async def delete_user(self, user_id: str) -> bool:
        async with self._lock:
            users = await self._load_users()
            remaining = [u for u in users if u.id != user_id]
            if len(remaining) == len(users):
                return False
            await self._save_users(remaining)
        return True

    # Audit log

    async def append_audit_entry(self, entry: AuditLogEntry) -> AuditLogEntry:
        async with self._lock:
            entries = await self._load(AUDIT_KEY, [])
            entries.insert(0, entry.model_dump(mode="json", by_alias=True))
            await self._write(AUDIT_KEY, entries[: self.audit_max_entries])
        return entry

    async def list_audit_entries(self, limit: Optional[int] = None) -> List[AuditLogEntry]:
        entries = [AuditLogEntry.model_validate(e) for e in await self._load(AUDIT_KEY, [])]
        entries.sort(key=lambda e: e.timestamp, reverse=True)
        return entries[:limit] if limit else entries

    # Runtime settings

    async def load_settings(self) -> Optional[AppSettings]:
        stored = await self._load(SETTINGS_KEY, None)
        if stored is None:
            return None
        return AppSettings.model_validate(stored)

    async def save_settings(self, app_settings: AppSettings) -> AppSettings:
        async with self._lock:
            await self._write(SETTINGS_KEY, app_settings.model_dump(mode="json", by_alias=True))
        return app_settings

    # Quota

    async def usage_bytes(self, exclude: Optional[str] = None) -> int:
        total = 0
        for name in ENTRY_NAMES:
            if name == exclude:
                continue
            total += entry_size(self._key(name), await self._get_raw(name))
        return total

    def capacity_bytes(self) -> int:
        return self.quota_bytes

    async def close(self) -> None:
        await self.redis.aclose()
