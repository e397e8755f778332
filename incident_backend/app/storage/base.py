"""
Storage backend contract.

Both backends expose the same async operations over records, accounts, the
audit log and the runtime settings object, so callers never branch on which
one is configured.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from incident_backend.app.schemas.admin import AppSettings, AuditLogEntry
from incident_backend.app.schemas.auth import UserAccount
from incident_backend.app.schemas.record import Record


class StorageBackend(ABC):
    """Durable system of record."""

    name: str = "abstract"

    # Records

    @abstractmethod
    async def list_records(self) -> List[Record]:
        """All records, newest first."""

    @abstractmethod
    async def get_record(self, record_id: str) -> Optional[Record]:
        ...

    @abstractmethod
    async def create_record(self, record: Record) -> Record:
        """
        Persist a new record and return it as stored.

        The remote backend uploads inline images first, so the returned
        record's screenshots may differ from the input.
        """

    @abstractmethod
    async def update_record(self, record_id: str, changes: Dict[str, Any]) -> Optional[Record]:
        """Merge `changes` into an existing record. Unknown id returns None."""

    @abstractmethod
    async def delete_record(self, record_id: str) -> Optional[Record]:
        """Remove a record and return it. Unknown id returns None."""

    @abstractmethod
    async def clear_all(self) -> int:
        """Remove every record. Returns the number removed."""

    @abstractmethod
    async def list_by_individual(self, name: str) -> List[Record]:
        """Records whose individual name matches `name` case-insensitively."""

    # Accounts

    @abstractmethod
    async def list_users(self) -> List[UserAccount]:
        ...

    @abstractmethod
    async def get_user(self, user_id: str) -> Optional[UserAccount]:
        ...

    @abstractmethod
    async def get_user_by_username(self, username: str) -> Optional[UserAccount]:
        ...

    @abstractmethod
    async def create_user(self, account: UserAccount) -> UserAccount:
        ...

    @abstractmethod
    async def update_user(self, user_id: str, changes: Dict[str, Any]) -> Optional[UserAccount]:
        ...

    @abstractmethod
    async def delete_user(self, user_id: str) -> bool:
        ...

    # Audit log

    @abstractmethod
    async def append_audit_entry(self, entry: AuditLogEntry) -> AuditLogEntry:
        ...

    @abstractmethod
    async def list_audit_entries(self, limit: Optional[int] = None) -> List[AuditLogEntry]:
        """Audit entries, newest first."""

    # Runtime settings

    @abstractmethod
    async def load_settings(self) -> Optional[AppSettings]:
        """Stored settings object, or None if never saved."""

    @abstractmethod
    async def save_settings(self, app_settings: AppSettings) -> AppSettings:
        ...

    # Quota

    @abstractmethod
    async def usage_bytes(self) -> int:
        ...

    @abstractmethod
    def capacity_bytes(self) -> int:
        ...

    async def close(self) -> None:
        """Release connections held by the backend."""
