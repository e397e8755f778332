"""
Remote relational backend.

Records, accounts, audit entries and the settings object live in SQL tables
(async SQLAlchemy). Record images live in an object bucket: inline images are
uploaded before the row is written and the row stores their public URLs.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from incident_backend.app.core.exceptions import BackendUnavailableError, ValidationFailedError
from incident_backend.app.models.app_settings import AppSettingsRow
from incident_backend.app.models.audit_log import AuditLog
from incident_backend.app.models.record import IncidentRecord
from incident_backend.app.models.user import User
from incident_backend.app.schemas.admin import AppSettings, AuditLogEntry
from incident_backend.app.schemas.auth import UserAccount
from incident_backend.app.schemas.record import Record
from incident_backend.app.services.images import is_remote_reference, parse_data_url
from incident_backend.app.storage.base import StorageBackend
from incident_backend.app.storage.blobs import HttpBlobStore
from incident_backend.app.storage.translation import (
    changes_to_columns,
    record_to_columns,
    row_to_account,
    row_to_audit_entry,
    row_to_record,
)

logger = logging.getLogger(__name__)

SETTINGS_ROW_ID = 1


class RemoteBackend(StorageBackend):
    """Storage backend on a relational database plus an image bucket."""

    name = "remote"

    def __init__(self, session_factory, blobs: HttpBlobStore, quota_bytes: int):
        self.session_factory = session_factory
        self.blobs = blobs
        self.quota_bytes = quota_bytes

    @asynccontextmanager
    async def _session(self, operation: str):
        async with self.session_factory() as session:
            try:
                yield session
            except IntegrityError:
                await session.rollback()
                raise
            except SQLAlchemyError as exc:
                await session.rollback()
                logger.error("Database %s failed: %s", operation, exc)
                raise BackendUnavailableError(f"Database {operation} failed", operation=operation)

    # Images

    def _bucket_paths(self, urls: List[str]) -> List[str]:
        return [path for path in (self.blobs.path_from_url(u) for u in urls) if path]

    async def _upload_inline_images(self, screenshots: List[str]) -> List[str]:
        """
        Upload every inline image and return the list with URLs substituted.

        If any upload fails, the ones that succeeded are removed again.
        """
        async def store(value: str) -> str:
            if is_remote_reference(value):
                return value
            subtype, content = parse_data_url(value)
            return await self.blobs.upload(content, content_type=f"image/{subtype}")

        results = await asyncio.gather(*(store(v) for v in screenshots), return_exceptions=True)
        failures = [r for r in results if isinstance(r, BaseException)]
        if failures:
            uploaded = [r for r, original in zip(results, screenshots) if isinstance(r, str) and r != original]
            await self._discard_images(uploaded, reason="failed upload batch")
            raise failures[0]
        return list(results)

    async def _discard_images(self, urls: List[str], reason: str) -> None:
        paths = self._bucket_paths(urls)
        if not paths:
            return
        try:
            await self.blobs.delete(paths)
        except BackendUnavailableError as exc:
            logger.warning("Orphaned %d bucket image(s) after %s: %s (%s)", len(paths), reason, paths, exc.message)

    # Records

    async def list_records(self) -> List[Record]:
        async with self._session("list_records") as session:
            result = await session.execute(
                select(IncidentRecord).order_by(IncidentRecord.date_time.desc(), IncidentRecord.created_at.desc())
            )
            return [row_to_record(row) for row in result.scalars().all()]

    async def get_record(self, record_id: str) -> Optional[Record]:
        async with self._session("get_record") as session:
            row = await session.get(IncidentRecord, record_id)
            return row_to_record(row) if row else None

    async def create_record(self, record: Record) -> Record:
        screenshots = await self._upload_inline_images(record.screenshots)
        stored = record.model_copy(update={"screenshots": screenshots})
        try:
            async with self._session("create_record") as session:
                row = IncidentRecord(**record_to_columns(stored))
                session.add(row)
                await session.commit()
                await session.refresh(row)
                stored = row_to_record(row)
        except (BackendUnavailableError, IntegrityError) as exc:
            await self._discard_images([s for s in screenshots if s not in record.screenshots], reason="failed insert")
            if isinstance(exc, IntegrityError):
                raise BackendUnavailableError("Record could not be stored", operation="create_record")
            raise
        logger.info("Stored record %s remotely with %d image(s)", stored.id, len(screenshots))
        return stored

    async def update_record(self, record_id: str, changes: Dict[str, Any]) -> Optional[Record]:
        columns = changes_to_columns(changes)
        if await self.get_record(record_id) is None:
            logger.warning("Update of unknown record %s ignored", record_id)
            return None

        uploaded: List[str] = []
        if "screenshots" in columns:
            requested = columns["screenshots"] or []
            columns["screenshots"] = await self._upload_inline_images(requested)
            uploaded = [url for url in columns["screenshots"] if url not in requested]

        try:
            async with self._session("update_record") as session:
                row = await session.get(IncidentRecord, record_id)
                if row is None:
                    # Deleted while the images were uploading
                    await self._discard_images(uploaded, reason=f"update of missing record {record_id}")
                    return None
                previous_images = list(row.screenshots or [])
                for column, value in columns.items():
                    setattr(row, column, value)
                await session.commit()
                await session.refresh(row)
                updated = row_to_record(row)
        except BackendUnavailableError:
            await self._discard_images(uploaded, reason=f"failed update of record {record_id}")
            raise

        if "screenshots" in columns:
            dropped = [url for url in previous_images if url not in updated.screenshots]
            await self._discard_images(dropped, reason=f"edit of record {record_id}")
        return updated

    async def delete_record(self, record_id: str) -> Optional[Record]:
        async with self._session("delete_record") as session:
            row = await session.get(IncidentRecord, record_id)
            if row is None:
                return None
            removed = row_to_record(row)

            # Images before the row
            await self._discard_images(removed.screenshots, reason=f"delete of record {record_id}")

            await session.delete(row)
            await session.commit()
        return removed

    async def clear_all(self) -> int:
        async with self._session("clear_all") as session:
            result = await session.execute(select(IncidentRecord.screenshots))
            urls = [url for screenshots in result.scalars().all() for url in (screenshots or [])]
            await self._discard_images(urls, reason="clear all")

            result = await session.execute(delete(IncidentRecord))
            await session.commit()
            return result.rowcount or 0

    async def list_by_individual(self, name: str) -> List[Record]:
        async with self._session("list_by_individual") as session:
            result = await session.execute(
                select(IncidentRecord)
                .where(func.lower(IncidentRecord.individual_name) == name.strip().lower())
                .order_by(IncidentRecord.date_time.desc(), IncidentRecord.created_at.desc())
            )
            return [row_to_record(row) for row in result.scalars().all()]

    # Accounts

    async def list_users(self) -> List[UserAccount]:
        async with self._session("list_users") as session:
            result = await session.execute(select(User).order_by(User.created_at.desc()))
            return [row_to_account(row) for row in result.scalars().all()]

    async def get_user(self, user_id: str) -> Optional[UserAccount]:
        async with self._session("get_user") as session:
            row = await session.get(User, user_id)
            return row_to_account(row) if row else None

    async def get_user_by_username(self, username: str) -> Optional[UserAccount]:
        async with self._session("get_user_by_username") as session:
            result = await session.execute(select(User).where(User.username == username))
            row = result.scalar_one_or_none()
            return row_to_account(row) if row else None

    async def create_user(self, account: UserAccount) -> UserAccount:
        try:
            async with self._session("create_user") as session:
                row = User(**account.model_dump())
                session.add(row)
                await session.commit()
                await session.refresh(row)
                return row_to_account(row)
        except IntegrityError:
            raise ValidationFailedError(f"Username '{account.username}' is already taken", field="username")

    async def update_user(self, user_id: str, changes: Dict[str, Any]) -> Optional[UserAccount]:
        async with self._session("update_user") as session:
            row = await session.get(User, user_id)
            if row is None:
                return None
            for key, value in changes.items():
                if key in UserAccount.model_fields and key != "id":
                    setattr(row, key, value)
            await session.commit()
            await session.refresh(row)
            return row_to_account(row)

    async def delete_user(self, user_id: str) -> bool:
        async with self._session("delete_user") as session:
            row = await session.get(User, user_id)
            if row is None:
                return False
            await session.delete(row)
            await session.commit()
            return True

    # Audit log

    async def append_audit_entry(self, entry: AuditLogEntry) -> AuditLogEntry:
        async with self._session("append_audit_entry") as session:
            session.add(AuditLog(**entry.model_dump(mode="python")))
            await session.commit()
        return entry

    async def list_audit_entries(self, limit: Optional[int] = None) -> List[AuditLogEntry]:
        query = select(AuditLog).order_by(AuditLog.timestamp.desc())
        if limit:
            query = query.limit(limit)
        async with self._session("list_audit_entries") as session:
            result = await session.execute(query)
            return [row_to_audit_entry(row) for row in result.scalars().all()]

    # Runtime settings

    async def load_settings(self) -> Optional[AppSettings]:
        async with self._session("load_settings") as session:
            row = await session.get(AppSettingsRow, SETTINGS_ROW_ID)
            return AppSettings.model_validate(row.data) if row else None

    async def save_settings(self, app_settings: AppSettings) -> AppSettings:
        data = app_settings.model_dump(mode="json", by_alias=True)
        async with self._session("save_settings") as session:
            row = await session.get(AppSettingsRow, SETTINGS_ROW_ID)
            if row is None:
                session.add(AppSettingsRow(id=SETTINGS_ROW_ID, data=data))
            else:
                row.data = data
            await session.commit()
        return app_settings

    # Quota

    async def usage_bytes(self) -> int:
        return await self.blobs.total_size()

    def capacity_bytes(self) -> int:
        return self.quota_bytes
