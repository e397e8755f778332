"""
Record orchestration.

A submission is authorized and validated up front, its images are normalized,
and then the storage write and the webhook notification run as two independent
tasks. Neither can block or roll back the other; their results are combined
into one SubmissionOutcome.
"""

import asyncio
import logging
import uuid
from datetime import datetime, timezone
from typing import List, Optional, Tuple

from incident_backend.app.core.exceptions import (
    AppException,
    BackendUnavailableError,
    NotificationFailedError,
    QuotaExceededError,
    ResourceNotFoundError,
    ValidationFailedError,
)
from incident_backend.app.core.permissions import (
    CallerSession,
    Capability,
    can_view,
    require_application_owner,
    require_capability,
)
from incident_backend.app.models.enums import AuditAction
from incident_backend.app.schemas.admin import AppSettings, AuditLogEntry
from incident_backend.app.schemas.record import (
    NULLABLE_UPDATE_FIELDS,
    Record,
    RecordUpdate,
    SinkResult,
    SinkStatus,
    SubmissionOutcome,
    SubmissionRequest,
    SubmissionStatus,
)
from incident_backend.app.services import audit
from incident_backend.app.services.analytics import AnalyticsService
from incident_backend.app.services.images import ImagePipeline, check_image_reference
from incident_backend.app.services.notification_service import NotificationService
from incident_backend.app.storage.base import StorageBackend

logger = logging.getLogger(__name__)

SKIPPED = SinkResult(status=SinkStatus.SKIPPED)


def to_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def classify_outcome(storage: SinkResult, notification: SinkResult) -> SubmissionStatus:
    """
    Overall status of a submission from its two sink results.

    Nothing attempted is a failure. Every attempted sink succeeding is a
    success; some but not all is partial; none is a failure.
    """
    attempted = [r for r in (storage, notification) if r.attempted]
    succeeded = [r for r in attempted if r.ok]
    if not attempted or not succeeded:
        return SubmissionStatus.FAILED
    if len(succeeded) == len(attempted):
        return SubmissionStatus.SUCCEEDED
    return SubmissionStatus.PARTIALLY_SUCCEEDED


def outcome_message(status: SubmissionStatus, storage: SinkResult, notification: SinkResult) -> str:
    if status == SubmissionStatus.SUCCEEDED:
        if storage.ok and notification.ok:
            return "Record saved and notification sent."
        return "Record saved." if storage.ok else "Notification sent."
    if status == SubmissionStatus.PARTIALLY_SUCCEEDED:
        if storage.ok:
            return f"Record saved, but the notification failed: {notification.message}"
        return f"Notification sent, but the record was not saved: {storage.message}"
    failures = [r.message for r in (storage, notification) if r.attempted and r.message]
    return "Submission failed. " + " ".join(failures) if failures else "Submission failed."


class RecordService:
    """Entry points for creating, reading and changing records."""

    def __init__(
        self,
        backend: StorageBackend,
        pipeline: ImagePipeline,
        notifier: NotificationService,
        quota_warning_ratio: float = 0.8,
    ):
        self.backend = backend
        self.pipeline = pipeline
        self.notifier = notifier
        self.quota_warning_ratio = quota_warning_ratio

    async def _audit(self, action: AuditAction, session: CallerSession, details: str, record: Optional[Record] = None) -> Optional[AuditLogEntry]:
        try:
            return await audit.log_event(
                self.backend, action, session.username, details=details, target_record=record
            )
        except AppException as exc:
            logger.error("Audit entry for %s by %s not written: %s", action.value, session.username, exc.message)
            return None

    # Submission

    async def _quota_warning(self) -> Optional[str]:
        try:
            usage = await AnalyticsService.get_storage_usage(self.backend, self.quota_warning_ratio)
        except BackendUnavailableError as exc:
            logger.warning("Storage usage check failed before write: %s", exc.message)
            return "Storage usage could not be checked before saving."
        if usage.warning:
            return (
                f"Storage is {usage.percentage:.0f}% full ({usage.used_mb} of {usage.capacity_mb} MB). "
                "Delete old records soon."
            )
        return None

    async def _store(self, record: Record) -> Tuple[SinkResult, Optional[Record]]:
        try:
            stored = await self.backend.create_record(record)
        except QuotaExceededError as exc:
            logger.warning("Record %s not stored, quota exceeded: %s", record.id, exc.message)
            return SinkResult(status=SinkStatus.FAILED, error_code=exc.error_code, message=exc.message), None
        except AppException as exc:
            logger.error("Record %s not stored: %s", record.id, exc.message)
            return SinkResult(
                status=SinkStatus.FAILED,
                error_code=exc.error_code,
                message=f"Could not save the record ({exc.message}). Try again.",
            ), None
        return SinkResult(status=SinkStatus.OK), stored

    async def _notify(self, app_settings: AppSettings, record: Record) -> SinkResult:
        try:
            await self.notifier.send(app_settings.webhook_url, app_settings.message_template, record)
        except NotificationFailedError as exc:
            return SinkResult(status=SinkStatus.FAILED, error_code=exc.error_code, message=exc.message)
        except Exception as exc:
            # Any other error still counts as a failed sink
            logger.exception("Notification for record %s failed unexpectedly", record.id)
            return SinkResult(
                status=SinkStatus.FAILED,
                error_code="NOTIFICATION_FAILED",
                message=f"Notification could not be sent: {exc}",
            )
        return SinkResult(status=SinkStatus.OK)

    async def submit_record(
        self,
        session: CallerSession,
        app_settings: AppSettings,
        request: SubmissionRequest,
    ) -> SubmissionOutcome:
        """
        Create a record and notify the webhook.

        Permission, validation and image format errors raise before any side
        effect. Sink failures are reported in the returned outcome.
        """
        require_capability(session, Capability.CREATE)
        if not request.save_to_storage and not request.send_notification:
            raise ValidationFailedError("Select at least one destination: storage or notification")
        for index, value in enumerate(request.screenshots):
            check_image_reference(value, index=index)

        screenshots = await self.pipeline.normalize_all(request.screenshots)

        warnings: List[str] = []
        if request.save_to_storage and screenshots:
            warning = await self._quota_warning()
            if warning:
                warnings.append(warning)

        now = datetime.now(timezone.utc)
        record = Record(
            id=str(uuid.uuid4()),
            individual_name=request.individual_name,
            external_id=request.external_id or None,
            date_time=to_utc(request.date_time) if request.date_time else now,
            location=request.location,
            reason=request.reason,
            articles=request.articles,
            observations=request.observations or None,
            seized_items=request.seized_items or None,
            responsible_officers=request.responsible_officers,
            screenshots=screenshots,
            created_by=session.username,
            created_at=now,
        )

        async def skipped():
            return SKIPPED, None

        async def skipped_notification():
            return SKIPPED

        (storage, stored), notification = await asyncio.gather(
            self._store(record) if request.save_to_storage else skipped(),
            self._notify(app_settings, record) if request.send_notification else skipped_notification(),
        )

        audit_entry = None
        if storage.ok:
            audit_entry = await self._audit(
                AuditAction.CREATE, session, f"Created record for {record.individual_name}", stored
            )
            if audit_entry is None:
                warnings.append("Record saved, but its audit entry could not be written.")
        if notification.status == SinkStatus.FAILED:
            warnings.append(f"Notification failed: {notification.message}")

        status = classify_outcome(storage, notification)
        logger.info(
            "Submission %s by %s: %s (storage=%s, notification=%s)",
            record.id, session.username, status.value, storage.status.value, notification.status.value,
        )
        return SubmissionOutcome(
            status=status,
            message=outcome_message(status, storage, notification),
            record=stored,
            storage=storage,
            notification=notification,
            warnings=warnings,
            audit_entry_id=audit_entry.id if audit_entry else None,
        )

    # Reads

    async def list_records(self, session: CallerSession) -> List[Record]:
        require_capability(session, Capability.VIEW)
        return [r for r in await self.backend.list_records() if can_view(session.role, r.created_by, session.username)]

    async def get_record(self, session: CallerSession, record_id: str) -> Record:
        require_capability(session, Capability.VIEW)
        record = await self.backend.get_record(record_id)
        if record is None:
            raise ResourceNotFoundError("Record", record_id)
        require_capability(session, Capability.VIEW, record_owner=record.created_by)
        return record

    async def list_by_individual(self, session: CallerSession, name: str) -> List[Record]:
        require_capability(session, Capability.VIEW)
        return [
            r for r in await self.backend.list_by_individual(name)
            if can_view(session.role, r.created_by, session.username)
        ]

    # Mutations

    async def edit_record(self, session: CallerSession, record_id: str, update: RecordUpdate) -> Record:
        """Merge the fields set on `update` into a record."""
        require_capability(session, Capability.EDIT)
        existing = await self.backend.get_record(record_id)
        if existing is None:
            raise ResourceNotFoundError("Record", record_id)
        require_capability(session, Capability.EDIT, record_owner=existing.created_by)

        changes = {
            field: value
            for field, value in update.model_dump(exclude_unset=True).items()
            if value is not None or field in NULLABLE_UPDATE_FIELDS
        }
        if not changes:
            raise ValidationFailedError("No changes supplied")

        if "screenshots" in changes:
            changes["screenshots"] = await self.pipeline.normalize_all(
                changes["screenshots"], stored_urls=frozenset(existing.screenshots)
            )
        if "date_time" in changes:
            changes["date_time"] = to_utc(changes["date_time"])

        changed_fields = sorted(changes)
        changes["edited_by"] = session.username
        changes["edited_at"] = datetime.now(timezone.utc)

        updated = await self.backend.update_record(record_id, changes)
        if updated is None:
            raise ResourceNotFoundError("Record", record_id)

        await self._audit(
            AuditAction.EDIT, session,
            f"Edited record for {updated.individual_name}: {', '.join(changed_fields)}", updated,
        )
        return updated

    async def delete_record(self, session: CallerSession, record_id: str) -> Record:
        require_capability(session, Capability.DELETE)
        removed = await self.backend.delete_record(record_id)
        if removed is None:
            raise ResourceNotFoundError("Record", record_id)
        await self._audit(AuditAction.DELETE, session, f"Deleted record for {removed.individual_name}", removed)
        return removed

    async def clear_all(self, session: CallerSession) -> int:
        require_capability(session, Capability.DELETE)
        require_application_owner(session, "clear all records")
        count = await self.backend.clear_all()
        await self._audit(AuditAction.DELETE, session, f"Cleared all records ({count})")
        logger.warning("All records cleared by %s (%d removed)", session.username, count)
        return count
