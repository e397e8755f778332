"""
Record API endpoints.

Submission returns a structured outcome even when a sink fails; the HTTP
status reflects the overall result (201 stored or sent, 502 nothing worked).
"""

from typing import List

from fastapi import APIRouter, Depends, Response, status

from incident_backend.app.core.dependencies import get_backend, get_current_session, get_record_service
from incident_backend.app.core.guards import require_permission
from incident_backend.app.core.permissions import CallerSession, Capability
from incident_backend.app.schemas.record import (
    Record,
    RecordUpdate,
    SubmissionOutcome,
    SubmissionRequest,
    SubmissionStatus,
)
from incident_backend.app.services.app_settings import get_app_settings
from incident_backend.app.services.records import RecordService
from incident_backend.app.storage.base import StorageBackend

router = APIRouter(prefix="/records", tags=["Records"])


@router.post("", response_model=SubmissionOutcome, status_code=status.HTTP_201_CREATED)
async def submit_record(
    request: SubmissionRequest,
    response: Response,
    session: CallerSession = Depends(require_permission(Capability.CREATE)),
    service: RecordService = Depends(get_record_service),
    backend: StorageBackend = Depends(get_backend),
):
    """
    Submit a new record to storage and/or the notification webhook.

    Screenshots are `data:image/...;base64,` values; they are resized and
    recompressed before either sink sees them.
    """
    app_settings = await get_app_settings(backend)
    outcome = await service.submit_record(session, app_settings, request)
    if outcome.status == SubmissionStatus.FAILED:
        response.status_code = status.HTTP_502_BAD_GATEWAY
    return outcome


@router.get("", response_model=List[Record])
async def list_records(
    session: CallerSession = Depends(get_current_session),
    service: RecordService = Depends(get_record_service),
):
    """Records visible to the caller, newest first."""
    return await service.list_records(session)


@router.delete("")
async def clear_all_records(
    session: CallerSession = Depends(get_current_session),
    service: RecordService = Depends(get_record_service),
):
    """Delete every record. Application owner only."""
    deleted = await service.clear_all(session)
    return {"success": True, "deleted": deleted}


@router.get("/{record_id}", response_model=Record)
async def get_record(
    record_id: str,
    session: CallerSession = Depends(get_current_session),
    service: RecordService = Depends(get_record_service),
):
    return await service.get_record(session, record_id)


@router.patch("/{record_id}", response_model=Record)
async def edit_record(
    record_id: str,
    update: RecordUpdate,
    session: CallerSession = Depends(require_permission(Capability.EDIT)),
    service: RecordService = Depends(get_record_service),
):
    """Partially update a record; only fields present in the body change."""
    return await service.edit_record(session, record_id, update)


@router.delete("/{record_id}", response_model=Record)
async def delete_record(
    record_id: str,
    session: CallerSession = Depends(require_permission(Capability.DELETE)),
    service: RecordService = Depends(get_record_service),
):
    """Delete a record and return it as it was."""
    return await service.delete_record(session, record_id)
