"""
Analytics API Endpoints.

Per-individual grouping and storage utilization. Read-only.
"""

from typing import List

from fastapi import APIRouter, Depends

from incident_backend.app.core.config import settings
from incident_backend.app.core.dependencies import get_backend, get_record_service
from incident_backend.app.core.guards import require_permission
from incident_backend.app.core.permissions import CallerSession, Capability
from incident_backend.app.schemas.analytics import IndividualListResponse, StorageUsage
from incident_backend.app.schemas.record import Record
from incident_backend.app.services.analytics import AnalyticsService
from incident_backend.app.services.records import RecordService
from incident_backend.app.storage.base import StorageBackend

router = APIRouter(tags=["Analytics"])


@router.get("/individuals", response_model=IndividualListResponse)
async def list_individuals(
    session: CallerSession = Depends(require_permission(Capability.VIEW)),
    backend: StorageBackend = Depends(get_backend),
):
    """Individuals grouped case-insensitively, most records first."""
    individuals = await AnalyticsService.list_individuals(backend, session)
    return IndividualListResponse(individuals=individuals, total=len(individuals))


@router.get("/individuals/{name}/records", response_model=List[Record])
async def list_individual_records(
    name: str,
    session: CallerSession = Depends(require_permission(Capability.VIEW)),
    service: RecordService = Depends(get_record_service),
):
    return await service.list_by_individual(session, name)


@router.get("/storage/usage", response_model=StorageUsage)
async def get_storage_usage(
    session: CallerSession = Depends(require_permission(Capability.VIEW)),
    backend: StorageBackend = Depends(get_backend),
):
    """Estimated storage use against the backend's capacity."""
    return await AnalyticsService.get_storage_usage(backend, settings.quota_warning_ratio)
