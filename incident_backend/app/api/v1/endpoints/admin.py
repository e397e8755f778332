"""
Admin API Endpoints.

Account approval and role management, audit trail and runtime settings.
Every account mutation is audited; the application owner cannot be changed.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from incident_backend.app.core.config import settings
from incident_backend.app.core.dependencies import get_backend, get_user_service
from incident_backend.app.core.guards import require_admin
from incident_backend.app.core.permissions import CallerSession
from incident_backend.app.models.enums import AuditAction
from incident_backend.app.schemas.admin import (
    AdminActionResponse,
    AppSettings,
    AppSettingsUpdate,
    ApproveUserRequest,
    AuditTrailResponse,
    RoleChangeRequest,
    UserListResponse,
)
from incident_backend.app.schemas.auth import UserResponse
from incident_backend.app.services.app_settings import get_app_settings, update_app_settings
from incident_backend.app.services.audit import get_audit_trail
from incident_backend.app.services.users import UserService
from incident_backend.app.storage.base import StorageBackend

router = APIRouter(prefix="/admin", tags=["Admin"])


def _user_list(accounts) -> UserListResponse:
    return UserListResponse(users=[UserResponse.model_validate(a) for a in accounts], total=len(accounts))


@router.get("/users", response_model=UserListResponse)
async def list_users(
    admin: CallerSession = Depends(require_admin),
    users: UserService = Depends(get_user_service),
):
    """Approved accounts. Pending registrations are listed separately."""
    return _user_list(await users.list_active_users(admin))


@router.get("/users/pending", response_model=UserListResponse)
async def list_pending_users(
    admin: CallerSession = Depends(require_admin),
    users: UserService = Depends(get_user_service),
):
    return _user_list(await users.list_pending_users(admin))


@router.get("/users/online", response_model=UserListResponse)
async def list_online_users(
    admin: CallerSession = Depends(require_admin),
    users: UserService = Depends(get_user_service),
):
    """Accounts active within the presence window."""
    return _user_list(await users.list_online_users(admin))


@router.post("/users/{user_id}/approve", response_model=AdminActionResponse)
async def approve_user(
    user_id: str,
    request: ApproveUserRequest,
    admin: CallerSession = Depends(require_admin),
    users: UserService = Depends(get_user_service),
):
    entry = await users.approve_user(admin, user_id, request.role)
    return AdminActionResponse(
        success=True,
        message=f"User approved as {request.role.value}",
        user_id=user_id,
        action=entry.action,
        audit_log_id=entry.id,
    )


@router.post("/users/{user_id}/reject", response_model=AdminActionResponse)
async def reject_user(
    user_id: str,
    admin: CallerSession = Depends(require_admin),
    users: UserService = Depends(get_user_service),
):
    """Reject a pending registration; the account is deleted."""
    entry = await users.reject_user(admin, user_id)
    return AdminActionResponse(
        success=True,
        message="Registration rejected",
        user_id=user_id,
        action=entry.action,
        audit_log_id=entry.id,
    )


@router.put("/users/{user_id}/role", response_model=AdminActionResponse)
async def change_role(
    user_id: str,
    request: RoleChangeRequest,
    admin: CallerSession = Depends(require_admin),
    users: UserService = Depends(get_user_service),
):
    entry = await users.change_role(admin, user_id, request.role)
    return AdminActionResponse(
        success=True,
        message=f"Role changed to {request.role.value}",
        user_id=user_id,
        action=entry.action,
        audit_log_id=entry.id,
    )


@router.delete("/users/{user_id}", response_model=AdminActionResponse)
async def delete_user(
    user_id: str,
    admin: CallerSession = Depends(require_admin),
    users: UserService = Depends(get_user_service),
):
    entry = await users.delete_user(admin, user_id)
    return AdminActionResponse(
        success=True,
        message="User removed",
        user_id=user_id,
        action=entry.action,
        audit_log_id=entry.id,
    )


@router.get("/audit-logs", response_model=AuditTrailResponse)
async def get_audit_logs(
    action: Optional[AuditAction] = Query(None, description="Filter by action"),
    performed_by: Optional[str] = Query(None, description="Filter by actor username"),
    limit: int = Query(settings.audit_log_default_limit, ge=1, le=1000),
    admin: CallerSession = Depends(require_admin),
    backend: StorageBackend = Depends(get_backend),
):
    """Audit trail, newest first."""
    logs = await get_audit_trail(backend, action=action, performed_by=performed_by, limit=limit)
    return AuditTrailResponse(logs=logs, total=len(logs))


@router.get("/settings", response_model=AppSettings)
async def read_settings(
    admin: CallerSession = Depends(require_admin),
    backend: StorageBackend = Depends(get_backend),
):
    return await get_app_settings(backend)


@router.put("/settings", response_model=AppSettings)
async def write_settings(
    changes: AppSettingsUpdate,
    admin: CallerSession = Depends(require_admin),
    backend: StorageBackend = Depends(get_backend),
):
    """Update webhook, message template or branding. Omitted fields are kept."""
    return await update_app_settings(backend, admin, changes)
