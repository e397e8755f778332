"""
Admin API Schema Definitions.

Pydantic schemas for user management, audit trail and runtime settings.
"""

from pydantic import Field
from datetime import datetime
from typing import Any, Dict, List, Optional
from incident_backend.app.models.enums import AuditAction, UserRole
from incident_backend.app.schemas.auth import UserResponse
from incident_backend.app.schemas.common import CamelModel


class UserListResponse(CamelModel):
    """Schema for list users response."""
    users: List[UserResponse]
    total: int


class ApproveUserRequest(CamelModel):
    """Schema for approving a pending account."""
    role: UserRole = Field(..., description="Role granted on approval (cannot be pending)")


class RoleChangeRequest(CamelModel):
    """Schema for changing an account's role."""
    role: UserRole


class AdminActionResponse(CamelModel):
    """Schema for admin action response."""
    success: bool
    message: str
    user_id: str
    action: AuditAction
    audit_log_id: Optional[str] = None


class AuditLogEntry(CamelModel):
    """Schema for one immutable audit log entry."""
    id: str
    action: AuditAction
    performed_by: str
    target_user: Optional[str] = None
    target_record: Optional[Dict[str, Any]] = None
    details: str = ""
    timestamp: datetime


class AuditTrailResponse(CamelModel):
    """Schema for audit trail list."""
    logs: List[AuditLogEntry]
    total: int


DEFAULT_MESSAGE_TEMPLATE = """🚨 **INCIDENT RECORD**

👤 **Individual:** {individualName}
🆔 **External ID:** {externalId}
📅 **Date/Time:** {dateTime}
📍 **Location:** {location}
⚖️ **Reason:** {reason}
📜 **Articles:**
{articles}
📝 **Observations:** {observations}
📦 **Seized Items:** {seizedItems}
👮 **Responsible Officers:** {responsibleOfficers}
🖊️ **Registered by:** {createdBy}"""


class AppSettings(CamelModel):
    """Runtime configuration object, editable only by privileged roles."""
    webhook_url: str = ""
    message_template: str = DEFAULT_MESSAGE_TEMPLATE
    app_title: str = "Incident Registry"
    app_subtitle: str = "Incident Record System"
    primary_logo_url: str = "/assets/primary-logo.png"
    secondary_logo_url: str = "/assets/secondary-logo.png"


class AppSettingsUpdate(CamelModel):
    """Partial update for runtime settings."""
    webhook_url: Optional[str] = None
    message_template: Optional[str] = Field(None, min_length=1)
    app_title: Optional[str] = None
    app_subtitle: Optional[str] = None
    primary_logo_url: Optional[str] = None
    secondary_logo_url: Optional[str] = None
