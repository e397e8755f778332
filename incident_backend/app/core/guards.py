"""
Security guards for capability-based access control.

Endpoint-level checks run before the handler body. The service layer repeats
the record-specific checks (ownership, owner account) itself.
"""

from fastapi import Depends

from incident_backend.app.core.dependencies import get_current_session
from incident_backend.app.core.permissions import CallerSession, Capability, require_capability


def require_permission(capability: Capability):
    """
    Dependency factory for capability checks.

    Usage:
        @router.post("/records")
        async def submit(session: CallerSession = Depends(require_permission(Capability.CREATE))):
            ...

    Raises PermissionDeniedError (403) if the caller's role lacks `capability`.
    """
    async def capability_checker(session: CallerSession = Depends(get_current_session)) -> CallerSession:
        require_capability(session, capability)
        return session

    return capability_checker


def require_admin(session: CallerSession = Depends(get_current_session)) -> CallerSession:
    """Dependency for user-management endpoints."""
    require_capability(session, Capability.MANAGE_USERS)
    return session
