"""
Role engine: capability predicates over already-loaded role data.

Every function here is pure. Entry points in the service layer call
`require_capability` before any side effect so that a rejected call leaves
storage untouched.
"""

import enum
from dataclasses import dataclass
from typing import Dict, FrozenSet, Optional

from incident_backend.app.core.exceptions import PermissionDeniedError
from incident_backend.app.models.enums import UserRole


class Capability(str, enum.Enum):
    VIEW = "view"
    CREATE = "create"
    EDIT = "edit"
    DELETE = "delete"
    MANAGE_USERS = "manage_users"


@dataclass(frozen=True)
class CallerSession:
    """
    Identity of the caller, passed explicitly into every core entry point.

    `is_owner` marks the application owner account. It is a stable flag on
    the account, not derived from role or username.
    """
    user_id: str
    username: str
    role: UserRole
    is_owner: bool = False


ROLE_CAPABILITIES: Dict[UserRole, FrozenSet[Capability]] = {
    UserRole.PENDING: frozenset(),
    UserRole.ORG_OWNER: frozenset({Capability.VIEW, Capability.CREATE, Capability.EDIT}),
    UserRole.OFFICER: frozenset({Capability.VIEW, Capability.CREATE, Capability.EDIT}),
    UserRole.ADMIN: frozenset(Capability),
}

# Roles whose VIEW/EDIT rights are limited to records they authored
OWN_RECORDS_ONLY: FrozenSet[UserRole] = frozenset({UserRole.ORG_OWNER})


def capabilities_for(role: UserRole) -> FrozenSet[Capability]:
    return ROLE_CAPABILITIES.get(UserRole(role), frozenset())


def _owns(record_owner: Optional[str], caller_username: Optional[str]) -> bool:
    return record_owner is not None and caller_username is not None and record_owner == caller_username


def can_view(role: UserRole, record_owner: Optional[str] = None, caller_username: Optional[str] = None) -> bool:
    """True if `role` may see a record authored by `record_owner`."""
    if Capability.VIEW not in capabilities_for(role):
        return False
    if UserRole(role) in OWN_RECORDS_ONLY:
        return _owns(record_owner, caller_username)
    return True


def can_create(role: UserRole) -> bool:
    return Capability.CREATE in capabilities_for(role)


def can_edit(role: UserRole, record_owner: Optional[str] = None, caller_username: Optional[str] = None) -> bool:
    """
    True if `role` may edit records.

    Without a record owner this answers the role-level question; with one,
    org owners are limited to their own records.
    """
    if Capability.EDIT not in capabilities_for(role):
        return False
    if UserRole(role) in OWN_RECORDS_ONLY and record_owner is not None:
        return _owns(record_owner, caller_username)
    return True


def can_delete(role: UserRole) -> bool:
    return Capability.DELETE in capabilities_for(role)


def can_manage_users(role: UserRole) -> bool:
    return Capability.MANAGE_USERS in capabilities_for(role)


def is_active_role(role: UserRole) -> bool:
    """Pending accounts never count as active users."""
    return UserRole(role) != UserRole.PENDING


def require_capability(
    session: CallerSession,
    capability: Capability,
    record_owner: Optional[str] = None,
) -> None:
    """
    Raise PermissionDeniedError unless the session holds `capability`.

    For VIEW and EDIT, `record_owner` narrows the check to a specific record.
    """
    if capability == Capability.VIEW:
        allowed = can_view(session.role, record_owner, session.username) if record_owner else Capability.VIEW in capabilities_for(session.role)
    elif capability == Capability.EDIT:
        allowed = can_edit(session.role, record_owner, session.username)
    else:
        allowed = capability in capabilities_for(session.role)

    if not allowed:
        raise PermissionDeniedError(
            message=f"Missing capability '{capability.value}' for role '{UserRole(session.role).value}'",
            capability=capability.value,
        )


def require_application_owner(session: CallerSession, action: str) -> None:
    if not session.is_owner:
        raise PermissionDeniedError(
            message=f"Only the application owner may {action}",
            capability="application_owner",
        )


def can_modify_account(target_is_owner: bool) -> bool:
    return not target_is_owner


def ensure_account_mutable(target_is_owner: bool, target_username: str) -> None:
    """
    The application owner account can never be edited, demoted or deleted,
    not even by another admin.
    """
    if not can_modify_account(target_is_owner):
        raise PermissionDeniedError(
            message=f"Account '{target_username}' is the application owner and cannot be modified",
            capability=Capability.MANAGE_USERS.value,
        )
