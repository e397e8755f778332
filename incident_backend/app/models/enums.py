"""
Role and audit action enumerations.

Defines the closed role set and audit action kinds for the incident registry.
"""

import enum


class UserRole(str, enum.Enum):
    """
    User role enumeration.

    Roles:
        PENDING: Registered but not yet approved (no capabilities)
        OFFICER: Broadest operational rights over records
        ADMIN: Full record rights plus user management
        ORG_OWNER: Restricted to records it authored
    """
    PENDING = "pending"
    OFFICER = "officer"
    ADMIN = "admin"
    ORG_OWNER = "org_owner"


class AuditAction(str, enum.Enum):
    """Kinds of privileged actions recorded in the audit log."""
    CREATE = "create"
    EDIT = "edit"
    DELETE = "delete"
    ROLE_CHANGE = "role_change"
    USER_REMOVE = "user_remove"
