"""
Account management service.

Registration, login, approval and role administration. Every mutation of
another account checks `manage_users` and refuses to touch the application
owner.
"""

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from incident_backend.app.core.exceptions import (
    AuthenticationError,
    PermissionDeniedError,
    ResourceNotFoundError,
    ValidationFailedError,
)
from incident_backend.app.core.permissions import (
    CallerSession,
    Capability,
    ensure_account_mutable,
    is_active_role,
    require_capability,
)
from incident_backend.app.core.security import get_password_hash, verify_password
from incident_backend.app.models.enums import AuditAction, UserRole
from incident_backend.app.schemas.admin import AuditLogEntry
from incident_backend.app.schemas.auth import UserAccount
from incident_backend.app.services import audit
from incident_backend.app.storage.base import StorageBackend

logger = logging.getLogger(__name__)


def session_for(account: UserAccount) -> CallerSession:
    return CallerSession(
        user_id=account.id,
        username=account.username,
        role=account.role,
        is_owner=account.is_owner,
    )


class UserService:

    def __init__(self, backend: StorageBackend, online_window_minutes: int = 5):
        self.backend = backend
        self.online_window = timedelta(minutes=online_window_minutes)

    async def _target(self, user_id: str) -> UserAccount:
        account = await self.backend.get_user(user_id)
        if account is None:
            raise ResourceNotFoundError("User", user_id)
        return account

    # Self-service

    async def register(self, username: str, password: str) -> UserAccount:
        """Create a pending account. Usernames are unique and case-sensitive."""
        if await self.backend.get_user_by_username(username):
            raise ValidationFailedError(f"Username '{username}' is already taken", field="username")

        account = UserAccount(
            id=str(uuid.uuid4()),
            username=username,
            password_hash=get_password_hash(password),
            role=UserRole.PENDING,
            created_at=datetime.now(timezone.utc),
        )
        account = await self.backend.create_user(account)
        logger.info("Registered pending account %s", username)
        return account

    async def authenticate(self, username: str, password: str) -> UserAccount:
        account = await self.backend.get_user_by_username(username)
        if account is None or not verify_password(password, account.password_hash):
            logger.info("Failed login for %s", username)
            raise AuthenticationError("Invalid username or password")
        if not is_active_role(account.role):
            raise PermissionDeniedError("Account is awaiting administrator approval")

        return await self.touch_activity(account.id) or account

    async def touch_activity(self, user_id: str) -> Optional[UserAccount]:
        return await self.backend.update_user(user_id, {"last_activity": datetime.now(timezone.utc)})

    # Listings

    async def list_active_users(self, session: CallerSession) -> List[UserAccount]:
        require_capability(session, Capability.MANAGE_USERS)
        return [u for u in await self.backend.list_users() if is_active_role(u.role)]

    async def list_pending_users(self, session: CallerSession) -> List[UserAccount]:
        require_capability(session, Capability.MANAGE_USERS)
        return [u for u in await self.backend.list_users() if u.role == UserRole.PENDING]

    async def list_online_users(self, session: CallerSession) -> List[UserAccount]:
        """Active accounts seen within the presence window."""
        require_capability(session, Capability.MANAGE_USERS)
        cutoff = datetime.now(timezone.utc) - self.online_window
        return [
            u for u in await self.backend.list_users()
            if is_active_role(u.role) and u.last_activity is not None and u.last_activity >= cutoff
        ]

    # Administration

    async def approve_user(self, session: CallerSession, user_id: str, role: UserRole) -> AuditLogEntry:
        require_capability(session, Capability.MANAGE_USERS)
        if role == UserRole.PENDING:
            raise ValidationFailedError("Approval must grant an active role", field="role")
        target = await self._target(user_id)
        ensure_account_mutable(target.is_owner, target.username)
        if target.role != UserRole.PENDING:
            raise ValidationFailedError(f"User '{target.username}' is not awaiting approval")

        await self.backend.update_user(user_id, {"role": role})
        return await audit.log_event(
            self.backend, AuditAction.ROLE_CHANGE, session.username,
            details=f"Approved as {role.value}", target_user=target.username,
        )

    async def reject_user(self, session: CallerSession, user_id: str) -> AuditLogEntry:
        require_capability(session, Capability.MANAGE_USERS)
        target = await self._target(user_id)
        ensure_account_mutable(target.is_owner, target.username)
        if target.role != UserRole.PENDING:
            raise ValidationFailedError(f"User '{target.username}' is not awaiting approval")

        await self.backend.delete_user(user_id)
        return await audit.log_event(
            self.backend, AuditAction.USER_REMOVE, session.username,
            details="Registration rejected", target_user=target.username,
        )

    async def change_role(self, session: CallerSession, user_id: str, role: UserRole) -> AuditLogEntry:
        require_capability(session, Capability.MANAGE_USERS)
        if role == UserRole.PENDING:
            raise ValidationFailedError("Cannot move an account back to pending", field="role")
        target = await self._target(user_id)
        ensure_account_mutable(target.is_owner, target.username)

        await self.backend.update_user(user_id, {"role": role})
        return await audit.log_event(
            self.backend, AuditAction.ROLE_CHANGE, session.username,
            details=f"Role changed from {UserRole(target.role).value} to {role.value}",
            target_user=target.username,
        )

    async def delete_user(self, session: CallerSession, user_id: str) -> AuditLogEntry:
        require_capability(session, Capability.MANAGE_USERS)
        target = await self._target(user_id)
        ensure_account_mutable(target.is_owner, target.username)

        await self.backend.delete_user(user_id)
        return await audit.log_event(
            self.backend, AuditAction.USER_REMOVE, session.username,
            details=f"Removed {UserRole(target.role).value} account", target_user=target.username,
        )

    # Bootstrap

    async def ensure_owner_account(self, username: str, password: str) -> UserAccount:
        """
        Make sure the application owner account exists.

        An existing account with that username is promoted to admin and
        flagged as owner; its password is left unchanged. There is only ever
        one owner: if another account already holds the flag, nothing is
        created or promoted and that account is returned.
        """
        current = next(
            (u for u in await self.backend.list_users() if u.is_owner and u.username != username),
            None,
        )
        if current is not None:
            logger.error(
                "Application owner is already %s; not creating or promoting %s", current.username, username
            )
            return current

        existing = await self.backend.get_user_by_username(username)
        if existing is None:
            owner = UserAccount(
                id=str(uuid.uuid4()),
                username=username,
                password_hash=get_password_hash(password),
                role=UserRole.ADMIN,
                is_owner=True,
                created_at=datetime.now(timezone.utc),
            )
            logger.info("Created application owner account %s", username)
            return await self.backend.create_user(owner)

        if existing.is_owner and existing.role == UserRole.ADMIN:
            return existing
        logger.warning("Promoting existing account %s to application owner", username)
        return await self.backend.update_user(existing.id, {"role": UserRole.ADMIN, "is_owner": True})
