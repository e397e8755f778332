"""
Account service tests: registration, login gating, approval workflow and
owner protection.
"""

from datetime import datetime, timedelta, timezone

import pytest

from incident_backend.app.core.exceptions import (
    AuthenticationError,
    PermissionDeniedError,
    ResourceNotFoundError,
    ValidationFailedError,
)
from incident_backend.app.core.security import verify_password
from incident_backend.app.models.enums import AuditAction, UserRole
from incident_backend.app.services.users import UserService, session_for


@pytest.fixture
def user_service(local_backend) -> UserService:
    return UserService(local_backend)


@pytest.fixture
async def owner_account(user_service):
    return await user_service.ensure_owner_account("owner", "owner-pass")


@pytest.fixture
async def pending_account(user_service):
    return await user_service.register("newcomer", "secret1")


async def test_register_creates_pending_with_hashed_password(user_service, pending_account):
    assert pending_account.role == UserRole.PENDING
    assert pending_account.password_hash != "secret1"
    assert verify_password("secret1", pending_account.password_hash)


async def test_register_rejects_taken_username(user_service, pending_account):
    with pytest.raises(ValidationFailedError):
        await user_service.register("newcomer", "another")
    # Usernames are case-sensitive
    assert (await user_service.register("Newcomer", "another")).username == "Newcomer"


async def test_pending_account_cannot_log_in(user_service, pending_account):
    with pytest.raises(PermissionDeniedError):
        await user_service.authenticate("newcomer", "secret1")


async def test_bad_credentials(user_service, pending_account):
    with pytest.raises(AuthenticationError):
        await user_service.authenticate("newcomer", "wrong")
    with pytest.raises(AuthenticationError):
        await user_service.authenticate("nobody", "secret1")


async def test_approval_then_login_records_activity(user_service, owner_account, pending_account, local_backend):
    owner = session_for(owner_account)

    entry = await user_service.approve_user(owner, pending_account.id, UserRole.OFFICER)

    assert entry.action == AuditAction.ROLE_CHANGE
    assert entry.target_user == "newcomer"
    assert entry.details == "Approved as officer"

    account = await user_service.authenticate("newcomer", "secret1")
    assert account.role == UserRole.OFFICER
    assert account.last_activity is not None


async def test_approve_requires_active_role_and_pending_target(user_service, owner_account, pending_account):
    owner = session_for(owner_account)
    with pytest.raises(ValidationFailedError):
        await user_service.approve_user(owner, pending_account.id, UserRole.PENDING)

    await user_service.approve_user(owner, pending_account.id, UserRole.ORG_OWNER)
    with pytest.raises(ValidationFailedError):
        await user_service.approve_user(owner, pending_account.id, UserRole.OFFICER)


async def test_reject_removes_pending_account(user_service, owner_account, pending_account, local_backend):
    entry = await user_service.reject_user(session_for(owner_account), pending_account.id)

    assert entry.action == AuditAction.USER_REMOVE
    assert await local_backend.get_user(pending_account.id) is None


async def test_change_role_and_delete_are_audited(user_service, owner_account, pending_account, local_backend):
    owner = session_for(owner_account)
    await user_service.approve_user(owner, pending_account.id, UserRole.OFFICER)

    changed = await user_service.change_role(owner, pending_account.id, UserRole.ADMIN)
    removed = await user_service.delete_user(owner, pending_account.id)

    assert changed.details == "Role changed from officer to admin"
    assert removed.details == "Removed admin account"
    actions = [e.action for e in await local_backend.list_audit_entries()]
    assert actions == [AuditAction.USER_REMOVE, AuditAction.ROLE_CHANGE, AuditAction.ROLE_CHANGE]


async def test_owner_account_is_immutable_even_for_admins(user_service, owner_account, admin_session, local_backend):
    for attempt in (
        user_service.change_role(admin_session, owner_account.id, UserRole.OFFICER),
        user_service.delete_user(admin_session, owner_account.id),
    ):
        with pytest.raises(PermissionDeniedError):
            await attempt

    stored = await local_backend.get_user(owner_account.id)
    assert stored.role == UserRole.ADMIN
    assert stored.is_owner is True
    assert await local_backend.list_audit_entries() == []


@pytest.mark.parametrize("fixture_name", ["officer_session", "org_owner_session", "pending_session"])
async def test_user_management_requires_admin(request, user_service, pending_account, fixture_name):
    session = request.getfixturevalue(fixture_name)
    with pytest.raises(PermissionDeniedError):
        await user_service.list_pending_users(session)
    with pytest.raises(PermissionDeniedError):
        await user_service.approve_user(session, pending_account.id, UserRole.OFFICER)


async def test_unknown_user(user_service, admin_session):
    with pytest.raises(ResourceNotFoundError):
        await user_service.delete_user(admin_session, "missing")


async def test_listings_split_pending_and_active(user_service, owner_account, pending_account, admin_session):
    active = await user_service.list_active_users(admin_session)
    pending = await user_service.list_pending_users(admin_session)

    assert [u.username for u in active] == ["owner"]
    assert [u.username for u in pending] == ["newcomer"]


async def test_online_users_use_activity_window(user_service, owner_account, admin_session, local_backend):
    stale = await user_service.register("stale", "secret1")
    await user_service.approve_user(session_for(owner_account), stale.id, UserRole.OFFICER)
    await local_backend.update_user(stale.id, {"last_activity": datetime.now(timezone.utc) - timedelta(minutes=30)})
    await user_service.touch_activity(owner_account.id)

    online = await user_service.list_online_users(admin_session)

    assert [u.username for u in online] == ["owner"]


async def test_ensure_owner_account_is_idempotent(user_service, local_backend):
    first = await user_service.ensure_owner_account("owner", "owner-pass")
    again = await user_service.ensure_owner_account("owner", "other-pass")

    assert again.id == first.id
    assert len(await local_backend.list_users()) == 1
    assert verify_password("owner-pass", again.password_hash)


async def test_ensure_owner_account_promotes_existing_account(user_service):
    existing = await user_service.register("boss", "secret1")

    promoted = await user_service.ensure_owner_account("boss", "ignored")

    assert promoted.id == existing.id
    assert promoted.role == UserRole.ADMIN
    assert promoted.is_owner is True
    assert verify_password("secret1", promoted.password_hash)


async def test_second_owner_is_refused(user_service, owner_account, local_backend):
    result = await user_service.ensure_owner_account("owner2", "owner-pass")

    assert result.id == owner_account.id
    assert await local_backend.get_user_by_username("owner2") is None
    assert [u.username for u in await local_backend.list_users() if u.is_owner] == ["owner"]


async def test_second_owner_does_not_promote_existing_account(user_service, owner_account, pending_account):
    await user_service.ensure_owner_account("newcomer", "ignored")

    stored = await user_service.backend.get_user(pending_account.id)
    assert stored.role == UserRole.PENDING
    assert stored.is_owner is False


async def test_works_against_remote_backend(remote_backend):
    service = UserService(remote_backend)
    owner = await service.ensure_owner_account("owner", "owner-pass")
    pending = await service.register("newcomer", "secret1")

    await service.approve_user(session_for(owner), pending.id, UserRole.OFFICER)

    assert (await service.authenticate("newcomer", "secret1")).role == UserRole.OFFICER
