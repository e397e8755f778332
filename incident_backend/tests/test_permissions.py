"""
Role engine tests: capability matrix, record ownership and the owner account.
"""

import pytest

from incident_backend.app.core.exceptions import PermissionDeniedError
from incident_backend.app.core.permissions import (
    Capability,
    can_create,
    can_delete,
    can_edit,
    can_manage_users,
    can_modify_account,
    can_view,
    capabilities_for,
    ensure_account_mutable,
    is_active_role,
    require_application_owner,
    require_capability,
)
from incident_backend.app.models.enums import UserRole
from incident_backend.tests.support import make_session


@pytest.mark.parametrize(
    "role, expected",
    [
        (UserRole.PENDING, set()),
        (UserRole.ORG_OWNER, {Capability.VIEW, Capability.CREATE, Capability.EDIT}),
        (UserRole.OFFICER, {Capability.VIEW, Capability.CREATE, Capability.EDIT}),
        (UserRole.ADMIN, set(Capability)),
    ],
)
def test_capability_matrix(role, expected):
    assert set(capabilities_for(role)) == expected


def test_only_admin_deletes_and_manages_users():
    assert can_delete(UserRole.ADMIN)
    assert can_manage_users(UserRole.ADMIN)
    for role in (UserRole.PENDING, UserRole.OFFICER, UserRole.ORG_OWNER):
        assert not can_delete(role)
        assert not can_manage_users(role)


def test_pending_has_nothing():
    assert not can_create(UserRole.PENDING)
    assert not can_view(UserRole.PENDING, "someone", "pending_user")
    assert not can_edit(UserRole.PENDING)
    assert not is_active_role(UserRole.PENDING)


def test_org_owner_limited_to_own_records():
    assert can_view(UserRole.ORG_OWNER, "org_user", "org_user")
    assert not can_view(UserRole.ORG_OWNER, "other", "org_user")
    assert can_edit(UserRole.ORG_OWNER, "org_user", "org_user")
    assert not can_edit(UserRole.ORG_OWNER, "other", "org_user")
    # Role-level question without a specific record
    assert can_edit(UserRole.ORG_OWNER)


def test_officer_sees_and_edits_everything():
    assert can_view(UserRole.OFFICER, "other", "officer_user")
    assert can_edit(UserRole.OFFICER, "other", "officer_user")


def test_require_capability_names_missing_capability():
    session = make_session(UserRole.OFFICER)
    with pytest.raises(PermissionDeniedError) as exc_info:
        require_capability(session, Capability.DELETE)
    assert exc_info.value.capability == "delete"
    assert exc_info.value.error_code == "PERMISSION_DENIED"
    assert "delete" in exc_info.value.message


def test_require_capability_checks_record_owner():
    session = make_session(UserRole.ORG_OWNER, "org_user")
    require_capability(session, Capability.EDIT, record_owner="org_user")
    with pytest.raises(PermissionDeniedError):
        require_capability(session, Capability.EDIT, record_owner="officer_user")
    with pytest.raises(PermissionDeniedError):
        require_capability(session, Capability.VIEW, record_owner="officer_user")


def test_application_owner_flag_not_role():
    admin = make_session(UserRole.ADMIN, "admin_user")
    owner = make_session(UserRole.ADMIN, "owner", is_owner=True)
    require_application_owner(owner, "clear all records")
    with pytest.raises(PermissionDeniedError):
        require_application_owner(admin, "clear all records")


def test_owner_account_is_immutable():
    assert can_modify_account(False)
    assert not can_modify_account(True)
    ensure_account_mutable(False, "officer_user")
    with pytest.raises(PermissionDeniedError):
        ensure_account_mutable(True, "owner")
