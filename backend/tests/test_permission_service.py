"""
Permission guard tests.

Verifies:
- ANY-of semantics for permission requirements
- Owner-or-permission truth table
- Denials are written to the security event log
- update_permissions is guarded and replaces the set as a whole
"""

import pytest

from storefront.errors import AuthenticationRequired, NotFound, PermissionDenied, ValidationError
from storefront.models import SecurityEvent
from storefront.permissions import ADMIN, ITEMUPDATE, MANAGE_USERS, PERMISSIONUPDATE
from storefront.services import permission_service
from storefront.services.session_service import Identity

from conftest import identity_for


def _identity(user_id=1, *codes):
    return Identity(user_id=user_id, email=f"u{user_id}@example.com", permissions=frozenset(codes))


class TestRequireAny:
    def test_no_identity(self, db_session):
        with pytest.raises(AuthenticationRequired):
            permission_service.require_any(None, {ADMIN})

    def test_admin_only_requirement(self, db_session, user):
        with pytest.raises(PermissionDenied):
            permission_service.require_any(_identity(user.id, "USER"), {ADMIN})
        permission_service.require_any(_identity(user.id, ADMIN), {ADMIN})

    def test_one_of_many_is_enough(self, db_session):
        identity = _identity(1, "USER", PERMISSIONUPDATE)
        assert permission_service.require_any(identity, MANAGE_USERS) is identity

    def test_denial_is_logged(self, db_session, user):
        with pytest.raises(PermissionDenied) as excinfo:
            permission_service.require_any(identity_for(user), MANAGE_USERS)

        assert excinfo.value.required == sorted(MANAGE_USERS)
        event = db_session.query(SecurityEvent).filter_by(user_id=user.id).one()
        assert event.event_type == "PERMISSION_DENIED"
        assert event.success is False


class TestOwnerOrAny:
    """allow iff owner OR has any required permission"""

    @pytest.mark.parametrize(
        "owner,codes,allowed",
        [
            (True, {ITEMUPDATE}, True),
            (True, set(), True),
            (False, {ITEMUPDATE}, True),
            (False, set(), False),
        ],
    )
    def test_truth_table(self, db_session, user, owner, codes, allowed):
        identity = _identity(user.id, "USER", *codes)
        owner_id = user.id if owner else user.id + 1000

        if allowed:
            assert permission_service.require_owner_or_any(identity, owner_id, {ADMIN, ITEMUPDATE}) is identity
        else:
            with pytest.raises(PermissionDenied):
                permission_service.require_owner_or_any(identity, owner_id, {ADMIN, ITEMUPDATE})

    def test_is_owner_needs_identity(self):
        assert permission_service.is_owner(1, None) is False
        assert permission_service.is_owner(None, _identity(1)) is False


class TestUpdatePermissions:
    def test_admin_replaces_set(self, db_session, admin, user):
        updated = permission_service.update_permissions(identity_for(admin), user.id, ["USER", "ITEMUPDATE"])
        assert updated.permissions == frozenset({"USER", "ITEMUPDATE"})

        updated = permission_service.update_permissions(identity_for(admin), user.id, ["ITEMDELETE"])
        assert updated.permissions == frozenset({"ITEMDELETE"})

    def test_permissionupdate_holder_may_update(self, db_session, make_user, user):
        manager = make_user("mgr@example.com", permissions={"USER", PERMISSIONUPDATE})
        updated = permission_service.update_permissions(identity_for(manager), user.id, ["USER", "ADMIN"])
        assert "ADMIN" in updated.permissions

    def test_plain_user_denied(self, db_session, user, other_user):
        with pytest.raises(PermissionDenied):
            permission_service.update_permissions(identity_for(user), other_user.id, ["ADMIN"])
        assert other_user.permissions == frozenset({"USER"})

    def test_unknown_code_rejected(self, db_session, admin, user):
        with pytest.raises(ValidationError):
            permission_service.update_permissions(identity_for(admin), user.id, ["USER", "SUPERUSER"])
        assert user.permissions == frozenset({"USER"})

    def test_missing_target(self, db_session, admin):
        with pytest.raises(NotFound):
            permission_service.update_permissions(identity_for(admin), 999999, ["USER"])

    def test_list_users_guarded(self, db_session, admin, user):
        assert {u.id for u in permission_service.list_users(identity_for(admin))} == {admin.id, user.id}
        with pytest.raises(PermissionDenied):
            permission_service.list_users(identity_for(user))
