"""
Tests for roles, the user directory and role policies
"""

import pytest

from coop_lending.audit import AuditEventType
from coop_lending.exceptions import PrerequisiteNotMet, ValidationError
from coop_lending.rbac import (
    APPROVERS, COLLECTORS, PAYROLL, DirectoryRolePolicy, Role, StaticRolePolicy, UserDirectory,
)


class TestStaticRolePolicy:

    def setup_method(self):
        self.policy = StaticRolePolicy({"ap": Role.APPROVER, "admin": Role.ADMIN, "clerk": Role.USER})

    def test_has_role(self):
        assert self.policy.has_role("ap", APPROVERS)
        assert self.policy.has_role("admin", APPROVERS)
        assert not self.policy.has_role("clerk", APPROVERS)

    def test_unknown_or_missing_user_has_no_role(self):
        assert not self.policy.has_role("stranger", APPROVERS)
        assert not self.policy.has_role(None, APPROVERS)
        assert not self.policy.has_role("", APPROVERS)

    def test_require_names_allowed_roles(self):
        with pytest.raises(PrerequisiteNotMet) as exc_info:
            self.policy.require("clerk", APPROVERS, "approve loans")

        error = exc_info.value
        assert error.message == "Only admin or approver may approve loans"
        assert error.prerequisite == "role"
        assert error.detail["acting_user"] == "clerk"

    def test_admin_covers_every_operation(self):
        for roles in (APPROVERS, COLLECTORS, PAYROLL):
            self.policy.require("admin", roles, "do anything")


class TestUserDirectory:

    @pytest.fixture
    def directory(self, storage, audit):
        directory = UserDirectory(storage, audit)
        directory.create_user("admin", "Admin", Role.ADMIN)
        directory.create_user("u-1", "Ana Cruz")
        return directory

    def test_new_users_have_no_privileges(self, directory):
        assert directory.get_user("u-1").role == Role.USER
        assert not DirectoryRolePolicy(directory).has_role("u-1", APPROVERS)

    def test_duplicate_user_rejected(self, directory):
        with pytest.raises(ValidationError):
            directory.create_user("u-1", "Someone Else")

    def test_admin_changes_role(self, directory, audit):
        directory.set_role("u-1", Role.BOOKKEEPER, "admin")

        assert directory.role_of("u-1") == Role.BOOKKEEPER
        events = audit.get_events_for_entity("user", "u-1")
        assert events[-1].event_type == AuditEventType.USER_ROLE_CHANGED
        assert events[-1].metadata == {"from": "user", "to": "bookkeeper"}

    def test_non_admin_cannot_change_roles(self, directory):
        directory.set_role("u-1", Role.APPROVER, "admin")
        with pytest.raises(PrerequisiteNotMet):
            directory.set_role("u-1", Role.ADMIN, "u-1")
        assert directory.role_of("u-1") == Role.APPROVER

    def test_unknown_user(self, directory):
        with pytest.raises(ValidationError):
            directory.set_role("ghost", Role.APPROVER, "admin")
        assert directory.get_user("ghost") is None

    def test_inactive_user_has_no_role(self, directory, storage):
        record = storage.load("users", "u-1")
        record["is_active"] = False
        storage.save("users", "u-1", record)
        assert directory.role_of("u-1") is None

    def test_list_users_by_role(self, directory):
        directory.create_user("u-2", "Ben Reyes", Role.APPROVER)
        assert [u.id for u in directory.list_users(Role.APPROVER)] == ["u-2"]
        assert len(directory.list_users()) == 3
