"""
Role-Based Access Control Module

Cooperative staff roles, the user directory that maps users to roles, and the
role policy the state machine consults before every guarded operation.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Iterable, List, Optional

from .audit import AuditEventType, AuditTrail
from .exceptions import PrerequisiteNotMet, ValidationError
from .logging_config import get_logger, log_action
from .storage import StorageInterface, StorageRecord


logger = get_logger("coop_lending.rbac")


class Role(Enum):
    """Staff roles"""
    ADMIN = "admin"
    BOOKKEEPER = "bookkeeper"
    PAYROLL_CHECKER = "payroll_checker"
    APPROVER = "approver"
    USER = "user"            # provisioned, no workflow privileges


# Roles permitted per guarded operation
APPROVERS = frozenset({Role.APPROVER, Role.ADMIN})
RELEASERS = frozenset({Role.BOOKKEEPER, Role.ADMIN})
COLLECTORS = frozenset({Role.BOOKKEEPER, Role.ADMIN})
PAYROLL = frozenset({Role.PAYROLL_CHECKER, Role.ADMIN})
ADMINS = frozenset({Role.ADMIN})


@dataclass
class User(StorageRecord):
    """Directory entry: one user identity and its assigned role"""
    username: str
    role: Role = Role.USER
    is_active: bool = True
    created_by: str = ""


class RolePolicy(ABC):
    """Answers whether an acting user holds one of the required roles"""

    @abstractmethod
    def role_of(self, acting_user: str) -> Optional[Role]:
        pass

    def has_role(self, acting_user: Optional[str], required_roles: Iterable[Role]) -> bool:
        if not acting_user:
            return False
        role = self.role_of(acting_user)
        return role is not None and role in set(required_roles)

    def require(self, acting_user: Optional[str], required_roles: Iterable[Role], operation: str) -> None:
        """
        Raise PrerequisiteNotMet unless the acting user holds a required role.
        """
        required = set(required_roles)
        if not self.has_role(acting_user, required):
            names = " or ".join(sorted(r.value for r in required))
            raise PrerequisiteNotMet(
                f"Only {names} may {operation}",
                prerequisite="role",
                detail={"acting_user": acting_user, "required_roles": sorted(r.value for r in required)},
            )


class StaticRolePolicy(RolePolicy):
    """Fixed user -> role mapping, for tests and embedded use"""

    def __init__(self, assignments: Optional[Dict[str, Role]] = None):
        self.assignments = dict(assignments or {})

    def role_of(self, acting_user: str) -> Optional[Role]:
        return self.assignments.get(acting_user)


class UserDirectory:
    """
    Stores users and their roles. Role changes are admin-only.
    """

    def __init__(self, storage: StorageInterface, audit: Optional[AuditTrail] = None):
        self.storage = storage
        self.audit = audit
        self.users_table = "users"

    def create_user(self, user_id: str, username: str, role: Role = Role.USER,
                    created_by: str = "system") -> User:
        """Provision a user identity with its initial role"""
        if self.storage.exists(self.users_table, user_id):
            raise ValidationError(f"User {user_id} already exists")
        now = datetime.now(timezone.utc)
        user = User(
            id=user_id,
            created_at=now,
            updated_at=now,
            username=username,
            role=role,
            created_by=created_by,
        )
        self.storage.save(self.users_table, user_id, user.to_dict())
        log_action(logger, "info", f"User {username} provisioned as {role.value}",
                   user_id=created_by, action="create_user", resource=f"user:{user_id}")
        return user

    def get_user(self, user_id: str) -> Optional[User]:
        data = self.storage.load(self.users_table, user_id)
        if not data:
            return None
        data['role'] = Role(data['role'])
        return User.from_dict(data)

    def list_users(self, role: Optional[Role] = None) -> List[User]:
        users = [self.get_user(d['id']) for d in self.storage.load_all(self.users_table)]
        return [u for u in users if u and (role is None or u.role == role)]

    def role_of(self, user_id: str) -> Optional[Role]:
        user = self.get_user(user_id)
        if user is None or not user.is_active:
            return None
        return user.role

    def set_role(self, user_id: str, role: Role, acting_user: str) -> User:
        """
        Change a user's role.

        Raises:
            PrerequisiteNotMet: If the acting user is not an admin
            ValidationError: If the user does not exist
        """
        DirectoryRolePolicy(self).require(acting_user, ADMINS, "change user roles")
        user = self.get_user(user_id)
        if user is None:
            raise ValidationError(f"User {user_id} does not exist")

        previous = user.role
        user.role = role
        user.updated_at = datetime.now(timezone.utc)
        self.storage.save(self.users_table, user_id, user.to_dict())

        if self.audit:
            self.audit.log_event(
                AuditEventType.USER_ROLE_CHANGED, "user", user_id,
                {"from": previous.value, "to": role.value}, acting_user
            )
        log_action(logger, "info", f"Role of {user.username} changed to {role.value}",
                   user_id=acting_user, action="set_role", resource=f"user:{user_id}")
        return user


class DirectoryRolePolicy(RolePolicy):
    """Role policy backed by the user directory"""

    def __init__(self, directory: UserDirectory):
        self.directory = directory

    def role_of(self, acting_user: str) -> Optional[Role]:
        return self.directory.role_of(acting_user)
