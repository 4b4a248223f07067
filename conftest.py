"""Shared fixtures and in-memory LDAP / Snowflake stand-ins for the sync tests."""

from typing import Dict, Iterable, List, Optional, Set

import pytest

from config import SyncConfig
from errors import CollaboratorError
from models import DirectoryGroup, GranteeKind, RoleGrantRecord, WarehouseUser
from plan import (
    CreateRole,
    CreateUser,
    DisableUser,
    EnableUser,
    GrantRole,
    ReconciliationPlan,
    RevokeRole,
)


GROUP_OU = "OU=Snowflake,OU=Groups,DC=example,DC=com"


class FakeDirectory:
    """Security groups of one OU with already flattened, enabled members."""

    def __init__(self):
        self.groups: List[DirectoryGroup] = []
        self.members: Dict[str, Set[str]] = {}
        self.resolved: List[str] = []
        self.fail = False

    def add_group(self, name: str, members: Iterable[str] = (), dn: Optional[str] = None):
        dn = dn or f"CN={name},{GROUP_OU}"
        self.groups.append(DirectoryGroup(dn=dn, name=name))
        self.members[dn] = set(members)

    def list_security_groups(self, ou_dn: str) -> List[DirectoryGroup]:
        if self.fail:
            raise CollaboratorError("LDAP server unavailable")
        return list(self.groups)

    def resolve_members(self, group: DirectoryGroup, login_attribute: str) -> Set[str]:
        self.resolved.append(group.name)
        return set(self.members[group.dn])


class FakeWarehouse:
    """Snowflake users, roles and grants kept in memory."""

    def __init__(self):
        self.users: Dict[str, WarehouseUser] = {}
        self.roles: Set[str] = set()
        self.grants: Set[RoleGrantRecord] = set()
        self.executed: List[str] = []
        self.fail_on: Optional[str] = None

    def add_user(self, name: str, has_password: bool = False, disabled: bool = False):
        self.users[name] = WarehouseUser(name=name, has_password=has_password, disabled=disabled)

    def grant(self, role: str, grantee: str, kind: GranteeKind = GranteeKind.USER):
        self.roles.add(role)
        self.grants.add(RoleGrantRecord(role=role, grantee_name=grantee, grantee_kind=kind))

    def user_grants(self, role: str) -> Set[str]:
        return {
            g.grantee_name for g in self.grants
            if g.role == role and g.grantee_kind is GranteeKind.USER
        }

    def _check(self, operation: str):
        if self.fail_on == operation:
            raise CollaboratorError(f"Snowflake {operation} failed")

    def list_users(self) -> List[WarehouseUser]:
        self._check("list_users")
        return list(self.users.values())

    def list_roles(self) -> List[str]:
        self._check("list_roles")
        return sorted(self.roles)

    def list_grants_of_roles(self, role_names: Iterable[str]) -> List[RoleGrantRecord]:
        self._check("list_grants_of_roles")
        wanted = set(role_names)
        return [g for g in self.grants if g.role in wanted]

    def execute(self, statement_block: str) -> None:
        self._check("execute")
        self.executed.append(statement_block)

    def apply(self, plan: ReconciliationPlan):
        """Apply plan actions directly, as Snowflake would after COMMIT."""
        for action in plan.actions:
            if isinstance(action, CreateUser):
                self.add_user(action.user)
            elif isinstance(action, EnableUser):
                self.add_user(action.user, disabled=False)
            elif isinstance(action, DisableUser):
                self.add_user(action.user, disabled=True)
            elif isinstance(action, CreateRole):
                self.roles.add(action.role)
            elif isinstance(action, GrantRole):
                self.grant(action.role, action.user)
            elif isinstance(action, RevokeRole):
                self.grants.discard(RoleGrantRecord(action.role, action.user, GranteeKind.USER))


@pytest.fixture
def directory():
    return FakeDirectory()


@pytest.fixture
def warehouse():
    return FakeWarehouse()


@pytest.fixture
def config():
    return SyncConfig(
        snowflake_account="xy12345",
        snowflake_user="SYNC_USER",
        snowflake_password="secret",
        ldap_server="ldap://dc.example.com",
        ldap_bind_dn="CN=svc-sync,OU=Service,DC=example,DC=com",
        ldap_bind_password="secret",
        group_ou=GROUP_OU,
    )
