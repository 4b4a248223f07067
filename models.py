"""
Data models for LDAP to Snowflake sync

Plain value types describe what the directory and the warehouse return,
DiffSync models describe what gets compared between them.
"""

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import FrozenSet, Iterable, List, Protocol, Set

from diffsync import DiffSyncModel


class UserKind(Enum):
    """How a Snowflake user is managed. Every user has exactly one kind."""

    NON_FEDERATED = "non-federated"
    FEDERATED_ENABLED = "federated-enabled"
    FEDERATED_DISABLED = "federated-disabled"

    @property
    def is_federated(self) -> bool:
        return self is not UserKind.NON_FEDERATED


class GranteeKind(Enum):
    USER = "USER"
    ROLE = "ROLE"


@dataclass(frozen=True)
class DirectoryGroup:
    """A security group found in the configured OU."""

    dn: str
    name: str
    members: FrozenSet[str] = field(default_factory=frozenset)


@dataclass(frozen=True)
class WarehouseUser:
    name: str
    has_password: bool
    disabled: bool

    @property
    def kind(self) -> UserKind:
        if self.has_password:
            return UserKind.NON_FEDERATED
        if self.disabled:
            return UserKind.FEDERATED_DISABLED
        return UserKind.FEDERATED_ENABLED


@dataclass(frozen=True)
class RoleGrantRecord:
    """One row of SHOW GRANTS OF ROLE."""

    role: str
    grantee_name: str
    grantee_kind: GranteeKind


class DirectorySource(Protocol):
    def list_security_groups(self, ou_dn: str) -> List[DirectoryGroup]:
        ...

    def resolve_members(self, group: DirectoryGroup, login_attribute: str) -> Set[str]:
        ...


class WarehouseClient(Protocol):
    def list_users(self) -> List[WarehouseUser]:
        ...

    def list_roles(self) -> List[str]:
        ...

    def list_grants_of_roles(self, role_names: Iterable[str]) -> List[RoleGrantRecord]:
        ...

    def execute(self, statement_block: str) -> None:
        ...


class FederatedUser(DiffSyncModel):
    """
    DiffSync model representing a federated (password-less) Snowflake user.
    On the warehouse side only enabled users are loaded, so a disabled user
    that is still wanted shows up as a create.
    """
    _modelname = "user"
    _identifiers = ("name",)
    _attributes = ()

    name: str


class RoleGrant(DiffSyncModel):
    """
    DiffSync model representing a grant of a role to a federated user.
    """
    _modelname = "grant"
    _identifiers = ("role_name", "grantee_name")
    _attributes = ()

    role_name: str
    grantee_name: str

    @classmethod
    def create_unique_id(cls, **identifiers) -> str:
        # Role and user names may both contain "__", the default separator
        return json.dumps([identifiers["role_name"], identifiers["grantee_name"]])

    def get_unique_id(self) -> str:
        return self.create_unique_id(role_name=self.role_name, grantee_name=self.grantee_name)


class Role(DiffSyncModel):
    """
    DiffSync model representing a Snowflake role with its user grants as children.
    """
    _modelname = "role"
    _identifiers = ("name",)
    _attributes = ()
    _children = {"grant": "grants"}

    name: str
    grants: List = []
