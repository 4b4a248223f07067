"""
State normalization for LDAP to Snowflake sync

Turns what LDAP and Snowflake return into DesiredState and CurrentState and
loads both into DiffSync adapters so they can be compared.
"""

import logging
from dataclasses import dataclass, field, replace
from typing import Dict, FrozenSet, Iterable, List, Optional, Tuple

from diffsync import Adapter

from models import (
    DirectoryGroup,
    DirectorySource,
    FederatedUser,
    GranteeKind,
    Role,
    RoleGrant,
    RoleGrantRecord,
    UserKind,
    WarehouseClient,
    WarehouseUser,
)


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DesiredState:
    """Role name -> logins that should hold the role, as derived from LDAP."""

    role_members: Dict[str, FrozenSet[str]] = field(default_factory=dict)

    @property
    def users(self) -> FrozenSet[str]:
        return frozenset().union(*self.role_members.values())


@dataclass(frozen=True)
class CurrentState:
    """Snapshot of Snowflake users, roles and the user grants of the synced roles."""

    users: Dict[str, UserKind] = field(default_factory=dict)
    roles: FrozenSet[str] = frozenset()
    grants: Tuple[RoleGrantRecord, ...] = ()

    def users_of_kind(self, kind: UserKind) -> FrozenSet[str]:
        return frozenset(name for name, user_kind in self.users.items() if user_kind is kind)

    @property
    def non_federated(self) -> FrozenSet[str]:
        return self.users_of_kind(UserKind.NON_FEDERATED)

    @property
    def enabled_federated(self) -> FrozenSet[str]:
        return self.users_of_kind(UserKind.FEDERATED_ENABLED)

    @property
    def disabled_federated(self) -> FrozenSet[str]:
        return self.users_of_kind(UserKind.FEDERATED_DISABLED)


def derive_role_name(group_name: str, role_prefix: Optional[str] = None,
                     remove_role_prefix: bool = False) -> Optional[str]:
    """
    Map a group name to a role name.
    Returns None when the group does not match the configured prefix.
    """
    if not role_prefix:
        return group_name
    if not group_name.startswith(role_prefix):
        return None
    if remove_role_prefix:
        return group_name[len(role_prefix):]
    return group_name


def build_desired_state(groups: Iterable[DirectoryGroup], role_prefix: Optional[str] = None,
                        remove_role_prefix: bool = False) -> DesiredState:
    """Build the role mapping from groups whose members are already resolved."""
    role_members: Dict[str, FrozenSet[str]] = {}
    source_groups: Dict[str, str] = {}

    for group in groups:
        role_name = derive_role_name(group.name, role_prefix, remove_role_prefix)
        if role_name is None:
            logger.debug(f"Skipping group '{group.name}' - does not match prefix '{role_prefix}'")
            continue
        if not role_name:
            logger.warning(f"Skipping group '{group.name}' - role name is empty after removing prefix")
            continue

        if role_name in role_members:
            # Later group replaces the earlier one instead of merging
            logger.warning(
                f"Groups '{source_groups[role_name]}' and '{group.name}' both map to role "
                f"'{role_name}', using members of '{group.name}'"
            )
        role_members[role_name] = frozenset(group.members)
        source_groups[role_name] = group.name

    return DesiredState(role_members=role_members)


def build_current_state(users: Iterable[WarehouseUser], roles: Iterable[str],
                        grants: Iterable[RoleGrantRecord]) -> CurrentState:
    """
    Partition Snowflake users by kind and keep only the grants that can be
    reconciled: USER grants whose grantee is a federated user.
    """
    user_kinds = {user.name: user.kind for user in users}

    kept = []
    for grant in grants:
        if grant.grantee_kind is not GranteeKind.USER:
            logger.debug(f"Ignoring nested role grant {grant.role} -> {grant.grantee_name}")
            continue
        kind = user_kinds.get(grant.grantee_name)
        if kind is None or not kind.is_federated:
            logger.debug(f"Ignoring grant {grant.role} -> {grant.grantee_name} - not a federated user")
            continue
        kept.append(grant)

    return CurrentState(users=user_kinds, roles=frozenset(roles), grants=tuple(dict.fromkeys(kept)))


def collect_state(directory: DirectorySource, warehouse: WarehouseClient, group_ou: str,
                  login_attribute: str = "mail", role_prefix: Optional[str] = None,
                  remove_role_prefix: bool = False) -> Tuple[DesiredState, CurrentState]:
    """Read everything the diff needs. Any collaborator error propagates."""
    users = warehouse.list_users()
    logger.info(f"Loaded {len(users)} users from Snowflake")

    groups: List[DirectoryGroup] = []
    for group in directory.list_security_groups(group_ou):
        if not derive_role_name(group.name, role_prefix, remove_role_prefix):
            logger.debug(f"Skipping group '{group.name}' - not synced")
            continue
        members = directory.resolve_members(group, login_attribute)
        logger.info(f"Group '{group.name}' has {len(members)} members")
        groups.append(replace(group, members=frozenset(members)))

    desired = build_desired_state(groups, role_prefix, remove_role_prefix)
    logger.info(f"Loaded {len(desired.role_members)} roles from LDAP")

    roles = warehouse.list_roles()
    existing_desired_roles = sorted(set(roles) & set(desired.role_members))
    grants = warehouse.list_grants_of_roles(existing_desired_roles) if existing_desired_roles else []
    logger.info(f"Loaded {len(roles)} roles and {len(grants)} grants from Snowflake")

    return desired, build_current_state(users, roles, grants)


class DesiredStateAdapter(Adapter):
    """
    DiffSync adapter for the state LDAP asks for.
    Logins of non-federated Snowflake users are left out, they are not managed.
    """

    user = FederatedUser
    role = Role
    grant = RoleGrant
    top_level = ["user", "role"]

    def __init__(self, desired: DesiredState, unmanaged_users: Iterable[str] = (), *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.desired = desired
        self.unmanaged_users = frozenset(unmanaged_users)

    def load(self):
        skipped = sorted(self.desired.users & self.unmanaged_users)
        if skipped:
            logger.warning(f"Not managing users with a local password: {', '.join(skipped)}")

        for name in sorted(self.desired.users - self.unmanaged_users):
            self.add(FederatedUser(name=name))

        for role_name, members in sorted(self.desired.role_members.items()):
            role = Role(name=role_name)
            self.add(role)
            for member in sorted(members - self.unmanaged_users):
                grant = RoleGrant(role_name=role_name, grantee_name=member)
                self.add(grant)
                role.add_child(grant)


class CurrentStateAdapter(Adapter):
    """
    DiffSync adapter for the state Snowflake is in.
    Only enabled federated users and the roles named in role_names are loaded.
    """

    user = FederatedUser
    role = Role
    grant = RoleGrant
    top_level = ["user", "role"]

    def __init__(self, current: CurrentState, role_names: Iterable[str], *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.current = current
        self.role_names = frozenset(role_names)

    def load(self):
        for name in sorted(self.current.enabled_federated):
            self.add(FederatedUser(name=name))

        roles: Dict[str, Role] = {}
        for role_name in sorted(self.current.roles & self.role_names):
            roles[role_name] = Role(name=role_name)
            self.add(roles[role_name])

        for record in self.current.grants:
            role = roles.get(record.role)
            if role is None:
                continue
            grant = RoleGrant(role_name=record.role, grantee_name=record.grantee_name)
            self.add(grant)
            role.add_child(grant)
