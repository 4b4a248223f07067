"""
Reconcilers that turn a DiffSync diff into Snowflake actions
"""

import logging
from typing import Dict, List

from diffsync.diff import Diff
from diffsync.enum import DiffSyncActions

from errors import ConfigurationError
from plan import CreateRole, CreateUser, DisableUser, EnableUser, GrantRole, ReconciliationAction, RevokeRole
from state import CurrentState, CurrentStateAdapter, DesiredState, DesiredStateAdapter


logger = logging.getLogger(__name__)


NULL_MARKERS = frozenset({"", "null", "none"})


def is_null_marker(name) -> bool:
    return name is None or name.strip().lower() in NULL_MARKERS


def compute_diff(desired: DesiredState, current: CurrentState) -> Diff:
    """Diff Snowflake against LDAP. Creates are missing in Snowflake, deletes are extra there."""
    desired_adapter = DesiredStateAdapter(desired, unmanaged_users=current.non_federated)
    current_adapter = CurrentStateAdapter(current, role_names=desired.role_members)
    desired_adapter.load()
    current_adapter.load()

    logger.debug(f"LDAP side has {len(desired_adapter.get_all('user'))} users, "
                 f"{len(desired_adapter.get_all('grant'))} grants")
    logger.debug(f"Snowflake side has {len(current_adapter.get_all('user'))} users, "
                 f"{len(current_adapter.get_all('grant'))} grants")

    diff = current_adapter.diff_from(desired_adapter)
    logger.info(f"Diff summary: {diff.summary()}")
    return diff


def reconcile_users(diff: Diff, current: CurrentState, create_missing_users: bool = True,
                    disable_removed_users: bool = False) -> List[ReconciliationAction]:
    """
    Create or enable users LDAP expects, disable users it no longer knows.
    Raises ConfigurationError when users are missing and may not be created.
    """
    missing = []
    superfluous = []
    for element in diff.get_children():
        if element.type != "user":
            continue
        if is_null_marker(element.keys["name"]):
            continue
        if element.action == DiffSyncActions.CREATE:
            missing.append(element.keys["name"])
        elif element.action == DiffSyncActions.DELETE:
            superfluous.append(element.keys["name"])

    if missing and not create_missing_users:
        raise ConfigurationError("Users are missing in Snowflake and creating users is disabled", missing)

    actions: List[ReconciliationAction] = []
    disabled = current.disabled_federated
    for name in sorted(missing):
        if name in disabled:
            actions.append(EnableUser(name))
        else:
            actions.append(CreateUser(name))

    if disable_removed_users:
        actions.extend(DisableUser(name) for name in sorted(superfluous))
    elif superfluous:
        logger.info(f"Leaving {len(superfluous)} users enabled that are in no synced group: "
                    f"{', '.join(sorted(superfluous))}")

    return actions


def reconcile_role_grants(diff: Diff) -> Dict[str, List[ReconciliationAction]]:
    """Per role: create it if needed, then grant and revoke to match LDAP."""
    role_actions: Dict[str, List[ReconciliationAction]] = {}
    for element in diff.get_children():
        if element.type != "role":
            continue
        role_name = element.keys["name"]

        actions: List[ReconciliationAction] = []
        if element.action == DiffSyncActions.CREATE:
            actions.append(CreateRole(role_name))

        grants = []
        revokes = []
        for child in element.get_children():
            grantee = child.keys["grantee_name"]
            if child.action == DiffSyncActions.CREATE:
                if is_null_marker(grantee):
                    logger.warning(f"Skipping empty member of role '{role_name}'")
                    continue
                grants.append(GrantRole(role_name, grantee))
            elif child.action == DiffSyncActions.DELETE:
                revokes.append(RevokeRole(role_name, grantee))

        actions.extend(sorted(grants, key=lambda action: action.user))
        actions.extend(sorted(revokes, key=lambda action: action.user))
        if actions:
            role_actions[role_name] = actions

    return role_actions
