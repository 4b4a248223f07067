#!/usr/bin/env python3
"""
LDAP to Snowflake Role Sync

This script syncs Active Directory security groups below an OU to Snowflake
roles using the diffsync library. Federated Snowflake users (users without a
password) are created, enabled and disabled to follow group membership.
"""

import argparse
import logging
import sys
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

from config import SyncConfig
from errors import SyncError
from ldap_adapter import LDAPDirectorySource
from models import DirectorySource, WarehouseClient
from plan import PlanOutcome, ReconciliationPlan, apply_plan, build_plan
from reconcile import compute_diff, reconcile_role_grants, reconcile_users
from snowflake_adapter import SnowflakeClient
from state import collect_state


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SyncResult:
    outcome: PlanOutcome
    plan: ReconciliationPlan
    rendered: Optional[str] = None


@contextmanager
def sync_phase(name: str):
    """
    Tag errors raised inside the block with the phase they happened in.
    Anything that is not a SyncError is wrapped so the phase is never lost.
    """
    logger.debug(f"Entering phase: {name}")
    try:
        yield
    except SyncError as e:
        if e.phase is None:
            e.phase = name
        raise
    except Exception as e:
        raise SyncError(f"Unexpected {type(e).__name__}: {e}", phase=name) from e


def run_sync(config: SyncConfig, directory: DirectorySource, warehouse: WarehouseClient,
             dry_run: Optional[bool] = None) -> SyncResult:
    """
    Compute the changes that make Snowflake match LDAP and apply or render them.
    Nothing is written to Snowflake unless every read and policy check succeeded.
    """
    dry_run = config.dry_run if dry_run is None else dry_run

    with sync_phase("collection"):
        desired, current = collect_state(
            directory,
            warehouse,
            config.group_ou,
            login_attribute=config.login_attribute,
            role_prefix=config.role_prefix,
            remove_role_prefix=config.remove_role_prefix
        )

    with sync_phase("policy check"):
        diff = compute_diff(desired, current)
        user_actions = reconcile_users(
            diff,
            current,
            create_missing_users=config.create_missing_users,
            disable_removed_users=config.disable_removed_users
        )
        role_actions = reconcile_role_grants(diff)
        plan = build_plan(user_actions, role_actions)

    with sync_phase("execution"):
        outcome, rendered = apply_plan(plan, warehouse, dry_run=dry_run)

    return SyncResult(outcome=outcome, plan=plan, rendered=rendered)


def sync_ldap_to_snowflake(config: SyncConfig) -> SyncResult:
    """
    Main sync function.
    Validates the configuration, connects to both sides and runs the sync.
    """
    logger.info("Starting LDAP to Snowflake sync")

    with sync_phase("configuration"):
        config.validate()

    if config.dry_run:
        logger.info("Running in DRY RUN mode - no changes will be made")

    directory = LDAPDirectorySource(
        server=config.ldap_server,
        bind_dn=config.ldap_bind_dn,
        bind_password=config.ldap_bind_password,
        use_tls=config.ldap_use_tls,
        ca_cert_file=config.ldap_ca_cert_file,
        user_base_dn=config.ldap_user_base_dn,
        page_size=config.ldap_page_size
    )
    warehouse = SnowflakeClient(
        account=config.snowflake_account,
        user=config.snowflake_user,
        password=config.snowflake_password,
        role=config.snowflake_role,
        region=config.snowflake_region
    )

    try:
        with sync_phase("collection"):
            warehouse.connect_snowflake()
            directory.connect_ldap()

        result = run_sync(config, directory, warehouse)
        logger.info(f"Sync completed successfully ({result.outcome.value})")
        return result

    finally:
        # Cleanup
        directory.disconnect_ldap()
        warehouse.close()


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Sync Active Directory groups to Snowflake roles")
    parser.add_argument("--env-file", help="Read environment variables from this file (default: .env)")
    parser.add_argument("--account", dest="snowflake_account", help="Snowflake account identifier")
    parser.add_argument("--user", dest="snowflake_user", help="Snowflake user running the sync")
    parser.add_argument("--role", dest="snowflake_role", help="Snowflake role used for the sync")
    parser.add_argument("--region", dest="snowflake_region", help="Snowflake region")
    parser.add_argument("--group-ou", dest="group_ou", help="DN of the OU holding the security groups")
    parser.add_argument("--login-attribute", dest="login_attribute",
                        help="LDAP attribute used as Snowflake login name (default: mail)")
    parser.add_argument("--role-prefix", dest="role_prefix", help="Only sync groups starting with this prefix")
    parser.add_argument("--remove-role-prefix", dest="remove_role_prefix", action="store_true", default=None,
                        help="Strip the role prefix from role names")
    parser.add_argument("--no-create-missing-users", dest="create_missing_users", action="store_false",
                        default=None, help="Fail instead of creating users missing in Snowflake")
    parser.add_argument("--disable-removed-users", dest="disable_removed_users", action="store_true",
                        default=None, help="Disable federated users that are in no synced group")
    parser.add_argument("--dry-run", dest="dry_run", action="store_true", default=None,
                        help="Print the statements instead of running them")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)

    # Configure logging
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    # Load environment variables
    if args.env_file:
        load_dotenv(args.env_file)
    else:
        load_dotenv()

    overrides = {k: v for k, v in vars(args).items() if k not in ("env_file", "verbose")}

    try:
        config = SyncConfig.from_env().with_overrides(**overrides)
        sync_ldap_to_snowflake(config)
    except SyncError as e:
        logger.error(f"Sync failed during {e.phase or 'sync'}: {e}", exc_info=e.__cause__ is not None)
        return 1
    except Exception as e:
        logger.error(f"Sync failed: {e}", exc_info=True)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
