#!/usr/bin/env python3
"""
Check LDAP and Snowflake connections independently
"""

import sys
import logging
from dotenv import load_dotenv

from config import SyncConfig
from errors import SyncError
from ldap_adapter import LDAPDirectorySource
from snowflake_adapter import SnowflakeClient

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def check_ldap_connection(config: SyncConfig) -> bool:
    """Connect to LDAP and list the groups of the configured OU"""
    print("\n🔍 Checking LDAP Connection...")

    directory = LDAPDirectorySource(
        server=config.ldap_server,
        bind_dn=config.ldap_bind_dn,
        bind_password=config.ldap_bind_password,
        use_tls=config.ldap_use_tls,
        ca_cert_file=config.ldap_ca_cert_file,
        user_base_dn=config.ldap_user_base_dn,
        page_size=config.ldap_page_size
    )

    try:
        directory.connect_ldap()
        print(f"✅ Connected to LDAP server: {config.ldap_server}")

        groups = directory.list_security_groups(config.group_ou)
        print(f"✅ Found {len(groups)} security groups in {config.group_ou}")

        # Display first few groups
        if groups:
            print("\n   Sample groups:")
            for group in groups[:5]:
                members = directory.resolve_members(group, config.login_attribute)
                print(f"   - {group.name} ({len(members)} members)")

        return True

    except SyncError as e:
        print(f"❌ LDAP check failed: {e}")
        return False
    finally:
        directory.disconnect_ldap()


def check_snowflake_connection(config: SyncConfig) -> bool:
    """Connect to Snowflake and count users and roles"""
    print("\n🔍 Checking Snowflake Connection...")

    warehouse = SnowflakeClient(
        account=config.snowflake_account,
        user=config.snowflake_user,
        password=config.snowflake_password,
        role=config.snowflake_role,
        region=config.snowflake_region
    )

    try:
        warehouse.connect_snowflake()
        print(f"✅ Connected to Snowflake: {warehouse.account_identifier}")

        users = warehouse.list_users()
        federated = [user for user in users if user.kind.is_federated]
        print(f"✅ Found {len(users)} users ({len(federated)} federated)")

        roles = warehouse.list_roles()
        print(f"✅ Found {len(roles)} roles")

        return True

    except SyncError as e:
        print(f"❌ Snowflake check failed: {e}")
        return False
    finally:
        warehouse.close()


def main() -> int:
    """Run all checks"""
    print("🧪 Connection Check Script")
    print("=" * 60)

    load_dotenv()
    config = SyncConfig.from_env()

    ldap_ok = check_ldap_connection(config)
    snowflake_ok = check_snowflake_connection(config)

    print("\n" + "=" * 60)
    print("📊 Check Summary:")
    print(f"   LDAP: {'✅ PASS' if ldap_ok else '❌ FAIL'}")
    print(f"   Snowflake: {'✅ PASS' if snowflake_ok else '❌ FAIL'}")

    if ldap_ok and snowflake_ok:
        print("\n✅ All checks passed! Ready to run sync.py")
        return 0
    else:
        print("\n❌ Some checks failed. Please check your configuration.")
        return 1


if __name__ == "__main__":
    sys.exit(main())
