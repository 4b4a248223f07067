#!/usr/bin/env python3
"""
Check that the LDAP to Snowflake sync is fully configured
"""

from dotenv import load_dotenv

from config import SyncConfig


def validate_config(config: SyncConfig) -> bool:
    """Validate that all required configuration is set"""
    missing = config.missing_settings()

    if missing:
        print("❌ Missing required configuration variables:")
        for var in missing:
            print(f"   - {var}")
        return False

    invalid = config.invalid_settings()
    if invalid:
        print("❌ Invalid configuration variables:")
        for var in invalid:
            print(f"   - {var}")
        return False

    print("✅ All required configuration variables are set")
    return True


def display_config(config: SyncConfig):
    """Display current configuration (secrets are never shown)"""
    print("\n📋 Current Configuration:")
    print(f"   Snowflake Account: {config.snowflake_account}")
    print(f"   Snowflake Region: {config.snowflake_region or '(in account)'}")
    print(f"   Snowflake User: {config.snowflake_user}")
    print(f"   Snowflake Role: {config.snowflake_role or '(user default)'}")
    print(f"   LDAP Server: {config.ldap_server}")
    print(f"   LDAP Bind DN: {config.ldap_bind_dn}")
    print(f"   LDAP Group OU: {config.group_ou}")
    print(f"   LDAP User Base DN: {config.ldap_user_base_dn or '(domain of group OU)'}")
    print(f"   Login Attribute: {config.login_attribute}")
    print(f"   Role Prefix: {config.role_prefix or '(all groups)'}")
    print(f"   Remove Role Prefix: {config.remove_role_prefix}")
    print(f"   Create Missing Users: {config.create_missing_users}")
    print(f"   Disable Removed Users: {config.disable_removed_users}")
    print(f"   Dry Run Mode: {config.dry_run}")
    print()


if __name__ == "__main__":
    print("🔍 LDAP to Snowflake Sync - Configuration Validator\n")

    # Load environment variables
    load_dotenv()
    config = SyncConfig.from_env()

    if validate_config(config):
        display_config(config)
        print("✅ Configuration is valid. You can now run:")
        print("   python sync.py --dry-run")
    else:
        print("\n❌ Please update your .env file with the missing configuration")
        print("   See .env.example for reference")
