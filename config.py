"""
Configuration for LDAP to Snowflake sync, read from the environment
"""

import os
import re
from dataclasses import dataclass, field, fields, replace
from typing import Mapping, Optional

from errors import ConfigurationError


def env_flag(name: str, default: bool, environ: Optional[Mapping[str, str]] = None) -> bool:
    environ = os.environ if environ is None else environ
    return environ.get(name, "true" if default else "false").strip().lower() == "true"


def env_int(name: str, default: int, environ: Optional[Mapping[str, str]] = None) -> int:
    environ = os.environ if environ is None else environ
    value = environ.get(name) or str(default)
    try:
        return int(value)
    except ValueError:
        raise ConfigurationError(f"Invalid integer value '{value}'", [name], phase="configuration") from None


# Attribute description (RFC 4512): a keystring or a numeric OID
ATTRIBUTE_NAME = re.compile(r"[A-Za-z][A-Za-z0-9-]*|\d+(?:\.\d+)+")


@dataclass(frozen=True)
class SyncConfig:
    snowflake_account: str = ""
    snowflake_user: str = ""
    snowflake_password: str = field(default="", repr=False)
    snowflake_role: Optional[str] = None
    snowflake_region: Optional[str] = None

    ldap_server: str = ""
    ldap_bind_dn: str = ""
    ldap_bind_password: str = field(default="", repr=False)
    ldap_use_tls: bool = False
    ldap_ca_cert_file: Optional[str] = None
    ldap_user_base_dn: Optional[str] = None
    ldap_page_size: int = 500

    group_ou: str = ""
    login_attribute: str = "mail"
    create_missing_users: bool = True
    disable_removed_users: bool = False
    role_prefix: Optional[str] = None
    remove_role_prefix: bool = False
    dry_run: bool = False

    # Environment variable for each required setting
    REQUIRED = {
        "snowflake_account": "SNOWFLAKE_ACCOUNT",
        "snowflake_user": "SNOWFLAKE_USER",
        "snowflake_password": "SNOWFLAKE_PASSWORD",
        "ldap_server": "LDAP_SERVER",
        "ldap_bind_dn": "LDAP_BIND_DN",
        "ldap_bind_password": "LDAP_BIND_PASSWORD",
        "group_ou": "LDAP_GROUP_OU",
    }

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "SyncConfig":
        """Load configuration from environment variables."""
        environ = os.environ if environ is None else environ
        return cls(
            snowflake_account=environ.get("SNOWFLAKE_ACCOUNT", ""),
            snowflake_user=environ.get("SNOWFLAKE_USER", ""),
            snowflake_password=environ.get("SNOWFLAKE_PASSWORD", ""),
            snowflake_role=environ.get("SNOWFLAKE_ROLE") or None,
            snowflake_region=environ.get("SNOWFLAKE_REGION") or None,
            ldap_server=environ.get("LDAP_SERVER", ""),
            ldap_bind_dn=environ.get("LDAP_BIND_DN", ""),
            ldap_bind_password=environ.get("LDAP_BIND_PASSWORD", ""),
            ldap_use_tls=env_flag("LDAP_USE_TLS", False, environ),
            ldap_ca_cert_file=environ.get("LDAP_CA_CERT_FILE") or None,
            ldap_user_base_dn=environ.get("LDAP_USER_BASE_DN") or None,
            ldap_page_size=env_int("LDAP_PAGE_SIZE", 500, environ),
            group_ou=environ.get("LDAP_GROUP_OU", ""),
            login_attribute=environ.get("LDAP_LOGIN_ATTRIBUTE") or "mail",
            create_missing_users=env_flag("SYNC_CREATE_MISSING_USERS", True, environ),
            disable_removed_users=env_flag("SYNC_DISABLE_REMOVED_USERS", False, environ),
            role_prefix=environ.get("SYNC_ROLE_PREFIX") or None,
            remove_role_prefix=env_flag("SYNC_REMOVE_ROLE_PREFIX", False, environ),
            dry_run=env_flag("SYNC_DRY_RUN", False, environ),
        )

    def with_overrides(self, **overrides) -> "SyncConfig":
        """Return a copy with every override that is not None applied."""
        known = {f.name for f in fields(self)}
        return replace(self, **{k: v for k, v in overrides.items() if v is not None and k in known})

    def missing_settings(self):
        return [env_name for attr, env_name in self.REQUIRED.items() if not getattr(self, attr)]

    def invalid_settings(self):
        invalid = []
        if not ATTRIBUTE_NAME.fullmatch(self.login_attribute or ""):
            invalid.append("LDAP_LOGIN_ATTRIBUTE")
        if self.ldap_page_size < 1:
            invalid.append("LDAP_PAGE_SIZE")
        return invalid

    def validate(self):
        """Raise ConfigurationError naming every required setting that is not set or not usable."""
        missing = self.missing_settings()
        if missing:
            raise ConfigurationError("Missing required configuration", missing, phase="configuration")
        invalid = self.invalid_settings()
        if invalid:
            raise ConfigurationError("Invalid configuration", invalid, phase="configuration")
