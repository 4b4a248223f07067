"""
Snowflake warehouse client
"""

import logging
from typing import Dict, Iterable, List, Optional

import snowflake.connector
from snowflake.connector import DictCursor
from snowflake.connector.errors import Error as SnowflakeError

from errors import CollaboratorError
from models import GranteeKind, RoleGrantRecord, WarehouseUser
from plan import quote_identifier


logger = logging.getLogger(__name__)


def as_bool(value) -> bool:
    """SHOW commands return booleans as 'true'/'false' strings."""
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() == 'true'


class SnowflakeClient:
    """
    Reads users, roles and role grants from Snowflake and runs statement blocks.
    """

    def __init__(self, account: str, user: str, password: str, role: Optional[str] = None,
                 region: Optional[str] = None):
        self.account = account
        self.user = user
        self.password = password
        self.role = role
        self.region = region
        self.conn = None

    @property
    def account_identifier(self) -> str:
        if self.region and not self.account.endswith(f".{self.region}"):
            return f"{self.account}.{self.region}"
        return self.account

    def connect_snowflake(self):
        """Establish connection to Snowflake."""
        logger.info(f"Connecting to Snowflake account: {self.account_identifier}")

        params = {
            "account": self.account_identifier,
            "user": self.user,
            "password": self.password,
        }
        if self.role:
            params["role"] = self.role

        try:
            self.conn = snowflake.connector.connect(**params)
            logger.info("Successfully connected to Snowflake")
        except SnowflakeError as e:
            logger.error(f"Failed to connect to Snowflake: {e}")
            raise CollaboratorError(f"Failed to connect to Snowflake account {self.account_identifier}: {e}") from e

    def close(self):
        """Close the Snowflake connection."""
        if self.conn:
            try:
                self.conn.close()
                logger.debug("Snowflake connection closed")
            except SnowflakeError as e:
                logger.warning(f"Error closing Snowflake connection: {e}")
            self.conn = None

    def _query(self, statement: str) -> List[Dict]:
        if not self.conn:
            self.connect_snowflake()

        logger.debug(f"Running: {statement}")
        try:
            with self.conn.cursor(DictCursor) as cursor:
                cursor.execute(statement)
                return cursor.fetchall()
        except SnowflakeError as e:
            logger.error(f"Snowflake query failed: {e}")
            raise CollaboratorError(f"Snowflake query '{statement}' failed: {e}") from e

    def list_users(self) -> List[WarehouseUser]:
        try:
            return [
                WarehouseUser(
                    name=row["name"],
                    has_password=as_bool(row["has_password"]),
                    disabled=as_bool(row["disabled"])
                )
                for row in self._query("SHOW USERS")
            ]
        except KeyError as e:
            raise CollaboratorError(f"Unexpected SHOW USERS output, missing column {e}") from e

    def list_roles(self) -> List[str]:
        try:
            return [row["name"] for row in self._query("SHOW ROLES")]
        except KeyError as e:
            raise CollaboratorError(f"Unexpected SHOW ROLES output, missing column {e}") from e

    def list_grants_of_roles(self, role_names: Iterable[str]) -> List[RoleGrantRecord]:
        grants = []
        for role_name in role_names:
            rows = self._query(f"SHOW GRANTS OF ROLE {quote_identifier(role_name)}")
            for row in rows:
                try:
                    granted_to = str(row["granted_to"]).upper()
                    grantee_name = row["grantee_name"]
                except KeyError as e:
                    raise CollaboratorError(f"Unexpected SHOW GRANTS output, missing column {e}") from e

                if granted_to not in GranteeKind.__members__:
                    logger.debug(f"Skipping grant of {role_name} to {granted_to} {grantee_name}")
                    continue
                grants.append(RoleGrantRecord(
                    role=row.get("role") or role_name,
                    grantee_name=grantee_name,
                    grantee_kind=GranteeKind[granted_to]
                ))
        return grants

    def execute(self, statement_block: str) -> None:
        """Run a block of statements. On failure the open transaction is rolled back."""
        if not self.conn:
            self.connect_snowflake()

        try:
            for cursor in self.conn.execute_string(statement_block):
                logger.debug(f"Executed: {cursor.query}")
        except SnowflakeError as e:
            logger.error(f"Failed to apply changes: {e}")
            try:
                self.conn.rollback()
            except SnowflakeError as rollback_error:
                logger.warning(f"Rollback failed: {rollback_error}")
            raise CollaboratorError(f"Failed to apply changes to Snowflake: {e}") from e
