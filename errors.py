"""
Errors raised while syncing LDAP groups to Snowflake roles
"""

from typing import Iterable, Optional


class SyncError(Exception):
    """Base class for errors that abort a sync run before anything is applied."""

    def __init__(self, message: str, entities: Optional[Iterable[str]] = None, phase: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.entities = sorted(entities) if entities else []
        self.phase = phase

    def __str__(self):
        if self.entities:
            return f"{self.message}: {', '.join(self.entities)}"
        return self.message


class ConfigurationError(SyncError):
    """Missing configuration or a policy that forbids the computed changes."""


class CollaboratorError(SyncError):
    """LDAP or Snowflake failed to answer a query or run a statement."""
