"""
Change plan for LDAP to Snowflake sync

Actions are rendered to Snowflake SQL and applied in one BEGIN/COMMIT block,
or only logged when running in dry run mode.
"""

import logging
from collections import Counter
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from models import WarehouseClient


logger = logging.getLogger(__name__)


BEGIN_STATEMENT = "BEGIN TRANSACTION;"
COMMIT_STATEMENT = "COMMIT;"


def quote_identifier(name: str) -> str:
    return '"' + name.replace('"', '""') + '"'


def quote_literal(value: str) -> str:
    return "'" + value.replace("\\", "\\\\").replace("'", "''") + "'"


class ReconciliationAction:
    """Base class of everything a plan can contain."""

    def sql(self) -> str:
        raise NotImplementedError


@dataclass(frozen=True)
class CreateUser(ReconciliationAction):
    user: str

    def sql(self) -> str:
        return (f"CREATE USER IF NOT EXISTS {quote_identifier(self.user)} "
                f"LOGIN_NAME = {quote_literal(self.user)} DISPLAY_NAME = {quote_literal(self.user)};")


@dataclass(frozen=True)
class EnableUser(ReconciliationAction):
    user: str

    def sql(self) -> str:
        return f"ALTER USER IF EXISTS {quote_identifier(self.user)} SET DISABLED = FALSE;"


@dataclass(frozen=True)
class DisableUser(ReconciliationAction):
    user: str

    def sql(self) -> str:
        return f"ALTER USER IF EXISTS {quote_identifier(self.user)} SET DISABLED = TRUE;"


@dataclass(frozen=True)
class CreateRole(ReconciliationAction):
    role: str

    def sql(self) -> str:
        return f"CREATE ROLE IF NOT EXISTS {quote_identifier(self.role)};"


@dataclass(frozen=True)
class GrantRole(ReconciliationAction):
    role: str
    user: str

    def sql(self) -> str:
        return f"GRANT ROLE {quote_identifier(self.role)} TO USER {quote_identifier(self.user)};"


@dataclass(frozen=True)
class RevokeRole(ReconciliationAction):
    role: str
    user: str

    def sql(self) -> str:
        return f"REVOKE ROLE {quote_identifier(self.role)} FROM USER {quote_identifier(self.user)};"


@dataclass(frozen=True)
class ReconciliationPlan:
    actions: Tuple[ReconciliationAction, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.actions

    def statements(self) -> List[str]:
        """SQL statements of the plan, framed as one transaction. Empty plans have none."""
        if self.is_empty:
            return []
        return [BEGIN_STATEMENT] + [action.sql() for action in self.actions] + [COMMIT_STATEMENT]

    def render(self) -> str:
        return "\n".join(self.statements())

    def summary(self) -> Dict[str, int]:
        return dict(Counter(type(action).__name__ for action in self.actions))


def build_plan(user_actions: Iterable[ReconciliationAction],
               role_actions: Mapping[str, Iterable[ReconciliationAction]]) -> ReconciliationPlan:
    """
    User actions come first so grants never reference a missing or disabled user.
    Roles follow in name order, each starting with its CreateRole if there is one.
    """
    actions: List[ReconciliationAction] = list(user_actions)
    for role_name in sorted(role_actions):
        ordered = sorted(role_actions[role_name], key=lambda action: not isinstance(action, CreateRole))
        actions.extend(ordered)
    return ReconciliationPlan(actions=tuple(actions))


class PlanOutcome(Enum):
    EMPTY = "empty"
    RENDERED = "rendered"
    APPLIED = "applied"


def apply_plan(plan: ReconciliationPlan, warehouse: WarehouseClient,
               dry_run: bool = False) -> Tuple[PlanOutcome, Optional[str]]:
    """Execute the plan against Snowflake, or only render it when dry_run is set."""
    if plan.is_empty:
        logger.info("No changes to apply")
        return PlanOutcome.EMPTY, None

    rendered = plan.render()
    logger.info(f"Plan has {len(plan.actions)} actions: {plan.summary()}")

    if dry_run:
        for statement in plan.statements():
            logger.info(f"[DRY RUN] {statement}")
        return PlanOutcome.RENDERED, rendered

    warehouse.execute(rendered)
    logger.info(f"Applied {len(plan.actions)} actions to Snowflake")
    return PlanOutcome.APPLIED, rendered
