"""Effective security role resolution.

A user's effective roles come from three places:

- roles assigned to the user directly
- roles assigned to teams the user belongs to
- roles attached at business-unit level (through each unit's default team)

Which business units contribute is a policy decision, so the walk up the
business-unit hierarchy asks a :data:`BusinessUnitPolicy` at each step.
Membership data can be inconsistent; every traversal is iterative and
guarded by a visited set, so cycles end the walk instead of looping.
"""

import logging
from dataclasses import dataclass
from enum import IntEnum
from typing import Callable, Optional

from metascope.models import BusinessUnit, SecurityRole, UserSecurity


logger = logging.getLogger(__name__)


class OriginKind(IntEnum):
    """How a role reached the user. Lower values are more specific."""

    DIRECT = 0
    TEAM = 1
    BUSINESS_UNIT = 2


@dataclass(frozen=True)
class RoleOrigin:
    """``Direct`` or ``InheritedVia(path)``."""

    kind: OriginKind
    path: tuple[str, ...] = ()

    @property
    def is_direct(self) -> bool:
        return self.kind == OriginKind.DIRECT

    def describe(self) -> str:
        if self.is_direct:
            return "Direct"
        prefix = "Team" if self.kind == OriginKind.TEAM else "Business unit"
        return f"{prefix}: {' > '.join(self.path)}"


DIRECT = RoleOrigin(OriginKind.DIRECT)


@dataclass(frozen=True)
class SecurityRoleAssignment:
    principal: str
    role: SecurityRole
    origin: RoleOrigin

    @property
    def role_id(self) -> str:
        return self.role.id

    @property
    def search_text(self) -> str:
        return f"{self.role.name} {self.origin.describe()}"


# (depth above the user's own unit, unit) -> does this unit contribute roles
BusinessUnitPolicy = Callable[[int, BusinessUnit], bool]


def own_unit_only(depth: int, unit: BusinessUnit) -> bool:
    """Only the user's own business unit contributes."""
    return depth == 0


def unit_and_ancestors(depth: int, unit: BusinessUnit) -> bool:
    """Every unit on the parent chain contributes."""
    return True


def no_unit_roles(depth: int, unit: BusinessUnit) -> bool:
    return False


POLICIES: dict[str, BusinessUnitPolicy] = {
    "own": own_unit_only,
    "ancestors": unit_and_ancestors,
    "none": no_unit_roles,
}


def business_unit_chain(
    start_id: Optional[str],
    units: dict[str, BusinessUnit],
) -> list[BusinessUnit]:
    """Walk from *start_id* to the root unit.

    Stops at an unknown unit or on the first repeated unit, returning the
    part of the chain seen so far.
    """
    chain: list[BusinessUnit] = []
    visited: set[str] = set()
    current = start_id
    while current and current in units:
        if current in visited:
            logger.warning("Business unit cycle detected at %s", current)
            break
        visited.add(current)
        unit = units[current]
        chain.append(unit)
        current = unit.parent_id
    return chain


def resolve_roles(
    security: UserSecurity,
    policy: BusinessUnitPolicy = own_unit_only,
) -> list[SecurityRoleAssignment]:
    """Compute the deduplicated effective roles of one user.

    Args:
        security: Raw roles, teams and business units for the user.
        policy: Decides which business units on the parent chain contribute
            their roles.

    Returns:
        One assignment per role, keeping the most specific origin
        (direct, then team, then business unit), sorted by role name.
    """
    principal = security.user.id
    best: dict[str, SecurityRoleAssignment] = {}

    def offer(role: SecurityRole, origin: RoleOrigin) -> None:
        current = best.get(role.id)
        if current is None or origin.kind < current.origin.kind:
            best[role.id] = SecurityRoleAssignment(principal, role, origin)

    for role in security.direct_roles:
        offer(role, DIRECT)

    seen_teams: set[str] = set()
    for team in security.teams:
        if team.id in seen_teams:
            continue
        seen_teams.add(team.id)
        for role in security.team_roles.get(team.id, []):
            offer(role, RoleOrigin(OriginKind.TEAM, (team.name,)))

    chain = business_unit_chain(security.user.business_unit_id, security.business_units)
    path: list[str] = []
    for depth, unit in enumerate(chain):
        path.append(unit.name)
        if not policy(depth, unit):
            continue
        for role in security.business_unit_roles.get(unit.id, []):
            offer(role, RoleOrigin(OriginKind.BUSINESS_UNIT, tuple(path)))

    return sorted(best.values(), key=lambda a: (a.role.name.lower(), a.role.id))
