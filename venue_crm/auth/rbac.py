"""Role scope gate.

Decides which leads a caller may see before any bulk read is issued. Reporting
and assistant features must pass the resulting scope into the store query so
out-of-scope rows never leave the database.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import Any

from venue_crm.core.enums import ScopeKind
from venue_crm.schemas.auth import Caller
from venue_crm.schemas.roster import EmployeeSnapshot

ROLE_HIERARCHY: dict[str, int] = {
    "owner": 3,
    "admin": 3,
    "manager": 2,
    "sales": 1,
    "employee": 1,
}

SCOPE_LEVELS: dict[ScopeKind, int] = {
    ScopeKind.ALL: 3,
    ScopeKind.TEAM: 2,
    ScopeKind.SELF: 1,
}


def _normalize_role(role: str | None) -> str:
    return (role or "employee").strip().lower()


@dataclass(frozen=True)
class ScopePredicate:
    """Visibility decision for one caller.

    `managers` is the set of assignee names the caller may see, or None when
    every lead is visible. Stores translate it into a query filter.
    """

    kind: ScopeKind
    managers: frozenset[str] | None = None
    predicate: Callable[[Any], bool] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "predicate", self.accepts)

    def accepts(self, lead: Any) -> bool:
        if self.managers is None:
            return True
        return getattr(lead, "manager", None) in self.managers


def scope_for(caller: Caller | None) -> ScopePredicate:
    """Return the visibility scope for a caller. Roles are case-insensitive."""
    if caller is None:
        return ScopePredicate(kind=ScopeKind.SELF, managers=frozenset())

    role = _normalize_role(caller.role)
    if role in {"owner", "admin"}:
        return ScopePredicate(kind=ScopeKind.ALL)

    own = frozenset({caller.name}) if caller.name else frozenset()
    if role == "manager":
        return ScopePredicate(kind=ScopeKind.TEAM, managers=own | caller.team_members)

    return ScopePredicate(kind=ScopeKind.SELF, managers=own)


def can_access_scope(caller: Caller | None, requested: ScopeKind) -> bool:
    """Check whether a caller's role level reaches the requested scope."""
    role = _normalize_role(caller.role if caller else None)
    level = ROLE_HIERARCHY.get(role, 1)
    return level >= SCOPE_LEVELS[requested]


def build_caller(name: str, roster: Iterable[EmployeeSnapshot], role: str | None = None) -> Caller:
    """Resolve a caller from the roster, filling in team membership.

    An explicit `role` can only lower the roster role, never raise it. Unknown
    names resolve to a caller with no team and the lowest role.
    """
    members = list(roster)
    employee = next((e for e in members if e.name == name), None)
    resolved_role = employee.role if employee else None
    roster_level = ROLE_HIERARCHY.get(_normalize_role(resolved_role), 1)
    if role and ROLE_HIERARCHY.get(_normalize_role(role), 1) <= roster_level:
        resolved_role = role
    team_id = employee.team_id if employee else None
    team = frozenset(
        e.name for e in members
        if team_id is not None and e.team_id == team_id and e.name != name
    )
    return Caller(name=name, role=resolved_role, team_id=team_id, team_members=team)
