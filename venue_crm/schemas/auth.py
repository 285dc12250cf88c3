"""Caller identity used by the role scope gate."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict


class Caller(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str | None = None
    role: str | None = None
    team_id: str | None = None
    # Names of roster members on the caller's team, resolved from the roster.
    team_members: frozenset[str] = frozenset()
