"""Roster member snapshot."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict


class EmployeeSnapshot(BaseModel):
    model_config = ConfigDict(from_attributes=True, frozen=True)

    name: str
    role: str = "Sales"
    team_id: str | None = None
    phone: str | None = None
    email: str | None = None
    active: bool = True
