"""Lead snapshot schemas consumed by the pure decision components."""

from __future__ import annotations

from datetime import date, datetime

from pydantic import BaseModel, ConfigDict, Field


class StageHistoryItem(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    from_stage: str | None = None
    to_stage: str
    trigger: str = "manual"
    actor: str | None = None
    timestamp: datetime


class LeadSnapshot(BaseModel):
    """Read-only view of a lead row.

    Decision functions take snapshots rather than ORM rows so they stay pure and
    can be exercised without a database session.
    """

    model_config = ConfigDict(from_attributes=True)

    id: str
    client_name: str = ""
    phone: str | None = None
    email: str | None = None
    source: str | None = None
    event_type: str | None = None
    event_date: date | None = None
    guests: int | None = None
    amount: float | None = None
    stage: str = "New"
    stage_updated_at: datetime | None = None
    manager: str = "Unassigned"
    assignment_method: str | None = None
    created_at: datetime | None = None
    last_contacted_at: datetime | None = None
    greeting_sent_at: datetime | None = None
    next_call_date: date | None = None
    processed: bool = False
    reminder_sent: bool = False
    escalated: bool = False
    site_visit_reminder_sent: bool = False
    quote_reminder_sent: bool = False
    invoicing_id: str | None = None
    invoicing_status: str | None = None
    ai_handling: bool = False
    version: int = 1


class LeadCreateRequest(BaseModel):
    """Intake payload for manual entry or external integrations."""

    client_name: str = Field(min_length=1, max_length=255)
    phone: str | None = Field(default=None, max_length=40)
    email: str | None = Field(default=None, max_length=320)
    source: str | None = Field(default=None, max_length=255)
    event_type: str | None = Field(default=None, max_length=120)
    event_date: date | None = None
    guests: int | None = Field(default=None, ge=0)
    amount: float | None = Field(default=None, ge=0)
    notes: str | None = Field(default=None, max_length=10000)
