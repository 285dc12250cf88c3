"""Shared builders and fakes for the test suite."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from venue_crm.database.store import SqlLeadStore
from venue_crm.integrations.invoicing import InvoicingResult
from venue_crm.integrations.messaging import SendResult
from venue_crm.schemas.leads import LeadCreateRequest, LeadSnapshot
from venue_crm.schemas.roster import EmployeeSnapshot

NOW = datetime(2025, 6, 15, 12, 0, 0)


def make_lead(**fields: Any) -> LeadSnapshot:
    """In-memory snapshot for pure decision tests."""
    payload = {"id": fields.pop("id", "lead-1"), "client_name": "Test Client", "created_at": NOW}
    payload.update(fields)
    return LeadSnapshot(**payload)


def add_lead(store: SqlLeadStore, now: datetime = NOW, **fields: Any) -> LeadSnapshot:
    """Create a lead through intake, then force any extra column values."""
    request = LeadCreateRequest(
        client_name=fields.pop("client_name", "Test Client"),
        phone=fields.pop("phone", None),
        source=fields.pop("source", None),
        event_date=fields.pop("event_date", None),
        guests=fields.pop("guests", None),
        amount=fields.pop("amount", None),
    )
    lead = store.create_lead(request, now)
    if fields:
        lead = store.update_lead(lead.id, fields)
    return lead


def add_employee(
    store: SqlLeadStore,
    name: str,
    role: str = "Sales",
    team_id: str | None = None,
    phone: str | None = None,
    sort_order: int = 0,
) -> None:
    store.upsert_employee(EmployeeSnapshot(name=name, role=role, team_id=team_id, phone=phone), sort_order=sort_order)


class FakeMessaging:
    def __init__(self, succeed: bool = True) -> None:
        self.succeed = succeed
        self.whatsapp: list[tuple[str | None, str, str | None]] = []
        self.sms: list[tuple[str | None, str]] = []

    def send_whatsapp(self, phone, text, lead_id=None) -> SendResult:
        self.whatsapp.append((phone, text, lead_id))
        return SendResult(success=self.succeed, channel="whatsapp", to=phone, error=None if self.succeed else "down")

    def send_sms(self, phone, text) -> SendResult:
        self.sms.append((phone, text))
        return SendResult(success=self.succeed, channel="sms", to=phone)


class FakeInvoicing:
    def __init__(self, result: InvoicingResult | None = None) -> None:
        self.result = result or InvoicingResult(success=True, invoicing_id="INV-1")
        self.pushed: list[str] = []

    def push_booking(self, lead) -> InvoicingResult:
        self.pushed.append(lead.id)
        return self.result
