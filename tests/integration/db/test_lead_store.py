from __future__ import annotations

from datetime import timedelta

import pytest

from venue_crm.auth.rbac import scope_for
from venue_crm.core.enums import NotificationType
from venue_crm.core.exceptions import ConfigMissing, NotFoundError
from venue_crm.schemas.auth import Caller
from venue_crm.schemas.leads import StageHistoryItem
from venue_crm.schemas.notifications import NotificationRecord
from tests.helpers import NOW, add_employee, add_lead


def test_created_lead_starts_new_and_unassigned(store):
    lead = add_lead(store, client_name="  Sara Khan  ", phone="03001234567", source="Walk-in")

    assert lead.client_name == "Sara Khan"
    assert lead.stage == "New"
    assert lead.manager == "Unassigned"
    assert lead.processed is False
    assert lead.version == 1
    assert store.get_lead(lead.id).phone == "03001234567"


def test_update_lead_if_wins_once(store):
    lead = add_lead(store)
    expected = {"processed": False, "manager": "Unassigned", "stage": "New"}

    first = store.update_lead_if(lead.id, expected, {"manager": "Ali", "processed": True})
    second = store.update_lead_if(lead.id, expected, {"manager": "Zara", "processed": True})

    assert first is True
    assert second is False
    refreshed = store.get_lead(lead.id)
    assert refreshed.manager == "Ali"
    assert refreshed.version == lead.version + 1


def test_losing_update_writes_no_side_rows(store):
    lead = add_lead(store, stage="Contacted")
    record = NotificationRecord(
        type=NotificationType.LEAD_ASSIGNED, lead_id=lead.id, message="hello", timestamp=NOW
    )
    history = StageHistoryItem(from_stage="New", to_stage="Contacted", timestamp=NOW)

    won = store.update_lead_if(
        lead.id,
        {"stage": "New"},
        {"stage": "Contacted"},
        activity={"type": "stage_change", "message": "x", "timestamp": NOW},
        history=history,
        notification=record,
    )

    assert won is False
    assert store.list_notifications(lead_id=lead.id) == []
    assert store.get_stage_history(lead.id) == []
    assert store.list_activity(lead.id) == []


def test_winning_update_writes_history_activity_and_notification(store):
    lead = add_lead(store)
    record = NotificationRecord(
        type=NotificationType.LEAD_ASSIGNED, lead_id=lead.id, assigned_to="Ali", message="assigned", timestamp=NOW
    )
    history = StageHistoryItem(from_stage="New", to_stage="Contacted", actor="Ali", timestamp=NOW)

    assert store.update_lead_if(
        lead.id,
        {"stage": "New"},
        {"stage": "Contacted"},
        activity={"type": "stage_change", "message": "moved", "details": {"actor": "Ali"}, "timestamp": NOW},
        history=history,
        notification=record,
    )

    assert [h.to_stage for h in store.get_stage_history(lead.id)] == ["Contacted"]
    assert store.list_activity(lead.id)[0]["details"] == {"actor": "Ali"}
    assert store.list_notifications(assigned_to="Ali")[0]["message"] == "assigned"


def test_pending_new_leads_oldest_first(store):
    older = add_lead(store, client_name="Older", created_at=NOW - timedelta(hours=2))
    newer = add_lead(store, client_name="Newer", created_at=NOW - timedelta(hours=1))
    add_lead(store, client_name="Assigned", manager="Ali")
    add_lead(store, client_name="Moved", stage="Contacted")
    add_lead(store, client_name="Done", processed=True)

    assert [lead.id for lead in store.pending_new_leads()] == [older.id, newer.id]


def test_query_leads_applies_scope_in_sql(store):
    add_lead(store, client_name="Ali lead", manager="Ali")
    add_lead(store, client_name="Zara lead", manager="Zara")

    ali = store.query_leads(scope=scope_for(Caller(name="Ali", role="sales")))
    everyone = store.query_leads(scope=scope_for(Caller(name="Boss", role="owner")))
    nobody = store.query_leads(scope=scope_for(None))

    assert [lead.client_name for lead in ali] == ["Ali lead"]
    assert len(everyone) == 2
    assert nobody == []


def test_count_new_leads_by_manager(store):
    add_lead(store, manager="Ali")
    add_lead(store, manager="Ali")
    add_lead(store, manager="Ali", stage="Contacted")
    add_lead(store, manager="Zara")

    assert store.count_new_leads_by_manager(["Ali", "Zara", "Omar"]) == {"Ali": 2, "Zara": 1, "Omar": 0}


def test_auto_greeted_leads_still_count_as_load(store):
    greeted = NOW - timedelta(minutes=5)
    add_lead(store, manager="Ali", stage="Contacted", greeting_sent_at=greeted, last_contacted_at=greeted)
    add_lead(
        store,
        manager="Zara",
        stage="Contacted",
        greeting_sent_at=greeted,
        last_contacted_at=NOW,
    )

    assert store.count_new_leads_by_manager(["Ali", "Zara"]) == {"Ali": 1, "Zara": 0}


def test_leads_awaiting_invoice_skips_recent_and_synced(store):
    old = add_lead(store, stage="Booked", invoicing_status="pending", stage_updated_at=NOW - timedelta(hours=2))
    failed = add_lead(store, stage="Booked", invoicing_status="failed", stage_updated_at=NOW - timedelta(hours=1))
    add_lead(store, stage="Booked", invoicing_status="pending", stage_updated_at=NOW)
    add_lead(store, stage="Booked", invoicing_status="synced", stage_updated_at=NOW - timedelta(hours=3))

    awaiting = store.leads_awaiting_invoice(booked_before=NOW - timedelta(minutes=15))

    assert [lead.id for lead in awaiting] == [old.id, failed.id]


def test_roster_is_ordered_and_filtered(store):
    add_employee(store, "Zara", sort_order=2)
    add_employee(store, "Ali", sort_order=1)
    add_employee(store, "Reception", role="Receptionist", sort_order=0)

    assert [e.name for e in store.list_roster()] == ["Ali", "Zara"]
    assert store.get_employee("Reception").role == "Receptionist"


def test_config_documents_round_trip(store):
    with pytest.raises(ConfigMissing):
        store.get_config("assignment_rules")

    store.set_config("assignment_rules", {"mode": "manual"})
    store.set_config("assignment_rules", {"mode": "source_based"})

    assert store.get_config("assignment_rules") == {"mode": "source_based"}


def test_update_missing_lead_raises_not_found(store):
    with pytest.raises(NotFoundError):
        store.update_lead("missing", {"stage": "Lost"})
