from __future__ import annotations

from venue_crm.database.models import Base


def test_model_metadata_contains_target_tables():
    expected = {
        "leads",
        "lead_stage_history",
        "lead_activity",
        "notifications",
        "config_documents",
        "employees",
    }
    assert expected.issubset(set(Base.metadata.tables.keys()))


def test_lead_table_carries_latches_and_version():
    columns = set(Base.metadata.tables["leads"].columns.keys())
    assert {"processed", "reminder_sent", "escalated", "site_visit_reminder_sent", "quote_reminder_sent"} <= columns
    assert "version" in columns
