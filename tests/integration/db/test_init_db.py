from __future__ import annotations

from venue_crm.database.init_db import default_documents, seed_default_config
from venue_crm.services.policy_store import PolicyStore


def test_seed_writes_missing_documents_only(store):
    store.set_config("managers", {"names": ["Ali"]})

    written = seed_default_config(store)

    assert "managers" not in written
    assert set(written) == set(default_documents()) - {"managers"}
    assert store.get_config("managers") == {"names": ["Ali"]}
    assert seed_default_config(store) == []


def test_seeded_documents_parse_as_policies(store):
    seed_default_config(store)
    policies = PolicyStore(store, ttl_seconds=0)

    assert policies.assignment_config().fallback_assignee == "round_robin"
    assert policies.automation_rules()["_default"].add_to_call_list is True
    assert "Wedding" in policies.event_types()
