from __future__ import annotations

import json

import pytest

from venue_crm.main import main


def test_health_command_reports_service_state(capsys):
    assert main(["health"]) == 0
    payload = json.loads(capsys.readouterr().out)
    assert payload["service"] == "Venue CRM"
    assert payload["database"] == "ok"
    assert payload["messaging_sandbox"] is True


def test_unknown_command_exits():
    with pytest.raises(SystemExit):
        main(["dance"])


class _Oracle:
    model_name = "cli-test"

    def answer(self, prompt, context):
        return f"{context['personal']['total_leads']} leads"


def test_ask_command_answers_within_caller_scope(store, monkeypatch, capsys):
    import venue_crm.main as main_module
    from tests.helpers import add_employee, add_lead

    add_employee(store, "Ali")
    add_lead(store, manager="Ali")
    add_lead(store, manager="Zara")
    monkeypatch.setattr(main_module, "SqlLeadStore", lambda: store)
    monkeypatch.setattr(main_module, "OllamaOracle", _Oracle)

    assert main(["ask", "How many leads?", "--as", "Ali"]) == 0
    payload = json.loads(capsys.readouterr().out)
    assert payload["answer"] == "1 leads"
    assert payload["scope"] == "self"


def test_ask_command_requires_caller():
    with pytest.raises(SystemExit):
        main(["ask", "How many leads?"])


def test_ask_role_cannot_widen_scope(store, monkeypatch, capsys):
    import venue_crm.main as main_module
    from tests.helpers import add_employee, add_lead

    add_employee(store, "Ali")
    add_lead(store, manager="Ali")
    add_lead(store, manager="Zara")
    monkeypatch.setattr(main_module, "SqlLeadStore", lambda: store)
    monkeypatch.setattr(main_module, "OllamaOracle", _Oracle)

    assert main(["ask", "How many leads?", "--as", "Ali", "--role", "owner"]) == 0
    payload = json.loads(capsys.readouterr().out)
    assert payload["scope"] == "self"


def test_invoice_retry_command_prints_report(store, monkeypatch, capsys):
    import venue_crm.main as main_module

    monkeypatch.setattr(main_module, "SqlLeadStore", lambda: store)

    assert main(["invoice-retry"]) == 0
    payload = json.loads(capsys.readouterr().out)
    assert payload["scan"] == "invoice_retry"
    assert payload["scanned"] == 0
