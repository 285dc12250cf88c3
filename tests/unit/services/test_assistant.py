from __future__ import annotations

from venue_crm.core.enums import ScopeKind
from venue_crm.core.exceptions import StoreUnavailable
from venue_crm.schemas.auth import Caller
from venue_crm.services.assistant import FALLBACK_MESSAGES, answer_query, personal_metrics
from tests.helpers import NOW, make_lead

LEADS = [
    make_lead(id="1", client_name="Ali One", manager="Ali", stage="Booked", amount=100000.0),
    make_lead(id="2", client_name="Ali Two", manager="Ali"),
    make_lead(id="3", client_name="Zara One", manager="Zara", stage="Quoted"),
]


class _ScopedStore:
    def __init__(self, leads, audit_down: bool = False) -> None:
        self.leads = leads
        self.audit_down = audit_down
        self.queries = []
        self.audits = []

    def query_leads(self, scope=None, newest_first=False, limit=None, **kwargs):
        self.queries.append({"scope": scope, "limit": limit})
        rows = [lead for lead in self.leads if scope is None or scope.predicate(lead)]
        return rows[:limit] if limit else rows

    def record_ai_interaction(self, **fields):
        if self.audit_down:
            raise StoreUnavailable("audit table locked")
        self.audits.append(fields)


class _Oracle:
    model_name = "test-model"

    def __init__(self, reply: str = "All good.", error: Exception | None = None) -> None:
        self.reply = reply
        self.error = error
        self.contexts = []

    def answer(self, prompt, context):
        self.contexts.append((prompt, context))
        if self.error is not None:
            raise self.error
        return self.reply


def test_sales_caller_context_holds_only_own_leads():
    store = _ScopedStore(LEADS)
    oracle = _Oracle()

    answer = answer_query("How many leads do I have?", Caller(name="Ali", role="Sales"), store, oracle, now=NOW)

    assert answer.success is True
    assert answer.scope == ScopeKind.SELF
    assert store.queries[0]["limit"] == 100
    _, context = oracle.contexts[0]
    names = [row["client_name"] for row in context["personal"]["recent_leads"]]
    assert names == ["Ali One", "Ali Two"]
    assert "Zara" not in str(context)


def test_owner_gets_business_metrics():
    store = _ScopedStore(LEADS)
    oracle = _Oracle()

    answer = answer_query("Revenue?", Caller(name="Boss", role="owner"), store, oracle, now=NOW)

    assert answer.scope == ScopeKind.ALL
    assert store.queries[0]["limit"] is None
    business = oracle.contexts[0][1]["business"]
    assert business["total_leads"] == 3
    assert business["leads_by_stage"] == {"Booked": 1, "New": 1, "Quoted": 1}


def test_manager_sees_team_only():
    store = _ScopedStore(LEADS)
    oracle = _Oracle()
    caller = Caller(name="Sana", role="manager", team_members=frozenset({"Zara"}))

    answer_query("Team status?", caller, store, oracle, now=NOW)

    team = oracle.contexts[0][1]["team"]
    assert team["total_leads"] == 1
    assert {m["name"] for m in team["members"]} == {"Sana", "Zara"}


def test_oracle_failure_returns_fallback_and_is_audited():
    store = _ScopedStore(LEADS)

    answer = answer_query("Hi", Caller(name="Ali", role="sales"), store, _Oracle(error=RuntimeError("timeout")), language="ur")

    assert answer.success is False
    assert answer.text == FALLBACK_MESSAGES["ur"]
    assert store.audits[0]["success"] is False
    assert store.audits[0]["scope"] == "self"
    assert store.audits[0]["model"] == "test-model"


def test_empty_reply_uses_fallback():
    answer = answer_query("Hi", Caller(name="Ali", role="sales"), _ScopedStore(LEADS), _Oracle(reply="   "))
    assert answer.text == FALLBACK_MESSAGES["en"]


def test_missing_session_does_not_query_store():
    store = _ScopedStore(LEADS)
    answer = answer_query("Hi", None, store, _Oracle())
    assert answer.success is False
    assert store.queries == []


def test_audit_failure_does_not_break_answer():
    answer = answer_query("Hi", Caller(name="Ali", role="sales"), _ScopedStore(LEADS, audit_down=True), _Oracle())
    assert answer.success is True
    assert answer.text == "All good."


def test_personal_metrics_counts_follow_ups_and_revenue():
    leads = [
        make_lead(id="1", stage="Booked", amount=50.0),
        make_lead(id="2", next_call_date=NOW.date()),
        make_lead(id="3", stage="Site Visit Scheduled"),
    ]
    metrics = personal_metrics(leads, NOW)
    assert metrics["revenue"] == 50.0
    assert metrics["today_follow_ups"] == 1
    assert metrics["pending_site_visits"] == 1
    assert metrics["conversion_rate"] == 33.3


def test_default_clock_is_naive_utc_without_deprecation(recwarn):
    store = _ScopedStore(LEADS)

    answer = answer_query("Status?", Caller(name="Ali", role="Sales"), store, _Oracle())

    assert answer.success is True
    assert not [w for w in recwarn.list if issubclass(w.category, DeprecationWarning) and "utcnow" in str(w.message)]
