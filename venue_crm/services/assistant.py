"""Role-scoped CRM assistant.

The caller's scope is resolved first and handed to the store query, so the
oracle's context only ever holds leads the caller is allowed to see.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass
from datetime import datetime
from time import perf_counter
from typing import Any

from venue_crm.auth.rbac import ScopePredicate, scope_for
from venue_crm.core.enums import STAGE_BOOKED, STAGE_NEW, STAGE_SITE_VISIT, UNASSIGNED, ScopeKind
from venue_crm.core.exceptions import StoreUnavailable
from venue_crm.schemas.auth import Caller
from venue_crm.schemas.leads import LeadSnapshot
from venue_crm.services.llm_client import AnswerOracle
from venue_crm.utils.clock import utc_now

logger = logging.getLogger(__name__)

FALLBACK_MESSAGES = {
    "en": "Sorry, unable to respond right now. Please try again.",
    "ur": "Maaf kijiye, abhi jawab nahi de sakta. Dobara koshish karein.",
}
NO_SESSION_MESSAGES = {
    "en": "User session not found. Please log in again.",
    "ur": "User session nahi mila. Dobara login karein.",
}
PERSONAL_LEAD_LIMIT = 100
RECENT_LEADS_SHOWN = 10


@dataclass(frozen=True)
class AssistantAnswer:
    text: str
    scope: ScopeKind
    success: bool
    latency_ms: int = 0


def _conversion_rate(booked: int, total: int) -> float:
    return round(booked / total * 100, 1) if total else 0.0


def _month_start(now: datetime) -> datetime:
    return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


def business_metrics(leads: list[LeadSnapshot], now: datetime) -> dict[str, Any]:
    month_start = _month_start(now)
    year_start = month_start.replace(month=1)
    by_stage: Counter[str] = Counter()
    by_source: Counter[str] = Counter()
    employees: dict[str, dict[str, float]] = {}
    booked = 0
    leads_this_month = 0
    revenue_month = 0.0
    revenue_ytd = 0.0

    for lead in leads:
        by_stage[lead.stage] += 1
        by_source[lead.source or "Unknown"] += 1
        created = lead.created_at
        if created and created >= month_start:
            leads_this_month += 1
        stats = employees.setdefault(lead.manager or UNASSIGNED, {"leads": 0, "converted": 0, "revenue": 0.0})
        stats["leads"] += 1
        if lead.stage == STAGE_BOOKED:
            booked += 1
            amount = lead.amount or 0.0
            stats["converted"] += 1
            stats["revenue"] += amount
            if created and created >= month_start:
                revenue_month += amount
            if created and created >= year_start:
                revenue_ytd += amount

    return {
        "total_leads": len(leads),
        "leads_this_month": leads_this_month,
        "leads_by_stage": dict(by_stage),
        "leads_by_source": dict(by_source),
        "conversion_rate": _conversion_rate(booked, len(leads)),
        "revenue_this_month": revenue_month,
        "revenue_ytd": revenue_ytd,
        "employee_performance": [{"name": name, **stats} for name, stats in sorted(employees.items())],
    }


def team_metrics(leads: list[LeadSnapshot], members: list[str], now: datetime) -> dict[str, Any]:
    month_start = _month_start(now)
    per_member = {name: {"leads": 0, "converted": 0} for name in members}
    booked = 0
    revenue_month = 0.0
    for lead in leads:
        stats = per_member.setdefault(lead.manager, {"leads": 0, "converted": 0})
        stats["leads"] += 1
        if lead.stage == STAGE_BOOKED:
            booked += 1
            stats["converted"] += 1
            if lead.created_at and lead.created_at >= month_start:
                revenue_month += lead.amount or 0.0
    return {
        "total_leads": len(leads),
        "conversion_rate": _conversion_rate(booked, len(leads)),
        "revenue_this_month": revenue_month,
        "members": [{"name": name, **stats} for name, stats in per_member.items()],
    }


def personal_metrics(leads: list[LeadSnapshot], now: datetime) -> dict[str, Any]:
    today = now.date()
    booked = [lead for lead in leads if lead.stage == STAGE_BOOKED]
    return {
        "total_leads": len(leads),
        "new_leads": sum(1 for lead in leads if lead.stage == STAGE_NEW),
        "booked_leads": len(booked),
        "conversion_rate": _conversion_rate(len(booked), len(leads)),
        "revenue": sum(lead.amount or 0.0 for lead in booked),
        "today_follow_ups": sum(1 for lead in leads if lead.next_call_date == today),
        "pending_site_visits": sum(1 for lead in leads if lead.stage == STAGE_SITE_VISIT),
        "recent_leads": [
            {
                "client_name": lead.client_name,
                "stage": lead.stage,
                "event_date": lead.event_date.isoformat() if lead.event_date else None,
            }
            for lead in leads[:RECENT_LEADS_SHOWN]
        ],
    }


def _language_name(language: str) -> str:
    return "Urdu (Roman script)" if language == "ur" else "English"


def build_prompt(query_text: str, caller: Caller, scope: ScopePredicate, venue_name: str, language: str) -> str:
    if scope.kind == ScopeKind.ALL:
        audience = f"the owner of {venue_name}. You have full access to company data"
        limits = "Keep the answer under 150 words: a brief insight, key metrics, then one or two action items."
    elif scope.kind == ScopeKind.TEAM:
        audience = f"{caller.name}, a manager at {venue_name}. You can ONLY see this manager's team"
        limits = "If asked for company-wide data, politely explain you can only access team data."
    else:
        audience = f"{caller.name}, a sales employee at {venue_name}. You can ONLY see leads assigned to them"
        limits = (
            "If asked about team or company data, politely explain you can only access their personal data. "
            "Never reveal other employees' metrics."
        )
    return (
        f"You are the CRM assistant for {audience}.\n"
        f"{limits}\n"
        f"Respond in {_language_name(language)}. Be concise.\n\n"
        f'Query: "{query_text}"'
    )


def build_context(scope: ScopePredicate, leads: list[LeadSnapshot], now: datetime) -> dict[str, Any]:
    if scope.kind == ScopeKind.ALL:
        return {"scope": scope.kind.value, "business": business_metrics(leads, now)}
    if scope.kind == ScopeKind.TEAM:
        return {"scope": scope.kind.value, "team": team_metrics(leads, sorted(scope.managers or ()), now)}
    return {"scope": scope.kind.value, "personal": personal_metrics(leads, now)}


def answer_query(
    query_text: str,
    caller: Caller | None,
    store,
    oracle: AnswerOracle,
    language: str = "en",
    venue_name: str = "the venue",
    now: datetime | None = None,
) -> AssistantAnswer:
    """Answer a free-text CRM question within the caller's scope and audit it."""
    language = language if language in FALLBACK_MESSAGES else "en"
    if caller is None or not caller.name:
        return AssistantAnswer(text=NO_SESSION_MESSAGES[language], scope=ScopeKind.SELF, success=False)

    now = now or utc_now()
    scope = scope_for(caller)
    limit = PERSONAL_LEAD_LIMIT if scope.kind == ScopeKind.SELF else None
    started = perf_counter()

    leads = store.query_leads(scope=scope, newest_first=True, limit=limit)
    prompt = build_prompt(query_text, caller, scope, venue_name, language)
    context = build_context(scope, leads, now)

    try:
        text = oracle.answer(prompt, context)
    except Exception:
        logger.exception("assistant.oracle_failed", extra={"event": "assistant.oracle_failed", "actor": caller.name})
        text = ""
    success = bool(text and text.strip())
    if not success:
        text = FALLBACK_MESSAGES[language]
    latency_ms = int((perf_counter() - started) * 1000)

    try:
        store.record_ai_interaction(
            type="query",
            query=query_text,
            response=text,
            user_name=caller.name,
            user_role=caller.role,
            scope=scope.kind.value,
            language=language,
            model=getattr(oracle, "model_name", None),
            latency_ms=latency_ms,
            success=success,
        )
    except StoreUnavailable:
        logger.warning("assistant.audit_failed", extra={"event": "assistant.audit_failed", "actor": caller.name})

    logger.info(
        "assistant.answered",
        extra={
            "event": "assistant.answered",
            "actor": caller.name,
            "scope": scope.kind.value,
            "leads_in_context": len(leads),
            "success": success,
            "latency_ms": latency_ms,
        },
    )
    return AssistantAnswer(text=text, scope=scope.kind, success=success, latency_ms=latency_ms)
