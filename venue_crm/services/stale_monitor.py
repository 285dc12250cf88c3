"""Stale-lead, site-visit and quote follow-up scans.

Each scan reads its candidate leads, classifies them against an injected `now`
and, for every lead that needs attention, writes the latch and the notification
in one conditional update. A latch that is already set makes the write lose,
so repeated or concurrent scans never notify twice.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Any

from venue_crm.core.enums import (
    STAGE_QUOTED,
    STAGE_SITE_VISIT,
    STALE_WATCH_STAGES,
    NotificationPriority,
    NotificationType,
)
from venue_crm.core.exceptions import StoreUnavailable, VenueCRMException
from venue_crm.schemas.leads import LeadSnapshot
from venue_crm.schemas.notifications import NotificationRecord

logger = logging.getLogger(__name__)

DEFAULT_REMINDER_AFTER = timedelta(hours=24)
DEFAULT_ESCALATE_AFTER = timedelta(hours=48)
DEFAULT_QUOTE_FOLLOW_UP_AFTER = timedelta(hours=72)

# Called with each notification after its latch write wins (SMS fan-out).
AlertHook = Callable[[NotificationRecord], Any]


class StaleTier(Enum):
    FRESH = "fresh"
    NEEDS_REMINDER = "needs_reminder"
    NEEDS_ESCALATION = "needs_escalation"
    UNCLASSIFIABLE = "unclassifiable"


@dataclass
class ScanReport:
    scan: str
    scanned: int = 0
    reminded: int = 0
    escalated: int = 0
    notified: int = 0
    skipped: int = 0
    failed: int = 0

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


def classify_lead(
    lead: LeadSnapshot,
    now: datetime,
    reminder_after: timedelta = DEFAULT_REMINDER_AFTER,
    escalate_after: timedelta = DEFAULT_ESCALATE_AFTER,
) -> StaleTier:
    """Place a lead into a stale tier, honoring latches already set.

    The tiers are independent: a lead past the escalation threshold escalates
    whether or not it was ever reminded.
    """
    last_contact = lead.last_contacted_at or lead.created_at
    if last_contact is None:
        return StaleTier.UNCLASSIFIABLE
    if last_contact < now - escalate_after and not lead.escalated:
        return StaleTier.NEEDS_ESCALATION
    if last_contact < now - reminder_after and not lead.reminder_sent:
        return StaleTier.NEEDS_REMINDER
    return StaleTier.FRESH


def _display_name(lead: LeadSnapshot) -> str:
    return lead.client_name or lead.id


def _fire_alert(alert: AlertHook | None, record: NotificationRecord) -> None:
    if alert is None:
        return
    try:
        alert(record)
    except VenueCRMException:
        logger.warning(
            "scan.alert_failed",
            extra={"event": "scan.alert_failed", "lead_id": record.lead_id, "type": record.type.value},
            exc_info=True,
        )


def _latch(
    store,
    lead: LeadSnapshot,
    latch: str,
    fields: dict[str, Any],
    record: NotificationRecord,
    report: ScanReport,
    alert: AlertHook | None,
) -> bool:
    try:
        won = store.update_lead_if(
            lead.id,
            expected={latch: False, "stage": lead.stage},
            fields={latch: True, **fields},
            notification=record,
        )
    except StoreUnavailable:
        report.failed += 1
        logger.exception(
            "scan.latch_failed",
            extra={"event": "scan.latch_failed", "scan": report.scan, "lead_id": lead.id, "latch": latch},
        )
        return False
    if not won:
        report.skipped += 1
        return False
    _fire_alert(alert, record)
    return True


def run_stale_scan_once(
    store,
    now: datetime,
    reminder_after: timedelta = DEFAULT_REMINDER_AFTER,
    escalate_after: timedelta = DEFAULT_ESCALATE_AFTER,
    alert: AlertHook | None = None,
) -> ScanReport:
    """Remind or escalate New/Contacted leads that have gone without contact."""
    report = ScanReport(scan="stale_leads")
    leads = store.query_leads(stages=STALE_WATCH_STAGES)
    reminder_hours = int(reminder_after.total_seconds() // 3600)
    escalate_hours = int(escalate_after.total_seconds() // 3600)

    for lead in leads:
        report.scanned += 1
        tier = classify_lead(lead, now, reminder_after, escalate_after)

        if tier == StaleTier.NEEDS_ESCALATION:
            record = NotificationRecord(
                type=NotificationType.STALE_LEAD_ESCALATION,
                lead_id=lead.id,
                lead_name=lead.client_name,
                assigned_to=lead.manager,
                message=f'ESCALATION: Lead "{_display_name(lead)}" has had no contact in {escalate_hours}+ hours',
                priority=NotificationPriority.HIGH,
                timestamp=now,
            )
            if _latch(store, lead, "escalated", {"escalated_at": now}, record, report, alert):
                report.escalated += 1
        elif tier == StaleTier.NEEDS_REMINDER:
            record = NotificationRecord(
                type=NotificationType.STALE_LEAD_REMINDER,
                lead_id=lead.id,
                lead_name=lead.client_name,
                assigned_to=lead.manager,
                message=f'Lead "{_display_name(lead)}" has had no contact in {reminder_hours}+ hours',
                priority=NotificationPriority.NORMAL,
                timestamp=now,
            )
            if _latch(store, lead, "reminder_sent", {"reminder_sent_at": now}, record, report, None):
                report.reminded += 1
        elif tier == StaleTier.UNCLASSIFIABLE:
            report.skipped += 1

    logger.info("stale_scan.complete", extra={"event": "stale_scan.complete", **report.as_dict()})
    return report


def run_site_visit_scan_once(store, now: datetime, alert: AlertHook | None = None) -> ScanReport:
    """Remind assignees of site visits happening today (urgent) or tomorrow (high)."""
    report = ScanReport(scan="site_visits")
    today = now.date()

    for lead in store.query_leads(stages=[STAGE_SITE_VISIT]):
        report.scanned += 1
        if lead.site_visit_reminder_sent or lead.event_date is None:
            continue
        days_out = (lead.event_date - today).days
        if days_out not in (0, 1):
            continue
        when = "today" if days_out == 0 else "tomorrow"
        record = NotificationRecord(
            type=NotificationType.SITE_VISIT_REMINDER,
            lead_id=lead.id,
            lead_name=lead.client_name,
            assigned_to=lead.manager,
            message=f"Site visit {when}: {_display_name(lead)}",
            priority=NotificationPriority.URGENT if days_out == 0 else NotificationPriority.HIGH,
            timestamp=now,
            details={"event_date": lead.event_date.isoformat(), "phone": lead.phone},
        )
        if _latch(store, lead, "site_visit_reminder_sent", {}, record, report, alert):
            report.notified += 1

    logger.info("site_visit_scan.complete", extra={"event": "site_visit_scan.complete", **report.as_dict()})
    return report


def run_quote_scan_once(
    store,
    now: datetime,
    follow_up_after: timedelta = DEFAULT_QUOTE_FOLLOW_UP_AFTER,
    alert: AlertHook | None = None,
) -> ScanReport:
    """Ask for a follow-up on leads sitting in Quoted past the threshold."""
    report = ScanReport(scan="quotes")

    for lead in store.query_leads(stages=[STAGE_QUOTED]):
        report.scanned += 1
        quoted_at = lead.stage_updated_at or lead.created_at
        if quoted_at is None:
            report.skipped += 1
            continue
        if lead.quote_reminder_sent or quoted_at >= now - follow_up_after:
            continue
        days_since_quote = (now - quoted_at).days
        record = NotificationRecord(
            type=NotificationType.QUOTE_FOLLOW_UP,
            lead_id=lead.id,
            lead_name=lead.client_name,
            assigned_to=lead.manager,
            message=(
                f'Quote follow-up needed: "{_display_name(lead)}" has been in Quoted stage '
                f"for {days_since_quote} days"
            ),
            priority=NotificationPriority.HIGH,
            timestamp=now,
            details={"days_since_quote": days_since_quote},
        )
        if _latch(store, lead, "quote_reminder_sent", {"quote_reminder_sent_at": now}, record, report, alert):
            report.notified += 1

    logger.info("quote_scan.complete", extra={"event": "quote_scan.complete", **report.as_dict()})
    return report
