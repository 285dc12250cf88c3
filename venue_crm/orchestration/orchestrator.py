"""Automation orchestrator.

Wires the lead store to the decision components. Three periodic scans (stale
leads, site visits, quote follow-ups) and the invoice retry pass run on their
own timers. New leads are discovered by polling and processed one at a time
from a single queue; stage change requests arrive on an explicit event queue.

Store and HTTP calls are blocking, so every one of them runs in the default
executor. Nothing is locked across those awaits: the idempotency latches on
the lead row, written with conditional updates, are the only guard.
"""

from __future__ import annotations

import asyncio
import functools
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from venue_crm.auth.rbac import ScopePredicate, scope_for
from venue_crm.core.config import Config, get_config
from venue_crm.core.enums import (
    INVOICE_FAILED,
    INVOICE_PENDING,
    INVOICE_SYNCED,
    STAGE_CONTACTED,
    STAGE_NEW,
    TRIGGER_AUTO_GREETING,
    TRIGGER_MANUAL,
    UNASSIGNED,
    NotificationPriority,
    NotificationType,
)
from venue_crm.core.exceptions import InvalidTransition, StoreUnavailable
from venue_crm.integrations.invoicing import InvoicingClient
from venue_crm.integrations.messaging import MessagingClient
from venue_crm.orchestration.state_machine import plan_transition
from venue_crm.schemas.auth import Caller
from venue_crm.schemas.leads import LeadSnapshot
from venue_crm.schemas.notifications import NotificationRecord
from venue_crm.schemas.policies import ActionSet, AssignmentConfig
from venue_crm.services import assignment_engine, stale_monitor
from venue_crm.services.automation_rules import resolve_automation
from venue_crm.services.greetings import build_assignment_message, build_greeting
from venue_crm.services.policy_store import PolicyStore
from venue_crm.services.stale_monitor import ScanReport
from venue_crm.utils.clock import utc_now

logger = logging.getLogger(__name__)

AUTOMATION_ACTOR = "automation"


def _fingerprint(config: AssignmentConfig, roster: list[str]) -> str:
    return f"{config.model_dump_json()}|{'|'.join(roster)}"


@dataclass(frozen=True)
class StageChangeEvent:
    lead_id: str
    from_stage: str
    to_stage: str
    actor: str | None = None
    trigger: str = TRIGGER_MANUAL


@dataclass(frozen=True)
class NewLeadOutcome:
    lead_id: str
    decision: assignment_engine.AssignmentDecision
    assigned: bool
    actions: ActionSet | None = None
    greeted: bool = False
    contacted: bool = False


class AutomationOrchestrator:
    """Top-level automation process for one deployment."""

    def __init__(
        self,
        store,
        policies: PolicyStore | None = None,
        messaging: MessagingClient | None = None,
        invoicing: InvoicingClient | None = None,
        config: Config | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.config = config or get_config()
        self.store = store
        self.policies = policies or PolicyStore(store, ttl_seconds=self.config.POLICY_CACHE_TTL_SECONDS)
        self.messaging = messaging or MessagingClient(self.config)
        self.invoicing = invoicing or InvoicingClient(self.config)
        self.clock = clock

        self.running = False
        self._tasks: list[asyncio.Task] = []
        self._new_leads: asyncio.Queue[str] | None = None
        self._stage_events: asyncio.Queue[StageChangeEvent] | None = None
        self._queued: set[str] = set()
        # lead id -> (version, assignment fingerprint) of its last decision without an assignee
        self._seen: dict[str, tuple[int, str]] = {}
        self._stats: dict[str, int] = {
            "new_leads_assigned": 0,
            "new_leads_skipped": 0,
            "stage_transitions": 0,
            "scans": 0,
            "errors": 0,
        }

    # ------------------------------------------------------------------
    # Decision entry points
    # ------------------------------------------------------------------

    def roster(self) -> list[str]:
        """Assignable employee names in declaration order.

        Falls back to the `managers` policy document when no employees are
        registered.
        """
        names = assignment_engine.roster_names(self.store.list_roster())
        if names:
            return names
        return assignment_engine.roster_names(self.policies.managers())

    def _assignment_inputs(self) -> tuple[AssignmentConfig, list[str]]:
        # Config is re-read per lead (through the TTL cache), never once per batch.
        return self.policies.assignment_config(), self.roster()

    def assignment_fingerprint(self) -> str:
        """Identifies the assignment config and roster a decision was made under."""
        return _fingerprint(*self._assignment_inputs())

    def _decide(
        self, lead: LeadSnapshot, config: AssignmentConfig, roster: list[str]
    ) -> assignment_engine.AssignmentDecision:
        load = self.store.count_new_leads_by_manager(roster)
        return assignment_engine.decide_assignment(lead, config, roster, load)

    def decide_assignment(self, lead: LeadSnapshot) -> assignment_engine.AssignmentDecision:
        return self._decide(lead, *self._assignment_inputs())

    def resolve_automation(self, source_name: str | None) -> ActionSet:
        return resolve_automation(source_name, self.policies.automation_rules())

    def scope_for(self, caller: Caller | None) -> ScopePredicate:
        return scope_for(caller)

    # ------------------------------------------------------------------
    # New-lead processing
    # ------------------------------------------------------------------

    def process_new_lead(self, lead_id: str) -> NewLeadOutcome | None:
        """Assign one new lead and run its first-contact automation.

        Returns None when the lead is gone, already handled, or another worker
        won the assignment write.
        """
        lead = self.store.get_lead(lead_id)
        if lead is None or lead.processed or lead.stage != STAGE_NEW or lead.manager != UNASSIGNED:
            return None

        config, roster = self._assignment_inputs()
        decision = self._decide(lead, config, roster)
        if not decision.assigns:
            self._seen[lead.id] = (lead.version, _fingerprint(config, roster))
            self._stats["new_leads_skipped"] += 1
            logger.info(
                "new_lead.left_unassigned",
                extra={"event": "new_lead.left_unassigned", "lead_id": lead.id, "method": decision.method.value},
            )
            return NewLeadOutcome(lead_id=lead.id, decision=decision, assigned=False)

        now = self.clock()
        actions = self.resolve_automation(lead.source)
        fields: dict[str, Any] = {
            "manager": decision.employee,
            "processed": True,
            "assigned_at": now,
            "assignment_method": decision.method.value,
        }
        if actions.add_to_call_list:
            fields["next_call_date"] = now.date()
        if actions.ai_bot:
            fields["ai_handling"] = True

        notification = None
        if actions.send_notification:
            notification = NotificationRecord(
                type=NotificationType.LEAD_ASSIGNED,
                lead_id=lead.id,
                lead_name=lead.client_name,
                assigned_to=decision.employee,
                message=build_assignment_message(lead.client_name, lead.event_date, lead.guests),
                priority=NotificationPriority.NORMAL,
                timestamp=now,
                details={"source": lead.source, "method": decision.method.value},
            )

        won = self.store.update_lead_if(
            lead.id,
            expected={"processed": False, "manager": UNASSIGNED, "stage": STAGE_NEW},
            fields=fields,
            activity={
                "type": "auto_assignment",
                "message": f"Auto-assigned to {decision.employee} via {decision.method.value}",
                "details": {"employee": decision.employee, "method": decision.method.value},
                "timestamp": now,
            },
            notification=notification,
        )
        if not won:
            logger.info("new_lead.assignment_lost", extra={"event": "new_lead.assignment_lost", "lead_id": lead.id})
            return None

        self._stats["new_leads_assigned"] += 1
        self._seen.pop(lead.id, None)
        logger.info(
            "new_lead.assigned",
            extra={
                "event": "new_lead.assigned",
                "lead_id": lead.id,
                "employee": decision.employee,
                "method": decision.method.value,
            },
        )

        if actions.send_notification:
            self._sms_employee(decision.employee, f"[{self.config.APP_NAME}] {notification.message}")
        if actions.text_auto_response and lead.phone:
            self.messaging.send_sms(
                lead.phone,
                build_greeting(self.config.VENUE_NAME, decision.employee, self.config.GREETING_LANGUAGE, short=True),
            )
        if actions.email_response:
            # Email auto-response is handed to the mail channel; only the hand-off is recorded here.
            logger.info("new_lead.email_handoff", extra={"event": "new_lead.email_handoff", "lead_id": lead.id})

        greeted = False
        contacted = False
        if lead.phone:
            result = self.messaging.send_whatsapp(
                lead.phone,
                build_greeting(self.config.VENUE_NAME, decision.employee, self.config.GREETING_LANGUAGE),
                lead_id=lead.id,
            )
            greeted = result.success
            if greeted:
                contacted = self.apply_stage_transition(
                    lead.id,
                    STAGE_NEW,
                    STAGE_CONTACTED,
                    actor=AUTOMATION_ACTOR,
                    trigger=TRIGGER_AUTO_GREETING,
                    extra_updates={"greeting_sent_at": now, "last_contacted_at": now},
                )

        return NewLeadOutcome(
            lead_id=lead.id,
            decision=decision,
            assigned=True,
            actions=actions,
            greeted=greeted,
            contacted=contacted,
        )

    def _sms_employee(self, name: str | None, text: str) -> None:
        if not name or name == UNASSIGNED:
            return
        employee = self.store.get_employee(name)
        if employee is None or not employee.phone:
            logger.debug("sms.no_phone", extra={"event": "sms.no_phone", "employee": name})
            return
        self.messaging.send_sms(employee.phone, text)

    # ------------------------------------------------------------------
    # Stage transitions
    # ------------------------------------------------------------------

    def apply_stage_transition(
        self,
        lead_id: str,
        from_stage: str,
        to_stage: str,
        actor: str | None = None,
        trigger: str = TRIGGER_MANUAL,
        extra_updates: dict[str, Any] | None = None,
    ) -> bool:
        """Move a lead between stages and fire the entry side effects.

        Returns whether side effects were applied. Same-stage requests, unknown
        stages and requests whose `from_stage` no longer matches the lead are
        ignored.
        """
        lead = self.store.get_lead(lead_id)
        if lead is None:
            logger.warning("stage_transition.lead_missing", extra={"event": "stage_transition.lead_missing", "lead_id": lead_id})
            return False

        now = self.clock()
        try:
            plan = plan_transition(from_stage, to_stage, lead, now, trigger=trigger, actor=actor)
        except InvalidTransition as exc:
            logger.warning(
                "stage_transition.invalid",
                extra={"event": "stage_transition.invalid", "lead_id": lead_id, "from_stage": exc.current, "to_stage": exc.requested},
            )
            return False
        if plan.is_noop:
            return False

        updates = dict(plan.updates)
        if plan.push_invoice:
            updates["invoicing_status"] = INVOICE_PENDING
        updates.update(extra_updates or {})
        won = self.store.update_lead_if(
            lead_id,
            expected={"stage": plan.from_stage},
            fields=updates,
            activity={
                "type": "stage_change",
                "message": f"Stage changed from {plan.from_stage} to {plan.to_stage}",
                "details": {"trigger": plan.history_entry.trigger, "actor": actor},
                "timestamp": now,
            },
            history=plan.history_entry,
        )
        if not won:
            logger.info(
                "stage_transition.stale_request",
                extra={"event": "stage_transition.stale_request", "lead_id": lead_id, "from_stage": from_stage, "current": lead.stage},
            )
            return False

        self._stats["stage_transitions"] += 1
        logger.info(
            "stage_transition.applied",
            extra={
                "event": "stage_transition.applied",
                "lead_id": lead_id,
                "from_stage": plan.from_stage,
                "to_stage": plan.to_stage,
                "trigger": plan.history_entry.trigger,
                "actor": actor,
            },
        )

        if plan.push_invoice:
            self._push_invoice(lead_id)
        return True

    def _push_invoice(self, lead_id: str) -> bool:
        """Push one booking and record the outcome. Returns whether it synced.

        A lead whose outcome could not be recorded keeps its pending or failed
        status, so the invoice retry pass picks it up again.
        """
        try:
            lead = self.store.get_lead(lead_id)
            if lead is None:
                return False
            result = self.invoicing.push_booking(lead)
            if result.success:
                self.store.update_lead(
                    lead_id,
                    {"invoicing_id": result.invoicing_id, "invoicing_status": INVOICE_SYNCED, "invoicing_error": None},
                )
            else:
                self.store.update_lead(lead_id, {"invoicing_status": INVOICE_FAILED, "invoicing_error": result.error})
        except StoreUnavailable:
            logger.exception("invoicing.record_failed", extra={"event": "invoicing.record_failed", "lead_id": lead_id})
            return False
        return result.success

    def retry_invoice_pushes(self, now: datetime | None = None) -> ScanReport:
        """Re-push Booked leads whose invoice is still pending or failed.

        Only leads booked at least one retry interval ago are picked up, so a
        push still in flight from the stage worker is left alone.
        """
        now = now or self.clock()
        report = ScanReport(scan="invoice_retry")
        cutoff = now - timedelta(seconds=self.config.INVOICE_RETRY_INTERVAL_SECONDS)
        for lead in self.store.leads_awaiting_invoice(booked_before=cutoff):
            report.scanned += 1
            if self._push_invoice(lead.id):
                report.notified += 1
            else:
                report.failed += 1
        logger.info("invoice_retry.complete", extra={"event": "invoice_retry.complete", **report.as_dict()})
        return report

    # ------------------------------------------------------------------
    # Scans
    # ------------------------------------------------------------------

    def _alert_assignee(self, record: NotificationRecord) -> None:
        self._sms_employee(record.assigned_to, f"[{self.config.APP_NAME}] {record.message}")

    def run_stale_scan_once(self, now: datetime | None = None) -> ScanReport:
        return stale_monitor.run_stale_scan_once(
            self.store,
            now or self.clock(),
            reminder_after=timedelta(hours=self.config.STALE_REMINDER_HOURS),
            escalate_after=timedelta(hours=self.config.STALE_ESCALATION_HOURS),
            alert=self._alert_assignee,
        )

    def run_site_visit_scan_once(self, now: datetime | None = None) -> ScanReport:
        return stale_monitor.run_site_visit_scan_once(self.store, now or self.clock(), alert=self._alert_assignee)

    def run_quote_scan_once(self, now: datetime | None = None) -> ScanReport:
        return stale_monitor.run_quote_scan_once(
            self.store,
            now or self.clock(),
            follow_up_after=timedelta(hours=self.config.QUOTE_FOLLOW_UP_HOURS),
            alert=self._alert_assignee,
        )

    # ------------------------------------------------------------------
    # Event loop
    # ------------------------------------------------------------------

    async def _call(self, fn, *args, **kwargs):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, functools.partial(fn, *args, **kwargs))

    async def _periodic(self, name: str, interval: float, fn) -> None:
        # First pass runs immediately at startup.
        while self.running:
            try:
                await self._call(fn)
                self._stats["scans"] += 1
            except Exception:
                self._stats["errors"] += 1
                logger.exception("orchestrator.scan.failed", extra={"event": "orchestrator.scan.failed", "scan": name})
            await asyncio.sleep(interval)

    async def poll_new_leads_once(self) -> int:
        """Queue every pending lead not already queued or decided under its current state.

        A lead left unassigned is reconsidered once its row changes or the
        assignment config or roster does.
        """
        pending = await self._call(self.store.pending_new_leads)
        fingerprint = await self._call(self.assignment_fingerprint) if pending else ""
        queued = 0
        for lead in pending:
            if lead.id in self._queued or self._seen.get(lead.id) == (lead.version, fingerprint):
                continue
            self._queued.add(lead.id)
            await self._new_leads.put(lead.id)
            queued += 1
        return queued

    async def _poll_loop(self) -> None:
        while self.running:
            try:
                await self.poll_new_leads_once()
            except Exception:
                self._stats["errors"] += 1
                logger.exception("orchestrator.poll.failed", extra={"event": "orchestrator.poll.failed"})
            await asyncio.sleep(self.config.CHANGE_POLL_INTERVAL_SECONDS)

    async def _new_lead_worker(self) -> None:
        while True:
            lead_id = await self._new_leads.get()
            try:
                await self._call(self.process_new_lead, lead_id)
            except Exception:
                # Left out of the seen map, so the next poll re-queues it.
                self._stats["errors"] += 1
                logger.exception("orchestrator.new_lead.failed", extra={"event": "orchestrator.new_lead.failed", "lead_id": lead_id})
            finally:
                self._queued.discard(lead_id)
                self._new_leads.task_done()
            # Stagger successive leads so load counts settle between assignments.
            await asyncio.sleep(self.config.NEW_LEAD_STAGGER_SECONDS)

    async def _stage_worker(self) -> None:
        while True:
            event = await self._stage_events.get()
            try:
                await self._call(
                    self.apply_stage_transition,
                    event.lead_id,
                    event.from_stage,
                    event.to_stage,
                    actor=event.actor,
                    trigger=event.trigger,
                )
            except Exception:
                self._stats["errors"] += 1
                logger.exception(
                    "orchestrator.stage_change.failed",
                    extra={"event": "orchestrator.stage_change.failed", "lead_id": event.lead_id},
                )
            finally:
                self._stage_events.task_done()

    async def submit_stage_change(
        self,
        lead_id: str,
        from_stage: str,
        to_stage: str,
        actor: str | None = None,
        trigger: str = TRIGGER_MANUAL,
    ) -> None:
        if self._stage_events is None:
            raise RuntimeError("Orchestrator is not started.")
        await self._stage_events.put(StageChangeEvent(lead_id, from_stage, to_stage, actor, trigger))

    async def drain(self) -> None:
        """Wait until both event queues are empty."""
        if self._new_leads is not None:
            await self._new_leads.join()
        if self._stage_events is not None:
            await self._stage_events.join()

    async def start(self) -> None:
        if self.running:
            return
        self.running = True
        self._new_leads = asyncio.Queue()
        self._stage_events = asyncio.Queue()
        cfg = self.config
        self._tasks = [
            asyncio.create_task(self._periodic("stale_leads", cfg.STALE_SCAN_INTERVAL_SECONDS, self.run_stale_scan_once)),
            asyncio.create_task(self._periodic("site_visits", cfg.SITE_VISIT_SCAN_INTERVAL_SECONDS, self.run_site_visit_scan_once)),
            asyncio.create_task(self._periodic("quotes", cfg.QUOTE_SCAN_INTERVAL_SECONDS, self.run_quote_scan_once)),
            asyncio.create_task(self._periodic("invoices", cfg.INVOICE_RETRY_INTERVAL_SECONDS, self.retry_invoice_pushes)),
            asyncio.create_task(self._poll_loop()),
            asyncio.create_task(self._new_lead_worker()),
            asyncio.create_task(self._stage_worker()),
        ]
        logger.info(
            "orchestrator.started",
            extra={
                "event": "orchestrator.started",
                "stale_interval": cfg.STALE_SCAN_INTERVAL_SECONDS,
                "site_visit_interval": cfg.SITE_VISIT_SCAN_INTERVAL_SECONDS,
                "quote_interval": cfg.QUOTE_SCAN_INTERVAL_SECONDS,
                "poll_interval": cfg.CHANGE_POLL_INTERVAL_SECONDS,
            },
        )

    async def stop(self) -> None:
        """Cancel every timer and worker. In-flight executor calls finish on their own."""
        self.running = False
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        self._queued.clear()
        logger.info("orchestrator.stopped", extra={"event": "orchestrator.stopped", **self._stats})

    async def run_forever(self) -> None:
        await self.start()
        try:
            while self.running:
                await asyncio.sleep(1)
        finally:
            await self.stop()

    def get_status(self) -> dict[str, Any]:
        return {
            "running": self.running,
            "tasks": len(self._tasks),
            "queued_new_leads": len(self._queued),
            "stats": dict(self._stats),
        }
