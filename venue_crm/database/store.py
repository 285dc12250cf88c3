"""SQL-backed lead/config store.

Every public method opens its own session, commits or rolls back, and wraps
driver failures into `StoreUnavailable` so the orchestrator can retry the lead
on its next tick. Latch and assignment writes are conditional single-statement
updates, so two concurrent callers can never both win.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import and_, func, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from venue_crm.core.enums import ASSIGNABLE_ROLES, INVOICE_FAILED, INVOICE_PENDING, UNASSIGNED
from venue_crm.core.exceptions import ConfigMissing, NotFoundError, StoreUnavailable
from venue_crm.database.db import get_session_factory
from venue_crm.database.models import (
    AIAuditLog,
    ConfigDocument,
    Employee,
    Lead,
    LeadActivity,
    Notification,
    StageHistoryEntry,
)
from venue_crm.schemas.leads import LeadCreateRequest, LeadSnapshot, StageHistoryItem
from venue_crm.schemas.notifications import NotificationRecord
from venue_crm.schemas.roster import EmployeeSnapshot
from venue_crm.utils.validators import sanitize_text

if TYPE_CHECKING:
    from venue_crm.auth.rbac import ScopePredicate


def _matches(column, value):
    # A latch that was never written (NULL) counts as unset.
    if value is False:
        return column.is_not(True)
    if value is None:
        return column.is_(None)
    return column == value


class SqlLeadStore:
    """Lead, roster, notification and config-document access over SQLAlchemy."""

    def __init__(self, session_factory: sessionmaker | None = None) -> None:
        self._session_factory = session_factory or get_session_factory()

    def _session(self) -> Session:
        return self._session_factory()

    def _run(self, operation: str, fn):
        session = self._session()
        try:
            result = fn(session)
            session.commit()
            return result
        except SQLAlchemyError as exc:
            session.rollback()
            raise StoreUnavailable(f"{operation} failed: {exc}") from exc
        finally:
            session.close()

    # ------------------------------------------------------------------
    # Leads
    # ------------------------------------------------------------------

    def create_lead(self, request: LeadCreateRequest, now: datetime) -> LeadSnapshot:
        def _create(session: Session) -> LeadSnapshot:
            lead = Lead(
                client_name=sanitize_text(request.client_name, max_len=255),
                phone=request.phone,
                email=request.email,
                source=request.source,
                event_type=request.event_type,
                event_date=request.event_date,
                guests=request.guests,
                amount=request.amount,
                notes=sanitize_text(request.notes, max_len=10000) or None,
                stage="New",
                manager=UNASSIGNED,
                created_at=now,
            )
            session.add(lead)
            session.flush()
            return LeadSnapshot.model_validate(lead)

        return self._run("create_lead", _create)

    def get_lead(self, lead_id: str) -> LeadSnapshot | None:
        def _get(session: Session) -> LeadSnapshot | None:
            lead = session.get(Lead, lead_id)
            return LeadSnapshot.model_validate(lead) if lead else None

        return self._run("get_lead", _get)

    def query_leads(
        self,
        stages: Iterable[str] | None = None,
        scope: "ScopePredicate | None" = None,
        manager: str | None = None,
        processed: bool | None = None,
        newest_first: bool = False,
        limit: int | None = None,
    ) -> list[LeadSnapshot]:
        """Filtered bulk read. A `scope` is applied in SQL, before rows are loaded."""

        def _query(session: Session) -> list[LeadSnapshot]:
            query = session.query(Lead)
            if stages is not None:
                query = query.filter(Lead.stage.in_(list(stages)))
            if scope is not None and scope.managers is not None:
                if not scope.managers:
                    return []
                query = query.filter(Lead.manager.in_(sorted(scope.managers)))
            if manager is not None:
                query = query.filter(Lead.manager == manager)
            if processed is not None:
                query = query.filter(_matches(Lead.processed, processed))
            order = Lead.created_at.desc() if newest_first else Lead.created_at.asc()
            query = query.order_by(order, Lead.id)
            if limit is not None:
                query = query.limit(limit)
            return [LeadSnapshot.model_validate(row) for row in query.all()]

        return self._run("query_leads", _query)

    def pending_new_leads(self) -> list[LeadSnapshot]:
        """Leads waiting for automatic assignment, oldest first."""

        def _pending(session: Session) -> list[LeadSnapshot]:
            rows = (
                session.query(Lead)
                .filter(
                    Lead.stage == "New",
                    Lead.manager == UNASSIGNED,
                    _matches(Lead.processed, False),
                )
                .order_by(Lead.created_at.asc(), Lead.id)
                .all()
            )
            return [LeadSnapshot.model_validate(row) for row in rows]

        return self._run("pending_new_leads", _pending)

    def leads_awaiting_invoice(self, booked_before: datetime) -> list[LeadSnapshot]:
        """Booked leads whose invoice push is still pending or failed."""

        def _awaiting(session: Session) -> list[LeadSnapshot]:
            rows = (
                session.query(Lead)
                .filter(
                    Lead.stage == "Booked",
                    Lead.invoicing_status.in_([INVOICE_PENDING, INVOICE_FAILED]),
                    or_(Lead.stage_updated_at.is_(None), Lead.stage_updated_at <= booked_before),
                )
                .order_by(Lead.stage_updated_at.asc(), Lead.id)
                .all()
            )
            return [LeadSnapshot.model_validate(row) for row in rows]

        return self._run("leads_awaiting_invoice", _awaiting)

    def update_lead(self, lead_id: str, fields: dict[str, Any]) -> LeadSnapshot:
        """Merge `fields` into the lead row."""

        def _update(session: Session) -> LeadSnapshot:
            lead = session.get(Lead, lead_id)
            if lead is None:
                raise NotFoundError(f"Lead {lead_id} not found")
            for key, value in fields.items():
                setattr(lead, key, value)
            lead.version = (lead.version or 0) + 1
            session.flush()
            return LeadSnapshot.model_validate(lead)

        return self._run("update_lead", _update)

    def update_lead_if(
        self,
        lead_id: str,
        expected: dict[str, Any],
        fields: dict[str, Any],
        activity: dict[str, Any] | None = None,
        history: StageHistoryItem | None = None,
        notification: NotificationRecord | None = None,
    ) -> bool:
        """Compare-and-set update.

        Applies `fields` only if every column in `expected` still holds the given
        value. Activity, history and notification rows are written in the same
        transaction and only when the update wins. Returns whether it won.
        """

        def _update_if(session: Session) -> bool:
            conditions = [Lead.id == lead_id]
            conditions.extend(_matches(getattr(Lead, key), value) for key, value in expected.items())
            values = dict(fields)
            values["version"] = Lead.version + 1
            updated = (
                session.query(Lead)
                .filter(*conditions)
                .update(values, synchronize_session=False)
            )
            if updated != 1:
                return False
            if history is not None:
                session.add(
                    StageHistoryEntry(
                        lead_id=lead_id,
                        from_stage=history.from_stage,
                        to_stage=history.to_stage,
                        trigger=history.trigger,
                        actor=history.actor,
                        timestamp=history.timestamp,
                    )
                )
            if activity is not None:
                session.add(LeadActivity(lead_id=lead_id, **activity))
            if notification is not None:
                session.add(_notification_row(notification))
            return True

        return self._run("update_lead_if", _update_if)

    def get_stage_history(self, lead_id: str) -> list[StageHistoryItem]:
        def _history(session: Session) -> list[StageHistoryItem]:
            rows = (
                session.query(StageHistoryEntry)
                .filter(StageHistoryEntry.lead_id == lead_id)
                .order_by(StageHistoryEntry.id)
                .all()
            )
            return [StageHistoryItem.model_validate(row) for row in rows]

        return self._run("get_stage_history", _history)

    def list_activity(self, lead_id: str) -> list[dict[str, Any]]:
        def _activity(session: Session) -> list[dict[str, Any]]:
            rows = (
                session.query(LeadActivity)
                .filter(LeadActivity.lead_id == lead_id)
                .order_by(LeadActivity.id)
                .all()
            )
            return [
                {"type": r.type, "message": r.message, "details": r.details, "timestamp": r.timestamp}
                for r in rows
            ]

        return self._run("list_activity", _activity)

    def count_new_leads_by_manager(self, names: Sequence[str]) -> dict[str, int]:
        """Current load per employee.

        Mirrors `assignment_engine.counts_toward_load`: leads in New plus leads
        the automatic greeting moved to Contacted and nobody has touched since.
        """

        def _count(session: Session) -> dict[str, int]:
            counts = {name: 0 for name in names}
            if not names:
                return counts
            rows = (
                session.query(Lead.manager, func.count(Lead.id))
                .filter(
                    Lead.manager.in_(list(names)),
                    or_(
                        Lead.stage == "New",
                        and_(
                            Lead.stage == "Contacted",
                            Lead.greeting_sent_at.is_not(None),
                            Lead.last_contacted_at == Lead.greeting_sent_at,
                        ),
                    ),
                )
                .group_by(Lead.manager)
                .all()
            )
            for manager, count in rows:
                counts[manager] = int(count)
            return counts

        return self._run("count_new_leads_by_manager", _count)

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------

    def list_notifications(
        self,
        lead_id: str | None = None,
        type: str | None = None,
        assigned_to: str | None = None,
    ) -> list[dict[str, Any]]:
        def _list(session: Session) -> list[dict[str, Any]]:
            query = session.query(Notification)
            if lead_id is not None:
                query = query.filter(Notification.lead_id == lead_id)
            if type is not None:
                query = query.filter(Notification.type == type)
            if assigned_to is not None:
                query = query.filter(Notification.assigned_to == assigned_to)
            return [
                {
                    "id": n.id,
                    "type": n.type,
                    "lead_id": n.lead_id,
                    "lead_name": n.lead_name,
                    "assigned_to": n.assigned_to,
                    "message": n.message,
                    "priority": n.priority,
                    "details": n.details or {},
                    "timestamp": n.timestamp,
                }
                for n in query.order_by(Notification.timestamp, Notification.id).all()
            ]

        return self._run("list_notifications", _list)

    # ------------------------------------------------------------------
    # Config documents
    # ------------------------------------------------------------------

    def get_config(self, key: str) -> dict[str, Any]:
        def _get(session: Session) -> dict[str, Any]:
            doc = session.get(ConfigDocument, key)
            if doc is None:
                raise ConfigMissing(key)
            return dict(doc.payload or {})

        return self._run("get_config", _get)

    def set_config(self, key: str, payload: dict[str, Any]) -> None:
        def _set(session: Session) -> None:
            doc = session.get(ConfigDocument, key)
            if doc is None:
                session.add(ConfigDocument(key=key, payload=payload))
            else:
                doc.payload = payload

        self._run("set_config", _set)

    # ------------------------------------------------------------------
    # Roster
    # ------------------------------------------------------------------

    def list_roster(self, roles: Iterable[str] | None = ASSIGNABLE_ROLES) -> list[EmployeeSnapshot]:
        """Active employees in roster declaration order."""

        def _roster(session: Session) -> list[EmployeeSnapshot]:
            query = session.query(Employee).filter(Employee.active.is_(True))
            if roles is not None:
                query = query.filter(Employee.role.in_(list(roles)))
            rows = query.order_by(Employee.sort_order, Employee.id).all()
            return [EmployeeSnapshot.model_validate(row) for row in rows if row.name and row.name != UNASSIGNED]

        return self._run("list_roster", _roster)

    def get_employee(self, name: str) -> EmployeeSnapshot | None:
        def _get(session: Session) -> EmployeeSnapshot | None:
            row = session.query(Employee).filter(Employee.name == name).first()
            return EmployeeSnapshot.model_validate(row) if row else None

        return self._run("get_employee", _get)

    def upsert_employee(self, employee: EmployeeSnapshot, sort_order: int = 0) -> None:
        def _upsert(session: Session) -> None:
            row = session.query(Employee).filter(Employee.name == employee.name).first()
            if row is None:
                row = Employee(name=employee.name)
                session.add(row)
            row.role = employee.role
            row.team_id = employee.team_id
            row.phone = employee.phone
            row.email = employee.email
            row.active = employee.active
            row.sort_order = sort_order

        self._run("upsert_employee", _upsert)

    # ------------------------------------------------------------------
    # Assistant audit
    # ------------------------------------------------------------------

    def record_ai_interaction(self, **fields: Any) -> None:
        def _record(session: Session) -> None:
            session.add(
                AIAuditLog(
                    type=fields.get("type", "query"),
                    query=sanitize_text(fields.get("query"), max_len=4000),
                    response=sanitize_text(fields.get("response"), max_len=20000),
                    user_name=fields.get("user_name"),
                    user_role=fields.get("user_role"),
                    scope=fields.get("scope"),
                    language=fields.get("language"),
                    model=fields.get("model"),
                    latency_ms=fields.get("latency_ms"),
                    success=bool(fields.get("success", True)),
                )
            )

        self._run("record_ai_interaction", _record)


def _notification_row(record: NotificationRecord) -> Notification:
    return Notification(
        type=record.type.value,
        lead_id=record.lead_id,
        lead_name=record.lead_name,
        assigned_to=record.assigned_to,
        message=sanitize_text(record.message, max_len=2000),
        priority=record.priority.value,
        details=record.details or None,
        timestamp=record.timestamp,
    )
