from __future__ import annotations

import uuid

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    JSON,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from venue_crm.utils.clock import utc_now

from .db import Base


def _uuid() -> str:
    return str(uuid.uuid4())


class Lead(Base):
    __tablename__ = "leads"
    __table_args__ = (
        Index("idx_leads_stage", "stage"),
        Index("idx_leads_manager", "manager"),
        Index("idx_leads_stage_processed", "stage", "processed"),
        Index("idx_leads_version", "version"),
    )

    id = Column(String(36), primary_key=True, default=_uuid)
    client_name = Column(String, nullable=False, default="")
    phone = Column(String)
    email = Column(String)
    source = Column(String)
    event_type = Column(String)
    event_date = Column(Date)
    guests = Column(Integer)
    amount = Column(Float)
    notes = Column(Text)

    stage = Column(String, nullable=False, default="New")
    stage_updated_at = Column(DateTime)
    manager = Column(String, nullable=False, default="Unassigned")
    assigned_at = Column(DateTime)
    assignment_method = Column(String)

    created_at = Column(DateTime, default=utc_now)
    last_contacted_at = Column(DateTime)
    next_call_date = Column(Date)

    # Idempotency latches: once true, the matching automated action never fires again.
    processed = Column(Boolean, nullable=False, default=False)
    reminder_sent = Column(Boolean, nullable=False, default=False)
    escalated = Column(Boolean, nullable=False, default=False)
    site_visit_reminder_sent = Column(Boolean, nullable=False, default=False)
    quote_reminder_sent = Column(Boolean, nullable=False, default=False)

    reminder_sent_at = Column(DateTime)
    escalated_at = Column(DateTime)
    greeting_sent_at = Column(DateTime)
    follow_up_due = Column(DateTime)
    site_visit_reminder_at = Column(DateTime)
    quote_follow_up_due = Column(DateTime)
    quote_reminder_sent_at = Column(DateTime)
    lost_at = Column(DateTime)
    invoicing_id = Column(String)
    invoicing_status = Column(String)
    invoicing_error = Column(Text)
    ai_handling = Column(Boolean, nullable=False, default=False)

    # Bumped on every write; the orchestrator polls with this as its cursor.
    version = Column(Integer, nullable=False, default=1)

    stage_history = relationship(
        "StageHistoryEntry",
        back_populates="lead",
        order_by="StageHistoryEntry.id",
    )


class StageHistoryEntry(Base):
    __tablename__ = "lead_stage_history"

    id = Column(Integer, primary_key=True, autoincrement=True)
    lead_id = Column(String(36), ForeignKey("leads.id"), nullable=False, index=True)
    from_stage = Column(String)
    to_stage = Column(String, nullable=False)
    trigger = Column(String, nullable=False, default="manual")
    actor = Column(String)
    timestamp = Column(DateTime, nullable=False, default=utc_now)

    lead = relationship("Lead", back_populates="stage_history")


class LeadActivity(Base):
    __tablename__ = "lead_activity"

    id = Column(Integer, primary_key=True, autoincrement=True)
    lead_id = Column(String(36), ForeignKey("leads.id"), nullable=False, index=True)
    type = Column(String, nullable=False)
    message = Column(Text)
    details = Column(JSON)
    timestamp = Column(DateTime, nullable=False, default=utc_now)


class Notification(Base):
    __tablename__ = "notifications"
    __table_args__ = (
        Index("idx_notifications_assigned_to", "assigned_to"),
        Index("idx_notifications_lead_type", "lead_id", "type"),
    )

    id = Column(String(36), primary_key=True, default=_uuid)
    type = Column(String, nullable=False)
    lead_id = Column(String(36), nullable=False)
    lead_name = Column(String)
    assigned_to = Column(String)
    message = Column(Text, nullable=False)
    priority = Column(String, nullable=False, default="normal")
    details = Column(JSON)
    read = Column(Boolean, nullable=False, default=False)
    timestamp = Column(DateTime, nullable=False, default=utc_now)


class ConfigDocument(Base):
    __tablename__ = "config_documents"

    key = Column(String(100), primary_key=True)
    payload = Column(JSON, nullable=False)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now)


class Employee(Base):
    __tablename__ = "employees"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False, unique=True)
    role = Column(String, nullable=False, default="Sales")
    team_id = Column(String)
    phone = Column(String)
    email = Column(String)
    active = Column(Boolean, nullable=False, default=True)
    # Roster declaration order; round-robin ties go to the lowest value.
    sort_order = Column(Integer, nullable=False, default=0)


class AIAuditLog(Base):
    __tablename__ = "ai_audit_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    type = Column(String, nullable=False, default="query")
    query = Column(Text)
    response = Column(Text)
    user_name = Column(String)
    user_role = Column(String)
    scope = Column(String)
    language = Column(String)
    model = Column(String)
    latency_ms = Column(Integer)
    success = Column(Boolean, nullable=False, default=True)
    timestamp = Column(DateTime, nullable=False, default=utc_now)
