"""Enums for the venue CRM automation engine.

Stage values use title case because that is how they are stored on lead rows
and shown in the pipeline board ("New", "Site Visit Scheduled", ...).
"""

from enum import Enum


class LeadStage(Enum):
    """Pipeline stages a lead moves through."""

    NEW = "New"
    CONTACTED = "Contacted"
    QUALIFIED = "Qualified"
    SITE_VISIT_SCHEDULED = "Site Visit Scheduled"
    QUOTED = "Quoted"
    NEGOTIATING = "Negotiating"
    BOOKED = "Booked"
    LOST = "Lost"

    @classmethod
    def parse(cls, value: str | None) -> "LeadStage | None":
        for stage in cls:
            if stage.value == value:
                return stage
        return None


class AssignmentMode(Enum):
    """Assignment policy modes configured by an administrator."""

    ROUND_ROBIN = "round_robin"
    SOURCE_BASED = "source_based"
    SINGLE_PERSON = "single_person"
    MANUAL = "manual"


class AssignmentMethod(Enum):
    """How an assignee was chosen. Recorded on the lead as `assignment_method`."""

    MANUAL = "manual"
    SINGLE_PERSON = "single_person"
    SOURCE_RULE = "source_rule"
    ROUND_ROBIN = "round_robin"
    FALLBACK_UNASSIGNED = "fallback_unassigned"
    FALLBACK_FIXED = "fallback_fixed"
    NO_EMPLOYEES = "no_employees"
    ALREADY_PROCESSED = "already_processed"


class NotificationType(Enum):
    LEAD_ASSIGNED = "lead_assigned"
    STALE_LEAD_REMINDER = "stale_lead_reminder"
    STALE_LEAD_ESCALATION = "stale_lead_escalation"
    SITE_VISIT_REMINDER = "site_visit_reminder"
    QUOTE_FOLLOW_UP = "quote_follow_up"


class NotificationPriority(Enum):
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


class ScopeKind(Enum):
    """Visibility scope a caller is granted for reporting and assistant queries."""

    ALL = "all"
    TEAM = "team"
    SELF = "self"


# Convenience accessors for common values
UNASSIGNED = "Unassigned"
DEFAULT_SOURCE_KEY = "_default"

FALLBACK_ROUND_ROBIN = "round_robin"
FALLBACK_UNASSIGNED = "unassigned"

STAGE_NEW = LeadStage.NEW.value
STAGE_CONTACTED = LeadStage.CONTACTED.value
STAGE_SITE_VISIT = LeadStage.SITE_VISIT_SCHEDULED.value
STAGE_QUOTED = LeadStage.QUOTED.value
STAGE_BOOKED = LeadStage.BOOKED.value

# Stages the stale monitor watches.
STALE_WATCH_STAGES = (STAGE_NEW, STAGE_CONTACTED)

# Roles eligible to receive automatically assigned leads.
ASSIGNABLE_ROLES = ("Sales", "Manager", "Admin", "Owner")

# Trigger tags written to stage history.
TRIGGER_MANUAL = "manual"
TRIGGER_AUTO_GREETING = "auto_greeting"

# Invoicing sync states recorded on a Booked lead.
INVOICE_PENDING = "pending"
INVOICE_SYNCED = "synced"
INVOICE_FAILED = "failed"
