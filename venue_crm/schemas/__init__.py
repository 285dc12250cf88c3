"""Pydantic schemas shared by the automation components."""

from venue_crm.schemas.auth import Caller
from venue_crm.schemas.leads import LeadCreateRequest, LeadSnapshot, StageHistoryItem
from venue_crm.schemas.notifications import NotificationRecord
from venue_crm.schemas.policies import SAFE_DEFAULT_ACTIONS, ActionSet, AssignmentConfig, SourceRule
from venue_crm.schemas.roster import EmployeeSnapshot

__all__ = [
    "ActionSet",
    "AssignmentConfig",
    "Caller",
    "EmployeeSnapshot",
    "LeadCreateRequest",
    "LeadSnapshot",
    "NotificationRecord",
    "SAFE_DEFAULT_ACTIONS",
    "SourceRule",
    "StageHistoryItem",
]
