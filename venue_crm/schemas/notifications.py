"""Notification records emitted by the automation engine."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from venue_crm.core.enums import NotificationPriority, NotificationType


class NotificationRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: NotificationType
    lead_id: str
    lead_name: str | None = None
    assigned_to: str | None = None
    message: str = Field(min_length=1)
    priority: NotificationPriority = NotificationPriority.NORMAL
    timestamp: datetime
    details: dict[str, Any] = Field(default_factory=dict)
