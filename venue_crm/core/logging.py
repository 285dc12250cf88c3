"""Structured logging helpers for automation events."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any


@dataclass(frozen=True)
class LogContext:
    """Normalized context fields expected in automation logs."""

    lead_id: str | None = None
    actor: str | None = None
    task_key: str | None = None
    trace_id: str | None = None


def build_log_event(event: str, context: LogContext, **fields: Any) -> dict[str, Any]:
    """Build a normalized structured log payload."""
    payload: dict[str, Any] = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "event": event,
        "lead_id": context.lead_id,
        "actor": context.actor,
        "task_key": context.task_key,
        "trace_id": context.trace_id,
    }
    payload.update(fields)
    return payload
