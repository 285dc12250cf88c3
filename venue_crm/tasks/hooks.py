"""Lifecycle hooks for queue task execution."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from venue_crm.core.logging import LogContext, build_log_event


def _context(task_key: str, context: dict[str, Any]) -> LogContext:
    return LogContext(
        lead_id=context.get("lead_id"),
        actor=context.get("actor"),
        task_key=task_key,
        trace_id=context.get("trace_id"),
    )


def before_task(task_key: str, context: dict[str, Any]) -> dict[str, Any]:
    """Build pre-task log payload."""
    return build_log_event(event="task.start", context=_context(task_key, context))


def after_task(task_key: str, context: dict[str, Any], status: str, **fields: Any) -> dict[str, Any]:
    """Build post-task log payload."""
    return build_log_event(
        event="task.finish",
        context=_context(task_key, context),
        status=status,
        finished_at=datetime.now(timezone.utc).isoformat(),
        **fields,
    )
