from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from typing import Any

from venue_crm.tasks.celery_app import celery_app
from venue_crm.tasks.hooks import after_task, before_task
from venue_crm.tasks.registry import default_registry
from venue_crm.utils.ids import new_trace_id

logger = logging.getLogger(__name__)

dead_letter_queue: list[dict[str, Any]] = []


def _serialize_error(exc: Exception) -> dict[str, str]:
    return {
        "type": exc.__class__.__name__,
        "message": str(exc),
    }


def execute_registered_task(
    task_key: str,
    actor: str = "scheduler",
    max_retries: int = 2,
    base_backoff_seconds: float = 0.25,
) -> dict[str, Any]:
    """Execute a registered task with retry bookkeeping and dead-letter capture."""
    context = {"actor": actor, "trace_id": new_trace_id()}
    logger.info("task.start", extra=before_task(task_key=task_key, context=context))

    attempt_used = 0
    last_error: dict[str, str] | None = None

    for attempt in range(max_retries + 1):
        attempt_used = attempt
        try:
            executor = default_registry.get(task_key)
            result = executor()
            logger.info(
                "task.finish",
                extra=after_task(task_key=task_key, context=context, status="succeeded", retry_count=attempt),
            )
            return {
                "task_key": task_key,
                "status": "succeeded",
                "retry_count": attempt,
                "dead_lettered": False,
                "result": result,
            }
        except KeyError as exc:
            last_error = _serialize_error(exc)
            break
        except Exception as exc:
            last_error = _serialize_error(exc)
            if attempt < max_retries:
                delay = max(0.0, base_backoff_seconds) * (2**attempt)
                if delay > 0:
                    time.sleep(delay)
                continue
            break

    finished_at = datetime.now(timezone.utc).isoformat()
    dead_letter_queue.append(
        {
            "task_key": task_key,
            "trace_id": context["trace_id"],
            "retry_count": attempt_used,
            "error_payload": last_error or {"message": "unknown error"},
            "failed_at": finished_at,
        }
    )
    logger.error("task.failed", extra=after_task(task_key=task_key, context=context, status="failed"))
    return {
        "task_key": task_key,
        "status": "failed",
        "retry_count": attempt_used,
        "dead_lettered": True,
        "error_payload": last_error,
    }


@celery_app.task(name="scans.stale_leads")
def stale_leads_task() -> dict[str, Any]:
    return execute_registered_task("scans.stale_leads")


@celery_app.task(name="scans.site_visits")
def site_visits_task() -> dict[str, Any]:
    return execute_registered_task("scans.site_visits")


@celery_app.task(name="scans.quotes")
def quotes_task() -> dict[str, Any]:
    return execute_registered_task("scans.quotes")


@celery_app.task(name="scans.invoice_retry")
def invoice_retry_task() -> dict[str, Any]:
    return execute_registered_task("scans.invoice_retry")
