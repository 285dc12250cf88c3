"""Celery application bootstrap.

The beat schedule mirrors the in-process orchestrator timers so the scans can
run on a worker pool instead of inside the orchestrator.
"""

from __future__ import annotations

import os

from celery import Celery

from venue_crm.core.config import get_config

config = get_config()

celery_app = Celery(
    "venue_crm",
    broker=config.CELERY_BROKER_URL,
    backend=config.CELERY_RESULT_BACKEND,
    include=["venue_crm.tasks.scan_tasks"],
)
celery_app.conf.update(
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    beat_schedule={
        "stale-leads": {
            "task": "scans.stale_leads",
            "schedule": config.STALE_SCAN_INTERVAL_SECONDS,
        },
        "site-visits": {
            "task": "scans.site_visits",
            "schedule": config.SITE_VISIT_SCAN_INTERVAL_SECONDS,
        },
        "quotes": {
            "task": "scans.quotes",
            "schedule": config.QUOTE_SCAN_INTERVAL_SECONDS,
        },
        "invoice-retry": {
            "task": "scans.invoice_retry",
            "schedule": config.INVOICE_RETRY_INTERVAL_SECONDS,
        },
    },
)

# Local/dev convenience: run tasks synchronously when requested.
if os.getenv("CELERY_TASK_ALWAYS_EAGER", "false").lower() in {"1", "true", "yes", "on"}:
    celery_app.conf.task_always_eager = True
