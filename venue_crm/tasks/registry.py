"""Task registry mapping task keys to executable callables."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from venue_crm.database.store import SqlLeadStore
from venue_crm.orchestration.orchestrator import AutomationOrchestrator

TaskExecutor = Callable[[], Any]


class TaskRegistry:
    """Mutable task registry for scheduled scans."""

    def __init__(self) -> None:
        self._executors: dict[str, TaskExecutor] = {}

    def register(self, task_key: str, executor: TaskExecutor) -> None:
        self._executors[task_key] = executor

    def get(self, task_key: str) -> TaskExecutor:
        if task_key not in self._executors:
            raise KeyError(f"Unknown task key: {task_key}")
        return self._executors[task_key]

    def keys(self) -> list[str]:
        return sorted(self._executors.keys())


def _orchestrator() -> AutomationOrchestrator:
    return AutomationOrchestrator(SqlLeadStore())


def _stale_scan() -> dict[str, Any]:
    return _orchestrator().run_stale_scan_once().as_dict()


def _site_visit_scan() -> dict[str, Any]:
    return _orchestrator().run_site_visit_scan_once().as_dict()


def _quote_scan() -> dict[str, Any]:
    return _orchestrator().run_quote_scan_once().as_dict()


def _invoice_retry() -> dict[str, Any]:
    return _orchestrator().retry_invoice_pushes().as_dict()


def build_default_registry() -> TaskRegistry:
    registry = TaskRegistry()
    registry.register("scans.stale_leads", _stale_scan)
    registry.register("scans.site_visits", _site_visit_scan)
    registry.register("scans.quotes", _quote_scan)
    registry.register("scans.invoice_retry", _invoice_retry)
    return registry


default_registry = build_default_registry()
