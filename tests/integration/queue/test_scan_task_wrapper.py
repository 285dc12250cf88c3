from __future__ import annotations

from venue_crm.tasks.registry import default_registry
from venue_crm.tasks.scan_tasks import dead_letter_queue, execute_registered_task


def test_scan_task_retries_then_succeeds():
    state = {"calls": 0}

    def flaky_executor():
        state["calls"] += 1
        if state["calls"] == 1:
            raise RuntimeError("transient failure")
        return {"scanned": 3}

    default_registry.register("test.flaky", flaky_executor)
    result = execute_registered_task(
        task_key="test.flaky",
        max_retries=1,
        base_backoff_seconds=0.0,
    )
    assert result["status"] == "succeeded"
    assert result["retry_count"] == 1
    assert result["result"] == {"scanned": 3}


def test_scan_task_unknown_key_dead_letters():
    result = execute_registered_task(
        task_key="test.missing",
        max_retries=0,
    )
    assert result["status"] == "failed"
    assert result["dead_lettered"] is True
    assert dead_letter_queue[-1]["task_key"] == "test.missing"


def test_scan_task_exhausting_retries_dead_letters():
    def always_fails():
        raise RuntimeError("store down")

    default_registry.register("test.broken", always_fails)
    result = execute_registered_task(task_key="test.broken", max_retries=2, base_backoff_seconds=0.0)

    assert result["status"] == "failed"
    assert result["retry_count"] == 2
    assert result["error_payload"] == {"type": "RuntimeError", "message": "store down"}


def test_default_registry_exposes_all_scans():
    assert {"scans.stale_leads", "scans.site_visits", "scans.quotes"}.issubset(set(default_registry.keys()))
