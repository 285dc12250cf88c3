"""Identifier generation helpers."""

from __future__ import annotations

import uuid


def new_trace_id() -> str:
    """Create a hex trace identifier for task and scan logs."""
    return uuid.uuid4().hex
