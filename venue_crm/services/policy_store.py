"""Typed accessor for policy documents with a short-lived cache."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from typing import Any

from pydantic import ValidationError

from venue_crm.core.enums import UNASSIGNED
from venue_crm.core.exceptions import ConfigMissing
from venue_crm.schemas.policies import ActionSet, AssignmentConfig

logger = logging.getLogger(__name__)

ASSIGNMENT_RULES_KEY = "assignment_rules"
AUTOMATION_RULES_KEY = "automation_rules"
MANAGERS_KEY = "managers"
EVENT_TYPES_KEY = "event_types"

DEFAULT_EVENT_TYPES = ["Wedding", "Mehndi", "Engagement", "Birthday", "Corporate Event", "Other"]


class PolicyStore:
    """Reads and writes assignment/automation/roster documents.

    Reads are cached for `ttl_seconds`, which must not exceed one scheduler tick.
    Missing or malformed documents resolve to built-in defaults; store outages
    propagate so the caller can retry on the next tick.
    """

    def __init__(self, store, ttl_seconds: float = 5.0, clock: Callable[[], float] = time.monotonic) -> None:
        self._store = store
        self._ttl = ttl_seconds
        self._clock = clock
        self._cache: dict[str, tuple[float, Any]] = {}
        self._lock = threading.Lock()

    def _cached(self, key: str, loader: Callable[[], Any]) -> Any:
        now = self._clock()
        with self._lock:
            hit = self._cache.get(key)
            if hit is not None and hit[0] > now:
                return hit[1]
        value = loader()
        with self._lock:
            self._cache[key] = (now + self._ttl, value)
        return value

    def _document(self, key: str) -> dict[str, Any] | None:
        try:
            return self._store.get_config(key)
        except ConfigMissing:
            logger.info("policy.document.missing", extra={"event": "policy.document.missing", "key": key})
            return None

    def invalidate(self, key: str | None = None) -> None:
        with self._lock:
            if key is None:
                self._cache.clear()
            else:
                self._cache.pop(key, None)

    def assignment_config(self) -> AssignmentConfig:
        def _load() -> AssignmentConfig:
            payload = self._document(ASSIGNMENT_RULES_KEY)
            if payload is None:
                return AssignmentConfig()
            try:
                return AssignmentConfig.model_validate(payload)
            except ValidationError as exc:
                logger.warning(
                    "policy.assignment_rules.invalid",
                    extra={"event": "policy.assignment_rules.invalid", "error": str(exc)},
                )
                return AssignmentConfig()

        return self._cached(ASSIGNMENT_RULES_KEY, _load)

    def automation_rules(self) -> dict[str, ActionSet]:
        def _load() -> dict[str, ActionSet]:
            payload = self._document(AUTOMATION_RULES_KEY) or {}
            table: dict[str, ActionSet] = {}
            for key, value in payload.items():
                try:
                    table[key] = ActionSet.model_validate(value or {})
                except ValidationError:
                    logger.warning(
                        "policy.automation_rule.invalid",
                        extra={"event": "policy.automation_rule.invalid", "source_key": key},
                    )
            return table

        return self._cached(AUTOMATION_RULES_KEY, _load)

    def managers(self) -> list[str]:
        def _load() -> list[str]:
            payload = self._document(MANAGERS_KEY) or {}
            names = payload.get("names") or []
            return [str(n) for n in names if n and n != UNASSIGNED]

        return self._cached(MANAGERS_KEY, _load)

    def event_types(self) -> list[str]:
        def _load() -> list[str]:
            payload = self._document(EVENT_TYPES_KEY) or {}
            return list(payload.get("types") or DEFAULT_EVENT_TYPES)

        return self._cached(EVENT_TYPES_KEY, _load)

    def save_assignment_config(self, config: AssignmentConfig) -> None:
        self._store.set_config(ASSIGNMENT_RULES_KEY, config.model_dump(mode="json", by_alias=True))
        self.invalidate(ASSIGNMENT_RULES_KEY)

    def save_automation_rule(self, source_key: str, actions: ActionSet) -> None:
        try:
            payload = self._store.get_config(AUTOMATION_RULES_KEY)
        except ConfigMissing:
            payload = {}
        payload[source_key] = actions.model_dump(by_alias=True)
        self._store.set_config(AUTOMATION_RULES_KEY, payload)
        self.invalidate(AUTOMATION_RULES_KEY)

    def save_managers(self, names: list[str]) -> None:
        self._store.set_config(MANAGERS_KEY, {"names": list(names)})
        self.invalidate(MANAGERS_KEY)
