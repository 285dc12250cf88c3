"""Per-source automation toggles."""

from __future__ import annotations

from collections.abc import Mapping

from venue_crm.core.enums import DEFAULT_SOURCE_KEY
from venue_crm.schemas.policies import SAFE_DEFAULT_ACTIONS, ActionSet
from venue_crm.utils.validators import collapse_whitespace


def source_key(source_name: str | None) -> str:
    """Normalize a source display name: lowercase, whitespace runs become one underscore."""
    if not source_name:
        return ""
    return collapse_whitespace(source_name.strip(), "_").lower()


def resolve_automation(source_name: str | None, table: Mapping[str, ActionSet]) -> ActionSet:
    """Return the enabled actions for a source.

    Lookup order is the exact normalized key, then the `_default` entry, then
    the built-in safe default (call list and notification only).
    """
    key = source_key(source_name)
    if key and key in table:
        return table[key]
    if DEFAULT_SOURCE_KEY in table:
        return table[DEFAULT_SOURCE_KEY]
    return SAFE_DEFAULT_ACTIONS
