"""Deterministic sanitizers used before persistence and outbound sends."""

from __future__ import annotations

import re

_NON_DIGITS = re.compile(r"\D")
_WHITESPACE_RUN = re.compile(r"\s+")


def sanitize_text(value: str | None, max_len: int = 20000) -> str:
    """Sanitize free-form content before persistence/display."""
    if value is None:
        return ""
    cleaned = str(value).replace("\x00", "").strip()
    cleaned = cleaned[:max_len]
    return cleaned


def normalize_phone(value: str | None, country_code: str = "92") -> str | None:
    """Normalize a local phone number to international digits (e.g. 0300... -> 92300...)."""
    if not value:
        return None
    digits = _NON_DIGITS.sub("", str(value))
    if not digits:
        return None
    if digits.startswith("0"):
        digits = country_code + digits[1:]
    if not digits.startswith(country_code):
        digits = country_code + digits
    return digits


def collapse_whitespace(value: str, separator: str = " ") -> str:
    """Replace every whitespace run with a single separator."""
    return _WHITESPACE_RUN.sub(separator, value)
