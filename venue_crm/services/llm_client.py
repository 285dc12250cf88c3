from __future__ import annotations

import json
import logging
import time
from typing import Any, Protocol

import requests

from venue_crm.core.config import get_config

logger = logging.getLogger(__name__)


class AnswerOracle(Protocol):
    """Anything that turns a prompt plus structured context into answer text."""

    model_name: str

    def answer(self, prompt: str, context: dict[str, Any]) -> str: ...


def call_llm(prompt: str, json_mode: bool = False, model: str | None = None) -> str:
    """Generate text with Ollama. Returns an empty string when the model is unavailable."""
    config = get_config()
    payload = {
        "model": model or config.OLLAMA_MODEL,
        "prompt": prompt,
        "stream": False,
    }
    if json_mode:
        payload["format"] = "json"

    last_error: Exception | None = None
    total_attempts = config.LLM_MAX_RETRIES + 1

    for attempt in range(1, total_attempts + 1):
        try:
            response = requests.post(
                config.OLLAMA_URL,
                json=payload,
                timeout=(2, config.LLM_TIMEOUT_SECONDS),
            )
            response.raise_for_status()
            body = response.json()
            return body.get("response", "")
        except (requests.exceptions.RequestException, ValueError) as exc:
            last_error = exc
            logger.warning(
                "llm.call.failed",
                extra={
                    "event": "llm.call.failed",
                    "attempt": attempt,
                    "attempts_total": total_attempts,
                    "error": str(exc),
                },
            )
            should_retry = attempt < total_attempts
            local_ollama = ("localhost" in config.OLLAMA_URL) or ("127.0.0.1" in config.OLLAMA_URL)
            fast_fail_errors = (
                requests.exceptions.ConnectionError,
                requests.exceptions.Timeout,
            )
            if local_ollama and isinstance(exc, fast_fail_errors):
                # Local Ollama down: go straight to the caller's fallback text.
                should_retry = False

            if should_retry:
                time.sleep(min(2 * attempt, 5))
            else:
                break

    logger.error(
        "llm.call.unavailable",
        extra={
            "event": "llm.call.unavailable",
            "ollama_url": config.OLLAMA_URL,
            "model": payload["model"],
            "error": str(last_error) if last_error else "unknown",
        },
    )
    return ""


class OllamaOracle:
    """Default answering oracle backed by `call_llm`."""

    def __init__(self, model_name: str | None = None) -> None:
        self.model_name = model_name or get_config().OLLAMA_MODEL

    def answer(self, prompt: str, context: dict[str, Any]) -> str:
        rendered = f"{prompt}\n\nCONTEXT (JSON):\n{json.dumps(context, default=str, ensure_ascii=False)}"
        return call_llm(rendered, model=self.model_name).strip()
