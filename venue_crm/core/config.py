"""Configuration module for the venue CRM automation engine."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from urllib.parse import urlparse

from dotenv import load_dotenv

from venue_crm.core.exceptions import ConfigurationError

load_dotenv()

KNOWN_WA_PROVIDERS = {"", "wati", "aisensy", "twilio"}


def _as_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Config:
    """Runtime configuration with validation."""

    APP_NAME: str
    APP_VERSION: str
    ENV: str
    DEBUG: bool
    DATABASE_URL: str
    DB_CONNECTIVITY_REQUIRED: bool
    LOG_LEVEL: str
    LOG_FILE: str
    VENUE_NAME: str
    GREETING_LANGUAGE: str
    STALE_SCAN_INTERVAL_SECONDS: float
    SITE_VISIT_SCAN_INTERVAL_SECONDS: float
    QUOTE_SCAN_INTERVAL_SECONDS: float
    INVOICE_RETRY_INTERVAL_SECONDS: float
    CHANGE_POLL_INTERVAL_SECONDS: float
    NEW_LEAD_STAGGER_SECONDS: float
    POLICY_CACHE_TTL_SECONDS: float
    STALE_REMINDER_HOURS: int
    STALE_ESCALATION_HOURS: int
    QUOTE_FOLLOW_UP_HOURS: int
    MESSAGING_SANDBOX_MODE: bool
    WA_PROVIDER: str
    WA_API_KEY: str | None
    WA_API_SECRET: str | None
    WA_API_ENDPOINT: str | None
    WA_BUSINESS_NUMBER: str | None
    SMS_ACCOUNT_SID: str | None
    SMS_AUTH_TOKEN: str | None
    SMS_FROM_NUMBER: str | None
    INVOICING_API_ENDPOINT: str | None
    INVOICING_API_KEY: str | None
    HTTP_TIMEOUT_SECONDS: int
    OLLAMA_URL: str
    OLLAMA_MODEL: str
    LLM_TIMEOUT_SECONDS: int
    LLM_MAX_RETRIES: int
    CELERY_BROKER_URL: str
    CELERY_RESULT_BACKEND: str

    @property
    def is_production(self) -> bool:
        return self.ENV == "production"

    @property
    def invoicing_configured(self) -> bool:
        return bool(self.INVOICING_API_ENDPOINT and self.INVOICING_API_KEY)


def _build_config(env: str | None = None) -> Config:
    resolved_env = (env or os.getenv("ENV", "development")).strip().lower()
    debug = _as_bool(os.getenv("DEBUG"), default=(resolved_env != "production"))
    redis_url = os.getenv("REDIS_URL", "redis://localhost:6379/0")
    change_poll = float(os.getenv("CHANGE_POLL_INTERVAL_SECONDS", "5"))

    config = Config(
        APP_NAME="Venue CRM",
        APP_VERSION=os.getenv("APP_VERSION", "1.0.0"),
        ENV=resolved_env,
        DEBUG=debug if resolved_env != "production" else False,
        DATABASE_URL=os.getenv("DATABASE_URL", "sqlite:///./venue_crm.db"),
        DB_CONNECTIVITY_REQUIRED=_as_bool(os.getenv("DB_CONNECTIVITY_REQUIRED"), default=(resolved_env == "production")),
        LOG_LEVEL=os.getenv("LOG_LEVEL", "INFO").upper(),
        LOG_FILE=os.getenv("LOG_FILE", ""),
        VENUE_NAME=os.getenv("VENUE_NAME", "Area 51 Banquet Hall"),
        GREETING_LANGUAGE=os.getenv("GREETING_LANGUAGE", "ur").lower(),
        STALE_SCAN_INTERVAL_SECONDS=float(os.getenv("STALE_SCAN_INTERVAL_SECONDS", "300")),
        SITE_VISIT_SCAN_INTERVAL_SECONDS=float(os.getenv("SITE_VISIT_SCAN_INTERVAL_SECONDS", "3600")),
        QUOTE_SCAN_INTERVAL_SECONDS=float(os.getenv("QUOTE_SCAN_INTERVAL_SECONDS", "86400")),
        INVOICE_RETRY_INTERVAL_SECONDS=float(os.getenv("INVOICE_RETRY_INTERVAL_SECONDS", "900")),
        CHANGE_POLL_INTERVAL_SECONDS=change_poll,
        NEW_LEAD_STAGGER_SECONDS=float(os.getenv("NEW_LEAD_STAGGER_SECONDS", "2")),
        POLICY_CACHE_TTL_SECONDS=float(os.getenv("POLICY_CACHE_TTL_SECONDS", str(change_poll))),
        STALE_REMINDER_HOURS=int(os.getenv("STALE_REMINDER_HOURS", "24")),
        STALE_ESCALATION_HOURS=int(os.getenv("STALE_ESCALATION_HOURS", "48")),
        QUOTE_FOLLOW_UP_HOURS=int(os.getenv("QUOTE_FOLLOW_UP_HOURS", "72")),
        MESSAGING_SANDBOX_MODE=_as_bool(os.getenv("MESSAGING_SANDBOX_MODE"), default=True),
        WA_PROVIDER=os.getenv("WA_PROVIDER", "").strip().lower(),
        WA_API_KEY=os.getenv("WA_API_KEY"),
        WA_API_SECRET=os.getenv("WA_API_SECRET"),
        WA_API_ENDPOINT=os.getenv("WA_API_ENDPOINT"),
        WA_BUSINESS_NUMBER=os.getenv("WA_BUSINESS_NUMBER"),
        SMS_ACCOUNT_SID=os.getenv("SMS_ACCOUNT_SID"),
        SMS_AUTH_TOKEN=os.getenv("SMS_AUTH_TOKEN"),
        SMS_FROM_NUMBER=os.getenv("SMS_FROM_NUMBER"),
        INVOICING_API_ENDPOINT=os.getenv("INVOICING_API_ENDPOINT"),
        INVOICING_API_KEY=os.getenv("INVOICING_API_KEY"),
        HTTP_TIMEOUT_SECONDS=int(os.getenv("HTTP_TIMEOUT_SECONDS", "15")),
        OLLAMA_URL=os.getenv("OLLAMA_URL", "http://localhost:11434/api/generate"),
        OLLAMA_MODEL=os.getenv("OLLAMA_MODEL", "qwen2.5:7b"),
        LLM_TIMEOUT_SECONDS=int(os.getenv("LLM_TIMEOUT_SECONDS", "90")),
        LLM_MAX_RETRIES=int(os.getenv("LLM_MAX_RETRIES", "2")),
        CELERY_BROKER_URL=os.getenv("CELERY_BROKER_URL", redis_url),
        CELERY_RESULT_BACKEND=os.getenv("CELERY_RESULT_BACKEND", redis_url),
    )
    _validate_config(config)
    return config


def _validate_database_url(database_url: str) -> None:
    parsed = urlparse(database_url)
    if parsed.scheme not in {"sqlite", "postgresql", "postgresql+psycopg2"}:
        raise ConfigurationError(
            "DATABASE_URL must use sqlite:// or postgresql:// style URL."
        )
    if parsed.scheme.startswith("postgresql") and not parsed.hostname:
        raise ConfigurationError("PostgreSQL DATABASE_URL is missing hostname.")


def _validate_config(config: Config) -> None:
    _validate_database_url(config.DATABASE_URL)

    for name in (
        "STALE_SCAN_INTERVAL_SECONDS",
        "SITE_VISIT_SCAN_INTERVAL_SECONDS",
        "QUOTE_SCAN_INTERVAL_SECONDS",
        "INVOICE_RETRY_INTERVAL_SECONDS",
        "CHANGE_POLL_INTERVAL_SECONDS",
    ):
        if getattr(config, name) <= 0:
            raise ConfigurationError(f"{name} must be > 0.")
    if config.NEW_LEAD_STAGGER_SECONDS < 0:
        raise ConfigurationError("NEW_LEAD_STAGGER_SECONDS must be >= 0.")
    if config.POLICY_CACHE_TTL_SECONDS > config.CHANGE_POLL_INTERVAL_SECONDS:
        raise ConfigurationError("POLICY_CACHE_TTL_SECONDS must not exceed one scheduler tick.")
    if config.STALE_REMINDER_HOURS < 1:
        raise ConfigurationError("STALE_REMINDER_HOURS must be >= 1.")
    if config.STALE_ESCALATION_HOURS <= config.STALE_REMINDER_HOURS:
        raise ConfigurationError("STALE_ESCALATION_HOURS must be greater than STALE_REMINDER_HOURS.")
    if config.QUOTE_FOLLOW_UP_HOURS < 1:
        raise ConfigurationError("QUOTE_FOLLOW_UP_HOURS must be >= 1.")
    if config.WA_PROVIDER not in KNOWN_WA_PROVIDERS:
        raise ConfigurationError("WA_PROVIDER must be one of wati/aisensy/twilio.")
    if config.GREETING_LANGUAGE not in {"en", "ur"}:
        raise ConfigurationError("GREETING_LANGUAGE must be 'en' or 'ur'.")
    if config.HTTP_TIMEOUT_SECONDS < 1 or config.LLM_TIMEOUT_SECONDS < 1:
        raise ConfigurationError("HTTP/LLM timeouts must be >= 1.")
    if config.LLM_MAX_RETRIES < 0:
        raise ConfigurationError("LLM_MAX_RETRIES must be >= 0.")
    if config.LOG_LEVEL not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
        raise ConfigurationError("LOG_LEVEL must be one of DEBUG/INFO/WARNING/ERROR/CRITICAL.")
    if config.is_production and "change_me" in config.DATABASE_URL.lower():
        raise ConfigurationError("Production DATABASE_URL uses placeholder credentials.")


@lru_cache(maxsize=8)
def get_config(env: str | None = None) -> Config:
    """Get validated configuration for the requested environment."""
    return _build_config(env)
