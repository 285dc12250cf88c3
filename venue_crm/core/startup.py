"""Startup validation and bootstrap helpers."""

from __future__ import annotations

import logging

from venue_crm.core.config import get_config
from venue_crm.core.logging_config import configure_logging
from venue_crm.database.db import get_active_database_url, verify_database_connection

logger = logging.getLogger(__name__)


def validate_startup_config() -> None:
    """Fail-fast config and connectivity checks."""
    config = get_config()
    database_ok = verify_database_connection()
    active_database_url = get_active_database_url()
    if not database_ok and config.DB_CONNECTIVITY_REQUIRED:
        raise RuntimeError("Database connectivity check failed.")
    if not database_ok:
        logger.warning(
            "startup.database.connectivity_optional_failed",
            extra={"event": "startup.database.connectivity_optional_failed"},
        )

    if config.is_production and config.MESSAGING_SANDBOX_MODE:
        logger.warning(
            "startup.production.messaging_sandbox",
            extra={"event": "startup.production.messaging_sandbox"},
        )
    if config.is_production and not config.invoicing_configured:
        logger.warning(
            "startup.production.invoicing_unconfigured",
            extra={"event": "startup.production.invoicing_unconfigured"},
        )

    logger.info(
        "startup.config.validated",
        extra={
            "event": "startup.config.validated",
            "env": config.ENV,
            "database_url_scheme": active_database_url.split("://", 1)[0],
            "db_connectivity_required": config.DB_CONNECTIVITY_REQUIRED,
            "venue": config.VENUE_NAME,
        },
    )


def bootstrap() -> None:
    """Initialize logging and validate runtime configuration."""
    configure_logging()
    validate_startup_config()
