import logging

from sqlalchemy.orm import sessionmaker

import venue_crm.database.db as db_module
from venue_crm.core.enums import DEFAULT_SOURCE_KEY
from venue_crm.core.exceptions import ConfigMissing
from venue_crm.core.startup import bootstrap
from venue_crm.database.models import Base
from venue_crm.database.store import SqlLeadStore
from venue_crm.schemas.policies import SAFE_DEFAULT_ACTIONS, AssignmentConfig
from venue_crm.services.policy_store import (
    ASSIGNMENT_RULES_KEY,
    AUTOMATION_RULES_KEY,
    DEFAULT_EVENT_TYPES,
    EVENT_TYPES_KEY,
    MANAGERS_KEY,
)

logger = logging.getLogger(__name__)


def default_documents() -> dict[str, dict]:
    return {
        ASSIGNMENT_RULES_KEY: AssignmentConfig().model_dump(mode="json", by_alias=True),
        AUTOMATION_RULES_KEY: {DEFAULT_SOURCE_KEY: SAFE_DEFAULT_ACTIONS.model_dump(by_alias=True)},
        MANAGERS_KEY: {"names": []},
        EVENT_TYPES_KEY: {"types": list(DEFAULT_EVENT_TYPES)},
    }


def seed_default_config(store: SqlLeadStore) -> list[str]:
    """Write default policy documents that do not exist yet. Returns the keys written."""
    written = []
    for key, payload in default_documents().items():
        try:
            store.get_config(key)
        except ConfigMissing:
            store.set_config(key, payload)
            written.append(key)
    return written


def create_schema(engine=None) -> None:
    Base.metadata.create_all(bind=engine or db_module.get_engine())


def init_db(session_factory: sessionmaker | None = None) -> list[str]:
    bootstrap()
    active_url = db_module.get_active_database_url()
    create_schema(session_factory.kw["bind"] if session_factory is not None else None)
    seeded = seed_default_config(SqlLeadStore(session_factory))
    logger.info(
        "database.tables.created",
        extra={
            "event": "database.tables.created",
            "database_url_scheme": active_url.split("://", 1)[0],
            "seeded": ",".join(seeded),
        },
    )
    return seeded


if __name__ == "__main__":
    init_db()
