from __future__ import annotations

import os

os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("MESSAGING_SANDBOX_MODE", "true")

from dataclasses import replace
from datetime import datetime

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from tests.helpers import NOW, FakeInvoicing, FakeMessaging
from venue_crm.core.config import get_config
from venue_crm.database.models import Base
from venue_crm.database.store import SqlLeadStore


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    yield factory
    engine.dispose()


@pytest.fixture
def store(session_factory) -> SqlLeadStore:
    return SqlLeadStore(session_factory)


@pytest.fixture
def test_config():
    return replace(
        get_config(),
        VENUE_NAME="Area 51 Banquet Hall",
        GREETING_LANGUAGE="en",
        MESSAGING_SANDBOX_MODE=True,
        STALE_SCAN_INTERVAL_SECONDS=0.05,
        SITE_VISIT_SCAN_INTERVAL_SECONDS=0.05,
        QUOTE_SCAN_INTERVAL_SECONDS=0.05,
        INVOICE_RETRY_INTERVAL_SECONDS=0.05,
        CHANGE_POLL_INTERVAL_SECONDS=0.02,
        NEW_LEAD_STAGGER_SECONDS=0.0,
        POLICY_CACHE_TTL_SECONDS=0.0,
    )


@pytest.fixture
def messaging() -> FakeMessaging:
    return FakeMessaging()


@pytest.fixture
def invoicing() -> FakeInvoicing:
    return FakeInvoicing()
