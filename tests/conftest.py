"""Shared test fixtures for all test modules."""

from __future__ import annotations

from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest

from dietitian.services.consent_audit import ConsentAuditClient
from dietitian.services.consent_events import ConsentEventBus
from dietitian.services.consent_manager import ConsentManager
from dietitian.services.consent_store import ConsentStore
from dietitian.services.cookie_storage import MemoryCookieStorage
from dietitian.services.dispatcher import ConsentDispatcher
from dietitian.services.trackers import (
    GoogleAnalytics,
    MetaPixel,
    PerformanceMetrics,
    TagManager,
    TrackerHost,
)

FIXED_NOW = datetime(2026, 3, 1, 12, 30, 45, 123000, tzinfo=timezone.utc)
ONE_YEAR = 365 * 24 * 60 * 60


@pytest.fixture
def storage() -> MemoryCookieStorage:
    return MemoryCookieStorage()


@pytest.fixture
def store(storage) -> ConsentStore:
    return ConsentStore(storage, version="1.0", max_age=ONE_YEAR, clock=lambda: FIXED_NOW)


@pytest.fixture
def host(storage) -> TrackerHost:
    return TrackerHost(cookies=storage)


@pytest.fixture
def integrations():
    """All four integration families, fully configured."""
    return [
        GoogleAnalytics("G-TEST123"),
        PerformanceMetrics(),
        TagManager("GTM-TEST"),
        MetaPixel("1234567890"),
    ]


@pytest.fixture
def events() -> ConsentEventBus:
    return ConsentEventBus()


@pytest.fixture
def dispatcher(host, integrations, events) -> ConsentDispatcher:
    return ConsentDispatcher(host, integrations, events)


@pytest.fixture
def audit():
    return MagicMock(spec=ConsentAuditClient)


@pytest.fixture
def manager(store, dispatcher, audit) -> ConsentManager:
    return ConsentManager(store, dispatcher, audit=audit)
