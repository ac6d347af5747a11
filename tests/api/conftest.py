"""API test fixtures — FastAPI TestClient.

The region classifier is swapped for one backed by a stub lookup so no
request ever leaves the process. Consent cookies are set directly on the
client: the app marks them Secure, so the client jar would not replay them
over plain http.
"""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from dietitian.deps import get_region_classifier
from dietitian.main import app
from dietitian.models.consent import ConsentPreferences
from dietitian.services.consent_store import ConsentStore
from dietitian.services.cookie_storage import CONSENT_COOKIE, MemoryCookieStorage
from dietitian.services.geo import RegionClassifier
from dietitian.services.geo_cache import MemoryGeoCache


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def country_lookup():
    lookup = AsyncMock()
    lookup.lookup_country = AsyncMock(return_value=None)
    return lookup


@pytest.fixture
def classifier(country_lookup):
    classifier = RegionClassifier(country_lookup, cache=MemoryGeoCache())
    app.dependency_overrides[get_region_classifier] = lambda: classifier
    yield classifier
    app.dependency_overrides.pop(get_region_classifier, None)


@pytest.fixture
def consent_cookie():
    """Build the stored-record cookie value the site would have written."""

    def build(version: str = "1.0", **choices) -> str:
        storage = MemoryCookieStorage()
        store = ConsentStore(storage, version=version, max_age=60)
        if choices:
            store.write(ConsentPreferences(**choices))
        else:
            store.reject_all()
        return storage.get(CONSENT_COOKIE)

    return build
