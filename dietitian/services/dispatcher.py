"""Consent propagation dispatcher.

Reconciles the registered tracker integrations against a finalized
ConsentCategories set. Invoked once after every consent write and once
after withdrawal (with the essential-only set).

Per integration, reconcile is idempotent:
  - required and never loaded  → init (script injected once)
  - required and revoked       → restore (grant signal, no re-injection)
  - not required and active    → revoke signal
  - not required (any state)   → purge its first-party tracking cookies
"""

from __future__ import annotations

from collections.abc import Iterable

import structlog

from dietitian.config import Settings
from dietitian.models.consent import ConsentCategories
from dietitian.services.consent_events import CONSENT_UPDATE_EVENT, ConsentEventBus
from dietitian.services.trackers import (
    GoogleAnalytics,
    IntegrationState,
    MetaPixel,
    PerformanceMetrics,
    TagManager,
    TrackerHost,
    TrackerIntegration,
)

logger = structlog.get_logger()


def default_integrations(config: Settings) -> list[TrackerIntegration]:
    return [
        GoogleAnalytics(config.GA_MEASUREMENT_ID),
        PerformanceMetrics(),
        TagManager(config.GTM_ID),
        MetaPixel(config.META_PIXEL_ID),
    ]


class ConsentDispatcher:
    def __init__(
        self,
        host: TrackerHost,
        integrations: Iterable[TrackerIntegration],
        events: ConsentEventBus | None = None,
    ):
        self.host = host
        self._integrations: dict[str, TrackerIntegration] = {i.name: i for i in integrations}
        self.events = events if events is not None else ConsentEventBus()
        self._last: ConsentCategories | None = None

    @property
    def integrations(self) -> list[TrackerIntegration]:
        return list(self._integrations.values())

    @property
    def last_categories(self) -> ConsentCategories | None:
        return self._last

    def get(self, name: str) -> TrackerIntegration | None:
        return self._integrations.get(name)

    def is_active(self, name: str) -> bool:
        integration = self._integrations.get(name)
        return integration is not None and integration.is_active

    def reconcile(self, categories: ConsentCategories) -> None:
        for integration in self._integrations.values():
            try:
                self._reconcile_one(integration, categories)
            except Exception as e:
                logger.error("tracker_reconcile_failed", integration=integration.name, error=str(e))

        if categories != self._last:
            self._last = categories
            detail = {"preferences": categories.model_dump()}
            self.host.dispatch_event(CONSENT_UPDATE_EVENT, detail)
            self.events.publish(categories)

    def _reconcile_one(self, integration: TrackerIntegration, categories: ConsentCategories) -> None:
        if integration.required(categories):
            if integration.state is IntegrationState.REVOKED:
                integration.restore(self.host, categories)
            else:
                integration.init(self.host)
            return

        integration.revoke(self.host, categories)
        purged = self.host.purge_cookies(integration.tracking_cookies)
        if purged:
            logger.info("tracking_cookies_purged", integration=integration.name, cookies=purged)
