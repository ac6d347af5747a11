"""Third-party tracker integrations.

Each integration family (analytics measurement, performance metrics, tag
manager, advertising pixel) is one TrackerIntegration variant. Integrations
never touch a browser directly: they emit script tags, dataLayer pushes,
function-call commands and window events into a TrackerHost, which the page
renders and replays.

Lifecycle per integration:
  IDLE ──init──▶ ACTIVE ──revoke──▶ REVOKED ──restore──▶ ACTIVE

A script is injected at most once (init_count never exceeds 1); re-granting
after a revoke sends a consent-grant signal instead.
"""

from __future__ import annotations

import enum
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

import structlog

from dietitian.models.consent import ConsentCategories
from dietitian.services.cookie_storage import CookieStorage

logger = structlog.get_logger()


@dataclass
class ScriptTag:
    src: str
    is_async: bool = True


@dataclass
class TrackerHost:
    """Everything the integrations want the page to do."""

    cookies: CookieStorage
    scripts: list[ScriptTag] = field(default_factory=list)
    data_layer: list[Any] = field(default_factory=list)
    commands: list[tuple] = field(default_factory=list)
    events: list[tuple[str, dict]] = field(default_factory=list)

    def inject_script(self, src: str) -> None:
        self.scripts.append(ScriptTag(src=src))

    def call(self, function: str, *args: Any) -> None:
        """Queue a global function call, e.g. ``gtag('config', id)``."""
        self.commands.append((function, *args))

    def push_data_layer(self, entry: Any) -> None:
        self.data_layer.append(entry)

    def dispatch_event(self, name: str, detail: dict) -> None:
        self.events.append((name, detail))

    def purge_cookies(self, names: tuple[str, ...]) -> list[str]:
        """Delete whichever of ``names`` are present. Returns the deleted names."""
        deleted = []
        for name in names:
            if self.cookies.get(name) is not None:
                self.cookies.delete(name)
                deleted.append(name)
        return deleted


class IntegrationState(str, enum.Enum):
    IDLE = "idle"
    ACTIVE = "active"
    REVOKED = "revoked"


def _storage_signal(categories: ConsentCategories | None) -> dict[str, str]:
    analytics = categories is not None and categories.analytics
    marketing = categories is not None and categories.marketing
    return {
        "analytics_storage": "granted" if analytics else "denied",
        "ad_storage": "granted" if marketing else "denied",
    }


class TrackerIntegration(ABC):
    """One third-party instrumentation family."""

    name: str = ""
    tracking_cookies: tuple[str, ...] = ()

    def __init__(self):
        self.state = IntegrationState.IDLE
        self.init_count = 0

    @property
    def enabled(self) -> bool:
        """False when the integration has no configured ID."""
        return True

    @abstractmethod
    def required(self, categories: ConsentCategories) -> bool:
        ...

    def is_initialized(self) -> bool:
        return self.state is not IntegrationState.IDLE

    @property
    def is_active(self) -> bool:
        return self.state is IntegrationState.ACTIVE

    def init(self, host: TrackerHost) -> bool:
        if self.state is not IntegrationState.IDLE:
            return False
        if not self.enabled:
            logger.debug("tracker_not_configured", integration=self.name)
            return False
        self._load(host)
        self.state = IntegrationState.ACTIVE
        self.init_count += 1
        logger.info("tracker_initialized", integration=self.name)
        return True

    def revoke(self, host: TrackerHost, categories: ConsentCategories | None = None) -> bool:
        """Send the denial signal. ``categories`` is the set still in effect (None means nothing)."""
        if self.state is not IntegrationState.ACTIVE:
            return False
        self._revoke(host, categories)
        self.state = IntegrationState.REVOKED
        logger.info("tracker_revoked", integration=self.name)
        return True

    def restore(self, host: TrackerHost, categories: ConsentCategories) -> bool:
        if self.state is not IntegrationState.REVOKED:
            return False
        self._grant(host, categories)
        self.state = IntegrationState.ACTIVE
        logger.info("tracker_restored", integration=self.name)
        return True

    @abstractmethod
    def _load(self, host: TrackerHost) -> None:
        ...

    @abstractmethod
    def _revoke(self, host: TrackerHost, categories: ConsentCategories | None) -> None:
        ...

    @abstractmethod
    def _grant(self, host: TrackerHost, categories: ConsentCategories) -> None:
        ...


class GoogleAnalytics(TrackerIntegration):
    """GA4 measurement via gtag.js."""

    name = "google_analytics"

    def __init__(self, measurement_id: str):
        super().__init__()
        self.measurement_id = measurement_id
        suffix = measurement_id.removeprefix("G-")
        self.tracking_cookies = ("_ga", "_gid", "_gat", f"_ga_{suffix}") if suffix else ("_ga", "_gid", "_gat")

    @property
    def enabled(self) -> bool:
        return bool(self.measurement_id)

    def required(self, categories: ConsentCategories) -> bool:
        return categories.analytics

    def _load(self, host: TrackerHost) -> None:
        host.inject_script(f"https://www.googletagmanager.com/gtag/js?id={self.measurement_id}")
        host.call("gtag", "js", datetime.now(timezone.utc).isoformat())
        host.call("gtag", "config", self.measurement_id, {
            "cookie_flags": "SameSite=Lax;Secure",
            "anonymize_ip": True,
        })

    def _revoke(self, host: TrackerHost, categories: ConsentCategories | None) -> None:
        host.call("gtag", "consent", "update", _storage_signal(categories))

    def _grant(self, host: TrackerHost, categories: ConsentCategories) -> None:
        host.call("gtag", "consent", "update", _storage_signal(categories))


class PerformanceMetrics(TrackerIntegration):
    """First-party performance metrics (Vercel Analytics). Cookieless."""

    name = "performance_metrics"
    event_name = "vercelAnalyticsConsent"

    def required(self, categories: ConsentCategories) -> bool:
        return categories.analytics

    def _load(self, host: TrackerHost) -> None:
        host.dispatch_event(self.event_name, {"granted": True})

    def _revoke(self, host: TrackerHost, categories: ConsentCategories | None) -> None:
        host.dispatch_event(self.event_name, {"granted": False})

    def _grant(self, host: TrackerHost, categories: ConsentCategories) -> None:
        host.dispatch_event(self.event_name, {"granted": True})


class TagManager(TrackerIntegration):
    """Google Tag Manager container. Needed by analytics or marketing tags."""

    name = "tag_manager"
    tracking_cookies = ("_gcl_au",)

    def __init__(self, container_id: str):
        super().__init__()
        self.container_id = container_id

    @property
    def enabled(self) -> bool:
        return bool(self.container_id)

    def required(self, categories: ConsentCategories) -> bool:
        return categories.analytics or categories.marketing

    def _load(self, host: TrackerHost) -> None:
        host.push_data_layer({"gtm.start": int(time.time() * 1000), "event": "gtm.js"})
        host.inject_script(f"https://www.googletagmanager.com/gtm.js?id={self.container_id}")

    def _revoke(self, host: TrackerHost, categories: ConsentCategories | None) -> None:
        host.push_data_layer(["consent", "update", _storage_signal(categories)])

    def _grant(self, host: TrackerHost, categories: ConsentCategories) -> None:
        host.push_data_layer(["consent", "update", _storage_signal(categories)])


class MetaPixel(TrackerIntegration):
    """Meta (Facebook) advertising pixel."""

    name = "meta_pixel"
    tracking_cookies = ("_fbp", "_fbc")
    script_src = "https://connect.facebook.net/en_US/fbevents.js"

    def __init__(self, pixel_id: str):
        super().__init__()
        self.pixel_id = pixel_id

    @property
    def enabled(self) -> bool:
        return bool(self.pixel_id)

    def required(self, categories: ConsentCategories) -> bool:
        return categories.marketing

    def _load(self, host: TrackerHost) -> None:
        host.inject_script(self.script_src)
        host.call("fbq", "init", self.pixel_id)
        host.call("fbq", "track", "PageView")

    def _revoke(self, host: TrackerHost, categories: ConsentCategories | None) -> None:
        host.call("fbq", "consent", "revoke")

    def _grant(self, host: TrackerHost, categories: ConsentCategories) -> None:
        host.call("fbq", "consent", "grant")
