"""Consent-gated tracking calls.

Every method checks the consent policy first and is a silent no-op when the
category is denied. Calls are only routed to integrations the dispatcher has
actually activated.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

import structlog

from dietitian.services.consent_policy import ConsentPolicy
from dietitian.services.dispatcher import ConsentDispatcher
from dietitian.services.trackers import GoogleAnalytics, MetaPixel, PerformanceMetrics

logger = structlog.get_logger()


class Analytics:
    def __init__(
        self,
        policy: ConsentPolicy,
        dispatcher: ConsentDispatcher,
        measurement_id: str = "",
        ads_conversion_id: str = "",
    ):
        self.policy = policy
        self.dispatcher = dispatcher
        self.host = dispatcher.host
        self.measurement_id = measurement_id
        self.ads_conversion_id = ads_conversion_id

    @property
    def _gtag(self) -> bool:
        return self.dispatcher.is_active(GoogleAnalytics.name)

    @property
    def _va(self) -> bool:
        return self.dispatcher.is_active(PerformanceMetrics.name)

    @property
    def _fbq(self) -> bool:
        # The pixel only ever receives data under marketing consent.
        return self.dispatcher.is_active(MetaPixel.name) and self.policy.is_allowed("marketing")

    def page_view(self, url: str, title: str | None = None) -> None:
        if not self.policy.is_allowed("analytics"):
            return
        if self._gtag:
            self.host.call("gtag", "event", "page_view", {"page_path": url, "page_title": title})
        if self._va:
            self.host.call("va", "pageview", {"path": url})
        logger.debug("analytics_page_view", url=url)

    def event(self, name: str, params: dict[str, Any] | None = None) -> None:
        if not self.policy.is_allowed("analytics"):
            return
        if self._gtag:
            self.host.call("gtag", "event", name, params or {})
        if self._va:
            self.host.call("va", "event", {"name": name, "data": params or {}})
        logger.debug("analytics_event", name=name)

    def conversion(self, name: str, value: float | None = None, currency: str = "USD") -> None:
        """Ad conversion. Requires marketing consent."""
        if not self.policy.is_allowed("marketing"):
            return
        if self._gtag:
            self.host.call("gtag", "event", "conversion", {
                "send_to": self.ads_conversion_id,
                "value": value,
                "currency": currency,
                "transaction_id": "",
            })
        if self._fbq:
            self.host.call("fbq", "track", name, {"value": value, "currency": currency})
        logger.debug("analytics_conversion", name=name, value=value)

    def purchase(
        self,
        transaction_id: str,
        value: float,
        currency: str = "USD",
        items: Iterable[dict[str, Any]] = (),
    ) -> None:
        if not self.policy.is_allowed("marketing"):
            return
        items = list(items)
        if self._gtag:
            self.host.call("gtag", "event", "purchase", {
                "transaction_id": transaction_id,
                "value": value,
                "currency": currency,
                "items": items,
            })
        if self._fbq:
            self.host.call("fbq", "track", "Purchase", {
                "value": value,
                "currency": currency,
                "content_ids": [item["id"] for item in items if item.get("id") is not None],
                "content_type": "product",
            })
        logger.debug("analytics_purchase", transaction_id=transaction_id, value=value)

    def signup(self, method: str | None = None) -> None:
        if not self.policy.is_allowed("analytics"):
            return
        if self._gtag:
            self.host.call("gtag", "event", "sign_up", {"method": method or "email"})
        if self._fbq:
            self.host.call("fbq", "track", "CompleteRegistration", {"method": method})
        logger.debug("analytics_signup", method=method)

    def form_submit(self, form_name: str, form_data: dict[str, Any] | None = None) -> None:
        self.event("form_submit", {"form_name": form_name, **(form_data or {})})

    def button_click(self, button_name: str, location: str | None = None) -> None:
        self.event("button_click", {"button_name": button_name, "location": location})

    def error(self, message: str, error_type: str | None = None) -> None:
        self.event("error", {"error_message": message, "error_type": error_type or "unknown"})

    def set_user(self, user_id: str, properties: dict[str, Any] | None = None) -> None:
        if not self.policy.is_allowed("analytics"):
            return
        if self._gtag:
            self.host.call("gtag", "config", self.measurement_id, {"user_id": user_id, **(properties or {})})
        logger.debug("analytics_user_set")
