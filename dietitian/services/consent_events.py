"""In-page consent event bus.

Widgets (banner, preferences modal, settings link) subscribe once and get
the full resulting ConsentCategories synchronously on every change, so they
stay in sync without polling.
"""

from __future__ import annotations

from collections.abc import Callable

import structlog

from dietitian.models.consent import ConsentCategories

logger = structlog.get_logger()

CONSENT_UPDATE_EVENT = "cookieConsentUpdate"

ConsentListener = Callable[[ConsentCategories], None]


class ConsentEventBus:
    def __init__(self):
        self._listeners: list[ConsentListener] = []

    def subscribe(self, listener: ConsentListener) -> Callable[[], None]:
        """Register a listener. Returns a callable that unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def publish(self, categories: ConsentCategories) -> None:
        # A failing widget must not stop the others or the caller.
        for listener in list(self._listeners):
            try:
                listener(categories)
            except Exception as e:
                logger.error("consent_listener_failed", listener=repr(listener), error=str(e))

    def __len__(self) -> int:
        return len(self._listeners)
