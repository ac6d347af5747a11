"""Consent manager — the session-level façade the consent UI talks to.

Order of every decision:
  1. persist the new record (synchronous)
  2. reconcile trackers once against the persisted categories
  3. schedule the audit call (fire-and-forget)

so the prompt never closes while trackers still observe the old state.
Nothing here raises into page rendering: storage failures are logged and
the previous state stays in effect.
"""

from __future__ import annotations

import structlog

from dietitian.config import Settings, settings
from dietitian.models.consent import ConsentCategories, ConsentPreferences, ConsentRecord, ConsentSource
from dietitian.services.analytics import Analytics
from dietitian.services.consent_audit import ConsentAuditClient
from dietitian.services.consent_events import ConsentEventBus
from dietitian.services.consent_policy import ConsentPolicy
from dietitian.services.consent_store import ConsentStore
from dietitian.services.cookie_storage import CookieStorage
from dietitian.services.dispatcher import ConsentDispatcher, default_integrations
from dietitian.services.trackers import TrackerHost

logger = structlog.get_logger()


class ConsentManager:
    def __init__(
        self,
        store: ConsentStore,
        dispatcher: ConsentDispatcher,
        policy: ConsentPolicy | None = None,
        audit: ConsentAuditClient | None = None,
        analytics: Analytics | None = None,
    ):
        self.store = store
        self.dispatcher = dispatcher
        self.policy = policy if policy is not None else ConsentPolicy(store)
        self.audit = audit
        self.analytics = analytics if analytics is not None else Analytics(self.policy, dispatcher)

    @property
    def preferences(self) -> ConsentCategories | None:
        record = self.store.read()
        return record.categories if record else None

    @property
    def has_consented(self) -> bool:
        """False means the banner must be shown."""
        return self.store.has_record()

    @property
    def legal_accepted(self) -> bool:
        return self.store.gate.has_accepted()

    def is_allowed(self, category: str) -> bool:
        return self.policy.is_allowed(category)

    def is_consent_expired(self) -> bool:
        return self.policy.is_consent_expired()

    def restore(self) -> ConsentCategories:
        """Reconcile trackers with whatever is stored, at session start."""
        categories = self.preferences or ConsentCategories.essential_only()
        self.dispatcher.reconcile(categories)
        return categories

    def accept_all(self, source: ConsentSource = "banner") -> ConsentRecord | None:
        return self._decide(ConsentPreferences(functional=True, analytics=True, marketing=True), source)

    def reject_all(self, source: ConsentSource = "banner") -> ConsentRecord | None:
        return self._decide(ConsentPreferences(), source)

    def save_preferences(
        self,
        functional: bool = False,
        analytics: bool = False,
        marketing: bool = False,
    ) -> ConsentRecord | None:
        prefs = ConsentPreferences(functional=functional, analytics=analytics, marketing=marketing)
        return self._decide(prefs, "preferences")

    def withdraw(self) -> None:
        try:
            self.store.withdraw()
        except Exception as e:
            logger.error("consent_withdraw_failed", error=str(e))
            return

        self.dispatcher.reconcile(ConsentCategories.essential_only())
        if self.audit is not None:
            self.audit.submit_withdrawal()

    def _decide(self, prefs: ConsentPreferences, source: ConsentSource) -> ConsentRecord | None:
        try:
            record = self.store.write(prefs, source)
        except Exception as e:
            logger.error("consent_write_failed", source=source, error=str(e))
            return None

        self.dispatcher.reconcile(record.categories)
        if self.audit is not None:
            self.audit.submit_consent(record.categories, record.version)
        return record


def create_consent_manager(
    storage: CookieStorage,
    config: Settings = settings,
    events: ConsentEventBus | None = None,
    audit: ConsentAuditClient | None = None,
) -> ConsentManager:
    """Wire one visitor session: store, policy, trackers, analytics and the audit sink."""
    store = ConsentStore(
        storage,
        version=config.CONSENT_POLICY_VERSION,
        max_age=config.consent_max_age_seconds,
    )
    dispatcher = ConsentDispatcher(TrackerHost(cookies=storage), default_integrations(config), events)
    policy = ConsentPolicy(store, config.CONSENT_POLICY_VERSION)
    analytics = Analytics(policy, dispatcher, config.GA_MEASUREMENT_ID, config.GOOGLE_ADS_CONVERSION_ID)
    if audit is None:
        audit = ConsentAuditClient(config.AUDIT_BASE_URL)
    return ConsentManager(store, dispatcher, policy, audit, analytics)
