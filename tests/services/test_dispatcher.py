"""Tests for the Consent Propagation Dispatcher and tracker integrations."""

from dietitian.models.consent import ConsentCategories
from dietitian.services.consent_events import CONSENT_UPDATE_EVENT, ConsentEventBus
from dietitian.services.dispatcher import ConsentDispatcher
from dietitian.services.trackers import (
    GoogleAnalytics,
    IntegrationState,
    MetaPixel,
    PerformanceMetrics,
    TagManager,
    TrackerHost,
)

ALL = ConsentCategories.all_granted()
NONE = ConsentCategories.essential_only()
ONE_YEAR = 365 * 24 * 60 * 60

DENIED = {"analytics_storage": "denied", "ad_storage": "denied"}


def _init_counts(dispatcher):
    return {i.name: i.init_count for i in dispatcher.integrations}


class TestInit:
    def test_accept_all_initializes_every_family_once(self, dispatcher, host):
        dispatcher.reconcile(ALL)

        assert _init_counts(dispatcher) == {
            "google_analytics": 1,
            "performance_metrics": 1,
            "tag_manager": 1,
            "meta_pixel": 1,
        }
        assert [s.src for s in host.scripts] == [
            "https://www.googletagmanager.com/gtag/js?id=G-TEST123",
            "https://www.googletagmanager.com/gtm.js?id=GTM-TEST",
            "https://connect.facebook.net/en_US/fbevents.js",
        ]

    def test_reconcile_is_idempotent(self, dispatcher, host):
        dispatcher.reconcile(ALL)
        scripts = list(host.scripts)
        commands = list(host.commands)

        dispatcher.reconcile(ALL)

        assert all(count == 1 for count in _init_counts(dispatcher).values())
        assert host.scripts == scripts
        assert host.commands == commands

    def test_analytics_only(self, dispatcher):
        dispatcher.reconcile(ConsentCategories(analytics=True))
        assert dispatcher.is_active("google_analytics")
        assert dispatcher.is_active("performance_metrics")
        assert dispatcher.is_active("tag_manager")
        assert not dispatcher.get("meta_pixel").is_initialized()

    def test_marketing_only(self, dispatcher):
        dispatcher.reconcile(ConsentCategories(marketing=True))
        assert dispatcher.is_active("tag_manager")
        assert dispatcher.is_active("meta_pixel")
        assert not dispatcher.get("google_analytics").is_initialized()
        assert not dispatcher.get("performance_metrics").is_initialized()

    def test_functional_only_starts_nothing(self, dispatcher, host):
        dispatcher.reconcile(ConsentCategories(functional=True))
        assert not any(i.is_initialized() for i in dispatcher.integrations)
        assert host.scripts == []

    def test_pixel_fires_page_view_after_init(self, dispatcher, host):
        dispatcher.reconcile(ConsentCategories(marketing=True))
        fbq = [c for c in host.commands if c[0] == "fbq"]
        assert fbq == [("fbq", "init", "1234567890"), ("fbq", "track", "PageView")]

    def test_ga_config_anonymizes_ip(self, dispatcher, host):
        dispatcher.reconcile(ConsentCategories(analytics=True))
        config = next(c for c in host.commands if c[:2] == ("gtag", "config"))
        assert config[2] == "G-TEST123"
        assert config[3]["anonymize_ip"] is True

    def test_tag_manager_pushes_start_event(self, dispatcher, host):
        dispatcher.reconcile(ConsentCategories(marketing=True))
        assert host.data_layer[0]["event"] == "gtm.js"

    def test_unconfigured_integrations_skipped(self, storage):
        host = TrackerHost(cookies=storage)
        dispatcher = ConsentDispatcher(host, [
            GoogleAnalytics(""), PerformanceMetrics(), TagManager(""), MetaPixel(""),
        ])
        dispatcher.reconcile(ALL)

        assert host.scripts == []
        assert [i.name for i in dispatcher.integrations if i.is_active] == ["performance_metrics"]
        assert ("vercelAnalyticsConsent", {"granted": True}) in host.events


class TestRevoke:
    def test_withdrawal_revokes_initialized(self, dispatcher, host):
        dispatcher.reconcile(ALL)
        dispatcher.reconcile(NONE)

        assert ("gtag", "consent", "update", DENIED) in host.commands
        assert ("fbq", "consent", "revoke") in host.commands
        assert ["consent", "update", DENIED] in host.data_layer
        assert ("vercelAnalyticsConsent", {"granted": False}) in host.events
        assert all(i.state is IntegrationState.REVOKED for i in dispatcher.integrations)

    def test_partial_transition(self, dispatcher):
        dispatcher.reconcile(ALL)
        dispatcher.reconcile(ConsentCategories(marketing=True))

        assert dispatcher.get("google_analytics").state is IntegrationState.REVOKED
        assert dispatcher.get("performance_metrics").state is IntegrationState.REVOKED
        assert dispatcher.is_active("tag_manager")
        assert dispatcher.is_active("meta_pixel")

    def test_revoke_skipped_when_never_initialized(self, dispatcher, host):
        dispatcher.reconcile(NONE)
        assert host.commands == []
        assert host.scripts == []

    def test_tracking_cookies_purged(self, dispatcher, storage):
        for name in ("_ga", "_gid", "_ga_TEST123", "_gcl_au", "_fbp", "_fbc", "session_id"):
            storage.set(name, "x", ONE_YEAR)

        dispatcher.reconcile(ALL)
        dispatcher.reconcile(NONE)

        for name in ("_ga", "_gid", "_ga_TEST123", "_gcl_au", "_fbp", "_fbc"):
            assert name not in storage
        assert storage.get("session_id") == "x"

    def test_lingering_cookies_purged_without_init(self, dispatcher, storage):
        storage.set("_fbp", "fb.1.123", ONE_YEAR)
        dispatcher.reconcile(ConsentCategories(analytics=True))
        assert "_fbp" not in storage

    def test_allowed_cookies_kept(self, dispatcher, storage):
        storage.set("_ga", "GA1.1.1", ONE_YEAR)
        dispatcher.reconcile(ConsentCategories(analytics=True))
        assert storage.get("_ga") == "GA1.1.1"

    def test_partial_revoke_keeps_ad_storage(self, dispatcher, host):
        dispatcher.reconcile(ALL)
        dispatcher.reconcile(ConsentCategories(marketing=True))

        updates = [c[3] for c in host.commands if c[:3] == ("gtag", "consent", "update")]
        assert updates[-1] == {"analytics_storage": "denied", "ad_storage": "granted"}


class TestRestore:
    def test_regrant_does_not_reinject(self, dispatcher, host):
        dispatcher.reconcile(ALL)
        dispatcher.reconcile(NONE)
        dispatcher.reconcile(ALL)

        assert all(count == 1 for count in _init_counts(dispatcher).values())
        assert len(host.scripts) == 3
        assert ("fbq", "consent", "grant") in host.commands
        assert host.commands[-2] == (
            "gtag", "consent", "update", {"analytics_storage": "granted", "ad_storage": "granted"},
        )
        assert all(i.is_active for i in dispatcher.integrations)


class TestEvents:
    def test_broadcast_carries_full_categories(self, dispatcher, events):
        received = []
        events.subscribe(received.append)

        dispatcher.reconcile(ConsentCategories(analytics=True))
        assert received == [ConsentCategories(analytics=True)]

    def test_broadcast_only_on_change(self, dispatcher, events, host):
        received = []
        events.subscribe(received.append)

        dispatcher.reconcile(ALL)
        dispatcher.reconcile(ALL)
        dispatcher.reconcile(NONE)

        assert received == [ALL, NONE]
        page_events = [e for e in host.events if e[0] == CONSENT_UPDATE_EVENT]
        assert len(page_events) == 2
        assert page_events[-1][1]["preferences"] == {
            "essential": True, "functional": False, "analytics": False, "marketing": False,
        }

    def test_failing_integration_does_not_block_others(self, storage):
        class BrokenPixel(MetaPixel):
            def _load(self, host):
                raise RuntimeError("script blocked")

        host = TrackerHost(cookies=storage)
        dispatcher = ConsentDispatcher(host, [BrokenPixel("1"), GoogleAnalytics("G-1")])
        dispatcher.reconcile(ALL)

        assert dispatcher.is_active("google_analytics")
        assert not dispatcher.get("meta_pixel").is_initialized()
        assert dispatcher.last_categories == ALL


class TestEventBusWiring:
    def test_empty_caller_bus_is_kept(self, host):
        bus = ConsentEventBus()
        dispatcher = ConsentDispatcher(host, [], bus)
        received = []
        bus.subscribe(received.append)

        dispatcher.reconcile(ALL)

        assert dispatcher.events is bus
        assert received == [ALL]
