"""Consent store: the durable ConsentRecord plus its derived per-category flags.

The record (one URL-encoded JSON cookie) is the single source of truth.
The four ``consent_<category>`` cookies are a denormalized read cache
rewritten on every write and deleted on withdrawal.

Concurrent writers (two tabs) are last-write-wins: a record is a full
snapshot, so there is nothing to merge.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timezone
from urllib.parse import quote, unquote

import structlog
from pydantic import ValidationError

from dietitian.models.consent import (
    CATEGORIES,
    ConsentCategories,
    ConsentPreferences,
    ConsentRecord,
    ConsentSource,
)
from dietitian.services.cookie_storage import CONSENT_COOKIE, CookieStorage, category_cookie
from dietitian.services.legal_gate import LegalAcceptanceGate

logger = structlog.get_logger()


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_timestamp(moment: datetime) -> str:
    """ISO-8601 in UTC with millisecond precision and a ``Z`` suffix."""
    return moment.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class ConsentStore:
    """Reads and writes the visitor's consent decision.

    Constructed once per visitor session at the application boundary and
    passed to whatever needs it.
    """

    def __init__(
        self,
        storage: CookieStorage,
        *,
        version: str,
        max_age: int,
        gate: LegalAcceptanceGate | None = None,
        clock: Callable[[], datetime] = _utc_now,
    ):
        self._storage = storage
        self.version = version
        self._max_age = max_age
        self.gate = gate if gate is not None else LegalAcceptanceGate(storage, max_age)
        self._clock = clock

    @property
    def storage(self) -> CookieStorage:
        return self._storage

    def read(self) -> ConsentRecord | None:
        """Return the stored record, or None when absent or unparseable.

        A corrupt or legacy-format record is treated exactly like no record
        so the visitor is asked again rather than guessed at.
        """
        raw = self._storage.get(CONSENT_COOKIE)
        if not raw:
            return None
        try:
            return ConsentRecord.model_validate_json(unquote(raw))
        except ValidationError as e:
            logger.warning("consent_record_unreadable", error_count=e.error_count())
            return None

    def has_record(self) -> bool:
        return self.read() is not None

    def write(self, preferences: ConsentPreferences, source: ConsentSource = "banner") -> ConsentRecord:
        """Persist a new record, replacing any previous one wholesale."""
        record = ConsentRecord(
            version=self.version,
            timestamp=format_timestamp(self._clock()),
            categories=preferences.to_categories(),
            source=source,
        )

        self._storage.set(CONSENT_COOKIE, quote(record.model_dump_json(), safe=""), self._max_age)
        self._write_category_flags(record.categories)
        self.gate.mark_accepted()

        logger.info(
            "consent_written",
            source=source,
            version=record.version,
            functional=record.categories.functional,
            analytics=record.categories.analytics,
            marketing=record.categories.marketing,
        )
        return record

    def accept_all(self, source: ConsentSource = "banner") -> ConsentRecord:
        return self.write(ConsentPreferences(functional=True, analytics=True, marketing=True), source)

    def reject_all(self, source: ConsentSource = "banner") -> ConsentRecord:
        return self.write(ConsentPreferences(), source)

    def withdraw(self) -> None:
        """Delete the record and every derived flag.

        The legal-acceptance flag is kept: the visitor can still reach the
        onboarding flow, but the banner is shown again.
        """
        self._storage.delete(CONSENT_COOKIE)
        for category in CATEGORIES:
            self._storage.delete(category_cookie(category))
        logger.info("consent_withdrawn")

    def _write_category_flags(self, categories: ConsentCategories) -> None:
        for category in CATEGORIES:
            value = "true" if categories.allows(category) else "false"
            self._storage.set(category_cookie(category), value, self._max_age)
