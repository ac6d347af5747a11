"""Consent policy: answers "is capability X permitted right now".

No record means only essential is allowed. Staleness (a record written
under an older policy version) is reported separately by
``is_consent_expired`` so callers never confuse "expired" with "denied".
"""

from __future__ import annotations

from dietitian.services.consent_store import ConsentStore


class ConsentPolicy:
    def __init__(self, store: ConsentStore, current_version: str | None = None):
        self._store = store
        self.current_version = current_version or store.version

    def is_allowed(self, category: str) -> bool:
        if category == "essential":
            return True
        record = self._store.read()
        if record is None:
            return False
        return record.categories.allows(category)

    def is_consent_expired(self) -> bool:
        """True only when a record exists and was written for another policy version."""
        record = self._store.read()
        return record is not None and record.version != self.current_version
