"""Consent domain model.

A ConsentRecord is an immutable snapshot of a visitor's cookie-category
decision. Any change in preference produces a new record (full replace),
withdrawal deletes it. Absence of a record is NOT the same as reject-all.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict

ConsentSource = Literal["banner", "preferences"]

CATEGORIES: tuple[str, ...] = ("essential", "functional", "analytics", "marketing")
OPTIONAL_CATEGORIES: tuple[str, ...] = ("functional", "analytics", "marketing")


class ConsentPreferences(BaseModel):
    """The visitor's choice for every category except essential."""

    model_config = ConfigDict(frozen=True, strict=True)

    functional: bool = False
    analytics: bool = False
    marketing: bool = False

    def to_categories(self) -> ConsentCategories:
        return ConsentCategories(
            functional=self.functional,
            analytics=self.analytics,
            marketing=self.marketing,
        )


class ConsentCategories(BaseModel):
    """Full category set. ``essential`` is display-only and always on."""

    model_config = ConfigDict(frozen=True, strict=True)

    essential: Literal[True] = True
    functional: bool = False
    analytics: bool = False
    marketing: bool = False

    @classmethod
    def all_granted(cls) -> ConsentCategories:
        return cls(functional=True, analytics=True, marketing=True)

    @classmethod
    def essential_only(cls) -> ConsentCategories:
        return cls()

    def allows(self, category: str) -> bool:
        if category not in CATEGORIES:
            return False
        return bool(getattr(self, category))


class ConsentRecord(BaseModel):
    """Durable consent decision.

    ``version`` is the policy schema the record conforms to; ``timestamp`` is
    set at write time (ISO-8601, UTC).
    """

    model_config = ConfigDict(frozen=True, strict=True)

    version: str
    timestamp: str
    categories: ConsentCategories
    source: ConsentSource
