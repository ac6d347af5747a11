"""Legal-acceptance gate.

An independent persisted flag, set whenever any consent decision is
recorded (accept OR reject). It only decides whether navigation to the
transactional routes must first show the blocking legal/language prompt.
It is not a privacy control: never use it to answer "is category X allowed".

Withdrawing consent does not clear the flag.
"""

from __future__ import annotations

from collections.abc import Iterable

from dietitian.services.cookie_storage import LEGAL_ACCEPTED_COOKIE, CookieStorage

PROTECTED_ROUTES: tuple[str, ...] = ("/onboarding", "/payment")

LEGAL_PAGES: tuple[str, ...] = (
    "/privacy-policy",
    "/cookie-policy",
    "/data-protection",
    "/terms-of-service",
    "/legal",
)


def strip_locale(path: str, locales: Iterable[str]) -> str:
    """Drop a leading ``/<locale>`` segment, if any."""
    segments = path.split("/")
    if len(segments) > 1 and segments[1] in set(locales):
        rest = "/".join(segments[2:])
        return f"/{rest}"
    return path


def is_protected_route(path: str, locales: Iterable[str] = ()) -> bool:
    bare = strip_locale(path, locales)
    return any(bare == route or bare.startswith(f"{route}/") for route in PROTECTED_ROUTES)


def is_legal_page(path: str) -> bool:
    return any(page in path for page in LEGAL_PAGES)


class LegalAcceptanceGate:
    def __init__(self, storage: CookieStorage, max_age: int):
        self._storage = storage
        self._max_age = max_age

    def has_accepted(self) -> bool:
        """Any non-empty value counts as accepted."""
        return bool(self._storage.get(LEGAL_ACCEPTED_COOKIE))

    def mark_accepted(self) -> None:
        self._storage.set(LEGAL_ACCEPTED_COOKIE, "true", self._max_age)

    def requires_prompt(self, path: str, locales: Iterable[str] = ()) -> bool:
        return is_protected_route(path, locales) and not self.has_accepted()
