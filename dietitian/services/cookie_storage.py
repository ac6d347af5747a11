"""Key/value cookie storage used by the consent store and trackers.

Two backends:
  - MemoryCookieStorage: a plain jar for code running outside a request (tests)
  - RequestCookieStorage: reads a Starlette request's cookies and writes
    Set-Cookie headers onto the outgoing response

Both expose the same three operations so the consent code never knows
where its state lives.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Protocol

from starlette.responses import Response

# Persisted state layout
CONSENT_COOKIE = "cookie_consent"
CATEGORY_COOKIE_PREFIX = "consent_"
LEGAL_ACCEPTED_COOKIE = "legal_accepted"
LOCALE_COOKIE = "NEXT_LOCALE"


def category_cookie(category: str) -> str:
    return f"{CATEGORY_COOKIE_PREFIX}{category}"


class CookieStorage(Protocol):
    def get(self, name: str) -> str | None: ...

    def set(self, name: str, value: str, max_age: int) -> None: ...

    def delete(self, name: str) -> None: ...


class MemoryCookieStorage:
    """In-memory cookie jar. Tracks max-age so expiry policy is observable."""

    def __init__(self, initial: Mapping[str, str] | None = None):
        self._values: dict[str, str] = dict(initial or {})
        self.max_ages: dict[str, int] = {}

    def get(self, name: str) -> str | None:
        return self._values.get(name)

    def set(self, name: str, value: str, max_age: int) -> None:
        self._values[name] = value
        self.max_ages[name] = max_age

    def delete(self, name: str) -> None:
        self._values.pop(name, None)
        self.max_ages.pop(name, None)

    def __contains__(self, name: object) -> bool:
        return name in self._values


class RequestCookieStorage:
    """Cookie storage bound to one HTTP exchange.

    Writes are staged in an overlay so that a read after a write in the same
    request sees the new value, and mirrored to the response as Set-Cookie /
    expiring Set-Cookie headers.
    """

    def __init__(
        self,
        cookies: Mapping[str, str],
        response: Response | None = None,
        secure: bool = True,
    ):
        self._cookies = cookies
        self._response = response
        self._secure = secure
        self._overlay: dict[str, str | None] = {}

    def get(self, name: str) -> str | None:
        if name in self._overlay:
            return self._overlay[name]
        return self._cookies.get(name)

    def set(self, name: str, value: str, max_age: int) -> None:
        self._overlay[name] = value
        if self._response is not None:
            self._response.set_cookie(
                name,
                value,
                max_age=max_age,
                path="/",
                samesite="lax",
                secure=self._secure,
            )

    def delete(self, name: str) -> None:
        self._overlay[name] = None
        if self._response is not None:
            self._response.delete_cookie(name, path="/")
