"""Locale persistence gated on legal acceptance.

For page requests (not /api):
  - sets request.state.legal_prompt_required for protected routes
    (/onboarding, /payment) when the legal-acceptance flag is missing
  - persists the NEXT_LOCALE cookie from the path's locale prefix, but only
    once the visitor has accepted, and never on legal pages so policies can
    be read before accepting
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from starlette.middleware.base import BaseHTTPMiddleware

from dietitian.config import settings
from dietitian.services.cookie_storage import LOCALE_COOKIE, RequestCookieStorage
from dietitian.services.legal_gate import LegalAcceptanceGate, is_legal_page

if TYPE_CHECKING:
    from collections.abc import Callable

    from fastapi import Request
    from starlette.responses import Response


class LegalLocaleMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        path = request.url.path
        locales = settings.locales
        gate = LegalAcceptanceGate(RequestCookieStorage(request.cookies), settings.consent_max_age_seconds)
        request.state.legal_prompt_required = gate.requires_prompt(path, locales)

        response = await call_next(request)

        if path.startswith("/api") or is_legal_page(path) or not gate.has_accepted():
            return response

        segments = path.split("/")
        locale = segments[1] if len(segments) > 1 else ""
        if locale in locales:
            response.set_cookie(
                LOCALE_COOKIE,
                locale,
                max_age=settings.consent_max_age_seconds,
                path="/",
                samesite="lax",
            )
        return response
