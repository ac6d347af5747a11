"""Consent router — cookie-consent audit sink and state inspection.

Endpoints:
  POST   /api/consent           — log a consent decision (audit only)
  DELETE /api/consent           — log a withdrawal (audit only)
  GET    /api/consent           — informational
  GET    /api/consent/status    — consent state carried by the request cookies
  GET    /api/consent/trackers  — scripts/commands the page should run

The visitor's cookies are the only source of truth. Audit entries are
written to the log and never read back.
"""

from __future__ import annotations

from datetime import datetime, timezone

import structlog
from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from dietitian.config import settings
from dietitian.deps import Store
from dietitian.schemas.consent import (
    ConsentAuditRequest,
    ConsentAuditResponse,
    ConsentErrorResponse,
    ConsentInfoResponse,
    ConsentStatusResponse,
    ScriptTagOut,
    TrackerEventOut,
    TrackerPlanResponse,
)
from dietitian.services.consent_manager import ConsentManager
from dietitian.services.consent_policy import ConsentPolicy
from dietitian.services.consent_store import format_timestamp
from dietitian.services.dispatcher import ConsentDispatcher, default_integrations
from dietitian.services.geo import get_client_ip
from dietitian.services.trackers import TrackerHost

logger = structlog.get_logger()

router = APIRouter()


def _client_meta(request: Request) -> dict[str, str]:
    ip = get_client_ip(request.headers) or (request.client.host if request.client else None) or "unknown"
    user_agent = request.headers.get("user-agent") or "unknown"
    return {"ip": ip[:50], "user_agent": user_agent[:200]}


def _now() -> str:
    return format_timestamp(datetime.now(timezone.utc))


@router.get("/consent", response_model=ConsentInfoResponse)
async def consent_info():
    return ConsentInfoResponse(
        message="Consent API endpoint - consent state lives in the visitor's cookies",
        note="This endpoint is for server-side consent tracking and audit logs",
    )


@router.post(
    "/consent",
    response_model=ConsentAuditResponse,
    responses={status.HTTP_400_BAD_REQUEST: {"model": ConsentErrorResponse}},
)
async def record_consent(request: Request):
    """Log a consent decision. Does not gate any client behaviour."""
    try:
        body = ConsentAuditRequest.model_validate(await request.json())
    except (ValueError, ValidationError):
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=ConsentErrorResponse(error="Invalid consent preferences").model_dump(),
        )

    timestamp = _now()
    logger.info(
        "consent_recorded",
        functional=body.functional,
        analytics=body.analytics,
        marketing=body.marketing,
        version=body.version or settings.CONSENT_POLICY_VERSION,
        timestamp=timestamp,
        **_client_meta(request),
    )
    return ConsentAuditResponse(success=True, message="Consent preferences saved", timestamp=timestamp)


@router.delete("/consent", response_model=ConsentAuditResponse)
async def record_withdrawal(request: Request):
    timestamp = _now()
    logger.info("consent_withdrawal_recorded", timestamp=timestamp, **_client_meta(request))
    return ConsentAuditResponse(success=True, message="Consent withdrawn successfully", timestamp=timestamp)


@router.get("/consent/status", response_model=ConsentStatusResponse)
async def consent_status(store: Store, path: str = "/"):
    """Banner/prompt decisions for the visitor.

    ``path`` is the page the visitor is heading to; it decides whether the
    legal prompt is required.
    """
    record = store.read()
    expired = ConsentPolicy(store, settings.CONSENT_POLICY_VERSION).is_consent_expired()
    return ConsentStatusResponse(
        has_record=record is not None,
        show_banner=record is None or expired,
        legal_accepted=store.gate.has_accepted(),
        legal_prompt_required=store.gate.requires_prompt(path, settings.locales),
        expired=expired,
        version=record.version if record else None,
        categories=record.categories if record else None,
    )


@router.get("/consent/trackers", response_model=TrackerPlanResponse)
async def consent_trackers(store: Store):
    """Reconcile trackers against the stored consent for this page load.

    Tracking cookies of denied integrations are expired on the response.
    """
    host = TrackerHost(cookies=store.storage)
    dispatcher = ConsentDispatcher(host, default_integrations(settings))
    categories = ConsentManager(store, dispatcher).restore()

    return TrackerPlanResponse(
        categories=categories,
        active=[i.name for i in dispatcher.integrations if i.is_active],
        scripts=[ScriptTagOut(src=s.src, is_async=s.is_async) for s in host.scripts],
        data_layer=host.data_layer,
        commands=[list(c) for c in host.commands],
        events=[TrackerEventOut(name=name, detail=detail) for name, detail in host.events],
    )
