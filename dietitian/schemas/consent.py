"""Pydantic schemas for Consent endpoints."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, StrictBool
from pydantic.alias_generators import to_camel

from dietitian.models.consent import ConsentCategories


class ConsentAuditRequest(BaseModel):
    functional: StrictBool
    analytics: StrictBool
    marketing: StrictBool
    version: str | None = None


class ConsentAuditResponse(BaseModel):
    success: bool
    message: str
    timestamp: str


class ConsentErrorResponse(BaseModel):
    success: bool = False
    error: str


class ConsentInfoResponse(BaseModel):
    success: bool = True
    message: str
    note: str


class ConsentStatusResponse(BaseModel):
    """Consent state derived from the request's cookies."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    has_record: bool
    show_banner: bool
    legal_accepted: bool
    legal_prompt_required: bool
    expired: bool
    version: str | None = None
    categories: ConsentCategories | None = None


class ScriptTagOut(BaseModel):
    src: str
    is_async: bool = True


class TrackerEventOut(BaseModel):
    name: str
    detail: dict[str, Any]


class TrackerPlanResponse(BaseModel):
    """What the page must inject/run for the visitor's current consent."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    categories: ConsentCategories
    active: list[str]
    scripts: list[ScriptTagOut]
    data_layer: list[Any]
    commands: list[list[Any]]
    events: list[TrackerEventOut]
