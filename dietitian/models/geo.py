"""Region classification result. Re-derived per request, never persisted."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class GeoClassification(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    country_code: str | None = Field(default=None, alias="countryCode")
    is_in_eu: bool = Field(default=False, alias="isInEU")

    @classmethod
    def unknown(cls) -> GeoClassification:
        """Non-EU default used on every failure path."""
        return cls(country_code=None, is_in_eu=False)
